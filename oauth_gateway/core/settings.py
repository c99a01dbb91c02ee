"""
Application settings
"""
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root (the directory holding oauth_gateway/ and config/)
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"

ENVIRONMENTS = ("development", "testing", "production")

# Bound once at startup (listener, log sinks, Redis pool, app metadata);
# a reload may not change them
RESTART_FIELDS = (
    "app_name",
    "app_version",
    "environment",
    "host",
    "port",
    "log_level",
    "log_to_file",
    "redis_url",
    "redis_pool_size",
)


def check_url(value: str) -> str:
    """Accept absolute http(s) URLs with a host; raise ValueError otherwise."""
    parts = urlsplit(value or "")
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"not an absolute http(s) url: {value!r}")
    return value


class Settings(BaseSettings):
    """Network and service options (providers are loaded separately, see core.oauth.config)"""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # App
    app_name: str = Field(
        default="OAuth Gateway",
        description="Application name, also sent as the outbound User-Agent"
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version"
    )
    debug: bool = Field(
        default=False,
        validation_alias=AliasChoices("DEBUG", "APP_DEBUG"),
        description="Return exception text in 500 responses"
    )
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "ENV", "APP_ENV"),
        description="Application environment (development, testing, production)"
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("GATEWAY_HOST", "HOST", "SERVER_HOST"),
        description="Listen host"
    )
    port: int = Field(
        default=8000,
        validation_alias=AliasChoices("GATEWAY_PORT", "PORT", "SERVER_PORT"),
        description="Listen port"
    )
    allow_reload: bool = Field(
        default=False,
        validation_alias=AliasChoices("ALLOW_RELOAD", "CONFIG_RELOAD"),
        description="Expose POST /reload to swap in a freshly loaded configuration"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "LOGLEVEL"),
        description="loguru level"
    )
    log_to_file: bool = Field(
        default=False,
        validation_alias=AliasChoices("LOG_TO_FILE",),
        description="Also write rotating files under logs/"
    )

    # Redis (flow sessions); in-memory store when unset
    redis_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("REDIS_URL", "REDIS_DB"),
        description="Redis connection URL"
    )
    redis_pool_size: int = Field(
        default=10,
        validation_alias=AliasChoices("REDIS_POOL_SIZE",),
        description="Redis connection pool size"
    )

    # Flow session cookie
    session_ttl_seconds: int = Field(
        default=600,
        validation_alias=AliasChoices("SESSION_TTL_SECONDS", "SESSION_TTL"),
        description="Lifetime of an in-flight authorization attempt"
    )
    session_cookie_name: str = Field(
        default="auth_session",
        validation_alias=AliasChoices("SESSION_COOKIE_NAME",),
    )
    cookie_secure: bool = Field(
        default=False,
        validation_alias=AliasChoices("COOKIE_SECURE",),
        description="Add the Secure attribute to the flow session cookie"
    )
    account_cookie_name: str = Field(
        default="app_session",
        validation_alias=AliasChoices("ACCOUNT_COOKIE_NAME",),
        description="Cookie issued by the registrar and forwarded on drive-token registration"
    )

    # Outbound HTTP
    http_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices("HTTP_TIMEOUT_SECONDS", "HTTP_TIMEOUT"),
        description="Timeout applied to token exchange, resource fetch and registrar calls"
    )

    # Callback bases; redirect_uri = base + "/" + provider
    authorized_endpoint: str = Field(
        default="http://localhost:8000/auth/authorized",
        validation_alias=AliasChoices("AUTHORIZED_ENDPOINT",),
    )
    authorized_drive_endpoint: str = Field(
        default="http://localhost:8000/drive/authorized",
        validation_alias=AliasChoices("AUTHORIZED_DRIVE_ENDPOINT",),
    )

    # Downstream registrar and application
    register_endpoint: str = Field(
        default="http://localhost:3000/v1/register",
        validation_alias=AliasChoices("REGISTER_ENDPOINT",),
    )
    drive_token_endpoint: str = Field(
        default="http://localhost:3000/v1/drive-token",
        validation_alias=AliasChoices("DRIVE_TOKEN_ENDPOINT",),
    )
    app_endpoint: str = Field(
        default="http://localhost:3000/",
        validation_alias=AliasChoices("APP_ENDPOINT",),
    )
    filesystem_endpoint: str = Field(
        default="http://localhost:3000/drive",
        validation_alias=AliasChoices("FILESYSTEM_ENDPOINT",),
        description="Prefix of the post-authorization redirect: {prefix}/{provider}/{project_id}/files"
    )

    providers_config_path: Path = Field(
        default=BASE_DIR / "config" / "providers.yaml",
        validation_alias=AliasChoices("PROVIDERS_CONFIG_PATH", "PROVIDERS_CONFIG"),
        description="YAML file with identity and drive provider descriptors"
    )

    @field_validator("environment")
    @classmethod
    def _known_environment(cls, v: str) -> str:
        v = v.lower()
        if v not in ENVIRONMENTS:
            raise ValueError(f"environment must be one of {', '.join(ENVIRONMENTS)}")
        return v

    @field_validator(
        "authorized_endpoint",
        "authorized_drive_endpoint",
        "register_endpoint",
        "drive_token_endpoint",
        "app_endpoint",
        "filesystem_endpoint",
    )
    @classmethod
    def _absolute_url(cls, v: str) -> str:
        return check_url(v)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"
