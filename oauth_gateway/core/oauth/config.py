"""
Provider descriptor loader and settings snapshot.

Loads identity and drive provider descriptors from YAML with support for:
- built-in provider templates (endpoint defaults per provider)
- env var expansion ${VAR_NAME}
- `enabled: false` to skip an entry

Unlike a best-effort loader, every problem raises ConfigError: the gateway must
not start (or swap in a reload) with a partially understood configuration.
"""

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from oauth_gateway.common.exceptions import ConfigError
from oauth_gateway.core.oauth.providers import DriveProvider, IdentityProvider
from oauth_gateway.core.settings import Settings

LOG_PREFIX = "[ProviderConfig]"

# ==================== Built-in Provider Templates ====================
# Only client_id/client_secret are required when a template is used

IDENTITY_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "google": {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "identity_resource_url": "https://www.googleapis.com/oauth2/v2/userinfo",
        "revocation_url": "https://oauth2.googleapis.com/revoke",
        "scope": "email profile",
    },
    "azure": {
        # {tenant} placeholder, "common" by default
        "auth_url": "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize",
        "token_url": "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token",
        "identity_resource_url": "https://graph.microsoft.com/v1.0/me",
        "scope": "User.Read",
        "default_tenant": "common",
    },
    "twitter": {
        "auth_url": "https://twitter.com/i/oauth2/authorize",
        "token_url": "https://api.twitter.com/2/oauth2/token",
        "identity_resource_url": "https://api.twitter.com/2/users/me",
        "revocation_url": "https://api.twitter.com/2/oauth2/revoke",
        "scope": "users.read tweet.read",
    },
    "github": {
        "auth_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "identity_resource_url": "https://api.github.com/user",
        "scope": "read:user user:email",
        "token_endpoint_auth_method": "client_secret_post",
    },
    "linkedIn": {
        "auth_url": "https://www.linkedin.com/oauth/v2/authorization",
        "token_url": "https://www.linkedin.com/oauth/v2/accessToken",
        "identity_resource_url": "https://api.linkedin.com/v2/userinfo",
        "scope": "openid profile email",
        "token_endpoint_auth_method": "client_secret_post",
    },
    "discord": {
        "auth_url": "https://discord.com/oauth2/authorize",
        "token_url": "https://discord.com/api/oauth2/token",
        "identity_resource_url": "https://discord.com/api/users/@me",
        "revocation_url": "https://discord.com/api/oauth2/token/revoke",
        "scope": "identify email",
    },
}

DRIVE_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "google": {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "scopes": ["https://www.googleapis.com/auth/drive.readonly"],
        "files_request": {
            "method": "GET",
            "base_url": "https://www.googleapis.com",
            "endpoint": "/drive/v3/files",
            "list_query": "?fields=files(id,name,mimeType,size,createdTime,modifiedTime)",
        },
    },
    "msgraph": {
        "auth_url": "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize",
        "token_url": "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token",
        "scopes": ["Files.Read", "offline_access"],
        "default_tenant": "common",
        "files_request": {
            "method": "GET",
            "base_url": "https://graph.microsoft.com",
            "endpoint": "/v1.0/me/drive/root/children",
            "list_query": "",
        },
    },
    "dropbox": {
        "auth_url": "https://www.dropbox.com/oauth2/authorize",
        "token_url": "https://api.dropboxapi.com/oauth2/token",
        "scopes": ["files.metadata.read"],
        "files_request": {
            "method": "POST",
            "base_url": "https://api.dropboxapi.com",
            "endpoint": "/2/files/list_folder",
            "list_query": "",
            "json_body_template": '{"path": ""}',
        },
    },
}

TokenAuthMethod = Literal["client_secret_basic", "client_secret_post"]


class FilesRequest(BaseModel):
    """How a drive provider's file listing is requested."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: Literal["GET", "POST"] = "GET"
    base_url: str
    endpoint: str
    list_query: str = ""
    read_query: Optional[str] = None
    json_body_template: Optional[str] = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("json_body_template")
    @classmethod
    def _valid_json(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            json.loads(v)
        return v

    @property
    def list_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.endpoint}{self.list_query}"

    def json_body(self) -> Optional[Any]:
        return json.loads(self.json_body_template) if self.json_body_template is not None else None


class IdentityDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    auth_url: str
    token_url: str
    client_id: SecretStr
    client_secret: SecretStr
    identity_resource_url: str
    scope: str = ""
    revocation_url: Optional[str] = None
    token_endpoint_auth_method: TokenAuthMethod = "client_secret_basic"


class DriveDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    auth_url: str
    token_url: str
    client_id: SecretStr
    client_secret: SecretStr
    project_id: Optional[str] = None
    scopes: Tuple[str, ...] = Field(default_factory=tuple)
    files_request: FilesRequest
    token_endpoint_auth_method: TokenAuthMethod = "client_secret_basic"


@dataclass(frozen=True)
class SettingsSnapshot:
    """One immutable configuration generation. Replaced wholesale, never mutated."""

    version: int
    options: Settings
    identity: Mapping[IdentityProvider, IdentityDescriptor]
    drive: Mapping[DriveProvider, DriveDescriptor]


# Keys consumed by the loader itself and never passed to the descriptor models
_LOADER_KEYS = {"enabled", "template", "tenant", "default_tenant"}


class ProviderConfigLoader:
    """Provider descriptor loader."""

    def __init__(self, config_path: Path, environ: Optional[Mapping[str, str]] = None):
        self.config_path = Path(config_path)
        self.environ = os.environ if environ is None else environ

    def load(self) -> Tuple[Dict[IdentityProvider, IdentityDescriptor], Dict[DriveProvider, DriveDescriptor]]:
        """
        Read and validate the YAML file.

        Returns:
            (identity descriptors, drive descriptors) keyed by provider

        Raises:
            ConfigError: unreadable file, unknown provider, invalid entry
        """
        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(context=f"cannot read {self.config_path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(context=f"{self.config_path}: top level must be a mapping")

        identity: Dict[IdentityProvider, IdentityDescriptor] = {}
        for name, config in (raw.get("identity") or {}).items():
            provider = self._provider(IdentityProvider, name)
            if not self._enabled(name, config):
                continue
            identity[provider] = self._parse(name, config, IDENTITY_TEMPLATES, IdentityDescriptor)

        drive: Dict[DriveProvider, DriveDescriptor] = {}
        for name, config in (raw.get("drive") or {}).items():
            provider = self._provider(DriveProvider, name)
            if not self._enabled(name, config):
                continue
            drive[provider] = self._parse(name, config, DRIVE_TEMPLATES, DriveDescriptor)

        logger.info(
            f"{LOG_PREFIX} Loaded {len(identity)} identity and {len(drive)} drive providers "
            f"from {self.config_path}"
        )
        return identity, drive

    @staticmethod
    def _provider(enum_cls, name: str):
        try:
            return enum_cls(name)
        except ValueError:
            raise ConfigError(context=f"unknown {enum_cls.__name__} '{name}'") from None

    @staticmethod
    def _enabled(name: str, config: Any) -> bool:
        if not isinstance(config, dict):
            raise ConfigError(context=f"provider '{name}' must be a mapping")
        if not config.get("enabled", True):
            logger.debug(f"{LOG_PREFIX} Provider '{name}' is disabled, skipping")
            return False
        return True

    def _parse(self, name: str, config: Dict[str, Any], templates: Dict[str, Dict[str, Any]], model):
        """Merge a provider entry over its template and validate it."""
        config = self._expand_env_vars(config)

        template_name = config.get("template")
        if template_name and template_name not in templates:
            raise ConfigError(context=f"provider '{name}' names unknown template '{template_name}'")
        template = templates.get(template_name, {}) if template_name else {}

        # User values override the template
        merged = {**template, **config}

        tenant = merged.get("tenant", merged.get("default_tenant", "common"))
        for key in ("auth_url", "token_url"):
            if isinstance(merged.get(key), str):
                merged[key] = merged[key].replace("{tenant}", tenant)

        for key in ("client_id", "client_secret"):
            if not str(merged.get(key) or "").strip():
                raise ConfigError(context=f"provider '{name}' missing {key}")

        try:
            descriptor = model(**{k: v for k, v in merged.items() if k not in _LOADER_KEYS})
        except ValidationError as e:
            # errors() without input values, so secrets stay out of the log
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors(include_input=False)
            )
            raise ConfigError(context=f"provider '{name}': {details}") from None

        logger.info(f"{LOG_PREFIX} Loaded provider: {name}")
        return descriptor

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively replace ${VAR_NAME} with values from `environ`."""
        if isinstance(obj, str):
            return re.sub(r"\$\{(\w+)\}", lambda m: self.environ.get(m.group(1), ""), obj)
        elif isinstance(obj, dict):
            return {k: self._expand_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [self._expand_env_vars(i) for i in obj]
        return obj


def load_snapshot(
    options: Settings,
    version: int,
    environ: Optional[Mapping[str, str]] = None,
) -> SettingsSnapshot:
    """Build a snapshot from options plus the providers file they point at."""
    identity, drive = ProviderConfigLoader(options.providers_config_path, environ).load()
    return build_snapshot(options, version, identity, drive)


def build_snapshot(
    options: Settings,
    version: int,
    identity: Mapping[IdentityProvider, IdentityDescriptor],
    drive: Mapping[DriveProvider, DriveDescriptor],
) -> SettingsSnapshot:
    return SettingsSnapshot(
        version=version,
        options=options,
        identity=MappingProxyType(dict(identity)),
        drive=MappingProxyType(dict(drive)),
    )


def descriptor_summary(snapshot: SettingsSnapshot) -> List[str]:
    """Provider names per kind, for startup logs (no secrets)."""
    return [f"identity:{p.value}" for p in snapshot.identity] + [f"drive:{p.value}" for p in snapshot.drive]
