"""
Provider registry and the swappable configuration handle.

Usage:
    handle = ConfigHandle(lambda version: load_snapshot(Settings(), version))
    handle.load()

    generation = handle.current()          # one consistent view per request
    client = generation.registry.lookup_identity(IdentityProvider.GOOGLE)
    url = client.authorize_url(state, challenge)
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode

from loguru import logger
from pydantic import SecretStr

from oauth_gateway.common.exceptions import ConfigError
from oauth_gateway.core.oauth.config import FilesRequest, SettingsSnapshot
from oauth_gateway.core.oauth.providers import (
    DRIVE_AUTHORIZE_PARAMS,
    IDENTITY_AUTHORIZE_PARAMS,
    DriveProvider,
    IdentityProvider,
)
from oauth_gateway.core.settings import RESTART_FIELDS, Settings, check_url

LOG_PREFIX = "[ProviderRegistry]"


@dataclass(frozen=True)
class ClientEntry:
    """A ready OAuth client bound to its redirect URI. Shared read-only between requests."""

    provider: str
    auth_url: str
    token_url: str
    client_id: SecretStr
    client_secret: SecretStr
    redirect_uri: str
    scopes: Tuple[str, ...]
    token_endpoint_auth_method: str = "client_secret_basic"
    extra_params: Mapping[str, str] = field(default_factory=dict)
    resource_url: Optional[str] = None
    files_request: Optional[FilesRequest] = None

    def authorize_url(self, state: str, code_challenge: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id.get_secret_value(),
            "redirect_uri": self.redirect_uri,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        if self.scopes:
            params["scope"] = " ".join(self.scopes)
        params.update(self.extra_params)

        separator = "&" if "?" in self.auth_url else "?"
        return f"{self.auth_url}{separator}{urlencode(params)}"


def redirect_uri_for(callback_base: str, provider_path: str) -> str:
    return f"{callback_base.rstrip('/')}/{provider_path}"


def _validated(provider: str, **urls: Optional[str]) -> None:
    for name, url in urls.items():
        if url is None:
            continue
        try:
            check_url(url)
        except ValueError:
            raise ConfigError(context=f"provider '{provider}': invalid {name} {url!r}") from None


class ProviderRegistry:
    """Lookup from provider to ClientEntry, built once per settings generation."""

    def __init__(
        self,
        identity: Mapping[IdentityProvider, ClientEntry],
        drive: Mapping[DriveProvider, ClientEntry],
    ):
        self._identity = MappingProxyType(dict(identity))
        self._drive = MappingProxyType(dict(drive))

    @classmethod
    def build(cls, snapshot: SettingsSnapshot) -> "ProviderRegistry":
        """
        Raises:
            ConfigError: an endpoint or computed redirect URI is not a valid URL
        """
        options = snapshot.options

        identity: Dict[IdentityProvider, ClientEntry] = {}
        for provider, desc in snapshot.identity.items():
            redirect_uri = redirect_uri_for(options.authorized_endpoint, provider.value)
            _validated(
                provider.value,
                auth_url=desc.auth_url,
                token_url=desc.token_url,
                identity_resource_url=desc.identity_resource_url,
                revocation_url=desc.revocation_url,
                redirect_uri=redirect_uri,
            )
            identity[provider] = ClientEntry(
                provider=provider.value,
                auth_url=desc.auth_url,
                token_url=desc.token_url,
                client_id=desc.client_id,
                client_secret=desc.client_secret,
                redirect_uri=redirect_uri,
                scopes=tuple(desc.scope.split()),
                token_endpoint_auth_method=desc.token_endpoint_auth_method,
                extra_params=MappingProxyType(dict(IDENTITY_AUTHORIZE_PARAMS.get(provider, {}))),
                resource_url=desc.identity_resource_url,
            )

        drive: Dict[DriveProvider, ClientEntry] = {}
        for provider, desc in snapshot.drive.items():
            redirect_uri = redirect_uri_for(options.authorized_drive_endpoint, provider.value)
            _validated(
                provider.value,
                auth_url=desc.auth_url,
                token_url=desc.token_url,
                files_base_url=desc.files_request.base_url,
                files_list_url=desc.files_request.list_url,
                redirect_uri=redirect_uri,
            )
            drive[provider] = ClientEntry(
                provider=provider.value,
                auth_url=desc.auth_url,
                token_url=desc.token_url,
                client_id=desc.client_id,
                client_secret=desc.client_secret,
                redirect_uri=redirect_uri,
                scopes=tuple(desc.scopes),
                token_endpoint_auth_method=desc.token_endpoint_auth_method,
                extra_params=MappingProxyType(dict(DRIVE_AUTHORIZE_PARAMS.get(provider, {}))),
                files_request=desc.files_request,
            )

        logger.debug(f"{LOG_PREFIX} Built {len(identity)} identity and {len(drive)} drive clients")
        return cls(identity, drive)

    def lookup_identity(self, provider: IdentityProvider) -> Optional[ClientEntry]:
        return self._identity.get(provider)

    def lookup_drive(self, provider: DriveProvider) -> Optional[ClientEntry]:
        return self._drive.get(provider)

    def identity_providers(self) -> Tuple[IdentityProvider, ...]:
        return tuple(self._identity)

    def drive_providers(self) -> Tuple[DriveProvider, ...]:
        return tuple(self._drive)


@dataclass(frozen=True)
class Generation:
    """A settings snapshot together with the registry derived from it."""

    settings: SettingsSnapshot
    registry: ProviderRegistry

    @property
    def version(self) -> int:
        return self.settings.version


class ConfigHandle:
    """
    Holds the current Generation and swaps it atomically.

    Readers call `current()` once per request and keep that object; a reload
    replaces the reference with a single assignment, so nobody observes a
    half-built generation.
    """

    def __init__(
        self,
        loader: Callable[[int], SettingsSnapshot],
        restart_fields: Tuple[str, ...] = RESTART_FIELDS,
    ):
        self._loader = loader
        self._restart_fields = restart_fields
        self._current: Optional[Generation] = None

    def load(self) -> Generation:
        """
        Load, validate and publish a new generation.

        Options apply to requests that start after the swap, except
        `restart_fields`, which are bound at startup and must not change.

        Raises:
            ConfigError: the previous generation (if any) stays current
        """
        version = self._current.version + 1 if self._current else 1
        snapshot = self._loader(version)
        if self._current is not None:
            self._check_restart_fields(self._current.settings.options, snapshot.options)
        generation = Generation(settings=snapshot, registry=ProviderRegistry.build(snapshot))
        self._current = generation
        logger.info(f"{LOG_PREFIX} Configuration generation {version} is live")
        return generation

    def _check_restart_fields(self, old: Settings, new: Settings) -> None:
        changed = [f for f in self._restart_fields if getattr(old, f) != getattr(new, f)]
        if changed:
            raise ConfigError(context=f"{', '.join(changed)} changed; restart the service to apply")

    def reload(self) -> Generation:
        try:
            return self.load()
        except ConfigError as e:
            logger.error(f"{LOG_PREFIX} Reload rejected, keeping generation {self.current().version}: {e.context}")
            raise

    @property
    def loaded(self) -> bool:
        return self._current is not None

    def current(self) -> Generation:
        if self._current is None:
            raise ConfigError(context="configuration has not been loaded")
        return self._current
