"""
OAuth provider layer.

Module layout:
- providers.py: closed identity/drive provider sets, extra authorize params
- config.py: YAML descriptor loader (IdentityDescriptor, DriveDescriptor, SettingsSnapshot)
- registry.py: ClientEntry, ProviderRegistry, ConfigHandle
- normalizers/: provider payload -> canonical models
"""

from oauth_gateway.core.oauth.config import (
    DriveDescriptor,
    FilesRequest,
    IdentityDescriptor,
    SettingsSnapshot,
    load_snapshot,
)
from oauth_gateway.core.oauth.providers import DriveProvider, IdentityProvider
from oauth_gateway.core.oauth.registry import ClientEntry, ConfigHandle, Generation, ProviderRegistry

__all__ = [
    "ClientEntry",
    "ConfigHandle",
    "DriveDescriptor",
    "DriveProvider",
    "FilesRequest",
    "Generation",
    "IdentityDescriptor",
    "IdentityProvider",
    "ProviderRegistry",
    "SettingsSnapshot",
    "load_snapshot",
]
