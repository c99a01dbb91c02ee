"""
Closed provider sets and their fixed per-provider authorize parameters.

Enum values are the path segments used in routes, redirect URIs and the
registrar's `auth_agent` / `drive_provider` fields.
"""

from enum import Enum
from typing import Dict, Mapping

from oauth_gateway.common.exceptions import UnsupportedProvider


class IdentityProvider(str, Enum):
    GOOGLE = "google"
    AZURE = "azure"
    TWITTER = "twitter"
    GITHUB = "github"
    LINKEDIN = "linkedIn"
    DISCORD = "discord"

    @classmethod
    def parse(cls, value: str) -> "IdentityProvider":
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedProvider(f"Unknown identity provider: {value}") from None


class DriveProvider(str, Enum):
    GOOGLE = "google"
    MSGRAPH = "msgraph"
    DROPBOX = "dropbox"

    @classmethod
    def parse(cls, value: str) -> "DriveProvider":
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedProvider(f"Unknown drive provider: {value}") from None


# Extra query parameters appended to the authorize URL
IDENTITY_AUTHORIZE_PARAMS: Dict[IdentityProvider, Mapping[str, str]] = {
    IdentityProvider.GOOGLE: {"prompt": "consent", "access_type": "offline"},
}

DRIVE_AUTHORIZE_PARAMS: Dict[DriveProvider, Mapping[str, str]] = {
    DriveProvider.GOOGLE: {"prompt": "consent", "access_type": "offline"},
    DriveProvider.DROPBOX: {"token_access_type": "offline"},
}
