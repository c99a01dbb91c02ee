"""
Opaque tokens for the authorization flows: PKCE pairs, CSRF state, session keys.
"""
import base64
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Optional

from oauth_gateway.common.exceptions import ProjectIdError
from oauth_gateway.schemas.project import ProjectId

PKCE_VERIFIER_BYTES = 64  # 86 url-safe characters, inside RFC 7636's 43..128
CSRF_TOKEN_BYTES = 32
DRIVE_STATE_SEPARATOR = "."


def generate_token(length: int = 32) -> str:
    """Random url-safe token (session keys, CSRF state)."""
    return secrets.token_urlsafe(length)


def generate_csrf_token() -> str:
    return generate_token(CSRF_TOKEN_BYTES)


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def pkce_challenge(verifier: str) -> str:
    """S256 code challenge: BASE64URL(SHA256(verifier)) without padding."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


@dataclass(frozen=True)
class PkcePair:
    verifier: str
    challenge: str
    method: str = "S256"

    def __repr__(self) -> str:
        return f"PkcePair(challenge={self.challenge!r}, method={self.method!r})"


def generate_pkce_pair() -> PkcePair:
    verifier = _b64url(secrets.token_bytes(PKCE_VERIFIER_BYTES))
    return PkcePair(verifier=verifier, challenge=pkce_challenge(verifier))


def tokens_match(received: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; empty values never match."""
    if not received or not expected:
        return False
    return hmac.compare_digest(received.encode(), expected.encode())


@dataclass(frozen=True)
class DriveState:
    """
    `state` parameter of the drive flow: "<project_id>.<csrf>".

    The project id stays recoverable from the provider redirect while the
    CSRF part keeps the value unpredictable.
    """

    project_id: ProjectId
    csrf_token: str = ""

    def format(self) -> str:
        if not self.csrf_token:
            return str(self.project_id)
        return f"{self.project_id}{DRIVE_STATE_SEPARATOR}{self.csrf_token}"

    @classmethod
    def parse(cls, state: Optional[str]) -> "DriveState":
        """
        Raises:
            ProjectIdError: missing state or a project part that is not a UUID
        """
        if not state:
            raise ProjectIdError(context="drive callback without state")
        project_part, _, csrf_part = state.partition(DRIVE_STATE_SEPARATOR)
        return cls(project_id=ProjectId.parse(project_part), csrf_token=csrf_part)
