"""
Token schemas
"""
import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from oauth_gateway.core.oauth.providers import DriveProvider


class TokenResponse(BaseModel):
    """Successful token endpoint response (RFC 6749 §5.1)"""
    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    @field_validator("token_type")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.lower()

    @property
    def scopes(self) -> Optional[List[str]]:
        # Some providers (e.g. Google) separate scopes with commas instead of spaces
        if not self.scope:
            return None
        return self.scope.replace(",", " ").split()

    def __repr__(self) -> str:
        return (
            f"TokenResponse(token_type={self.token_type!r}, expires_in={self.expires_in!r}, "
            f"has_refresh_token={self.refresh_token is not None})"
        )


class DriveToken(BaseModel):
    """Drive authorization artifact persisted by the registrar"""
    project_id: uuid.UUID
    drive_provider: DriveProvider
    access_token: str
    token_type: str
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scopes: Optional[List[str]] = None
    token_endpoint: Optional[str] = None

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

    def __repr__(self) -> str:
        return f"DriveToken(project_id={self.project_id}, drive_provider={self.drive_provider.value})"
