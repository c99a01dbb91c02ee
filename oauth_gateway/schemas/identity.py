"""
Identity schemas
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict

from oauth_gateway.core.oauth.providers import IdentityProvider


class CanonicalUserIdentity(BaseModel):
    """Provider-agnostic user identity"""
    model_config = ConfigDict(frozen=True)

    subject_id: str
    provider: IdentityProvider
    email: Optional[str] = None
    username: Optional[str] = None

    def to_registration(self) -> "UserRegistration":
        return UserRegistration(auth_agent=self.provider, auth_id=self.subject_id, email=self.email)


class UserRegistration(BaseModel):
    """Body posted to the registrar"""
    auth_agent: IdentityProvider
    auth_id: str
    email: Optional[str] = None
