"""
Identity payload normalizers.

Each provider returns its own profile shape; every shape converges to
CanonicalUserIdentity through the `_IDENTITY_NORMALIZERS` table.
"""

from typing import Any, Callable, Dict, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from oauth_gateway.common.exceptions import JsonParsingError, UnsupportedProvider
from oauth_gateway.core.oauth.providers import IdentityProvider
from oauth_gateway.schemas.identity import CanonicalUserIdentity


def maybe_email(value: Optional[str]) -> Optional[str]:
    """Providers send "" for a hidden address; treat it as absent."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class _Raw(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RawGoogleUser(_Raw):
    id: str = Field(validation_alias=AliasChoices("id", "sub"))
    email: str
    verified_email: Optional[bool] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    locale: Optional[str] = None


class RawAzureUser(_Raw):
    id: str
    mail: Optional[str] = None
    user_principal_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("userPrincipalName", "user_principal_name")
    )
    display_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("displayName", "display_name")
    )


class _TwitterData(_Raw):
    id: str
    username: str
    name: Optional[str] = None


class RawTwitterUser(_Raw):
    data: _TwitterData


class RawGithubUser(_Raw):
    id: int
    login: str
    email: Optional[str] = None
    name: Optional[str] = None


class RawLinkedInUser(_Raw):
    id: str = Field(validation_alias=AliasChoices("id", "sub"))
    username: str = Field(validation_alias=AliasChoices("username", "name"))
    email: Optional[str] = None


class RawDiscordUser(_Raw):
    id: str
    username: str
    email: Optional[str] = None
    verified: Optional[bool] = None
    locale: Optional[str] = None


def _google(raw: RawGoogleUser) -> CanonicalUserIdentity:
    return CanonicalUserIdentity(subject_id=raw.id, provider=IdentityProvider.GOOGLE, email=maybe_email(raw.email))


def _azure(raw: RawAzureUser) -> CanonicalUserIdentity:
    return CanonicalUserIdentity(
        subject_id=raw.id,
        provider=IdentityProvider.AZURE,
        email=maybe_email(raw.mail),
        username=raw.display_name,
    )


def _twitter(raw: RawTwitterUser) -> CanonicalUserIdentity:
    return CanonicalUserIdentity(
        subject_id=raw.data.id,
        provider=IdentityProvider.TWITTER,
        username=raw.data.username,
    )


def _github(raw: RawGithubUser) -> CanonicalUserIdentity:
    return CanonicalUserIdentity(
        subject_id=str(raw.id),
        provider=IdentityProvider.GITHUB,
        email=maybe_email(raw.email),
        username=raw.login,
    )


def _linkedin(raw: RawLinkedInUser) -> CanonicalUserIdentity:
    return CanonicalUserIdentity(
        subject_id=raw.id,
        provider=IdentityProvider.LINKEDIN,
        email=maybe_email(raw.email),
        username=raw.username,
    )


def _discord(raw: RawDiscordUser) -> CanonicalUserIdentity:
    return CanonicalUserIdentity(
        subject_id=raw.id,
        provider=IdentityProvider.DISCORD,
        email=maybe_email(raw.email),
        username=raw.username,
    )


# provider -> (raw model, converter)
_IDENTITY_NORMALIZERS: Dict[IdentityProvider, tuple] = {
    IdentityProvider.GOOGLE: (RawGoogleUser, _google),
    IdentityProvider.AZURE: (RawAzureUser, _azure),
    IdentityProvider.TWITTER: (RawTwitterUser, _twitter),
    IdentityProvider.GITHUB: (RawGithubUser, _github),
    IdentityProvider.LINKEDIN: (RawLinkedInUser, _linkedin),
    IdentityProvider.DISCORD: (RawDiscordUser, _discord),
}


def normalize_identity(provider: Union[IdentityProvider, str], raw: Any) -> CanonicalUserIdentity:
    """
    Convert a provider profile payload into a CanonicalUserIdentity.

    Args:
        provider: identity provider (enum or path value)
        raw: decoded JSON body of the provider's identity resource

    Raises:
        UnsupportedProvider: provider outside the closed set
        JsonParsingError: payload does not have the provider's shape
    """
    if not isinstance(provider, IdentityProvider):
        provider = IdentityProvider.parse(provider)

    entry = _IDENTITY_NORMALIZERS.get(provider)
    if entry is None:
        raise UnsupportedProvider(context=f"no identity normalizer for {provider.value}")
    model, convert = entry

    try:
        parsed = model.model_validate(raw)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors(include_input=False))
        raise JsonParsingError(context=f"{provider.value} identity payload invalid ({fields})") from None

    converter: Callable[[Any], CanonicalUserIdentity] = convert
    return converter(parsed)
