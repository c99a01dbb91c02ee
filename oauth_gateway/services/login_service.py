"""
Identity login flow

    initiate: PKCE pair + CSRF token -> flow session -> 302 to the provider
    callback: flow session -> CSRF check -> code exchange -> profile fetch
              -> canonical identity -> registrar -> 302 to the application
"""

from typing import Optional, Tuple

from loguru import logger

from oauth_gateway.common.exceptions import (
    CsrfMismatch,
    InvalidResponse,
    MissingParameter,
    UnsupportedProvider,
)
from oauth_gateway.core.oauth.normalizers import normalize_identity
from oauth_gateway.core.oauth.providers import IdentityProvider
from oauth_gateway.core.oauth.registry import ClientEntry, Generation
from oauth_gateway.core.security import generate_csrf_token, generate_pkce_pair, tokens_match
from oauth_gateway.schemas.session import FlowRedirect
from oauth_gateway.services.exchange_service import TokenExchanger
from oauth_gateway.services.registrar_service import RegistrarClient
from oauth_gateway.services.session_service import SessionBroker

LOG_PREFIX = "[LoginFlow]"


class LoginFlow:
    """Authorization code + PKCE flow against an identity provider."""

    def __init__(self, broker: SessionBroker, exchanger: TokenExchanger, registrar: RegistrarClient):
        self.broker = broker
        self.exchanger = exchanger
        self.registrar = registrar

    @staticmethod
    def _client(generation: Generation, provider_name: str) -> Tuple[IdentityProvider, ClientEntry]:
        provider = IdentityProvider.parse(provider_name)
        client: Optional[ClientEntry] = generation.registry.lookup_identity(provider)
        if client is None:
            raise UnsupportedProvider(context=f"identity provider '{provider.value}' is not configured")
        return provider, client

    async def initiate(self, generation: Generation, provider_name: str) -> FlowRedirect:
        """
        Start a login.

        Returns:
            FlowRedirect to the provider authorize URL with the flow session cookie

        Raises:
            UnsupportedProvider: unknown or unconfigured provider
            WriteSessionError: flow session could not be stored
        """
        provider, client = self._client(generation, provider_name)

        pkce = generate_pkce_pair()
        csrf_token = generate_csrf_token()
        cookie = await self.broker.create(generation.settings.options, pkce.verifier, csrf_token)

        logger.info(f"{LOG_PREFIX} Authentication kick-off: {provider.value}")
        return FlowRedirect(location=client.authorize_url(csrf_token, pkce.challenge), set_cookies=[cookie])

    async def callback(
        self,
        generation: Generation,
        provider_name: str,
        code: Optional[str],
        state: Optional[str],
        cookie: Optional[str],
        error: Optional[str] = None,
    ) -> FlowRedirect:
        """
        Finish a login started by `initiate`.

        Returns:
            FlowRedirect to the application carrying the registrar's cookies

        Raises:
            UnsupportedProvider, InvalidResponse, MissingParameter,
            MissingSession, MissingChallenge, CsrfMismatch,
            TokenCreation, Unauthorized, InternalError, JsonParsingError,
            RegistrarError, MissingCookie
        """
        provider, client = self._client(generation, provider_name)
        options = generation.settings.options

        if error:
            raise InvalidResponse("The provider did not authorize the request", context=f"{provider.value}: {error}")
        if not code or not state:
            raise MissingParameter("Both code and state are required")

        session = await self.broker.retrieve(cookie)
        if not tokens_match(state, session.csrf_token):
            raise CsrfMismatch(context=f"{provider.value} login callback state does not match the session")

        # One callback per flow session
        await self.broker.destroy(cookie)

        tokens = await self.exchanger.exchange_code(code, session.pkce_verifier, client, options=options)
        raw = await self.exchanger.fetch_resource(
            client.resource_url, tokens.access_token, provider=provider.value, options=options
        )
        identity = normalize_identity(provider, raw)

        cookies = await self.registrar.register_user(
            options.register_endpoint, identity.to_registration(), options=options
        )

        logger.info(f"{LOG_PREFIX} Login completed: {provider.value}")
        return FlowRedirect(
            location=options.app_endpoint,
            set_cookies=[*cookies, self.broker.expired_cookie(options)],
        )
