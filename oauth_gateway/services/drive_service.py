"""
Drive authorization flow and file listing

    initiate: project id + PKCE pair + CSRF token -> flow session -> 302 to the provider
    callback: state "<project_id>.<csrf>" -> flow session -> CSRF/project check
              -> code exchange -> DriveToken -> registrar -> 302 to the files page
    list_files: bearer fetch of the provider listing -> FileListing
"""

from typing import Optional, Tuple

from loguru import logger

from oauth_gateway.common.exceptions import (
    CsrfMismatch,
    InvalidResponse,
    MissingParameter,
    UnsupportedProvider,
)
from oauth_gateway.core.oauth.normalizers import normalize_files
from oauth_gateway.core.oauth.normalizers.files import DEFAULT_PATH
from oauth_gateway.core.oauth.providers import DriveProvider
from oauth_gateway.core.oauth.registry import ClientEntry, Generation
from oauth_gateway.core.security import DriveState, generate_csrf_token, generate_pkce_pair, tokens_match
from oauth_gateway.schemas.drive import DriveToken
from oauth_gateway.schemas.files import FileListing
from oauth_gateway.schemas.project import ProjectId
from oauth_gateway.schemas.session import FlowRedirect
from oauth_gateway.services.exchange_service import TokenExchanger
from oauth_gateway.services.registrar_service import RegistrarClient
from oauth_gateway.services.session_service import SessionBroker

LOG_PREFIX = "[DriveFlow]"


def files_location(filesystem_endpoint: str, provider: DriveProvider, project_id: ProjectId) -> str:
    return f"{filesystem_endpoint.rstrip('/')}/{provider.value}/{project_id}/files"


class DriveFlow:
    """Authorization code + PKCE flow against a drive provider, scoped to a project."""

    def __init__(self, broker: SessionBroker, exchanger: TokenExchanger, registrar: RegistrarClient):
        self.broker = broker
        self.exchanger = exchanger
        self.registrar = registrar

    @staticmethod
    def _client(generation: Generation, provider_name: str) -> Tuple[DriveProvider, ClientEntry]:
        provider = DriveProvider.parse(provider_name)
        client: Optional[ClientEntry] = generation.registry.lookup_drive(provider)
        if client is None:
            raise UnsupportedProvider(context=f"drive provider '{provider.value}' is not configured")
        return provider, client

    async def initiate(self, generation: Generation, provider_name: str, project_id: str) -> FlowRedirect:
        """
        Start a drive authorization for a project.

        Raises:
            UnsupportedProvider: unknown or unconfigured provider
            ProjectIdError: project id is not a UUID
            WriteSessionError: flow session could not be stored
        """
        provider, client = self._client(generation, provider_name)
        project = ProjectId.parse(project_id)

        pkce = generate_pkce_pair()
        csrf_token = generate_csrf_token()
        cookie = await self.broker.create(
            generation.settings.options, pkce.verifier, csrf_token, project_id=str(project)
        )

        state = DriveState(project_id=project, csrf_token=csrf_token).format()
        logger.info(f"{LOG_PREFIX} Drive authorization kick-off: {provider.value} project={project}")
        return FlowRedirect(location=client.authorize_url(state, pkce.challenge), set_cookies=[cookie])

    async def callback(
        self,
        generation: Generation,
        provider_name: str,
        code: Optional[str],
        state: Optional[str],
        cookie: Optional[str],
        account_session: Optional[str],
        error: Optional[str] = None,
    ) -> FlowRedirect:
        """
        Finish a drive authorization and hand the token to the registrar.

        Raises:
            UnsupportedProvider, InvalidResponse, ProjectIdError, MissingParameter,
            MissingSession, MissingChallenge, CsrfMismatch, TokenCreation,
            RegistrarError, DriveTokenError
        """
        provider, client = self._client(generation, provider_name)
        options = generation.settings.options

        if error:
            raise InvalidResponse("The provider did not authorize the request", context=f"{provider.value}: {error}")

        drive_state = DriveState.parse(state)
        if not code:
            raise MissingParameter("The code parameter is required")

        session = await self.broker.retrieve(cookie)
        if not tokens_match(drive_state.csrf_token, session.csrf_token):
            raise CsrfMismatch(context=f"{provider.value} drive callback state does not match the session")
        if session.project_id != str(drive_state.project_id):
            raise CsrfMismatch(context=f"{provider.value} drive callback project differs from the session")

        await self.broker.destroy(cookie)

        tokens = await self.exchanger.exchange_code(code, session.pkce_verifier, client, options=options)
        drive_token = DriveToken(
            project_id=drive_state.project_id.value,
            drive_provider=provider,
            access_token=tokens.access_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            refresh_token=tokens.refresh_token,
            # An omitted scope means the requested scopes were granted (RFC 6749 §5.1)
            scopes=tokens.scopes or list(client.scopes) or None,
            token_endpoint=client.token_url,
        )
        await self.registrar.register_drive_token(
            options.drive_token_endpoint,
            drive_token,
            options.account_cookie_name,
            account_session,
            options=options,
        )

        logger.info(f"{LOG_PREFIX} Drive authorization completed: {provider.value} project={drive_state.project_id}")
        return FlowRedirect(
            location=files_location(options.filesystem_endpoint, provider, drive_state.project_id),
            set_cookies=[self.broker.expired_cookie(options)],
        )

    async def list_files(
        self,
        generation: Generation,
        provider_name: str,
        project_id: str,
        access_token: Optional[str],
    ) -> FileListing:
        """
        List the root folder of a drive.

        Raises:
            UnsupportedProvider, ProjectIdError, MissingParameter,
            Unauthorized (re-authorize), InternalError, InvalidResponse, JsonParsingError
        """
        provider, client = self._client(generation, provider_name)
        ProjectId.parse(project_id)
        if not access_token:
            raise MissingParameter("The access_token parameter is required")

        request = client.files_request
        raw = await self.exchanger.fetch_resource(
            request.list_url,
            access_token,
            method=request.method,
            json_body=request.json_body(),
            provider=provider.value,
            options=generation.settings.options,
        )
        return normalize_files(provider, raw, path=DEFAULT_PATH)
