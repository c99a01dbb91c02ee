"""
Token & resource exchanger.

The two server-to-server calls every flow makes:
1. Exchange the authorization code (plus PKCE verifier) for tokens
2. Fetch a bearer-protected resource (identity profile, file listing)

No retries: a failure aborts the flow and the user restarts at kick-off.
"""

import base64
from typing import Any, Dict, Optional
from urllib.parse import quote_plus

import httpx
from loguru import logger
from pydantic import ValidationError

from oauth_gateway.common.exceptions import (
    InternalError,
    InvalidResponse,
    JsonParsingError,
    TokenCreation,
    Unauthorized,
)
from oauth_gateway.core.oauth.registry import ClientEntry
from oauth_gateway.core.settings import Settings
from oauth_gateway.schemas.drive import TokenResponse

LOG_PREFIX = "[TokenExchanger]"


def request_timeout(options: Optional[Settings]) -> Any:
    """Per-call timeout from the caller's generation; the client default without one."""
    if options is None:
        return httpx.USE_CLIENT_DEFAULT
    return options.http_timeout_seconds


def basic_credentials(client_id: str, client_secret: str) -> str:
    """HTTP Basic value for client_secret_basic: each part form-urlencoded first (RFC 6749 §2.3.1)."""
    pair = f"{quote_plus(client_id)}:{quote_plus(client_secret)}"
    return base64.b64encode(pair.encode("ascii")).decode("ascii")


class TokenExchanger:
    """Code-for-token exchange and bearer resource fetch over a shared httpx client."""

    def __init__(self, http_client: httpx.AsyncClient, user_agent: str = "OAuth Gateway"):
        self.http = http_client
        self.user_agent = user_agent

    async def exchange_code(
        self,
        code: str,
        pkce_verifier: str,
        client: ClientEntry,
        options: Optional[Settings] = None,
    ) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Auth code from the provider callback
            pkce_verifier: Verifier stored when the flow started
            client: Provider client entry
            options: Options of the caller's generation (timeout)

        Returns:
            TokenResponse

        Raises:
            TokenCreation: transport error, provider rejection or unusable body
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": client.redirect_uri,
            "code_verifier": pkce_verifier,
            "client_id": client.client_id.get_secret_value(),
        }
        headers: Dict[str, str] = {"Accept": "application/json", "User-Agent": self.user_agent}

        if client.token_endpoint_auth_method == "client_secret_post":
            data["client_secret"] = client.client_secret.get_secret_value()
        else:
            credentials = basic_credentials(
                client.client_id.get_secret_value(), client.client_secret.get_secret_value()
            )
            headers["Authorization"] = f"Basic {credentials}"

        try:
            response = await self.http.post(
                client.token_url, data=data, headers=headers, timeout=request_timeout(options)
            )
        except httpx.HTTPError as e:
            raise TokenCreation(context=f"{client.provider} token endpoint unreachable: {type(e).__name__}") from e

        if not response.is_success:
            raise TokenCreation(
                context=f"{client.provider} token exchange failed: {response.status_code} {_error_code(response)}"
            )

        try:
            body = response.json()
        except ValueError:
            raise TokenCreation(context=f"{client.provider} token response is not JSON") from None

        # GitHub reports failures with 200 and an error field
        if not isinstance(body, dict) or body.get("error"):
            raise TokenCreation(context=f"{client.provider} token exchange rejected: {_error_code(response)}")

        try:
            tokens = TokenResponse.model_validate(body)
        except ValidationError:
            raise TokenCreation(context=f"{client.provider} token response has no access_token") from None

        logger.info(f"{LOG_PREFIX} Token exchange successful for {client.provider}")
        return tokens

    async def fetch_resource(
        self,
        url: str,
        access_token: str,
        method: str = "GET",
        json_body: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        provider: str = "provider",
        options: Optional[Settings] = None,
    ) -> Any:
        """
        Bearer-authenticated JSON request.

        Raises:
            Unauthorized: 401, the caller has to authorize again
            InternalError: any other non-2xx status
            InvalidResponse: transport failure
            JsonParsingError: body is not JSON
        """
        request_headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            **(headers or {}),
        }

        try:
            response = await self.http.request(
                method.upper(), url, headers=request_headers, json=json_body, timeout=request_timeout(options)
            )
        except httpx.HTTPError as e:
            raise InvalidResponse(context=f"{provider} resource unreachable: {type(e).__name__}") from e

        if response.status_code == 401:
            raise Unauthorized(context=f"{provider} rejected the access token")
        if not response.is_success:
            raise InternalError(context=f"{provider} resource fetch failed: {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            raise JsonParsingError(context=f"{provider} returned a non-JSON body") from None

        logger.debug(f"{LOG_PREFIX} Resource fetched from {provider}")
        return payload


def _error_code(response: httpx.Response) -> str:
    """Provider `error` code for logs; descriptions and bodies are not logged."""
    try:
        body = response.json()
    except ValueError:
        return "-"
    if isinstance(body, dict):
        return str(body.get("error", "-"))
    return "-"
