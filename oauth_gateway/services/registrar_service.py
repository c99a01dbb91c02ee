"""
Downstream registrar client - the system of record for users and drive tokens

Endpoints come from the caller's configuration generation, so a reload that
moves the registrar takes effect on the next request.
"""

from typing import List, Optional

import httpx
from loguru import logger

from oauth_gateway.common.exceptions import DriveTokenError, MissingCookie, MissingSession, RegistrarError
from oauth_gateway.core.settings import Settings
from oauth_gateway.schemas.drive import DriveToken
from oauth_gateway.schemas.identity import UserRegistration
from oauth_gateway.services.exchange_service import request_timeout

LOG_PREFIX = "[Registrar]"


class RegistrarClient:
    """Posts canonical models to the registrar; each call is attempted once."""

    def __init__(self, http_client: httpx.AsyncClient, user_agent: str = "OAuth Gateway"):
        self.http = http_client
        self.user_agent = user_agent

    def _headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }

    async def register_user(
        self,
        endpoint: str,
        registration: UserRegistration,
        options: Optional[Settings] = None,
    ) -> List[str]:
        """
        Register (or look up) the user behind a canonical identity.

        Returns:
            The registrar's Set-Cookie headers, to forward to the user agent

        Raises:
            RegistrarError: transport failure or non-2xx status
            MissingCookie: the registrar answered without a session cookie
        """
        try:
            response = await self.http.post(
                endpoint,
                json=registration.model_dump(mode="json", exclude_none=True),
                headers=self._headers(),
                timeout=request_timeout(options),
            )
        except httpx.HTTPError as e:
            raise RegistrarError(context=f"registrar unreachable: {type(e).__name__}") from e

        if not response.is_success:
            raise RegistrarError(context=f"registrar returned {response.status_code}")

        cookies = response.headers.get_list("set-cookie")
        if not cookies:
            raise MissingCookie(context="registrar response has no Set-Cookie")

        logger.info(f"{LOG_PREFIX} Registered {registration.auth_agent.value} user")
        return cookies

    async def register_drive_token(
        self,
        endpoint: str,
        token: DriveToken,
        cookie_name: str,
        account_session: Optional[str],
        options: Optional[Settings] = None,
    ) -> None:
        """
        Persist a drive token on behalf of the signed-in account.

        Raises:
            MissingSession: no account session to authenticate with
            RegistrarError: transport failure
            DriveTokenError: the registrar refused the token
        """
        if not account_session:
            raise MissingSession(context="drive token registration without an account session")

        headers = {**self._headers(), "Cookie": f"{cookie_name}={account_session}"}
        try:
            response = await self.http.post(
                endpoint, json=token.to_wire(), headers=headers, timeout=request_timeout(options)
            )
        except httpx.HTTPError as e:
            raise RegistrarError(context=f"registrar unreachable: {type(e).__name__}") from e

        if not response.is_success:
            raise DriveTokenError(context=f"registrar refused drive token: {response.status_code}")

        logger.info(f"{LOG_PREFIX} Stored {token.drive_provider.value} token for project {token.project_id}")
