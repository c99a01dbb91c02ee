"""
Identity login API endpoints.

- GET /auth/{provider} - start the login at a provider
- GET /auth/authorized/{provider} - provider callback
- GET /api/logout - drop the flow session
"""

from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import RedirectResponse
from loguru import logger

from oauth_gateway.common.dependencies import CurrentGeneration, LoginFlowDep, SessionBrokerDep
from oauth_gateway.common.exceptions import AuthError
from oauth_gateway.schemas.session import FlowRedirect

LOG_PREFIX = "[AuthAPI]"
router = APIRouter(tags=["Auth"])


def redirect_response(flow_redirect: FlowRedirect) -> RedirectResponse:
    """302 to the flow's next location with every cookie it asks for."""
    response = RedirectResponse(url=flow_redirect.location, status_code=302)
    for cookie in flow_redirect.set_cookies:
        response.headers.append("set-cookie", cookie)
    return response


@router.get("/auth/{provider}")
async def authenticate(provider: str, generation: CurrentGeneration, flow: LoginFlowDep) -> RedirectResponse:
    """Redirect the user agent to the provider's authorize page."""
    return redirect_response(await flow.initiate(generation, provider))


@router.get("/auth/authorized/{provider}")
async def login_authorized(
    provider: str,
    request: Request,
    generation: CurrentGeneration,
    flow: LoginFlowDep,
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="CSRF state issued at kick-off"),
    error: Optional[str] = Query(None, description="Provider error code"),
) -> RedirectResponse:
    """Complete the login, register the user and forward the registrar's session cookie."""
    result = await flow.callback(
        generation,
        provider,
        code=code,
        state=state,
        cookie=request.cookies.get(generation.settings.options.session_cookie_name),
        error=error,
    )
    return redirect_response(result)


@router.get("/api/logout")
async def logout(request: Request, generation: CurrentGeneration, broker: SessionBrokerDep) -> RedirectResponse:
    """Best effort: the redirect succeeds even when the store cannot be reached."""
    options = generation.settings.options
    try:
        await broker.destroy(request.cookies.get(options.session_cookie_name))
    except AuthError as e:
        logger.warning(f"{LOG_PREFIX} Failed to destroy flow session: {e.context}")

    return redirect_response(FlowRedirect(location="/", set_cookies=[broker.expired_cookie(options)]))
