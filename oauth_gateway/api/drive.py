"""
Drive authorization API endpoints.

- GET /drive/authorized/{provider} - provider callback
- GET /drive/{provider}/{project_id} - start a drive authorization for a project
- GET /drive/{provider}/{project_id}/filesystem - list the drive root
"""

from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import RedirectResponse

from oauth_gateway.api.auth import redirect_response
from oauth_gateway.common.dependencies import CurrentGeneration, DriveFlowDep
from oauth_gateway.schemas.files import FileListing

router = APIRouter(prefix="/drive", tags=["Drive"])


# Declared before /{provider}/{project_id}, which would otherwise match it
@router.get("/authorized/{provider}")
async def drive_authorized(
    provider: str,
    request: Request,
    generation: CurrentGeneration,
    flow: DriveFlowDep,
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="<project_id>.<csrf> issued at kick-off"),
    error: Optional[str] = Query(None, description="Provider error code"),
) -> RedirectResponse:
    """Complete the drive authorization and register the token for the project."""
    options = generation.settings.options
    result = await flow.callback(
        generation,
        provider,
        code=code,
        state=state,
        cookie=request.cookies.get(options.session_cookie_name),
        account_session=request.cookies.get(options.account_cookie_name),
        error=error,
    )
    return redirect_response(result)


@router.get("/{provider}/{project_id}")
async def authorize_drive(
    provider: str,
    project_id: str,
    generation: CurrentGeneration,
    flow: DriveFlowDep,
) -> RedirectResponse:
    """Redirect the user agent to the drive provider's authorize page."""
    return redirect_response(await flow.initiate(generation, provider, project_id))


@router.get("/{provider}/{project_id}/filesystem", response_model=FileListing)
async def filesystem(
    provider: str,
    project_id: str,
    generation: CurrentGeneration,
    flow: DriveFlowDep,
    access_token: Optional[str] = Query(None, description="Drive access token"),
) -> FileListing:
    """List files at the drive root. 401 means the caller has to authorize again."""
    return await flow.list_files(generation, provider, project_id, access_token)
