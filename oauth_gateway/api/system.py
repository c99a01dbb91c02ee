"""
Liveness and configuration reload
"""

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from oauth_gateway.common.dependencies import ConfigHandleDep, CurrentGeneration

router = APIRouter(tags=["System"])


class ReloadResponse(BaseModel):
    version: int
    identity_providers: list[str]
    drive_providers: list[str]


@router.get("/livez", response_class=PlainTextResponse)
async def livez() -> str:
    return "ok"


@router.post("/reload", response_model=ReloadResponse)
async def reload_config(handle: ConfigHandleDep, generation: CurrentGeneration) -> ReloadResponse:
    """Load the configuration again and swap it in; a failed load keeps the current one."""
    if not generation.settings.options.allow_reload:
        raise HTTPException(status_code=404)

    new_generation = await run_in_threadpool(handle.reload)
    return ReloadResponse(
        version=new_generation.version,
        identity_providers=[p.value for p in new_generation.registry.identity_providers()],
        drive_providers=[p.value for p in new_generation.registry.drive_providers()],
    )
