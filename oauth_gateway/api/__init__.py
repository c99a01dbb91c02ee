"""
Route aggregation

- /auth/..., /api/logout  identity login
- /drive/...              drive authorization and listing
- /livez, /reload         system
"""
from fastapi import APIRouter

from .auth import router as auth_router
from .drive import router as drive_router
from .system import router as system_router

api_router = APIRouter()
api_router.include_router(system_router)
api_router.include_router(auth_router)
api_router.include_router(drive_router)

__all__ = ["api_router"]
