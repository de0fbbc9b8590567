"""
Router principal de la API v1.
"""

from fastapi import APIRouter

from hoofbook.api.v1.session import router as session_router
from hoofbook.api.v1.sync import router as sync_router

api_v1_router = APIRouter()

api_v1_router.include_router(
    session_router,
    prefix="/session",
    tags=["Sesión"],
)

api_v1_router.include_router(
    sync_router,
    prefix="/sync",
    tags=["Sincronización"],
)
