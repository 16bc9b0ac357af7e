"""
🧭 MediaVault • API v1 Router Aggregator
=======================================

    from mediavault.api.v1.routers import router as api_v1_router
    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

Auth lives in the child routers (`get_current_user_id`).
"""

from fastapi import APIRouter

from .media import router as media_router
from .uploads import router as uploads_router


def build_v1_router() -> APIRouter:
    v1 = APIRouter()
    v1.include_router(uploads_router)
    v1.include_router(media_router)
    return v1


router = build_v1_router()

__all__ = ["router", "build_v1_router", "uploads_router", "media_router"]
