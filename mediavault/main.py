# mediavault/main.py
from __future__ import annotations

"""
# MediaVault API — Application Entrypoint (FastAPI)

ASGI application factory for the media upload & management backend.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) with explicit lifespan.
- Middleware order: 1) request id → 2) strip `Server` header.
- Centralized exception handling; every error leaves in one JSON shape.

## Probes
- `/healthz`: liveness (process up).
- `/readyz`: readiness (object store reachable via `ObjectStore.ping()`).
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse, Response

from mediavault.api.dependencies import get_store
from mediavault.api.v1.routers import router as api_v1_router
from mediavault.core.config import settings
from mediavault.core.exception_handlers import (
    app_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from mediavault.core.exceptions import AppException
from mediavault.core.logger import configure_logging
from mediavault.core.storage import ObjectStore
from mediavault.middleware.request_id import RequestIDMiddleware

logger = logging.getLogger("mediavault")


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan
# ─────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("✅ MediaVault API starting up (env=%s, prefix=%s)", settings.ENV, settings.S3_KEY_PREFIX)
    if not settings.S3_BUCKET_NAME:
        logger.warning("S3_BUCKET_NAME is not set; storage routes will answer 503")
    try:
        yield
    finally:
        logger.info("🛑 MediaVault API shutting down")


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app() -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Returns:
        FastAPI: application with middleware, exception handlers, the v1
        router and health/readiness endpoints.
    """
    configure_logging()
    enable_docs = settings.ENABLE_DOCS
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        docs_url="/docs" if enable_docs else None,
        redoc_url="/redoc" if enable_docs else None,
        openapi_url="/openapi.json" if enable_docs else None,
        lifespan=lifespan,
    )

    # ── Middlewares ─────────────────────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)

    @app.middleware("http")
    async def _strip_server_header(request: Request, call_next: Callable) -> Response:
        """Remove the `Server` header to avoid leaking implementation details."""
        response: Response = await call_next(request)
        if "server" in response.headers:
            del response.headers["server"]
        return response

    # ── Exception handlers ──────────────────────────────────────────────────
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]

    # ── Routers ─────────────────────────────────────────────────────────────
    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    # ── Meta endpoints ──────────────────────────────────────────────────────
    @app.get("/healthz", tags=["meta"])
    async def healthz() -> dict[str, bool]:
        """Liveness probe. No external checks."""
        return {"ok": True}

    @app.get("/readyz", tags=["meta"])
    async def readyz(store: ObjectStore = Depends(get_store)) -> JSONResponse:
        """Readiness probe: the bucket must answer a HEAD."""
        store_ok = await asyncio.to_thread(store.ping)
        return JSONResponse(
            {"ready": store_ok, "checks": {"store": store_ok}},
            status_code=200 if store_ok else 503,
        )

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()
__all__ = ["create_app", "app"]


# Local dev runner (prefer: `uvicorn mediavault.main:app --reload`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("mediavault.main:app", host="0.0.0.0", port=8000, reload=not settings.is_production)
