"""
FastAPI application factory.

Assembles the app, wires services onto `app.state`, registers routers
and the AuthError handler.  Database schema is managed by Alembic —
NOT create_all.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from authgate.controllers.admin_controller import router as admin_router
from authgate.controllers.auth_controller import router as auth_router
from authgate.core.config import Settings, settings as default_settings
from authgate.core.errors import AuthError, Unauthenticated
from authgate.services.registry import build_services
from authgate.stores import Storage
from authgate.stores.records import utcnow

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.error_code},
            headers=headers,
        )


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = build_services(settings, storage, clock=clock)

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(admin_router)
    register_exception_handlers(app)

    # ── Shutdown ─────────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await app.state.services.storage.close()
        logger.info("Storage closed.")

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app
