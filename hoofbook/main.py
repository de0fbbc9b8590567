"""
Punto de entrada de la API local de control del motor de sync.
Arma el SyncContext en el lifespan, registra el sync periódico y
monta los routers.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from hoofbook.api.v1.router import api_v1_router
from hoofbook.config import get_settings
from hoofbook.context import build_sync_context
from hoofbook.core.exceptions import NetworkUnavailable, NotAuthenticated
from hoofbook.database import init_db

settings = get_settings()

logger = logging.getLogger(__name__)


# ── Lifecycle ────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Eventos de inicio y cierre de la aplicación."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info(f"{settings.APP_NAME} iniciando en modo {settings.APP_ENV}")

    ctx = getattr(app.state, "sync_context", None)
    if ctx is None:
        ctx = build_sync_context(settings)
        app.state.sync_context = ctx
    await init_db(ctx.engine)

    if ctx.session.get_user_id():
        ctx.scheduler.schedule_periodic_sync()
        await ctx.queue.refresh_pending_count()

    yield

    logger.info(f"{settings.APP_NAME} cerrando...")
    await ctx.aclose()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="API local del motor de sincronización offline-first",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Exception Handlers ───────────────────────────
    @app.exception_handler(NotAuthenticated)
    async def not_authenticated_handler(request: Request, exc: NotAuthenticated):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": str(exc)},
        )

    @app.exception_handler(NetworkUnavailable)
    async def network_unavailable_handler(request: Request, exc: NetworkUnavailable):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Captura excepciones no manejadas para evitar exponer detalles internos."""
        logger.exception(f"Error no manejado en {request.url.path}")
        if settings.DEBUG:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"detail": str(exc), "type": type(exc).__name__},
            )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Error interno del servidor"},
        )

    # ── Routers ──────────────────────────────────────
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    # ── Health Check ─────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Endpoint de health check para monitoreo."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": "0.1.0",
            "environment": settings.APP_ENV,
        }

    return app


app = create_app()


def run() -> None:
    """Levanta la API local con uvicorn (script `hoofbook-api`)."""
    uvicorn.run(
        "hoofbook.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
