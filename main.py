"""
main.py
-------
FastAPI application factory and entry point.

Application lifecycle:
  1. App is created by create_application().
  2. lifespan builds the engine, session factory and blob store once and
     parks them on app.state; shutdown disposes them.
  3. Routers are registered with their URL prefixes.
  4. Exception handlers map domain errors to status codes and normalise
     unexpected errors.

Run with:
    uvicorn main:app --reload              # development
    uvicorn main:app --workers 4           # production (no --reload)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voicerelay.api.routes import auth, messages, playback
from voicerelay.core.config import Settings, settings
from voicerelay.core.exceptions import InvalidCredentials, StorageUnavailable, VoiceRelayError
from voicerelay.core.logging import configure_logging, get_logger
from voicerelay.db.session import build_engine, build_session_factory
from voicerelay.services.user_service import UserService
from voicerelay.storage.factory import build_blob_store

logger = get_logger(__name__)


def init_app_state(app: FastAPI, config: Settings) -> None:
    """Build the process-wide resources every request borrows."""
    engine = build_engine(
        config.DATABASE_URL,
        echo=config.DEBUG,
        command_timeout=config.DB_COMMAND_TIMEOUT_SECONDS,
    )
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.blob_store = build_blob_store(config)


async def close_app_state(app: FastAPI) -> None:
    await app.state.blob_store.close()
    await app.state.engine.dispose()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup / shutdown lifecycle hook.

    Startup:
      - Configure structured logging
      - Build engine + blob store
      - Seed configured moderator accounts

    Shutdown:
      - Dispose the async engine (graceful connection pool drain)
    """
    configure_logging()
    logger.info(
        "Starting up",
        app=settings.APP_NAME,
        env=settings.APP_ENV,
        storage=settings.STORAGE_BACKEND,
        debug=settings.DEBUG,
    )
    init_app_state(app, settings)
    if settings.BOOTSTRAP_MODERATORS:
        async with app.state.session_factory() as session:
            await UserService.bootstrap_moderators(session, settings.BOOTSTRAP_MODERATORS)
    yield
    logger.info("Shutting down — disposing DB engine")
    await close_app_state(app)


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Voice message relay: users record short messages, moderators "
            "reply with audio or text."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(messages.router)
    app.include_router(playback.router)

    # ── Exception Handlers ────────────────────────────────────────────────────

    @app.exception_handler(VoiceRelayError)
    async def domain_exception_handler(
        request: Request, exc: VoiceRelayError
    ) -> JSONResponse:
        log = logger.error if isinstance(exc, StorageUnavailable) else logger.info
        log(
            "Request rejected",
            path=request.url.path,
            method=request.method,
            error=type(exc).__name__,
            status_code=exc.status_code,
        )
        headers = (
            {"WWW-Authenticate": "Bearer"} if isinstance(exc, InvalidCredentials) else None
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # ── Health Check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], summary="Service health check")
    async def health() -> dict:
        return {"status": "ok", "app": settings.APP_NAME, "env": settings.APP_ENV}

    return app


app = create_application()
