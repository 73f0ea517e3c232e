"""Diary sync backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .config import get_settings
from .database import build_store, get_store
from .errors import SyncError
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import diaries_router
from .sync import RecordLocks, RecordStore

logger = get_logger("diarysync.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    if app.state.store is None:
        app.state.store = build_store(settings)
    logger.info(f"Starting diary sync backend (debug={settings.debug}, store={type(app.state.store).__name__})")
    yield
    # Shutdown
    logger.info("Shutting down diary sync backend")


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    """Render a SyncError as the ``{error, isSuccess: false}`` envelope."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies in the same envelope as sync errors."""
    fields = sorted({".".join(str(p) for p in err["loc"][1:]) or "body" for err in exc.errors()})
    message = f"Missing or invalid fields: {', '.join(fields)}"
    logger.info(f"Rejected request to {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"error": message, "isSuccess": False})


def create_app(store: RecordStore | None = None) -> FastAPI:
    """Build the API application.

    Args:
        store: Record store to serve from. When omitted, one is built from
            settings at startup (or on first request).
    """
    settings = get_settings()
    app = FastAPI(
        title="Diary Sync API",
        description="Version-tracked diary synchronization across devices",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.record_locks = RecordLocks(timeout=settings.store_timeout_seconds)

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Error envelopes
    app.add_exception_handler(SyncError, sync_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(diaries_router)

    @app.get("/")
    async def root():
        """Service banner."""
        return {
            "service": "diarysync",
            "version": __version__,
            "status": "ok",
        }

    @app.get("/health")
    async def health(request: Request):
        """Health check with an actual store round-trip."""
        store_status = "disconnected"
        try:
            store = get_store(request, settings)
            await store.ping()
            store_status = "connected"
        except Exception as e:
            logger.warning(f"Health check store probe failed: {e}")
            store_status = f"error: {str(e)[:50]}"

        overall_status = "healthy" if store_status == "connected" else "degraded"
        return {
            "status": overall_status,
            "store": store_status,
        }

    return app


app = create_app()
