import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401 - registers tables on Base
from .config import Settings, load_settings
from .database import Base, create_db_engine, create_session_factory
from .domain.availability.router import router as availability_router
from .domain.events.router import router as events_router
from .domain.swaps.router import router as swaps_router
from .errors import SlotSwapError
from .routes.auth import router as auth_router
from .routes.notifications import router as notifications_router
from .services.notification_service import (
    ConnectionRegistry,
    NotificationDispatcher,
    Notifier,
    WebSocketNotifier,
)
from .shared.timeutils import Clock, utcnow

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Reduce verbosity of third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """
    Build the application with its dependencies wired explicitly.

    Run with: uvicorn slotswap.main:create_app --factory
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    engine = create_db_engine(settings)
    registry = ConnectionRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting up...")
        if settings.create_tables:
            try:
                Base.metadata.create_all(bind=engine, checkfirst=True)
                logger.info("Database tables created successfully")
            except Exception as e:
                # Ignore "already exists" errors from race conditions between workers
                error_msg = str(e)
                if "already exists" in error_msg or "duplicate key" in error_msg:
                    logger.info("Database tables already exist (created by another worker)")
                else:
                    logger.error(f"Failed to create database tables: {e}")
                    raise
        yield
        engine.dispose()
        logger.info("Application shutting down...")

    app = FastAPI(title="SlotSwap API", version="1.0.0", lifespan=lifespan)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.clock = clock or utcnow
    app.state.connection_registry = registry
    app.state.dispatcher = NotificationDispatcher(notifier or WebSocketNotifier(registry))

    @app.exception_handler(SlotSwapError)
    async def domain_exception_handler(request: Request, exc: SlotSwapError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} - Error: {exc.message}")
        else:
            logger.info(
                f"{request.method} {request.url.path} - "
                f"{type(exc).__name__} ({exc.status_code}): {exc.message}"
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """
        Convert 422 validation errors from the Authorization header to 401
        authentication errors
        """
        for error in exc.errors():
            if error.get("loc") and "authorization" in str(error.get("loc")).lower():
                logger.warning(
                    f"Authentication failed for {request.url.path}: "
                    "Missing or invalid Authorization header"
                )
                return JSONResponse(
                    status_code=401,
                    content={
                        "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                    },
                )

        logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})

    logger.info(f"CORS allowed origins: {settings.allowed_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(events_router)
    app.include_router(availability_router)
    app.include_router(swaps_router)
    app.include_router(notifications_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
