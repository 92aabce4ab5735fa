"""FastAPI application initialization."""

from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import APIRouter, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from gatehouse import __version__
from gatehouse.api.activity import router as activity_router
from gatehouse.api.auth import router as auth_router
from gatehouse.api.errors import (
    gatehouse_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from gatehouse.api.middleware import CorrelationIdMiddleware
from gatehouse.api.password_reset import router as password_reset_router
from gatehouse.api.routes import router
from gatehouse.api.sessions import router as sessions_router
from gatehouse.api.setup import router as setup_router
from gatehouse.api.tokens import router as tokens_router
from gatehouse.api.users import router as users_router
from gatehouse.api.ws import router as ws_router
from gatehouse.config import get_settings
from gatehouse.database import close_database, init_database, run_migrations
from gatehouse.errors import GatehouseError
from gatehouse.services.logging_service import configure_logging
from gatehouse.services.presence_bus import PresenceBus

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app.state.presence_bus = PresenceBus(settings.presence_buffer_size)

    try:
        await init_database()
        await run_migrations()
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - every data endpoint will fail until it is reachable",
        )

    logger.info("application_started", log_level=settings.log_level)

    yield

    await close_database()
    logger.info("application_shutdown")


app = FastAPI(
    title="Gatehouse",
    description="Authentication, sessions, audit trail and realtime presence",
    version=__version__,
    lifespan=lifespan,
)

app.add_exception_handler(GatehouseError, gatehouse_error_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS middleware for browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

rest_router = APIRouter(prefix="/api/rest")
rest_router.include_router(auth_router)
rest_router.include_router(password_reset_router)
rest_router.include_router(users_router)
rest_router.include_router(sessions_router)
rest_router.include_router(tokens_router)
rest_router.include_router(activity_router)
rest_router.include_router(setup_router)

app.include_router(rest_router)
app.include_router(ws_router, prefix="/api/ws")
app.include_router(router)
