"""
DocuFlow Submission Workflow Service - Main FastAPI Application

This is the entry point for the FastAPI application.
It configures middleware, routes, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .scheduler.outbox_dispatcher import start_dispatcher, stop_dispatcher
from .services.submission_service import get_submission_service
from .utils.logger import setup_logging, get_logger

APP_VERSION = "1.0.0"

# Setup logging first
setup_logging()
logger = get_logger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Creates MongoDB indexes (mongo backend)
        - Starts the notification outbox dispatcher

    Shutdown:
        - Stops the dispatcher
        - Closes database connections
    """
    logger.info("Starting DocuFlow submission workflow service...")

    if not settings.uses_memory_storage:
        try:
            create_indexes()
        except PyMongoError as e:
            logger.error(f"Failed to create indexes: {e}")

    if settings.scheduler_enabled:
        start_dispatcher(get_submission_service().notification_service)

    logger.info("Application started successfully")

    yield

    logger.info("Shutting down...")
    stop_dispatcher()
    if not settings.uses_memory_storage:
        close_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    application = FastAPI(
        title="DocuFlow Submission Workflow Service",
        description="Form submission verification and approval workflow",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )

    _configure_middleware(application)
    register_error_handlers(application)
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI) -> None:
    """Configure application middleware."""
    # allow_credentials must be False when allowing all origins
    allow_all = settings.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )

    app.add_middleware(CorrelationIdMiddleware)


def _configure_routes(app: FastAPI) -> None:
    """Configure application routes."""
    app.include_router(api_router, prefix="/api/v1")

    # Health check endpoint (no auth required)
    @app.get("/health", tags=["Health"])
    async def health():
        """
        Health check endpoint.

        Reports storage connectivity; the memory backend is always healthy.
        """
        if settings.uses_memory_storage:
            storage = {"status": "healthy", "backend": "memory"}
        else:
            storage = {"backend": "mongo", **health_check()}
        return {
            "status": "healthy" if storage.get("status") == "healthy" else "degraded",
            "version": APP_VERSION,
            "environment": settings.environment,
            "storage": storage
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()
