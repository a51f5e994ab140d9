"""Order Communications Backend - Main FastAPI Application

School merchandise order threads: customer email replies routed back to
their order, staff messages, unread notifications and reports.

This module creates and configures the main FastAPI application, including:
- Routers (inbound email webhook, admin communications, observability)
- Middleware (request ID correlation, CORS)
- Exception handlers
- Startup wiring of settings and attachment storage
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from config import Settings, get_settings
from database import build_engine, build_session_factory, init_db
from infrastructure.storage.storage_config import build_attachment_storage

# Observability
from observability.logging_config import configure_logging
from observability.middleware import RequestIDMiddleware
from observability.router import router as observability_router

# Domain Routers
from webhooks.router import router as webhooks_router
from communications.router import router as communications_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    - Startup: create tables on the application's engine, build the
      attachment storage adapter once and publish it on app.state for
      dependency injection
    - Shutdown: dispose of the engine's connection pool
    """
    settings: Settings = app.state.settings

    logger.info("Order communications API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    init_db(app.state.engine)
    if getattr(app.state, "attachment_storage", None) is None:
        app.state.attachment_storage = build_attachment_storage(settings)
    logger.info(f"Attachment storage backend: {settings.ATTACHMENT_STORAGE_BACKEND}")

    yield

    logger.info("Order communications API shutting down...")
    app.state.engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Application factory.

    Args:
        settings: Settings to run with; defaults to the cached environment settings

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    docs_enabled = settings.ENVIRONMENT != "production"
    app = FastAPI(
        title="Order Communications API",
        description="Inbound email threading and order communications for school merchandise orders",
        version="0.1.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = build_engine(settings.DATABASE_URL)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.attachment_storage = None

    # =========================================================================
    # MIDDLEWARE CONFIGURATION
    # =========================================================================

    # Request ID Middleware (must be first for proper correlation)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # =========================================================================
    # EXCEPTION HANDLERS
    # =========================================================================

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Return a structured error response with field-level details."""
        logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "validation_error",
                "message": "Request validation failed",
                "details": jsonable_errors(exc),
            },
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(
        request: Request,
        exc: SQLAlchemyError
    ) -> JSONResponse:
        """Handle database errors.

        Logs the full error but returns a generic message to prevent
        information leakage.
        """
        logger.error(
            f"Database error on {request.method} {request.url.path}",
            exc_info=exc
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "database_error",
                "message": "A database error occurred. Please try again later.",
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Catch all unhandled exceptions; details are logged, not exposed."""
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}",
            exc_info=exc
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )

    # =========================================================================
    # ROUTER REGISTRATION
    # =========================================================================

    # Observability (health, metrics, ready)
    app.include_router(observability_router)

    # Mail provider webhooks
    app.include_router(webhooks_router)

    # Admin communications API
    app.include_router(communications_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        """Root endpoint - API information."""
        return {
            "name": "Order Communications API",
            "version": "0.1.0",
            "status": "running",
            "docs": "/docs" if docs_enabled else None,
        }

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors with non-JSON values (e.g. exceptions in ctx) stringified."""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


app = create_app()


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=get_settings().ENVIRONMENT == "development",
        log_level=get_settings().LOG_LEVEL.lower(),
    )
