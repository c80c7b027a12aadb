"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from oos_engine import __version__
from oos_engine.api.v1.router import api_router
from oos_engine.core.config import settings
from oos_engine.core.errors import (
    AmbiguousRuleVersionError,
    FindingNotFoundError,
    InspectionNotFoundError,
    InvalidTransitionError,
    NoActiveRuleVersionError,
    OOSEngineError,
    RuleDefinitionError,
    RuleNotFoundError,
    RuleVersionNotFoundError,
    SourceInUseError,
    SourceNotFoundError,
    StaleVersionError,
)
from oos_engine.core.logging import setup_logging
from oos_engine.db.init_db import create_tables, init_db
from oos_engine.db.session import AsyncSessionLocal

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

# HTTP status for each engine error; the first matching class wins
ERROR_STATUS: list[tuple[type[OOSEngineError], int]] = [
    (RuleDefinitionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StaleVersionError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (SourceInUseError, status.HTTP_409_CONFLICT),
    (NoActiveRuleVersionError, status.HTTP_409_CONFLICT),
    (AmbiguousRuleVersionError, status.HTTP_409_CONFLICT),
    (RuleVersionNotFoundError, status.HTTP_404_NOT_FOUND),
    (RuleNotFoundError, status.HTTP_404_NOT_FOUND),
    (InspectionNotFoundError, status.HTTP_404_NOT_FOUND),
    (FindingNotFoundError, status.HTTP_404_NOT_FOUND),
    (SourceNotFoundError, status.HTTP_404_NOT_FOUND),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info(f"Starting OOS Rule Engine API (env={settings.env})")

    if settings.init_db_on_startup and not settings.is_prod:
        logger.info("Initializing database...")
        await create_tables()
        async with AsyncSessionLocal() as session:
            await init_db(session)

    yield

    # Shutdown
    logger.info("Shutting down OOS Rule Engine API")


# Create FastAPI application
app = FastAPI(
    title="OOS Rule Engine API",
    description="Versioned Out-of-Service compliance rules for fleet inspections",
    version=__version__,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    openapi_url="/openapi.json" if settings.is_dev else None,
    lifespan=lifespan,
)


@app.exception_handler(OOSEngineError)
async def engine_error_handler(request: Request, exc: OOSEngineError) -> JSONResponse:
    """Translate engine errors to HTTP responses."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_class, code in ERROR_STATUS:
        if isinstance(exc, error_class):
            status_code = code
            break

    content: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, RuleDefinitionError):
        content["errors"] = exc.errors

    if status_code == status.HTTP_409_CONFLICT:
        logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc}")

    return JSONResponse(status_code=status_code, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    # Don't expose internal errors in production
    if settings.is_prod:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc)},
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Root endpoint redirect to docs."""
    return {
        "service": "OOS Rule Engine API",
        "version": __version__,
        "docs": "/docs" if settings.is_dev else "Disabled outside development",
    }
