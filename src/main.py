"""Namayose - Patient Identity Resolution & Merge Service."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.clients.cache_invalidation import close_cache_invalidation_service
from src.clients.database import close_database, get_database
from src.clients.dedup import get_dedup_service
from src.core.logging import configure_logging
from src.exceptions import (
    ConflictError,
    InvalidInputError,
    NamayoseError,
    NotFoundError,
    PartialFailureError,
    StoreUnavailableError,
)
from src.routers import dedup_routes, health
from src.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan management."""
    # Startup
    configure_logging(settings.log_level)
    if settings.database_create_tables:
        await get_database().create_all()
    yield
    # Shutdown
    get_dedup_service.cache_clear()
    await close_cache_invalidation_service()
    await close_database()


app = FastAPI(
    title="Namayose",
    description="Patient identity resolution - detect duplicate patient records and merge them",
    version="0.1.0",
    lifespan=lifespan,
)

_STATUS_BY_ERROR: dict[type[NamayoseError], int] = {
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    PartialFailureError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(NamayoseError)
async def handle_namayose_error(request: Request, exc: NamayoseError) -> JSONResponse:
    """Map domain errors to status codes with an ``{ok: false}`` body."""
    content: dict[str, object] = {
        "ok": False,
        "error": exc.code,
        "message": str(exc),
        "retry": exc.retryable,
    }
    if isinstance(exc, PartialFailureError):
        content.update(exc.to_dict())
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(ValidationError)
async def handle_validation_error(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """Handle Pydantic ValidationError and return 422."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()},
    )


@app.exception_handler(Exception)
async def handle_unhandled_exceptions(request: Request, exc: Exception) -> JSONResponse:
    """Catch and log all unhandled exceptions."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# Register routers
app.include_router(health.router)
app.include_router(dedup_routes.router)


@app.get("/")
def root() -> dict[str, str]:
    """Root endpoint."""
    return {"service": "namayose", "version": "0.1.0"}
