"""Health check endpoint."""

from fastapi import APIRouter

from src.routers.deps import CacheInvalidationServiceDep, DatabaseDep
from src.schemas.health import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    database: DatabaseDep,
    cache_invalidation: CacheInvalidationServiceDep,
) -> HealthResponse:
    """Check service health including record store connectivity."""
    database_healthy = await database.ping()

    return HealthResponse(
        status="healthy" if database_healthy else "degraded",
        database=database_healthy,
        cache_invalidation=cache_invalidation.enabled,
    )
