"""Dependency injection provider for the cache invalidation client."""

from src.services.cache_invalidation_service import CacheInvalidationService

_cache_invalidation_service: CacheInvalidationService | None = None


def get_cache_invalidation_service() -> CacheInvalidationService:
    """Get or create the CacheInvalidationService singleton."""
    global _cache_invalidation_service
    if _cache_invalidation_service is None:
        _cache_invalidation_service = CacheInvalidationService()
    return _cache_invalidation_service


async def close_cache_invalidation_service() -> None:
    """Close the HTTP client on shutdown."""
    global _cache_invalidation_service
    if _cache_invalidation_service is not None:
        await _cache_invalidation_service.close()
        _cache_invalidation_service = None
