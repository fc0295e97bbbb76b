"""Dependency provider for the dedup service."""

from functools import lru_cache

from src.clients.cache_invalidation import get_cache_invalidation_service
from src.clients.database import get_database
from src.dedup.service import DedupService


@lru_cache(maxsize=1)
def get_dedup_service() -> DedupService:
    """Get singleton DedupService instance."""
    return DedupService(
        get_database(),
        cache_invalidation=get_cache_invalidation_service(),
    )
