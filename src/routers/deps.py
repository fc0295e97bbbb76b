"""Shared dependencies for routers."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.clients.cache_invalidation import get_cache_invalidation_service
from src.clients.database import get_database
from src.clients.dedup import get_dedup_service
from src.dedup.service import DedupService
from src.services.cache_invalidation_service import CacheInvalidationService
from src.store.database import Database

# Typed dependency aliases for use in endpoint signatures
DatabaseDep = Annotated[Database, Depends(get_database)]
DedupServiceDep = Annotated[DedupService, Depends(get_dedup_service)]
CacheInvalidationServiceDep = Annotated[
    CacheInvalidationService, Depends(get_cache_invalidation_service)
]


async def get_tenant_id(
    x_tenant_id: Annotated[str | None, Header()] = None,
) -> str:
    """
    Tenant of the request.

    Tenant resolution happens upstream; the header is trusted as given.
    """
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    return tenant_id


async def get_actor(
    x_actor: Annotated[str | None, Header()] = None,
) -> str | None:
    """Operator recorded on ignore and merge audit entries, if provided."""
    actor = (x_actor or "").strip()
    return actor or None


TenantIdDep = Annotated[str, Depends(get_tenant_id)]
ActorDep = Annotated[str | None, Depends(get_actor)]
