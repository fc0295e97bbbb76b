"""
Cache invalidation client.

After a merge completes, derived views keyed by either patient id (dashboard
aggregates, segment counts) are stale. The surrounding system exposes an
invalidation endpoint; this client notifies it once per affected id. Delivery
is fire-and-forget: failures are logged and never reach the merge caller.
"""

import logging

import httpx

from src.settings import settings

logger = logging.getLogger(__name__)


class CacheInvalidationService:
    """HTTP client for the cache invalidation collaborator."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        url = base_url if base_url is not None else settings.cache_invalidation_url
        self.base_url = url.rstrip("/") if url else None
        self.timeout = timeout or settings.cache_invalidation_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return self.base_url is not None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url or "",
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def invalidate_patient(self, tenant_id: str, patient_id: str) -> bool:
        """
        Ask the collaborator to drop cached views for one patient.

        Returns:
            True if the notification was accepted, False otherwise
        """
        if not self.enabled:
            logger.debug(
                "Cache invalidation disabled; skipping %s (tenant=%s)",
                patient_id,
                tenant_id,
            )
            return False

        client = await self._get_client()
        try:
            response = await client.post(
                "/invalidate",
                json={"tenant_id": tenant_id, "patient_id": patient_id},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "Cache invalidation failed for %s (tenant=%s): %s",
                patient_id,
                tenant_id,
                e,
            )
            return False
        return True

    async def invalidate_patients(self, tenant_id: str, patient_ids: list[str]) -> int:
        """Notify once per id. Returns the number of accepted notifications."""
        accepted = 0
        for patient_id in patient_ids:
            if await self.invalidate_patient(tenant_id, patient_id):
                accepted += 1
        return accepted
