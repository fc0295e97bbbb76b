"""
Per-identity merge locks.

A merge holds one lock row per identity it touches, keyed by tenant and
patient id. Rows for both identities are inserted in a single transaction, so
acquisition is all-or-nothing and needs no ordering to avoid deadlock. Any
other merge that shares either identity (as keep or as remove) is refused
until the rows are deleted. Because the locks live in the record store, they
hold across service instances.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, insert
from sqlalchemy.exc import IntegrityError

from src.exceptions import ConflictError, StoreUnavailableError
from src.settings import settings
from src.store.database import Database, store_errors
from src.store.tables import merge_locks_table

logger = logging.getLogger(__name__)


class MergeLockManager:
    """Acquires and releases tenant-scoped identity locks."""

    def __init__(
        self,
        database: Database,
        timeout: float | None = None,
        poll_interval: float | None = None,
        ttl: float | None = None,
    ):
        self.database = database
        self.timeout = settings.merge_lock_timeout_seconds if timeout is None else timeout
        self.poll_interval = poll_interval or settings.merge_lock_poll_interval_seconds
        self.ttl = ttl or settings.merge_lock_ttl_seconds

    @asynccontextmanager
    async def hold(self, tenant_id: str, *patient_ids: str) -> AsyncIterator[str]:
        """
        Lock the given identities for the duration of the block.

        Yields the owner token. Released on every exit path. A failed release
        is logged and left to the TTL purge, so it never replaces the outcome
        of the block.

        Raises:
            ConflictError: If the locks cannot be acquired within the timeout
        """
        ids = sorted(set(patient_ids))
        owner = await self.acquire(tenant_id, ids)
        try:
            yield owner
        finally:
            try:
                await self.release(tenant_id, ids, owner)
            except StoreUnavailableError as e:
                logger.warning(
                    "Failed to release merge locks %s (tenant=%s, owner=%s), "
                    "they expire after %.0fs: %s",
                    ids,
                    tenant_id,
                    owner,
                    self.ttl,
                    e,
                )

    async def acquire(self, tenant_id: str, patient_ids: list[str]) -> str:
        """Insert lock rows for all ids, polling until the timeout elapses."""
        owner = uuid.uuid4().hex
        deadline = time.monotonic() + self.timeout

        while True:
            await self._purge_expired(tenant_id, patient_ids)
            if await self._try_insert(tenant_id, patient_ids, owner):
                logger.debug(
                    "Acquired merge locks %s (tenant=%s, owner=%s)",
                    patient_ids,
                    tenant_id,
                    owner,
                )
                return owner
            if time.monotonic() >= deadline:
                logger.info(
                    "Merge lock busy for %s (tenant=%s)", patient_ids, tenant_id
                )
                raise ConflictError(
                    "Another merge involving patient "
                    f"{' or '.join(patient_ids)} is in progress; try again shortly"
                )
            await asyncio.sleep(self.poll_interval)

    async def release(self, tenant_id: str, patient_ids: list[str], owner: str) -> None:
        """Delete this owner's lock rows."""
        stmt = delete(merge_locks_table).where(
            merge_locks_table.c.tenant_id == tenant_id,
            merge_locks_table.c.patient_id.in_(patient_ids),
            merge_locks_table.c.owner == owner,
        )
        async with store_errors("merge lock release"):
            async with self.database.transaction() as conn:
                await conn.execute(stmt)
        logger.debug("Released merge locks %s (tenant=%s)", patient_ids, tenant_id)

    async def _try_insert(
        self, tenant_id: str, patient_ids: list[str], owner: str
    ) -> bool:
        now = datetime.now(timezone.utc)
        rows = [
            {
                "tenant_id": tenant_id,
                "patient_id": patient_id,
                "owner": owner,
                "acquired_at": now,
                "expires_at": now + timedelta(seconds=self.ttl),
            }
            for patient_id in patient_ids
        ]
        async with store_errors("merge lock acquisition"):
            try:
                async with self.database.transaction() as conn:
                    await conn.execute(insert(merge_locks_table), rows)
            except IntegrityError:
                return False
        return True

    async def _purge_expired(self, tenant_id: str, patient_ids: list[str]) -> None:
        """Remove locks left behind by a crashed process."""
        stmt = delete(merge_locks_table).where(
            merge_locks_table.c.tenant_id == tenant_id,
            merge_locks_table.c.patient_id.in_(patient_ids),
            merge_locks_table.c.expires_at < datetime.now(timezone.utc),
        )
        async with store_errors("merge lock purge"):
            async with self.database.transaction() as conn:
                result = await conn.execute(stmt)
        if result.rowcount:
            logger.warning(
                "Purged %d expired merge locks for %s (tenant=%s)",
                result.rowcount,
                patient_ids,
                tenant_id,
            )
