"""
Operator decisions that a pair of identities is not a duplicate.

Pairs are stored canonically (lower id first) as ordinary tenant-scoped rows,
so every service instance sees the same list. Entries never expire.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError

from src.dedup.blocking import canonical_pair
from src.exceptions import InvalidInputError
from src.store.database import Database, store_errors
from src.store.tables import dedup_ignored_table

logger = logging.getLogger(__name__)


def validate_pair(id_a: str, id_b: str) -> tuple[str, str]:
    """Strip and check a pair of patient ids; returns it in canonical order."""
    id_a = (id_a or "").strip()
    id_b = (id_b or "").strip()
    if not id_a or not id_b:
        raise InvalidInputError("Both patient ids are required")
    if id_a == id_b:
        raise InvalidInputError("A patient cannot be paired with itself")
    return canonical_pair(id_a, id_b)


class IgnoreList:
    """Persisted ignore list backed by the ``dedup_ignored`` table."""

    def __init__(self, database: Database):
        self.database = database

    async def ignore(
        self,
        tenant_id: str,
        id_a: str,
        id_b: str,
        actor: str | None = None,
    ) -> None:
        """
        Record that a pair is not a duplicate.

        Idempotent: ignoring an already ignored pair, in either order, leaves
        the stored state unchanged.
        """
        pair = validate_pair(id_a, id_b)
        stmt = insert(dedup_ignored_table).values(
            tenant_id=tenant_id,
            patient_id_a=pair[0],
            patient_id_b=pair[1],
            actor=actor,
            created_at=datetime.now(timezone.utc),
        )
        async with store_errors("ignore list insert"):
            try:
                async with self.database.transaction() as conn:
                    await conn.execute(stmt)
            except IntegrityError:
                logger.debug("Pair %s/%s already ignored (tenant=%s)", *pair, tenant_id)
                return
        logger.info("Ignored duplicate pair %s/%s (tenant=%s)", *pair, tenant_id)

    async def is_ignored(self, tenant_id: str, id_a: str, id_b: str) -> bool:
        pair = validate_pair(id_a, id_b)
        stmt = select(dedup_ignored_table.c.id).where(
            dedup_ignored_table.c.tenant_id == tenant_id,
            dedup_ignored_table.c.patient_id_a == pair[0],
            dedup_ignored_table.c.patient_id_b == pair[1],
        )
        async with store_errors("ignore list lookup"):
            async with self.database.transaction() as conn:
                return (await conn.execute(stmt)).first() is not None

    async def load(self, tenant_id: str) -> set[tuple[str, str]]:
        """All ignored pairs of a tenant, canonically ordered."""
        stmt = select(
            dedup_ignored_table.c.patient_id_a, dedup_ignored_table.c.patient_id_b
        ).where(dedup_ignored_table.c.tenant_id == tenant_id)
        async with store_errors("ignore list load"):
            async with self.database.transaction() as conn:
                rows = (await conn.execute(stmt)).all()
        return {canonical_pair(a, b) for a, b in rows}
