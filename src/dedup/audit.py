"""
Merge audit integration.

Audit records are append-only. A failure to append never undoes a merge: the
record is queued for an out-of-band retry and the caller gets a warning.
"""

import json
import logging
from collections import deque
from dataclasses import asdict
from typing import Any, Mapping, Protocol

from sqlalchemy import insert, select

from src.dedup.models import MergeAuditRecord, MergeOutcome
from src.store.database import Database, store_errors
from src.store.tables import merge_audit_table

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """
    Append-only destination for merge audit records.

    ``latest_for`` returns the most recent non-rejected record whose remove id
    matches, or None; the merge executor resumes from it.
    """

    async def append(self, record: MergeAuditRecord) -> None: ...

    async def latest_for(
        self, tenant_id: str, remove_id: str
    ) -> MergeAuditRecord | None: ...


class SqlAuditSink:
    """Audit sink backed by the ``merge_audit`` table."""

    def __init__(self, database: Database):
        self.database = database

    async def append(self, record: MergeAuditRecord) -> None:
        stmt = insert(merge_audit_table).values(
            tenant_id=record.tenant_id,
            keep_id=record.keep_id,
            remove_id=record.remove_id,
            actor=record.actor,
            outcome=record.outcome.value,
            resume_point=record.resume_point,
            error=record.error,
            details=record.details,
            removed_snapshot=record.removed_snapshot,
            created_at=record.created_at,
        )
        async with store_errors("merge audit append"):
            async with self.database.transaction() as conn:
                await conn.execute(stmt)

    async def latest_for(
        self, tenant_id: str, remove_id: str
    ) -> MergeAuditRecord | None:
        """Most recent non-rejected attempt that tried to remove ``remove_id``."""
        stmt = (
            select(merge_audit_table)
            .where(
                merge_audit_table.c.tenant_id == tenant_id,
                merge_audit_table.c.remove_id == remove_id,
                merge_audit_table.c.outcome != MergeOutcome.REJECTED.value,
            )
            .order_by(merge_audit_table.c.id.desc())
            .limit(1)
        )
        async with store_errors("merge audit lookup"):
            async with self.database.transaction() as conn:
                row = (await conn.execute(stmt)).mappings().first()
        return _record_from_row(row) if row is not None else None

    async def list_for_tenant(self, tenant_id: str) -> list[MergeAuditRecord]:
        """All records of a tenant in append order."""
        stmt = (
            select(merge_audit_table)
            .where(merge_audit_table.c.tenant_id == tenant_id)
            .order_by(merge_audit_table.c.id)
        )
        async with store_errors("merge audit listing"):
            async with self.database.transaction() as conn:
                rows = (await conn.execute(stmt)).mappings().all()
        return [_record_from_row(row) for row in rows]


class AuditRecorder:
    """Writes audit records, queueing the ones the sink rejects."""

    def __init__(self, sink: AuditSink):
        self.sink = sink
        self.pending: deque[MergeAuditRecord] = deque()

    async def record(self, record: MergeAuditRecord) -> bool:
        """
        Append a record.

        Returns False (after queueing and logging the record) when the sink
        fails; the merge itself is unaffected.
        """
        try:
            await self.sink.append(record)
        except Exception as e:
            self.pending.append(record)
            logger.error(
                "Failed to append merge audit record, queued for retry: %s | %s",
                e,
                json.dumps(asdict(record), default=str, ensure_ascii=False),
            )
            return False
        return True

    async def flush_pending(self) -> int:
        """Retry queued records in order. Returns how many were written."""
        written = 0
        while self.pending:
            record = self.pending[0]
            try:
                await self.sink.append(record)
            except Exception as e:
                logger.warning(
                    "Merge audit retry failed, %d records still pending: %s",
                    len(self.pending),
                    e,
                )
                break
            self.pending.popleft()
            written += 1
        if written:
            logger.info("Flushed %d pending merge audit records", written)
        return written


def _record_from_row(row: Mapping[str, Any]) -> MergeAuditRecord:
    return MergeAuditRecord(
        tenant_id=row["tenant_id"],
        keep_id=row["keep_id"],
        remove_id=row["remove_id"],
        actor=row["actor"],
        outcome=MergeOutcome(row["outcome"]),
        details=row["details"] or {},
        resume_point=row["resume_point"],
        error=row["error"],
        removed_snapshot=row["removed_snapshot"],
        created_at=row["created_at"],
    )
