"""
Tenant-scoped reads and merge writes against the patients table and the
tables that reference a patient.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, func, select, update

from src.dedup.models import PatientIdentity, TransferCount
from src.exceptions import NotFoundError
from src.store.database import Database, store_errors
from src.store.tables import (
    TRANSFER_TABLES,
    TransferTable,
    orders_table,
    patients_table,
    reservations_table,
)

logger = logging.getLogger(__name__)

# Identity fields copied from the remove identity when keep has no value
BACKFILL_FIELDS = (
    "name",
    "name_kana",
    "tel",
    "email",
    "sex",
    "birthday",
    "postal_code",
    "address",
    "line_id",
)


@dataclass
class ActivityCounts:
    """Reservation and order counts for one patient."""

    reservations: int = 0
    orders: int = 0


@dataclass
class FinalizeResult:
    """What the finalizing step changed."""

    removed_snapshot: dict[str, Any]
    backfilled_fields: list[str] = field(default_factory=list)


class PatientStore:
    """Reads patient identities and rewrites references during merges."""

    def __init__(self, database: Database):
        self.database = database

    async def list_identities(self, tenant_id: str) -> list[PatientIdentity]:
        """All identities of a tenant, oldest first."""
        stmt = (
            select(patients_table)
            .where(patients_table.c.tenant_id == tenant_id)
            .order_by(patients_table.c.created_at, patients_table.c.patient_id)
        )
        async with store_errors("identity listing"):
            async with self.database.transaction() as conn:
                rows = (await conn.execute(stmt)).mappings().all()
        return [PatientIdentity.from_row(row) for row in rows]

    async def get_identity(
        self, tenant_id: str, patient_id: str
    ) -> PatientIdentity | None:
        async with store_errors("identity lookup"):
            async with self.database.transaction() as conn:
                row = await _select_identity(conn, tenant_id, patient_id)
        return PatientIdentity.from_row(row) if row is not None else None

    async def activity_counts(self, tenant_id: str) -> dict[str, ActivityCounts]:
        """Reservation and order counts per patient id."""
        counts: dict[str, ActivityCounts] = {}
        async with store_errors("activity counts"):
            async with self.database.transaction() as conn:
                for table, attr in (
                    (reservations_table, "reservations"),
                    (orders_table, "orders"),
                ):
                    stmt = (
                        select(table.c.patient_id, func.count())
                        .where(table.c.tenant_id == tenant_id)
                        .group_by(table.c.patient_id)
                    )
                    for patient_id, count in (await conn.execute(stmt)).all():
                        setattr(
                            counts.setdefault(patient_id, ActivityCounts()), attr, count
                        )
        return counts

    async def count_references(
        self, tenant_id: str, patient_id: str
    ) -> dict[str, int]:
        """Number of rows referencing a patient, per dependent table."""
        result: dict[str, int] = {}
        async with store_errors("reference count"):
            async with self.database.transaction() as conn:
                for target in TRANSFER_TABLES:
                    table = target.table
                    stmt = select(func.count()).where(
                        table.c.tenant_id == tenant_id,
                        table.c.patient_id == patient_id,
                    )
                    result[target.name] = (await conn.execute(stmt)).scalar_one()
        return result

    async def transfer_references(
        self,
        tenant_id: str,
        target: TransferTable,
        keep_id: str,
        remove_id: str,
    ) -> TransferCount:
        """
        Re-point every row of one table from ``remove_id`` to ``keep_id``.

        Runs in its own transaction and is idempotent: once nothing references
        ``remove_id`` any more, it changes nothing. For tables with a
        uniqueness key on the patient, a remove row that would collide with an
        existing keep row is deleted and counted as discarded.
        """
        table = target.table
        remove_rows = (table.c.tenant_id == tenant_id, table.c.patient_id == remove_id)
        discarded = 0

        async with store_errors(f"transfer of {target.name}"):
            async with self.database.transaction() as conn:
                if target.unique_on is not None:
                    kept = table.alias("kept")
                    collision = (
                        select(kept.c.id)
                        .where(
                            kept.c.tenant_id == tenant_id,
                            kept.c.patient_id == keep_id,
                            *[kept.c[col] == table.c[col] for col in target.unique_on],
                        )
                        .exists()
                    )
                    result = await conn.execute(
                        delete(table).where(*remove_rows, collision)
                    )
                    discarded = result.rowcount

                result = await conn.execute(
                    update(table).where(*remove_rows).values(patient_id=keep_id)
                )
                transferred = result.rowcount

        if discarded:
            logger.info(
                "Discarded %d %s rows of %s colliding with %s (tenant=%s)",
                discarded,
                target.name,
                remove_id,
                keep_id,
                tenant_id,
            )
        return TransferCount(transferred=transferred, discarded=discarded)

    async def finalize_merge(
        self, tenant_id: str, keep_id: str, remove_id: str
    ) -> FinalizeResult:
        """
        Fill keep's empty fields from the remove identity, then delete it.

        Both happen in one transaction.
        """
        async with store_errors("merge finalization"):
            async with self.database.transaction() as conn:
                keep_row = await _select_identity(conn, tenant_id, keep_id)
                remove_row = await _select_identity(conn, tenant_id, remove_id)
                if keep_row is None:
                    raise NotFoundError(f"Patient {keep_id} not found")
                if remove_row is None:
                    raise NotFoundError(f"Patient {remove_id} not found")

                keep = PatientIdentity.from_row(keep_row)
                remove = PatientIdentity.from_row(remove_row)
                values = _backfill_values(keep, remove)

                await conn.execute(
                    delete(patients_table).where(
                        patients_table.c.tenant_id == tenant_id,
                        patients_table.c.patient_id == remove_id,
                    )
                )
                if values:
                    await conn.execute(
                        update(patients_table)
                        .where(
                            patients_table.c.tenant_id == tenant_id,
                            patients_table.c.patient_id == keep_id,
                        )
                        .values(**values)
                    )

        backfilled = sorted(key for key in values if key in BACKFILL_FIELDS)
        return FinalizeResult(
            removed_snapshot=remove.to_snapshot(),
            backfilled_fields=backfilled,
        )


async def _select_identity(conn: Any, tenant_id: str, patient_id: str) -> Any:
    stmt = select(patients_table).where(
        patients_table.c.tenant_id == tenant_id,
        patients_table.c.patient_id == patient_id,
    )
    return (await conn.execute(stmt)).mappings().first()


def _backfill_values(keep: PatientIdentity, remove: PatientIdentity) -> dict[str, Any]:
    """Column updates that complete the keep identity from the remove identity."""
    values: dict[str, Any] = {}
    for name in BACKFILL_FIELDS:
        keep_value = getattr(keep, name)
        remove_value = getattr(remove, name)
        if _is_blank(keep_value) and not _is_blank(remove_value):
            values[name] = remove_value

    # A full registration supersedes a provisional LINE contact
    if keep.is_line_shadow and not remove.is_line_shadow:
        values["is_line_shadow"] = False

    if remove.last_activity_at is not None and (
        keep.last_activity_at is None or remove.last_activity_at > keep.last_activity_at
    ):
        values["last_activity_at"] = remove.last_activity_at
    return values


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
