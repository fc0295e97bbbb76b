"""
Table definitions for the tenant-scoped record store.

The patients table and the dependent tables belong to the surrounding
patient-management system; they are declared here with the columns the merge
engine touches so that local development and tests can create them. The
ignore list, merge locks and merge audit tables are owned by this service.
"""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)

metadata = MetaData()

patients_table = Table(
    "patients",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", String(64), nullable=False),
    Column("patient_id", String(64), nullable=False),
    Column("name", String(255)),
    Column("name_kana", String(255)),
    Column("tel", String(64)),
    Column("email", String(255)),
    Column("sex", String(16)),
    Column("birthday", String(32)),
    Column("postal_code", String(16)),
    Column("address", Text),
    Column("line_id", String(64)),
    Column("is_line_shadow", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("last_activity_at", DateTime(timezone=True)),
    UniqueConstraint("tenant_id", "patient_id", name="uq_patients_tenant_patient"),
)


def _dependent_table(
    name: str,
    *columns: Column[Any],
    unique_on: tuple[str, ...] | None = None,
) -> Table:
    """Declare a table whose rows reference a patient by ``patient_id``."""
    constraints = []
    if unique_on is not None:
        constraints.append(
            UniqueConstraint(
                "tenant_id", "patient_id", *unique_on, name=f"uq_{name}_patient"
            )
        )
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("tenant_id", String(64), nullable=False),
        Column("patient_id", String(64), nullable=False),
        Column("created_at", DateTime(timezone=True), server_default=func.now()),
        *columns,
        *constraints,
        Index(f"ix_{name}_tenant_patient", "tenant_id", "patient_id"),
    )


@dataclass(frozen=True)
class TransferTable:
    """
    A dependent table rewritten during a merge.

    ``unique_on`` is None when a patient may own any number of rows. Otherwise
    it lists the columns that, together with the patient id, identify at most
    one row: an empty tuple means one row per patient.
    """

    table: Table
    unique_on: tuple[str, ...] | None = None

    @property
    def name(self) -> str:
        return self.table.name


intake_table = _dependent_table("intake", Column("answers", JSON))
orders_table = _dependent_table(
    "orders", Column("amount", Integer), Column("status", String(32))
)
reservations_table = _dependent_table(
    "reservations",
    Column("reserved_at", DateTime(timezone=True)),
    Column("status", String(32)),
)
reorders_table = _dependent_table("reorders", Column("status", String(32)))
karte_entries_table = _dependent_table("karte_entries", Column("note", Text))
message_log_table = _dependent_table(
    "message_log", Column("direction", String(16)), Column("content", Text)
)
patient_tags_table = _dependent_table(
    "patient_tags", Column("tag_id", Integer, nullable=False), unique_on=("tag_id",)
)
patient_marks_table = _dependent_table(
    "patient_marks", Column("mark", String(32)), Column("note", Text), unique_on=()
)
friend_field_values_table = _dependent_table(
    "friend_field_values",
    Column("field_id", Integer, nullable=False),
    Column("value", Text),
    unique_on=("field_id",),
)
patient_segments_table = _dependent_table(
    "patient_segments", Column("segment", String(64)), unique_on=()
)
coupon_issues_table = _dependent_table(
    "coupon_issues",
    Column("coupon_id", Integer, nullable=False),
    Column("status", String(32)),
    unique_on=("coupon_id",),
)
scheduled_messages_table = _dependent_table(
    "scheduled_messages",
    Column("send_at", DateTime(timezone=True)),
    Column("content", Text),
)
ai_reply_drafts_table = _dependent_table(
    "ai_reply_drafts", Column("draft", Text), Column("status", String(32))
)
pinned_patients_table = _dependent_table(
    "pinned_patients",
    Column("admin_user_id", String(64), nullable=False),
    unique_on=("admin_user_id",),
)

# Merge order. The step index of a table in this sequence is the resume point
# recorded when its transfer fails.
TRANSFER_TABLES: tuple[TransferTable, ...] = (
    TransferTable(intake_table),
    TransferTable(orders_table),
    TransferTable(reservations_table),
    TransferTable(reorders_table),
    TransferTable(karte_entries_table),
    TransferTable(message_log_table),
    TransferTable(patient_tags_table, unique_on=("tag_id",)),
    TransferTable(patient_marks_table, unique_on=()),
    TransferTable(friend_field_values_table, unique_on=("field_id",)),
    TransferTable(patient_segments_table, unique_on=()),
    TransferTable(coupon_issues_table, unique_on=("coupon_id",)),
    TransferTable(scheduled_messages_table),
    TransferTable(ai_reply_drafts_table),
    TransferTable(pinned_patients_table, unique_on=("admin_user_id",)),
)

dedup_ignored_table = Table(
    "dedup_ignored",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", String(64), nullable=False),
    Column("patient_id_a", String(64), nullable=False),
    Column("patient_id_b", String(64), nullable=False),
    Column("actor", String(255)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint(
        "tenant_id", "patient_id_a", "patient_id_b", name="uq_dedup_ignored_pair"
    ),
)

merge_locks_table = Table(
    "merge_locks",
    metadata,
    Column("tenant_id", String(64), nullable=False),
    Column("patient_id", String(64), nullable=False),
    Column("owner", String(64), nullable=False),
    Column("acquired_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint("tenant_id", "patient_id", name="pk_merge_locks"),
)

merge_audit_table = Table(
    "merge_audit",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", String(64), nullable=False),
    Column("keep_id", String(64), nullable=False),
    Column("remove_id", String(64), nullable=False),
    Column("actor", String(255)),
    Column("outcome", String(32), nullable=False),
    Column("resume_point", Integer),
    Column("error", Text),
    Column("details", JSON, nullable=False),
    Column("removed_snapshot", JSON),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_merge_audit_tenant_remove", "tenant_id", "remove_id"),
)
