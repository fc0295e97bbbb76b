"""Data types shared by detection, ignore list and merge."""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping


@dataclass
class PatientIdentity:
    """One patient row as read from the record store."""

    tenant_id: str
    patient_id: str
    name: str | None = None
    name_kana: str | None = None
    tel: str | None = None
    email: str | None = None
    sex: str | None = None
    birthday: str | None = None
    postal_code: str | None = None
    address: str | None = None
    line_id: str | None = None
    is_line_shadow: bool = False
    created_at: datetime | None = None
    last_activity_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PatientIdentity":
        """Build from a patients table row mapping."""
        return cls(
            tenant_id=row["tenant_id"],
            patient_id=row["patient_id"],
            name=row["name"],
            name_kana=row["name_kana"],
            tel=row["tel"],
            email=row["email"],
            sex=row["sex"],
            birthday=row["birthday"],
            postal_code=row["postal_code"],
            address=row["address"],
            line_id=row["line_id"],
            is_line_shadow=bool(row["is_line_shadow"]),
            created_at=row["created_at"],
            last_activity_at=row["last_activity_at"],
        )

    @property
    def activity_timestamp(self) -> float:
        """Most recent known activity as a POSIX timestamp (0 when unknown)."""
        moment = self.last_activity_at or self.created_at
        if moment is None:
            return 0.0
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.timestamp()

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe copy of the row, stored with the merge audit record."""
        snapshot = asdict(self)
        for key in ("created_at", "last_activity_at"):
            value = snapshot[key]
            snapshot[key] = value.isoformat() if value is not None else None
        return snapshot


@dataclass(frozen=True)
class NormalizedIdentity:
    """Canonical comparable forms of one identity. ``None`` means non-comparable."""

    patient_id: str
    name: str | None
    kana: str | None
    phone: str | None
    birth_date: date | None
    postal_code: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class SimilarityScore:
    """Confidence score (0-100) for a pair and the signals that contributed."""

    score: int
    reasons: tuple[str, ...] = ()


@dataclass
class CandidateIdentity:
    """Identity summary shown to the operator alongside a candidate."""

    patient_id: str
    name: str | None
    name_kana: str | None
    tel: str | None
    birthday: str | None
    line_id: str | None
    is_line_shadow: bool
    created_at: datetime | None
    reservation_count: int = 0
    order_count: int = 0


@dataclass
class DuplicateCandidate:
    """
    A suspected duplicate pair.

    ``patient_id_a`` is always the lower id so (A, B) and (B, A) are reported
    once.
    """

    tenant_id: str
    patient_id_a: str
    patient_id_b: str
    score: int
    reasons: list[str]
    patient_a: CandidateIdentity
    patient_b: CandidateIdentity
    suggested_keep_id: str
    last_activity: float = 0.0

    @property
    def pair(self) -> tuple[str, str]:
        return (self.patient_id_a, self.patient_id_b)


@dataclass(frozen=True)
class TransferCount:
    """Rows moved from the remove identity and rows discarded on collision."""

    transferred: int = 0
    discarded: int = 0

    def __add__(self, other: "TransferCount") -> "TransferCount":
        return TransferCount(
            transferred=self.transferred + other.transferred,
            discarded=self.discarded + other.discarded,
        )

    def to_dict(self) -> dict[str, int]:
        return {"transferred": self.transferred, "discarded": self.discarded}


class MergeStage(str, Enum):
    """States of one merge attempt."""

    VALIDATING = "validating"
    TRANSFERRING = "transferring"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


class MergeOutcome(str, Enum):
    """Terminal outcome stored on the audit record."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    REJECTED = "rejected"


@dataclass
class MergeAuditRecord:
    """Append-only record of one merge attempt."""

    tenant_id: str
    keep_id: str
    remove_id: str
    actor: str | None
    outcome: MergeOutcome
    details: dict[str, dict[str, int]] = field(default_factory=dict)
    resume_point: int | None = None
    error: str | None = None
    removed_snapshot: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class MergeResult:
    """Outcome of a completed merge."""

    tenant_id: str
    keep_id: str
    remove_id: str
    details: dict[str, dict[str, int]]
    backfilled_fields: list[str] = field(default_factory=list)
    resumed_from: int | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def total_transferred(self) -> int:
        return sum(counts.get("transferred", 0) for counts in self.details.values())

    @property
    def total_discarded(self) -> int:
        return sum(counts.get("discarded", 0) for counts in self.details.values())
