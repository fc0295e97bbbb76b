"""Schemas for patient dedup endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from src.dedup.models import CandidateIdentity, DuplicateCandidate, MergeResult

# Matches the store's patient_id column
MAX_PATIENT_ID_LENGTH = 64


def _strip_patient_id(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("patient id must not be blank")
    return v


class CandidateIdentitySchema(BaseModel):
    """One side of a duplicate candidate."""

    patient_id: str
    name: str | None = None
    name_kana: str | None = None
    tel: str | None = None
    birthday: str | None = None
    line_id: str | None = None
    is_line_shadow: bool = False
    created_at: datetime | None = None
    reservation_count: int = 0
    order_count: int = 0

    @classmethod
    def from_identity(cls, identity: CandidateIdentity) -> "CandidateIdentitySchema":
        return cls(
            patient_id=identity.patient_id,
            name=identity.name,
            name_kana=identity.name_kana,
            tel=identity.tel,
            birthday=identity.birthday,
            line_id=identity.line_id,
            is_line_shadow=identity.is_line_shadow,
            created_at=identity.created_at,
            reservation_count=identity.reservation_count,
            order_count=identity.order_count,
        )


class DuplicateCandidateSchema(BaseModel):
    """A suspected duplicate pair, lower patient id first."""

    patient_id_a: str
    patient_id_b: str
    score: int = Field(ge=0, le=100)
    reasons: list[str]
    patient_a: CandidateIdentitySchema
    patient_b: CandidateIdentitySchema
    suggested_keep_id: str

    @classmethod
    def from_candidate(cls, candidate: DuplicateCandidate) -> "DuplicateCandidateSchema":
        return cls(
            patient_id_a=candidate.patient_id_a,
            patient_id_b=candidate.patient_id_b,
            score=candidate.score,
            reasons=candidate.reasons,
            patient_a=CandidateIdentitySchema.from_identity(candidate.patient_a),
            patient_b=CandidateIdentitySchema.from_identity(candidate.patient_b),
            suggested_keep_id=candidate.suggested_keep_id,
        )


class CandidateListResponse(BaseModel):
    """Response model for candidate detection."""

    candidates: list[DuplicateCandidateSchema]
    total: int
    min_score: int


class IgnoreRequest(BaseModel):
    """Request model for marking a pair as not duplicate."""

    patient_id_a: str = Field(min_length=1, max_length=MAX_PATIENT_ID_LENGTH)
    patient_id_b: str = Field(min_length=1, max_length=MAX_PATIENT_ID_LENGTH)

    @field_validator("patient_id_a", "patient_id_b")
    @classmethod
    def strip_ids(cls, v: str) -> str:
        return _strip_patient_id(v)


class IgnoreResponse(BaseModel):
    """Response model for the ignore operation."""

    ok: bool = True


class MergeRequest(BaseModel):
    """Request model for merging two patients."""

    keep_id: str = Field(
        min_length=1,
        max_length=MAX_PATIENT_ID_LENGTH,
        description="Surviving identity",
    )
    remove_id: str = Field(
        min_length=1,
        max_length=MAX_PATIENT_ID_LENGTH,
        description="Identity merged into keep_id and then deleted",
    )

    @field_validator("keep_id", "remove_id")
    @classmethod
    def strip_ids(cls, v: str) -> str:
        return _strip_patient_id(v)


class TransferCountSchema(BaseModel):
    """Rows moved to the keep identity and rows dropped on collision."""

    transferred: int = 0
    discarded: int = 0


class MergeResponse(BaseModel):
    """Response model for a completed merge."""

    ok: bool = True
    keep_id: str
    remove_id: str
    details: dict[str, TransferCountSchema]
    backfilled_fields: list[str] = []
    resumed_from: int | None = None
    warnings: list[str] = []

    @classmethod
    def from_result(cls, result: MergeResult) -> "MergeResponse":
        return cls(
            keep_id=result.keep_id,
            remove_id=result.remove_id,
            details={
                name: TransferCountSchema(**counts)
                for name, counts in result.details.items()
            },
            backfilled_fields=result.backfilled_fields,
            resumed_from=result.resumed_from,
            warnings=result.warnings,
        )
