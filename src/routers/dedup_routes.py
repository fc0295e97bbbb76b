"""Operator endpoints for duplicate patient review and merge."""

from fastapi import APIRouter, Query

from src.routers.deps import ActorDep, DedupServiceDep, TenantIdDep
from src.schemas.dedup_schemas import (
    CandidateListResponse,
    DuplicateCandidateSchema,
    IgnoreRequest,
    IgnoreResponse,
    MergeRequest,
    MergeResponse,
)
from src.settings import settings

router = APIRouter(prefix="/dedup", tags=["Dedup"])


@router.get("/candidates", response_model=CandidateListResponse)
async def list_candidates(
    tenant_id: TenantIdDep,
    dedup_service: DedupServiceDep,
    min_score: int | None = Query(default=None, ge=0, le=100),
) -> CandidateListResponse:
    """
    List suspected duplicate patients of the tenant.

    Pairs are ordered by score, then by most recent activity. Pairs an
    operator marked as not duplicate are never returned.
    """
    threshold = settings.dedup_default_min_score if min_score is None else min_score
    candidates = await dedup_service.detect_candidates(tenant_id, threshold)
    return CandidateListResponse(
        candidates=[DuplicateCandidateSchema.from_candidate(c) for c in candidates],
        total=len(candidates),
        min_score=threshold,
    )


@router.post("/ignore", response_model=IgnoreResponse)
async def ignore_pair(
    request: IgnoreRequest,
    tenant_id: TenantIdDep,
    actor: ActorDep,
    dedup_service: DedupServiceDep,
) -> IgnoreResponse:
    """Record that two patients are not the same person. Idempotent."""
    await dedup_service.ignore(
        tenant_id, request.patient_id_a, request.patient_id_b, actor
    )
    return IgnoreResponse()


@router.post("/merge", response_model=MergeResponse)
async def merge_patients(
    request: MergeRequest,
    tenant_id: TenantIdDep,
    actor: ActorDep,
    dedup_service: DedupServiceDep,
) -> MergeResponse:
    """
    Merge ``remove_id`` into ``keep_id``.

    Every record referencing ``remove_id`` is moved to ``keep_id`` and
    ``remove_id`` is deleted. If the response is a partial failure, send the
    same request again to complete the merge.
    """
    result = await dedup_service.merge(
        tenant_id, request.keep_id, request.remove_id, actor
    )
    return MergeResponse.from_result(result)
