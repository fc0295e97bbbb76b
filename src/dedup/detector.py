"""
Duplicate candidate detection.

Detection is read-only: it normalizes the tenant's identities, generates
pairs through the blocking index, scores them, and drops ignored and
low-scoring pairs. Any store failure aborts the whole run; partial candidate
lists are never returned.
"""

import logging

from src.dedup import blocking
from src.dedup.ignore_list import IgnoreList
from src.dedup.models import CandidateIdentity, DuplicateCandidate, PatientIdentity
from src.dedup.normalizer import normalize_identity
from src.dedup.scorer import SimilarityScorer
from src.exceptions import InvalidInputError
from src.store.patient_store import ActivityCounts, PatientStore

logger = logging.getLogger(__name__)


class CandidateDetector:
    """Finds likely-duplicate identity pairs within a tenant."""

    def __init__(
        self,
        patient_store: PatientStore,
        ignore_list: IgnoreList,
        scorer: SimilarityScorer | None = None,
    ):
        self.patient_store = patient_store
        self.ignore_list = ignore_list
        self.scorer = scorer or SimilarityScorer()

    async def detect_candidates(
        self, tenant_id: str, min_score: int | None = None
    ) -> list[DuplicateCandidate]:
        """
        Ranked duplicate candidates for a tenant.

        Args:
            tenant_id: Tenant whose identities are compared
            min_score: Minimum score to report (defaults to the scorer threshold)

        Returns:
            Candidates ordered by score, then most recent activity, then ids

        Raises:
            InvalidInputError: If min_score is outside 0..100
            StoreUnavailableError: If the record store cannot be read
        """
        if min_score is None:
            min_score = self.scorer.min_score_threshold
        if not 0 <= min_score <= 100:
            raise InvalidInputError("min_score must be between 0 and 100")

        identities = await self.patient_store.list_identities(tenant_id)
        if len(identities) < 2:
            return []
        ignored = await self.ignore_list.load(tenant_id)
        activity = await self.patient_store.activity_counts(tenant_id)

        by_id = {identity.patient_id: identity for identity in identities}
        normalized = {
            identity.patient_id: normalize_identity(identity) for identity in identities
        }
        blocks = blocking.build(normalized.values())
        pairs = blocking.candidate_pairs(blocks)

        candidates: list[DuplicateCandidate] = []
        skipped_ignored = 0
        for id_a, id_b in pairs:
            if (id_a, id_b) in ignored:
                skipped_ignored += 1
                continue
            result = self.scorer.score(normalized[id_a], normalized[id_b])
            if result.score < min_score or not result.reasons:
                continue
            candidates.append(
                _build_candidate(
                    tenant_id,
                    by_id[id_a],
                    by_id[id_b],
                    result.score,
                    list(result.reasons),
                    activity,
                )
            )

        candidates.sort(key=rank_key)
        logger.info(
            "Detected %d duplicate candidates from %d pairs (tenant=%s, identities=%d, "
            "blocks=%d, ignored=%d, min_score=%d)",
            len(candidates),
            len(pairs),
            tenant_id,
            len(identities),
            len(blocks),
            skipped_ignored,
            min_score,
        )
        return candidates


def rank_key(candidate: DuplicateCandidate) -> tuple[int, float, str]:
    """Score descending, latest activity descending, combined ids ascending."""
    return (
        -candidate.score,
        -candidate.last_activity,
        f"{candidate.patient_id_a}::{candidate.patient_id_b}",
    )


def suggest_keep(
    a: PatientIdentity,
    b: PatientIdentity,
    activity_a: ActivityCounts,
    activity_b: ActivityCounts,
) -> str:
    """
    Which identity an operator should probably keep.

    Preference: a full registration over a LINE shadow, a LINE-linked identity,
    more reservations, more orders, the older record, the lower id.
    """
    if a.is_line_shadow != b.is_line_shadow:
        return b.patient_id if a.is_line_shadow else a.patient_id
    if bool(a.line_id) != bool(b.line_id):
        return a.patient_id if a.line_id else b.patient_id
    if activity_a.reservations != activity_b.reservations:
        return a.patient_id if activity_a.reservations > activity_b.reservations else b.patient_id
    if activity_a.orders != activity_b.orders:
        return a.patient_id if activity_a.orders > activity_b.orders else b.patient_id
    if a.created_at and b.created_at and a.created_at != b.created_at:
        return a.patient_id if a.created_at < b.created_at else b.patient_id
    return min(a.patient_id, b.patient_id)


def _summary(identity: PatientIdentity, activity: ActivityCounts) -> CandidateIdentity:
    return CandidateIdentity(
        patient_id=identity.patient_id,
        name=identity.name,
        name_kana=identity.name_kana,
        tel=identity.tel,
        birthday=identity.birthday,
        line_id=identity.line_id,
        is_line_shadow=identity.is_line_shadow,
        created_at=identity.created_at,
        reservation_count=activity.reservations,
        order_count=activity.orders,
    )


def _build_candidate(
    tenant_id: str,
    a: PatientIdentity,
    b: PatientIdentity,
    score: int,
    reasons: list[str],
    activity: dict[str, ActivityCounts],
) -> DuplicateCandidate:
    activity_a = activity.get(a.patient_id, ActivityCounts())
    activity_b = activity.get(b.patient_id, ActivityCounts())
    return DuplicateCandidate(
        tenant_id=tenant_id,
        patient_id_a=a.patient_id,
        patient_id_b=b.patient_id,
        score=score,
        reasons=reasons,
        patient_a=_summary(a, activity_a),
        patient_b=_summary(b, activity_b),
        suggested_keep_id=suggest_keep(a, b, activity_a, activity_b),
        last_activity=max(a.activity_timestamp, b.activity_timestamp),
    )
