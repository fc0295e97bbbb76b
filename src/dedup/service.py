"""Entry point for the three operator operations: detect, ignore, merge."""

from src.dedup.audit import SqlAuditSink
from src.dedup.detector import CandidateDetector
from src.dedup.ignore_list import IgnoreList
from src.dedup.merge_executor import MergeExecutor
from src.dedup.merge_lock import MergeLockManager
from src.dedup.models import DuplicateCandidate, MergeResult
from src.dedup.scorer import SimilarityScorer
from src.services.cache_invalidation_service import CacheInvalidationService
from src.store.database import Database
from src.store.patient_store import PatientStore


class DedupService:
    """Patient identity resolution and merge for one record store."""

    def __init__(
        self,
        database: Database,
        cache_invalidation: CacheInvalidationService | None = None,
        lock_manager: MergeLockManager | None = None,
        scorer: SimilarityScorer | None = None,
    ):
        self.database = database
        self.patient_store = PatientStore(database)
        self.ignore_list = IgnoreList(database)
        self.audit_sink = SqlAuditSink(database)
        self.detector = CandidateDetector(self.patient_store, self.ignore_list, scorer)
        self.executor = MergeExecutor(
            self.patient_store,
            lock_manager or MergeLockManager(database),
            self.audit_sink,
            cache_invalidation or CacheInvalidationService(),
        )

    async def detect_candidates(
        self, tenant_id: str, min_score: int | None = None
    ) -> list[DuplicateCandidate]:
        return await self.detector.detect_candidates(tenant_id, min_score)

    async def ignore(
        self, tenant_id: str, id_a: str, id_b: str, actor: str | None = None
    ) -> None:
        await self.ignore_list.ignore(tenant_id, id_a, id_b, actor)

    async def is_ignored(self, tenant_id: str, id_a: str, id_b: str) -> bool:
        return await self.ignore_list.is_ignored(tenant_id, id_a, id_b)

    async def merge(
        self,
        tenant_id: str,
        keep_id: str,
        remove_id: str,
        actor: str | None = None,
    ) -> MergeResult:
        return await self.executor.merge(tenant_id, keep_id, remove_id, actor)
