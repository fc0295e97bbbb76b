"""
Patient merge execution.

A merge moves everything that references the remove identity onto the keep
identity and then deletes the remove identity:

    VALIDATING -> TRANSFERRING (table i of N) -> FINALIZING -> COMPLETED
                         |                            |
                         +--------> FAILED(resume_point=i)

Each dependent table is transferred in its own transaction. A transfer is
idempotent, so a failed merge is completed by reissuing the same call. The
reissued call runs every transfer again, since rows may have been written for
the remove identity after the failure; the recorded resume point is reported
only. The remove identity is deleted only after every transfer has committed,
so no dependent row ever references a deleted identity.
"""

import logging
from collections.abc import Sequence

from src.dedup.audit import AuditRecorder, AuditSink
from src.dedup.merge_lock import MergeLockManager
from src.dedup.models import (
    MergeAuditRecord,
    MergeOutcome,
    MergeResult,
    MergeStage,
    TransferCount,
)
from src.exceptions import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PartialFailureError,
    StoreUnavailableError,
)
from src.services.cache_invalidation_service import CacheInvalidationService
from src.store.patient_store import PatientStore
from src.store.tables import TRANSFER_TABLES, TransferTable

logger = logging.getLogger(__name__)


class MergeExecutor:
    """Consolidates two identities of one tenant into one."""

    def __init__(
        self,
        patient_store: PatientStore,
        lock_manager: MergeLockManager,
        audit_sink: AuditSink,
        cache_invalidation: CacheInvalidationService,
        tables: Sequence[TransferTable] = TRANSFER_TABLES,
    ):
        self.patient_store = patient_store
        self.lock_manager = lock_manager
        self.audit_sink = audit_sink
        self.audit = AuditRecorder(audit_sink)
        self.cache_invalidation = cache_invalidation
        self.tables = tuple(tables)

    async def merge(
        self,
        tenant_id: str,
        keep_id: str,
        remove_id: str,
        actor: str | None = None,
    ) -> MergeResult:
        """
        Merge ``remove_id`` into ``keep_id``.

        Raises:
            InvalidInputError: Blank ids or the same id on both sides
            NotFoundError: Either identity is missing (or already merged away)
            ConflictError: Another merge touching either identity is in flight
            PartialFailureError: A step failed after earlier steps committed;
                reissue the same call to complete the merge
            StoreUnavailableError: The store failed before anything was written
        """
        keep_id = (keep_id or "").strip()
        remove_id = (remove_id or "").strip()

        if self.audit.pending:
            await self.audit.flush_pending()

        try:
            _validate_ids(keep_id, remove_id)
            async with self.lock_manager.hold(tenant_id, keep_id, remove_id):
                result = await self._merge_locked(tenant_id, keep_id, remove_id, actor)
        except (InvalidInputError, NotFoundError, ConflictError) as e:
            logger.info(
                "Merge %s -> %s rejected (tenant=%s): %s",
                remove_id,
                keep_id,
                tenant_id,
                e,
            )
            await self.audit.record(
                MergeAuditRecord(
                    tenant_id=tenant_id,
                    keep_id=keep_id,
                    remove_id=remove_id,
                    actor=actor,
                    outcome=MergeOutcome.REJECTED,
                    error=f"{e.code}: {e}",
                )
            )
            raise

        await self.cache_invalidation.invalidate_patients(tenant_id, [keep_id, remove_id])
        return result

    async def _merge_locked(
        self,
        tenant_id: str,
        keep_id: str,
        remove_id: str,
        actor: str | None,
    ) -> MergeResult:
        stage = MergeStage.VALIDATING
        logger.debug("Merge %s -> %s: %s (tenant=%s)", remove_id, keep_id, stage.value, tenant_id)
        if await self.patient_store.get_identity(tenant_id, keep_id) is None:
            raise NotFoundError(f"Patient {keep_id} not found")
        if await self.patient_store.get_identity(tenant_id, remove_id) is None:
            raise NotFoundError(f"Patient {remove_id} not found")

        resume_point, details = await self._resume_state(tenant_id, keep_id, remove_id)

        stage = MergeStage.TRANSFERRING
        for index, target in enumerate(self.tables):
            logger.debug(
                "Merge %s -> %s: %s %d/%d (%s)",
                remove_id,
                keep_id,
                stage.value,
                index + 1,
                len(self.tables),
                target.name,
            )
            try:
                count = await self.patient_store.transfer_references(
                    tenant_id, target, keep_id, remove_id
                )
            except StoreUnavailableError as e:
                raise await self._fail(
                    tenant_id, keep_id, remove_id, actor, index, details, e
                ) from e
            previous = TransferCount(**details.get(target.name, {}))
            details[target.name] = (previous + count).to_dict()

        stage = MergeStage.FINALIZING
        try:
            finalized = await self.patient_store.finalize_merge(
                tenant_id, keep_id, remove_id
            )
        except (StoreUnavailableError, NotFoundError) as e:
            raise await self._fail(
                tenant_id, keep_id, remove_id, actor, len(self.tables), details, e
            ) from e

        stage = MergeStage.COMPLETED
        result = MergeResult(
            tenant_id=tenant_id,
            keep_id=keep_id,
            remove_id=remove_id,
            details=details,
            backfilled_fields=finalized.backfilled_fields,
            resumed_from=resume_point or None,
        )
        recorded = await self.audit.record(
            MergeAuditRecord(
                tenant_id=tenant_id,
                keep_id=keep_id,
                remove_id=remove_id,
                actor=actor,
                outcome=MergeOutcome.SUCCESS,
                details=details,
                removed_snapshot=finalized.removed_snapshot,
            )
        )
        if not recorded:
            result.warnings.append(
                "Merge completed but its audit record could not be written; "
                "it has been queued for retry"
            )

        logger.info(
            "Merge %s -> %s %s (tenant=%s, transferred=%d, discarded=%d, backfilled=%s)",
            remove_id,
            keep_id,
            stage.value,
            tenant_id,
            result.total_transferred,
            result.total_discarded,
            ",".join(result.backfilled_fields) or "-",
        )
        return result

    async def _resume_state(
        self, tenant_id: str, keep_id: str, remove_id: str
    ) -> tuple[int, dict[str, dict[str, int]]]:
        """Resume point and counts carried over from an earlier partial failure."""
        previous = await self.audit_sink.latest_for(tenant_id, remove_id)
        if previous is None or previous.outcome != MergeOutcome.PARTIAL_FAILURE:
            return 0, {}

        if previous.keep_id != keep_id:
            if await self.patient_store.get_identity(tenant_id, previous.keep_id) is not None:
                raise ConflictError(
                    f"Patient {remove_id} is partially merged into {previous.keep_id}; "
                    "reissue that merge to complete it first"
                )
            # The earlier keep was merged away itself; its attempt can never finish
            logger.info(
                "Dropping unfinished merge %s -> %s, %s no longer exists (tenant=%s)",
                remove_id,
                previous.keep_id,
                previous.keep_id,
                tenant_id,
            )
            return 0, {}

        resume_point = min(previous.resume_point or 0, len(self.tables))
        logger.info(
            "Resuming merge %s -> %s after failure at step %d/%d (tenant=%s)",
            remove_id,
            keep_id,
            resume_point,
            len(self.tables),
            tenant_id,
        )
        return resume_point, {name: dict(counts) for name, counts in previous.details.items()}

    async def _fail(
        self,
        tenant_id: str,
        keep_id: str,
        remove_id: str,
        actor: str | None,
        resume_point: int,
        details: dict[str, dict[str, int]],
        error: Exception,
    ) -> PartialFailureError:
        """Record a failed step and build the error handed back to the caller."""
        step = (
            self.tables[resume_point].name
            if resume_point < len(self.tables)
            else MergeStage.FINALIZING.value
        )
        logger.error(
            "Merge %s -> %s %s at step %d (%s), tenant=%s: %s",
            remove_id,
            keep_id,
            MergeStage.FAILED.value,
            resume_point,
            step,
            tenant_id,
            error,
        )
        await self.audit.record(
            MergeAuditRecord(
                tenant_id=tenant_id,
                keep_id=keep_id,
                remove_id=remove_id,
                actor=actor,
                outcome=MergeOutcome.PARTIAL_FAILURE,
                details=details,
                resume_point=resume_point,
                error=str(error),
            )
        )
        return PartialFailureError(
            f"Merge of {remove_id} into {keep_id} stopped at {step}; "
            "reissue the same merge to complete it",
            resume_point=resume_point,
            tenant_id=tenant_id,
            keep_id=keep_id,
            remove_id=remove_id,
            details=details,
        )


def _validate_ids(keep_id: str, remove_id: str) -> None:
    if not keep_id or not remove_id:
        raise InvalidInputError("Both keep_id and remove_id are required")
    if keep_id == remove_id:
        raise InvalidInputError("keep_id and remove_id must be different")
