"""Tests for merge audit recording."""

from typing import Any
from unittest.mock import AsyncMock

import pytest

from src.dedup.audit import AuditRecorder, SqlAuditSink
from src.dedup.models import MergeAuditRecord, MergeOutcome
from src.exceptions import StoreUnavailableError
from src.store.database import Database
from tests.conftest import TEST_TENANT_ID


def _record(outcome: MergeOutcome, keep_id: str = "k1", **fields: Any) -> MergeAuditRecord:
    return MergeAuditRecord(
        tenant_id=TEST_TENANT_ID,
        keep_id=keep_id,
        remove_id="r1",
        actor="staff@example.jp",
        outcome=outcome,
        **fields,
    )


class TestSqlAuditSink:
    """Tests for SqlAuditSink."""

    @pytest.mark.anyio
    async def test_append_and_list(self, database: Database) -> None:
        sink = SqlAuditSink(database)
        await sink.append(
            _record(
                MergeOutcome.SUCCESS,
                details={"orders": {"transferred": 2, "discarded": 0}},
                removed_snapshot={"patient_id": "r1", "tel": "09011112222"},
            )
        )

        records = await sink.list_for_tenant(TEST_TENANT_ID)

        assert len(records) == 1
        assert records[0].outcome == MergeOutcome.SUCCESS
        assert records[0].details == {"orders": {"transferred": 2, "discarded": 0}}
        assert records[0].removed_snapshot == {"patient_id": "r1", "tel": "09011112222"}

    @pytest.mark.anyio
    async def test_latest_for_skips_rejected(self, database: Database) -> None:
        sink = SqlAuditSink(database)
        await sink.append(_record(MergeOutcome.PARTIAL_FAILURE, resume_point=3))
        await sink.append(_record(MergeOutcome.REJECTED, keep_id="k2", error="conflict: busy"))

        latest = await sink.latest_for(TEST_TENANT_ID, "r1")

        assert latest is not None
        assert latest.outcome == MergeOutcome.PARTIAL_FAILURE
        assert latest.resume_point == 3
        assert await sink.latest_for(TEST_TENANT_ID, "unknown") is None


class TestAuditRecorder:
    """Tests for AuditRecorder."""

    @pytest.mark.anyio
    async def test_failed_append_is_queued(self) -> None:
        sink = AsyncMock()
        sink.append.side_effect = StoreUnavailableError("audit store down")
        recorder = AuditRecorder(sink)

        recorded = await recorder.record(_record(MergeOutcome.SUCCESS))

        assert recorded is False
        assert len(recorder.pending) == 1

    @pytest.mark.anyio
    async def test_flush_pending_in_order(self) -> None:
        sink = AsyncMock()
        sink.append.side_effect = [StoreUnavailableError("down"), StoreUnavailableError("down"), None, None]
        recorder = AuditRecorder(sink)
        first = _record(MergeOutcome.PARTIAL_FAILURE, resume_point=1)
        second = _record(MergeOutcome.SUCCESS)

        await recorder.record(first)
        await recorder.record(second)
        written = await recorder.flush_pending()

        assert written == 2
        assert not recorder.pending
        assert [call.args[0] for call in sink.append.await_args_list[2:]] == [first, second]

    @pytest.mark.anyio
    async def test_flush_stops_at_first_failure(self) -> None:
        sink = AsyncMock()
        sink.append.side_effect = StoreUnavailableError("down")
        recorder = AuditRecorder(sink)
        await recorder.record(_record(MergeOutcome.SUCCESS))

        assert await recorder.flush_pending() == 0
        assert len(recorder.pending) == 1
