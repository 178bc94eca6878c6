"""
Integration tests for SyncOrchestrator.

Uses stub adapters and an in-memory SQLite DB; progress is read back from
the SyncRun row and the LogEntry table.
"""
from datetime import datetime

import pytest
from sqlmodel import Session, select

from lifelog.models.log import LogEntry
from lifelog.models.sync import SyncRun
from lifelog.sync.base import SourceAdapter, SyncResult
from lifelog.sync.errors import RunAlreadyFinishedError
from lifelog.sync.orchestrator import SyncOrchestrator


# ─── Stub adapters ────────────────────────────────────────────────────────────

class StubAdapter(SourceAdapter):
    source_type = "stub"

    def __init__(self, items, outcome=None, after_error=None):
        self.items = items
        self.outcome = outcome or (lambda item: SyncResult.CREATED)
        self.after_error = after_error
        self.after_called = False
        self.seen_metadata = None

    async def fetch_items(self):
        self.seen_metadata = dict(self.context.metadata)
        if isinstance(self.items, Exception):
            raise self.items
        return self.items

    async def process_item(self, item):
        return self.outcome(item)

    async def after_items(self):
        self.after_called = True
        if self.after_error is not None:
            raise self.after_error


def _reload(engine, run_id) -> SyncRun:
    with Session(engine) as s:
        return s.get(SyncRun, run_id)


def _logs(engine, run_id):
    with Session(engine) as s:
        return s.exec(select(LogEntry).where(LogEntry.sync_run_id == run_id).order_by(LogEntry.id)).all()


def _messages(engine, run_id):
    return [e.message for e in _logs(engine, run_id)]


def _counts(run: SyncRun):
    return run.created_count, run.updated_count, run.skipped_count, run.failed_count


def _assert_counters_add_up(run: SyncRun):
    assert sum(_counts(run)) == run.processed_items


# ─── Happy path ───────────────────────────────────────────────────────────────

class TestPerform:
    @pytest.mark.asyncio
    async def test_sized_run_completes(self, engine):
        outcomes = {1: "created", 2: "updated", 3: "skipped", 4: "created"}
        orchestrator = SyncOrchestrator(StubAdapter([1, 2, 3, 4], outcome=outcomes.get), engine)
        run = await orchestrator.perform()

        stored = _reload(engine, run.id)
        assert stored.status == "completed"
        assert stored.total_items == 4
        assert stored.processed_items == 4
        assert _counts(stored) == (2, 1, 1, 0)
        assert stored.progress_percentage == 100
        assert stored.started_at is not None and stored.completed_at is not None
        _assert_counters_add_up(stored)

    @pytest.mark.asyncio
    async def test_creates_pending_run_up_front(self, engine):
        orchestrator = SyncOrchestrator(StubAdapter([]), engine, user_id=9)
        stored = _reload(engine, orchestrator.run.id)
        assert stored.status == "pending"
        assert stored.source_type == "stub"
        assert stored.user_id == 9

    @pytest.mark.asyncio
    async def test_empty_collection(self, engine):
        run = await SyncOrchestrator(StubAdapter([]), engine).perform()
        assert run.status == "completed"
        assert run.total_items == 0
        assert run.progress_percentage == 100

    @pytest.mark.asyncio
    async def test_lazy_iterable_has_no_total(self, engine):
        run = await SyncOrchestrator(StubAdapter(x for x in range(7)), engine).perform()
        assert run.total_items is None
        assert run.processed_items == 7
        assert run.created_count == 7
        assert "Processing items (total count unknown)..." in _messages(engine, run.id)

    @pytest.mark.asyncio
    async def test_async_iterable(self, engine):
        async def items():
            for x in range(3):
                yield x

        run = await SyncOrchestrator(StubAdapter(items()), engine).perform()
        assert run.total_items is None
        assert run.processed_items == 3

    @pytest.mark.asyncio
    async def test_log_lines(self, engine):
        outcomes = {1: "created", 2: "updated", 3: "skipped"}
        run = await SyncOrchestrator(StubAdapter([1, 2, 3], outcome=outcomes.get), engine).perform()

        assert _messages(engine, run.id) == [
            "Starting stub sync...",
            "Found 3 items to process",
            "Created: Item #1",
            "Updated: Item #2",
            "Skipped: Item #3 (no changes)",
            "Sync completed! Created: 1, Updated: 1, Skipped: 1, Failed: 0",
        ]
        entries = _logs(engine, run.id)
        assert entries[0].event == "sync_started"
        assert entries[-1].event == "sync_completed"
        assert entries[-1].level == "success"

    @pytest.mark.asyncio
    async def test_after_items_runs_before_completion(self, engine):
        adapter = StubAdapter([1])
        run = await SyncOrchestrator(adapter, engine).perform()
        assert adapter.after_called
        assert run.status == "completed"

    @pytest.mark.asyncio
    async def test_adapter_sees_run_metadata(self, engine):
        with Session(engine) as s:
            pending = SyncRun(source_type="stub", run_metadata={"scenario": "quick"})
            s.add(pending)
            s.commit()
            s.refresh(pending)

        adapter = StubAdapter([])
        await SyncOrchestrator(adapter, engine, sync_run=pending).perform()
        assert adapter.seen_metadata == {"scenario": "quick"}
        assert adapter.context.run_id == pending.id


# ─── Failures ─────────────────────────────────────────────────────────────────

class TestItemFailures:
    @pytest.mark.asyncio
    async def test_item_exception_is_counted_and_run_continues(self, engine):
        def outcome(item):
            if item == 2:
                raise ValueError("bad payload")
            return SyncResult.CREATED

        run = await SyncOrchestrator(StubAdapter([1, 2, 3], outcome=outcome), engine).perform()

        assert run.status == "completed"
        assert _counts(run) == (2, 0, 0, 1)
        assert run.processed_items == 3
        errors = [e for e in _logs(engine, run.id) if e.level == "error"]
        assert len(errors) == 1
        assert errors[0].message == "Error processing Item #2: bad payload"
        assert errors[0].data["error"] == "ValueError"

    @pytest.mark.asyncio
    async def test_failed_result_is_counted(self, engine):
        run = await SyncOrchestrator(StubAdapter([1], outcome=lambda item: "failed"), engine).perform()
        assert run.failed_count == 1
        assert "Failed: Item #1" in _messages(engine, run.id)

    @pytest.mark.asyncio
    async def test_invalid_result_counts_as_failed(self, engine):
        run = await SyncOrchestrator(StubAdapter([1], outcome=lambda item: "bogus"), engine).perform()
        assert run.failed_count == 1
        _assert_counters_add_up(run)

    @pytest.mark.asyncio
    async def test_describe_item_failure_falls_back_to_ordinal(self, engine):
        class BadLabels(StubAdapter):
            def describe_item(self, item, ordinal):
                raise AttributeError("no title")

        run = await SyncOrchestrator(BadLabels([1]), engine).perform()
        assert "Created: Item #1" in _messages(engine, run.id)


class TestRunFailures:
    @pytest.mark.asyncio
    async def test_fetch_error_fails_run_and_propagates(self, engine):
        orchestrator = SyncOrchestrator(StubAdapter(ConnectionError("API timeout")), engine)
        with pytest.raises(ConnectionError):
            await orchestrator.perform()

        stored = _reload(engine, orchestrator.run.id)
        assert stored.status == "failed"
        assert stored.error_message == "API timeout"
        assert stored.completed_at is not None
        assert stored.processed_items == 0
        failed = _logs(engine, stored.id)[-1]
        assert failed.message == "Sync failed: API timeout"
        assert failed.event == "sync_failed"

    @pytest.mark.asyncio
    async def test_error_without_message_uses_class_name(self, engine):
        orchestrator = SyncOrchestrator(StubAdapter(TimeoutError()), engine)
        with pytest.raises(TimeoutError):
            await orchestrator.perform()
        assert _reload(engine, orchestrator.run.id).error_message == "TimeoutError"

    @pytest.mark.asyncio
    async def test_after_items_error_fails_run_but_keeps_counts(self, engine):
        orchestrator = SyncOrchestrator(StubAdapter([1, 2], after_error=RuntimeError("delete failed")), engine)
        with pytest.raises(RuntimeError):
            await orchestrator.perform()

        stored = _reload(engine, orchestrator.run.id)
        assert stored.status == "failed"
        assert stored.created_count == 2
        _assert_counters_add_up(stored)


# ─── State machine ────────────────────────────────────────────────────────────

class TestStateMachine:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["completed", "failed"])
    async def test_finished_run_is_not_touched(self, engine, status):
        with Session(engine) as s:
            finished = SyncRun(
                source_type="stub",
                status=status,
                total_items=3,
                processed_items=3,
                created_count=3,
                completed_at=datetime(2024, 1, 1),
            )
            s.add(finished)
            s.commit()
            s.refresh(finished)

        adapter = StubAdapter([1, 2])
        with pytest.raises(RunAlreadyFinishedError):
            await SyncOrchestrator(adapter, engine, sync_run=finished).perform()

        stored = _reload(engine, finished.id)
        assert stored.status == status
        assert stored.processed_items == 3
        assert stored.completed_at == datetime(2024, 1, 1)
        assert adapter.seen_metadata is None
        assert _logs(engine, finished.id) == []

    @pytest.mark.asyncio
    async def test_left_running_run_restarts_from_zero(self, engine):
        with Session(engine) as s:
            stale = SyncRun(
                source_type="stub",
                status="running",
                total_items=20,
                processed_items=5,
                created_count=4,
                failed_count=1,
                error_message="worker lost",
            )
            s.add(stale)
            s.commit()
            s.refresh(stale)

        run = await SyncOrchestrator(StubAdapter([1, 2, 3]), engine, sync_run=stale).perform()
        assert run.id == stale.id
        assert run.status == "completed"
        assert run.total_items == 3
        assert _counts(run) == (3, 0, 0, 0)
        assert run.error_message is None

    def test_source_type_mismatch(self, engine):
        with Session(engine) as s:
            other = SyncRun(source_type="spotify")
            s.add(other)
            s.commit()
            s.refresh(other)

        with pytest.raises(ValueError):
            SyncOrchestrator(StubAdapter([]), engine, sync_run=other)

    def test_adapter_without_source_type(self, engine):
        class Anonymous(StubAdapter):
            source_type = ""

        with pytest.raises(ValueError):
            SyncOrchestrator(Anonymous([]), engine)


# ─── Broadcasts ───────────────────────────────────────────────────────────────

class TestBroadcasts:
    @pytest.mark.asyncio
    async def test_cadence_for_thirteen_items(self, engine, broadcaster):
        orchestrator = SyncOrchestrator(StubAdapter(list(range(13))), engine, broadcast=True, broadcaster=broadcaster)
        run = await orchestrator.perform()

        published = broadcaster.on(f"sync_run:{run.id}")
        statuses = [p["status"] for p in published]
        assert statuses[0] == "running"
        assert statuses[-1] == "completed"
        progress = [p["processed_items"] for p in published[2:-1]]
        assert progress == [4, 5, 7, 10]
        assert len(published) == 7
        assert published[-1]["progress_percentage"] == 100

        percentages = [p["progress_percentage"] for p in published]
        assert percentages == [0, 0, 30, 38, 53, 76, 100]
        assert percentages == sorted(percentages)
        assert all(pct <= 99 for p, pct in zip(published, percentages) if p["status"] == "running")

    @pytest.mark.asyncio
    async def test_log_entries_are_streamed(self, engine, broadcaster):
        run = await SyncOrchestrator(StubAdapter([1, 2]), engine, broadcast=True, broadcaster=broadcaster).perform()
        streamed = [p["message"] for p in broadcaster.on(f"sync_run:{run.id}:logs")]
        assert streamed == _messages(engine, run.id)

    @pytest.mark.asyncio
    async def test_non_interactive_run_publishes_nothing(self, engine, broadcaster):
        await SyncOrchestrator(StubAdapter(list(range(13))), engine, broadcaster=broadcaster).perform()
        assert broadcaster.published == []

    @pytest.mark.asyncio
    async def test_failure_is_published(self, engine, broadcaster):
        orchestrator = SyncOrchestrator(
            StubAdapter(RuntimeError("boom")), engine, broadcast=True, broadcaster=broadcaster,
        )
        with pytest.raises(RuntimeError):
            await orchestrator.perform()

        last = broadcaster.on(f"sync_run:{orchestrator.run.id}")[-1]
        assert last["status"] == "failed"
        assert last["error_message"] == "boom"

    @pytest.mark.asyncio
    async def test_broadcaster_errors_do_not_affect_the_run(self, engine):
        class Broken:
            def publish(self, channel, payload):
                raise ConnectionError("pubsub down")

        run = await SyncOrchestrator(StubAdapter([1, 2, 3]), engine, broadcast=True, broadcaster=Broken()).perform()
        assert run.status == "completed"
        assert run.created_count == 3

    @pytest.mark.asyncio
    async def test_broadcast_flag_marks_existing_run_interactive(self, engine, broadcaster):
        with Session(engine) as s:
            pending = SyncRun(source_type="stub")
            s.add(pending)
            s.commit()
            s.refresh(pending)

        await SyncOrchestrator(StubAdapter([1]), engine, sync_run=pending, broadcast=True, broadcaster=broadcaster).perform()
        assert _reload(engine, pending.id).interactive is True
        assert broadcaster.on(f"sync_run:{pending.id}")
