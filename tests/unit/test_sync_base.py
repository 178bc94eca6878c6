"""Tests for the SourceAdapter contract helpers."""
from types import SimpleNamespace

import pytest
from sqlmodel import Session

from lifelog.models.sync import SyncRun
from lifelog.sync.base import (
    SourceAdapter,
    SyncContext,
    SyncResult,
    is_sized,
    iterate_items,
    reduce_results,
)
from lifelog.sync.logsink import LogSink


class _Adapter(SourceAdapter):
    source_type = "test"

    async def fetch_items(self):
        return []

    async def process_item(self, item):
        return SyncResult.SKIPPED


class TestReduceResults:
    def test_failed_wins(self):
        assert reduce_results(["created", "failed", "updated"]) == SyncResult.FAILED

    def test_created_beats_updated(self):
        assert reduce_results([SyncResult.UPDATED, SyncResult.CREATED]) == SyncResult.CREATED

    def test_updated_beats_skipped(self):
        assert reduce_results([SyncResult.SKIPPED, SyncResult.UPDATED]) == SyncResult.UPDATED

    def test_empty_is_skipped(self):
        assert reduce_results([]) == SyncResult.SKIPPED

    def test_rejects_unknown_values(self):
        with pytest.raises(ValueError):
            reduce_results(["done"])


class TestItems:
    def test_is_sized(self):
        assert is_sized([1, 2])
        assert is_sized((1,))
        assert not is_sized(x for x in [1])

    @pytest.mark.asyncio
    async def test_iterate_sync_iterable(self):
        assert [i async for i in iterate_items(x for x in [1, 2, 3])] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_iterate_async_iterable(self):
        async def gen():
            for x in ("a", "b"):
                yield x

        assert [i async for i in iterate_items(gen())] == ["a", "b"]


class TestDescribeItem:
    def test_mapping_title(self):
        assert _Adapter().describe_item({"title": "Dune"}, 1) == "Dune"

    def test_mapping_name(self):
        assert _Adapter().describe_item({"name": "Road Trip"}, 1) == "Road Trip"

    def test_attribute(self):
        assert _Adapter().describe_item(SimpleNamespace(name="Morning Run"), 1) == "Morning Run"

    def test_ordinal_fallback(self):
        assert _Adapter().describe_item(42, 3) == "Item #3"


class TestSyncContext:
    def test_detached_context(self):
        adapter = _Adapter()
        assert adapter.context.run_id is None
        assert adapter.log.prefix == "test"

    def test_update_metadata_without_run(self):
        context = SyncContext.detached()
        context.update_metadata(etag="abc")
        assert context.metadata == {"etag": "abc"}

    def test_update_metadata_persists(self, engine):
        with Session(engine) as s:
            run = SyncRun(source_type="letterboxd", run_metadata={"seed": 1})
            s.add(run)
            s.commit()
            s.refresh(run)

        context = SyncContext(LogSink(engine), engine=engine, run_id=run.id, metadata=run.run_metadata)
        context.update_metadata(etag="abc", feed_title="Diary")

        with Session(engine) as s:
            stored = s.get(SyncRun, run.id)
        assert stored.run_metadata == {"seed": 1, "etag": "abc", "feed_title": "Diary"}
        assert context.metadata["etag"] == "abc"

    def test_bind(self, engine):
        adapter = _Adapter()
        context = SyncContext(LogSink(engine), engine=engine, run_id=5)
        adapter.bind(context)
        assert adapter.context is context
