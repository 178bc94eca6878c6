"""Tests for the synthetic demo source."""
import random
from collections.abc import Sized

import pytest

from lifelog.sources.demo import SCENARIOS, DemoSource, outcome_for
from lifelog.sync.base import SyncContext, SyncResult


def _demo(scenario=None, metadata=None, seed=1) -> DemoSource:
    source = DemoSource(scenario, rng=random.Random(seed), delay_scale=0)
    context = SyncContext.detached(prefix="demo")
    context.metadata.update(metadata or {})
    source.bind(context)
    return source


class TestOutcomes:
    def test_outcome_by_position(self):
        assert [outcome_for(i) for i in range(1, 11)] == ["create"] * 6 + ["update"] * 3 + ["skip"]

    @pytest.mark.asyncio
    async def test_outcomes_map_to_results(self):
        source = _demo("quick")
        items = await source.fetch_items()
        results = [await source.process_item(item) for item in items]
        assert results == [SyncResult.CREATED] * 6 + [SyncResult.UPDATED] * 3 + [SyncResult.SKIPPED]


class TestScenarioSelection:
    def test_metadata_wins(self):
        assert _demo("slow", metadata={"scenario": "quick"}).scenario_name == "quick"

    def test_adapter_default(self):
        assert _demo("slow").scenario_name == "slow"

    def test_fallback_to_normal(self):
        assert _demo().scenario_name == "normal"

    def test_unknown_scenario_falls_back(self):
        assert _demo("nonsense").scenario_name == "normal"


class TestFetchItems:
    @pytest.mark.asyncio
    async def test_sized_scenario(self):
        items = await _demo("error_prone").fetch_items()
        assert isinstance(items, list)
        assert len(items) == SCENARIOS["error_prone"]["item_count"]
        assert [i["index"] for i in items] == list(range(1, 21))

    @pytest.mark.asyncio
    async def test_unknown_count_is_lazy(self):
        items = await _demo("unknown_count").fetch_items()
        assert not isinstance(items, Sized)
        materialized = list(items)
        low, high = SCENARIOS["unknown_count"]["item_count"]
        assert low <= len(materialized) <= high
        assert [i["index"] for i in materialized] == list(range(1, len(materialized) + 1))

    @pytest.mark.asyncio
    async def test_same_seed_same_items(self):
        first = await _demo("quick", seed=7).fetch_items()
        second = await _demo("quick", seed=7).fetch_items()
        assert first == second


class TestProcessItem:
    @pytest.mark.asyncio
    async def test_will_fail_raises_at_item_five(self):
        source = _demo("will_fail")
        items = await source.fetch_items()
        for item in items[:4]:
            await source.process_item(item)
        with pytest.raises(RuntimeError, match="item 5"):
            await source.process_item(items[4])

    @pytest.mark.asyncio
    async def test_failure_rate(self, monkeypatch):
        monkeypatch.setitem(SCENARIOS, "quick", dict(SCENARIOS["quick"], failure_rate=0.5))
        source = _demo("quick")
        items = await source.fetch_items()

        source.rng.random = lambda: 0.1
        assert await source.process_item(items[0]) == SyncResult.FAILED
        source.rng.random = lambda: 0.9
        assert await source.process_item(items[0]) == SyncResult.CREATED

    def test_describe_item(self):
        item = {"index": 3, "title": "Alpha Flux 3"}
        assert _demo().describe_item(item, 3) == "Demo Item #3: Alpha Flux 3"
