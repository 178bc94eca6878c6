"""
demo: synthetic items for exercising progress, logging and broadcasts
without touching a real service.

The scenario comes from the run's metadata (``{"scenario": "slow"}``), then
the adapter's own setting, then "normal". Randomness goes through an
injectable ``random.Random`` so runs can be reproduced.
"""
import asyncio
import random
import uuid
from typing import Any, Dict, Iterator, List, Optional, Union

from lifelog.sync.base import SourceAdapter, SyncResult

SCENARIOS: Dict[str, Dict[str, Any]] = {
    "quick": {"item_count": 10, "delay": 0.1, "failure_rate": 0.0},
    "normal": {"item_count": 50, "delay": 0.2, "failure_rate": 0.1},
    "slow": {"item_count": 100, "delay": 0.5, "failure_rate": 0.05},
    "error_prone": {"item_count": 20, "delay": 0.1, "failure_rate": 0.3},
    "will_fail": {"item_count": 10, "delay": 0.1, "failure_rate": 0.0, "force_error_at": 5},
    # item_count drawn per run from this range; items are yielded lazily
    "unknown_count": {"item_count": (20, 60), "delay": 0.1, "failure_rate": 0.05, "hide_count": True},
}
DEFAULT_SCENARIO = "normal"
BATCH_SIZE = 10

_PREFIXES = ("Alpha", "Beta", "Gamma", "Delta", "Epsilon")
_SUFFIXES = ("Prime", "Secondary", "Tertiary", "Quantum", "Flux")


def outcome_for(index: int) -> str:
    """Planned outcome by position: 1-6 create, 7-9 update, 0 skip (mod 10)."""
    bucket = index % 10
    if 1 <= bucket <= 6:
        return "create"
    if bucket >= 7:
        return "update"
    return "skip"


class DemoSource(SourceAdapter):
    source_type = "demo"

    def __init__(
        self,
        scenario: Optional[str] = None,
        *,
        rng: Optional[random.Random] = None,
        delay_scale: float = 1.0,
    ):
        """
        Args:
            scenario: Scenario used when the run's metadata names none.
            rng: Source of randomness (titles, failures, lazy item count).
            delay_scale: Multiplier on simulated per-item work; 0 disables sleeping.
        """
        self.default_scenario = scenario
        self.rng = rng or random.Random()
        self.delay_scale = delay_scale

    @property
    def scenario_name(self) -> str:
        name = self.context.metadata.get("scenario") or self.default_scenario or DEFAULT_SCENARIO
        return name if name in SCENARIOS else DEFAULT_SCENARIO

    @property
    def scenario(self) -> Dict[str, Any]:
        return SCENARIOS[self.scenario_name]

    async def fetch_items(self) -> Union[List[Dict[str, Any]], Iterator[Dict[str, Any]]]:
        scenario = self.scenario
        self.log.info(f"Using demo scenario: {self.scenario_name}", scenario=self.scenario_name)

        count = scenario["item_count"]
        if isinstance(count, tuple):
            count = self.rng.randint(*count)

        if scenario.get("hide_count"):
            return self._generate_lazily(count)
        self.log.info(f"Generating {count} demo items...")
        return [self._make_item(i) for i in range(1, count + 1)]

    async def process_item(self, item: Dict[str, Any]) -> SyncResult:
        scenario = self.scenario
        delay = scenario["delay"] * self.delay_scale
        if delay > 0:
            await asyncio.sleep(delay)

        if scenario.get("force_error_at") == item["index"]:
            raise RuntimeError(f"Simulated error at item {item['index']}")

        if self.rng.random() < scenario["failure_rate"]:
            self.log.warning("Simulated failure for item", item_index=item["index"])
            return SyncResult.FAILED

        outcome = item["type"]
        if outcome == "create":
            return SyncResult.CREATED
        if outcome == "update":
            self.log.debug(f"Updated: {item['title']}", value=item["value"])
            return SyncResult.UPDATED
        return SyncResult.SKIPPED

    def describe_item(self, item: Dict[str, Any], ordinal: int) -> str:
        return f"Demo Item #{item['index']}: {item['title']}"

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _make_item(self, index: int) -> Dict[str, Any]:
        return {
            "index": index,
            "id": str(uuid.UUID(int=self.rng.getrandbits(128))),
            "title": f"{self.rng.choice(_PREFIXES)} {self.rng.choice(_SUFFIXES)} {index}",
            "type": outcome_for(index),
            "value": self.rng.randrange(100),
        }

    def _generate_lazily(self, count: int) -> Iterator[Dict[str, Any]]:
        batches = -(-count // BATCH_SIZE)
        for batch in range(batches):
            self.log.info(f"Fetching batch {batch + 1}/{batches}...")
            start = batch * BATCH_SIZE + 1
            for index in range(start, min(start + BATCH_SIZE - 1, count) + 1):
                yield self._make_item(index)
