"""
SourceAdapter contract: the strategy every integration implements.

    fetch_items()        -> a sized collection (list/tuple, total known) or a
                            lazy iterable / async iterable (total unknown)
    process_item(item)   -> SyncResult, idempotent via a natural-key lookup
    describe_item(item)  -> short label for logging (optional)
    after_items()        -> post-loop hook, e.g. applying detected deletions

Genuine per-item failures raise; "nothing to do" returns SKIPPED. An
exception from fetch_items() fails the whole run.
"""
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sized
from enum import Enum
from typing import Any, AsyncIterator, Dict, Iterable, Optional

from sqlmodel import Session

from lifelog.models.sync import SyncRun
from lifelog.sync.logsink import LogSink, json_safe


class SyncResult(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


# failed > created > updated > skipped
_PRECEDENCE = (SyncResult.FAILED, SyncResult.CREATED, SyncResult.UPDATED, SyncResult.SKIPPED)


def reduce_results(results: Iterable[Any]) -> SyncResult:
    """Fold several sub-results into one overall outcome."""
    seen = {SyncResult(r) for r in results}
    for result in _PRECEDENCE:
        if result in seen:
            return result
    return SyncResult.SKIPPED


def is_sized(items: Any) -> bool:
    return isinstance(items, Sized)


async def iterate_items(items: Any) -> AsyncIterator[Any]:
    """Iterate sync and async iterables alike, one item at a time."""
    if hasattr(items, "__aiter__"):
        async for item in items:
            yield item
    else:
        for item in items:
            yield item


class SyncContext:
    """What an adapter may see of the run it is working for."""

    def __init__(
        self,
        log: LogSink,
        *,
        engine=None,
        run_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.log = log
        self.engine = engine
        self.run_id = run_id
        self.metadata: Dict[str, Any] = dict(metadata or {})

    @classmethod
    def detached(cls, prefix: Optional[str] = None) -> "SyncContext":
        """Context for an adapter used outside an orchestrated run (stdlib log only)."""
        return cls(LogSink(None, prefix=prefix))

    def update_metadata(self, **values: Any) -> None:
        """Merge values into the run's metadata map and persist them."""
        values = json_safe(values)
        self.metadata.update(values)
        if self.engine is None or self.run_id is None:
            return
        with Session(self.engine) as s:
            run = s.get(SyncRun, self.run_id)
            # Reassign so the JSON column is flagged dirty
            run.run_metadata = {**(run.run_metadata or {}), **values}
            s.add(run)
            s.commit()


class SourceAdapter(ABC):
    """Base class for source integrations."""

    #: Stable identifier used for run records, log prefixes and the registry.
    source_type: str = ""

    _context: Optional[SyncContext] = None

    @property
    def context(self) -> SyncContext:
        if self._context is None:
            self._context = SyncContext.detached(prefix=self.source_type)
        return self._context

    @property
    def log(self) -> LogSink:
        return self.context.log

    def bind(self, context: SyncContext) -> None:
        """Attach the adapter to a run. Called by the orchestrator before fetching."""
        self._context = context

    @abstractmethod
    async def fetch_items(self) -> Any:
        """Return the items to process: a sized collection or a lazy iterable."""

    @abstractmethod
    async def process_item(self, item: Any) -> SyncResult:
        """Map one raw item onto local state."""

    def describe_item(self, item: Any, ordinal: int) -> str:
        """Label for log lines: the item's title or name, else its ordinal."""
        if isinstance(item, Mapping):
            label = item.get("title") or item.get("name")
        else:
            label = getattr(item, "title", None) or getattr(item, "name", None)
        return str(label) if label else f"Item #{ordinal}"

    async def after_items(self) -> None:
        """Hook run after every item has been processed, before completion."""
