"""
Best-effort publication of sync progress to live observers.

A broadcast is a fire-and-forget publish of the current SyncRun snapshot on
the run's channel. Nothing here may affect the run: publishers never raise,
and a publish with no subscribers is simply dropped.

Cadence while items are processed (terminal transitions always publish):
  - every 5th processed item;
  - when the total is known, the first item whose cumulative percentage
    crosses 25, 50 or 75. Lazy sources with no total only get every-5.
"""
import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 5
MILESTONES = (25, 50, 75)


def status_channel(run_id: int) -> str:
    return f"sync_run:{run_id}"


def log_channel(run_id: int) -> str:
    return f"sync_run:{run_id}:logs"


def _floor_percent(processed: int, total: int) -> int:
    return processed * 100 // total


def crossed_milestones(processed: int, total: Optional[int]) -> List[int]:
    """Milestones newly crossed by the item that brought the count to ``processed``.

    Compares the percentage before this item with the percentage after it,
    so a bucket only fires once however many items land inside it.
    """
    if not total or processed <= 0:
        return []
    before = _floor_percent(processed - 1, total)
    after = _floor_percent(processed, total)
    return [m for m in MILESTONES if before < m <= after]


def broadcast_triggers(processed: int, total: Optional[int]) -> List[str]:
    """Names of the progress triggers that fire at ``processed`` items.

    The every-5 and milestone rules are independent and may both fire on
    the same item (e.g. item 10 of 13).
    """
    triggers = []
    if processed > 0 and processed % PROGRESS_EVERY == 0:
        triggers.append("every_5")
    triggers.extend(f"milestone_{m}" for m in crossed_milestones(processed, total))
    return triggers


def should_broadcast_progress(processed: int, total: Optional[int]) -> bool:
    return bool(broadcast_triggers(processed, total))


class StatusBroadcaster(Protocol):
    def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        """Publish payload on channel. Returns True if any subscriber was handed it."""
        ...


class NullBroadcaster:
    """Broadcaster for non-interactive processes: drops everything."""

    def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        return False


class InMemoryBroadcaster:
    """
    In-process pub/sub over asyncio queues.

    Subscribers call subscribe() from inside their event loop and await the
    returned queue. publish() may be called from any thread; delivery is
    scheduled on each subscriber's loop. Queues are bounded: when a slow
    subscriber's queue is full the oldest payload is dropped.
    """

    def __init__(self, max_queue_size: int = 100):
        self._max_queue_size = max_queue_size
        self._subscribers: Dict[str, List[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: str) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        with self._lock:
            self._subscribers.setdefault(channel, []).append((loop, queue))
        return queue

    def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
        with self._lock:
            subs = self._subscribers.get(channel, [])
            self._subscribers[channel] = [(l, q) for l, q in subs if q is not queue]
            if not self._subscribers[channel]:
                del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))

    def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        with self._lock:
            subs = list(self._subscribers.get(channel, []))
        delivered = False
        for loop, queue in subs:
            try:
                loop.call_soon_threadsafe(self._deliver, queue, payload)
                delivered = True
            except RuntimeError:
                # Subscriber's loop already closed; it will never read again
                logger.debug("Dropping broadcast on %s: subscriber loop closed", channel)
                self.unsubscribe(channel, queue)
        return delivered

    @staticmethod
    def _deliver(queue: asyncio.Queue, payload: Dict[str, Any]) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(payload)


_broadcaster: Optional[InMemoryBroadcaster] = None


def get_broadcaster() -> InMemoryBroadcaster:
    """Return the process-wide broadcaster shared by runs and the HTTP stream."""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = InMemoryBroadcaster()
    return _broadcaster
