"""Incremental-sync helpers: overlap windows and deletion detection."""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Hashable, Iterable, List, Optional, Set, Tuple


def sync_window(
    last_known: Optional[date],
    overlap_days: int,
    floor: date,
    today: date,
) -> Tuple[date, date]:
    """Inclusive date range to re-sync.

    With nothing stored yet the whole history from ``floor`` is pulled.
    Otherwise the window reaches back ``overlap_days`` before the newest
    stored date to catch late edits at the source, never before ``floor``.

    >>> sync_window(date(2024, 1, 10), 7, date(2008, 2, 7), date(2024, 1, 20))
    (datetime.date(2024, 1, 3), datetime.date(2024, 1, 20))
    """
    if last_known is None:
        return floor, today
    start = max(last_known - timedelta(days=overlap_days), floor)
    return min(start, today), today


def date_range(start: date, end: date) -> List[date]:
    """Every date from start to end inclusive."""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


@dataclass
class IdDiff:
    """Outcome of comparing locally known IDs with a fresh remote listing."""

    deleted: Set[Hashable] = field(default_factory=set)  # local only
    retained: Set[Hashable] = field(default_factory=set)  # both sides
    new: Set[Hashable] = field(default_factory=set)  # remote only


def diff_ids(previous: Iterable[Hashable], fetched: Iterable[Hashable]) -> IdDiff:
    """Split IDs into deleted / retained / new.

    >>> d = diff_ids({1, 2, 3, 4}, {2, 3, 5})
    >>> sorted(d.deleted), sorted(d.retained), sorted(d.new)
    ([1, 4], [2, 3], [5])
    """
    previous, fetched = set(previous), set(fetched)
    return IdDiff(
        deleted=previous - fetched,
        retained=previous & fetched,
        new=fetched - previous,
    )
