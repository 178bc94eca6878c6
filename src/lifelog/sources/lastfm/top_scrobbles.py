"""
lastfm_top: ranked top lists for every category/period combination.

One item per (category, period) task, 3 x 6 = 18 tasks. Each task upserts
one TopScrobble per ranked position, drops positions beyond the list it
just received, and reports the reduced outcome of its positions.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Tuple

from sqlmodel import Session, select

from lifelog.models.music import TopScrobble
from lifelog.sources.lastfm.base import LastfmSource
from lifelog.sync.base import SyncResult, reduce_results

CATEGORIES = ("artist", "album", "track")
PERIODS = ("7day", "1month", "3month", "6month", "12month", "overall")
TOP_ITEMS_LIMIT = 50

_COMPARED_FIELDS = ("artist", "name", "plays", "rank", "url")


@dataclass(frozen=True)
class TopScrobbleTask:
    category: str
    period: str


def extract_names(item: Dict[str, Any], category: str) -> Tuple[str, str]:
    """(artist, name) for a top-list entry; artists have no separate name."""
    if category == "artist":
        return item.get("name") or "", ""
    artist = item.get("artist") or {}
    return artist.get("name") or artist.get("#text") or "", item.get("name") or ""


class TopScrobblesSource(LastfmSource):
    source_type = "lastfm_top"

    async def fetch_items(self) -> List[TopScrobbleTask]:
        tasks = [TopScrobbleTask(c, p) for c in CATEGORIES for p in PERIODS]
        self.log.info(
            f"Will process {len(tasks)} top scrobble tasks "
            f"({len(CATEGORIES)} categories x {len(PERIODS)} periods)"
        )
        return tasks

    async def process_item(self, task: TopScrobbleTask) -> SyncResult:
        items = await self.client.top_items(task.category, task.period, limit=TOP_ITEMS_LIMIT)
        if not items:
            self.log.info(f"No items found for {task.category}/{task.period}")
            return SyncResult.SKIPPED

        results = []
        for position, item in enumerate(items, start=1):
            try:
                results.append(self._upsert_position(task, position, item))
            except Exception as exc:
                self.log.error(
                    f"Failed to process {task.category}/{task.period} position {position}: {exc}"
                )
                results.append(SyncResult.FAILED)

        self._clear_positions_after(task, len(items))
        return reduce_results(results)

    def describe_item(self, task: TopScrobbleTask, ordinal: int) -> str:
        return f"{task.category.capitalize()}s for {task.period}"

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _upsert_position(self, task: TopScrobbleTask, position: int, item: Dict[str, Any]) -> SyncResult:
        artist, name = extract_names(item, task.category)
        fields = {
            "artist": artist,
            "name": name,
            "plays": int(item.get("playcount") or 0),
            "rank": int((item.get("@attr") or {}).get("rank") or position),
            "url": item.get("url") or "",
        }

        with Session(self.engine) as s:
            row = s.exec(
                select(TopScrobble).where(
                    TopScrobble.category == task.category,
                    TopScrobble.period == task.period,
                    TopScrobble.position == position,
                )
            ).first()

            if row is None:
                s.add(TopScrobble(category=task.category, period=task.period, position=position, **fields))
                s.commit()
                return SyncResult.CREATED

            if all(getattr(row, f) == fields[f] for f in _COMPARED_FIELDS):
                return SyncResult.SKIPPED

            for k, v in fields.items():
                setattr(row, k, v)
            row.revised_at = datetime.utcnow()
            s.add(row)
            s.commit()
            return SyncResult.UPDATED

    def _clear_positions_after(self, task: TopScrobbleTask, last_position: int) -> None:
        with Session(self.engine) as s:
            stale = s.exec(
                select(TopScrobble).where(
                    TopScrobble.category == task.category,
                    TopScrobble.period == task.period,
                    TopScrobble.position > last_position,
                )
            ).all()
            for row in stale:
                s.delete(row)
            s.commit()
