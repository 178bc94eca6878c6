"""
lastfm_weekly: per-week artist and album play counts from Last.fm charts.

Items are chart weeks. First import takes every week Last.fm offers; later
runs take the weeks ending after the newest stored week, or re-check the
last RECHECK_WEEKS weeks when nothing new has closed. Each week performs two
sub-fetches (artist chart, album chart) whose outcomes are reduced into one.
"""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import func
from sqlmodel import Session, select

from lifelog.models.music import ScrobblePlay
from lifelog.sources.lastfm.base import LastfmSource
from lifelog.sync.base import SyncResult, reduce_results

RECHECK_WEEKS = 10


@dataclass(frozen=True)
class ChartWeek:
    start: int  # epoch seconds, as Last.fm reports them
    end: int

    @property
    def ending(self) -> date:
        return datetime.fromtimestamp(self.end, tz=timezone.utc).date()


class WeeklyChartsSource(LastfmSource):
    source_type = "lastfm_weekly"

    async def fetch_items(self) -> List[ChartWeek]:
        charts = await self.client.weekly_chart_list()
        weeks = [ChartWeek(int(c["from"]), int(c["to"])) for c in charts]
        self.log.info(f"Found {len(weeks)} total weekly charts")

        with Session(self.engine) as s:
            last_known = s.exec(select(func.max(ScrobblePlay.played_on))).one()

        if last_known is None:
            self.log.info("No existing weekly plays found, importing all weeks")
            return weeks

        new_weeks = [w for w in weeks if w.ending > last_known]
        if not new_weeks:
            self.log.info(f"No new weeks since {last_known}, re-checking the last {RECHECK_WEEKS}")
            return weeks[-RECHECK_WEEKS:]
        self.log.info(f"Found {len(new_weeks)} new weeks since {last_known}")
        return new_weeks

    async def process_item(self, week: ChartWeek) -> SyncResult:
        artists = await self._sync_chart(week, "artist")
        albums = await self._sync_chart(week, "album")
        return reduce_results([artists, albums])

    def describe_item(self, week: ChartWeek, ordinal: int) -> str:
        return f"Week ending {week.ending.isoformat()}"

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _sync_chart(self, week: ChartWeek, category: str) -> SyncResult:
        """One sub-fetch. A request failure only fails this half of the week."""
        try:
            if category == "artist":
                entries = await self.client.weekly_artist_chart(week.start, week.end)
            else:
                entries = await self.client.weekly_album_chart(week.start, week.end)
        except Exception as exc:
            self.log.error(f"Failed to sync weekly {category}s: {exc}", week=week.ending)
            return SyncResult.FAILED

        results = []
        for entry in entries:
            try:
                results.append(self._upsert_play(category, entry, week.ending))
            except Exception as exc:
                self.log.error(f"Failed to process {category}: {exc}", week=week.ending)
                results.append(SyncResult.FAILED)

        counts = {r: results.count(r) for r in SyncResult}
        self.log.debug(
            f"{category.capitalize()}s - Created: {counts[SyncResult.CREATED]}, "
            f"Updated: {counts[SyncResult.UPDATED]}, Failed: {counts[SyncResult.FAILED]}",
            week=week.ending,
        )
        return reduce_results(results)

    def _upsert_play(self, category: str, entry: Dict[str, Any], ending: date) -> SyncResult:
        plays = int(entry.get("playcount") or 0)
        if category == "artist":
            artist, name = entry.get("name") or "", ""
        else:
            artist = (entry.get("artist") or {}).get("#text") or ""
            name = entry.get("name") or ""
            if not name:
                return SyncResult.SKIPPED
        if not artist or plays == 0:
            return SyncResult.SKIPPED

        with Session(self.engine) as s:
            row = s.exec(
                select(ScrobblePlay).where(
                    ScrobblePlay.category == category,
                    ScrobblePlay.artist == artist,
                    ScrobblePlay.name == name,
                    ScrobblePlay.played_on == ending,
                )
            ).first()

            if row is None:
                s.add(ScrobblePlay(category=category, artist=artist, name=name, played_on=ending, plays=plays))
                s.commit()
                return SyncResult.CREATED
            if row.plays == plays:
                return SyncResult.SKIPPED
            row.plays = plays
            row.updated_at = datetime.utcnow()
            s.add(row)
            s.commit()
            return SyncResult.UPDATED
