"""
lastfm_daily: total scrobbles per calendar day.

Items are dates. The window starts ``overlap_days`` before the newest stored
day (late scrobbles get counted after the fact) and ends today; with nothing
stored the whole history since the first scrobble is imported.
"""
from datetime import date, datetime
from typing import List

from sqlalchemy import func
from sqlmodel import Session, select

from lifelog.models.music import ScrobbleCount
from lifelog.sources.lastfm.base import LastfmSource
from lifelog.sync.base import SyncResult
from lifelog.sync.incremental import date_range, sync_window


class DailyScrobbleCountsSource(LastfmSource):
    source_type = "lastfm_daily"

    async def fetch_items(self) -> List[date]:
        config = self.client.config
        with Session(self.engine) as s:
            last_known = s.exec(select(func.max(ScrobbleCount.played_on))).one()

        if last_known is None:
            self.log.info(
                f"No existing daily counts found, importing all history since "
                f"{config.started_scrobbling}"
            )
        start, end = sync_window(last_known, config.overlap_days, config.started_scrobbling, self.today)
        days = date_range(start, end)
        self.log.info(f"Will sync {len(days)} days of scrobble counts", start=start, end=end)
        return days

    async def process_item(self, day: date) -> SyncResult:
        plays = await self.client.daily_play_count(day)
        if plays == 0:
            return SyncResult.SKIPPED

        with Session(self.engine) as s:
            row = s.exec(select(ScrobbleCount).where(ScrobbleCount.played_on == day)).first()
            if row is None:
                s.add(ScrobbleCount(played_on=day, plays=plays))
                s.commit()
                return SyncResult.CREATED
            if row.plays == plays:
                return SyncResult.SKIPPED
            row.plays = plays
            row.updated_at = datetime.utcnow()
            s.add(row)
            s.commit()
            return SyncResult.UPDATED

    def describe_item(self, day: date, ordinal: int) -> str:
        return day.isoformat()
