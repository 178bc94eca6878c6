"""
garmin: recent activities, with deletions mirrored.

fetch_items() pages activities newest-first until one starts before the
recency window, then diffs the stored IDs inside the window against the IDs
Garmin returned. Anything stored but no longer returned was deleted on
Garmin's side; those rows are removed in after_items(), once every fetched
activity has been upserted.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set

from sqlmodel import Session, select

from lifelog.config import get_settings
from lifelog.models.activity import Activity
from lifelog.sources.garmin.auth import GarminAuth
from lifelog.sources.garmin.client import GarminClient, GarminConfig
from lifelog.sources.garmin.normalizer import activity_start_time, normalize_activity
from lifelog.sync.base import SourceAdapter, SyncResult
from lifelog.sync.incremental import diff_ids
from lifelog.sync.logsink import auth_log

PAGE_SIZE = 50


class GarminActivitiesSource(SourceAdapter):
    source_type = "garmin"

    def __init__(
        self,
        engine,
        client: Optional[GarminClient] = None,
        *,
        config: Optional[GarminConfig] = None,
        settings=None,
        now: Optional[datetime] = None,
    ):
        self.engine = engine
        self._client = client
        self._config = config
        self._settings = settings
        self._now = now
        self.deleted_ids: Set[str] = set()

    @property
    def config(self) -> GarminConfig:
        if self._config is None:
            self._config = GarminConfig.from_settings(self._settings or get_settings())
        return self._config

    @property
    def client(self) -> GarminClient:
        if self._client is None:
            auth = GarminAuth(self.config.tokens_dir, log=auth_log(self.engine))
            self._client = GarminClient(auth)
        return self._client

    async def fetch_items(self) -> List[Dict[str, Any]]:
        days_back = self.config.days_back
        cutoff = (self._now or datetime.utcnow()) - timedelta(days=days_back)
        self.log.info(f"Fetching Garmin activities from last {days_back} days")

        if not self.client.connected:
            await self.client.connect()
        activities = await self._fetch_since(cutoff)

        with Session(self.engine) as s:
            stored = s.exec(
                select(Activity.garmin_activity_id).where(Activity.start_time_utc >= cutoff)
            ).all()
        diff = diff_ids(stored, (str(a["activityId"]) for a in activities))
        self.deleted_ids = set(diff.deleted)

        if self.deleted_ids:
            self.log.info(f"Found {len(self.deleted_ids)} deleted activities to remove")
        self.log.info(f"Found {len(activities)} activities to process")
        return activities

    async def process_item(self, raw: Dict[str, Any]) -> SyncResult:
        fields = normalize_activity(raw)

        with Session(self.engine) as s:
            existing = s.exec(
                select(Activity).where(Activity.garmin_activity_id == fields["garmin_activity_id"])
            ).first()

            if existing is None:
                s.add(Activity(**fields))
                s.commit()
                return SyncResult.CREATED

            if all(getattr(existing, k) == v for k, v in fields.items()):
                return SyncResult.SKIPPED

            for k, v in fields.items():
                setattr(existing, k, v)
            existing.synced_at = datetime.utcnow()
            s.add(existing)
            s.commit()
            return SyncResult.UPDATED

    def describe_item(self, raw: Dict[str, Any], ordinal: int) -> str:
        name = raw.get("activityName") or f"Activity {raw.get('activityId')}"
        started = raw.get("startTimeLocal")
        return f"{name} ({started})" if started else name

    async def after_items(self) -> None:
        if not self.deleted_ids:
            return
        self.log.info(f"Processing {len(self.deleted_ids)} deleted activities")
        with Session(self.engine) as s:
            rows = s.exec(
                select(Activity).where(Activity.garmin_activity_id.in_(self.deleted_ids))
            ).all()
            for activity in rows:
                s.delete(activity)
                self.log.info(f"Deleted activity: {activity.name}", garmin_activity_id=activity.garmin_activity_id)
            s.commit()

    async def _fetch_since(self, cutoff: datetime) -> List[Dict[str, Any]]:
        """Page newest-first until an activity older than ``cutoff`` shows up."""
        activities: List[Dict[str, Any]] = []
        start = 0
        while True:
            page = await self.client.get_activities(start, PAGE_SIZE)
            for raw in page:
                if activity_start_time(raw) < cutoff:
                    return activities
                activities.append(raw)
            if len(page) < PAGE_SIZE:
                return activities
            start += PAGE_SIZE
