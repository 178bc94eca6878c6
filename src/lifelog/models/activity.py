"""Activity tracker data synced from Garmin Connect."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class Activity(SQLModel, table=True):
    """One row per Garmin activity (any sport)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, index=True)
    garmin_activity_id: str = Field(unique=True, index=True)
    name: str
    activity_type: str  # "running", "cycling", "virtual_ride", ...
    start_time_utc: datetime = Field(index=True)
    duration_seconds: float
    distance_meters: float

    avg_hr: Optional[float] = None
    max_hr: Optional[float] = None
    avg_pace_seconds_per_km: Optional[float] = None
    total_ascent_meters: Optional[float] = None
    calories: Optional[float] = None
    location_name: Optional[str] = None

    # Raw JSON blob for full API response reference
    raw_summary_json: Optional[str] = None

    synced_at: datetime = Field(default_factory=datetime.utcnow)
