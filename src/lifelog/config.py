from datetime import date
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./lifelog.db"
    user_id: Optional[int] = None  # owner stamped on runs started by this process
    http_timeout_seconds: float = 30.0

    # Scheduling / retry policy for the task layer
    sync_hour: int = 3
    scheduled_sources: List[str] = [
        "lastfm_daily",
        "lastfm_weekly",
        "lastfm_top",
        "spotify",
        "garmin",
        "hardcover",
        "letterboxd",
    ]
    sync_max_attempts: int = 3
    sync_retry_backoff_seconds: float = 60.0

    # Last.fm
    lastfm_api_key: str = ""
    lastfm_user: str = ""
    lastfm_started_scrobbling: date = date(2008, 2, 7)
    lastfm_overlap_days: int = 7
    lastfm_request_delay: float = 0.25

    # Spotify
    spotify_client_id: str = ""
    spotify_client_secret: str = ""
    spotify_refresh_token: str = ""
    spotify_playlist_ids: List[str] = []

    # Garmin Connect (session cookies on disk, see `python -m lifelog setup`)
    garmin_tokens_dir: Path = Path.home() / ".lifelog" / "garmin_session"
    garmin_days_back: int = 7

    # Hardcover
    hardcover_access_token: str = ""
    hardcover_months_back: Optional[int] = 3

    # Letterboxd
    letterboxd_rss_url: str = ""

    demo_scenario: str = "normal"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
