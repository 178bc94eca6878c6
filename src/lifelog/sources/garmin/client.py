"""
Async wrapper around the garminconnect library.

garminconnect is synchronous; calls run in the default thread pool executor
so they don't block the event loop. Authentication comes from the saved
session (see GarminAuth); no credentials are needed at runtime.
"""
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import garminconnect
from pydantic import BaseModel

from lifelog.sources.garmin.auth import GarminAuth
from lifelog.sync.errors import SourceConfigError

MAX_DAYS_BACK = 30


class GarminConfig(BaseModel):
    tokens_dir: Path
    days_back: int = 7

    @classmethod
    def from_settings(cls, settings) -> "GarminConfig":
        if settings.garmin_days_back < 1:
            raise SourceConfigError(
                f"GARMIN_DAYS_BACK must be at least 1, got {settings.garmin_days_back}"
            )
        return cls(
            tokens_dir=settings.garmin_tokens_dir,
            days_back=min(settings.garmin_days_back, MAX_DAYS_BACK),
        )


class GarminClient:
    """
    Thin async wrapper over garminconnect.Garmin.

    Call connect() before any data methods.
    """

    def __init__(self, auth: GarminAuth):
        self._auth = auth
        self._api: Optional[garminconnect.Garmin] = None

    @property
    def connected(self) -> bool:
        return self._api is not None

    async def connect(self) -> None:
        """
        Raises:
            NoSessionError: if `python -m lifelog setup` has not been run.
            SessionExpiredError: if the session has expired (re-run setup).
        """
        loop = asyncio.get_running_loop()
        self._api = await loop.run_in_executor(None, self._auth.build_client)

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))

    async def get_activities(self, start: int = 0, limit: int = 20) -> List[Dict[str, Any]]:
        """One page of activities of every type, newest first."""
        return await self._run(self._api.get_activities, start, limit)
