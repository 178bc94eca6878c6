"""
Async client for the Last.fm web service (ws.audioscrobbler.com/2.0).

Every call is a GET with ``method``, ``user`` and ``api_key`` query params
and ``format=json``. Last.fm reports errors either as an HTTP status or as
an ``{"error": <code>, "message": ...}`` payload with status 200; both are
raised as SourceRequestError.

Last.fm collapses single-element lists into a bare object, so list
accessors go through ``as_list()``.
"""
import asyncio
import calendar
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from lifelog.sync.errors import SourceConfigError, SourceRequestError

logger = logging.getLogger(__name__)

BASE_URL = "https://ws.audioscrobbler.com/2.0/"

TOP_METHODS = {
    "artist": "user.gettopartists",
    "album": "user.gettopalbums",
    "track": "user.gettoptracks",
}


class LastfmConfig(BaseModel):
    api_key: str
    user: str
    started_scrobbling: date = date(2008, 2, 7)
    overlap_days: int = 7
    request_delay: float = 0.25  # seconds slept after every call
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "LastfmConfig":
        if not settings.lastfm_api_key:
            raise SourceConfigError("Last.fm API key not configured (LASTFM_API_KEY)")
        if not settings.lastfm_user:
            raise SourceConfigError("Last.fm user not configured (LASTFM_USER)")
        return cls(
            api_key=settings.lastfm_api_key,
            user=settings.lastfm_user,
            started_scrobbling=settings.lastfm_started_scrobbling,
            overlap_days=settings.lastfm_overlap_days,
            request_delay=settings.lastfm_request_delay,
            timeout=settings.http_timeout_seconds,
        )


def as_list(value: Any) -> List[Dict[str, Any]]:
    """Normalize Last.fm's list-or-single-object-or-missing into a list."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    return list(value)


def day_bounds(day: date) -> tuple:
    """UTC epoch seconds for the start of ``day`` and of the following day."""
    start = calendar.timegm(day.timetuple())
    end = calendar.timegm((day + timedelta(days=1)).timetuple())
    return start, end


class LastfmClient:
    """
    Thin async wrapper over the Last.fm REST API.

    A fresh httpx.AsyncClient is opened per call; pass ``transport`` to route
    requests elsewhere (httpx.MockTransport in tests).
    """

    def __init__(self, config: LastfmConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    async def call(self, method: str, **params: Any) -> Dict[str, Any]:
        """Invoke one API method and return the decoded JSON payload."""
        query = {
            "method": method,
            "user": self.config.user,
            "api_key": self.config.api_key,
            "format": "json",
            **params,
        }
        logger.debug("Last.fm %s %s", method, params)
        async with httpx.AsyncClient(transport=self._transport, timeout=self.config.timeout) as http:
            response = await http.get(BASE_URL, params=query)

        if response.status_code != 200:
            raise SourceRequestError(
                f"Last.fm API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceRequestError(
                f"Last.fm returned a non-JSON response: {exc}",
                status_code=response.status_code,
            ) from exc
        if "error" in payload:
            raise SourceRequestError(
                f"Last.fm API error {payload['error']}: {payload.get('message', '')}",
                status_code=response.status_code,
            )

        if self.config.request_delay > 0:
            await asyncio.sleep(self.config.request_delay)
        return payload

    async def daily_play_count(self, day: date) -> int:
        """Total scrobbles on ``day`` (UTC)."""
        start, end = day_bounds(day)
        payload = await self.call("user.getrecenttracks", limit=1, **{"from": start, "to": end})
        recent = payload.get("recenttracks", {})
        # The total lives in different places depending on the response shape
        total = recent.get("total") or recent.get("@attr", {}).get("total") or 0
        return int(total)

    async def top_items(self, category: str, period: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Ranked top artists/albums/tracks for one period."""
        payload = await self.call(TOP_METHODS[category], period=period, limit=limit)
        return as_list(payload.get(f"top{category}s", {}).get(category))

    async def weekly_chart_list(self) -> List[Dict[str, Any]]:
        """Every available chart window as ``{"from": epoch, "to": epoch}`` dicts, oldest first."""
        payload = await self.call("user.getweeklychartlist")
        return as_list(payload.get("weeklychartlist", {}).get("chart"))

    async def weekly_artist_chart(self, start: int, end: int) -> List[Dict[str, Any]]:
        payload = await self.call("user.getweeklyartistchart", **{"from": start, "to": end})
        return as_list(payload.get("weeklyartistchart", {}).get("artist"))

    async def weekly_album_chart(self, start: int, end: int) -> List[Dict[str, Any]]:
        payload = await self.call("user.getweeklyalbumchart", **{"from": start, "to": end})
        return as_list(payload.get("weeklyalbumchart", {}).get("album"))
