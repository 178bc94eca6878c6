"""
Async client for the Spotify Web API.

Authentication uses the refresh-token grant: the long-lived refresh token
from settings is exchanged for a short-lived access token, which is cached
until shortly before it expires.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from pydantic import BaseModel

from lifelog.sync.errors import SourceConfigError, SourceRequestError

logger = logging.getLogger(__name__)

API_URL = "https://api.spotify.com/v1"
TOKEN_URL = "https://accounts.spotify.com/api/token"
BATCH_SIZE = 50  # Spotify's max items per request

PLAYLIST_FIELDS = (
    "id,name,snapshot_id,description,owner(id,display_name),public,"
    "collaborative,followers.total,images,tracks.total"
)
TRACK_FIELDS = (
    "items(track(id,name,artists(name),album(name),duration_ms,is_local),"
    "added_at,added_by.id),next,total"
)

# Refresh a little early so a token never expires mid-request
_TOKEN_MARGIN = timedelta(seconds=60)


class SpotifyConfig(BaseModel):
    client_id: str
    client_secret: str
    refresh_token: str
    playlist_ids: List[str] = []
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "SpotifyConfig":
        missing = [
            name for name in ("spotify_client_id", "spotify_client_secret", "spotify_refresh_token")
            if not getattr(settings, name)
        ]
        if missing:
            raise SourceConfigError(
                "Spotify credentials not configured: " + ", ".join(m.upper() for m in missing)
            )
        return cls(
            client_id=settings.spotify_client_id,
            client_secret=settings.spotify_client_secret,
            refresh_token=settings.spotify_refresh_token,
            playlist_ids=list(settings.spotify_playlist_ids),
            timeout=settings.http_timeout_seconds,
        )


def _decode(response: httpx.Response) -> Dict[str, Any]:
    try:
        return response.json()
    except ValueError as exc:
        raise SourceRequestError(
            f"Spotify returned a non-JSON response: {exc}",
            status_code=response.status_code,
        ) from exc


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse Spotify's ISO 8601 UTC timestamps ("2024-03-01T12:00:00Z") to naive UTC."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)


class SpotifyClient:
    """Thin async wrapper over the endpoints the playlist sync needs."""

    def __init__(self, config: SpotifyConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.config.timeout)

    # ── Auth ──────────────────────────────────────────────────────────────────

    async def ensure_token(self) -> str:
        """Return a valid access token, refreshing it if needed."""
        if self._access_token and self._expires_at and datetime.utcnow() < self._expires_at:
            return self._access_token

        logger.info("Refreshing Spotify access token")
        async with self._http() as http:
            response = await http.post(
                TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self.config.refresh_token,
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                },
            )
        if response.status_code != 200:
            raise SourceRequestError(
                f"Failed to authenticate with Spotify: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        payload = _decode(response)
        self._access_token = payload["access_token"]
        expires_in = timedelta(seconds=int(payload.get("expires_in", 3600)))
        self._expires_at = datetime.utcnow() + expires_in - _TOKEN_MARGIN
        return self._access_token

    async def get(self, path: str, **params: Any) -> Dict[str, Any]:
        token = await self.ensure_token()
        async with self._http() as http:
            response = await http.get(
                f"{API_URL}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        if response.status_code != 200:
            raise SourceRequestError(
                f"Spotify API request failed: GET {path} -> {response.status_code}",
                status_code=response.status_code,
            )
        return _decode(response)

    # ── Data ──────────────────────────────────────────────────────────────────

    async def iter_my_playlists(self) -> AsyncIterator[Dict[str, Any]]:
        """Every playlist the user owns or follows, page by page."""
        offset = 0
        while True:
            page = await self.get("/me/playlists", limit=BATCH_SIZE, offset=offset)
            for item in page.get("items") or []:
                if item:
                    yield item
            if not page.get("next"):
                break
            offset += BATCH_SIZE

    async def get_playlist(self, playlist_id: str) -> Dict[str, Any]:
        """Playlist metadata (no tracks)."""
        return await self.get(f"/playlists/{playlist_id}", fields=PLAYLIST_FIELDS)

    async def iter_playlist_tracks(self, playlist_id: str) -> AsyncIterator[Dict[str, Any]]:
        """Playlist track entries in playlist order."""
        offset = 0
        while True:
            page = await self.get(
                f"/playlists/{playlist_id}/tracks",
                limit=BATCH_SIZE,
                offset=offset,
                fields=TRACK_FIELDS,
            )
            items = page.get("items") or []
            for item in items:
                yield item
            if not page.get("next") or not items:
                break
            offset += BATCH_SIZE
