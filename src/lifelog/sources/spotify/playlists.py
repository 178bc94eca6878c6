"""
spotify: playlists and their tracks.

Change detection relies on Spotify's ``snapshot_id``, which changes whenever
a playlist's content changes:

  - same snapshot as stored   -> skipped (only last_synced_at is touched)
  - new playlist              -> metadata + full track list, created
  - different snapshot        -> metadata + full track list rebuilt, updated;
                                 the old marker is kept as previous_snapshot_id

Playlists synced less than RECENT_SYNC_WINDOW ago are left out of the run.

spotify_single reloads one chosen playlist on demand, bypassing both the
recent-sync filter and the snapshot check.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from lifelog.config import get_settings
from lifelog.models.playlist import Playlist, PlaylistTrack
from lifelog.sources.spotify.client import SpotifyClient, SpotifyConfig, parse_timestamp
from lifelog.sync.base import SourceAdapter, SyncResult
from lifelog.sync.errors import SourceConfigError

RECENT_SYNC_WINDOW = timedelta(minutes=5)


class SpotifyPlaylistsSource(SourceAdapter):
    source_type = "spotify"

    def __init__(self, engine, client: Optional[SpotifyClient] = None, *, settings=None):
        self.engine = engine
        self._client = client
        self._settings = settings

    @property
    def client(self) -> SpotifyClient:
        if self._client is None:
            self._client = SpotifyClient(SpotifyConfig.from_settings(self._settings or get_settings()))
        return self._client

    async def fetch_items(self) -> List[Dict[str, Any]]:
        allow_list = self.client.config.playlist_ids
        if allow_list:
            remote = [await self.client.get_playlist(pid) for pid in allow_list]
        else:
            remote = [p async for p in self.client.iter_my_playlists()]

        recently_synced = self._recently_synced_ids()
        playlists = [p for p in remote if p["id"] not in recently_synced]
        self.log.info(
            f"Found {len(playlists)} playlists that need syncing out of {len(remote)} total",
            recently_synced=len(remote) - len(playlists),
        )
        return playlists

    async def process_item(self, summary: Dict[str, Any]) -> SyncResult:
        spotify_id = summary["id"]
        snapshot_id = summary.get("snapshot_id")

        with Session(self.engine) as s:
            playlist = s.exec(select(Playlist).where(Playlist.spotify_id == spotify_id)).first()
            if playlist is not None and playlist.snapshot_id and playlist.snapshot_id == snapshot_id:
                playlist.last_synced_at = datetime.utcnow()
                s.add(playlist)
                s.commit()
                return SyncResult.SKIPPED

        return await self._reload(spotify_id)

    def describe_item(self, summary: Dict[str, Any], ordinal: int) -> str:
        return f"{summary.get('name') or 'Playlist'} ({summary.get('id')})"

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _reload(self, spotify_id: str, details: Optional[Dict[str, Any]] = None) -> SyncResult:
        """Store the playlist's metadata and replace its full track list."""
        if details is None:
            details = await self.client.get_playlist(spotify_id)
        tracks = [t async for t in self.client.iter_playlist_tracks(spotify_id)]

        with Session(self.engine) as s:
            playlist = s.exec(select(Playlist).where(Playlist.spotify_id == spotify_id)).first()
            is_new = playlist is None
            if is_new:
                playlist = Playlist(spotify_id=spotify_id, name=details.get("name") or spotify_id)
                s.add(playlist)
                s.flush()
            elif playlist.snapshot_id and playlist.snapshot_id != details.get("snapshot_id"):
                self.log.info(
                    f"Playlist modified: {playlist.name}",
                    old_snapshot=playlist.snapshot_id,
                    new_snapshot=details.get("snapshot_id"),
                )

            self._apply_metadata(playlist, details)
            self._replace_tracks(s, playlist, tracks)
            playlist.last_synced_at = datetime.utcnow()
            s.add(playlist)
            s.commit()

        return SyncResult.CREATED if is_new else SyncResult.UPDATED

    def _recently_synced_ids(self) -> set:
        cutoff = datetime.utcnow() - RECENT_SYNC_WINDOW
        with Session(self.engine) as s:
            rows = s.exec(
                select(Playlist.spotify_id).where(Playlist.last_synced_at > cutoff)
            ).all()
        return set(rows)

    @staticmethod
    def _apply_metadata(playlist: Playlist, data: Dict[str, Any]) -> None:
        new_snapshot = data.get("snapshot_id")
        changed = bool(playlist.snapshot_id) and playlist.snapshot_id != new_snapshot
        images = data.get("images") or []
        owner = data.get("owner") or {}

        playlist.name = data.get("name") or playlist.name
        playlist.owner_id = owner.get("id")
        playlist.owner_name = owner.get("display_name")
        playlist.description = data.get("description")
        playlist.public = data.get("public")
        playlist.collaborative = bool(data.get("collaborative"))
        playlist.followers_count = (data.get("followers") or {}).get("total") or 0
        playlist.image_url = images[0].get("url") if images else None
        if changed:
            playlist.previous_snapshot_id = playlist.snapshot_id
            playlist.last_modified_at = datetime.utcnow()
        playlist.snapshot_id = new_snapshot

    @staticmethod
    def _replace_tracks(s: Session, playlist: Playlist, items: List[Dict[str, Any]]) -> None:
        """Drop the stored track list and insert the current one with fresh positions."""
        for old in s.exec(select(PlaylistTrack).where(PlaylistTrack.playlist_id == playlist.id)).all():
            s.delete(old)
        s.flush()

        position = 0
        runtime_ms = 0
        latest_added: Optional[datetime] = None
        for item in items:
            track = item.get("track")
            # Removed tracks come back as null; local files have no Spotify ID
            if not track or not track.get("id") or track.get("is_local"):
                continue
            position += 1
            added_at = parse_timestamp(item.get("added_at"))
            if added_at and (latest_added is None or added_at > latest_added):
                latest_added = added_at
            duration = track.get("duration_ms") or 0
            runtime_ms += duration
            s.add(PlaylistTrack(
                playlist_id=playlist.id,
                position=position,
                spotify_track_id=track["id"],
                title=track.get("name") or "",
                artists=", ".join(a.get("name", "") for a in track.get("artists") or []),
                album=(track.get("album") or {}).get("name"),
                duration_ms=duration,
                added_at=added_at,
                added_by=(item.get("added_by") or {}).get("id"),
            ))

        playlist.track_count = position
        playlist.runtime_ms = runtime_ms
        if latest_added and (playlist.last_modified_at is None or latest_added > playlist.last_modified_at):
            playlist.last_modified_at = latest_added


class SpotifySinglePlaylistSource(SpotifyPlaylistsSource):
    """
    One playlist, synced because someone asked for it.

    The Spotify playlist id comes from the constructor or from the run's
    metadata (``{"playlist_id": "37i9dQZF1DX..."}``). Tracks are always
    reloaded, so an unchanged playlist reports updated rather than skipped.
    """

    source_type = "spotify_single"

    def __init__(
        self,
        engine,
        client: Optional[SpotifyClient] = None,
        *,
        settings=None,
        playlist_id: Optional[str] = None,
    ):
        super().__init__(engine, client, settings=settings)
        self._playlist_id = playlist_id

    @property
    def playlist_id(self) -> str:
        playlist_id = self._playlist_id or self.context.metadata.get("playlist_id")
        if not playlist_id:
            raise SourceConfigError("No playlist to sync: set playlist_id in the run metadata")
        return playlist_id

    async def fetch_items(self) -> List[Dict[str, Any]]:
        details = await self.client.get_playlist(self.playlist_id)
        self.log.info(f"Syncing single playlist: {details.get('name') or self.playlist_id}")
        return [details]

    async def process_item(self, details: Dict[str, Any]) -> SyncResult:
        spotify_id = details["id"]
        with Session(self.engine) as s:
            stored = s.exec(select(Playlist).where(Playlist.spotify_id == spotify_id)).first()
            unchanged = stored is not None and stored.snapshot_id == details.get("snapshot_id")
        if unchanged:
            self.log.info(
                "Playlist unchanged but syncing anyway (manual sync)",
                snapshot_id=details.get("snapshot_id"),
            )
        return await self._reload(spotify_id, details)
