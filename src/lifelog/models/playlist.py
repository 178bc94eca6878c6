"""Streaming playlists and their ordered tracks."""
from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


class Playlist(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    spotify_id: str = Field(unique=True, index=True)
    name: str
    owner_id: Optional[str] = None
    owner_name: Optional[str] = None
    description: Optional[str] = None
    public: Optional[bool] = None
    collaborative: bool = False
    followers_count: int = 0
    image_url: Optional[str] = None

    # Spotify's version marker; changes whenever the playlist content changes
    snapshot_id: Optional[str] = None
    previous_snapshot_id: Optional[str] = None

    track_count: int = 0
    runtime_ms: int = 0
    last_synced_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None

    tracks: List["PlaylistTrack"] = Relationship(back_populates="playlist")


class PlaylistTrack(SQLModel, table=True):
    """A track at one position in a playlist. Rebuilt whenever the snapshot changes."""

    id: Optional[int] = Field(default=None, primary_key=True)
    playlist_id: int = Field(foreign_key="playlist.id", index=True)
    position: int
    spotify_track_id: str = Field(index=True)
    title: str
    artists: str = ""  # comma-joined display names, in credit order
    album: Optional[str] = None
    duration_ms: int = 0
    added_at: Optional[datetime] = None
    added_by: Optional[str] = None

    playlist: Optional[Playlist] = Relationship(back_populates="tracks")
