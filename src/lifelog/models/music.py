"""Last.fm scrobble aggregates: daily totals, weekly charts, top lists."""
from datetime import date, datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class ScrobbleCount(SQLModel, table=True):
    """Total plays for one calendar day."""

    id: Optional[int] = Field(default=None, primary_key=True)
    played_on: date = Field(unique=True, index=True)
    plays: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ScrobblePlay(SQLModel, table=True):
    """Plays of one artist or album during the chart week ending ``played_on``."""

    __table_args__ = (
        UniqueConstraint("category", "artist", "name", "played_on"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    category: str  # "artist" or "album"
    artist: str = Field(index=True)
    name: str = ""  # album title; empty for artist rows
    played_on: date = Field(index=True)
    plays: int = 0
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class TopScrobble(SQLModel, table=True):
    """One ranked position of a top-artists/albums/tracks list for a period."""

    __table_args__ = (UniqueConstraint("category", "period", "position"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    category: str  # "artist", "album", "track"
    period: str  # "7day", "1month", ..., "overall"
    position: int
    artist: str = ""
    name: str = ""
    plays: int = 0
    rank: int = 0
    url: str = ""
    revised_at: datetime = Field(default_factory=datetime.utcnow)
