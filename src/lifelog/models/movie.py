"""Film diary: movies and the dates they were watched."""
from datetime import date
from typing import List, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


class Movie(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(index=True)
    year: Optional[int] = None
    letterboxd_slug: Optional[str] = None
    url: Optional[str] = None
    tmdb_id: Optional[str] = Field(default=None, index=True)
    rating: Optional[float] = None  # 0.5 - 5.0 stars
    poster_url: Optional[str] = None

    viewings: List["Viewing"] = Relationship(back_populates="movie")


class Viewing(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("movie_id", "viewed_on"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    movie_id: int = Field(foreign_key="movie.id", index=True)
    viewed_on: date = Field(index=True)
    notes: Optional[str] = None
    rewatch: bool = False

    movie: Optional[Movie] = Relationship(back_populates="viewings")
