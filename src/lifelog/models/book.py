"""Reading log: books from the book-cataloging service."""
from datetime import date, datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class Book(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    hardcover_id: Optional[str] = Field(default=None, index=True)
    title: str
    author: str = Field(default="", index=True)
    status: str = "want_to_read"  # "read", "currently_reading", "want_to_read"
    isbn: Optional[str] = Field(default=None, index=True)
    isbn13: Optional[str] = Field(default=None, index=True)
    started_on: Optional[date] = None
    finished_on: Optional[date] = None
    rating: Optional[float] = None
    progress: Optional[float] = None  # percent through, for currently-reading
    page_count: Optional[int] = None
    published_year: Optional[int] = None
    series: Optional[str] = None
    cover_url: Optional[str] = None
    last_synced_at: Optional[datetime] = None
