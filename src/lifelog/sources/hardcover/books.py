"""
hardcover: the reading shelf.

Items stream lazily (READ, then CURRENTLY_READING, then WANT_TO_READ), so
the run has no known total. READ books finished before the ``months_back``
window are skipped; everything else is matched against local books in this
order, the first hit winning:

  1. hardcover id
  2. ISBN-13
  3. ISBN-10
  4. same author and a fuzzy title match (books added by hand or imported
     from elsewhere before they were on Hardcover)

and created when nothing matches.
"""
import calendar
from datetime import date, datetime
from typing import AsyncIterator, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from lifelog.config import get_settings
from lifelog.models.book import Book
from lifelog.sources.hardcover.client import BookRecord, HardcoverClient, HardcoverConfig
from lifelog.sync.base import SourceAdapter, SyncResult
from lifelog.sync.matching import find_match

SHELF_ORDER = ("READ", "CURRENTLY_READING", "WANT_TO_READ")

_BOOK_FIELDS = (
    "hardcover_id", "title", "author", "status", "isbn", "isbn13",
    "started_on", "finished_on", "rating", "progress", "page_count",
    "published_year", "series", "cover_url",
)


def months_ago(today: date, months: int) -> date:
    """Same day ``months`` calendar months earlier, clamped to month end."""
    month_index = today.year * 12 + (today.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(today.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class HardcoverBooksSource(SourceAdapter):
    source_type = "hardcover"

    def __init__(
        self,
        engine,
        client: Optional[HardcoverClient] = None,
        *,
        settings=None,
        today: Optional[date] = None,
    ):
        self.engine = engine
        self._client = client
        self._settings = settings
        self._today = today

    @property
    def client(self) -> HardcoverClient:
        if self._client is None:
            self._client = HardcoverClient(HardcoverConfig.from_settings(self._settings or get_settings()))
        return self._client

    @property
    def cutoff(self) -> Optional[date]:
        months_back = self.client.config.months_back
        if months_back is None:
            return None
        return months_ago(self._today or date.today(), months_back)

    async def fetch_items(self) -> AsyncIterator[BookRecord]:
        months_back = self.client.config.months_back
        if months_back is None:
            self.log.info("Sync window: all read books")
        else:
            self.log.info(f"Sync window: books read in the last {months_back} months")
        return self._iter_shelf()

    async def _iter_shelf(self) -> AsyncIterator[BookRecord]:
        for status in SHELF_ORDER:
            async for record in self.client.iter_books(status):
                yield record

    async def process_item(self, record: BookRecord) -> SyncResult:
        if record.status == "READ" and not self._in_window(record):
            return SyncResult.SKIPPED

        fields = {
            "hardcover_id": record.hardcover_id,
            "title": record.title,
            "author": record.author,
            "status": record.status.lower(),
            "isbn": record.isbn,
            "isbn13": record.isbn13,
            "started_on": record.started_on,
            "finished_on": record.finished_on,
            "rating": record.rating,
            "progress": record.progress,
            "page_count": record.page_count,
            "published_year": record.published_year,
            "series": record.series,
            "cover_url": record.cover_url,
        }

        with Session(self.engine) as s:
            book, rule = self._find_existing(s, record)
            if book is None:
                s.add(Book(last_synced_at=datetime.utcnow(), **fields))
                s.commit()
                return SyncResult.CREATED

            if rule == "title":
                self.log.info(
                    f"Matched '{record.title}' to existing '{book.title}' by author and title",
                    book_id=book.id,
                )

            # Keep locally known identifiers when Hardcover's edition lacks them
            for key in ("isbn", "isbn13"):
                if fields[key] is None:
                    fields[key] = getattr(book, key)

            changed = any(getattr(book, k) != fields[k] for k in _BOOK_FIELDS)
            for k, v in fields.items():
                setattr(book, k, v)
            book.last_synced_at = datetime.utcnow()
            s.add(book)
            s.commit()
            return SyncResult.UPDATED if changed else SyncResult.SKIPPED

    def describe_item(self, record: BookRecord, ordinal: int) -> str:
        if record.author:
            return f"{record.title} by {record.author}"
        return record.title or f"Item #{ordinal}"

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _in_window(self, record: BookRecord) -> bool:
        cutoff = self.cutoff
        if cutoff is None:
            return True
        return record.finished_on is not None and record.finished_on >= cutoff

    @staticmethod
    def _find_existing(s: Session, record: BookRecord):
        """Return (book, rule) for the first matching local book, or (None, None)."""
        book = s.exec(select(Book).where(Book.hardcover_id == record.hardcover_id)).first()
        if book is not None:
            return book, "hardcover_id"

        if record.isbn13:
            book = s.exec(select(Book).where(Book.isbn13 == record.isbn13)).first()
            if book is not None:
                return book, "isbn13"

        if record.isbn:
            book = s.exec(select(Book).where(Book.isbn == record.isbn)).first()
            if book is not None:
                return book, "isbn"

        if record.author:
            candidates = s.exec(
                select(Book).where(
                    func.lower(Book.author) == record.author.lower(),
                    Book.hardcover_id.is_(None),
                )
            ).all()
            book = find_match(record.title, candidates, key=lambda b: b.title)
            if book is not None:
                return book, "title"

        return None, None
