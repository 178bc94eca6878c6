"""
Async GraphQL client for Hardcover (api.hardcover.app/v1/graphql).

The user's shelf is read one status at a time, ``BATCH_SIZE`` user-books
per request, via ``iter_books()``, an async generator: pages are only
requested as the consumer reaches them.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from pydantic import BaseModel

from lifelog.sync.errors import SourceConfigError, SourceRequestError

logger = logging.getLogger(__name__)

API_URL = "https://api.hardcover.app/v1/graphql"
BATCH_SIZE = 25

# Hardcover status_id values
STATUS_IDS = {
    "WANT_TO_READ": 1,
    "CURRENTLY_READING": 2,
    "READ": 3,
}

USER_BOOKS_QUERY = """
query UserBooks($status: Int!, $limit: Int!, $offset: Int!) {
  me {
    user_books(
      where: {status_id: {_eq: $status}}
      limit: $limit
      offset: $offset
      order_by: {id: asc}
    ) {
      id
      rating
      user_book_reads(order_by: {id: desc}, limit: 1) {
        started_at
        finished_at
        progress
      }
      edition {
        isbn_10
        isbn_13
        pages
      }
      book {
        id
        title
        pages
        release_year
        cached_contributors
        image { url }
        book_series(limit: 1) { position series { name } }
      }
    }
  }
}
"""


class HardcoverConfig(BaseModel):
    access_token: str
    months_back: Optional[int] = 3  # None syncs every READ book
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "HardcoverConfig":
        if not settings.hardcover_access_token:
            raise SourceConfigError("Hardcover access token not configured (HARDCOVER_ACCESS_TOKEN)")
        return cls(
            access_token=settings.hardcover_access_token,
            months_back=settings.hardcover_months_back,
            timeout=settings.http_timeout_seconds,
        )


@dataclass
class BookRecord:
    """One user-book from Hardcover, flattened."""

    hardcover_id: str
    title: str
    status: str  # READ / CURRENTLY_READING / WANT_TO_READ
    author: str = ""
    isbn: Optional[str] = None
    isbn13: Optional[str] = None
    started_on: Optional[date] = None
    finished_on: Optional[date] = None
    rating: Optional[float] = None
    progress: Optional[float] = None
    page_count: Optional[int] = None
    published_year: Optional[int] = None
    series: Optional[str] = None
    cover_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _first_author(contributors: Any) -> str:
    for entry in contributors or []:
        name = ((entry or {}).get("author") or {}).get("name")
        if name:
            return name
    return ""


def parse_user_book(node: Dict[str, Any], status: str) -> BookRecord:
    book = node.get("book") or {}
    edition = node.get("edition") or {}
    reads = node.get("user_book_reads") or []
    latest_read = reads[0] if reads else {}
    series_links = book.get("book_series") or []
    series = (series_links[0].get("series") or {}).get("name") if series_links else None

    return BookRecord(
        hardcover_id=str(book.get("id") or node["id"]),
        title=book.get("title") or "",
        status=status,
        author=_first_author(book.get("cached_contributors")),
        isbn=edition.get("isbn_10"),
        isbn13=edition.get("isbn_13"),
        started_on=parse_date(latest_read.get("started_at")),
        finished_on=parse_date(latest_read.get("finished_at")),
        rating=node.get("rating"),
        progress=latest_read.get("progress"),
        page_count=edition.get("pages") or book.get("pages"),
        published_year=book.get("release_year"),
        series=series,
        cover_url=(book.get("image") or {}).get("url"),
        raw=node,
    )


class HardcoverClient:
    def __init__(self, config: HardcoverConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run one GraphQL operation and return its ``data``."""
        async with httpx.AsyncClient(transport=self._transport, timeout=self.config.timeout) as http:
            response = await http.post(
                API_URL,
                json={"query": query, "variables": variables or {}},
                headers={"Authorization": f"Bearer {self.config.access_token}"},
            )
        if response.status_code != 200:
            raise SourceRequestError(
                f"Hardcover API request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceRequestError(
                f"Hardcover returned a non-JSON response: {exc}",
                status_code=response.status_code,
            ) from exc
        if payload.get("errors"):
            raise SourceRequestError(f"Hardcover GraphQL errors: {payload['errors']}")
        return payload.get("data") or {}

    async def iter_books(self, status: str) -> AsyncIterator[BookRecord]:
        """Every user-book with ``status``, fetched lazily page by page."""
        offset = 0
        while True:
            data = await self.execute(
                USER_BOOKS_QUERY,
                {"status": STATUS_IDS[status], "limit": BATCH_SIZE, "offset": offset},
            )
            me = data.get("me") or []
            # `me` is a one-element list in Hardcover's schema
            user = me[0] if isinstance(me, list) and me else (me if isinstance(me, dict) else {})
            nodes = user.get("user_books") or []
            logger.debug("Hardcover %s page at offset %d: %d books", status, offset, len(nodes))
            for node in nodes:
                yield parse_user_book(node, status)
            if len(nodes) < BATCH_SIZE:
                break
            offset += BATCH_SIZE
