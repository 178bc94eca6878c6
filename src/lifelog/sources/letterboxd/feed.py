"""
Letterboxd RSS feed reader.

A member's feed mixes diary entries (URL contains /film/) with lists and
journal posts. Diary items carry Letterboxd's own namespaced fields:

    <letterboxd:watchedDate>2024-03-01</letterboxd:watchedDate>
    <letterboxd:rewatch>No</letterboxd:rewatch>
    <letterboxd:filmTitle>Past Lives</letterboxd:filmTitle>
    <letterboxd:filmYear>2023</letterboxd:filmYear>
    <letterboxd:memberRating>4.5</letterboxd:memberRating>
    <tmdb:movieId>666277</tmdb:movieId>

Titles also encode the same data ("Past Lives, 2023 - ★★★★½"), which is used
as a fallback when the namespaced fields are missing.
"""
import html
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date
from email.utils import parsedate_to_datetime
from typing import List, Optional

import httpx
from pydantic import BaseModel

from lifelog.sync.errors import SourceConfigError, SourceRequestError

NAMESPACES = {
    "letterboxd": "https://letterboxd.com",
    "tmdb": "https://themoviedb.org",
}

_TITLE_YEAR = re.compile(r"^(.+?),\s*(\d{4})")
_TAGS = re.compile(r"<[^>]+>")
_WATCHED_LINE = re.compile(r"Watched on [^.]+\.\s*")
_CDN_IMAGE = re.compile(r"https?://[as]\.ltrbxd\.com/[^\"'\s>]+")
_IMG_SRC = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']")
_FILM_SLUG = re.compile(r"/film/([^/]+)/?")
_FILM_URL = re.compile(r"(https://letterboxd\.com/[\w-]+/film/[^/]+)/?")


class LetterboxdConfig(BaseModel):
    rss_url: str
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "LetterboxdConfig":
        if not settings.letterboxd_rss_url:
            raise SourceConfigError("Letterboxd RSS URL not configured (LETTERBOXD_RSS_URL)")
        return cls(rss_url=settings.letterboxd_rss_url, timeout=settings.http_timeout_seconds)


@dataclass
class DiaryEntry:
    guid: str
    title: str
    link: str
    published: Optional[date] = None
    description: Optional[str] = None
    watched_date: Optional[date] = None
    film_title: Optional[str] = None
    film_year: Optional[int] = None
    member_rating: Optional[float] = None
    rewatch: bool = False
    tmdb_id: Optional[str] = None

    @property
    def entry_type(self) -> str:
        if "/list/" in self.link:
            return "list"
        if "/journal/" in self.link:
            return "journal"
        if "/film/" in self.link:
            return "film"
        return "unknown"

    @property
    def is_film(self) -> bool:
        return self.entry_type == "film"


@dataclass
class Feed:
    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    last_build_date: Optional[str] = None
    etag: Optional[str] = None
    entries: List[DiaryEntry] = field(default_factory=list)


# ─── Parsing helpers ──────────────────────────────────────────────────────────

def _text(node: ET.Element, path: str) -> Optional[str]:
    found = node.find(path, NAMESPACES)
    if found is None or found.text is None:
        return None
    return found.text.strip() or None


def _parse_iso_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _parse_rfc822_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).date()
    except (TypeError, ValueError):
        return None


def title_and_year(text: str):
    """("Past Lives", 2023) from "Past Lives, 2023 - ★★★★½"."""
    match = _TITLE_YEAR.match(text)
    if match:
        return match.group(1), int(match.group(2))
    return text.split(" - ")[0], None


def rating_from_title(text: str) -> Optional[float]:
    stars = text.count("★")
    half = "½" in text
    if not stars and not half:
        return None
    return stars + (0.5 if half else 0.0)


def parse_review(content: Optional[str]) -> Optional[str]:
    """Plain review text from an item description, minus the poster and "Watched on" line."""
    if not content:
        return None
    text = html.unescape(_TAGS.sub(" ", content))
    text = _WATCHED_LINE.sub("", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text or None


def extract_poster_url(content: Optional[str]) -> Optional[str]:
    if not content:
        return None
    match = _CDN_IMAGE.search(content)
    if match:
        return match.group(0)
    match = _IMG_SRC.search(content)
    if match and ("ltrbxd.com" in match.group(1) or "film-poster" in match.group(1)):
        return match.group(1)
    return None


def film_slug(url: str) -> Optional[str]:
    match = _FILM_SLUG.search(url)
    return match.group(1) if match else None


def film_url(url: str) -> str:
    """Canonical film URL for a diary entry (drops the per-viewing suffix)."""
    match = _FILM_URL.search(url)
    return match.group(1) + "/" if match else url


def parse_feed(xml_text: str) -> Feed:
    root = ET.fromstring(xml_text)
    channel = root.find("channel")
    if channel is None:
        raise SourceRequestError("Letterboxd feed has no <channel> element")

    feed = Feed(
        title=_text(channel, "title"),
        description=_text(channel, "description"),
        link=_text(channel, "link"),
        last_build_date=_text(channel, "lastBuildDate"),
    )
    for item in channel.findall("item"):
        link = _text(item, "link") or ""
        rating = _text(item, "letterboxd:memberRating")
        year = _text(item, "letterboxd:filmYear")
        feed.entries.append(DiaryEntry(
            guid=_text(item, "guid") or link,
            title=_text(item, "title") or "",
            link=link,
            published=_parse_rfc822_date(_text(item, "pubDate")),
            description=_text(item, "description"),
            watched_date=_parse_iso_date(_text(item, "letterboxd:watchedDate")),
            film_title=_text(item, "letterboxd:filmTitle"),
            film_year=int(year) if year and year.isdigit() else None,
            member_rating=float(rating) if rating else None,
            rewatch=_text(item, "letterboxd:rewatch") == "Yes",
            tmdb_id=_text(item, "tmdb:movieId"),
        ))
    return feed


class LetterboxdFeed:
    """Fetches and parses a member's RSS feed."""

    def __init__(self, config: LetterboxdConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    async def fetch(self) -> Feed:
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.config.timeout,
            follow_redirects=True,
        ) as http:
            response = await http.get(self.config.rss_url)
        if response.status_code != 200:
            raise SourceRequestError(
                f"Letterboxd feed request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            feed = parse_feed(response.text)
        except ET.ParseError as exc:
            raise SourceRequestError(f"Letterboxd feed is not valid XML: {exc}") from exc
        feed.etag = response.headers.get("etag")
        return feed
