"""
letterboxd: film diary from a member's RSS feed.

Movies are matched by TMDB id when the feed has one, else by (title, year).
A viewing is keyed on (movie, watched date); its notes are the review text.
Entries that are not films (lists, journal posts) and reviews without a
watched date are skipped.
"""
from typing import List, Optional

from sqlmodel import Session, select

from lifelog.config import get_settings
from lifelog.models.movie import Movie, Viewing
from lifelog.sources.letterboxd.feed import (
    DiaryEntry,
    LetterboxdConfig,
    LetterboxdFeed,
    extract_poster_url,
    film_slug,
    film_url,
    parse_review,
    rating_from_title,
    title_and_year,
)
from lifelog.sync.base import SourceAdapter, SyncResult


class LetterboxdDiarySource(SourceAdapter):
    source_type = "letterboxd"

    def __init__(self, engine, feed: Optional[LetterboxdFeed] = None, *, settings=None):
        self.engine = engine
        self._feed = feed
        self._settings = settings

    @property
    def feed(self) -> LetterboxdFeed:
        if self._feed is None:
            self._feed = LetterboxdFeed(LetterboxdConfig.from_settings(self._settings or get_settings()))
        return self._feed

    async def fetch_items(self) -> List[DiaryEntry]:
        self.log.info("Fetching RSS feed", url=self.feed.config.rss_url)
        feed = await self.feed.fetch()
        self.context.update_metadata(
            rss_url=self.feed.config.rss_url,
            feed_title=feed.title,
            feed_description=feed.description,
            feed_url=feed.link,
            last_build_date=feed.last_build_date,
            etag=feed.etag,
        )
        return feed.entries

    async def process_item(self, entry: DiaryEntry) -> SyncResult:
        if not entry.is_film:
            self.log.info("Skipping non-film entry", title=entry.title, entry_type=entry.entry_type)
            return SyncResult.SKIPPED

        fallback_title, fallback_year = title_and_year(entry.title)
        title = entry.film_title or fallback_title
        year = entry.film_year or fallback_year
        rating = entry.member_rating if entry.member_rating is not None else rating_from_title(entry.title)
        viewed_on = entry.watched_date or entry.published
        if viewed_on is None:
            self.log.info("Skipping review without viewing date", title=title, url=entry.link)
            return SyncResult.SKIPPED
        notes = parse_review(entry.description)

        with Session(self.engine) as s:
            movie = self._find_movie(s, entry.tmdb_id, title, year)
            movie_created = movie is None
            movie_changed = False
            if movie_created:
                movie = Movie(
                    title=title,
                    year=year,
                    letterboxd_slug=film_slug(entry.link),
                    url=film_url(entry.link),
                    tmdb_id=entry.tmdb_id,
                    rating=rating,
                    poster_url=extract_poster_url(entry.description),
                )
                s.add(movie)
                s.flush()
                self.log.info("Creating new movie", title=title, year=year, tmdb_id=entry.tmdb_id)
            else:
                movie_changed = self._refresh_movie(movie, entry, rating)
                s.add(movie)

            viewing = s.exec(
                select(Viewing).where(Viewing.movie_id == movie.id, Viewing.viewed_on == viewed_on)
            ).first()
            if viewing is None:
                s.add(Viewing(movie_id=movie.id, viewed_on=viewed_on, notes=notes, rewatch=entry.rewatch))
                result = SyncResult.CREATED
            elif viewing.notes != notes:
                viewing.notes = notes
                s.add(viewing)
                result = SyncResult.UPDATED
            elif movie_changed:
                result = SyncResult.UPDATED
            else:
                result = SyncResult.SKIPPED
            s.commit()
        return result

    def describe_item(self, entry: DiaryEntry, ordinal: int) -> str:
        if entry.is_film:
            return entry.title.split(" - ")[0] or entry.title
        return f"{entry.entry_type.capitalize()}: {entry.title}"

    # ─── Internal helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _find_movie(s: Session, tmdb_id: Optional[str], title: str, year: Optional[int]) -> Optional[Movie]:
        if tmdb_id:
            movie = s.exec(select(Movie).where(Movie.tmdb_id == tmdb_id)).first()
            if movie is not None:
                return movie
        year_clause = Movie.year.is_(None) if year is None else Movie.year == year
        return s.exec(select(Movie).where(Movie.title == title, year_clause)).first()

    def _refresh_movie(self, movie: Movie, entry: DiaryEntry, rating: Optional[float]) -> bool:
        """Fill in missing identifiers and apply a changed rating. Returns True if anything changed."""
        changed = False
        if entry.tmdb_id and not movie.tmdb_id:
            movie.tmdb_id = entry.tmdb_id
            self.log.info("Added TMDB ID to movie", movie=movie.title, tmdb_id=entry.tmdb_id)
            changed = True
        if rating is not None and movie.rating != rating:
            self.log.info("Updated movie rating", movie=movie.title, old_rating=movie.rating, new_rating=rating)
            movie.rating = rating
            changed = True
        poster_url = extract_poster_url(entry.description)
        if poster_url and not movie.poster_url:
            movie.poster_url = poster_url
            changed = True
        return changed
