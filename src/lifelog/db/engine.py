"""SQLModel engine singleton and session dependency."""
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

from lifelog.config import get_settings

_engine = None


def import_models() -> None:
    """Import every table model so SQLModel.metadata is complete."""
    from lifelog.models.activity import Activity  # noqa
    from lifelog.models.book import Book  # noqa
    from lifelog.models.log import LogEntry  # noqa
    from lifelog.models.movie import Movie, Viewing  # noqa
    from lifelog.models.music import ScrobbleCount, ScrobblePlay, TopScrobble  # noqa
    from lifelog.models.playlist import Playlist, PlaylistTrack  # noqa
    from lifelog.models.sync import SyncRun  # noqa


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            # SQLite only; sessions are used from background tasks and the scheduler
            connect_args["check_same_thread"] = False
        _engine = create_engine(settings.database_url, connect_args=connect_args)
        import_models()
        SQLModel.metadata.create_all(_engine)
        from lifelog.db.migrations import run_migrations
        run_migrations(_engine)
    return _engine


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
