"""Shared test fixtures."""
from typing import Any, Callable, Dict, Generator, List, Tuple

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from lifelog.config import Settings
from lifelog.db.engine import import_models

# Import all models so SQLModel.metadata knows about them
import_models()


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="make_settings")
def make_settings_fixture() -> Callable[..., Settings]:
    """Factory for Settings that ignore any local .env file."""
    def _make(**overrides: Any) -> Settings:
        return Settings(_env_file=None, **overrides)
    return _make


@pytest.fixture(name="settings")
def settings_fixture(make_settings) -> Settings:
    return make_settings(sync_max_attempts=1, sync_retry_backoff_seconds=0)


class RecordingBroadcaster:
    """Collects every publish instead of delivering it."""

    def __init__(self):
        self.published: List[Tuple[str, Dict[str, Any]]] = []

    def publish(self, channel: str, payload: Dict[str, Any]) -> bool:
        self.published.append((channel, payload))
        return True

    def on(self, channel: str) -> List[Dict[str, Any]]:
        return [payload for ch, payload in self.published if ch == channel]


@pytest.fixture(name="broadcaster")
def broadcaster_fixture() -> RecordingBroadcaster:
    return RecordingBroadcaster()
