"""Tests for database migration helpers."""
import pytest
from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from lifelog.db.migrations import COLUMN_MIGRATIONS, run_migrations
from lifelog.models.sync import SyncRun


@pytest.fixture(name="legacy_engine")
def legacy_engine_fixture():
    """In-memory SQLite with syncrun/playlist tables as first shipped, before later columns."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE syncrun ("
            "id INTEGER PRIMARY KEY, source_type VARCHAR NOT NULL, status VARCHAR NOT NULL, "
            "total_items INTEGER, processed_items INTEGER NOT NULL, "
            "created_count INTEGER NOT NULL, updated_count INTEGER NOT NULL, "
            "failed_count INTEGER NOT NULL, skipped_count INTEGER NOT NULL, "
            "error_message VARCHAR, metadata JSON, created_at DATETIME NOT NULL, "
            "started_at DATETIME, completed_at DATETIME)"
        ))
        conn.execute(text(
            "CREATE TABLE playlist (id INTEGER PRIMARY KEY, spotify_id VARCHAR NOT NULL, name VARCHAR NOT NULL)"
        ))
    yield engine


def _columns(engine, table):
    with engine.connect() as conn:
        return {row[1] for row in conn.execute(text(f"PRAGMA table_info({table})"))}


class TestRunMigrations:
    def test_run_migrations_on_fresh_schema(self, engine):
        """Migration should complete without errors when create_all made every column."""
        run_migrations(engine)

    def test_run_migrations_is_idempotent(self, legacy_engine):
        run_migrations(legacy_engine)
        run_migrations(legacy_engine)

    def test_adds_missing_columns(self, legacy_engine):
        run_migrations(legacy_engine)
        assert {"interactive", "user_id"} <= _columns(legacy_engine, "syncrun")
        assert {"previous_snapshot_id", "last_modified_at"} <= _columns(legacy_engine, "playlist")

    def test_missing_tables_are_left_alone(self, legacy_engine):
        run_migrations(legacy_engine)
        assert _columns(legacy_engine, "book") == set()

    def test_every_migration_matches_a_model_column(self, engine):
        for table, column, _ in COLUMN_MIGRATIONS:
            assert column in _columns(engine, table), f"{table}.{column}"

    def test_migrated_run_is_usable(self, legacy_engine):
        """A SyncRun round-trips through the migrated legacy table."""
        run_migrations(legacy_engine)
        with Session(legacy_engine) as s:
            s.add(SyncRun(source_type="demo", interactive=True, user_id=4))
            s.commit()
            run = s.exec(select(SyncRun)).one()
        assert run.interactive is True
        assert run.user_id == 4
