"""
Database migrations for lifelog.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from get_engine() after create_all() so databases
created before a column existed pick it up without manual steps.
"""
from sqlalchemy import text

# (table, column, SQLite type) for every column added after a table first shipped
COLUMN_MIGRATIONS = [
    ("syncrun", "interactive", "BOOLEAN DEFAULT 0"),
    ("syncrun", "user_id", "INTEGER"),
    ("logentry", "event", "VARCHAR"),
    ("logentry", "user_id", "INTEGER"),
    ("playlist", "previous_snapshot_id", "VARCHAR"),
    ("playlist", "last_modified_at", "DATETIME"),
    ("book", "progress", "FLOAT"),
    ("book", "cover_url", "VARCHAR"),
]


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times. Non-SQLite databases are left alone; they
    are expected to be created fresh by create_all().

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return
    with engine.connect() as conn:
        for table, column, col_type in COLUMN_MIGRATIONS:
            _add_column_if_missing(conn, table, column, col_type)
        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if the table exists and lacks it.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "REAL", "TEXT".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if existing_columns and column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
