"""Structured, append-only event log."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class LogCategory(str, Enum):
    SYNC = "sync"
    AUTH = "auth"
    SYSTEM = "system"


class LogEntry(SQLModel, table=True):
    """One immutable log event, optionally owned by a sync run."""

    id: Optional[int] = Field(default=None, primary_key=True)
    sync_run_id: Optional[int] = Field(default=None, foreign_key="syncrun.id", index=True)
    category: str = Field(index=True)
    level: str = LogLevel.INFO.value
    event: Optional[str] = None  # short machine-readable tag, e.g. "item_failed"
    message: str = ""
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    user_id: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
