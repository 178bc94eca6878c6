"""Sync run model: persisted progress and state for one execution of one source."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class SyncStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({SyncStatus.COMPLETED.value, SyncStatus.FAILED.value})

# running -> running is a restart of a redelivered job, never a step backward
ALLOWED_TRANSITIONS = {
    SyncStatus.PENDING.value: {SyncStatus.RUNNING.value},
    SyncStatus.RUNNING.value: {
        SyncStatus.RUNNING.value,
        SyncStatus.COMPLETED.value,
        SyncStatus.FAILED.value,
    },
    SyncStatus.COMPLETED.value: set(),
    SyncStatus.FAILED.value: set(),
}

COUNTER_FIELDS = ("created_count", "updated_count", "skipped_count", "failed_count")


class SyncRun(SQLModel, table=True):
    """One end-to-end execution of a single source's sync."""

    id: Optional[int] = Field(default=None, primary_key=True)
    source_type: str = Field(index=True)
    status: str = Field(default=SyncStatus.PENDING.value, index=True)

    total_items: Optional[int] = None  # unknown for lazy sources
    processed_items: int = 0
    created_count: int = 0
    updated_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0

    error_message: Optional[str] = None
    # Source-specific state (feed etag, scenario, retry_of, ...)
    run_metadata: Dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON)
    )
    interactive: bool = False

    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    user_id: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_progress(self) -> bool:
        return bool(self.total_items and self.total_items > 0)

    @property
    def progress_percentage(self) -> int:
        if self.status == SyncStatus.COMPLETED.value:
            return 100
        if not self.has_progress:
            return 0
        return min(self.processed_items * 100 // self.total_items, 99)

    def can_transition_to(self, status: str) -> bool:
        return status in ALLOWED_TRANSITIONS.get(self.status, set())

    def snapshot(self) -> "SyncRunSnapshot":
        return SyncRunSnapshot(
            id=self.id,
            source_type=self.source_type,
            status=self.status,
            total_items=self.total_items,
            processed_items=self.processed_items,
            created_count=self.created_count,
            updated_count=self.updated_count,
            skipped_count=self.skipped_count,
            failed_count=self.failed_count,
            progress_percentage=self.progress_percentage,
            error_message=self.error_message,
            metadata=dict(self.run_metadata or {}),
            interactive=self.interactive,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


class SyncRunSnapshot(BaseModel):
    """Read-only view of a run, used for broadcasts and API responses."""

    id: Optional[int]
    source_type: str
    status: str
    total_items: Optional[int]
    processed_items: int
    created_count: int
    updated_count: int
    skipped_count: int
    failed_count: int
    progress_percentage: int
    error_message: Optional[str]
    metadata: Dict[str, Any]
    interactive: bool
    created_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
