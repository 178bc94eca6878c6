"""Exception types shared by the sync core and the source integrations.

Which failures propagate is decided by where they are raised, not by type:
anything escaping ``fetch_items()`` or run setup fails the run and is
re-raised; anything escaping ``process_item()`` is counted as a failed item.
"""
from typing import Optional


class SyncError(RuntimeError):
    """Base class for sync-engine errors."""


class SourceConfigError(SyncError):
    """Raised when a source is missing a required credential or setting."""


class SourceRequestError(SyncError):
    """Raised when an outbound API call fails (HTTP status or error payload)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidTransitionError(SyncError):
    """Raised on an illegal SyncRun status change."""


class RunAlreadyFinishedError(InvalidTransitionError):
    """Raised when perform() is invoked on a completed or failed run."""


class UnknownSourceError(KeyError):
    """Raised when no adapter is registered for a source type."""
