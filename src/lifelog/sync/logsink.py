"""
Append-only structured event log.

Every entry is written as a LogEntry row and mirrored to the stdlib logger.
Entries bound to an interactive run are also published on the run's log
channel. Logging must never break the caller: any failure while writing or
publishing is reported to the stdlib logger and swallowed.
"""
import json
import logging
from typing import Any, Dict, Optional

from sqlmodel import Session

from lifelog.models.log import LogCategory, LogEntry, LogLevel
from lifelog.sync.broadcast import NullBroadcaster, StatusBroadcaster, log_channel

logger = logging.getLogger(__name__)

_STDLIB_LEVELS = {
    LogLevel.DEBUG.value: logging.DEBUG,
    LogLevel.INFO.value: logging.INFO,
    LogLevel.SUCCESS.value: logging.INFO,
    LogLevel.WARNING.value: logging.WARNING,
    LogLevel.ERROR.value: logging.ERROR,
}


def json_safe(data: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce payload values (dates, Decimals, enums...) into JSON-storable ones."""
    return json.loads(json.dumps(data, default=str))


class LogSink:
    """
    Writes log entries for one owner (a sync run, or nothing).

    Usage:
        log = LogSink(engine, sync_run_id=run.id, prefix="spotify")
        log.info("Found 12 playlists", total=12)
        log.error("Sync failed: timeout", event="sync_failed")
    """

    def __init__(
        self,
        engine,
        *,
        sync_run_id: Optional[int] = None,
        category: str = LogCategory.SYNC.value,
        user_id: Optional[int] = None,
        prefix: Optional[str] = None,
        broadcaster: Optional[StatusBroadcaster] = None,
        interactive: bool = False,
    ):
        """
        Args:
            engine: SQLAlchemy engine. None keeps entries in the stdlib log only.
            sync_run_id: Owning run, if any.
            category: "sync", "auth" or "system".
            user_id: Optional actor reference stamped on each entry.
            prefix: Tag prepended to stdlib log lines, usually the source type.
            broadcaster: Where interactive entries are published.
            interactive: Publish each entry on the run's log channel.
        """
        self.engine = engine
        self.sync_run_id = sync_run_id
        self.category = category
        self.user_id = user_id
        self.prefix = prefix
        self.broadcaster = broadcaster or NullBroadcaster()
        self.interactive = interactive

    def log(self, level: str, message: str, *, event: Optional[str] = None, **data: Any) -> Optional[LogEntry]:
        """Append one entry. Returns the stored entry, or None if it could not be written."""
        level = getattr(level, "value", level)
        if level not in _STDLIB_LEVELS:
            level = LogLevel.INFO.value
        self._mirror(level, message)

        if self.engine is None:
            return None
        try:
            entry = LogEntry(
                sync_run_id=self.sync_run_id,
                category=self.category,
                level=level,
                event=event,
                message=message,
                data=json_safe(data),
                user_id=self.user_id,
            )
            with Session(self.engine) as s:
                s.add(entry)
                s.commit()
                s.refresh(entry)
        except Exception as exc:
            logger.warning("Could not write log entry (%s): %s", exc, message)
            return None

        if self.interactive and self.sync_run_id is not None:
            self._publish(entry)
        return entry

    def debug(self, message: str, **data: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.DEBUG.value, message, **data)

    def info(self, message: str, **data: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO.value, message, **data)

    def success(self, message: str, **data: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.SUCCESS.value, message, **data)

    def warning(self, message: str, **data: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.WARNING.value, message, **data)

    def error(self, message: str, **data: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.ERROR.value, message, **data)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _mirror(self, level: str, message: str) -> None:
        line = f"[{self.prefix}] {message}" if self.prefix else message
        logger.log(_STDLIB_LEVELS.get(level, logging.INFO), line)

    def _publish(self, entry: LogEntry) -> None:
        payload = {
            "id": entry.id,
            "level": entry.level,
            "event": entry.event,
            "message": entry.message,
            "data": entry.data,
            "created_at": entry.created_at.isoformat(),
        }
        try:
            self.broadcaster.publish(log_channel(self.sync_run_id), payload)
        except Exception as exc:
            logger.debug("Log broadcast failed for run %s: %s", self.sync_run_id, exc)


def system_log(engine) -> LogSink:
    """Sink for process-level events not tied to a run (scheduler, startup)."""
    return LogSink(engine, category=LogCategory.SYSTEM.value, prefix="system")


def auth_log(engine, user_id: Optional[int] = None) -> LogSink:
    """Sink for authentication events (session setup, token refresh)."""
    return LogSink(engine, category=LogCategory.AUTH.value, user_id=user_id, prefix="auth")
