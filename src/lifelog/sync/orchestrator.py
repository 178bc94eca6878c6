"""
SyncOrchestrator: drives one SyncRun through one SourceAdapter.

Flow for perform():
  1. Log start, move the run to "running", broadcast
  2. adapter.fetch_items() → set total_items if the collection is sized
  3. For each item, strictly in sequence:
       process_item() inside a failure boundary → bump the matching counter
       and processed_items in one atomic UPDATE → broadcast on cadence
  4. adapter.after_items() (e.g. apply deletions)
  5. Move the run to "completed", log the summary, broadcast

Any exception outside the per-item boundary (fetch, setup, after_items,
persistence) moves the run to "failed" with error_message set and is
re-raised unchanged so the task layer can apply its retry policy.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlmodel import Session

from lifelog.models.sync import COUNTER_FIELDS, SyncRun, SyncStatus
from lifelog.sync.base import (
    SourceAdapter,
    SyncContext,
    SyncResult,
    is_sized,
    iterate_items,
)
from lifelog.sync.broadcast import (
    NullBroadcaster,
    StatusBroadcaster,
    get_broadcaster,
    should_broadcast_progress,
    status_channel,
)
from lifelog.sync.errors import InvalidTransitionError, RunAlreadyFinishedError
from lifelog.sync.logsink import LogSink

logger = logging.getLogger(__name__)

_COUNTER_FOR_RESULT = {
    SyncResult.CREATED: "created_count",
    SyncResult.UPDATED: "updated_count",
    SyncResult.SKIPPED: "skipped_count",
    SyncResult.FAILED: "failed_count",
}


class SyncOrchestrator:
    """Runs a single source sync and keeps its SyncRun record current."""

    def __init__(
        self,
        adapter: SourceAdapter,
        engine,
        *,
        sync_run: Optional[SyncRun] = None,
        broadcast: bool = False,
        broadcaster: Optional[StatusBroadcaster] = None,
        user_id: Optional[int] = None,
    ):
        """
        Args:
            adapter: The source strategy to run.
            engine: SQLAlchemy engine holding SyncRun/LogEntry tables.
            sync_run: Existing run to drive (e.g. created by the API before
                enqueueing). A new pending run is created when omitted.
            broadcast: Publish progress snapshots for this run.
            broadcaster: Publisher to use; defaults to the process-wide one
                for interactive runs.
            user_id: Owner stamped on a newly created run.
        """
        if not adapter.source_type:
            raise ValueError(f"{type(adapter).__name__} does not declare a source_type")
        self.adapter = adapter
        self.engine = engine

        if sync_run is None:
            self.run = self._create_run(interactive=broadcast, user_id=user_id)
        else:
            if sync_run.source_type != adapter.source_type:
                raise ValueError(
                    f"Sync run {sync_run.id} is for {sync_run.source_type!r}, "
                    f"not {adapter.source_type!r}"
                )
            self.run = self._load_run(sync_run.id)
            if broadcast and not self.run.interactive:
                self._update_run(interactive=True)

        if broadcaster is None:
            broadcaster = get_broadcaster() if self.run.interactive else NullBroadcaster()
        self.broadcaster = broadcaster
        self.log = LogSink(
            engine,
            sync_run_id=self.run.id,
            user_id=self.run.user_id,
            prefix=adapter.source_type,
            broadcaster=broadcaster,
            interactive=self.run.interactive,
        )

    @property
    def source_type(self) -> str:
        return self.adapter.source_type

    async def perform(self) -> SyncRun:
        """
        Execute the sync end to end.

        Returns:
            The completed SyncRun.

        Raises:
            RunAlreadyFinishedError: if the run is already completed or failed
                (the record is left untouched).
            Any exception from fetching, setup or the post-item hook, after
            the run has been marked failed.
        """
        if self.run.is_terminal:
            raise RunAlreadyFinishedError(
                f"Sync run {self.run.id} is already {self.run.status}"
            )

        self.log.info(f"Starting {self.source_type} sync...", event="sync_started")
        try:
            self._start()
            self._broadcast()

            self.adapter.bind(self._build_context())
            items = await self.adapter.fetch_items()

            if is_sized(items):
                total = len(items)
                self._update_run(total_items=total)
                self.log.info(f"Found {total} items to process", total=total)
            else:
                self.log.info("Processing items (total count unknown)...")
            self._broadcast()

            await self._process_all(items)
            await self.adapter.after_items()
            self._complete()

        except Exception as exc:
            try:
                self._fail(exc)
            except Exception:
                logger.exception("Could not record failure of sync run %s", self.run.id)
            raise

        return self.run

    # ─── Item loop ────────────────────────────────────────────────────────────

    async def _process_all(self, items: Any) -> None:
        ordinal = 0
        async for item in iterate_items(items):
            ordinal += 1
            await self._process_single(item, ordinal)
            if should_broadcast_progress(self.run.processed_items, self.run.total_items):
                self._broadcast()

    async def _process_single(self, item: Any, ordinal: int) -> None:
        description = self._describe(item, ordinal)

        try:
            result = SyncResult(await self.adapter.process_item(item))
        except Exception as exc:
            self._record(SyncResult.FAILED)
            self.log.error(
                f"Error processing {description}: {exc}",
                event="item_error",
                error=type(exc).__name__,
                item=description,
            )
            return

        self._record(result)
        if result == SyncResult.CREATED:
            self.log.success(f"Created: {description}")
        elif result == SyncResult.UPDATED:
            self.log.info(f"Updated: {description}")
        elif result == SyncResult.SKIPPED:
            self.log.info(f"Skipped: {description} (no changes)")
        else:
            self.log.warning(f"Failed: {description}")

    def _describe(self, item: Any, ordinal: int) -> str:
        try:
            return self.adapter.describe_item(item, ordinal)
        except Exception as exc:
            logger.debug("describe_item failed for item #%d: %s", ordinal, exc)
            return f"Item #{ordinal}"

    def _record(self, result: SyncResult) -> None:
        """Count one outcome: its counter and processed_items move together."""
        table = SyncRun.__table__
        column = _COUNTER_FOR_RESULT[result]
        stmt = (
            update(table)
            .where(table.c.id == self.run.id)
            .values({
                column: table.c[column] + 1,
                "processed_items": table.c.processed_items + 1,
            })
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)
        self.run = self._load_run(self.run.id)

    # ─── State transitions ────────────────────────────────────────────────────

    def _start(self) -> None:
        fields = {"started_at": datetime.utcnow()}
        if self.run.status == SyncStatus.RUNNING.value:
            # Redelivered job: previous attempt died mid-run, count from zero
            logger.warning("Restarting sync run %s that was left running", self.run.id)
            fields.update({name: 0 for name in COUNTER_FIELDS})
            fields.update(processed_items=0, total_items=None, error_message=None)
        self._transition(SyncStatus.RUNNING.value, **fields)

    def _complete(self) -> None:
        self._transition(SyncStatus.COMPLETED.value, completed_at=datetime.utcnow())
        run = self.run
        self.log.success(
            f"Sync completed! Created: {run.created_count}, Updated: {run.updated_count}, "
            f"Skipped: {run.skipped_count}, Failed: {run.failed_count}",
            event="sync_completed",
            created=run.created_count,
            updated=run.updated_count,
            skipped=run.skipped_count,
            failed=run.failed_count,
        )
        self._broadcast()

    def _fail(self, error: BaseException) -> None:
        message = str(error) or type(error).__name__
        if self.run.can_transition_to(SyncStatus.FAILED.value):
            self._transition(
                SyncStatus.FAILED.value,
                error_message=message,
                completed_at=datetime.utcnow(),
            )
        self.log.error(
            f"Sync failed: {message}",
            event="sync_failed",
            error=type(error).__name__,
        )
        self._broadcast()

    def _transition(self, status: str, **fields: Any) -> None:
        if not self.run.can_transition_to(status):
            raise InvalidTransitionError(
                f"Sync run {self.run.id} cannot move from {self.run.status} to {status}"
            )
        self._update_run(status=status, **fields)

    # ─── Persistence / broadcast helpers ──────────────────────────────────────

    def _create_run(self, *, interactive: bool, user_id: Optional[int]) -> SyncRun:
        run = SyncRun(
            source_type=self.adapter.source_type,
            interactive=interactive,
            user_id=user_id,
        )
        with Session(self.engine) as s:
            s.add(run)
            s.commit()
            s.refresh(run)
        return run

    def _load_run(self, run_id: int) -> SyncRun:
        with Session(self.engine) as s:
            run = s.get(SyncRun, run_id)
            if run is None:
                raise LookupError(f"Sync run {run_id} does not exist")
            return run

    def _update_run(self, **fields: Any) -> None:
        with Session(self.engine) as s:
            db_run = s.get(SyncRun, self.run.id)
            for name, value in fields.items():
                setattr(db_run, name, value)
            s.add(db_run)
            s.commit()
            s.refresh(db_run)
        self.run = db_run

    def _build_context(self) -> SyncContext:
        return SyncContext(
            self.log,
            engine=self.engine,
            run_id=self.run.id,
            metadata=self.run.run_metadata,
        )

    def _broadcast(self) -> None:
        """Publish the current snapshot. Best-effort: failures are logged and dropped."""
        if not self.run.interactive:
            return
        try:
            payload = self.run.snapshot().model_dump(mode="json")
            self.broadcaster.publish(status_channel(self.run.id), payload)
        except Exception as exc:
            logger.debug("Broadcast failed for sync run %s: %s", self.run.id, exc)
