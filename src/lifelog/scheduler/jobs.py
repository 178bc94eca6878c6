"""
Sync execution for background callers: the HTTP trigger, the CLI and the
nightly APScheduler jobs.

run_sync() is the retry policy around SyncOrchestrator.perform(): a failed
run stays failed, and each retry runs on a fresh SyncRun whose metadata
points back at the attempt it replaces (``retry_of``). Waits between
attempts double each time.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from lifelog.config import get_settings
from lifelog.models.sync import SyncRun
from lifelog.sources.registry import SOURCES, build_adapter
from lifelog.sync.broadcast import StatusBroadcaster
from lifelog.sync.errors import RunAlreadyFinishedError
from lifelog.sync.logsink import system_log
from lifelog.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


def retry_delay(base_seconds: float, attempt: int) -> float:
    """Wait before attempt ``attempt + 1``: base, 2x base, 4x base, ..."""
    return base_seconds * 2 ** (attempt - 1)


async def run_sync(
    source_type: str,
    engine,
    *,
    run_id: Optional[int] = None,
    interactive: bool = False,
    max_attempts: Optional[int] = None,
    broadcaster: Optional[StatusBroadcaster] = None,
    settings=None,
) -> SyncRun:
    """
    Run one source's sync, retrying failed runs.

    Args:
        source_type: Registered source to run.
        engine: SQLAlchemy engine.
        run_id: Existing pending run to drive (created by the HTTP trigger).
        interactive: Publish progress for live observers.
        max_attempts: Total attempts; defaults to settings.sync_max_attempts.
        broadcaster: Publisher override (tests).
        settings: Settings override (tests).

    Returns:
        The completed SyncRun (from the attempt that succeeded).

    Raises:
        UnknownSourceError: if source_type is not registered.
        RunAlreadyFinishedError: if run_id names a finished run.
        The last attempt's exception once every attempt has failed.
    """
    settings = settings or get_settings()
    attempts = max_attempts or settings.sync_max_attempts
    sync_run = _load_run(engine, run_id) if run_id is not None else None

    attempt = 1
    while True:
        adapter = build_adapter(source_type, settings, engine)
        orchestrator = SyncOrchestrator(
            adapter,
            engine,
            sync_run=sync_run,
            broadcast=interactive,
            broadcaster=broadcaster,
            user_id=settings.user_id,
        )
        try:
            return await orchestrator.perform()
        except RunAlreadyFinishedError:
            raise
        except Exception as exc:
            if attempt >= attempts:
                logger.error(
                    "%s sync failed after %d attempt(s): %s", source_type, attempt, exc
                )
                raise
            delay = retry_delay(settings.sync_retry_backoff_seconds, attempt)
            logger.warning(
                "%s sync attempt %d/%d failed (%s); retrying in %.0fs",
                source_type, attempt, attempts, exc, delay,
            )
            await asyncio.sleep(delay)
            attempt += 1
            sync_run = _create_retry_run(engine, orchestrator.run, attempt)


def _load_run(engine, run_id: int) -> SyncRun:
    with Session(engine) as s:
        run = s.get(SyncRun, run_id)
    if run is None:
        raise LookupError(f"Sync run {run_id} does not exist")
    return run


def _create_retry_run(engine, failed: SyncRun, attempt: int) -> SyncRun:
    run = SyncRun(
        source_type=failed.source_type,
        interactive=failed.interactive,
        user_id=failed.user_id,
        run_metadata={**(failed.run_metadata or {}), "retry_of": failed.id, "attempt": attempt},
    )
    with Session(engine) as s:
        s.add(run)
        s.commit()
        s.refresh(run)
    return run


# ─── Scheduling ───────────────────────────────────────────────────────────────

def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create the APScheduler with one nightly cron job per scheduled source.

    Args:
        engine: SQLAlchemy engine handed to every job.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    for source_type in settings.scheduled_sources:
        if source_type not in SOURCES:
            logger.warning("Not scheduling unknown source %r", source_type)
            continue
        scheduler.add_job(
            scheduled_sync,
            trigger="cron",
            hour=settings.sync_hour,
            minute=0,
            id=f"sync_{source_type}",
            replace_existing=True,
            kwargs={"source_type": source_type, "engine": engine},
        )

    return scheduler


async def scheduled_sync(source_type: str, engine) -> None:
    """
    Nightly job body for one source.

    Never raises, so one broken integration cannot take the scheduler down.
    """
    logger.info("Scheduled %s sync starting at %s", source_type, datetime.utcnow().isoformat())
    try:
        run = await run_sync(source_type, engine)
        logger.info("Scheduled %s sync finished (run %s)", source_type, run.id)
    except Exception as exc:
        logger.error("Scheduled %s sync failed: %s", source_type, exc)
        system_log(engine).error(
            f"Scheduled {source_type} sync failed: {exc}",
            event="scheduled_sync_failed",
            source_type=source_type,
        )
