"""Sync trigger, run history and live progress routes."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
)
from pydantic import BaseModel
from sqlmodel import Session, select

from lifelog.config import get_settings
from lifelog.db.engine import get_engine, get_session
from lifelog.models.log import LogEntry
from lifelog.models.sync import TERMINAL_STATUSES, SyncRun, SyncRunSnapshot
from lifelog.scheduler.jobs import run_sync
from lifelog.sources.registry import SOURCES, available_sources
from lifelog.sync.broadcast import get_broadcaster, status_channel

logger = logging.getLogger(__name__)

router = APIRouter()

# How long a quiet stream waits before re-reading the run from the database
STREAM_POLL_SECONDS = 2.0


class SyncTriggerRequest(BaseModel):
    interactive: bool = False
    # Seed values for the run's metadata, e.g. {"scenario": "quick"} for demo
    metadata: Dict[str, Any] = {}


async def _do_sync(source_type: str, engine, run_id: int, interactive: bool) -> None:
    """Background task: drive the pre-created run. Failures are already recorded on the run."""
    try:
        await run_sync(source_type, engine, run_id=run_id, interactive=interactive)
    except Exception as exc:
        logger.error("Background %s sync (run %s) failed: %s", source_type, run_id, exc)


@router.get("/sources", response_model=List[str])
def list_sources():
    return available_sources()


@router.post("/{source_type}/trigger", response_model=SyncRunSnapshot)
def trigger_sync(
    source_type: str,
    background_tasks: BackgroundTasks,
    request: Optional[SyncTriggerRequest] = None,
    session: Session = Depends(get_session),
    engine=Depends(get_engine),
):
    """
    Create a pending run and start it in the background.
    Returns immediately with the pending run; follow it via /runs/{id}.
    """
    if source_type not in SOURCES:
        raise HTTPException(status_code=404, detail=f"Unknown source: {source_type}")
    request = request or SyncTriggerRequest()

    run = SyncRun(
        source_type=source_type,
        interactive=request.interactive,
        run_metadata=dict(request.metadata),
        user_id=get_settings().user_id,
    )
    session.add(run)
    session.commit()
    session.refresh(run)

    background_tasks.add_task(_do_sync, source_type, engine, run.id, request.interactive)
    return run.snapshot()


@router.get("/runs", response_model=List[SyncRunSnapshot])
def list_runs(
    source_type: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=200),
    session: Session = Depends(get_session),
):
    """Most recent runs first."""
    query = select(SyncRun)
    if source_type:
        query = query.where(SyncRun.source_type == source_type)
    runs = session.exec(query.order_by(SyncRun.created_at.desc(), SyncRun.id.desc()).limit(limit)).all()
    return [run.snapshot() for run in runs]


@router.get("/runs/{run_id}", response_model=SyncRunSnapshot)
def get_run(run_id: int, session: Session = Depends(get_session)):
    run = session.get(SyncRun, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Sync run {run_id} not found")
    return run.snapshot()


@router.get("/runs/{run_id}/logs", response_model=List[LogEntry])
def get_run_logs(run_id: int, session: Session = Depends(get_session)):
    """The run's log entries in the order they were written."""
    if session.get(SyncRun, run_id) is None:
        raise HTTPException(status_code=404, detail=f"Sync run {run_id} not found")
    return session.exec(
        select(LogEntry).where(LogEntry.sync_run_id == run_id).order_by(LogEntry.id)
    ).all()


def _current_snapshot(engine, run_id: int) -> Optional[Dict[str, Any]]:
    with Session(engine) as s:
        run = s.get(SyncRun, run_id)
        return run.snapshot().model_dump(mode="json") if run is not None else None


@router.websocket("/runs/{run_id}/stream")
async def stream_run(websocket: WebSocket, run_id: int, engine=Depends(get_engine)):
    """
    Live progress for one run: the current snapshot first, then every
    broadcast snapshot until the run reaches a terminal status.

    Runs that publish nothing here (non-interactive, or driven by another
    process) are followed by re-reading the run every STREAM_POLL_SECONDS
    while the channel is quiet.
    """
    await websocket.accept()
    broadcaster = get_broadcaster()
    channel = status_channel(run_id)
    # Subscribe before reading the run so no transition slips in between
    queue = broadcaster.subscribe(channel)
    try:
        payload = _current_snapshot(engine, run_id)
        if payload is None:
            await websocket.close(code=4404)
            return

        await websocket.send_json(payload)
        while payload.get("status") not in TERMINAL_STATUSES:
            try:
                update = await asyncio.wait_for(queue.get(), timeout=STREAM_POLL_SECONDS)
            except asyncio.TimeoutError:
                update = _current_snapshot(engine, run_id)
                if update is None:
                    break
                if update == payload:
                    continue
            payload = update
            await websocket.send_json(payload)
        await websocket.close()
    except WebSocketDisconnect:
        logger.debug("Stream client for run %s disconnected", run_id)
    finally:
        broadcaster.unsubscribe(channel, queue)
