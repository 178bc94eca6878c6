"""
Main entrypoint.

Usage:
    python -m lifelog                          # nightly scheduler (default)
    python -m lifelog serve-scheduler
    python -m lifelog sync spotify             # one sync now, with retries
    python -m lifelog sync demo --interactive
    python -m lifelog sources                  # list registered sources
    python -m lifelog setup                    # one-time Garmin auth setup
    uvicorn lifelog.api.main:app --host 0.0.0.0 --port 8000  # HTTP API
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m lifelog", description="Personal data sync")
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("serve-scheduler", help="run the nightly sync scheduler (default)")

    sync = commands.add_parser("sync", help="run one source's sync now")
    sync.add_argument("source", help="source type, see `sources`")
    sync.add_argument("--interactive", action="store_true", help="broadcast progress")
    sync.add_argument("--run-id", type=int, default=None, help="drive an existing pending run")

    commands.add_parser("sources", help="list registered sources")
    commands.add_parser("setup", help="create the Garmin Connect session")
    return parser


def _run_setup() -> None:
    from lifelog.scripts.setup import run_setup
    run_setup()


def _list_sources() -> None:
    from lifelog.sources.registry import available_sources
    for source_type in available_sources():
        print(source_type)


async def _run_once(source_type: str, interactive: bool, run_id) -> int:
    from lifelog.db.engine import get_engine
    from lifelog.scheduler.jobs import run_sync
    from lifelog.sources.registry import SOURCES

    if source_type not in SOURCES:
        logger.error("Unknown source %r. Run `python -m lifelog sources` for the list.", source_type)
        return 2

    try:
        run = await run_sync(source_type, get_engine(), run_id=run_id, interactive=interactive)
    except Exception as exc:
        logger.error("%s sync failed: %s", source_type, exc)
        return 1

    logger.info(
        "Run %s %s: %d created, %d updated, %d skipped, %d failed",
        run.id, run.status, run.created_count, run.updated_count, run.skipped_count, run.failed_count,
    )
    return 0


async def _serve_scheduler() -> None:
    from lifelog.config import get_settings
    from lifelog.db.engine import get_engine
    from lifelog.scheduler.jobs import build_scheduler

    settings = get_settings()
    engine = get_engine()

    scheduler = build_scheduler(engine)
    scheduler.start()
    logger.info(
        "Scheduler started (%d sources nightly at %02d:00)",
        len(scheduler.get_jobs()),
        settings.sync_hour,
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "setup":
        _run_setup()
        return 0
    if args.command == "sources":
        _list_sources()
        return 0
    if args.command == "sync":
        return asyncio.run(_run_once(args.source, args.interactive, args.run_id))

    asyncio.run(_serve_scheduler())
    return 0


if __name__ == "__main__":
    sys.exit(main())
