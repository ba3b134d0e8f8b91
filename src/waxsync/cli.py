# Hey future me - this is the scheduler-facing surface of waxsync!
#
# A cron job / systemd timer calls `waxsync import` once a month. The exit code is the only
# thing the scheduler understands, so keep it stable:
#   0 → run completed (or the period was already imported)
#   1 → run started but ended FAILED (details are in the import_runs row and the logs)
#   2 → nothing was started: bad period, another run is active, broken state
#
# SIGINT/SIGTERM do NOT kill the process mid-batch. They ask the job to stop after the current
# batch, the run is marked Failed("cancelled: <signal>") and the exit code is 1.
"""Command line interface for waxsync.

Usage::

    # Create the schema (development; production uses `alembic upgrade head`)
    waxsync init-db

    # Import the dumps of the current month (or an explicit period)
    waxsync import
    waxsync import --period 2026-10

    # Show recent runs and their per-file stats
    waxsync status
    waxsync status --period 2026-10
"""

import argparse
import asyncio
import json
import logging
import signal
import sys

from waxsync.application.workers.catalog_import_worker import CatalogImportJob
from waxsync.config import Settings, get_settings
from waxsync.domain.entities import ImportRun, ImportRunStatus
from waxsync.domain.exceptions import (
    ImportRunConflictError,
    InvalidStateException,
    ValidationException,
)
from waxsync.domain.value_objects import validate_period
from waxsync.infrastructure.observability.logging import configure_logging
from waxsync.infrastructure.persistence.database import Database
from waxsync.infrastructure.persistence.repositories import ImportRunRepository

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_STARTED = 2


def _format_run(run: ImportRun) -> str:
    lines = [
        f"{run.period}  attempt {run.attempt}  {run.status.value}  (run {run.id})",
        f"  created {run.created_at:%Y-%m-%d %H:%M:%S}"
        + (f"  finished {run.completed_at:%Y-%m-%d %H:%M:%S}" if run.completed_at else ""),
    ]
    if run.error_message:
        lines.append(f"  error: {run.error_message}")
    for entity, stats in run.stats.entities.items():
        lines.append(
            f"  {entity:<8} {stats.status.value:<10} decoded={stats.decoded} "
            f"filtered={stats.filtered} errored={stats.errored} inserted={stats.inserted} "
            f"updated={stats.updated} unchanged={stats.skipped}"
        )
        if stats.associations:
            lines.append(f"           associations={json.dumps(stats.associations)}")
    return "\n".join(lines)


def _install_signal_handlers(job: CatalogImportJob) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, job.cancel, sig.name)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler; Ctrl+C still raises there
            logger.debug("Signal handlers not supported on this platform")


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_import(args: argparse.Namespace, settings: Settings) -> int:
    db = Database(settings)
    try:
        job = CatalogImportJob(db, settings)
        _install_signal_handlers(job)
        try:
            run = await job.run(args.period)
        except (ImportRunConflictError, ValidationException, InvalidStateException) as e:
            logger.error("Import not started: %s", e.message)
            return EXIT_NOT_STARTED
        print(_format_run(run))
        return EXIT_OK if run.status == ImportRunStatus.COMPLETED else EXIT_FAILED
    finally:
        await db.close()


async def _handle_status(args: argparse.Namespace, settings: Settings) -> int:
    db = Database(settings)
    try:
        async with db.session_scope() as session:
            repo = ImportRunRepository(session)
            if args.period:
                try:
                    period = validate_period(args.period)
                except ValidationException as e:
                    logger.error("%s", e.message)
                    return EXIT_NOT_STARTED
                latest = await repo.get_latest_for_period(period)
                runs = [latest] if latest else []
            else:
                runs = await repo.list_recent(args.limit)
    finally:
        await db.close()

    if not runs:
        print("No import runs recorded.")
        return EXIT_OK
    print("\n\n".join(_format_run(run) for run in runs))
    return EXIT_OK


async def _handle_init_db(args: argparse.Namespace, settings: Settings) -> int:
    db = Database(settings)
    try:
        await db.create_tables()
    finally:
        await db.close()
    print(f"Schema created at {settings.database.url}")
    return EXIT_OK


_HANDLERS = {
    "import": _handle_import,
    "status": _handle_status,
    "init-db": _handle_init_db,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="waxsync",
        description="Bulk-synchronize monthly vinyl catalog dumps into a relational database.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Import the dumps of a period")
    import_parser.add_argument(
        "--period", help="Dump period as YYYY-MM (default: current UTC month)"
    )

    status_parser = subparsers.add_parser("status", help="Show recent import runs")
    status_parser.add_argument("--period", help="Only show the latest run of this period")
    status_parser.add_argument("--limit", type=int, default=5, help="Number of runs to show")

    subparsers.add_parser("init-db", help="Create all tables (development)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point of the ``waxsync`` command."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    return asyncio.run(_HANDLERS[args.command](args, settings))


if __name__ == "__main__":
    sys.exit(main())
