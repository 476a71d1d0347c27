"""CLI entry point for the sector file updater.

Usage:
    airac-updater /path/to/sectors
    python -m airac_updater.cli /path/to/sectors --cycle 2502 --json

Exit status: 0 when no file failed, 1 when some file failed, 2 when the run
itself could not proceed.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
from datetime import date
from pathlib import Path

from pydantic import ValidationError

from airac_updater.config import UpdaterSettings
from airac_updater.contracts.outcome import RunSummary, UpdateOutcome
from airac_updater.errors import InvalidCycleIdent, InvalidReferenceDate
from airac_updater.pipeline.orchestrator import run_update_sync

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "AIRAC_UPDATER_LOG"

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_RUN_ERROR = 2


def _log_level(verbose: bool) -> int:
    if verbose:
        return logging.DEBUG
    name = os.environ.get(LOG_LEVEL_ENV, "info").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _print_outcome(outcome: UpdateOutcome) -> None:
    name = Path(outcome.path).name
    if outcome.status == "updated":
        s = outcome.summary
        detail = f"+{s.added} ~{s.updated} -{s.removed}"
        if s.conflicts:
            detail += f", {len(s.conflicts)} conflicts"
        if not outcome.written:
            detail += ", unchanged"
    elif outcome.status == "skipped":
        detail = outcome.reason or ""
    else:
        detail = f"{outcome.error.code}: {outcome.error.message}"
    print(f"{outcome.status:<8} {name} ({detail})", flush=True)


def _print_summary(summary: RunSummary) -> None:
    counts = summary.counts
    print(
        f"AIRAC {summary.cycle}: {counts['updated']} updated, "
        f"{counts['skipped']} skipped, {counts['failed']} failed"
        + (" (cancelled)" if summary.cancelled else "")
    )
    if summary.error:
        print(f"Error: {summary.error.message}", file=sys.stderr)


def exit_code(summary: RunSummary) -> int:
    if summary.error is not None:
        return EXIT_RUN_ERROR
    if summary.counts["failed"]:
        return EXIT_FAILURES
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Update .sct sector files to the current AIRAC cycle")
    parser.add_argument("folder", type=Path, help="Folder containing .sct files")
    when = parser.add_mutually_exclusive_group()
    when.add_argument("--date", type=date.fromisoformat, help="Reference date (YYYY-MM-DD)")
    when.add_argument("--cycle", type=str, help="AIRAC cycle ID (e.g. 2502)")
    parser.add_argument("--cache-dir", type=Path, help="Dataset cache directory")
    parser.add_argument("--concurrency", type=int, help="Files processed in parallel")
    parser.add_argument("--json", action="store_true", help="Print the run summary as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=_log_level(args.verbose),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = UpdaterSettings.from_env(cache_dir=args.cache_dir, concurrency=args.concurrency)
    except ValidationError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_RUN_ERROR

    cancel_event = threading.Event()

    def request_cancel(signum, frame):
        logger.warning("Interrupted, finishing files in progress")
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, request_cancel)
    try:
        summary = run_update_sync(
            args.folder,
            None if args.json else _print_outcome,
            settings=settings,
            cancel_event=cancel_event,
            reference=args.date,
            cycle=args.cycle,
        )
    except (InvalidReferenceDate, InvalidCycleIdent, OSError) as e:
        logger.error("%s", e)
        return EXIT_RUN_ERROR
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_summary(summary)
    return exit_code(summary)


if __name__ == "__main__":
    sys.exit(main())
