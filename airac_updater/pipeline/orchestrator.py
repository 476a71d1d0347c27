"""Update orchestrator: drives one run over a folder of sector files.

The cycle is resolved and the AIXM data fetched and adapted once; every
``.sct`` file is then parsed, merged and committed in a worker thread,
bounded by the configured concurrency. Outcomes are reported through the
progress callback on the event loop thread as files complete.

Usage:
    summary = await run_update("/path/to/sectors", print)
    summary.counts        # {"updated": 3, "skipped": 0, "failed": 0}
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path

import httpx

from airac_updater.adapters.aixm_adapter import AdapterResult, build_navigation_data
from airac_updater.adapters.aixm_parser import AixmDocument, XmlAixmParser
from airac_updater.adapters.protocols import AixmParser, SectorCodec
from airac_updater.adapters.sct_codec import SctCodec
from airac_updater.config import UpdaterSettings
from airac_updater.contracts.navdata import NavigationDataSet
from airac_updater.contracts.outcome import OutcomeError, RunSummary, UpdateOutcome
from airac_updater.errors import (
    AiracUpdaterError,
    AixmParseError,
    BackupFailed,
    DatasetFetchError,
    IncompatibleSchema,
    SectorParseError,
    WriteFailed,
)
from airac_updater.pipeline.commit import commit
from airac_updater.pipeline.merge import merge
from airac_updater.services.airac_cycle import AiracCycle, cycle_from_ident, resolve_cycle
from airac_updater.services.dataset_cache import DatasetCache
from airac_updater.services.dataset_fetcher import DatasetFetcher, unpack_documents

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UpdateOutcome], None]

SECTOR_FILE_SUFFIX = ".sct"
FALLBACK_ENCODING = "cp1252"
CANCELLED_REASON = "cancelled"


def find_sector_files(folder: Path) -> list[Path]:
    """``*.sct`` files directly in *folder* (any case), sorted by name."""
    return sorted(
        p for p in folder.iterdir()
        if p.is_file() and p.suffix.lower() == SECTOR_FILE_SUFFIX
    )


def decode_sector_file(data: bytes) -> tuple[str, str]:
    """Decode sector file bytes.

    Returns:
        ``(text, encoding)``; writing the text back with *encoding*
        reproduces the original bytes.
    """
    encoding = "utf-8-sig" if data.startswith(b"\xef\xbb\xbf") else "utf-8"
    try:
        return data.decode(encoding), encoding
    except UnicodeDecodeError:
        logger.debug("Not UTF-8, trying %s", FALLBACK_ENCODING)
    try:
        return data.decode(FALLBACK_ENCODING), FALLBACK_ENCODING
    except UnicodeDecodeError as e:
        raise SectorParseError(f"Neither UTF-8 nor {FALLBACK_ENCODING} text: {e}") from e


def build_dataset(
    payloads: dict[str, bytes],
    cycle: AiracCycle,
    parser: AixmParser,
) -> AdapterResult:
    """Parse every fetched payload and project the result onto *cycle*."""
    documents = []
    for name, payload in payloads.items():
        for data in unpack_documents(payload):
            try:
                documents.append(parser.parse(data))
            except AixmParseError as e:
                raise AixmParseError(f"{name}: {e}") from e
    return build_navigation_data(AixmDocument.merge(documents), cycle)


def process_file(
    path: Path,
    dataset: NavigationDataSet,
    codec: SectorCodec,
    cancel_event: threading.Event,
) -> UpdateOutcome:
    """Read, merge and commit one sector file. Never raises."""
    name = str(path)
    try:
        text, encoding = decode_sector_file(path.read_bytes())
        result = merge(codec.parse(text), dataset)
    except IncompatibleSchema as e:
        return UpdateOutcome.skipped(name, str(e))
    except (AiracUpdaterError, OSError) as e:
        return UpdateOutcome.failed(name, e)

    if cancel_event.is_set():
        return UpdateOutcome.skipped(name, CANCELLED_REASON)

    rendered = codec.render(result.model)
    if rendered == text:
        return UpdateOutcome.updated(name, result.summary, written=False)

    try:
        report = commit(path, result, codec, encoding=encoding, rendered=rendered)
    except WriteFailed as e:
        backup = str(e.backup_path) if e.backup_path else None
        return UpdateOutcome.failed(name, e, backup_path=backup)
    except BackupFailed as e:
        return UpdateOutcome.failed(name, e)
    return UpdateOutcome.updated(name, result.summary, backup_path=str(report.backup_path))


def _log_outcome(outcome: UpdateOutcome) -> None:
    file_name = Path(outcome.path).name
    if outcome.status == "updated":
        summary = outcome.summary
        logger.info(
            "%s: updated (+%d ~%d -%d, %d conflicts%s)",
            file_name,
            summary.added,
            summary.updated,
            summary.removed,
            len(summary.conflicts),
            "" if outcome.written else ", unchanged",
        )
    elif outcome.status == "skipped":
        logger.info("%s: skipped (%s)", file_name, outcome.reason)
    else:
        logger.error("%s: failed (%s: %s)", file_name, outcome.error.code, outcome.error.message)


def _notify(callback: ProgressCallback | None, outcome: UpdateOutcome) -> None:
    _log_outcome(outcome)
    if callback is None:
        return
    try:
        callback(outcome)
    except Exception:
        logger.exception("Progress callback failed for %s", outcome.path)


async def run_update(
    folder: str | Path,
    progress_callback: ProgressCallback | None = None,
    *,
    settings: UpdaterSettings | None = None,
    cancel_event: threading.Event | None = None,
    reference: datetime | date | None = None,
    cycle: str | AiracCycle | None = None,
    http_client: httpx.AsyncClient | None = None,
    aixm_parser: AixmParser | None = None,
    codec: SectorCodec | None = None,
) -> RunSummary:
    """Update every sector file in *folder* to the AIRAC cycle in effect.

    Args:
        folder: Directory holding the ``.sct`` files
        progress_callback: Called with each ``UpdateOutcome`` as files complete
        settings: Defaults to ``UpdaterSettings.from_env()``
        cancel_event: Set it to stop starting new files
        reference: Instant used to resolve the cycle (default: now)
        cycle: Explicit cycle (``"2502"`` or an ``AiracCycle``), overrides *reference*

    Raises:
        InvalidReferenceDate, InvalidCycleIdent: The target cycle cannot be resolved
        OSError: *folder* cannot be listed
    """
    folder = Path(folder)
    settings = settings or UpdaterSettings.from_env()
    cancel_event = cancel_event or threading.Event()
    parser = aixm_parser or XmlAixmParser()
    codec = codec or SctCodec()

    if isinstance(cycle, str):
        target = cycle_from_ident(cycle)
    else:
        target = cycle or resolve_cycle(reference)
    logger.info("Target cycle: %s", target)

    summary = RunSummary(folder=str(folder), cycle=target.ident)
    files = find_sector_files(folder)
    if not files:
        logger.info("No sector files in %s", folder)
        return summary

    # ---- Shared prerequisite: fetch and adapt once ----
    cache = DatasetCache(settings.cache_dir)
    try:
        async with DatasetFetcher(settings, cache, http_client) as fetcher:
            payloads = await fetcher.fetch(target)
        adapted = await asyncio.to_thread(build_dataset, payloads, target, parser)
    except (DatasetFetchError, AixmParseError, OSError) as e:
        logger.error("Navigation data unavailable for AIRAC %s: %s", target.ident, e)
        summary.error = OutcomeError.from_exception(e)
        for path in files:
            outcome = UpdateOutcome.failed(str(path), e)
            summary.outcomes.append(outcome)
            _notify(progress_callback, outcome)
        return summary

    summary.dataset = adapted.stats
    try:
        cache.clean_old_cycles(target.ident)
    except OSError as e:
        logger.warning("Could not prune dataset cache: %s", e)

    # ---- Per-file work ----
    semaphore = asyncio.Semaphore(settings.concurrency)

    async def update_one(path: Path) -> UpdateOutcome:
        async with semaphore:
            if cancel_event.is_set():
                return UpdateOutcome.skipped(str(path), CANCELLED_REASON)
            try:
                return await asyncio.to_thread(process_file, path, adapted.dataset, codec, cancel_event)
            except Exception as e:
                logger.exception("Unexpected error updating %s", path)
                return UpdateOutcome.failed(str(path), e)

    logger.info("Updating %d sector files", len(files))
    tasks = [asyncio.ensure_future(update_one(path)) for path in files]
    for next_done in asyncio.as_completed(tasks):
        outcome = await next_done
        summary.outcomes.append(outcome)
        _notify(progress_callback, outcome)

    summary.outcomes.sort(key=lambda o: o.path)
    summary.cancelled = cancel_event.is_set()
    logger.info("Run complete for AIRAC %s: %s", target.ident, summary.counts)
    return summary


def run_update_sync(
    folder: str | Path,
    progress_callback: ProgressCallback | None = None,
    **kwargs,
) -> RunSummary:
    """Blocking wrapper around ``run_update`` for callers without an event loop."""
    return asyncio.run(run_update(folder, progress_callback, **kwargs))
