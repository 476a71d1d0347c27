"""Backup and write transaction for one sector file.

Steps:
1. Copy the file to ``<name>.<YYYYmmdd_HHMMSS>.bak`` and verify the copy.
2. Render the merged model.
3. Write it to a temporary file in the same directory (fsync, same mode).
4. Rename the temporary file over the original.

A failure in steps 2-4 leaves the original untouched; the backup stays in
place for manual recovery.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from airac_updater.adapters.protocols import SectorCodec
from airac_updater.errors import BackupFailed, WriteFailed
from airac_updater.pipeline.merge import MergeResult

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass
class CommitReport:
    path: Path
    backup_path: Path
    bytes_written: int


def backup_path_for(path: Path, now: datetime | None = None) -> Path:
    """First free ``<name>.<timestamp>[-N].bak`` beside *path*."""
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    candidate = path.with_name(f"{path.name}.{stamp}{BACKUP_SUFFIX}")
    sequence = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.{stamp}-{sequence}{BACKUP_SUFFIX}")
        sequence += 1
    return candidate


def create_backup(path: Path, now: datetime | None = None) -> Path:
    """Copy *path* to a fresh backup file and check it is byte-identical.

    Raises:
        BackupFailed: The copy could not be made or differs from the original.
    """
    backup = backup_path_for(path, now)
    try:
        shutil.copy2(path, backup)
        identical = backup.read_bytes() == path.read_bytes()
    except OSError as e:
        backup.unlink(missing_ok=True)
        raise BackupFailed(f"Could not back up {path} to {backup}: {e}") from e
    if not identical:
        backup.unlink(missing_ok=True)
        raise BackupFailed(f"Backup {backup} does not match {path}")
    logger.debug("Backed up %s to %s", path.name, backup.name)
    return backup


def replace_file(path: Path, data: bytes) -> None:
    """Atomically replace *path* with *data*, keeping its permission bits."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def commit(
    path: str | Path,
    result: MergeResult,
    codec: SectorCodec,
    encoding: str = "utf-8",
    now: datetime | None = None,
    rendered: str | None = None,
) -> CommitReport:
    """Back up *path* and replace it with the rendering of *result*.

    *rendered* is the text of ``codec.render(result.model)`` when the caller
    already has it.

    Raises:
        BackupFailed: Nothing was written.
        WriteFailed: The original is unchanged; ``backup_path`` is set.
    """
    path = Path(path)
    backup = create_backup(path, now)

    try:
        text = codec.render(result.model) if rendered is None else rendered
        data = text.encode(encoding)
    except ValueError as e:
        raise WriteFailed(path, backup, f"cannot render: {e}") from e

    try:
        replace_file(path, data)
    except OSError as e:
        raise WriteFailed(path, backup, e.strerror or str(e)) from e

    logger.debug("Wrote %s (%d bytes)", path.name, len(data))
    return CommitReport(path=path, backup_path=backup, bytes_written=len(data))
