"""On-disk cache of AIXM datasets, one directory per AIRAC cycle.

Layout::

    <cache_dir>/<cycle ident>/metadata.json
    <cache_dir>/<cycle ident>/<dataset slug>.xml

Every write goes through a temporary file renamed into place, so a reader
never sees a partial dataset or metadata file.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import Field, ValidationError

from airac_updater.contracts.common import ContractModel
from airac_updater.errors import CacheCorruption
from airac_updater.services.airac_cycle import AiracCycle

logger = logging.getLogger(__name__)

METADATA_FILENAME = "metadata.json"
_CYCLE_DIR_RE = re.compile(r"^\d{4}$")


class DatasetReference(ContractModel):
    """A downloaded dataset and how to recognise it again."""

    cycle: str
    dataset: str
    url: str
    cache_path: str
    sha256: str
    etag: str | None = None
    size_bytes: int = Field(default=0, ge=0)
    downloaded_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))


class CacheMetadata(ContractModel):
    """Metadata for a cached AIRAC cycle."""

    cycle: str
    start: datetime
    end: datetime
    datasets: dict[str, DatasetReference] = Field(default_factory=dict)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def dataset_slug(dataset: str) -> str:
    """``"ED Navaids"`` -> ``"ed_navaids"``."""
    return re.sub(r"[^a-z0-9]+", "_", dataset.lower()).strip("_")


def write_atomic(path: Path, data: bytes) -> None:
    """Write *data* to *path* through a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class DatasetCache:
    """Handle on the dataset cache directory.

    The directory is created on first write; constructing a handle has no
    side effects.
    """

    def __init__(self, cache_dir: str | Path):
        self.cache_dir = Path(cache_dir)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def cycle_dir(self, cycle: str) -> Path:
        return self.cache_dir / cycle

    def dataset_path(self, cycle: str, dataset: str) -> Path:
        return self.cycle_dir(cycle) / f"{dataset_slug(dataset)}.xml"

    def _metadata_path(self, cycle: str) -> Path:
        return self.cycle_dir(cycle) / METADATA_FILENAME

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def load_metadata(self, cycle: str) -> CacheMetadata | None:
        """Load metadata for a cycle if it exists and is readable."""
        meta_path = self._metadata_path(cycle)
        if not meta_path.exists():
            return None
        try:
            return CacheMetadata.model_validate_json(meta_path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable cache metadata %s: %s", meta_path, e)
            return None

    def _save_metadata(self, metadata: CacheMetadata) -> None:
        payload = json.dumps(metadata.to_dict(), indent=2, ensure_ascii=False)
        write_atomic(self._metadata_path(metadata.cycle), payload.encode("utf-8"))

    def lookup(self, cycle: str, dataset: str) -> DatasetReference | None:
        metadata = self.load_metadata(cycle)
        if metadata is None:
            return None
        return metadata.datasets.get(dataset)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def read(self, ref: DatasetReference) -> bytes:
        """Return the cached bytes of *ref*.

        Raises:
            CacheCorruption: The file is missing or its checksum changed.
        """
        path = Path(ref.cache_path)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            raise CacheCorruption(path, ref.sha256, "missing")
        actual = sha256_hex(data)
        if actual != ref.sha256:
            raise CacheCorruption(path, ref.sha256, actual)
        return data

    def store(
        self,
        cycle: AiracCycle,
        dataset: str,
        url: str,
        data: bytes,
        etag: str | None = None,
    ) -> DatasetReference:
        """Write a dataset and record it in the cycle metadata."""
        path = self.dataset_path(cycle.ident, dataset)
        write_atomic(path, data)

        ref = DatasetReference(
            cycle=cycle.ident,
            dataset=dataset,
            url=url,
            cache_path=str(path),
            sha256=sha256_hex(data),
            etag=etag,
            size_bytes=len(data),
        )
        metadata = self.load_metadata(cycle.ident) or CacheMetadata(
            cycle=cycle.ident, start=cycle.start, end=cycle.end
        )
        metadata.datasets[dataset] = ref
        self._save_metadata(metadata)
        logger.debug("Cached %s for AIRAC %s (%d bytes)", dataset, cycle.ident, len(data))
        return ref

    def discard(self, cycle: str, dataset: str) -> None:
        """Forget a dataset so the next fetch downloads it again."""
        self.dataset_path(cycle, dataset).unlink(missing_ok=True)
        metadata = self.load_metadata(cycle)
        if metadata is not None and metadata.datasets.pop(dataset, None) is not None:
            self._save_metadata(metadata)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def cached_cycles(self) -> list[str]:
        """Cycle identifiers present in the cache, oldest first."""
        if not self.cache_dir.is_dir():
            return []
        cycles = [
            d.name for d in self.cache_dir.iterdir()
            if d.is_dir() and _CYCLE_DIR_RE.match(d.name)
        ]
        return sorted(cycles, key=_cycle_sort_key)

    def clean_old_cycles(self, current: str, keep_previous: int = 1) -> list[str]:
        """Remove cached cycles older than *current* beyond the last *keep_previous*.

        Returns:
            List of removed cycle identifiers
        """
        older = [c for c in self.cached_cycles() if _cycle_sort_key(c) < _cycle_sort_key(current)]
        to_remove = older[:-keep_previous] if keep_previous > 0 else older
        for cycle in to_remove:
            logger.info("Removing old cycle cache: %s", cycle)
            shutil.rmtree(self.cycle_dir(cycle))
        return to_remove


def _cycle_sort_key(ident: str) -> tuple[int, int]:
    yy, nn = int(ident[:2]), int(ident[2:])
    return (1900 + yy if yy >= 98 else 2000 + yy, nn)
