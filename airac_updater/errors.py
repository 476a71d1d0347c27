"""Updater-specific exceptions.

Grouped by how the pipeline treats them:

- transient errors are retried by the dataset fetcher,
- data errors skip the offending element or file and are reported,
- resource errors fail the affected file only,
- invariant errors abort the whole run.
"""

from __future__ import annotations

from pathlib import Path


class AiracUpdaterError(Exception):
    """Base exception for all updater errors."""


# ============ Invariant ============

class InvalidReferenceDate(AiracUpdaterError, ValueError):
    """Raised when a reference date predates the AIRAC epoch."""


class InvalidCycleIdent(AiracUpdaterError, ValueError):
    """Raised when an AIRAC cycle identifier cannot be resolved."""


# ============ Dataset retrieval ============

class DatasetFetchError(AiracUpdaterError):
    """Failed to retrieve an AIXM dataset."""


class NetworkError(DatasetFetchError):
    """Transient network failure (timeout, connection reset, 5xx)."""


class DatasetNotPublished(DatasetFetchError):
    """The publisher has no release of a dataset for the requested cycle."""

    def __init__(self, dataset: str, cycle: str):
        self.dataset = dataset
        self.cycle = cycle
        super().__init__(f"{dataset} is not published for AIRAC {cycle}")


class CacheCorruption(DatasetFetchError):
    """A cached dataset no longer matches its recorded checksum."""

    def __init__(self, path: Path, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"Checksum mismatch for {path}: expected {expected[:12]}, got {actual[:12]}")


# ============ AIXM ============

class AixmParseError(AiracUpdaterError):
    """The AIXM document is not well-formed."""


class UnsupportedFeature(AiracUpdaterError):
    """An AIXM feature type the sector files have no use for."""


class MalformedGeometry(AiracUpdaterError):
    """An AIXM feature carries a position that cannot be converted."""


# ============ Sector files ============

class SectorParseError(AiracUpdaterError):
    """The text is not a sector file."""


class IncompatibleSchema(AiracUpdaterError):
    """The sector file was written by an unknown version of the updater."""

    def __init__(self, version: int):
        self.version = version
        super().__init__(f"Unsupported sector file schema version {version}")


class BackupFailed(AiracUpdaterError):
    """The backup copy could not be created or verified."""


class WriteFailed(AiracUpdaterError):
    """The updated file could not be written. The original is untouched."""

    def __init__(self, path: Path, backup_path: Path | None, reason: str):
        self.path = path
        self.backup_path = backup_path
        super().__init__(f"Could not write {path}: {reason}")
