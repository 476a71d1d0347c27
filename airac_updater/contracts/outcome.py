"""Per-file outcomes and the run summary reported to the caller."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import Field, computed_field

from airac_updater.contracts.common import ContractModel
from airac_updater.contracts.enums import UpdateStatus


class OutcomeError(ContractModel):
    """Structured error attached to a failed file or run."""

    code: str = Field(..., description="Exception class name, e.g. 'WriteFailed'")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, str | int | float | bool | None] | None = None

    @classmethod
    def from_exception(cls, exc: BaseException, **details: str | int | float | bool | None) -> OutcomeError:
        return cls(code=type(exc).__name__, message=str(exc), details=details or None)


class Conflict(ContractModel):
    """A manual entry that shadows an element of the new data set."""

    section: str = Field(..., description="Sector file section, e.g. 'FIXES'")
    identifier: str


class ChangeSummary(ContractModel):
    """Managed entry changes produced by one merge."""

    added: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    removed: int = Field(default=0, ge=0)
    conflicts: list[Conflict] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_changes(self) -> int:
        return self.added + self.updated + self.removed

    @property
    def is_noop(self) -> bool:
        return self.total_changes == 0


class UpdateOutcome(ContractModel):
    """Terminal result for one sector file.

    ``updated``: merged (``written`` tells whether the file changed on disk).
    ``skipped``: left alone on purpose, ``reason`` says why.
    ``failed``: ``error`` holds the cause, the original file is intact.
    """

    path: str
    status: UpdateStatus
    summary: ChangeSummary | None = None
    reason: str | None = None
    error: OutcomeError | None = None
    backup_path: str | None = None
    written: bool = False
    finished_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @classmethod
    def updated(
        cls,
        path: str,
        summary: ChangeSummary,
        backup_path: str | None = None,
        written: bool = True,
    ) -> UpdateOutcome:
        return cls(
            path=path,
            status=UpdateStatus.UPDATED,
            summary=summary,
            backup_path=backup_path,
            written=written,
        )

    @classmethod
    def skipped(cls, path: str, reason: str) -> UpdateOutcome:
        return cls(path=path, status=UpdateStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, path: str, exc: BaseException, backup_path: str | None = None) -> UpdateOutcome:
        return cls(
            path=path,
            status=UpdateStatus.FAILED,
            error=OutcomeError.from_exception(exc),
            backup_path=backup_path,
        )


class DatasetStats(ContractModel):
    """What the AIXM adapter kept and dropped."""

    elements: int = 0
    unsupported: int = 0
    malformed: int = 0
    not_effective: int = 0
    by_kind: dict[str, int] = Field(default_factory=dict)


class RunSummary(ContractModel):
    """Aggregated result of one update run."""

    folder: str
    cycle: str | None = None
    outcomes: list[UpdateOutcome] = Field(default_factory=list)
    dataset: DatasetStats | None = None
    error: OutcomeError | None = None
    cancelled: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in UpdateStatus}
        for outcome in self.outcomes:
            counts[UpdateStatus(outcome.status).value] += 1
        return counts

    @property
    def ok(self) -> bool:
        return self.error is None and self.counts[UpdateStatus.FAILED.value] == 0

    def outcome_for(self, name: str) -> UpdateOutcome | None:
        """Find the outcome of a file by its name or full path."""
        for outcome in self.outcomes:
            if outcome.path == name or Path(outcome.path).name == name:
                return outcome
        return None
