"""Tests for outcome and run summary contracts."""

from airac_updater.contracts import (
    ChangeSummary,
    Conflict,
    OutcomeError,
    RunSummary,
    UpdateOutcome,
    UpdateStatus,
)
from airac_updater.errors import DatasetNotPublished, WriteFailed


class TestChangeSummary:
    def test_total_changes(self):
        summary = ChangeSummary(added=2, updated=1, removed=3)
        assert summary.total_changes == 6
        assert not summary.is_noop

    def test_conflicts_do_not_count_as_changes(self):
        summary = ChangeSummary(conflicts=[Conflict(section="FIXES", identifier="XYZ")])
        assert summary.is_noop

    def test_serialization(self):
        data = ChangeSummary(added=1).to_dict()
        assert data == {"added": 1, "updated": 0, "removed": 0, "conflicts": [], "total_changes": 1}


class TestOutcomeError:
    def test_from_exception(self):
        error = OutcomeError.from_exception(DatasetNotPublished("ED Navaids", "2502"))
        assert error.code == "DatasetNotPublished"
        assert error.message == "ED Navaids is not published for AIRAC 2502"
        assert error.details is None

    def test_details(self):
        error = OutcomeError.from_exception(ValueError("bad"), line=12)
        assert error.details == {"line": 12}


class TestUpdateOutcome:
    def test_updated(self):
        outcome = UpdateOutcome.updated("a.sct", ChangeSummary(added=1), backup_path="a.sct.bak")
        assert outcome.status == UpdateStatus.UPDATED
        assert outcome.written
        assert outcome.error is None

    def test_failed(self):
        exc = WriteFailed("a.sct", "a.sct.bak", "disk full")
        outcome = UpdateOutcome.failed("a.sct", exc, backup_path="a.sct.bak")
        assert outcome.status == "failed"
        assert outcome.error.code == "WriteFailed"
        assert "disk full" in outcome.error.message
        assert outcome.summary is None

    def test_to_dict_omits_unset_fields(self):
        data = UpdateOutcome.skipped("a.sct", "cancelled").to_dict()
        assert data["status"] == "skipped"
        assert data["reason"] == "cancelled"
        assert "error" not in data
        assert "summary" not in data
        assert data["finished_at"].endswith("Z") or "+00:00" in data["finished_at"]


class TestRunSummary:
    def make(self) -> RunSummary:
        return RunSummary(
            folder="/sectors",
            cycle="2502",
            outcomes=[
                UpdateOutcome.updated("/sectors/a.sct", ChangeSummary()),
                UpdateOutcome.skipped("/sectors/b.sct", "cancelled"),
                UpdateOutcome.updated("/sectors/c.sct", ChangeSummary(added=1)),
            ],
        )

    def test_counts(self):
        assert self.make().counts == {"updated": 2, "skipped": 1, "failed": 0}

    def test_ok(self):
        summary = self.make()
        assert summary.ok
        summary.outcomes.append(UpdateOutcome.failed("/sectors/d.sct", OSError("denied")))
        assert not summary.ok

    def test_run_error_not_ok(self):
        summary = RunSummary(folder="/sectors", error=OutcomeError(code="NetworkError", message="down"))
        assert not summary.ok

    def test_outcome_for(self):
        summary = self.make()
        assert summary.outcome_for("b.sct").status == "skipped"
        assert summary.outcome_for("/sectors/c.sct").summary.added == 1
        assert summary.outcome_for("missing.sct") is None

    def test_to_dict(self):
        data = self.make().to_dict()
        assert data["cycle"] == "2502"
        assert data["counts"]["updated"] == 2
        assert len(data["outcomes"]) == 3
        assert data["cancelled"] is False
