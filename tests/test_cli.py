"""Tests for the command line entry point."""

import json

import pytest

from airac_updater import cli
from airac_updater.contracts import ChangeSummary, OutcomeError, RunSummary, UpdateOutcome
from airac_updater.errors import InvalidCycleIdent, SectorParseError


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    monkeypatch.delenv("AIRAC_UPDATER_CONCURRENCY", raising=False)
    monkeypatch.chdir(tmp_path)


def fake_run(summary: RunSummary, calls: list | None = None):
    def run(folder, progress_callback=None, **kwargs):
        if calls is not None:
            calls.append((folder, kwargs))
        for outcome in summary.outcomes:
            if progress_callback:
                progress_callback(outcome)
        return summary
    return run


def summary_with(*outcomes: UpdateOutcome, error: OutcomeError | None = None) -> RunSummary:
    return RunSummary(folder="/sectors", cycle="2502", outcomes=list(outcomes), error=error)


class TestExitCode:
    def test_all_updated(self):
        assert cli.exit_code(summary_with(UpdateOutcome.updated("a.sct", ChangeSummary()))) == 0

    def test_skipped_is_success(self):
        assert cli.exit_code(summary_with(UpdateOutcome.skipped("a.sct", "cancelled"))) == 0

    def test_file_failure(self):
        failed = UpdateOutcome.failed("a.sct", SectorParseError("no sections"))
        assert cli.exit_code(summary_with(failed)) == 1

    def test_run_error(self):
        error = OutcomeError(code="NetworkError", message="down")
        assert cli.exit_code(summary_with(error=error)) == 2


class TestMain:
    def test_empty_folder(self, tmp_path, capsys):
        code = cli.main([str(tmp_path), "--cycle", "2502", "--cache-dir", str(tmp_path / "cache")])

        assert code == 0
        assert "AIRAC 2502: 0 updated, 0 skipped, 0 failed" in capsys.readouterr().out

    def test_passes_options(self, tmp_path, monkeypatch):
        calls = []
        monkeypatch.setattr(cli, "run_update_sync", fake_run(summary_with(), calls))

        cli.main([str(tmp_path), "--date", "2025-03-01", "--concurrency", "3"])

        [(folder, kwargs)] = calls
        assert folder == tmp_path
        assert str(kwargs["reference"]) == "2025-03-01"
        assert kwargs["cycle"] is None
        assert kwargs["settings"].concurrency == 3

    def test_prints_progress(self, tmp_path, monkeypatch, capsys):
        summary = summary_with(
            UpdateOutcome.updated("/sectors/a.sct", ChangeSummary(added=1, updated=2)),
            UpdateOutcome.failed("/sectors/b.sct", SectorParseError("no sections")),
        )
        monkeypatch.setattr(cli, "run_update_sync", fake_run(summary))

        code = cli.main([str(tmp_path)])

        out = capsys.readouterr().out
        assert code == 1
        assert "updated  a.sct (+1 ~2 -0)" in out
        assert "failed   b.sct (SectorParseError: no sections)" in out
        assert "1 updated, 0 skipped, 1 failed" in out

    def test_json_output(self, tmp_path, monkeypatch, capsys):
        summary = summary_with(UpdateOutcome.updated("/sectors/a.sct", ChangeSummary(added=1)))
        monkeypatch.setattr(cli, "run_update_sync", fake_run(summary))

        code = cli.main([str(tmp_path), "--json"])

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert data["cycle"] == "2502"
        assert data["counts"] == {"updated": 1, "skipped": 0, "failed": 0}
        assert data["outcomes"][0]["summary"]["added"] == 1

    def test_invalid_cycle(self, tmp_path, monkeypatch):
        def raise_invalid(folder, progress_callback=None, **kwargs):
            raise InvalidCycleIdent("AIRAC 2599: 2025 has no cycle 99")

        monkeypatch.setattr(cli, "run_update_sync", raise_invalid)
        assert cli.main([str(tmp_path), "--cycle", "2599"]) == 2

    def test_missing_folder(self, tmp_path):
        assert cli.main([str(tmp_path / "missing"), "--cycle", "2502"]) == 2

    def test_invalid_concurrency(self, tmp_path):
        assert cli.main([str(tmp_path), "--concurrency", "0"]) == 2

    def test_date_and_cycle_exclusive(self, tmp_path):
        with pytest.raises(SystemExit):
            cli.main([str(tmp_path), "--date", "2025-03-01", "--cycle", "2502"])
