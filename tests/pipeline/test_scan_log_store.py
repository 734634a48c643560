"""Tests for run contexts and the most-recent-run log store."""

from backend.app.models.scan_log import RunStatus
from backend.app.services.scan_log_service import RunContext, ScanLogStore


class TestScanLogStore:
    """Only the latest run is visible."""

    def test_new_run_hides_previous_entries(self):
        store = ScanLogStore()
        first = store.start_run(1, "octocat")
        first.emit(RunStatus.CLONING, "Cloning repository")

        second = store.start_run(2, "octocat")
        second.emit(RunStatus.CLONING, "Cloning repository")

        assert [e.repo_id for e in store.entries()] == [2]

    def test_older_run_cannot_leak_into_newer_log(self):
        store = ScanLogStore()
        older = store.start_run(1, "a")
        newer = store.start_run(2, "b")

        older.emit(RunStatus.SCANNING, "late event from the older run")
        newer.emit(RunStatus.SCANNING, "current")

        assert [e.message for e in store.entries()] == ["current"]
        assert len(older.log) == 1

    def test_entries_are_a_snapshot(self):
        store = ScanLogStore()
        ctx = store.start_run(1, "a")
        ctx.emit(RunStatus.CLONING, "one")

        snapshot = store.entries()
        ctx.emit(RunStatus.SCANNING, "two")

        assert len(snapshot) == 1
        assert len(store.entries()) == 2


def test_unknown_username_defaults():
    ctx = RunContext(repo_id=5, username=None)
    entry = ctx.emit(RunStatus.FAILED, "Repository ID and username are required")

    assert entry.username == "unknown"
    assert entry.model_dump(by_alias=True)["repoId"] == 5
