"""
Analysis Store Tests
====================
Covers:
    - Job creation defaults and overwrite
    - Forward-only status transitions
    - Progress validation (bounds, non-decreasing)
    - Terminal jobs reject writes
    - Unknown ids are ignored
"""
import pytest

from assay.models.issue import AnalyzedIssue
from assay.state.analysis_store import InMemoryAnalysisStore, InvalidStateTransition


def _issue(number: int, complexity: str = "beginner") -> AnalyzedIssue:
    return AnalyzedIssue(
        number=number,
        title=f"Issue {number}",
        html_url=f"https://github.com/o/r/issues/{number}",
        complexity=complexity,
        reasoning="ok",
    )


@pytest.fixture
def store():
    s = InMemoryAnalysisStore()
    s.create("a1", "o/r", "o", "r", "groq")
    return s


class TestCreate:

    def test_new_job_is_pending_with_zero_progress(self, store):
        record = store.get("a1")
        assert record.status == "pending"
        assert record.progress.current == 0
        assert record.progress.total == 0
        assert record.issues == []
        assert record.provider == "groq"
        assert record.error is None

    def test_create_overwrites_existing_id(self, store):
        store.update_status("a1", "processing")
        store.create("a1", "x/y", "x", "y", "openai")
        record = store.get("a1")
        assert record.status == "pending"
        assert record.owner == "x"
        assert len(store) == 1

    def test_get_unknown_returns_none(self, store):
        assert store.get("missing") is None


class TestStatusTransitions:

    def test_happy_path(self, store):
        store.update_status("a1", "processing")
        store.update_status("a1", "complete")
        assert store.get("a1").status == "complete"

    def test_error_records_message(self, store):
        store.update_status("a1", "processing")
        store.update_status("a1", "error", "Repository o/r not found or is private")
        record = store.get("a1")
        assert record.status == "error"
        assert record.error == "Repository o/r not found or is private"

    def test_pending_cannot_skip_to_complete(self, store):
        with pytest.raises(InvalidStateTransition):
            store.update_status("a1", "complete")

    def test_complete_cannot_go_back(self, store):
        store.update_status("a1", "processing")
        store.update_status("a1", "complete")
        with pytest.raises(InvalidStateTransition):
            store.update_status("a1", "processing")
        with pytest.raises(InvalidStateTransition):
            store.update_status("a1", "complete")

    def test_error_is_terminal(self, store):
        store.update_status("a1", "processing")
        store.update_status("a1", "error", "boom")
        with pytest.raises(InvalidStateTransition):
            store.update_status("a1", "complete")

    def test_repeated_processing_write_is_allowed(self, store):
        store.update_status("a1", "processing")
        store.update_status("a1", "processing")
        assert store.get("a1").status == "processing"

    def test_updated_at_moves(self, store):
        before = store.get("a1").updated_at
        store.update_status("a1", "processing")
        assert store.get("a1").updated_at >= before


class TestProgress:

    def test_progress_updates(self, store):
        store.update_status("a1", "processing")
        store.update_progress("a1", 0, 25)
        store.update_progress("a1", 10, 25)
        assert store.get("a1").progress.current == 10
        assert store.get("a1").progress.total == 25

    def test_current_cannot_exceed_total(self, store):
        with pytest.raises(ValueError):
            store.update_progress("a1", 11, 10)

    def test_negative_values_rejected(self, store):
        with pytest.raises(ValueError):
            store.update_progress("a1", -1, 10)

    def test_progress_cannot_go_backwards(self, store):
        store.update_progress("a1", 0, 20)
        store.update_progress("a1", 10, 20)
        with pytest.raises(ValueError):
            store.update_progress("a1", 5, 20)

    def test_terminal_job_rejects_progress(self, store):
        store.update_status("a1", "processing")
        store.update_status("a1", "complete")
        with pytest.raises(InvalidStateTransition):
            store.update_progress("a1", 1, 1)


class TestIssues:

    def test_add_and_set_issues(self, store):
        store.update_status("a1", "processing")
        store.add_issue("a1", _issue(1))
        assert [i.number for i in store.get("a1").issues] == [1]
        store.set_issues("a1", [_issue(2), _issue(3)])
        assert [i.number for i in store.get("a1").issues] == [2, 3]

    def test_terminal_job_rejects_issue_writes(self, store):
        store.update_status("a1", "processing")
        store.update_status("a1", "error", "boom")
        with pytest.raises(InvalidStateTransition):
            store.add_issue("a1", _issue(1))
        with pytest.raises(InvalidStateTransition):
            store.set_issues("a1", [])


def test_unknown_id_updates_are_ignored():
    store = InMemoryAnalysisStore()
    store.update_status("nope", "processing")
    store.update_progress("nope", 1, 2)
    store.add_issue("nope", _issue(1))
    store.set_issues("nope", [_issue(1)])
    assert store.get("nope") is None
    assert len(store) == 0
