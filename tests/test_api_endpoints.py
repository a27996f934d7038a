"""
Analysis API Tests
==================
Tests for the /api/analysis routes.
The orchestrator and chat assistant are replaced through
app.dependency_overrides - no real GitHub or LLM calls.

Covers:
    - Job start validation and background scheduling
    - Status, results, filters and counts
    - Chat streaming, error mapping and stream release on disconnect
    - Export formats
    - Request logging tagged with the analysis id
"""
import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from assay.api.analysis import ChatRequest, chat, get_chat_assistant, get_orchestrator, get_store
from assay.llm.client import ProviderAuthError, ProviderRateLimitError
from assay.models.issue import AnalyzedIssue
from assay.state.analysis_store import InMemoryAnalysisStore
from assay.utils.logging_config import AnalysisIdFilter, analysis_id_var
from main import analysis_id_from_path, app


def _issue(number: int, complexity: str) -> AnalyzedIssue:
    return AnalyzedIssue(
        number=number,
        title=f"Issue {number}",
        html_url=f"https://github.com/o/r/issues/{number}",
        complexity=complexity,
        reasoning="ok",
    )


def _completed_job(store, analysis_id="job", issues=None):
    store.create(analysis_id, "https://github.com/o/r", "o", "r", "groq")
    store.update_status(analysis_id, "processing")
    issues = issues if issues is not None else [
        _issue(1, "advanced"), _issue(2, "beginner"), _issue(3, "intermediate"), _issue(4, "beginner"),
    ]
    store.update_progress(analysis_id, len(issues), len(issues))
    store.set_issues(analysis_id, issues)
    store.update_status(analysis_id, "complete")


class _FakeAssistant:
    def __init__(self, chunks=None, error=None):
        self.chunks = chunks or []
        self.error = error
        self.calls = []
        self.closed = False

    async def chat(self, message, owner, repo, issues, provider, api_key, history=None):
        self.calls.append((message, owner, repo, provider, api_key, history))
        try:
            if self.error:
                raise self.error
            for chunk in self.chunks:
                yield chunk
        finally:
            self.closed = True


@pytest.fixture
def store():
    return InMemoryAnalysisStore()


@pytest.fixture
def orchestrator():
    mock = MagicMock()
    mock.run = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def client(store, orchestrator):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


# ===================================================================
# Start analysis
# ===================================================================
class TestStartAnalysis:

    def test_starts_job_and_schedules_run(self, client, store, orchestrator):
        resp = client.post("/api/analysis", json={
            "repo_url": "https://github.com/octocat/hello-world",
            "provider": "groq",
            "api_key": "user-key",
            "max_issues": 15,
        })

        assert resp.status_code == 200
        analysis_id = resp.json()["analysis_id"]
        assert analysis_id.startswith("analysis_")
        record = store.get(analysis_id)
        assert record.status == "pending"
        assert (record.owner, record.repo, record.provider) == ("octocat", "hello-world", "groq")
        orchestrator.run.assert_called_once_with(
            analysis_id, "octocat", "hello-world", "groq", "user-key", 15
        )

    def test_default_max_issues_and_env_key(self, client, orchestrator):
        with patch("assay.api.analysis.get_provider_api_key", return_value="env-key"):
            resp = client.post("/api/analysis", json={"repo_url": "o/r", "provider": "google"})

        assert resp.status_code == 200
        args = orchestrator.run.call_args.args
        assert args[4] == "env-key"
        assert args[5] == 20

    def test_invalid_url(self, client, store, orchestrator):
        resp = client.post("/api/analysis", json={
            "repo_url": "https://gitlab.com/o/r", "provider": "groq", "api_key": "k",
        })

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid GitHub repository URL"
        assert len(store) == 0
        orchestrator.run.assert_not_called()

    def test_missing_api_key(self, client, store):
        with patch("assay.api.analysis.get_provider_api_key", return_value=None):
            resp = client.post("/api/analysis", json={"repo_url": "o/r", "provider": "anthropic"})

        assert resp.status_code == 400
        assert resp.json()["detail"] == (
            "API key required for anthropic. Please provide one or set it in .env"
        )
        assert len(store) == 0

    def test_blank_api_key_falls_back_to_env(self, client, orchestrator):
        with patch("assay.api.analysis.get_provider_api_key", return_value="env-key"):
            resp = client.post("/api/analysis", json={
                "repo_url": "o/r", "provider": "openai", "api_key": "   ",
            })

        assert resp.status_code == 200
        assert orchestrator.run.call_args.args[4] == "env-key"

    @pytest.mark.parametrize("max_issues", [0, 101])
    def test_max_issues_bounds(self, client, max_issues):
        resp = client.post("/api/analysis", json={
            "repo_url": "o/r", "provider": "groq", "api_key": "k", "max_issues": max_issues,
        })
        assert resp.status_code == 422

    def test_unknown_provider_rejected(self, client):
        resp = client.post("/api/analysis", json={"repo_url": "o/r", "provider": "mistral", "api_key": "k"})
        assert resp.status_code == 422


# ===================================================================
# Status and results
# ===================================================================
class TestStatusAndResults:

    def test_status_not_found(self, client):
        resp = client.get("/api/analysis/analysis_missing/status")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Analysis not found"

    def test_status(self, client, store):
        store.create("job", "o/r", "o", "r", "groq")
        store.update_status("job", "processing")
        store.update_progress("job", 10, 20)

        data = client.get("/api/analysis/job/status").json()

        assert data["status"] == "processing"
        assert data["progress"] == {"current": 10, "total": 20}
        assert data["error"] is None

    def test_error_status_carries_message(self, client, store):
        store.create("job", "o/r", "o", "r", "groq")
        store.update_status("job", "processing")
        store.update_status("job", "error", "Repository o/r not found or is private")

        data = client.get("/api/analysis/job/status").json()

        assert data["status"] == "error"
        assert data["error"] == "Repository o/r not found or is private"

    def test_results_sorted_with_counts(self, client, store):
        _completed_job(store)

        data = client.get("/api/analysis/job/results").json()

        assert [i["number"] for i in data["issues"]] == [2, 4, 3, 1]
        assert data["counts"] == {"beginner": 2, "intermediate": 1, "advanced": 1, "total": 4}
        assert data["status"] == "complete"

    def test_results_filter_keeps_full_counts(self, client, store):
        _completed_job(store)

        data = client.get("/api/analysis/job/results?filter=beginner").json()

        assert [i["number"] for i in data["issues"]] == [2, 4]
        assert data["counts"]["total"] == 4

    def test_results_invalid_filter(self, client, store):
        _completed_job(store)
        assert client.get("/api/analysis/job/results?filter=expert").status_code == 422

    def test_results_not_found(self, client):
        assert client.get("/api/analysis/nope/results").status_code == 404


# ===================================================================
# Chat
# ===================================================================
class TestChat:

    def _override(self, assistant):
        app.dependency_overrides[get_chat_assistant] = lambda: assistant

    def test_streams_answer(self, client, store):
        _completed_job(store)
        assistant = _FakeAssistant(chunks=["Start with ", "#2"])
        self._override(assistant)

        resp = client.post("/api/analysis/job/chat", json={
            "message": "Where do I start?",
            "provider": "groq",
            "api_key": "k",
            "history": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
        })

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.text == "Start with #2"
        message, owner, repo, provider, api_key, history = assistant.calls[0]
        assert (message, owner, repo, provider, api_key) == ("Where do I start?", "o", "r", "groq", "k")
        assert [m.role for m in history] == ["user", "assistant"]

    def test_requires_complete_analysis(self, client, store):
        store.create("job", "o/r", "o", "r", "groq")
        store.update_status("job", "processing")
        self._override(_FakeAssistant(chunks=["x"]))

        resp = client.post("/api/analysis/job/chat", json={"message": "hi", "provider": "groq", "api_key": "k"})

        assert resp.status_code == 409

    def test_not_found(self, client):
        self._override(_FakeAssistant())
        resp = client.post("/api/analysis/nope/chat", json={"message": "hi", "provider": "groq", "api_key": "k"})
        assert resp.status_code == 404

    def test_invalid_key_is_401(self, client, store):
        _completed_job(store)
        self._override(_FakeAssistant(error=ProviderAuthError("Invalid groq API key (HTTP 401): bad")))

        resp = client.post("/api/analysis/job/chat", json={"message": "hi", "provider": "groq", "api_key": "bad"})

        assert resp.status_code == 401
        assert "Invalid groq API key" in resp.json()["detail"]

    def test_rate_limit_is_429(self, client, store):
        _completed_job(store)
        self._override(_FakeAssistant(error=ProviderRateLimitError("groq rate limit exceeded")))

        resp = client.post("/api/analysis/job/chat", json={"message": "hi", "provider": "groq", "api_key": "k"})

        assert resp.status_code == 429

    def test_missing_key(self, client, store):
        _completed_job(store)
        self._override(_FakeAssistant())

        with patch("assay.api.analysis.get_provider_api_key", return_value=None):
            resp = client.post("/api/analysis/job/chat", json={"message": "hi", "provider": "groq"})

        assert resp.status_code == 400

    def test_stream_released_when_client_stops_reading(self, store):
        _completed_job(store)
        assistant = _FakeAssistant(chunks=["one", "two", "three"])

        async def read_first_chunk_then_disconnect():
            response = await chat(
                "job",
                ChatRequest(message="hi", provider="groq", api_key="k"),
                store=store,
                assistant=assistant,
            )
            first = await response.body_iterator.__anext__()
            await response.body_iterator.aclose()
            return first

        assert asyncio.run(read_first_chunk_then_disconnect()) == "one"
        assert assistant.closed is True

    def test_suggested_questions(self, client, store):
        _completed_job(store)

        data = client.get("/api/analysis/job/suggested-questions").json()

        assert len(data["questions"]) == 6
        assert "beginner issues related to UI/frontend" in data["questions"][3]


# ===================================================================
# Export and app-level routes
# ===================================================================
class TestExport:

    def test_csv(self, client, store):
        _completed_job(store)

        resp = client.get("/api/analysis/job/export?format=csv")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="o-r-issues.csv"' in resp.headers["content-disposition"]
        assert resp.text.splitlines()[0].startswith("Repository,Issue Number,Title")

    def test_json_default(self, client, store):
        _completed_job(store)

        resp = client.get("/api/analysis/job/export")

        assert resp.status_code == 200
        assert resp.json()["counts"]["total"] == 4

    def test_unknown_format(self, client, store):
        _completed_job(store)
        assert client.get("/api/analysis/job/export?format=xml").status_code == 422


# ===================================================================
# Request logging
# ===================================================================
class TestRequestLogging:

    @pytest.mark.parametrize("path, expected", [
        ("/api/analysis/analysis_123_abc/status", "analysis_123_abc"),
        ("/api/analysis/analysis_123_abc/export", "analysis_123_abc"),
        ("/api/analysis", None),
        ("/api/providers", None),
        ("/app.js", None),
    ])
    def test_analysis_id_from_path(self, path, expected):
        assert analysis_id_from_path(path) == expected

    def test_request_runs_with_analysis_id_in_context(self, client, store):
        _completed_job(store)
        seen = []

        async def recording_store():
            seen.append(analysis_id_var.get())
            return store

        app.dependency_overrides[get_store] = recording_store

        assert client.get("/api/analysis/job/status").status_code == 200
        assert seen == ["job"]

    def test_filter_stamps_records(self):
        record = logging.LogRecord("assay.test", logging.INFO, __file__, 1, "msg", None, None)
        token = analysis_id_var.set("analysis_42")
        try:
            assert AnalysisIdFilter().filter(record) is True
        finally:
            analysis_id_var.reset(token)

        assert record.analysis_id == "analysis_42"


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_providers(client):
    providers = client.get("/api/providers").json()["providers"]
    assert {p["value"] for p in providers} == {"anthropic", "openai", "google", "groq"}
    assert next(p for p in providers if p["value"] == "groq")["free"] is True


def test_ui_served(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "Assay" in resp.text
