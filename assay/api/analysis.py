"""
Analysis API
============
Routes under /api/analysis used by the browser UI.

    POST /api/analysis                              start a job
    GET  /api/analysis/{id}/status                  poll progress (UI polls every 2s)
    GET  /api/analysis/{id}/results?filter=<tier>   classified issues + per-tier counts
    POST /api/analysis/{id}/chat                    streamed chat answer (text/plain)
    GET  /api/analysis/{id}/suggested-questions     chat starter questions
    GET  /api/analysis/{id}/export?format=json|csv  download results

Validation errors (bad repository reference, missing API key) are returned
before any background work starts. Jobs run as FastAPI background tasks
after the response is sent.
"""
import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, Field

from assay.agents.orchestrator import AnalysisOrchestrator
from assay.agents.repo_chat import RepoChatAssistant, get_suggested_questions
from assay.core.config import (
    DEFAULT_MAX_ISSUES,
    MAX_ISSUES_LIMIT,
    PipelineConfig,
    get_provider_api_key,
)
from assay.llm.client import ProviderAuthError, ProviderError, ProviderRateLimitError
from assay.models.analysis import AIProvider, AnalysisProgress, AnalysisResult, AnalysisStatus, ResultCounts
from assay.models.issue import AnalyzedIssue, ComplexityLevel
from assay.models.repository import ChatMessage
from assay.services.github_service import GitHubService
from assay.services.results_writer import ResultsWriter, count_by_complexity, filter_and_sort_issues
from assay.state.analysis_store import AnalysisStore, InMemoryAnalysisStore
from assay.utils.logging_config import analysis_id_var
from assay.utils.repo_url import generate_analysis_id, parse_github_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analysis", tags=["Analysis"])

# Process-wide singletons; tests swap them through app.dependency_overrides
_store = InMemoryAnalysisStore()
_github = GitHubService()


def get_store() -> AnalysisStore:
    return _store


def get_orchestrator(store: AnalysisStore = Depends(get_store)) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(store=store, github=_github, config=PipelineConfig())


def get_chat_assistant() -> RepoChatAssistant:
    return RepoChatAssistant(github=_github)


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------
class StartAnalysisRequest(BaseModel):
    repo_url: str = Field(min_length=1)
    provider: AIProvider
    api_key: Optional[str] = None
    max_issues: int = Field(default=DEFAULT_MAX_ISSUES, ge=1, le=MAX_ISSUES_LIMIT)


class StartAnalysisResponse(BaseModel):
    analysis_id: str


class StatusResponse(BaseModel):
    id: str
    status: AnalysisStatus
    progress: AnalysisProgress
    provider: Optional[AIProvider] = None
    error: Optional[str] = None


class ResultsResponse(BaseModel):
    id: str
    repo_url: str
    owner: str
    repo: str
    status: AnalysisStatus
    provider: Optional[AIProvider] = None
    issues: List[AnalyzedIssue]
    counts: ResultCounts


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    provider: AIProvider
    api_key: Optional[str] = None
    history: List[ChatMessage] = []


class SuggestedQuestionsResponse(BaseModel):
    questions: List[str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _resolve_api_key(provider: str, api_key: Optional[str]) -> str:
    """User-supplied key first, then the server-side key from .env."""
    key = (api_key or "").strip() or get_provider_api_key(provider)
    if not key:
        raise HTTPException(
            status_code=400,
            detail=f"API key required for {provider}. Please provide one or set it in .env",
        )
    return key


def _require_analysis(store: AnalysisStore, analysis_id: str) -> AnalysisResult:
    analysis = store.get(analysis_id)
    if analysis is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return analysis


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.post("", response_model=StartAnalysisResponse)
async def start_analysis(
    request: StartAnalysisRequest,
    background_tasks: BackgroundTasks,
    store: AnalysisStore = Depends(get_store),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    parsed = parse_github_url(request.repo_url)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Invalid GitHub repository URL")
    api_key = _resolve_api_key(request.provider, request.api_key)

    owner, repo = parsed
    analysis_id = generate_analysis_id()
    store.create(analysis_id, request.repo_url, owner, repo, request.provider)
    # the background run below inherits this context
    analysis_id_var.set(analysis_id)

    logger.info(
        "[API] Analysis %s queued for %s/%s (provider=%s, max_issues=%d, jobs in store=%d)",
        analysis_id, owner, repo, request.provider, request.max_issues, len(store),
    )
    background_tasks.add_task(
        orchestrator.run, analysis_id, owner, repo, request.provider, api_key, request.max_issues
    )
    return StartAnalysisResponse(analysis_id=analysis_id)


@router.get("/{analysis_id}/status", response_model=StatusResponse)
async def get_status(analysis_id: str, store: AnalysisStore = Depends(get_store)):
    analysis = _require_analysis(store, analysis_id)
    return StatusResponse(
        id=analysis.id,
        status=analysis.status,
        progress=analysis.progress,
        provider=analysis.provider,
        error=analysis.error,
    )


@router.get("/{analysis_id}/results", response_model=ResultsResponse)
async def get_results(
    analysis_id: str,
    filter: Optional[ComplexityLevel] = Query(default=None),
    store: AnalysisStore = Depends(get_store),
):
    analysis = _require_analysis(store, analysis_id)
    return ResultsResponse(
        id=analysis.id,
        repo_url=analysis.repo_url,
        owner=analysis.owner,
        repo=analysis.repo,
        status=analysis.status,
        provider=analysis.provider,
        issues=filter_and_sort_issues(analysis.issues, filter),
        counts=count_by_complexity(analysis.issues),
    )


@router.post("/{analysis_id}/chat")
async def chat(
    analysis_id: str,
    request: ChatRequest,
    store: AnalysisStore = Depends(get_store),
    assistant: RepoChatAssistant = Depends(get_chat_assistant),
):
    analysis = _require_analysis(store, analysis_id)
    if analysis.status != "complete":
        raise HTTPException(status_code=409, detail="Analysis must be complete before chatting")
    api_key = _resolve_api_key(request.provider, request.api_key)

    chunks = assistant.chat(
        request.message,
        analysis.owner,
        analysis.repo,
        list(analysis.issues),
        request.provider,
        api_key,
        request.history,
    )

    # Pull the first chunk eagerly so auth / rate-limit failures become
    # proper HTTP errors instead of a 200 with a broken body
    try:
        first_chunk = await chunks.__anext__()
    except StopAsyncIteration:
        first_chunk = ""
    except ProviderAuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc))
    except ProviderRateLimitError as exc:
        raise HTTPException(status_code=429, detail=str(exc))
    except ProviderError as exc:
        logger.error("[API] Chat for %s failed: %s", analysis_id, exc)
        raise HTTPException(status_code=502, detail=f"Chat failed: {exc}")

    async def _body():
        try:
            if first_chunk:
                yield first_chunk
            async for chunk in chunks:
                yield chunk
        except ProviderError as exc:
            logger.error("[API] Chat stream for %s interrupted: %s", analysis_id, exc)
            yield f"\n\n[Error: {exc}]"
        finally:
            # client may disconnect mid-stream; release the provider connection now
            await chunks.aclose()

    return StreamingResponse(_body(), media_type="text/plain; charset=utf-8")


@router.get("/{analysis_id}/suggested-questions", response_model=SuggestedQuestionsResponse)
async def suggested_questions(analysis_id: str, store: AnalysisStore = Depends(get_store)):
    analysis = _require_analysis(store, analysis_id)
    return SuggestedQuestionsResponse(questions=get_suggested_questions(analysis.issues))


@router.get("/{analysis_id}/export")
async def export_results(
    analysis_id: str,
    format: Literal["json", "csv"] = Query(default="json"),
    store: AnalysisStore = Depends(get_store),
):
    analysis = _require_analysis(store, analysis_id)
    filename = f"{analysis.owner}-{analysis.repo}-issues.{format}"
    if format == "csv":
        content, media_type = ResultsWriter.to_csv(analysis), "text/csv"
    else:
        content, media_type = ResultsWriter.to_json(analysis), "application/json"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
