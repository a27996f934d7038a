"""
Analysis Orchestrator
=====================
Drives one analysis job from submission to a terminal state.

Pipeline:
    1. status → processing
    2. fetch open issues (retried up to PipelineConfig.job_retries times)
    3. progress → (0, N)
    4. split into batches of PipelineConfig.batch_size and run them through
       a BatchQueue (bounded concurrency, fixed inter-batch delay)
    5. after each batch: progress → (done, N), issue list rewritten in fetch order
    6. status → complete

    With PipelineConfig.mode == "per_issue", steps 4-5 instead classify one
    issue at a time with the single-issue prompt, appending each result and
    advancing progress by one. A failing issue gets the default tier with
    "Analysis failed: <error>".

Failure Handling:
    - Fetch failures (not found, rate limit, network) → status "error" with
      the exception text; the issue list stays empty
    - Batch failures never reach this level: the classifier downgrades them
      to default ratings, so a job with failing provider calls still completes
    - An unexpected error in one batch cancels the batches still queued or in
      flight, so no provider call starts after the job has failed
    - No checkpointing: a crash mid-job leaves the record in "processing"

Concurrency:
    - One orchestrator task per job; all writes to that job's record come
      from this task
    - max_concurrency=1 (default) runs batches strictly sequentially
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from assay.agents.classifier import (
    ClassificationError,
    ComplexityClassifier,
    default_analysis,
    failed_analysis,
)
from assay.core.config import DEFAULT_MAX_ISSUES, PipelineConfig
from assay.core.constants import PIPELINE_MODES
from assay.models.analysis import AnalysisResult
from assay.models.issue import AnalyzedIssue, GitHubIssue
from assay.services.github_service import GitHubService
from assay.state.analysis_store import AnalysisStore

logger = logging.getLogger(__name__)


def partition(items: List[GitHubIssue], size: int) -> List[List[GitHubIssue]]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchQueue:
    """
    Runs batch jobs with at most ``max_concurrency`` in flight.

    Each job holds its slot for the inter-batch delay after it finishes,
    except the last one, so with max_concurrency=1 the queue behaves as
    "run, pause, run, pause, ..., run".

    The first failing job stops the queue. Jobs not yet started are skipped
    and jobs in flight are cancelled before the error is re-raised.
    """

    def __init__(self, max_concurrency: int = 1, delay: float = 0.0) -> None:
        self.max_concurrency = max(1, max_concurrency)
        self.delay = max(0.0, delay)

    async def run(self, jobs: List[Callable[[], Awaitable[None]]]) -> None:
        if not jobs:
            return
        semaphore = asyncio.Semaphore(self.max_concurrency)
        failed = asyncio.Event()
        last_index = len(jobs) - 1

        async def _worker(index: int, job: Callable[[], Awaitable[None]]) -> None:
            async with semaphore:
                if failed.is_set():
                    return
                try:
                    await job()
                except Exception:
                    failed.set()
                    raise
                if index < last_index and self.delay > 0:
                    await asyncio.sleep(self.delay)

        tasks = [asyncio.create_task(_worker(i, job)) for i, job in enumerate(jobs)]
        _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise task.exception()


class AnalysisOrchestrator:
    """
    Orchestrates the fetch → classify → progress → complete pipeline.

    Parameters
    ----------
    store : AnalysisStore
        Where job state is written.
    github : GitHubService or None
        Issue fetcher (auto-created if not provided).
    classifier : ComplexityClassifier or None
        Batch classifier (auto-created if not provided).
    config : PipelineConfig or None
        Batch size, delay, concurrency, provider timeout, retries, mode.

    Raises
    ------
    ValueError
        If ``config.mode`` is not one of PIPELINE_MODES.
    """

    def __init__(
        self,
        store: AnalysisStore,
        github: Optional[GitHubService] = None,
        classifier: Optional[ComplexityClassifier] = None,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.store = store
        self.config = config or PipelineConfig()
        if self.config.mode not in PIPELINE_MODES:
            raise ValueError(
                f"Unknown analysis mode {self.config.mode!r}, expected one of {PIPELINE_MODES}"
            )
        self.github = github or GitHubService()
        self.classifier = classifier or ComplexityClassifier(timeout=self.config.provider_timeout)

    async def run(
        self,
        analysis_id: str,
        owner: str,
        repo: str,
        provider: str,
        api_key: str,
        max_issues: int = DEFAULT_MAX_ISSUES,
    ) -> Optional[AnalysisResult]:
        """Execute the whole pipeline for one job and return its final record."""
        logger.info("Analysis %s: starting for %s/%s via %s", analysis_id, owner, repo, provider)

        try:
            self.store.update_status(analysis_id, "processing")

            issues = await self._fetch_issues(analysis_id, owner, repo, max_issues)
            total = len(issues)
            self.store.update_progress(analysis_id, 0, total)

            if self.config.mode == "per_issue":
                await self._classify_each(analysis_id, issues, provider, api_key)
            else:
                await self._classify_all(analysis_id, issues, provider, api_key)

            self.store.update_status(analysis_id, "complete")
            logger.info("Analysis %s: complete (%d issues)", analysis_id, total)
        except Exception as exc:
            logger.error("Analysis %s failed: %s", analysis_id, exc, exc_info=True)
            record = self.store.get(analysis_id)
            if record is not None and not record.is_terminal:
                self.store.update_status(analysis_id, "error", str(exc) or "Analysis failed")

        return self.store.get(analysis_id)

    async def _fetch_issues(
        self, analysis_id: str, owner: str, repo: str, max_issues: int
    ) -> List[GitHubIssue]:
        attempts = self.config.job_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self.github.fetch_repo_issues(owner, repo, max_issues)
            except Exception as exc:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Analysis %s: fetch attempt %d/%d failed (%s), retrying",
                    analysis_id, attempt, attempts, exc,
                )
        return []

    async def _classify_all(
        self, analysis_id: str, issues: List[GitHubIssue], provider: str, api_key: str
    ) -> None:
        total = len(issues)
        batches = partition(issues, self.config.batch_size)
        completed: Dict[int, List[AnalyzedIssue]] = {}
        done = 0

        async def _process(index: int, batch: List[GitHubIssue]) -> None:
            nonlocal done
            logger.info(
                "Analysis %s: batch %d/%d (%d issues)",
                analysis_id, index + 1, len(batches), len(batch),
            )
            ratings = await self.classifier.analyze_batch(batch, provider, api_key)
            completed[index] = [
                AnalyzedIssue.from_analysis(issue, ratings.get(issue.number) or default_analysis())
                for issue in batch
            ]
            done += len(batch)
            self.store.update_progress(analysis_id, min(done, total), total)
            self.store.set_issues(
                analysis_id,
                [issue for key in sorted(completed) for issue in completed[key]],
            )

        queue = BatchQueue(self.config.max_concurrency, self.config.inter_batch_delay)
        await queue.run([
            (lambda i=i, b=b: _process(i, b)) for i, b in enumerate(batches)
        ])

    async def _classify_each(
        self, analysis_id: str, issues: List[GitHubIssue], provider: str, api_key: str
    ) -> None:
        total = len(issues)
        for index, issue in enumerate(issues, start=1):
            try:
                analysis = await self.classifier.analyze_issue(issue, provider, api_key)
            except ClassificationError as exc:
                logger.warning("Analysis %s: issue #%d failed: %s", analysis_id, issue.number, exc)
                analysis = failed_analysis(exc)

            self.store.add_issue(analysis_id, AnalyzedIssue.from_analysis(issue, analysis))
            self.store.update_progress(analysis_id, index, total)
