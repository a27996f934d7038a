"""
Analysis Store
==============
Keyed record of every analysis job's status, progress and classified issues.

Contract:
    - create(...)          → new job in "pending" with zero progress
                             (an existing id is overwritten)
    - get(id)              → current record or None
    - update_status(...)   → forward-only transition, see STATUS_TRANSITIONS
    - update_progress(...) → non-decreasing current, current <= total
    - add_issue / set_issues → grow or replace the classified issue list

Updates against an unknown id are ignored. Writes against a job in a
terminal state ("complete" / "error") raise InvalidStateTransition.

Concurrency:
    There is no locking. Each job record is written by exactly one
    orchestrator task, and status / progress / issues are three separate
    writes with no transaction spanning them.

Persistence:
    InMemoryAnalysisStore lives for the process lifetime only. Records are
    never evicted. A durable backend only has to implement AnalysisStore.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from assay.models.analysis import (
    AIProvider,
    AnalysisProgress,
    AnalysisResult,
    AnalysisStatus,
    STATUS_TRANSITIONS,
)
from assay.models.issue import AnalyzedIssue

logger = logging.getLogger(__name__)


class InvalidStateTransition(Exception):
    """Raised when a write would move a job backwards or touch a finished job."""


class AnalysisStore(ABC):
    """Narrow read / create / update contract used by the orchestrator and API."""

    @abstractmethod
    def create(
        self,
        analysis_id: str,
        repo_url: str,
        owner: str,
        repo: str,
        provider: Optional[AIProvider] = None,
    ) -> AnalysisResult: ...

    @abstractmethod
    def get(self, analysis_id: str) -> Optional[AnalysisResult]: ...

    @abstractmethod
    def update_status(
        self, analysis_id: str, status: AnalysisStatus, error: Optional[str] = None
    ) -> None: ...

    @abstractmethod
    def update_progress(self, analysis_id: str, current: int, total: int) -> None: ...

    @abstractmethod
    def add_issue(self, analysis_id: str, issue: AnalyzedIssue) -> None: ...

    @abstractmethod
    def set_issues(self, analysis_id: str, issues: List[AnalyzedIssue]) -> None: ...

    @abstractmethod
    def __len__(self) -> int:
        """Number of jobs currently held."""


class InMemoryAnalysisStore(AnalysisStore):
    """
    Process-local store backed by a dict.

    Usage:
        store = InMemoryAnalysisStore()
        store.create("analysis_1", "o/r", "o", "r", "groq")
        store.update_status("analysis_1", "processing")
    """

    def __init__(self) -> None:
        self._records: Dict[str, AnalysisResult] = {}

    def create(
        self,
        analysis_id: str,
        repo_url: str,
        owner: str,
        repo: str,
        provider: Optional[AIProvider] = None,
    ) -> AnalysisResult:
        if analysis_id in self._records:
            logger.warning("Overwriting existing analysis %s", analysis_id)
        record = AnalysisResult(
            id=analysis_id,
            repo_url=repo_url,
            owner=owner,
            repo=repo,
            provider=provider,
        )
        self._records[analysis_id] = record
        return record

    def get(self, analysis_id: str) -> Optional[AnalysisResult]:
        return self._records.get(analysis_id)

    def update_status(
        self, analysis_id: str, status: AnalysisStatus, error: Optional[str] = None
    ) -> None:
        record = self._records.get(analysis_id)
        if record is None:
            return
        if status != record.status or record.is_terminal:
            allowed = STATUS_TRANSITIONS.get(record.status, ())
            if status not in allowed:
                raise InvalidStateTransition(
                    f"Analysis {analysis_id}: cannot move from {record.status} to {status}"
                )
        record.status = status
        if error:
            record.error = error
        record.touch()
        logger.debug("Analysis %s → %s", analysis_id, status)

    def update_progress(self, analysis_id: str, current: int, total: int) -> None:
        record = self._records.get(analysis_id)
        if record is None:
            return
        self._ensure_writable(record)
        if current < 0 or total < 0 or current > total:
            raise ValueError(f"Invalid progress {current}/{total}")
        if current < record.progress.current and total == record.progress.total:
            raise ValueError(
                f"Progress for {analysis_id} cannot go backwards "
                f"({record.progress.current} → {current})"
            )
        record.progress = AnalysisProgress(current=current, total=total)
        record.touch()

    def add_issue(self, analysis_id: str, issue: AnalyzedIssue) -> None:
        record = self._records.get(analysis_id)
        if record is None:
            return
        self._ensure_writable(record)
        record.issues.append(issue)
        record.touch()

    def set_issues(self, analysis_id: str, issues: List[AnalyzedIssue]) -> None:
        record = self._records.get(analysis_id)
        if record is None:
            return
        self._ensure_writable(record)
        record.issues = list(issues)
        record.touch()

    def _ensure_writable(self, record: AnalysisResult) -> None:
        if record.is_terminal:
            raise InvalidStateTransition(
                f"Analysis {record.id} is {record.status}; no further updates allowed"
            )

    def __len__(self) -> int:
        return len(self._records)
