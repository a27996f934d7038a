"""
Analysis Job Model
==================
One end-to-end analysis run for a single repository submission.

Lifecycle:
    pending → processing → complete
    pending → processing → error

Owned exclusively by the AnalysisStore and mutated only by the
AnalysisOrchestrator. Records are never deleted.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .issue import AnalyzedIssue

AnalysisStatus = Literal["pending", "processing", "complete", "error"]
AIProvider = Literal["anthropic", "openai", "google", "groq"]

TERMINAL_STATUSES = ("complete", "error")

# Allowed forward transitions; anything else is rejected by the store
STATUS_TRANSITIONS = {
    "pending": ("processing",),
    "processing": ("complete", "error"),
    "complete": (),
    "error": (),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisProgress(BaseModel):
    current: int = 0
    total: int = 0


class AnalysisResult(BaseModel):
    id: str
    repo_url: str
    owner: str
    repo: str
    status: AnalysisStatus = "pending"
    progress: AnalysisProgress = Field(default_factory=AnalysisProgress)
    issues: List[AnalyzedIssue] = []
    provider: Optional[AIProvider] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def touch(self) -> None:
        self.updated_at = _utcnow()


class ResultCounts(BaseModel):
    beginner: int = 0
    intermediate: int = 0
    advanced: int = 0
    total: int = 0
