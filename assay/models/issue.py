"""
Issue Models
============
Pydantic models for GitHub issues before and after complexity analysis.

Fields (GitHubIssue):
    number      - issue number, unique within a repository
    title       - issue title
    body        - markdown body, None when the issue has no description
    labels      - label names (label objects are flattened to their name)
    html_url    - browser URL of the issue
    comments    - comment count at fetch time
    created_at  - ISO-8601 creation timestamp as returned by GitHub
    user        - author login, None for deleted accounts

AnalyzedIssue adds the classifier output. It is created once per issue per
job and never mutated; reprocessing a batch replaces it wholesale.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ComplexityLevel = Literal["beginner", "intermediate", "advanced"]


class GitHubIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    title: str
    body: Optional[str] = None
    labels: List[str] = []
    html_url: str = ""
    comments: int = 0
    created_at: str = ""
    user: Optional[str] = None


class ComplexityAnalysis(BaseModel):
    complexity: ComplexityLevel
    reasoning: str
    technologies: Optional[List[str]] = None
    estimated_hours: Optional[float] = None


class AnalyzedIssue(GitHubIssue):
    complexity: ComplexityLevel
    reasoning: str
    technologies: Optional[List[str]] = None
    estimated_hours: Optional[float] = None

    @classmethod
    def from_analysis(cls, issue: GitHubIssue, analysis: ComplexityAnalysis) -> "AnalyzedIssue":
        return cls(**issue.model_dump(), **analysis.model_dump())


# ---------------------------------------------------------------------------
# Structured LLM response schema
# ---------------------------------------------------------------------------
class IssueComplexityItem(BaseModel):
    """One entry of the provider's batch response."""
    model_config = ConfigDict(populate_by_name=True)

    issue_number: int = Field(alias="issueNumber")
    complexity: ComplexityLevel
    reasoning: str
    technologies: Optional[List[str]] = None
    estimated_hours: Optional[float] = Field(default=None, alias="estimatedHours")


class BatchComplexityResponse(BaseModel):
    analyses: List[IssueComplexityItem]
