"""
Repository Context Models
Pydantic models for the repository data the chat assistant is grounded in.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel


class RepoMetadata(BaseModel):
    full_name: str
    description: Optional[str] = None
    language: Optional[str] = None
    stargazers: int = 0
    forks: int = 0
    open_issues: int = 0
    topics: List[str] = []
    license: Optional[str] = None


class PullRequestSummary(BaseModel):
    number: int
    title: str
    state: str
    merged_at: Optional[str] = None
    user: Optional[str] = None
    labels: List[str] = []
    html_url: str = ""


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str
