"""
Repository Chat Assistant
=========================
Answers questions about an analyzed repository, streaming the reply.

Context:
    - README, metadata and the 10 most recently updated pull requests are
      fetched concurrently on every chat turn (best-effort, never cached)
    - The already-classified issues come from the finished analysis job
    - Everything is flattened into one system prompt (see prompts.py)

History:
    Conversation history is supplied by the caller on every request and
    is never stored server-side.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional

from assay.core.config import PROVIDER_TIMEOUT_SECONDS
from assay.core.constants import CHAT_FETCH_PULL_REQUESTS, CHAT_MAX_TOKENS, CHAT_TEMPERATURE
from assay.llm.client import get_provider
from assay.llm.prompts import build_chat_system_prompt
from assay.models.issue import AnalyzedIssue
from assay.models.repository import ChatMessage, PullRequestSummary, RepoMetadata
from assay.services.github_service import GitHubService

logger = logging.getLogger(__name__)


@dataclass
class RepositoryContext:
    owner: str
    repo: str
    issues: List[AnalyzedIssue]
    readme: Optional[str] = None
    metadata: Optional[RepoMetadata] = None
    pull_requests: List[PullRequestSummary] = field(default_factory=list)


class RepoChatAssistant:

    def __init__(
        self,
        github: Optional[GitHubService] = None,
        provider_factory=None,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        self.github = github or GitHubService()
        self.provider_factory = provider_factory or get_provider
        self.timeout = timeout

    async def build_repository_context(
        self, owner: str, repo: str, issues: List[AnalyzedIssue]
    ) -> RepositoryContext:
        readme, metadata, pull_requests = await asyncio.gather(
            self.github.fetch_repo_readme(owner, repo),
            self.github.fetch_repo_metadata(owner, repo),
            self.github.fetch_repo_pull_requests(owner, repo, CHAT_FETCH_PULL_REQUESTS),
        )
        return RepositoryContext(
            owner=owner,
            repo=repo,
            issues=issues,
            readme=readme,
            metadata=metadata,
            pull_requests=pull_requests,
        )

    async def chat(
        self,
        message: str,
        owner: str,
        repo: str,
        issues: List[AnalyzedIssue],
        provider: str,
        api_key: str,
        history: Optional[List[ChatMessage]] = None,
    ) -> AsyncIterator[str]:
        """Yield the assistant's answer to ``message`` as it streams in."""
        context = await self.build_repository_context(owner, repo, issues)
        system_prompt = build_chat_system_prompt(
            context.owner,
            context.repo,
            context.issues,
            metadata=context.metadata,
            readme=context.readme,
            pull_requests=context.pull_requests,
        )
        messages = list(history or []) + [ChatMessage(role="user", content=message)]
        logger.info(
            "Chat for %s/%s via %s (%d history messages)",
            owner, repo, provider, len(messages) - 1,
        )

        llm = self.provider_factory(provider, api_key, timeout=self.timeout)
        try:
            async for chunk in llm.stream_chat(
                system_prompt, messages, max_tokens=CHAT_MAX_TOKENS, temperature=CHAT_TEMPERATURE
            ):
                yield chunk
        finally:
            await llm.close()


def get_suggested_questions(issues: List[AnalyzedIssue]) -> List[str]:
    """Starter questions shown before the user types anything."""
    has_beginner = any(issue.complexity == "beginner" for issue in issues)
    return [
        "What are the best beginner-friendly issues to start with?",
        "Which issues are related to documentation?",
        "Summarize the most active areas of development",
        f"Are there any {'beginner' if has_beginner else 'intermediate'} issues related to UI/frontend?",
        "What skills do I need to contribute to this project?",
        "Which issues have the most discussion?",
    ]
