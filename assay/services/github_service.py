"""
GitHub Service
==============
Async wrapper around the GitHub REST API for the data the analyzer needs.

Issue fetching:
    - Open issues only, newest first (sort=created, direction=desc)
    - Paginated in pages of 30; pull requests are skipped
    - Stops at max_issues, on an empty page, or on a short page
    - No retry: a single failed page aborts the whole fetch

Error mapping:
    - 404                      → RepositoryNotFoundError
    - 403/429 + rate limit     → GitHubRateLimitError
    - anything else            → GitHubAPIError("Failed to fetch issues: ...")

Chat context (metadata, README, pull requests) is best-effort: failures are
logged and reported as None / [] so a chat never fails on missing context.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from assay.core.config import GITHUB_TOKEN
from assay.core.constants import GITHUB_API_URL, ISSUES_PER_PAGE
from assay.models.issue import GitHubIssue
from assay.models.repository import PullRequestSummary, RepoMetadata

logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class RepositoryNotFoundError(GitHubAPIError):
    """Repository does not exist or is private."""


class GitHubRateLimitError(GitHubAPIError):
    """GitHub API rate limit exhausted."""


def _label_names(labels: List[Any]) -> List[str]:
    """Flatten GitHub label entries (strings or objects) into names."""
    names: List[str] = []
    for label in labels or []:
        name = label if isinstance(label, str) else (label or {}).get("name")
        if name:
            names.append(name)
    return names


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code not in (403, 429):
        return False
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in response.text.lower()


class GitHubService:
    """
    Fetches issues and repository context from GitHub.

    Usage:
        github = GitHubService()
        issues = await github.fetch_repo_issues("octocat", "hello-world", 20)
        await github.close()
    """

    def __init__(
        self,
        token: Optional[str] = GITHUB_TOKEN,
        base_url: str = GITHUB_API_URL,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "Assay-Issue-Analyzer",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None, **headers) -> httpx.Response:
        http = await self._get_http()
        return await http.get(
            f"{self.base_url}{path}",
            params=params,
            headers={**self._headers(), **headers},
        )

    # -------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------
    async def fetch_repo_issues(
        self, owner: str, repo: str, max_issues: int = 100
    ) -> List[GitHubIssue]:
        """
        Fetch up to ``max_issues`` open, non-pull-request issues.

        Raises
        ------
        RepositoryNotFoundError
            The repository is missing or private.
        GitHubRateLimitError
            The unauthenticated / token rate limit is exhausted.
        GitHubAPIError
            Any other HTTP or network failure.
        """
        issues: List[GitHubIssue] = []
        page = 1

        try:
            while len(issues) < max_issues:
                response = await self._get(
                    f"/repos/{owner}/{repo}/issues",
                    params={
                        "state": "open",
                        "per_page": ISSUES_PER_PAGE,
                        "page": page,
                        "sort": "created",
                        "direction": "desc",
                    },
                )
                self._raise_for_issue_fetch(response, owner, repo)
                items = response.json()

                if not items:
                    break

                for item in items:
                    if item.get("pull_request"):
                        continue
                    issues.append(GitHubIssue(
                        number=item["number"],
                        title=item.get("title", ""),
                        body=item.get("body"),
                        labels=_label_names(item.get("labels", [])),
                        html_url=item.get("html_url", ""),
                        comments=item.get("comments", 0),
                        created_at=item.get("created_at", ""),
                        user=(item.get("user") or {}).get("login"),
                    ))
                    if len(issues) >= max_issues:
                        break

                if len(items) < ISSUES_PER_PAGE:
                    break
                page += 1
        except GitHubAPIError:
            raise
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"Failed to fetch issues: {exc}") from exc

        logger.info("Fetched %d issues from %s/%s (%d page(s))", len(issues), owner, repo, page)
        return issues

    def _raise_for_issue_fetch(self, response: httpx.Response, owner: str, repo: str) -> None:
        if response.is_success:
            return
        if response.status_code == 404:
            raise RepositoryNotFoundError(
                f"Repository {owner}/{repo} not found or is private", status_code=404
            )
        if _is_rate_limited(response):
            raise GitHubRateLimitError(
                "GitHub API rate limit exceeded. Please try again later or use a GitHub token.",
                status_code=response.status_code,
            )
        try:
            detail = response.json().get("message", response.reason_phrase)
        except ValueError:
            detail = response.reason_phrase
        raise GitHubAPIError(
            f"Failed to fetch issues: HTTP {response.status_code} {detail}",
            status_code=response.status_code,
        )

    # -------------------------------------------------------------------
    # Repository context
    # -------------------------------------------------------------------
    async def fetch_repo_metadata(self, owner: str, repo: str) -> Optional[RepoMetadata]:
        try:
            response = await self._get(f"/repos/{owner}/{repo}")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Could not fetch metadata for %s/%s: %s", owner, repo, exc)
            return None

        return RepoMetadata(
            full_name=data.get("full_name", f"{owner}/{repo}"),
            description=data.get("description"),
            language=data.get("language"),
            stargazers=data.get("stargazers_count", 0),
            forks=data.get("forks_count", 0),
            open_issues=data.get("open_issues_count", 0),
            topics=data.get("topics") or [],
            license=(data.get("license") or {}).get("name"),
        )

    async def fetch_repo_readme(self, owner: str, repo: str) -> Optional[str]:
        try:
            response = await self._get(
                f"/repos/{owner}/{repo}/readme",
                Accept="application/vnd.github.raw+json",
            )
            response.raise_for_status()
            return response.text
        except httpx.HTTPError as exc:
            logger.warning("Could not fetch README for %s/%s: %s", owner, repo, exc)
            return None

    async def fetch_repo_pull_requests(
        self, owner: str, repo: str, limit: int = 10
    ) -> List[PullRequestSummary]:
        try:
            response = await self._get(
                f"/repos/{owner}/{repo}/pulls",
                params={"state": "all", "sort": "updated", "direction": "desc", "per_page": limit},
            )
            response.raise_for_status()
            items = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Could not fetch pull requests for %s/%s: %s", owner, repo, exc)
            return []

        return [
            PullRequestSummary(
                number=pr["number"],
                title=pr.get("title", ""),
                state=pr.get("state", "unknown"),
                merged_at=pr.get("merged_at"),
                user=(pr.get("user") or {}).get("login"),
                labels=_label_names(pr.get("labels", [])),
                html_url=pr.get("html_url", ""),
            )
            for pr in items[:limit]
        ]
