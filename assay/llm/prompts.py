"""
LLM Prompts
===========
Centralised store for classifier and chat prompts.

Prompt Design Rules:
    - Batch prompts enumerate every issue with number, title, labels,
      truncated body and comment count, separated by "---"
    - The three tiers are always defined in the same words so ratings stay
      comparable across batches and providers
    - The chat system prompt embeds a fixed-size slice of context
      (20 issues, 5 pull requests, 1000 README characters); there is no
      retrieval ranking or token budgeting beyond those limits
"""
import logging
from typing import List, Optional

from assay.core.constants import (
    BATCH_BODY_CHARS,
    CHAT_ISSUE_BODY_CHARS,
    CHAT_MAX_ISSUES,
    CHAT_MAX_PULL_REQUESTS,
    CHAT_README_CHARS,
    SINGLE_BODY_CHARS,
)
from assay.models.issue import AnalyzedIssue, GitHubIssue
from assay.models.repository import PullRequestSummary, RepoMetadata

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Classifier prompts
# ---------------------------------------------------------------------------
CLASSIFIER_SYSTEM_PROMPT = (
    "You are an experienced open-source maintainer. You rate GitHub issues by "
    "how much effort and codebase knowledge a new contributor would need to "
    "resolve them."
)

_TIER_DEFINITIONS = (
    "- BEGINNER: Good first issue, clear scope, minimal codebase knowledge\n"
    "- INTERMEDIATE: Requires codebase understanding, moderate complexity\n"
    "- ADVANCED: Complex changes, deep expertise needed, architectural impact"
)


def _labels_text(labels: List[str]) -> str:
    return ", ".join(labels) if labels else "None"


def build_batch_prompt(issues: List[GitHubIssue]) -> str:
    """Build one prompt that asks for a rating of every issue in the batch."""
    blocks = []
    for issue in issues:
        body = issue.body[:BATCH_BODY_CHARS] if issue.body else "No description"
        blocks.append(
            f'Issue #{issue.number}: "{issue.title}"\n'
            f"Labels: {_labels_text(issue.labels)}\n"
            f"Body: {body}\n"
            f"Comments: {issue.comments}"
        )
    issues_list = "\n\n---\n\n".join(blocks)

    return (
        "Analyze these GitHub issues and rate each one's complexity for contributors.\n"
        "\n"
        f"{issues_list}\n"
        "\n"
        "Rate each issue as:\n"
        f"{_TIER_DEFINITIONS}\n"
        "\n"
        "For each issue, also identify:\n"
        '- technologies: Array of technologies/frameworks needed (e.g., ["React", "TypeScript", "CSS"])\n'
        "- estimated_hours: Rough estimate of hours needed (1-40)\n"
        "- reasoning: Brief explanation (1-2 sentences)\n"
        "\n"
        'Return JSON with an "analyses" array containing objects with "issue_number", '
        '"complexity", "reasoning", "technologies", and "estimated_hours".'
    )


def build_issue_prompt(issue: GitHubIssue) -> str:
    """Build the single-issue prompt (longer body, explicit rating factors)."""
    body = issue.body[:SINGLE_BODY_CHARS] if issue.body else "No description provided"
    return (
        "Analyze this GitHub issue and rate its complexity for a contributor looking to work on it.\n"
        "\n"
        f"Issue Title: {issue.title}\n"
        "\n"
        "Issue Body:\n"
        f"{body}\n"
        "\n"
        f"Labels: {_labels_text(issue.labels)}\n"
        f"Comments: {issue.comments}\n"
        "\n"
        "Rate the complexity as one of:\n"
        "- BEGINNER: Good first issue, clear scope, minimal codebase knowledge required, well-defined steps\n"
        "- INTERMEDIATE: Requires some codebase understanding, moderate complexity, may need to touch multiple files\n"
        "- ADVANCED: Complex changes required, deep expertise needed, architectural impact, or ambiguous scope\n"
        "\n"
        "Consider these factors:\n"
        "1. Clarity of requirements\n"
        "2. Scope of changes\n"
        "3. Technical depth required\n"
        "4. Prior codebase knowledge needed\n"
        '5. Existing labels (e.g., "good first issue" suggests beginner)\n'
        "\n"
        'Return your analysis as JSON with "complexity" (beginner/intermediate/advanced) '
        'and "reasoning" (brief explanation).'
    )


# ---------------------------------------------------------------------------
# Chat prompt
# ---------------------------------------------------------------------------
def _metadata_section(metadata: Optional[RepoMetadata]) -> str:
    if metadata is None:
        return "Metadata not available"
    return (
        f"- Name: {metadata.full_name}\n"
        f"- Description: {metadata.description or 'No description'}\n"
        f"- Language: {metadata.language or 'Not specified'}\n"
        f"- Stars: {metadata.stargazers}\n"
        f"- Forks: {metadata.forks}\n"
        f"- Open Issues: {metadata.open_issues}\n"
        f"- Topics: {', '.join(metadata.topics) or 'None'}\n"
        f"- License: {metadata.license or 'Not specified'}"
    )


def _issue_section(issue: AnalyzedIssue) -> str:
    lines = [
        f"### Issue #{issue.number}: {issue.title}",
        f"- Complexity: {issue.complexity}",
        f"- Labels: {_labels_text(issue.labels)}",
        f"- Comments: {issue.comments}",
        f"- Reasoning: {issue.reasoning}",
        f"- URL: {issue.html_url}",
    ]
    if issue.technologies:
        lines.append(f"- Technologies: {', '.join(issue.technologies)}")
    if issue.body:
        lines.append(f"- Description: {issue.body[:CHAT_ISSUE_BODY_CHARS]}...")
    return "\n".join(lines)


def _pull_request_section(pr: PullRequestSummary) -> str:
    merged = " (merged)" if pr.merged_at else ""
    return (
        f"### PR #{pr.number}: {pr.title}\n"
        f"- State: {pr.state}{merged}\n"
        f"- Author: {pr.user or 'unknown'}\n"
        f"- Labels: {_labels_text(pr.labels)}\n"
        f"- URL: {pr.html_url}"
    )


def build_chat_system_prompt(
    owner: str,
    repo: str,
    issues: List[AnalyzedIssue],
    metadata: Optional[RepoMetadata] = None,
    readme: Optional[str] = None,
    pull_requests: Optional[List[PullRequestSummary]] = None,
) -> str:
    """Assemble the grounding prompt for the repository chat assistant."""
    sections = [
        f"You are a helpful AI assistant that answers questions about the GitHub "
        f"repository {owner}/{repo}.",
        "You have access to the following repository information:",
        f"## Repository Metadata\n{_metadata_section(metadata)}",
    ]

    issue_blocks = "\n\n".join(_issue_section(i) for i in issues[:CHAT_MAX_ISSUES])
    issue_header = f"## Issues ({len(issues)} analyzed)"
    sections.append(f"{issue_header}\n{issue_blocks}" if issue_blocks else issue_header)
    if len(issues) > CHAT_MAX_ISSUES:
        sections.append(f"... and {len(issues) - CHAT_MAX_ISSUES} more issues")

    if pull_requests:
        pr_blocks = "\n\n".join(
            _pull_request_section(pr) for pr in pull_requests[:CHAT_MAX_PULL_REQUESTS]
        )
        sections.append(f"## Recent Pull Requests\n{pr_blocks}")
    else:
        sections.append("## Recent Pull Requests\nNo recent PRs available")

    if readme:
        sections.append(
            f"## README (first {CHAT_README_CHARS} characters)\n{readme[:CHAT_README_CHARS]}..."
        )

    sections.append(
        "When answering questions:\n"
        "1. Be specific and reference issue numbers, PR numbers, or specific details\n"
        "2. Use the complexity ratings to recommend appropriate issues for different skill levels\n"
        "3. Provide links when mentioning specific issues or PRs\n"
        "4. If you don't have enough information to answer accurately, say so\n"
        "5. Be concise but informative\n"
        "6. Format your responses in markdown for readability\n"
        "\n"
        "Answer questions about:\n"
        "- Issues (complexity, recommendations, filtering)\n"
        "- Pull requests (status, activity)\n"
        "- Repository information (languages, dependencies, structure)\n"
        "- Contribution opportunities\n"
        "- Project overview and direction"
    )
    return "\n\n".join(sections)
