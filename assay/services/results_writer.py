"""
Results Writer
==============
Shapes a finished (or in-flight) analysis for the results view and exports.

- filter_and_sort_issues: optional tier filter, sorted beginner → advanced
- count_by_complexity:    per-tier counts over the FULL issue list
- ResultsWriter:          JSON / CSV export of the classified issues
"""
import csv
import io
import json
import logging
from typing import List, Optional

from assay.models.analysis import AnalysisResult, ResultCounts
from assay.models.issue import AnalyzedIssue
from assay.utils.repo_url import complexity_order

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "Repository",
    "Issue Number",
    "Title",
    "Complexity",
    "Technologies",
    "Estimated Hours",
    "URL",
    "Reasoning",
]


def filter_and_sort_issues(
    issues: List[AnalyzedIssue], complexity: Optional[str] = None
) -> List[AnalyzedIssue]:
    selected = [i for i in issues if complexity is None or i.complexity == complexity]
    # sorted() is stable, so fetch order is kept within a tier
    return sorted(selected, key=lambda i: complexity_order(i.complexity))


def count_by_complexity(issues: List[AnalyzedIssue]) -> ResultCounts:
    counts = ResultCounts(total=len(issues))
    for issue in issues:
        if issue.complexity == "beginner":
            counts.beginner += 1
        elif issue.complexity == "intermediate":
            counts.intermediate += 1
        elif issue.complexity == "advanced":
            counts.advanced += 1
    return counts


class ResultsWriter:
    """Serialises an AnalysisResult for download."""

    @staticmethod
    def to_json(analysis: AnalysisResult) -> str:
        data = {
            "repository": {
                "url": analysis.repo_url,
                "owner": analysis.owner,
                "repo": analysis.repo,
            },
            "status": analysis.status,
            "provider": analysis.provider,
            "progress": analysis.progress.model_dump(),
            "counts": count_by_complexity(analysis.issues).model_dump(),
            "issues": [
                issue.model_dump(mode="json")
                for issue in filter_and_sort_issues(analysis.issues)
            ],
        }
        return json.dumps(data, indent=2)

    @staticmethod
    def to_csv(analysis: AnalysisResult) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        repository = f"{analysis.owner}/{analysis.repo}"
        for issue in filter_and_sort_issues(analysis.issues):
            writer.writerow([
                repository,
                issue.number,
                issue.title,
                issue.complexity,
                ", ".join(issue.technologies or []),
                "" if issue.estimated_hours is None else f"{issue.estimated_hours:g}",
                issue.html_url,
                issue.reasoning,
            ])
        logger.debug("Exported %d issues for %s as CSV", len(analysis.issues), repository)
        return buffer.getvalue()
