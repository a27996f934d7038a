"""
Complexity Classifier
=====================
Rates GitHub issues as beginner / intermediate / advanced using an LLM.

Batch mode (analyze_batch):
    - One prompt per batch, one structured response per batch
    - Ratings are mapped back onto issue numbers; entries for numbers that
      are not in the batch are ignored
    - Issues missing from the response get the default tier with
      "Unable to analyze this issue"
    - Any provider or parse failure gives EVERY issue in the batch the
      default tier with "Analysis failed: <error>"; a partially parseable
      response is not salvaged
    - Never raises for provider problems; no retry

Single-issue mode (analyze_issue):
    - Richer prompt, raises ClassificationError with a clarified message
      (invalid key / rate limit / generic failure)
"""
import logging
from typing import Callable, Dict, List, Optional

from assay.core.config import PROVIDER_TIMEOUT_SECONDS
from assay.core.constants import (
    DEFAULT_COMPLEXITY,
    FAILED_ANALYSIS_PREFIX,
    MISSING_ANALYSIS_REASON,
)
from assay.llm.client import (
    LLMProvider,
    ProviderAuthError,
    ProviderRateLimitError,
    get_provider,
)
from assay.llm.prompts import CLASSIFIER_SYSTEM_PROMPT, build_batch_prompt, build_issue_prompt
from assay.models.issue import ComplexityAnalysis, GitHubIssue

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., LLMProvider]


class ClassificationError(Exception):
    """Raised by single-issue classification with a user-facing message."""


def default_analysis(reasoning: str = MISSING_ANALYSIS_REASON) -> ComplexityAnalysis:
    return ComplexityAnalysis(complexity=DEFAULT_COMPLEXITY, reasoning=reasoning)


def failed_analysis(error: Exception) -> ComplexityAnalysis:
    message = str(error)
    reasoning = f"{FAILED_ANALYSIS_PREFIX}: {message}" if message else FAILED_ANALYSIS_PREFIX
    return default_analysis(reasoning)


class ComplexityClassifier:
    """
    Classifies issues through a pluggable LLM provider.

    Parameters
    ----------
    provider_factory : callable or None
        ``(name, api_key, timeout=...) -> LLMProvider``. Defaults to
        :func:`assay.llm.client.get_provider`.
    timeout : float
        Provider HTTP timeout in seconds.
    """

    def __init__(
        self,
        provider_factory: Optional[ProviderFactory] = None,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        self.provider_factory = provider_factory or get_provider
        self.timeout = timeout

    async def analyze_batch(
        self,
        issues: List[GitHubIssue],
        provider: str,
        api_key: str,
    ) -> Dict[int, ComplexityAnalysis]:
        """
        Rate every issue in ``issues`` with a single provider call.

        Returns
        -------
        dict
            issue number → ComplexityAnalysis, with an entry for every issue.
        """
        if not issues:
            return {}

        expected = {issue.number for issue in issues}
        results: Dict[int, ComplexityAnalysis] = {}
        llm: Optional[LLMProvider] = None

        try:
            llm = self.provider_factory(provider, api_key, timeout=self.timeout)
            response = await llm.classify(build_batch_prompt(issues), CLASSIFIER_SYSTEM_PROMPT)

            for item in response.analyses:
                if item.issue_number not in expected:
                    logger.debug("Ignoring rating for unknown issue #%d", item.issue_number)
                    continue
                results[item.issue_number] = ComplexityAnalysis(
                    complexity=item.complexity,
                    reasoning=item.reasoning,
                    technologies=item.technologies,
                    estimated_hours=item.estimated_hours,
                )

            missing = expected - results.keys()
            if missing:
                logger.warning(
                    "Provider %s skipped %d of %d issues: %s",
                    provider, len(missing), len(issues), sorted(missing),
                )
            for number in missing:
                results[number] = default_analysis()

        except Exception as exc:
            logger.error("Batch analysis failed (%s, %d issues): %s", provider, len(issues), exc)
            results = {issue.number: failed_analysis(exc) for issue in issues}
        finally:
            if llm is not None:
                await llm.close()

        return results

    async def analyze_issue(self, issue: GitHubIssue, provider: str, api_key: str) -> ComplexityAnalysis:
        """
        Rate a single issue.

        Raises
        ------
        ClassificationError
            With "Invalid <provider> API key", "<provider> rate limit
            exceeded..." or "AI analysis failed: ..." as message.
        """
        llm = self.provider_factory(provider, api_key, timeout=self.timeout)
        try:
            result = await llm.generate_structured(
                build_issue_prompt(issue), ComplexityAnalysis, CLASSIFIER_SYSTEM_PROMPT
            )
            return ComplexityAnalysis(complexity=result.complexity, reasoning=result.reasoning)
        except ProviderAuthError as exc:
            raise ClassificationError(f"Invalid {provider} API key") from exc
        except ProviderRateLimitError as exc:
            raise ClassificationError(
                f"{provider} rate limit exceeded. Please try again later."
            ) from exc
        except Exception as exc:
            raise ClassificationError(f"AI analysis failed: {exc}") from exc
        finally:
            await llm.close()
