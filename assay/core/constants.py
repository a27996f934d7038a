"""
Constants
Centralised storage for complexity tiers, fallback messages and fetch limits.
"""
COMPLEXITY_LEVELS = ["beginner", "intermediate", "advanced"]
COMPLEXITY_ORDER = {"beginner": 1, "intermediate": 2, "advanced": 3}
UNKNOWN_COMPLEXITY_ORDER = 4

DEFAULT_COMPLEXITY = "intermediate"
MISSING_ANALYSIS_REASON = "Unable to analyze this issue"
FAILED_ANALYSIS_PREFIX = "Analysis failed"

GITHUB_API_URL = "https://api.github.com"
ISSUES_PER_PAGE = 30

# Body truncation for prompts
BATCH_BODY_CHARS = 500
SINGLE_BODY_CHARS = 2000

# Chat context truncation
CHAT_MAX_ISSUES = 20
CHAT_MAX_PULL_REQUESTS = 5
CHAT_FETCH_PULL_REQUESTS = 10
CHAT_README_CHARS = 1000
CHAT_ISSUE_BODY_CHARS = 200
CHAT_MAX_TOKENS = 1000
CHAT_TEMPERATURE = 0.7

# Orchestrator modes: one LLM call per batch, or one per issue
PIPELINE_MODES = ("batch", "per_issue")
