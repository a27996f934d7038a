"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    ANTHROPIC_API_KEY            - Server-side key for the Anthropic provider
    OPENAI_API_KEY               - Server-side key for the OpenAI provider
    GOOGLE_API_KEY               - Server-side key for Google Gemini
    GROQ_API_KEY                 - Server-side key for Groq
    GITHUB_TOKEN                 - Optional, raises the GitHub REST rate limit
    ANALYSIS_BATCH_SIZE          - Issues per classification request (default: 10)
    ANALYSIS_BATCH_DELAY_SECONDS - Pause between batches (default: 0.5)
    ANALYSIS_MAX_CONCURRENCY     - Batches in flight per job (default: 1)
    PROVIDER_TIMEOUT_SECONDS     - HTTP timeout for LLM calls (default: 60)
    ANALYSIS_JOB_RETRIES         - Retries of a failed issue fetch (default: 0)
    ANALYSIS_MODE                - "batch" (one LLM call per batch) or "per_issue" (default: batch)
    CORS_ORIGINS                 - Comma-separated list of allowed origins
    LOG_LEVEL                    - Root log level (default: INFO)

Per-request keys:
    A user-supplied API key always wins over the server-side key. The
    server-side key is only a fallback so the UI works without pasting one.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")

# Batch pipeline policy
ANALYSIS_BATCH_SIZE = int(os.getenv("ANALYSIS_BATCH_SIZE", 10))
ANALYSIS_BATCH_DELAY_SECONDS = float(os.getenv("ANALYSIS_BATCH_DELAY_SECONDS", 0.5))
ANALYSIS_MAX_CONCURRENCY = int(os.getenv("ANALYSIS_MAX_CONCURRENCY", 1))
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", 60))
ANALYSIS_JOB_RETRIES = int(os.getenv("ANALYSIS_JOB_RETRIES", 0))
ANALYSIS_MODE = os.getenv("ANALYSIS_MODE", "batch").strip().lower()

# Issue fetch limits (mirrors the API validation bounds)
DEFAULT_MAX_ISSUES = 20
MAX_ISSUES_LIMIT = 100

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:8000",
    ).split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class PipelineConfig:
    """Declared policy for one analysis job."""
    batch_size: int = ANALYSIS_BATCH_SIZE
    inter_batch_delay: float = ANALYSIS_BATCH_DELAY_SECONDS
    max_concurrency: int = ANALYSIS_MAX_CONCURRENCY
    provider_timeout: float = PROVIDER_TIMEOUT_SECONDS
    job_retries: int = ANALYSIS_JOB_RETRIES
    mode: str = ANALYSIS_MODE


def get_provider_api_key(provider: str) -> Optional[str]:
    """Return the server-side API key for a provider, if configured."""
    return {
        "anthropic": ANTHROPIC_API_KEY,
        "openai": OPENAI_API_KEY,
        "google": GOOGLE_API_KEY,
        "groq": GROQ_API_KEY,
    }.get(provider)
