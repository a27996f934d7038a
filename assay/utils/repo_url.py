"""
Repository reference parsing and small job helpers.
"""
import re
import secrets
import time
from typing import Optional, Tuple

from assay.core.constants import COMPLEXITY_ORDER, UNKNOWN_COMPLEXITY_ORDER

# Accepted forms: full URL, URL with /issues, .git clone URL, bare owner/repo
_REPO_PATTERNS = [
    re.compile(r"^https?://github\.com/([^/]+)/([^/]+)/?$"),
    re.compile(r"^https?://github\.com/([^/]+)/([^/]+)/issues/?$"),
    re.compile(r"^https?://github\.com/([^/]+)/([^/]+)\.git$"),
    re.compile(r"^([^/\s:]+)/([^/\s]+)$"),
]

_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"


def parse_github_url(url: str) -> Optional[Tuple[str, str]]:
    """Return (owner, repo) for a GitHub repository reference, or None."""
    candidate = (url or "").strip()
    for pattern in _REPO_PATTERNS:
        match = pattern.match(candidate)
        if match:
            owner, repo = match.group(1), match.group(2)
            if repo.endswith(".git"):
                repo = repo[:-4]
            if owner and repo:
                return owner, repo
    return None


def generate_analysis_id() -> str:
    """Generate a job id like ``analysis_1718000000000_k3j9x0a``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"analysis_{int(time.time() * 1000)}_{suffix}"


def complexity_order(complexity: str) -> int:
    return COMPLEXITY_ORDER.get(complexity, UNKNOWN_COMPLEXITY_ORDER)
