"""
LLM Provider Routing
====================
Maps the provider selector sent by the client ("anthropic", "openai",
"google", "groq") onto a concrete endpoint and model.

Routing Strategy:
    - The provider is chosen per job / per chat request by the user
    - There is no automatic fallback between providers; a failing provider
      surfaces its error to the caller
    - Adding a backend means adding a ProviderConfig here and an adapter
      class in client.py
"""
import logging
from dataclasses import dataclass
from typing import Dict

logger = logging.getLogger(__name__)


class UnsupportedProviderError(ValueError):
    """Raised for a provider selector with no registered configuration."""


# ---------------------------------------------------------------------------
# Provider Configuration
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for a single LLM provider."""
    name: str
    base_url: str
    model: str
    label: str = ""
    free_tier: bool = False


ANTHROPIC_CONFIG = ProviderConfig(
    name="anthropic",
    base_url="https://api.anthropic.com/v1",
    model="claude-sonnet-4-20250514",
    label="Anthropic Claude",
)

OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    model="gpt-4o-mini",
    label="OpenAI",
)

GOOGLE_CONFIG = ProviderConfig(
    name="google",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    model="gemini-1.5-flash",
    label="Google Gemini",
    free_tier=True,
)

GROQ_CONFIG = ProviderConfig(
    name="groq",
    base_url="https://api.groq.com/openai/v1",
    model="meta-llama/llama-4-scout-17b-16e-instruct",
    label="Groq",
    free_tier=True,
)

PROVIDER_CONFIGS: Dict[str, ProviderConfig] = {
    config.name: config
    for config in (ANTHROPIC_CONFIG, OPENAI_CONFIG, GOOGLE_CONFIG, GROQ_CONFIG)
}


def get_provider_config(name: str) -> ProviderConfig:
    """
    Resolve a provider selector to its configuration.

    Raises
    ------
    UnsupportedProviderError
        If no provider with that name is registered.
    """
    config = PROVIDER_CONFIGS.get(name)
    if config is None:
        raise UnsupportedProviderError(f"Unsupported AI provider: {name}")
    logger.debug("Selected provider: %s (%s)", config.name, config.model)
    return config
