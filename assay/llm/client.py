"""
LLM Client
==========
Provider adapters behind one capability interface.

Capabilities (LLMProvider):
    - classify(prompt)          → BatchComplexityResponse (structured output)
    - generate_structured(...)  → any pydantic schema (structured output)
    - stream_chat(system, msgs) → async iterator of text chunks

Adapters:
    - OpenAICompatibleProvider - OpenAI and Groq (/chat/completions)
    - AnthropicProvider        - Anthropic Messages API
    - GeminiProvider           - Google generateContent / streamGenerateContent

Structured Output:
    - The expected JSON schema is appended to the system prompt
    - JSON mode is requested where the provider supports it
    - Markdown code fences are stripped before validation
    - Validation uses the pydantic schema; any mismatch raises ProviderError

Error Mapping:
    - HTTP 401 / 403 → ProviderAuthError
    - HTTP 429       → ProviderRateLimitError
    - everything else (HTTP, timeout, network, parse) → ProviderError
    No retries happen here.
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from assay.core.config import PROVIDER_TIMEOUT_SECONDS
from assay.llm.router import ProviderConfig, get_provider_config
from assay.models.issue import BatchComplexityResponse
from assay.models.repository import ChatMessage

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class ProviderError(Exception):
    """Raised when a provider call fails or returns unusable output."""

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderAuthError(ProviderError):
    """The provider rejected the API key."""


class ProviderRateLimitError(ProviderError):
    """The provider rate limit was hit."""


# ---------------------------------------------------------------------------
# Response Parsing
# ---------------------------------------------------------------------------
def strip_code_fences(raw: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```) if present."""
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        if first_newline != -1:
            cleaned = cleaned[first_newline + 1:]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3].rstrip()
    return cleaned


def parse_structured_response(raw: str, schema: Type[SchemaT], provider_name: str = "") -> SchemaT:
    """
    Parse and validate a JSON response against ``schema``.

    Raises
    ------
    ProviderError
        If the response is empty, not JSON, or does not match the schema.
    """
    if not raw or not raw.strip():
        raise ProviderError("Empty response from LLM", provider=provider_name)

    cleaned = strip_code_fences(raw)
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, ValueError) as e:
        raise ProviderError(f"Response is not valid JSON: {e}", provider=provider_name) from e

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise ProviderError(
            f"Response does not match {schema.__name__}: {e.error_count()} validation error(s)",
            provider=provider_name,
        ) from e


def _schema_instructions(schema: Type[BaseModel]) -> str:
    return (
        "Respond with ONLY a JSON object matching this JSON schema. "
        "No markdown code fences, no commentary.\n"
        f"{json.dumps(schema.model_json_schema(by_alias=False))}"
    )


# ---------------------------------------------------------------------------
# Provider base class
# ---------------------------------------------------------------------------
class LLMProvider(ABC):
    """
    One LLM backend.

    Usage:
        provider = get_provider("groq", api_key)
        result = await provider.classify(prompt)
        async for chunk in provider.stream_chat(system, messages):
            ...
        await provider.close()
    """

    def __init__(
        self,
        config: ProviderConfig,
        api_key: str,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self.api_key = api_key
        self.timeout = timeout
        self._http = http

    @property
    def name(self) -> str:
        return self.config.name

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    # -------------------------------------------------------------------
    # Public capabilities
    # -------------------------------------------------------------------
    async def classify(self, prompt: str, system_prompt: str = "") -> BatchComplexityResponse:
        """Request a batch complexity rating for the issues in ``prompt``."""
        return await self.generate_structured(prompt, BatchComplexityResponse, system_prompt)

    async def generate_structured(
        self,
        prompt: str,
        schema: Type[SchemaT],
        system_prompt: str = "",
        max_tokens: int = 4096,
    ) -> SchemaT:
        system = f"{system_prompt}\n\n{_schema_instructions(schema)}".strip()
        try:
            raw = await self._complete(
                system, prompt, max_tokens=max_tokens, temperature=0.1, json_mode=True
            )
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name} request timed out", provider=self.name) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name) from e
        return parse_structured_response(raw, schema, self.name)

    async def stream_chat(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        """Yield the assistant reply chunk by chunk as the provider streams it."""
        try:
            async for chunk in self._stream(system_prompt, messages, max_tokens, temperature):
                if chunk:
                    yield chunk
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name} stream timed out", provider=self.name) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} stream failed: {e}", provider=self.name) from e

    # -------------------------------------------------------------------
    # Adapter hooks
    # -------------------------------------------------------------------
    @abstractmethod
    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        json_mode: bool,
    ) -> str: ...

    @abstractmethod
    def _stream(
        self,
        system_prompt: str,
        messages: List[ChatMessage],
        max_tokens: int,
        temperature: float,
    ) -> AsyncIterator[str]: ...

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    async def _raise_for_status(self, response: httpx.Response) -> None:
        """Map HTTP failures onto the provider error hierarchy."""
        if response.is_success:
            return
        body = (await response.aread()).decode("utf-8", errors="replace")[:500]
        status = response.status_code
        logger.warning("Provider %s: HTTP %d %s", self.name, status, body)
        if status in (401, 403):
            raise ProviderAuthError(
                f"Invalid {self.name} API key (HTTP {status}): {body}",
                provider=self.name, status_code=status,
            )
        if status == 429:
            raise ProviderRateLimitError(
                f"{self.name} rate limit exceeded (HTTP 429): {body}",
                provider=self.name, status_code=status,
            )
        raise ProviderError(
            f"{self.name} returned HTTP {status}: {body}",
            provider=self.name, status_code=status,
        )

    @staticmethod
    async def _iter_sse_data(response: httpx.Response) -> AsyncIterator[dict]:
        """Yield decoded JSON payloads from ``data:`` lines of an SSE stream."""
        async for line in response.aiter_lines():
            if not line.startswith("data:"):
                continue
            payload = line[5:].strip()
            if not payload or payload == "[DONE]":
                continue
            try:
                yield json.loads(payload)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed SSE payload from %s", response.url)


# ---------------------------------------------------------------------------
# OpenAI-compatible (OpenAI, Groq)
# ---------------------------------------------------------------------------
class OpenAICompatibleProvider(LLMProvider):

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _complete(self, system_prompt, user_prompt, max_tokens, temperature, json_mode):
        http = await self._get_http()
        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        resp = await http.post(
            f"{self.config.base_url}/chat/completions", json=payload, headers=self._headers()
        )
        await self._raise_for_status(resp)
        data = resp.json()
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (IndexError, KeyError, TypeError):
            return ""

    async def _stream(self, system_prompt, messages, max_tokens, temperature):
        http = await self._get_http()
        payload = {
            "model": self.config.model,
            "messages": [{"role": "system", "content": system_prompt}]
            + [m.model_dump() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": True,
        }
        async with http.stream(
            "POST", f"{self.config.base_url}/chat/completions",
            json=payload, headers=self._headers(),
        ) as resp:
            await self._raise_for_status(resp)
            async for event in self._iter_sse_data(resp):
                choices = event.get("choices") or [{}]
                yield (choices[0].get("delta") or {}).get("content") or ""


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------
class AnthropicProvider(LLMProvider):
    API_VERSION = "2023-06-01"

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
            "content-type": "application/json",
        }

    async def _complete(self, system_prompt, user_prompt, max_tokens, temperature, json_mode):
        http = await self._get_http()
        payload = {
            "model": self.config.model,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        resp = await http.post(f"{self.config.base_url}/messages", json=payload, headers=self._headers())
        await self._raise_for_status(resp)
        data = resp.json()
        return "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )

    async def _stream(self, system_prompt, messages, max_tokens, temperature):
        http = await self._get_http()
        payload = {
            "model": self.config.model,
            "system": system_prompt,
            "messages": [m.model_dump() for m in messages],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": True,
        }
        async with http.stream(
            "POST", f"{self.config.base_url}/messages", json=payload, headers=self._headers()
        ) as resp:
            await self._raise_for_status(resp)
            async for event in self._iter_sse_data(resp):
                if event.get("type") == "content_block_delta":
                    yield (event.get("delta") or {}).get("text", "")
                elif event.get("type") == "error":
                    message = (event.get("error") or {}).get("message", "unknown error")
                    raise ProviderError(f"anthropic stream error: {message}", provider=self.name)


# ---------------------------------------------------------------------------
# Google Gemini
# ---------------------------------------------------------------------------
class GeminiProvider(LLMProvider):

    @staticmethod
    def _contents(messages: List[ChatMessage]) -> List[dict]:
        # Gemini calls the assistant role "model"
        return [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages
        ]

    @staticmethod
    def _text_of(data: dict) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (IndexError, KeyError, TypeError):
            return ""

    async def _complete(self, system_prompt, user_prompt, max_tokens, temperature, json_mode):
        http = await self._get_http()
        url = f"{self.config.base_url}/models/{self.config.model}:generateContent"
        generation_config = {"temperature": temperature, "maxOutputTokens": max_tokens}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        payload = {
            "system_instruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": generation_config,
        }
        resp = await http.post(url, params={"key": self.api_key}, json=payload)
        await self._raise_for_status(resp)
        return self._text_of(resp.json())

    async def _stream(self, system_prompt, messages, max_tokens, temperature):
        http = await self._get_http()
        url = f"{self.config.base_url}/models/{self.config.model}:streamGenerateContent"
        payload = {
            "system_instruction": {"parts": [{"text": system_prompt}]},
            "contents": self._contents(messages),
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        async with http.stream(
            "POST", url, params={"alt": "sse", "key": self.api_key}, json=payload
        ) as resp:
            await self._raise_for_status(resp)
            async for event in self._iter_sse_data(resp):
                yield self._text_of(event)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
PROVIDER_ADAPTERS: Dict[str, Type[LLMProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAICompatibleProvider,
    "google": GeminiProvider,
    "groq": OpenAICompatibleProvider,
}


def get_provider(
    name: str,
    api_key: str,
    timeout: float = PROVIDER_TIMEOUT_SECONDS,
    http: Optional[httpx.AsyncClient] = None,
) -> LLMProvider:
    """Build the adapter for ``name``. Raises UnsupportedProviderError for unknown names."""
    config = get_provider_config(name)
    return PROVIDER_ADAPTERS[config.name](config, api_key, timeout=timeout, http=http)
