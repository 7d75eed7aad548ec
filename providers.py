# providers.py
# Description: Provides the client for the supported AI providers (OpenAI,
# Google AI, Anthropic and a local Ollama server). Handles request
# formatting, response parsing, and mapping HTTP failures onto a small
# exception hierarchy.

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Sequence, Tuple, TypedDict
from urllib.parse import urlparse

import requests

from config import (
    API_KEY_ENV_VARS,
    PROVIDER_ANTHROPIC,
    PROVIDER_GOOGLE,
    PROVIDER_OLLAMA,
    PROVIDER_OPENAI,
    ProviderConfig,
)

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
GOOGLE_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

# ---------------------------------------------------------------------------
# registry
# ---------------------------------------------------------------------------

class ProviderInfo(TypedDict):
    id: str
    name: str
    models: List[str]


class ProviderMessage(TypedDict):
    role: str
    content: str


AVAILABLE_PROVIDERS: List[ProviderInfo] = [
    {
        "id": PROVIDER_OPENAI,
        "name": "OpenAI",
        "models": ["gpt-4o-mini", "gpt-4o", "gpt-4-turbo", "gpt-3.5-turbo"],
    },
    {
        "id": PROVIDER_GOOGLE,
        "name": "Google AI",
        "models": ["gemini-1.5-flash", "gemini-1.5-pro", "gemini-2.0-flash"],
    },
    {
        "id": PROVIDER_ANTHROPIC,
        "name": "Anthropic",
        "models": ["claude-3-5-haiku-latest", "claude-3-5-sonnet-latest", "claude-3-opus-latest"],
    },
    {
        "id": PROVIDER_OLLAMA,
        "name": "Ollama",
        "models": ["llama3.2", "gemma3:4b", "mistral"],
    },
]


def get_available_providers() -> List[ProviderInfo]:
    """Return a copy of the provider registry."""
    return [
        {"id": p["id"], "name": p["name"], "models": list(p["models"])}
        for p in AVAILABLE_PROVIDERS
    ]


def provider_name(provider_id: str) -> str:
    for info in AVAILABLE_PROVIDERS:
        if info["id"] == provider_id:
            return info["name"]
    return provider_id

# ---------------------------------------------------------------------------
# custom exceptions
# ---------------------------------------------------------------------------

class ProviderError(Exception):
    """Base exception for AI provider errors."""

class ProviderAuthError(ProviderError):
    """Raised when the API key is missing or rejected."""

class ProviderRateLimitError(ProviderError):
    """Raised when the provider reports a rate limit."""

class ProviderQuotaError(ProviderError):
    """Raised when the account quota is exhausted."""

class ProviderConnectionError(ProviderError):
    """Raised for connection failures to the provider."""

class ProviderTimeoutError(ProviderError):
    """Raised when a request to the provider times out."""

class ProviderResponseError(ProviderError):
    """Raised when the provider returns an error or an unreadable response."""

# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _validate_base_url(url: str) -> None:
    """Refuse plain HTTP for anything that is not the local machine."""
    parsed = urlparse(url)
    if parsed.scheme != "https" and parsed.hostname not in ("localhost", "127.0.0.1"):
        raise ValueError(f"Insecure provider URL configured for non-local host: {url}")


def _error_detail(response: requests.Response) -> str:
    """Pull the human-readable error text out of a provider error body."""
    try:
        data = response.json()
    except ValueError:
        return (response.text or "").strip()
    if isinstance(data, dict):
        error = data.get("error", data)
        if isinstance(error, dict):
            return str(error.get("message") or error.get("type") or error)
        return str(error)
    return str(data)


def _raise_for_status(response: requests.Response, name: str) -> None:
    status = response.status_code
    if status < 400:
        return
    detail = _error_detail(response)
    if status in (401, 403):
        raise ProviderAuthError(f"Invalid API key for {name} (HTTP {status}): {detail}")
    if status == 429:
        lowered = detail.lower()
        if "quota" in lowered or "insufficient_quota" in lowered or "billing" in lowered:
            raise ProviderQuotaError(f"{name} API quota exceeded: {detail}")
        raise ProviderRateLimitError(f"{name} rate limit exceeded: {detail}")
    raise ProviderResponseError(f"{name} returned HTTP {status}: {detail}")

# ---------------------------------------------------------------------------
# per-provider request builders and parsers
# ---------------------------------------------------------------------------

Request = Tuple[str, Dict[str, str], Dict[str, Any]]


def _openai_request(
    config: ProviderConfig, messages: Sequence[ProviderMessage], max_tokens: int, temperature: float
) -> Request:
    headers = {"Authorization": f"Bearer {config.api_key}", "Content-Type": "application/json"}
    payload = {
        "model": config.model,
        "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    return OPENAI_URL, headers, payload


def _openai_text(data: Dict[str, Any]) -> str:
    return data["choices"][0]["message"]["content"]


def _anthropic_request(
    config: ProviderConfig, messages: Sequence[ProviderMessage], max_tokens: int, temperature: float
) -> Request:
    headers = {
        "x-api-key": config.api_key or "",
        "anthropic-version": ANTHROPIC_VERSION,
        "Content-Type": "application/json",
    }
    # system turns travel in a separate field
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    payload: Dict[str, Any] = {
        "model": config.model,
        "messages": [
            {"role": m["role"], "content": m["content"]}
            for m in messages if m["role"] != "system"
        ],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if system:
        payload["system"] = system
    return ANTHROPIC_URL, headers, payload


def _anthropic_text(data: Dict[str, Any]) -> str:
    return "".join(
        block.get("text", "") for block in data["content"] if block.get("type") == "text"
    )


def _google_request(
    config: ProviderConfig, messages: Sequence[ProviderMessage], max_tokens: int, temperature: float
) -> Request:
    headers = {"x-goog-api-key": config.api_key or "", "Content-Type": "application/json"}
    payload = {
        "contents": [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
        ],
        "generationConfig": {"maxOutputTokens": max_tokens, "temperature": temperature},
    }
    return GOOGLE_URL.format(model=config.model), headers, payload


def _google_text(data: Dict[str, Any]) -> str:
    parts = data["candidates"][0]["content"]["parts"]
    return "".join(part.get("text", "") for part in parts)


def _ollama_request(
    config: ProviderConfig, messages: Sequence[ProviderMessage], max_tokens: int, temperature: float
) -> Request:
    base_url = (config.base_url or "http://localhost:11434").rstrip("/")
    _validate_base_url(base_url)
    payload = {
        "model": config.model,
        "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        "stream": False,
        "options": {"num_predict": max_tokens, "temperature": temperature},
    }
    return f"{base_url}/api/chat", {"Content-Type": "application/json"}, payload


def _ollama_text(data: Dict[str, Any]) -> str:
    if "error" in data:
        raise ProviderResponseError(str(data["error"]))
    return data["message"]["content"]


_HANDLERS: Dict[
    str,
    Tuple[Callable[[ProviderConfig, Sequence[ProviderMessage], int, float], Request],
          Callable[[Dict[str, Any]], str]],
] = {
    PROVIDER_OPENAI: (_openai_request, _openai_text),
    PROVIDER_ANTHROPIC: (_anthropic_request, _anthropic_text),
    PROVIDER_GOOGLE: (_google_request, _google_text),
    PROVIDER_OLLAMA: (_ollama_request, _ollama_text),
}

# ---------------------------------------------------------------------------
# client function
# ---------------------------------------------------------------------------

def generate_ai_response(
    messages: Sequence[ProviderMessage],
    config: ProviderConfig,
    max_tokens: int | None = None,
    temperature: float | None = None,
) -> str:
    """
    Sends the conversation to the configured provider and returns its reply.

    Args:
        messages: Role/content pairs, oldest first.
        config: The resolved provider configuration.
        max_tokens: Optional override for the configured token budget.
        temperature: Optional override for the configured temperature.

    Returns:
        The provider's text content, exactly as received.
    """
    if not messages:
        raise ValueError("At least one message is required.")
    if config.provider not in _HANDLERS:
        raise ValueError(f"Unsupported provider: {config.provider}")

    name = provider_name(config.provider)
    if config.provider in API_KEY_ENV_VARS and not config.api_key:
        raise ProviderAuthError(
            f"{name} API key is not set ({API_KEY_ENV_VARS[config.provider]})."
        )

    build_request, parse_text = _HANDLERS[config.provider]
    url, headers, payload = build_request(
        config,
        messages,
        max_tokens if max_tokens is not None else config.max_tokens,
        temperature if temperature is not None else config.temperature,
    )

    logger.info(
        "Sending request to AI provider",
        extra={"provider": config.provider, "model": config.model, "messages": len(messages)},
    )

    try:
        response = requests.post(url, headers=headers, json=payload, timeout=config.timeout)
    except requests.exceptions.ConnectionError as e:
        raise ProviderConnectionError(f"Connection to {name} failed.") from e
    except requests.exceptions.Timeout as e:
        raise ProviderTimeoutError(f"Request to {name} timed out.") from e
    except requests.exceptions.RequestException as e:
        raise ProviderError(f"An unexpected request error occurred: {e}") from e

    _raise_for_status(response, name)

    try:
        return parse_text(response.json())
    except ProviderError:
        raise
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise ProviderResponseError(f"{name} returned an unexpected response.") from e
