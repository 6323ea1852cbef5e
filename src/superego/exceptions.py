"""
exceptions.py — Superego Unified Error Hierarchy

All pipeline-specific exceptions live here. Provider adapters translate SDK
exceptions (anthropic / openai / httpx) into these types — never let a raw
SDK error escape the brain layer.

Import from here, or from superego.brain which re-exports the LLM layer:
    from superego.exceptions import StreamInitError, ExternalLookupError

Hierarchy:
    SuperegoError
    ├── ConfigError
    ├── ExternalLookupError
    └── LLMError
        ├── ProviderNotConfiguredError
        ├── StreamInitError
        │   ├── LLMAuthenticationError
        │   ├── LLMRateLimitError
        │   ├── LLMInvalidRequestError
        │   └── LLMConnectionError
        ├── StreamDecodeError
        │   └── ProviderStreamError
        └── EmptyResponseError
"""

from __future__ import annotations

from typing import Optional


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class SuperegoError(Exception):
    """Base class for all superego pipeline exceptions."""


class ConfigError(SuperegoError):
    """Raised by Settings.validate_all() when one or more config problems are found."""


class ExternalLookupError(SuperegoError):
    """A constitution or system prompt id could not be resolved to text."""

    def __init__(self, prompt_id: str, kind: str = "constitution", message: str = "") -> None:
        self.prompt_id = prompt_id
        self.kind = kind
        super().__init__(
            message
            or f"{kind.capitalize()} with ID '{prompt_id}' not found. "
               f"Make sure prompts.json is properly configured."
        )


# ─────────────────────────────────────────────────────────────────────────────
# LLM layer
# ─────────────────────────────────────────────────────────────────────────────

class LLMError(SuperegoError):
    """Base exception for all provider adapter errors."""

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderNotConfiguredError(LLMError):
    """No credential is configured for the selected provider."""


class StreamInitError(LLMError):
    """The provider rejected the request before the first chunk arrived."""


class LLMAuthenticationError(StreamInitError):
    """API key missing, invalid or without access (401 / 403)."""


class LLMRateLimitError(StreamInitError):
    """Rate limit or quota hit (429)."""

    def __init__(self, message: str, provider: str = "", retry_after: Optional[float] = None):
        super().__init__(message, provider, status_code=429)
        self.retry_after = retry_after


class LLMInvalidRequestError(StreamInitError):
    """Bad request — unknown model id or malformed parameters (400 / 404)."""


class LLMConnectionError(StreamInitError):
    """Provider unreachable or the request timed out."""


class StreamDecodeError(LLMError):
    """A streamed frame was malformed or of an unexpected shape."""


class ProviderStreamError(StreamDecodeError):
    """The provider sent an error frame, or the stream broke mid-flight."""


class EmptyResponseError(LLMError):
    """The stream completed without a single visible content fragment."""


__all__ = [
    "SuperegoError",
    "ConfigError",
    "ExternalLookupError",
    "LLMError",
    "ProviderNotConfiguredError",
    "StreamInitError",
    "LLMAuthenticationError",
    "LLMRateLimitError",
    "LLMInvalidRequestError",
    "LLMConnectionError",
    "StreamDecodeError",
    "ProviderStreamError",
    "EmptyResponseError",
]
