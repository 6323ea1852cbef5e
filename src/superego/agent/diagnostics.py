"""
agent/diagnostics.py — User-facing failure diagnosis

Builds the text placed in an ERROR superego message (or carried by an
EmptyResponseError) so a user can fix their configuration without reading
logs. Every message lists the four likely causes: invalid key, invalid
model, rate limit, network.
"""

from __future__ import annotations

from typing import Optional

from superego.brain.types import Provider, Stage
from superego.exceptions import (
    ExternalLookupError,
    LLMAuthenticationError,
    LLMConnectionError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    ProviderNotConfiguredError,
    StreamDecodeError,
)

_LABELS = {
    Provider.ANTHROPIC: "Anthropic",
    Provider.OPENROUTER: "OpenRouter",
}

_KEY_URLS = {
    Provider.ANTHROPIC: "https://console.anthropic.com",
    Provider.OPENROUTER: "https://openrouter.ai/keys",
}

_MODEL_HINTS = {
    Provider.ANTHROPIC: "Using a different model (e.g., claude-3-haiku-20240307)",
    Provider.OPENROUTER: "Using a different model",
}


def _other(provider: Provider) -> Provider:
    return Provider.OPENROUTER if provider == Provider.ANTHROPIC else Provider.ANTHROPIC


def troubleshooting_text(provider: Provider, model: Optional[str] = None) -> str:
    """The four-cause checklist plus concrete next steps for one provider."""
    label = _LABELS[provider]
    model_line = (
        f'The model "{model}" may not exist or you may not have access'
        if model else
        "The model may not exist or you may not have access"
    )
    return (
        "This could be due to:\n"
        f"1. Invalid API key - Check your {label} API key in .env or config\n"
        f"2. Invalid model name - {model_line}\n"
        "3. Rate limiting - You may have exceeded your API quota\n"
        "4. Network issues - Check your internet connection\n"
        "\n"
        "Try:\n"
        f"- Verifying your API key at {_KEY_URLS[provider]}\n"
        f"- {_MODEL_HINTS[provider]}\n"
        "- Checking your API usage and limits\n"
        f"- Using the {_LABELS[_other(provider)]} provider instead"
    )


def empty_response_message(provider: Provider, model: Optional[str], stage: Stage) -> str:
    """Text for a stream that finished without any visible content."""
    target = "" if stage == Stage.SUPEREGO else " for base LLM"
    return (
        f"No response received from the API{target}.\n"
        + troubleshooting_text(provider, model)
    )


def likely_cause(error: BaseException) -> Optional[str]:
    """Name the single most likely cause when the error class pins it down."""
    if isinstance(error, (LLMAuthenticationError, ProviderNotConfiguredError)):
        return "Invalid or missing API key"
    if isinstance(error, LLMInvalidRequestError):
        return "Invalid model name or malformed request"
    if isinstance(error, LLMRateLimitError):
        if error.retry_after:
            return f"Rate limiting (retry after {error.retry_after:g}s)"
        return "Rate limiting"
    if isinstance(error, LLMConnectionError):
        return "Network issues"
    if isinstance(error, StreamDecodeError):
        return "Provider stream interrupted or malformed"
    return None


def diagnose(error: BaseException, provider: Provider, model: Optional[str] = None) -> str:
    """Human-readable diagnosis for a failed evaluation."""
    if isinstance(error, ExternalLookupError):
        return f"Configuration Error: {error}"

    lines = [f"{_LABELS[provider]} API Error: {error}"]
    cause = likely_cause(error)
    if cause:
        lines.append(f"Most likely cause: {cause}")
    lines.append("")
    lines.append(troubleshooting_text(provider, model))
    return "\n".join(lines)
