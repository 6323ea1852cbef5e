"""
brain/__init__.py — Superego Provider Brain
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from superego.brain.anthropic_client import AnthropicAdapter
from superego.brain.llm_client import BaseProviderAdapter
from superego.brain.openrouter_client import OpenRouterAdapter
from superego.brain.types import (
    Decision,
    DeltaKind,
    Message,
    MessageRole,
    NormalizedTurn,
    Provider,
    RequestOptions,
    Role,
    Stage,
    StreamDelta,
)
from superego.exceptions import (
    EmptyResponseError,
    LLMAuthenticationError,
    LLMConnectionError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    ProviderNotConfiguredError,
    ProviderStreamError,
    StreamDecodeError,
    StreamInitError,
)

if TYPE_CHECKING:
    from superego.config.settings import ChatConfig

__all__ = [
    "ProviderAdapterFactory",
    "BaseProviderAdapter",
    "AnthropicAdapter",
    "OpenRouterAdapter",
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
    "Message",
    "MessageRole",
    "NormalizedTurn",
    "Role",
    "Decision",
    "DeltaKind",
    "StreamDelta",
    "RequestOptions",
    "Provider",
    "Stage",
]

# Registry keyed on provider id; the only place that maps a provider to its class
_ADAPTERS: dict[Provider, type[BaseProviderAdapter]] = {
    Provider.ANTHROPIC: AnthropicAdapter,
    Provider.OPENROUTER: OpenRouterAdapter,
}

_KEY_NAMES: dict[Provider, str] = {
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
    Provider.OPENROUTER: "OPENROUTER_API_KEY",
}


class ProviderAdapterFactory:

    @staticmethod
    def create(
        provider: str | Provider,
        api_key: Optional[str],
        base_url: Optional[str] = None,
    ) -> BaseProviderAdapter:

        try:
            provider = Provider(str(getattr(provider, "value", provider)).lower().strip())
        except ValueError:
            raise ValueError(
                f"Unknown LLM provider: '{provider}'. "
                f"Valid options: {', '.join(p.value for p in _ADAPTERS)}"
            ) from None

        if not api_key:
            raise ProviderNotConfiguredError(
                f"No API key configured for {provider.value}. "
                f"Set {_KEY_NAMES[provider]} in your .env file or settings.",
                provider=provider.value,
            )
        return _ADAPTERS[provider](api_key=api_key, base_url=base_url)

    @staticmethod
    def from_config(config: "ChatConfig") -> BaseProviderAdapter:
        """Build the adapter for config.default_provider with its credential."""
        provider = config.default_provider
        return ProviderAdapterFactory.create(
            provider=provider,
            api_key=config.api_key_for(provider),
        )

    @staticmethod
    def supported() -> list[Provider]:
        return list(_ADAPTERS)
