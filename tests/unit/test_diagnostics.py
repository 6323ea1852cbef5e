"""
tests/unit/test_diagnostics.py — troubleshooting text
"""

from __future__ import annotations

import pytest

from superego.agent.diagnostics import (
    diagnose,
    empty_response_message,
    likely_cause,
    troubleshooting_text,
)
from superego.brain.types import Provider, Stage
from superego.exceptions import (
    ExternalLookupError,
    LLMAuthenticationError,
    LLMConnectionError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    ProviderNotConfiguredError,
    ProviderStreamError,
    StreamInitError,
)


class TestTroubleshootingText:
    @pytest.mark.parametrize("provider", list(Provider))
    def test_lists_all_four_causes(self, provider):
        text = troubleshooting_text(provider)
        for cause in ("Invalid API key", "Invalid model name", "Rate limiting", "Network issues"):
            assert cause in text

    def test_anthropic_specifics(self):
        text = troubleshooting_text(Provider.ANTHROPIC, "claude-x")
        assert "https://console.anthropic.com" in text
        assert '"claude-x"' in text
        assert "Using the OpenRouter provider instead" in text

    def test_openrouter_specifics(self):
        text = troubleshooting_text(Provider.OPENROUTER)
        assert "https://openrouter.ai/keys" in text
        assert "Using the Anthropic provider instead" in text

    def test_empty_response_wording_per_stage(self):
        superego = empty_response_message(Provider.ANTHROPIC, "m", Stage.SUPEREGO)
        base = empty_response_message(Provider.ANTHROPIC, "m", Stage.BASE)
        assert superego.startswith("No response received from the API.")
        assert base.startswith("No response received from the API for base LLM.")


class TestDiagnose:
    @pytest.mark.parametrize("error, cause", [
        (LLMAuthenticationError("401", provider="anthropic"), "API key"),
        (ProviderNotConfiguredError("no key"), "API key"),
        (LLMInvalidRequestError("404", provider="anthropic"), "model name"),
        (LLMRateLimitError("429", provider="anthropic"), "Rate limiting"),
        (LLMConnectionError("timeout", provider="anthropic"), "Network"),
        (ProviderStreamError("broken", provider="anthropic"), "stream"),
    ])
    def test_names_most_likely_cause(self, error, cause):
        text = diagnose(error, Provider.ANTHROPIC, "m")
        assert "Most likely cause: " in text
        assert cause in likely_cause(error)
        assert "4. Network issues" in text

    def test_retry_after_shown(self):
        error = LLMRateLimitError("429", provider="openrouter", retry_after=30.0)
        assert "retry after 30s" in likely_cause(error)

    def test_generic_init_error_has_no_single_cause(self):
        text = diagnose(StreamInitError("500"), Provider.OPENROUTER)
        assert "Most likely cause" not in text
        assert text.startswith("OpenRouter API Error: 500")

    def test_lookup_error_is_configuration(self):
        text = diagnose(ExternalLookupError("gone"), Provider.ANTHROPIC)
        assert text.startswith("Configuration Error:")
        assert "gone" in text
