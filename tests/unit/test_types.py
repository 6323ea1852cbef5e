"""
tests/unit/test_types.py — Message / StreamDelta / RequestOptions models
"""

from __future__ import annotations

import pytest

from superego.brain.types import (
    Decision,
    DeltaKind,
    Message,
    MessageRole,
    RequestOptions,
    StreamDelta,
    response_token_cap,
)


class TestMessage:
    def test_superego_factory_carries_constitution(self):
        msg = Message.superego("ok", "strict", Decision.ANALYZED)
        assert msg.role == MessageRole.SUPEREGO
        assert msg.constitution_id == "strict"
        assert msg.decision == Decision.ANALYZED

    def test_ids_are_unique(self):
        assert Message.user("a").id != Message.user("a").id

    def test_camel_case_serialisation(self):
        msg = Message.superego("ok", "default", Decision.ANALYZED)
        msg.thinking = "hmm"
        msg.thinking_time = "1"
        dumped = msg.model_dump(by_alias=True, exclude_none=True)
        assert dumped["constitutionId"] == "default"
        assert dumped["thinkingTime"] == "1"
        assert dumped["decision"] == "ANALYZED"

    def test_loads_stored_browser_message(self):
        msg = Message.model_validate({
            "id": "1700000000000",
            "role": "superego",
            "content": "fine",
            "timestamp": "2025-03-01T12:00:00.000Z",
            "decision": "ERROR",
            "constitutionId": "default",
            "thinking": "",
            "thinkingTime": "0",
        })
        assert msg.decision == Decision.ERROR
        assert not msg.has_thinking


class TestStreamDelta:
    def test_done_is_terminal(self):
        assert StreamDelta.done("end_turn").is_terminal
        assert not StreamDelta.content("x").is_terminal

    def test_redacted_keeps_data_verbatim(self):
        blob = "EuYBCkQYAiJA+/==\n"
        delta = StreamDelta.redacted(blob)
        assert delta.kind == DeltaKind.THINKING_REDACTED
        assert delta.text == blob


class TestTokenCaps:
    @pytest.mark.parametrize("budget, cap", [(1024, 2024), (4000, 5000), (16000, 17000)])
    def test_response_cap(self, budget, cap):
        assert response_token_cap(budget) == cap
        assert response_token_cap(budget) > budget

    def test_effective_max_tokens(self):
        assert RequestOptions(max_tokens=1000).effective_max_tokens == 1000
        assert RequestOptions(max_tokens=1000, thinking_budget=4000).effective_max_tokens == 5000
