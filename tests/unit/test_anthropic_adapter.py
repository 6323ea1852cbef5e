"""
tests/unit/test_anthropic_adapter.py — Anthropic adapter

Request building, frame decoding, the shared stream loop and SDK error
translation. The SDK client is replaced with AsyncMock; frames are dicts.

Run with:
    pytest tests/unit/test_anthropic_adapter.py -v
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from superego.brain.anthropic_client import AnthropicAdapter
from superego.brain.types import DeltaKind, NormalizedTurn, RequestOptions, StreamDelta
from superego.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    ProviderStreamError,
    StreamDecodeError,
)

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


class FakeStream:
    """Async-iterable stand-in for the SDK's AsyncStream."""

    def __init__(self, frames, error: Exception | None = None):
        self._frames = list(frames)
        self._error = error
        self.closed = False

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for frame in self._frames:
            yield frame
        if self._error is not None:
            raise self._error

    async def close(self):
        self.closed = True


def text_frame(text: str) -> dict:
    return {"type": "content_block_delta", "index": 0,
            "delta": {"type": "text_delta", "text": text}}


def thinking_frame(text: str) -> dict:
    return {"type": "content_block_delta", "index": 0,
            "delta": {"type": "thinking_delta", "thinking": text}}


def status_error(cls, status: int, headers: dict | None = None):
    response = httpx.Response(status, request=_REQUEST, headers=headers or {})
    return cls(message=f"status {status}", response=response, body=None)


@pytest.fixture
def adapter() -> AnthropicAdapter:
    return AnthropicAdapter(api_key="sk-ant-test-fake")


async def _collect(adapter, frames, error=None):
    stream = FakeStream(frames, error)
    adapter._client.messages.create = AsyncMock(return_value=stream)
    deltas = [d async for d in adapter.stream({"model": "m"}, timeout=5)]
    return deltas, stream


# ─────────────────────────────────────────────────────────────────────────────
# Request building
# ─────────────────────────────────────────────────────────────────────────────


class TestBuildRequest:
    def test_basic_fields(self, adapter):
        req = adapter.build_request(
            [NormalizedTurn.user("hi")], "be careful", "claude-x", RequestOptions(max_tokens=1000)
        )
        assert req["model"] == "claude-x"
        assert req["system"] == "be careful"
        assert req["max_tokens"] == 1000
        assert req["messages"] == [{"role": "user", "content": "hi"}]
        assert "thinking" not in req

    def test_no_system_prompt_omits_field(self, adapter):
        req = adapter.build_request([NormalizedTurn.user("hi")], None, "m", RequestOptions())
        assert "system" not in req

    def test_thinking_budget_sets_cap(self, adapter):
        req = adapter.build_request(
            [NormalizedTurn.user("hi")], None, "m",
            RequestOptions(max_tokens=1000, thinking_budget=4000),
        )
        assert req["thinking"] == {"type": "enabled", "budget_tokens": 4000}
        assert req["max_tokens"] == 5000

    def test_turns_are_folded(self, adapter):
        turns = [
            NormalizedTurn.assistant("earlier"),
            NormalizedTurn.system("[SUPEREGO EVALUATION]: fine"),
            NormalizedTurn.user("next"),
        ]
        req = adapter.build_request(turns, None, "m", RequestOptions())
        assert [m["role"] for m in req["messages"]] == ["user", "assistant", "user"]
        assert req["messages"][0]["content"] == "Hello"
        assert req["messages"][2]["content"] == "[SUPEREGO EVALUATION]: fine\n\nnext"

    def test_redacted_thinking_replayed_as_blocks(self, adapter):
        turns = [
            NormalizedTurn.user("q"),
            NormalizedTurn.assistant("answer", ("CIPHER==",)),
            NormalizedTurn.user("follow up"),
        ]
        req = adapter.build_request(turns, None, "m", RequestOptions())
        assert req["messages"][1]["content"] == [
            {"type": "redacted_thinking", "data": "CIPHER=="},
            {"type": "text", "text": "answer"},
        ]


# ─────────────────────────────────────────────────────────────────────────────
# Decoding
# ─────────────────────────────────────────────────────────────────────────────


class TestDecode:
    def test_text_delta(self, adapter):
        assert adapter.decode(text_frame("Hi")) == StreamDelta.content("Hi")

    def test_legacy_text_delta_type(self, adapter):
        frame = {"type": "content_block_delta", "delta": {"type": "text", "text": "Hi"}}
        assert adapter.decode(frame) == StreamDelta.content("Hi")

    def test_thinking_delta(self, adapter):
        assert adapter.decode(thinking_frame("hmm")) == StreamDelta.thinking("hmm")

    def test_redacted_block_start(self, adapter):
        frame = {"type": "content_block_start", "index": 1,
                 "content_block": {"type": "redacted_thinking", "data": "XYZ"}}
        assert adapter.decode(frame) == StreamDelta.redacted("XYZ")

    def test_redacted_delta(self, adapter):
        frame = {"type": "content_block_delta",
                 "delta": {"type": "redacted_thinking", "data": "XYZ"}}
        delta = adapter.decode(frame)
        assert delta.kind == DeltaKind.THINKING_REDACTED
        assert delta.text == "XYZ"

    def test_signature_delta_ignored(self, adapter):
        frame = {"type": "content_block_delta",
                 "delta": {"type": "signature_delta", "signature": "sig"}}
        assert adapter.decode(frame) is None

    @pytest.mark.parametrize("frame_type", ["message_start", "ping", "content_block_stop"])
    def test_bookkeeping_frames_ignored(self, adapter, frame_type):
        assert adapter.decode({"type": frame_type}) is None

    def test_sdk_object_frames(self, adapter):
        frame = MagicMock()
        frame.type = "content_block_delta"
        frame.delta.type = "text_delta"
        frame.delta.text = "from sdk"
        assert adapter.decode(frame) == StreamDelta.content("from sdk")

    def test_unknown_delta_type_raises(self, adapter):
        frame = {"type": "content_block_delta", "delta": {"type": "mystery"}}
        with pytest.raises(StreamDecodeError):
            adapter.decode(frame)

    def test_missing_type_raises(self, adapter):
        with pytest.raises(StreamDecodeError):
            adapter.decode({"delta": {}})

    def test_error_frame_raises(self, adapter):
        frame = {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
        with pytest.raises(ProviderStreamError, match="Overloaded"):
            adapter.decode(frame)

    def test_stop_reason(self, adapter):
        assert adapter.stop_reason({"type": "message_delta",
                                    "delta": {"stop_reason": "max_tokens"}}) == "max_tokens"
        assert adapter.stop_reason({"type": "message_stop"}) == "end_turn"
        assert adapter.stop_reason(text_frame("x")) is None


# ─────────────────────────────────────────────────────────────────────────────
# Stream loop
# ─────────────────────────────────────────────────────────────────────────────


class TestStream:
    @pytest.mark.asyncio
    async def test_deltas_in_order_then_done(self, adapter):
        frames = [
            {"type": "message_start"},
            thinking_frame("let me "),
            {"type": "content_block_start",
             "content_block": {"type": "redacted_thinking", "data": "R1"}},
            thinking_frame("see"),
            text_frame("Fine."),
            {"type": "message_delta", "delta": {"stop_reason": "end_turn"}},
            {"type": "message_stop"},
        ]
        deltas, stream = await _collect(adapter, frames)
        assert [d.kind for d in deltas] == [
            DeltaKind.THINKING,
            DeltaKind.THINKING_REDACTED,
            DeltaKind.THINKING,
            DeltaKind.CONTENT,
            DeltaKind.DONE,
        ]
        assert deltas[-1].stop_reason == "end_turn"
        assert stream.closed

    @pytest.mark.asyncio
    async def test_done_emitted_when_stream_just_ends(self, adapter):
        deltas, _ = await _collect(adapter, [text_frame("a")])
        assert deltas == [StreamDelta.content("a"), StreamDelta.done()]

    @pytest.mark.asyncio
    async def test_request_passed_with_stream_flag(self, adapter):
        _, _ = await _collect(adapter, [])
        kwargs = adapter._client.messages.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["timeout"] == 5
        assert kwargs["model"] == "m"

    @pytest.mark.asyncio
    async def test_malformed_frame_raises_decode_error(self, adapter):
        bad = {"type": "content_block_delta", "delta": None}
        with pytest.raises(StreamDecodeError):
            await _collect(adapter, [bad])

    @pytest.mark.asyncio
    async def test_midstream_transport_failure(self, adapter):
        stream = FakeStream([text_frame("partial")], error=httpx.ReadError("reset"))
        adapter._client.messages.create = AsyncMock(return_value=stream)
        received = []
        with pytest.raises(ProviderStreamError):
            async for delta in adapter.stream({"model": "m"}):
                received.append(delta)
        assert received == [StreamDelta.content("partial")]
        assert stream.closed


# ─────────────────────────────────────────────────────────────────────────────
# Error translation
# ─────────────────────────────────────────────────────────────────────────────


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("sdk_error, expected", [
        (lambda: status_error(anthropic.AuthenticationError, 401), LLMAuthenticationError),
        (lambda: status_error(anthropic.NotFoundError, 404), LLMInvalidRequestError),
        (lambda: status_error(anthropic.BadRequestError, 400), LLMInvalidRequestError),
        (lambda: anthropic.APIConnectionError(request=_REQUEST), LLMConnectionError),
    ])
    async def test_init_errors_translated(self, adapter, sdk_error, expected):
        adapter._client.messages.create = AsyncMock(side_effect=sdk_error())
        with pytest.raises(expected) as exc_info:
            async for _ in adapter.stream({"model": "m"}):
                pass
        assert exc_info.value.provider == "anthropic"

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, adapter):
        adapter._client.messages.create = AsyncMock(
            side_effect=status_error(anthropic.RateLimitError, 429, {"retry-after": "12"})
        )
        with pytest.raises(LLMRateLimitError) as exc_info:
            async for _ in adapter.stream({"model": "m"}):
                pass
        assert exc_info.value.retry_after == 12.0
        assert exc_info.value.status_code == 429


# ─────────────────────────────────────────────────────────────────────────────
# One-shot completion
# ─────────────────────────────────────────────────────────────────────────────


class TestComplete:
    @pytest.mark.asyncio
    async def test_joins_text_blocks(self, adapter):
        thinking_block = MagicMock()
        thinking_block.type = "thinking"
        text_a = MagicMock()
        text_a.type = "text"
        text_a.text = "Hello "
        text_b = MagicMock()
        text_b.type = "text"
        text_b.text = "there"
        response = MagicMock()
        response.content = [thinking_block, text_a, text_b]
        adapter._client.messages.create = AsyncMock(return_value=response)

        result = await adapter.complete(
            [NormalizedTurn.user("hi")], None, "m", RequestOptions()
        )
        assert result == "Hello there"
        assert "stream" not in adapter._client.messages.create.call_args.kwargs
