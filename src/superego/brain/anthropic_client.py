"""
brain/anthropic_client.py — Anthropic Provider Adapter

Key differences from the OpenAI-compatible format:
- System prompt is a separate top-level param, not a message
- Turns must start with `user` and strictly alternate (see brain/folding.py)
- Extended reasoning arrives on its own channel: `thinking_delta` frames
  carry plain text, `redacted_thinking` blocks carry opaque ciphertext that
  is surfaced verbatim and replayed unmodified in later requests
"""

from __future__ import annotations

from typing import Any, Optional

import anthropic
import httpx
from anthropic import AsyncAnthropic

from superego.brain.folding import fold_alternating, is_alternating
from superego.brain.llm_client import BaseProviderAdapter, frame_field, retry_after_seconds
from superego.brain.types import NormalizedTurn, Provider, RequestOptions, StreamDelta
from superego.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    ProviderStreamError,
    StreamDecodeError,
    StreamInitError,
)
from superego.observability.logger import get_logger

log = get_logger(__name__)

# Delta types that carry nothing for either channel
_IGNORED_DELTAS = {"signature_delta", "input_json_delta", "citations_delta"}


class AnthropicAdapter(BaseProviderAdapter):
    """Anthropic Messages API adapter (streaming + one-shot)."""

    provider = Provider.ANTHROPIC
    stream_errors = (anthropic.APIError, httpx.HTTPError)

    def __init__(self, api_key: str, base_url: Optional[str] = None):
        super().__init__(api_key=api_key, base_url=base_url)
        self._client = AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
        )

    # ── Request building ──────────────────────────────────────────────────────

    def fold_turns(self, turns: list[NormalizedTurn]) -> list[NormalizedTurn]:
        return fold_alternating(turns)

    def build_request(
        self,
        turns: list[NormalizedTurn],
        system_prompt: Optional[str],
        model: str,
        options: RequestOptions,
    ) -> dict[str, Any]:
        folded = self.fold_turns(turns)
        request: dict[str, Any] = {
            "model": model,
            "messages": [self._to_provider_message(t) for t in folded],
            "max_tokens": options.effective_max_tokens,
        }
        if system_prompt:
            request["system"] = system_prompt
        if options.thinking_budget:
            request["thinking"] = {
                "type": "enabled",
                "budget_tokens": options.thinking_budget,
            }
        log.debug(
            "anthropic.request.built",
            model=model,
            turns_in=len(turns),
            turns_out=len(folded),
            alternating=is_alternating(folded),
            thinking=bool(options.thinking_budget),
        )
        return request

    def _to_provider_message(self, turn: NormalizedTurn) -> dict[str, Any]:
        if not turn.redacted_thinking:
            return {"role": turn.role.value, "content": turn.content}
        # Opaque blocks go back exactly as received, ahead of the text block
        blocks: list[dict[str, Any]] = [
            {"type": "redacted_thinking", "data": data}
            for data in turn.redacted_thinking
        ]
        if turn.content:
            blocks.append({"type": "text", "text": turn.content})
        return {"role": turn.role.value, "content": blocks}

    # ── Decoding ──────────────────────────────────────────────────────────────

    def decode(self, frame: Any) -> Optional[StreamDelta]:
        frame_type = frame_field(frame, "type")
        if frame_type is None:
            raise StreamDecodeError("Anthropic frame has no type", provider="anthropic")

        if frame_type == "content_block_start":
            block = frame_field(frame, "content_block")
            if frame_field(block, "type") == "redacted_thinking":
                return StreamDelta.redacted(frame_field(block, "data") or "")
            return None

        if frame_type == "content_block_delta":
            return self._decode_delta(frame_field(frame, "delta"))

        if frame_type == "error":
            error = frame_field(frame, "error")
            raise ProviderStreamError(
                f"Anthropic stream error: {frame_field(error, 'message', error)}",
                provider="anthropic",
            )

        # message_start, content_block_stop, message_delta, message_stop, ping
        return None

    def _decode_delta(self, delta: Any) -> Optional[StreamDelta]:
        if delta is None:
            raise StreamDecodeError("content_block_delta without delta", provider="anthropic")
        delta_type = frame_field(delta, "type")

        if delta_type in ("text_delta", "text"):
            text = frame_field(delta, "text")
            return StreamDelta.content(text) if text else None
        if delta_type in ("thinking_delta", "thinking"):
            thinking = frame_field(delta, "thinking")
            return StreamDelta.thinking(thinking) if thinking else None
        if delta_type == "redacted_thinking":
            return StreamDelta.redacted(frame_field(delta, "data") or "")
        if delta_type in _IGNORED_DELTAS:
            return None

        raise StreamDecodeError(
            f"Unexpected Anthropic delta type: {delta_type!r}", provider="anthropic"
        )

    def stop_reason(self, frame: Any) -> Optional[str]:
        frame_type = frame_field(frame, "type")
        if frame_type == "message_delta":
            return frame_field(frame_field(frame, "delta"), "stop_reason")
        if frame_type == "message_stop":
            return "end_turn"
        return None

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _open_stream(self, request: dict[str, Any], timeout: float) -> Any:
        try:
            return await self._client.messages.create(**request, stream=True, timeout=timeout)
        except anthropic.APIError as e:
            raise _translate_error(e) from e

    async def complete(
        self,
        turns: list[NormalizedTurn],
        system_prompt: Optional[str],
        model: str,
        options: RequestOptions,
    ) -> str:
        request = self.build_request(turns, system_prompt, model, options)
        try:
            response = await self._client.messages.create(
                **request, timeout=options.timeout_seconds
            )
        except anthropic.APIError as e:
            raise _translate_error(e) from e

        return "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )


def _translate_error(e: anthropic.APIError) -> LLMError:
    """Map an Anthropic SDK exception onto the pipeline hierarchy."""
    msg = str(e)
    status = getattr(e, "status_code", None)
    if isinstance(e, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return LLMAuthenticationError(msg, provider="anthropic", status_code=status)
    if isinstance(e, anthropic.RateLimitError):
        return LLMRateLimitError(msg, provider="anthropic", retry_after=retry_after_seconds(e))
    if isinstance(e, (anthropic.BadRequestError, anthropic.NotFoundError)):
        return LLMInvalidRequestError(msg, provider="anthropic", status_code=status)
    if isinstance(e, anthropic.APIConnectionError):
        return LLMConnectionError(msg, provider="anthropic")
    return StreamInitError(msg, provider="anthropic", status_code=status)

