"""
brain/openrouter_client.py — OpenRouter Provider Adapter

OpenRouter is a unified API gateway for many models (Claude, GPT, Llama, ...).
It speaks the OpenAI chat-completions protocol, so we drive it with the
official AsyncOpenAI client pointed at openrouter.ai with the attribution
headers OpenRouter asks for.

Streamed chunks carry visible text only (choices[0].delta.content); this
adapter never emits thinking deltas.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import openai
from openai import AsyncOpenAI

from superego.brain.folding import fold_native
from superego.brain.llm_client import BaseProviderAdapter, frame_field, retry_after_seconds
from superego.brain.types import NormalizedTurn, Provider, RequestOptions, Role, StreamDelta
from superego.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
    ProviderStreamError,
    StreamInitError,
)
from superego.observability.logger import get_logger

log = get_logger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

_ROLE_MAP = {
    Role.SYSTEM: "system",
    Role.USER: "user",
    Role.ASSISTANT: "assistant",
}


class OpenRouterAdapter(BaseProviderAdapter):
    """
    OpenRouter adapter — routes requests to any model via one API.

    Requires an OpenRouter API key (https://openrouter.ai/keys).
    app_name/site_url feed OpenRouter's usage analytics dashboard.
    """

    provider = Provider.OPENROUTER
    stream_errors = (openai.APIError, httpx.HTTPError)

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        app_name: str = "Superego",
        site_url: str = "https://github.com/superego-agent",
    ):
        super().__init__(api_key=api_key, base_url=base_url or OPENROUTER_BASE_URL)
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            default_headers={
                "HTTP-Referer": site_url,
                "X-Title": app_name,
            },
        )

    # ── Request building ──────────────────────────────────────────────────────

    def fold_turns(self, turns: list[NormalizedTurn]) -> list[NormalizedTurn]:
        return fold_native(turns)

    def build_request(
        self,
        turns: list[NormalizedTurn],
        system_prompt: Optional[str],
        model: str,
        options: RequestOptions,
    ) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        for turn in self.fold_turns(turns):
            messages.append({
                "role": _ROLE_MAP.get(turn.role, "user"),
                "content": turn.content,
            })

        if options.thinking_budget:
            log.debug("openrouter.request.thinking_ignored", model=model)
        log.debug("openrouter.request.built", model=model, messages=len(messages))
        return {"model": model, "messages": messages, "stream": True}

    # ── Decoding ──────────────────────────────────────────────────────────────

    def decode(self, frame: Any) -> Optional[StreamDelta]:
        error = frame_field(frame, "error")
        if error:
            raise ProviderStreamError(
                f"OpenRouter stream error: {frame_field(error, 'message', error)}",
                provider="openrouter",
                status_code=frame_field(error, "code"),
            )

        choices = frame_field(frame, "choices")
        if not choices:
            return None     # keep-alive or usage-only chunk
        delta = frame_field(choices[0], "delta")
        content = frame_field(delta, "content")
        if content:
            return StreamDelta.content(content)
        return None

    def stop_reason(self, frame: Any) -> Optional[str]:
        choices = frame_field(frame, "choices")
        if not choices:
            return None
        return frame_field(choices[0], "finish_reason")

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _open_stream(self, request: dict[str, Any], timeout: float) -> Any:
        try:
            return await self._client.chat.completions.create(**request, timeout=timeout)
        except openai.APIError as e:
            raise _translate_error(e) from e

    async def complete(
        self,
        turns: list[NormalizedTurn],
        system_prompt: Optional[str],
        model: str,
        options: RequestOptions,
    ) -> str:
        request = self.build_request(turns, system_prompt, model, options)
        request["stream"] = False
        try:
            response = await self._client.chat.completions.create(
                **request, timeout=options.timeout_seconds
            )
        except openai.APIError as e:
            raise _translate_error(e) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def _translate_error(e: openai.APIError) -> LLMError:
    """Map an OpenAI SDK exception (as raised for OpenRouter) onto the pipeline hierarchy."""
    msg = str(e)
    status = getattr(e, "status_code", None)
    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return LLMAuthenticationError(msg, provider="openrouter", status_code=status)
    if isinstance(e, openai.RateLimitError):
        return LLMRateLimitError(msg, provider="openrouter", retry_after=retry_after_seconds(e))
    if isinstance(e, (openai.BadRequestError, openai.NotFoundError)):
        return LLMInvalidRequestError(msg, provider="openrouter", status_code=status)
    if isinstance(e, openai.APIConnectionError):
        return LLMConnectionError(msg, provider="openrouter")
    return StreamInitError(msg, provider="openrouter", status_code=status)
