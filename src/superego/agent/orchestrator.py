"""
agent/orchestrator.py — Stream Orchestrator

Drives the two-stage superego pipeline for one conversation.

For each user turn the caller:
    1. evaluate()  — streams the superego screening of the input through the
                     configured provider; never raises, always returns a
                     superego Message with decision ANALYZED or ERROR
    2. respond()   — on acceptance, streams the base model's answer with the
                     evaluation folded into context; raises on any failure
    3. (optional)  — compare_without_screening(): the same base model, same
                     input, with every superego turn filtered out

Deltas are folded into an explicit StreamAccumulator value; the caller sees
fragments (never accumulated text) through its callbacks, in arrival order.

Starting a new evaluate() while one is still streaming cancels the older
stream and suppresses its callbacks. The superseded call returns an ERROR
message saying it was cancelled.

Usage:
    orc = Orchestrator.from_settings(settings)
    evaluation = await orc.evaluate(text, history, config, on_content=print)
    if evaluation.decision == Decision.ANALYZED:
        result = await orc.respond(text, history + [evaluation], config, on_content=print)
"""

from __future__ import annotations

import asyncio
import inspect
import time
from contextlib import aclosing
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, Union

from superego.agent.context_builder import ContextMode, assemble
from superego.agent.diagnostics import diagnose, empty_response_message
from superego.agent.prompts import PromptLibrary
from superego.brain import ProviderAdapterFactory
from superego.brain.llm_client import BaseProviderAdapter
from superego.brain.types import (
    BASE_MAX_TOKENS,
    SUPEREGO_MAX_TOKENS,
    Decision,
    DeltaKind,
    Message,
    RequestOptions,
    Stage,
    StreamDelta,
)
from superego.config.settings import ChatConfig
from superego.exceptions import EmptyResponseError, ExternalLookupError, LLMError
from superego.observability.logger import clip, get_logger, setup_logging_from_settings

log = get_logger(__name__)

# Shown on the thinking channel in place of an encrypted reasoning block
REDACTED_THINKING_MARKER = "[REDACTED THINKING]"

CANCELLED_MESSAGE = "Evaluation cancelled: superseded by a newer evaluation"

FragmentCallback = Callable[[str], Union[None, Awaitable[None]]]
ProgressCallback = Callable[[Message], Union[None, Awaitable[None]]]
AdapterFactory = Callable[[ChatConfig], BaseProviderAdapter]


def estimate_thinking_tokens(thinking: str) -> str:
    """~4 characters per token, rounded half up, as a decimal string."""
    return str((len(thinking) + 2) // 4)


# ─────────────────────────────────────────────────────────────────────────────
# Accumulator
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StreamAccumulator:
    """Everything received on one stream so far. apply() returns a new value."""

    content: str = ""
    thinking: str = ""
    redacted_thinking: tuple[str, ...] = ()
    done: bool = False
    stop_reason: Optional[str] = None

    def apply(self, delta: StreamDelta) -> "StreamAccumulator":
        if delta.kind == DeltaKind.CONTENT:
            return replace(self, content=self.content + delta.text)
        if delta.kind == DeltaKind.THINKING:
            return replace(self, thinking=self.thinking + delta.text)
        if delta.kind == DeltaKind.THINKING_REDACTED:
            return replace(
                self,
                thinking=self.thinking + REDACTED_THINKING_MARKER,
                redacted_thinking=self.redacted_thinking + (delta.text,),
            )
        return replace(self, done=True, stop_reason=delta.stop_reason)

    @property
    def thinking_time(self) -> Optional[str]:
        return estimate_thinking_tokens(self.thinking) if self.thinking else None

    @property
    def has_content(self) -> bool:
        return bool(self.content)


def thinking_fragment(delta: StreamDelta) -> Optional[str]:
    """What the thinking channel shows for a delta, if anything."""
    if delta.kind == DeltaKind.THINKING:
        return delta.text
    if delta.kind == DeltaKind.THINKING_REDACTED:
        return REDACTED_THINKING_MARKER
    return None


async def _emit(callback: Optional[Callable[[Any], Any]], value: Any) -> None:
    if callback is None:
        return
    result = callback(value)
    if inspect.isawaitable(result):
        await result


# ─────────────────────────────────────────────────────────────────────────────
# Results
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class ComparisonResult:
    """Outcome of the unscreened base-model call. Never raised, only reported."""

    content: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None


@dataclass
class ResponseResult:
    message: Message
    comparison: Optional[ComparisonResult] = None
    stop_reason: Optional[str] = None

    @property
    def content(self) -> str:
        return self.message.content


# ─────────────────────────────────────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────────────────────────────────────


class Orchestrator:
    """
    Two-stage pipeline for a single conversation.

    The ChatConfig is passed on every call and never stored. The only state
    kept between calls is the handle of an in-flight evaluation, so use one
    Orchestrator per conversation.
    """

    def __init__(
        self,
        prompts: Optional[PromptLibrary] = None,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        self._prompts = prompts or PromptLibrary()
        self._adapter_factory = adapter_factory or ProviderAdapterFactory.from_config
        self._inflight: Optional[asyncio.Task] = None
        self._generation = 0

    @classmethod
    def from_settings(cls, settings, configure_logging: bool = True) -> "Orchestrator":
        """Build an orchestrator for a loaded Settings, configuring logging first."""
        if configure_logging:
            setup_logging_from_settings(settings)
        return cls(prompts=PromptLibrary.from_settings(settings))

    @property
    def prompts(self) -> PromptLibrary:
        return self._prompts

    @property
    def evaluating(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # ─────────────────────────────────────────────────────────────────────────
    # Stage 1: superego evaluation
    # ─────────────────────────────────────────────────────────────────────────

    async def evaluate(
        self,
        user_input: str,
        history: list[Message],
        config: ChatConfig,
        on_content: Optional[FragmentCallback] = None,
        on_thinking: Optional[FragmentCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        constitution_id: Optional[str] = None,
    ) -> Message:
        """
        Screen user_input with the superego model.

        Never raises: configuration, lookup, transport and decode failures
        all come back as a superego Message with decision ERROR and a
        diagnosis in its content.
        """
        self.cancel_evaluation()
        self._generation += 1
        generation = self._generation

        if constitution_id:
            config = config.with_constitution(constitution_id)
        provider = config.default_provider
        model = config.model_for(provider, Stage.SUPEREGO)

        log.info(
            "orchestrator.evaluate.start",
            provider=provider.value,
            model=model,
            constitution=config.constitution_id,
            history=len(history),
            user_input=clip(user_input),
        )
        t0 = time.monotonic()

        evaluation = Message.superego("", config.constitution_id, Decision.ANALYZING)

        def _fail(content: str) -> Message:
            return evaluation.model_copy(update={"content": content, "decision": Decision.ERROR})

        options = RequestOptions(
            max_tokens=SUPEREGO_MAX_TOKENS,
            thinking_budget=config.thinking_token_budget,
            timeout_seconds=config.request_timeout_seconds,
        )
        try:
            constitution = self._prompts.get_constitution(config.constitution_id)
            adapter = self._adapter_factory(config)
            turns = assemble(history, user_input, ContextMode.SUPEREGO,
                             config.context_message_limit)
            request = adapter.build_request(turns, constitution, model, options)
        except (ExternalLookupError, LLMError) as e:
            log.error("orchestrator.evaluate.config_error", error=str(e),
                      error_type=type(e).__name__)
            return _fail(diagnose(e, provider, model))

        await _emit(on_progress, evaluation.model_copy())
        if generation != self._generation:
            return _fail(CANCELLED_MESSAGE)

        async def on_delta(delta: StreamDelta, acc: StreamAccumulator) -> None:
            if generation != self._generation:
                return
            if delta.kind == DeltaKind.CONTENT:
                await _emit(on_content, delta.text)
            fragment = thinking_fragment(delta)
            if fragment is not None:
                await _emit(on_thinking, fragment)
            if on_progress is not None and not delta.is_terminal:
                await _emit(on_progress, _snapshot(evaluation, acc))

        task = asyncio.create_task(
            self._consume(adapter, request, options.timeout_seconds, on_delta)
        )
        self._inflight = task
        try:
            acc = await task
        except asyncio.CancelledError:
            if generation == self._generation:
                raise
            log.info("orchestrator.evaluate.superseded", generation=generation)
            return _fail(CANCELLED_MESSAGE)
        except LLMError as e:
            log.error("orchestrator.evaluate.stream_error", provider=provider.value,
                      error=str(e), error_type=type(e).__name__)
            return _fail(diagnose(e, provider, model))
        except Exception as e:
            log.error("orchestrator.evaluate.error", error=str(e), exc_info=True)
            return _fail(f"General Error: {e}")
        finally:
            if self._inflight is task:
                self._inflight = None

        final = _snapshot(evaluation, acc)
        if not acc.has_content:
            log.warning("orchestrator.evaluate.empty", provider=provider.value, model=model,
                        stop_reason=acc.stop_reason)
            return final.model_copy(update={
                "content": empty_response_message(provider, model, Stage.SUPEREGO),
                "decision": Decision.ERROR,
            })

        log.info(
            "orchestrator.evaluate.done",
            ms=round((time.monotonic() - t0) * 1000),
            chars=len(acc.content),
            thinking_tokens=acc.thinking_time or "0",
            stop_reason=acc.stop_reason,
        )
        return final.model_copy(update={"decision": Decision.ANALYZED})

    def cancel_evaluation(self) -> bool:
        """Abort the in-flight evaluation, if any. Its callbacks stop at once."""
        task = self._inflight
        if task is None or task.done():
            return False
        self._generation += 1
        task.cancel()
        log.info("orchestrator.evaluate.cancel_requested")
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Stage 2: base response
    # ─────────────────────────────────────────────────────────────────────────

    async def respond(
        self,
        user_input: str,
        history: list[Message],
        config: ChatConfig,
        on_content: Optional[FragmentCallback] = None,
        compare: bool = False,
    ) -> ResponseResult:
        """
        Stream the base model's answer. history should already end with the
        evaluation; superego turns reach the model as tagged system turns.

        Raises EmptyResponseError when no visible text arrived, and lets every
        other pipeline error propagate, so a broken answer is never appended
        to the conversation.
        """
        provider = config.default_provider
        model = config.model_for(provider, Stage.BASE)
        log.info("orchestrator.respond.start", provider=provider.value, model=model,
                 history=len(history), user_input=clip(user_input))
        t0 = time.monotonic()

        system_prompt = self._system_prompt(config)
        adapter = self._adapter_factory(config)
        turns = assemble(history, user_input, ContextMode.BASE, config.context_message_limit)
        options = RequestOptions(
            max_tokens=BASE_MAX_TOKENS,
            timeout_seconds=config.request_timeout_seconds,
        )
        request = adapter.build_request(turns, system_prompt, model, options)

        async def on_delta(delta: StreamDelta, acc: StreamAccumulator) -> None:
            if delta.kind == DeltaKind.CONTENT:
                await _emit(on_content, delta.text)

        acc = await self._consume(adapter, request, options.timeout_seconds, on_delta)
        if not acc.has_content:
            log.error("orchestrator.respond.empty", provider=provider.value, model=model)
            raise EmptyResponseError(
                empty_response_message(provider, model, Stage.BASE),
                provider=provider.value,
            )

        message = Message.assistant(acc.content)
        message.redacted_thinking = list(acc.redacted_thinking)
        log.info("orchestrator.respond.done", ms=round((time.monotonic() - t0) * 1000),
                 chars=len(acc.content), stop_reason=acc.stop_reason)

        comparison = None
        if compare:
            comparison = await self.compare_without_screening(user_input, history, config)
        return ResponseResult(message=message, comparison=comparison, stop_reason=acc.stop_reason)

    # ─────────────────────────────────────────────────────────────────────────
    # Comparison responder
    # ─────────────────────────────────────────────────────────────────────────

    async def compare_without_screening(
        self,
        user_input: str,
        history: list[Message],
        config: ChatConfig,
    ) -> ComparisonResult:
        """Base model answer with no superego turns in context. Best effort."""
        provider = config.default_provider
        model = config.model_for(provider, Stage.BASE)
        try:
            system_prompt = self._system_prompt(config)
            adapter = self._adapter_factory(config)
            turns = assemble(history, user_input, ContextMode.COMPARISON,
                             config.context_message_limit)
            options = RequestOptions(
                max_tokens=BASE_MAX_TOKENS,
                timeout_seconds=config.request_timeout_seconds,
            )
            content = await adapter.complete(turns, system_prompt, model, options)
        except Exception as e:
            log.warning("orchestrator.compare.failed", provider=provider.value,
                        error=str(e), error_type=type(e).__name__)
            return ComparisonResult(error=str(e))

        log.info("orchestrator.compare.done", chars=len(content))
        return ComparisonResult(content=content)

    # ─────────────────────────────────────────────────────────────────────────
    # Internal
    # ─────────────────────────────────────────────────────────────────────────

    def _system_prompt(self, config: ChatConfig) -> Optional[str]:
        if not config.system_prompt_id:
            return None
        return self._prompts.get_system_prompt(config.system_prompt_id)

    @staticmethod
    async def _consume(
        adapter: BaseProviderAdapter,
        request: dict[str, Any],
        timeout: float,
        on_delta: Callable[[StreamDelta, StreamAccumulator], Awaitable[None]],
    ) -> StreamAccumulator:
        acc = StreamAccumulator()
        async with aclosing(adapter.stream(request, timeout)) as deltas:
            async for delta in deltas:
                acc = acc.apply(delta)
                await on_delta(delta, acc)
        return acc


def _snapshot(evaluation: Message, acc: StreamAccumulator) -> Message:
    return evaluation.model_copy(update={
        "content": acc.content,
        "thinking": acc.thinking or None,
        "thinking_time": acc.thinking_time,
        "redacted_thinking": list(acc.redacted_thinking),
    })
