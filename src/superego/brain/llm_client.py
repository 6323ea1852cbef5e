"""
brain/llm_client.py — Abstract Provider Adapter

Every provider (Anthropic, OpenRouter) subclasses BaseProviderAdapter and
implements the provider-specific halves of the contract:

  - fold_turns()     -> make a NormalizedTurn list legal for the provider
  - build_request()  -> NormalizedTurns + system prompt + model -> request kwargs
  - decode()         -> one native stream frame -> StreamDelta | None
  - stop_reason()    -> non-None when a frame terminates the stream
  - _open_stream()   -> start the streaming request (SDK errors translated)
  - complete()       -> one-shot, non-streamed call (comparison responder)

The shared stream() loop owns frame iteration, decode-error wrapping, the
explicit DONE signal and closing the underlying HTTP stream, so the
orchestrator never branches on provider identity.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any, Optional

from superego.brain.types import NormalizedTurn, Provider, RequestOptions, StreamDelta
from superego.exceptions import LLMError, ProviderStreamError, StreamDecodeError
from superego.observability.logger import get_logger

log = get_logger(__name__)


def frame_field(frame: Any, name: str, default: Any = None) -> Any:
    """Read a field from an SDK model or a plain dict frame."""
    if frame is None:
        return default
    if isinstance(frame, dict):
        return frame.get(name, default)
    return getattr(frame, name, default)


class BaseProviderAdapter(ABC):
    """
    Abstract base for provider adapters.

    Class attributes:
      - provider:      Provider enum this adapter serves.
      - stream_errors: SDK / transport exceptions that may surface while
                       iterating an open stream. They are re-raised as
                       ProviderStreamError.
    """

    provider: Provider
    stream_errors: tuple[type[BaseException], ...] = ()

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = base_url

    # ── Provider-specific contract ────────────────────────────────────────────

    @abstractmethod
    def fold_turns(self, turns: list[NormalizedTurn]) -> list[NormalizedTurn]:
        """Reshape turns into the provider's role grammar."""
        ...

    @abstractmethod
    def build_request(
        self,
        turns: list[NormalizedTurn],
        system_prompt: Optional[str],
        model: str,
        options: RequestOptions,
    ) -> dict[str, Any]:
        """Return the kwargs for a streaming request."""
        ...

    @abstractmethod
    def decode(self, frame: Any) -> Optional[StreamDelta]:
        """Decode one native frame. None for frames with nothing to emit."""
        ...

    @abstractmethod
    def stop_reason(self, frame: Any) -> Optional[str]:
        """Return the provider stop reason when this frame ends the stream."""
        ...

    @abstractmethod
    async def _open_stream(self, request: dict[str, Any], timeout: float) -> Any:
        """Start the streaming call. Must raise StreamInitError subclasses."""
        ...

    @abstractmethod
    async def complete(
        self,
        turns: list[NormalizedTurn],
        system_prompt: Optional[str],
        model: str,
        options: RequestOptions,
    ) -> str:
        """Non-streamed call returning the full visible text."""
        ...

    # ── Shared stream loop ────────────────────────────────────────────────────

    async def stream(
        self,
        request: dict[str, Any],
        timeout: float = 60.0,
    ) -> AsyncIterator[StreamDelta]:
        """
        Yield canonical deltas in arrival order, always ending with exactly
        one DONE delta. The underlying stream is closed on exit, including
        when the consumer is cancelled mid-stream.
        """
        raw = await self._open_stream(request, timeout)
        log.debug(f"{self.provider.value}.stream.open", model=request.get("model"))
        frames = 0
        try:
            try:
                async for frame in raw:
                    frames += 1
                    delta = self._decode_frame(frame)
                    if delta is not None:
                        yield delta
                    reason = self.stop_reason(frame)
                    if reason is not None:
                        log.debug(f"{self.provider.value}.stream.done",
                                  frames=frames, stop_reason=reason)
                        yield StreamDelta.done(reason)
                        return
            except self.stream_errors as e:
                raise ProviderStreamError(
                    f"{self.provider.value} stream failed: {e}",
                    provider=self.provider.value,
                    status_code=getattr(e, "status_code", None),
                ) from e
            log.debug(f"{self.provider.value}.stream.ended", frames=frames)
            yield StreamDelta.done()
        finally:
            await _close_stream(raw)

    def _decode_frame(self, frame: Any) -> Optional[StreamDelta]:
        try:
            return self.decode(frame)
        except LLMError:
            raise
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise StreamDecodeError(
                f"Malformed {self.provider.value} stream frame: {e}",
                provider=self.provider.value,
            ) from e

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


async def _close_stream(raw: Any) -> None:
    closer = getattr(raw, "aclose", None) or getattr(raw, "close", None)
    if closer is None:
        return
    result = closer()
    if hasattr(result, "__await__"):
        await result


def retry_after_seconds(e: Exception) -> Optional[float]:
    """Read a numeric Retry-After header off an SDK status error, if present."""
    headers = getattr(getattr(e, "response", None), "headers", None)
    if headers is None:
        return None
    value = headers.get("retry-after")
    if not isinstance(value, str):
        return None
    try:
        return float(value)
    except ValueError:
        return None
