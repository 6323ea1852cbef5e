"""
brain/types.py — Superego Brain Data Models

Shared types used across provider adapters, the context assembler and the
stream orchestrator. Both providers (Anthropic, OpenRouter) map their native
stream frames into StreamDelta; conversation state is carried as Message.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class Provider(str, Enum):
    ANTHROPIC = "anthropic"     # strict user/assistant alternation
    OPENROUTER = "openrouter"   # OpenAI-compatible, native system turns


class Stage(str, Enum):
    SUPEREGO = "superego"       # screening evaluator
    BASE = "base"               # user-facing response model


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SUPEREGO = "superego"


class Role(str, Enum):
    """Provider-agnostic turn roles, before provider folding."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Decision(str, Enum):
    ANALYZING = "ANALYZING"     # transient, only while a stream is open
    ANALYZED = "ANALYZED"
    ERROR = "ERROR"


class DeltaKind(str, Enum):
    CONTENT = "content"                     # visible answer text
    THINKING = "thinking"                   # plain reasoning text
    THINKING_REDACTED = "thinking-redacted" # opaque ciphertext, echoed verbatim
    DONE = "done"                           # explicit terminal signal


# ─────────────────────────────────────────────────────────────────────────────
# Conversation message
# ─────────────────────────────────────────────────────────────────────────────


def new_message_id() -> str:
    return uuid.uuid4().hex[:16]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class Message(BaseModel):
    """
    A single message in a conversation.

    Serialises with camelCase aliases (constitutionId, thinkingTime, ...) so
    stored conversations from the browser client load unchanged.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_message_id)
    role: MessageRole
    content: str = ""
    timestamp: str = Field(default_factory=utc_timestamp)
    decision: Optional[Decision] = None
    constitution_id: Optional[str] = None
    thinking: Optional[str] = None
    thinking_time: Optional[str] = None     # estimated reasoning tokens, not seconds
    redacted_thinking: list[str] = Field(default_factory=list)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content)

    @classmethod
    def superego(cls, content: str, constitution_id: str, decision: Decision) -> "Message":
        return cls(
            role=MessageRole.SUPEREGO,
            content=content,
            constitution_id=constitution_id,
            decision=decision,
        )

    @property
    def has_thinking(self) -> bool:
        return bool(self.thinking)


# ─────────────────────────────────────────────────────────────────────────────
# Normalized turns
# ─────────────────────────────────────────────────────────────────────────────


class NormalizedTurn(BaseModel):
    """Provider-agnostic turn produced by the context assembler."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    redacted_thinking: tuple[str, ...] = ()     # assistant turns only

    @classmethod
    def system(cls, content: str) -> "NormalizedTurn":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "NormalizedTurn":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, redacted_thinking: tuple[str, ...] = ()) -> "NormalizedTurn":
        return cls(role=Role.ASSISTANT, content=content, redacted_thinking=redacted_thinking)


# ─────────────────────────────────────────────────────────────────────────────
# Stream deltas
# ─────────────────────────────────────────────────────────────────────────────


class StreamDelta(BaseModel):
    """
    Canonical delta decoded from a provider stream frame.

    For THINKING_REDACTED, `text` holds the opaque ciphertext exactly as sent
    by the provider. For DONE, `stop_reason` is whatever the provider reported
    (None when the stream simply ended).
    """
    model_config = ConfigDict(frozen=True)

    kind: DeltaKind
    text: str = ""
    stop_reason: Optional[str] = None

    @classmethod
    def content(cls, text: str) -> "StreamDelta":
        return cls(kind=DeltaKind.CONTENT, text=text)

    @classmethod
    def thinking(cls, text: str) -> "StreamDelta":
        return cls(kind=DeltaKind.THINKING, text=text)

    @classmethod
    def redacted(cls, data: str) -> "StreamDelta":
        return cls(kind=DeltaKind.THINKING_REDACTED, text=data)

    @classmethod
    def done(cls, stop_reason: Optional[str] = None) -> "StreamDelta":
        return cls(kind=DeltaKind.DONE, stop_reason=stop_reason)

    @property
    def is_terminal(self) -> bool:
        return self.kind == DeltaKind.DONE


# ─────────────────────────────────────────────────────────────────────────────
# Request options
# ─────────────────────────────────────────────────────────────────────────────

SUPEREGO_MAX_TOKENS = 1000
BASE_MAX_TOKENS = 4000
MIN_THINKING_BUDGET = 1024


def response_token_cap(thinking_budget: int) -> int:
    """Response cap for an extended-reasoning call: the budget must fit strictly inside."""
    return max(1000, thinking_budget + 1000)


class RequestOptions(BaseModel):
    """Per-request options handed to an adapter's build_request()."""
    max_tokens: int = BASE_MAX_TOKENS
    thinking_budget: Optional[int] = None   # None = no extended reasoning
    timeout_seconds: float = 60.0

    @property
    def effective_max_tokens(self) -> int:
        if self.thinking_budget:
            return response_token_cap(self.thinking_budget)
        return self.max_tokens
