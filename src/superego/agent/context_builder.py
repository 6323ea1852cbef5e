"""
agent/context_builder.py — Context Assembler

Turns a conversation history into a provider-agnostic NormalizedTurn list:

    window (suffix of the last N messages)
      → role projection (per mode)
      → trailing-input guarantee (new input appended once, never twice)

Modes:
    SUPEREGO    evaluator context. Prior user/assistant turns are context;
                superego turns are dropped; the new input is framed as
                "Evaluate this user input: ...".
    BASE        response context, with superego turns projected to tagged
                system turns right where the evaluation sat.
    COMPARISON  response context without any superego turns.

Provider-specific folding (alternation, filler turns) happens later in the
adapters — see brain/folding.py.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from superego.brain.types import Message, MessageRole, NormalizedTurn, Role
from superego.observability.logger import get_logger

log = get_logger(__name__)

EVALUATION_PREFIX = "Evaluate this user input: "
SUPEREGO_EVALUATION_TAG = "[SUPEREGO EVALUATION]: "
SUPEREGO_THINKING_TAG = "[SUPEREGO THINKING]: "


class ContextMode(str, Enum):
    SUPEREGO = "superego"
    BASE = "base"
    COMPARISON = "comparison"


def window_history(history: list[Message], limit: Optional[int]) -> list[Message]:
    """Keep the most recent `limit` messages. None / non-positive = keep all."""
    if limit is None or limit <= 0 or len(history) <= limit:
        return list(history)
    return list(history[-limit:])


def project_message(message: Message, mode: ContextMode) -> list[NormalizedTurn]:
    """Project one stored message to zero, one or two normalized turns."""
    if message.role == MessageRole.USER:
        return [NormalizedTurn.user(message.content)]

    if message.role == MessageRole.ASSISTANT:
        return [NormalizedTurn.assistant(message.content, tuple(message.redacted_thinking))]

    # superego
    if mode != ContextMode.BASE:
        return []
    turns = [NormalizedTurn.system(SUPEREGO_EVALUATION_TAG + message.content)]
    if message.thinking:
        turns.append(NormalizedTurn.system(SUPEREGO_THINKING_TAG + message.thinking))
    return turns


def frame_input(user_input: str, mode: ContextMode) -> str:
    if mode == ContextMode.SUPEREGO:
        return EVALUATION_PREFIX + user_input
    return user_input


def assemble(
    history: list[Message],
    user_input: str,
    mode: ContextMode,
    limit: Optional[int] = None,
) -> list[NormalizedTurn]:
    """
    Build the normalized turn list for one model call.

    The result keeps the history's order and never holds more than
    min(len(history), limit) projected messages plus the trailing input
    turn. A superego message with thinking projects to two system turns in
    BASE mode, so there the turn count can exceed len(history) + 1.
    """
    windowed = window_history(history, limit)

    turns: list[NormalizedTurn] = []
    for message in windowed:
        turns.extend(project_message(message, mode))

    # The evaluator reads the raw input through the framing prompt; a history
    # that already ends with that raw input would otherwise show it twice.
    if mode == ContextMode.SUPEREGO and turns and _is_user_turn(turns[-1], user_input):
        turns.pop()

    # Superego projections sit after the user turn they evaluated.
    framed = frame_input(user_input, mode)
    last = _last_conversation_turn(turns)
    if not (last is not None and _is_user_turn(last, framed)):
        turns.append(NormalizedTurn.user(framed))

    log.debug(
        "context_builder.built",
        mode=mode.value,
        history=len(history),
        windowed=len(windowed),
        turns=len(turns),
    )
    return turns


def _is_user_turn(turn: NormalizedTurn, content: str) -> bool:
    return turn.role == Role.USER and turn.content == content


def _last_conversation_turn(turns: list[NormalizedTurn]) -> Optional[NormalizedTurn]:
    for turn in reversed(turns):
        if turn.role != Role.SYSTEM:
            return turn
    return None
