"""
brain/folding.py — Provider Turn Folding

Pure reducers over NormalizedTurn lists. No network, no SDK imports — the
adapters call these from build_request() and the tests drive them directly.

Anthropic (strict):
  - first turn must be `user`  → prepend a neutral filler if not
  - roles must alternate       → merge same-role neighbours with a blank line
  - no native `system` turns   → append to the previous user turn, or open one

OpenRouter (loose):
  - identity, except unknown roles fall back to `user`
"""

from __future__ import annotations

from functools import reduce

from superego.brain.types import NormalizedTurn, Role

FILLER_TEXT = "Hello"
MERGE_SEPARATOR = "\n\n"


def _merge(previous: NormalizedTurn, content: str, redacted: tuple[str, ...] = ()) -> NormalizedTurn:
    return NormalizedTurn(
        role=previous.role,
        content=previous.content + MERGE_SEPARATOR + content,
        redacted_thinking=previous.redacted_thinking + redacted,
    )


def _fold_step(folded: tuple[NormalizedTurn, ...], turn: NormalizedTurn) -> tuple[NormalizedTurn, ...]:
    # system turns are not native: they ride on a user turn
    role = Role.USER if turn.role == Role.SYSTEM else turn.role
    if folded and folded[-1].role == role:
        return folded[:-1] + (_merge(folded[-1], turn.content, turn.redacted_thinking),)
    return folded + (NormalizedTurn(role=role, content=turn.content,
                                    redacted_thinking=turn.redacted_thinking),)


def fold_alternating(turns: list[NormalizedTurn]) -> list[NormalizedTurn]:
    """
    Fold turns into a strictly alternating user/assistant sequence starting
    with `user`. Idempotent on sequences that are already legal.
    """
    if not turns:
        return []
    seed: tuple[NormalizedTurn, ...] = ()
    if turns[0].role != Role.USER:
        seed = (NormalizedTurn.user(FILLER_TEXT),)
    return list(reduce(_fold_step, turns, seed))


def fold_native(turns: list[NormalizedTurn]) -> list[NormalizedTurn]:
    """OpenRouter accepts system/user/assistant as-is; role mapping happens at serialisation."""
    return list(turns)


def is_alternating(turns: list[NormalizedTurn]) -> bool:
    """True when turns start with user and never repeat a role back to back."""
    if not turns or turns[0].role != Role.USER:
        return not turns
    if any(t.role == Role.SYSTEM for t in turns):
        return False
    return all(a.role != b.role for a, b in zip(turns, turns[1:]))
