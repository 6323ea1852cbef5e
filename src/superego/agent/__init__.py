"""
agent/ — Superego Pipeline Core

Public API:
    from superego.agent import Orchestrator, PromptLibrary

Component overview:
    PromptLibrary   Resolves constitutions and system prompts by id
    assemble        Windows history and projects it to NormalizedTurns
    diagnostics     Troubleshooting text for failed or empty streams
    Orchestrator    evaluate → respond → compare, with cancellation
"""

from superego.agent.context_builder import ContextMode, assemble
from superego.agent.orchestrator import (
    ComparisonResult,
    Orchestrator,
    ResponseResult,
    StreamAccumulator,
    estimate_thinking_tokens,
)
from superego.agent.prompts import Prompt, PromptKind, PromptLibrary

__all__ = [
    "Orchestrator",
    "ResponseResult",
    "ComparisonResult",
    "StreamAccumulator",
    "estimate_thinking_tokens",
    "ContextMode",
    "assemble",
    "PromptLibrary",
    "Prompt",
    "PromptKind",
]
