"""
superego — two-stage screening pipeline for LLM conversations.

A "superego" model evaluates each user input against a constitution before
the base model answers it. Anthropic and OpenRouter are supported as
streaming providers.

Public API:
    from superego import Orchestrator, ChatConfig, Message, Decision
"""

from superego.agent import Orchestrator, PromptLibrary
from superego.brain.types import Decision, Message, MessageRole, Provider
from superego.config.settings import ChatConfig, Settings, get_settings, load_settings

__version__ = "0.1.0"

__all__ = [
    "Orchestrator",
    "PromptLibrary",
    "ChatConfig",
    "Settings",
    "get_settings",
    "load_settings",
    "Message",
    "MessageRole",
    "Decision",
    "Provider",
]
