"""
agent/prompts.py — Constitution & System Prompt Resolver

Resolves screening constitutions (superego system prompts) and assistant
system prompts by id from layered sources, highest priority first:

    1. custom prompts registered at runtime (add_custom)
    2. a user prompts file (JSON, same shape as the bundled one)
    3. the bundled superego/data/prompts.json

Prompts file shape:
    {"prompts": [{"id": ..., "name": ..., "content": ...}],
     "system_prompts": [{"id": ..., "name": ..., "content": ...}]}

Lookup is synchronous file I/O — a missing id raises ExternalLookupError
before any network call is attempted.
"""

from __future__ import annotations

import json
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from superego.brain.types import utc_timestamp
from superego.exceptions import ExternalLookupError
from superego.observability.logger import get_logger

log = get_logger(__name__)


class PromptKind(str, Enum):
    CONSTITUTION = "constitution"
    SYSTEM_PROMPT = "system_prompt"


# JSON section holding each kind
_SECTIONS = {
    PromptKind.CONSTITUTION: "prompts",
    PromptKind.SYSTEM_PROMPT: "system_prompts",
}


class Prompt(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    content: str
    is_built_in: bool = False
    last_updated: str = Field(default_factory=utc_timestamp)


def _parse_prompts(raw: dict, kind: PromptKind, built_in: bool, source: str) -> dict[str, Prompt]:
    result: dict[str, Prompt] = {}
    for entry in raw.get(_SECTIONS[kind], []) or []:
        try:
            prompt = Prompt.model_validate({**entry, "isBuiltIn": built_in})
        except (ValidationError, TypeError) as e:
            log.warning("prompts.entry_invalid", source=source, kind=kind.value, error=str(e))
            continue
        result[prompt.id] = prompt
    return result


class PromptLibrary:
    """Layered prompt lookup. One instance can serve many conversations."""

    def __init__(
        self,
        prompts_file: Optional[str | Path] = None,
        custom: Optional[Iterable[Prompt]] = None,
        include_bundled: bool = True,
    ):
        self._prompts_file = Path(prompts_file).expanduser() if prompts_file else None
        self._include_bundled = include_bundled
        self._custom: dict[PromptKind, dict[str, Prompt]] = {k: {} for k in PromptKind}
        for prompt in custom or []:
            self.add_custom(prompt)
        self._file_cache: Optional[dict] = None
        self._bundled_cache: Optional[dict] = None

    @classmethod
    def from_settings(cls, settings) -> "PromptLibrary":
        return cls(prompts_file=settings.prompts.prompts_file)

    # ── Lookup ────────────────────────────────────────────────────────────────

    def get_constitution(self, constitution_id: str) -> str:
        return self.resolve(constitution_id, PromptKind.CONSTITUTION).content

    def get_system_prompt(self, prompt_id: str) -> str:
        return self.resolve(prompt_id, PromptKind.SYSTEM_PROMPT).content

    def resolve(self, prompt_id: str, kind: PromptKind = PromptKind.CONSTITUTION) -> Prompt:
        for source, prompts in self._layers(kind):
            prompt = prompts.get(prompt_id)
            if prompt is not None:
                log.debug("prompts.resolved", kind=kind.value, id=prompt_id, source=source)
                return prompt
        log.error("prompts.not_found", kind=kind.value, id=prompt_id)
        raise ExternalLookupError(prompt_id, kind=kind.value.replace("_", " "))

    def list_prompts(self, kind: PromptKind = PromptKind.CONSTITUTION) -> list[Prompt]:
        """Merged view; a higher layer hides a lower one with the same id."""
        merged: dict[str, Prompt] = {}
        for _, prompts in reversed(self._layers(kind)):
            merged.update(prompts)
        return list(merged.values())

    def list_constitutions(self) -> list[Prompt]:
        return self.list_prompts(PromptKind.CONSTITUTION)

    # ── Custom prompts ────────────────────────────────────────────────────────

    def add_custom(self, prompt: Prompt, kind: PromptKind = PromptKind.CONSTITUTION) -> None:
        self._custom[kind][prompt.id] = prompt.model_copy(
            update={"is_built_in": False, "last_updated": utc_timestamp()}
        )

    def remove_custom(self, prompt_id: str, kind: PromptKind = PromptKind.CONSTITUTION) -> bool:
        return self._custom[kind].pop(prompt_id, None) is not None

    # ── Sources ───────────────────────────────────────────────────────────────

    def _layers(self, kind: PromptKind) -> list[tuple[str, dict[str, Prompt]]]:
        layers = [("custom", self._custom[kind])]
        if self._prompts_file is not None:
            layers.append(("file", _parse_prompts(self._load_file(), kind, False, "file")))
        if self._include_bundled:
            layers.append(("bundled", _parse_prompts(self._load_bundled(), kind, True, "bundled")))
        return layers

    def _load_file(self) -> dict:
        if self._file_cache is None:
            self._file_cache = _read_json(self._prompts_file, "file")
        return self._file_cache

    def _load_bundled(self) -> dict:
        if self._bundled_cache is None:
            bundled = resources.files("superego").joinpath("data/prompts.json")
            self._bundled_cache = _read_json(bundled, "bundled")
        return self._bundled_cache

    def reload(self) -> None:
        """Drop cached file contents so the next lookup re-reads them."""
        self._file_cache = None
        self._bundled_cache = None


def _read_json(path, source: str) -> dict:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        log.warning("prompts.file_missing", source=source, path=str(path))
        return {}
    except (OSError, json.JSONDecodeError) as e:
        log.error("prompts.file_unreadable", source=source, path=str(path), error=str(e))
        return {}
    if not isinstance(data, dict):
        log.error("prompts.file_malformed", source=source, path=str(path))
        return {}
    return data
