"""
config/settings.py — Superego Runtime Settings

Two layers:

  ChatConfig — the immutable per-call configuration record handed to every
               orchestrator call (provider choice, keys, model ids,
               constitution, thinking budget, context limit). The
               orchestrator reads it and never keeps it.

  Settings   — process-level settings. Merges config.yaml (structure and
               defaults) with .env / environment variables (secrets).
               Settings.to_chat_config() snapshots a ChatConfig.

Pydantic-powered — all fields are validated and typed.
validate_all() performs cross-field validation and raises ConfigError with a
clear, human-readable message listing every problem found.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from superego.brain.types import MIN_THINKING_BUDGET, Provider, Stage
from superego.exceptions import ConfigError

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

_DEFAULT_ANTHROPIC_MODEL = "claude-3-7-sonnet-20250219"
_DEFAULT_OPENROUTER_MODEL = "anthropic/claude-3.7-sonnet"


def _check_thinking_budget(v: int) -> int:
    if v < MIN_THINKING_BUDGET:
        raise ValueError(f"thinking_token_budget must be >= {MIN_THINKING_BUDGET}, got {v}")
    return v


def _check_context_limit(v: Optional[int]) -> Optional[int]:
    if v is not None and v < 0:
        raise ValueError("context_message_limit must be >= 0 (or null for no limit)")
    return v


# ─────────────────────────────────────────────────────────────────────────────
# Per-call config
# ─────────────────────────────────────────────────────────────────────────────


class ChatConfig(BaseModel):
    """
    Read-only configuration for one evaluate / respond call.

    Build a fresh one per call (or reuse a snapshot); it is frozen so a call
    in flight can never observe a change.
    """
    model_config = ConfigDict(frozen=True)

    default_provider: Provider = Provider.OPENROUTER
    anthropic_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    anthropic_superego_model: str = _DEFAULT_ANTHROPIC_MODEL
    anthropic_base_model: str = _DEFAULT_ANTHROPIC_MODEL
    openrouter_superego_model: str = _DEFAULT_OPENROUTER_MODEL
    openrouter_base_model: str = _DEFAULT_OPENROUTER_MODEL
    constitution_id: str = "default"
    system_prompt_id: Optional[str] = None
    thinking_token_budget: int = 4000
    context_message_limit: Optional[int] = None
    save_history: bool = True
    request_timeout_seconds: float = 60.0

    @field_validator("thinking_token_budget")
    @classmethod
    def _valid_budget(cls, v: int) -> int:
        return _check_thinking_budget(v)

    @field_validator("context_message_limit")
    @classmethod
    def _valid_limit(cls, v: Optional[int]) -> Optional[int]:
        return _check_context_limit(v)

    def api_key_for(self, provider: Provider) -> Optional[str]:
        if provider == Provider.ANTHROPIC:
            return self.anthropic_api_key
        return self.openrouter_api_key

    def model_for(self, provider: Provider, stage: Stage) -> str:
        models = {
            (Provider.ANTHROPIC, Stage.SUPEREGO): self.anthropic_superego_model,
            (Provider.ANTHROPIC, Stage.BASE): self.anthropic_base_model,
            (Provider.OPENROUTER, Stage.SUPEREGO): self.openrouter_superego_model,
            (Provider.OPENROUTER, Stage.BASE): self.openrouter_base_model,
        }
        return models[(provider, stage)]

    def with_constitution(self, constitution_id: str) -> "ChatConfig":
        """Copy with a different constitution (re-evaluation flow)."""
        return self.model_copy(update={"constitution_id": constitution_id})

    def redacted(self) -> dict[str, Any]:
        """Dump for logging, with keys masked."""
        data = self.model_dump(mode="json")
        for key in ("anthropic_api_key", "openrouter_api_key"):
            data[key] = "***" if data.get(key) else ""
        return data


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────


class ProviderModelsConfig(BaseModel):
    superego_model: str
    base_model: str


class LLMConfig(BaseModel):
    default_provider: str = "openrouter"
    anthropic: ProviderModelsConfig = Field(
        default_factory=lambda: ProviderModelsConfig(
            superego_model=_DEFAULT_ANTHROPIC_MODEL, base_model=_DEFAULT_ANTHROPIC_MODEL
        )
    )
    openrouter: ProviderModelsConfig = Field(
        default_factory=lambda: ProviderModelsConfig(
            superego_model=_DEFAULT_OPENROUTER_MODEL, base_model=_DEFAULT_OPENROUTER_MODEL
        )
    )
    thinking_token_budget: int = 4000
    context_message_limit: Optional[int] = None
    timeout_seconds: float = 60.0

    @field_validator("default_provider")
    @classmethod
    def _known_provider(cls, v: str) -> str:
        known = {p.value for p in Provider}
        v = v.lower().strip()
        if v not in known:
            raise ValueError(
                f"llm.default_provider '{v}' is not supported. "
                f"Supported: {sorted(known)}"
            )
        return v

    @field_validator("thinking_token_budget")
    @classmethod
    def _valid_budget(cls, v: int) -> int:
        return _check_thinking_budget(v)

    @field_validator("context_message_limit")
    @classmethod
    def _valid_limit(cls, v: Optional[int]) -> Optional[int]:
        return _check_context_limit(v)

    @field_validator("timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("llm.timeout_seconds must be > 0")
        return v


class PromptsConfig(BaseModel):
    constitution_id: str = "default"
    system_prompt_id: Optional[str] = None
    prompts_file: Optional[str] = None      # user prompts.json layered over the bundled one


class HistoryConfig(BaseModel):
    save: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Superego runtime settings.

    Priority (highest to lowest):
      1. Environment variables
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # -- Secrets from .env ---------------------------------------------------
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    openrouter_api_key: Optional[str] = Field(default=None, alias="OPENROUTER_API_KEY")

    # -- Structured config (from config.yaml) --------------------------------
    llm: LLMConfig = Field(default_factory=LLMConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("llm", mode="before")
    @classmethod
    def _coerce_llm(cls, v: Any) -> Any:
        return LLMConfig(**v) if isinstance(v, dict) else v

    @field_validator("prompts", mode="before")
    @classmethod
    def _coerce_prompts(cls, v: Any) -> Any:
        return PromptsConfig(**v) if isinstance(v, dict) else v

    @field_validator("history", mode="before")
    @classmethod
    def _coerce_history(cls, v: Any) -> Any:
        return HistoryConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def default_provider(self) -> Provider:
        return Provider(self.llm.default_provider)

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    def to_chat_config(self) -> ChatConfig:
        """Snapshot the current settings into an immutable per-call ChatConfig."""
        return ChatConfig(
            default_provider=self.default_provider,
            anthropic_api_key=self.anthropic_api_key,
            openrouter_api_key=self.openrouter_api_key,
            anthropic_superego_model=self.llm.anthropic.superego_model,
            anthropic_base_model=self.llm.anthropic.base_model,
            openrouter_superego_model=self.llm.openrouter.superego_model,
            openrouter_base_model=self.llm.openrouter.base_model,
            constitution_id=self.prompts.constitution_id,
            system_prompt_id=self.prompts.system_prompt_id,
            thinking_token_budget=self.llm.thinking_token_budget,
            context_message_limit=self.llm.context_message_limit,
            save_history=self.history.save,
            request_timeout_seconds=self.llm.timeout_seconds,
        )

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        catches cross-field problems Pydantic can't see (API key presence for
        the chosen provider, empty model ids, a prompts file that isn't there).
        """
        errors: list[str] = []

        key_map = {
            Provider.ANTHROPIC:  ("ANTHROPIC_API_KEY",  self.anthropic_api_key),
            Provider.OPENROUTER: ("OPENROUTER_API_KEY", self.openrouter_api_key),
        }
        provider = self.default_provider
        env_name, value = key_map[provider]
        if not value:
            errors.append(
                f"LLM provider '{provider.value}' requires {env_name} to be set "
                f"in your .env file."
            )

        models = getattr(self.llm, provider.value)
        for stage, model in (("superego_model", models.superego_model),
                             ("base_model", models.base_model)):
            if not model.strip():
                errors.append(f"llm.{provider.value}.{stage} must not be empty.")

        if not self.prompts.constitution_id.strip():
            errors.append("prompts.constitution_id must not be empty.")

        pf = self.prompts.prompts_file
        if pf and not Path(pf).expanduser().is_file():
            errors.append(f"prompts.prompts_file '{pf}' does not exist.")

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nSuperego startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = threading.Lock()

_KNOWN_SECTIONS = {"llm", "prompts", "history", "logging"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument
      2. SUPEREGO_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("SUPEREGO_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def _build_settings(config_path: str | Path | None) -> Settings:
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    return Settings(**{k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS})


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    global _singleton
    instance = _build_settings(config_path)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading from the default config
    path on first use. Guarded by a lock against double initialisation.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            _singleton = _build_settings(None)
    return _singleton
