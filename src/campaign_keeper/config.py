"""Configuration loading and strict validation for Campaign Keeper."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


class StrictModel(BaseModel):
    """Base model that rejects unknown keys."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class StorageConfig(StrictModel):
    state_path: str = "data/state.json"
    usage_path: str = "data/usage.json"


class BudgetConfig(StrictModel):
    monthly_token_limit: int = Field(default=200_000, gt=0)
    warn_threshold: float = 0.9

    @field_validator("warn_threshold")
    @classmethod
    def _threshold_in_range(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("warn_threshold must be in (0, 1]")
        return value


class LLMConfig(StrictModel):
    api_base: str = "https://api.openai.com/v1"
    model: str = "gpt-4.1"
    temperature: float = 0.7
    timeout_seconds: float = 60.0
    api_key_env: str = "OPENAI_API_KEY"


class ServerConfig(StrictModel):
    host: str = "0.0.0.0"
    port: int = 4000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class LoggingConfig(StrictModel):
    logs_dir: str = "logs"
    event_file_name: str = "events.jsonl"
    recent_event_limit: int = 500


class AppConfig(StrictModel):
    storage: StorageConfig = Field(default_factory=StorageConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# env var -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "MONTHLY_TOKEN_LIMIT": ("budget", "monthly_token_limit"),
    "WARNING_THRESHOLD": ("budget", "warn_threshold"),
    "MODEL": ("llm", "model"),
    "PORT": ("server", "port"),
}


def apply_env_overrides(config: AppConfig, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Overlay the supported environment variables onto a loaded config."""
    env = os.environ if environ is None else environ
    for var, (section, name) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw.strip() == "":
            continue
        # validate_assignment coerces "150000" -> 150000 and enforces bounds
        setattr(getattr(config, section), name, raw.strip())
    return config


def load_config(config_path: str | Path = "config/config.yaml", *, use_env: bool = True) -> AppConfig:
    """Load and strictly validate YAML config. A missing file yields defaults."""
    path = Path(config_path)
    raw: dict[str, Any] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    config = AppConfig.model_validate(raw)
    if use_env:
        apply_env_overrides(config)
    return config


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load default config once and cache it."""
    return load_config()
