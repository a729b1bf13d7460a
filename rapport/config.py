"""Typed configuration loaded from ``config.json``.

Provider choices used to be stored as free-form strings ("apple", "local",
"openrouter", "openai", "claude").  They are normalized into enums here, once,
when the file is read; nothing downstream sees the legacy spellings.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional

_logger = logging.getLogger("rapport.config")

DEFAULT_CLOUD_API_KEY_ENV = "RAPPORT_CLOUD_API_KEY"


class ConfigError(ValueError):
    pass


class PrimaryProvider(str, Enum):
    ON_DEVICE = "on_device"
    CLOUD = "cloud"


class FallbackProvider(str, Enum):
    CLOUD = "cloud"
    NONE = "none"


_PRIMARY_ALIASES = {
    "on_device": PrimaryProvider.ON_DEVICE,
    "apple": PrimaryProvider.ON_DEVICE,
    "local": PrimaryProvider.ON_DEVICE,
    "ollama": PrimaryProvider.ON_DEVICE,
    "cloud": PrimaryProvider.CLOUD,
    "openrouter": PrimaryProvider.CLOUD,
    "openai": PrimaryProvider.CLOUD,
    "claude": PrimaryProvider.CLOUD,
}

_FALLBACK_ALIASES = {
    "cloud": FallbackProvider.CLOUD,
    "openrouter": FallbackProvider.CLOUD,
    "openai": FallbackProvider.CLOUD,
    "claude": FallbackProvider.CLOUD,
    "none": FallbackProvider.NONE,
    "": FallbackProvider.NONE,
}


def normalize_primary(value: Optional[str]) -> PrimaryProvider:
    if value is None:
        return PrimaryProvider.ON_DEVICE
    normalized = _PRIMARY_ALIASES.get(str(value).strip().lower())
    if normalized is None:
        _logger.warning("Unknown primary provider '%s'; using on_device", value)
        return PrimaryProvider.ON_DEVICE
    return normalized


def normalize_fallback(value: Optional[str]) -> FallbackProvider:
    if value is None:
        return FallbackProvider.CLOUD
    normalized = _FALLBACK_ALIASES.get(str(value).strip().lower())
    if normalized is None:
        _logger.warning("Unknown fallback provider '%s'; using none", value)
        return FallbackProvider.NONE
    return normalized


@dataclass
class AIConfig:
    primary: PrimaryProvider = PrimaryProvider.ON_DEVICE
    fallback: FallbackProvider = FallbackProvider.CLOUD
    on_device_base_url: str = "http://127.0.0.1:11434"
    on_device_model: str = "llama3.2"
    cloud_base_url: str = "https://openrouter.ai/api"
    cloud_model: str = "openai/gpt-4o-mini"
    cloud_api_key_env: str = DEFAULT_CLOUD_API_KEY_ENV
    custom_summary_prompt: Optional[str] = None
    custom_brief_prompt: Optional[str] = None

    @property
    def cloud_api_key(self) -> str:
        return os.environ.get(self.cloud_api_key_env, "").strip()


@dataclass
class PipelineConfig:
    chunk_threshold: int = 150_000
    chunk_overlap: int = 10_000
    chunk_delay_seconds: float = 0.5
    match_threshold: float = 0.7


@dataclass
class CacheConfig:
    brief_ttl_seconds: float = 3600.0


@dataclass
class LoggingConfig:
    # console threshold; the rotating file always records DEBUG
    level: str = "INFO"
    file_max_bytes: int = 5_000_000
    file_backup_count: int = 3


@dataclass
class UserIdentity:
    """The person running the app; never reported as a meeting participant."""

    name: str = ""
    email: str = ""

    def is_current_user(self, candidate: str) -> bool:
        candidate = candidate.strip()
        if not candidate:
            return False
        lowered = candidate.lower()
        if self.email and self.email.lower() in lowered:
            return True
        if self.name:
            if lowered == self.name.strip().lower():
                return True
            parts = [part.lower() for part in self.name.split()]
            if parts and all(part in lowered for part in parts):
                return True
        return False


@dataclass
class Config:
    ai: AIConfig = field(default_factory=AIConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    user: UserIdentity = field(default_factory=UserIdentity)


def _section(data: dict, key: str) -> dict:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{key}' must be an object")
    return value


def config_from_dict(data: dict) -> Config:
    ai_data = dict(_section(data, "ai"))
    pipeline_data = _section(data, "pipeline")
    cache_data = _section(data, "cache")
    logging_data = _section(data, "logging")
    user_data = _section(data, "user")

    primary = normalize_primary(ai_data.pop("primary", None))
    fallback = normalize_fallback(ai_data.pop("fallback", None))
    try:
        ai = AIConfig(primary=primary, fallback=fallback, **ai_data)
        pipeline = PipelineConfig(**pipeline_data)
        cache = CacheConfig(**cache_data)
        log_settings = LoggingConfig(**logging_data)
        user = UserIdentity(**user_data)
    except TypeError as exc:
        raise ConfigError(f"Unrecognized config option: {exc}") from exc

    if pipeline.chunk_overlap >= pipeline.chunk_threshold:
        raise ConfigError("pipeline.chunk_overlap must be smaller than chunk_threshold")
    if cache.brief_ttl_seconds <= 0:
        raise ConfigError("cache.brief_ttl_seconds must be positive")
    if not isinstance(logging.getLevelName(str(log_settings.level).upper()), int):
        raise ConfigError(f"Unknown logging level '{log_settings.level}'")
    if log_settings.file_max_bytes <= 0 or log_settings.file_backup_count < 0:
        raise ConfigError("logging file rotation sizes must be positive")
    return Config(ai=ai, pipeline=pipeline, cache=cache, logging=log_settings, user=user)


def config_to_dict(config: Config) -> dict:
    ai = asdict(config.ai)
    ai["primary"] = config.ai.primary.value
    ai["fallback"] = config.ai.fallback.value
    return {
        "ai": ai,
        "pipeline": asdict(config.pipeline),
        "cache": asdict(config.cache),
        "logging": asdict(config.logging),
        "user": asdict(config.user),
    }


def load_config(path: str) -> Config:
    """Read ``path``; a missing file yields defaults."""
    if not os.path.exists(path):
        _logger.info("No config at %s; using defaults", path)
        return Config()
    try:
        with open(path, "r", encoding="utf-8") as config_file:
            data = json.load(config_file) or {}
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    config = config_from_dict(data)
    _logger.info(
        "Config loaded: primary=%s fallback=%s",
        config.ai.primary.value,
        config.ai.fallback.value,
    )
    return config


def save_config(path: str, config: Config) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    temp_path = f"{path}.tmp"
    with open(temp_path, "w", encoding="utf-8") as config_file:
        json.dump(config_to_dict(config), config_file, indent=2)
    os.replace(temp_path, path)
