"""
Centralized settings for the suggestion pipeline.

Manifesto:
    Intervals, thresholds and file paths are read once, validated, and
    cached.  ``MarginaliaSettings`` is the single place where the
    ``MARGINALIA_*`` environment variables (and ``.env`` files) are parsed.

Examples:
    >>> from marginalia.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.analysis_interval_ms
    30000

Tags:
    marginalia-core, configuration, settings, pydantic, caching

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import pydantic
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from marginalia.core.errors import ConfigError

LogLevelName = Literal["debug", "info", "warn", "error"]


class MarginaliaSettings(BaseSettings):
    """Pipeline configuration.

    All fields can be set via ``MARGINALIA_*`` environment variables (e.g.
    ``MARGINALIA_ANALYSIS_INTERVAL_MS=10000``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="MARGINALIA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Scheduler ────────────────────────────────────────────────
    analysis_interval_ms: int = Field(default=30_000, gt=0)
    analysis_enabled: bool = Field(default=True)

    # ── Event collector ──────────────────────────────────────────
    collector_enabled: bool = Field(default=True)
    collector_buffer_size: int = Field(default=50, gt=0)
    collector_flush_interval_ms: int = Field(default=1_000, gt=0)
    collector_log_level: LogLevelName = Field(default="debug")

    # ── Behavior sink ────────────────────────────────────────────
    behavior_max_events: int = Field(default=50, gt=0)

    # ── Suggestions ──────────────────────────────────────────────
    stats_path: Path = Field(
        default_factory=lambda: Path.home() / ".marginalia" / "suggestion_stats.json",
        description="Where the suggestion counters survive restarts",
    )
    next_suggestion_delay_ms: int = Field(default=1_000, ge=0)

    # ── LLM analysis ─────────────────────────────────────────────
    llm_api_key: str | None = Field(default=None)
    llm_base_url: str = Field(default="https://openrouter.ai/api/v1")
    llm_model: str = Field(default="openai/gpt-4o-mini")
    llm_timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError(f"unsupported log level: {value}")
        return value

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_api_key)


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, MarginaliaSettings] = {}


def get_settings(*, env_file: Path | None = None, _force_reload: bool = False) -> MarginaliaSettings:
    """Load, validate, and cache a :class:`MarginaliaSettings` instance.

    Parameters
    ----------
    env_file:
        Explicit ``.env`` file; defaults to ``.env`` in the working directory.
    _force_reload:
        Bypass cache and reload.

    Raises
    ------
    ConfigError
        If an environment variable or ``.env`` entry fails validation.
    """
    cache_key = str(env_file or "")
    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    try:
        if env_file is not None:
            settings = MarginaliaSettings(_env_file=env_file)  # type: ignore[call-arg]
        else:
            settings = MarginaliaSettings()
    except pydantic.ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        raise ConfigError(f"Invalid settings: {fields}", cause=exc) from exc

    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["MarginaliaSettings", "LogLevelName", "get_settings", "clear_settings_cache"]
