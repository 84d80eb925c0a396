"""Settings management using Pydantic for type validation and configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Minimum free-slot durations offered by the planning view
ALLOWED_SLOT_MINUTES = (30, 45, 60, 90)

ENV_PREFIX = "AGENDA_"
CONFIG_FILE_ENV = "AGENDA_CONFIG_FILE"


def default_config_file() -> Path:
    return Path.home() / ".config" / "agenda-engine" / "config.yaml"


class AgendaSettings(BaseSettings):
    """Engine settings with environment variable and YAML support.

    Precedence: explicit keyword arguments, then ``AGENDA_*`` environment
    variables (and ``.env``), then the YAML file, then defaults.
    """

    # Recurrence
    recurrence_iteration_cap: int = Field(
        default=400, ge=1, description="Maximum expansion steps per recurring definition"
    )
    default_event_minutes: int = Field(
        default=60, ge=1, description="Duration used when a timed task has no usable end"
    )

    # Conflicts and density
    conflict_score_cap: int = Field(default=9, ge=1, description="Display cap for conflict scores")
    compact_density_threshold: int = Field(
        default=8, ge=1, description="Conflicting-event count that switches to compact rendering"
    )

    # Availability
    working_day_start_hour: int = Field(default=8, ge=0, le=23, description="Working window start")
    working_day_end_hour: int = Field(default=20, ge=1, le=24, description="Working window end")
    min_slot_minutes: int = Field(default=60, description="Minimum free-slot duration")
    max_slots_per_day: int = Field(default=3, ge=1, description="Free slots returned per day")

    # Visible range
    default_range_days: int = Field(
        default=45, ge=1, description="Days before/after now when no visible range is known"
    )

    # External provider
    external_events_url: Optional[str] = Field(
        default=None, description="JSON endpoint serving external calendar events"
    )
    external_fetch_timeout: float = Field(default=10.0, gt=0, description="HTTP timeout in seconds")

    # Filters persistence
    filters_file: Optional[Path] = Field(default=None, description="JSON file holding saved filters")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    debug: bool = Field(default=False, description="Enable debug logging for agenda_engine")

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("min_slot_minutes")
    @classmethod
    def _check_slot_minutes(cls, value: int) -> int:
        if value not in ALLOWED_SLOT_MINUTES:
            raise ValueError(f"min_slot_minutes must be one of {ALLOWED_SLOT_MINUTES}, got {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {value}")
        return level

    @model_validator(mode="after")
    def _check_working_window(self) -> "AgendaSettings":
        if self.working_day_end_hour <= self.working_day_start_hour:
            raise ValueError("working_day_end_hour must be after working_day_start_hour")
        return self

    @classmethod
    def from_yaml(cls, config_file: Optional[Path] = None, **overrides: Any) -> "AgendaSettings":
        """Build settings with values from a YAML file underneath env and overrides.

        Args:
            config_file: YAML file to read; defaults to ``$AGENDA_CONFIG_FILE``
                or ``~/.config/agenda-engine/config.yaml``
            **overrides: Explicit values taking precedence over everything

        Returns:
            AgendaSettings instance
        """
        file_values = load_yaml_config(config_file or _find_config_file())
        # Environment and .env win over the file: drop file keys set in either
        dotenv_keys = _prefixed_keys(_dotenv_values(cls.model_config.get("env_file")))
        env_keys = _prefixed_keys(os.environ) | dotenv_keys
        merged = {k: v for k, v in file_values.items() if k not in env_keys}
        merged.update(overrides)
        return cls(**merged)


def _prefixed_keys(values: Mapping[str, Any]) -> set[str]:
    return {key[len(ENV_PREFIX):].lower() for key in values if key.upper().startswith(ENV_PREFIX)}


def _dotenv_values(env_file: Any) -> dict[str, Optional[str]]:
    if not env_file:
        return {}
    paths = [env_file] if isinstance(env_file, (str, Path)) else list(env_file)
    values: dict[str, Optional[str]] = {}
    for path in paths:
        if Path(path).is_file():
            values.update(dotenv_values(path))
    return values


def _find_config_file() -> Optional[Path]:
    explicit = os.environ.get(CONFIG_FILE_ENV)
    if explicit:
        return Path(explicit)
    candidate = default_config_file()
    return candidate if candidate.exists() else None


def load_yaml_config(config_file: Optional[Path]) -> dict[str, Any]:
    """Read a flat mapping of settings from YAML.

    A missing file yields an empty mapping. A malformed file is logged and
    ignored so that env vars and defaults still apply.
    """
    if config_file is None or not config_file.exists():
        return {}

    try:
        with config_file.open(encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not load YAML config from %s: %s", config_file, exc)
        return {}

    if not data:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring YAML config %s: root must be a mapping", config_file)
        return {}

    # Accept an optional top-level "agenda:" section
    section = data.get("agenda", data)
    if not isinstance(section, dict):
        return {}
    logger.debug("Loaded %d settings from %s", len(section), config_file)
    return {str(k).lower(): v for k, v in section.items()}


# Global settings management
_settings_instance: Optional[AgendaSettings] = None


def get_settings() -> AgendaSettings:
    """Get the global settings instance, creating it lazily if needed."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = AgendaSettings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """Reset the global settings instance (primarily for testing)."""
    global _settings_instance
    _settings_instance = None
