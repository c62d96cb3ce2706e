"""
Platform settings, configurable via environment variables or a JSON file.
"""

import json
from typing import Any, Dict, Optional

from pydantic import Field, ValidationError as PydanticValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.enums import ActivityStoreType
from .core.exceptions import ConfigurationError


class PlatformSettings(BaseSettings):
    """Settings for the Fieldtrain platform; every field maps to ``FIELDTRAIN_<NAME>``."""

    model_config = SettingsConfigDict(env_prefix="FIELDTRAIN_", env_file=".env", extra="ignore")

    # Persistence
    database_path: str = "fieldtrain.db"
    activity_store_type: ActivityStoreType = ActivityStoreType.DATABASE
    activity_store_path: str = "activity"

    # Concurrency
    lock_timeout_seconds: float = Field(default=5.0, gt=0)

    # Course status updater
    enable_course_status_updater: bool = True
    course_status_interval_seconds: float = Field(default=24 * 60 * 60, gt=0)

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # Logging
    log_level: str = "INFO"
    log_format: str = "plain"

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, v: str) -> str:
        fmt = v.lower()
        if fmt not in ("plain", "json"):
            raise ValueError("log_format must be 'plain' or 'json'")
        return fmt


def load_settings(config_path: Optional[str] = None, **overrides: Any) -> PlatformSettings:
    """Build settings from the environment, an optional JSON file and explicit overrides.

    Later sources win: environment < JSON file < overrides.
    """
    data: Dict[str, Any] = {}
    if config_path:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data.update(json.load(f))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read config file {config_path}: {e}")
    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return PlatformSettings(**data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}", details={'errors': e.errors()})
