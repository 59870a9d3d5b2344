"""Pydantic settings for the bot.

This module provides:
- Environment variable support (GATEKEEP__TOKEN, GATEKEEP__ROLES__STAFF, ...)
- Validation with clear error messages
- SecretStr for the bot token to prevent accidental logging
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config_store import find_config_root, get_config_path, read_raw_toml
from .errors import ConfigError
from .logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "BotSettings",
    "ConfigError",
    "RoleSettings",
    "SchedulerSettings",
    "load_settings",
    "settings_from_data",
]


class RoleSettings(BaseModel):
    """Role ids the built-in commands and the scheduler rely on."""

    staff: int
    muted: int | None = None
    member: int | None = None


class SchedulerSettings(BaseModel):
    """Background scheduler configuration."""

    enabled: bool = True
    interval_s: float = 10.0

    @field_validator("interval_s")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("interval_s must be positive")
        return value


class BotSettings(BaseSettings):
    """Bot configuration loaded from TOML and environment variables.

    Environment variables use GATEKEEP__ prefix with __ as nested delimiter:
    - GATEKEEP__TOKEN -> token
    - GATEKEEP__GUILD_ID -> guild_id
    - GATEKEEP__ROLES__STAFF -> roles.staff
    """

    model_config = SettingsConfigDict(
        env_prefix="GATEKEEP__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    token: SecretStr
    application_id: int | None = None
    guild_id: int
    sync_commands: bool = True

    roles: RoleSettings
    scheduler: SchedulerSettings = SchedulerSettings()


def settings_from_data(data: dict[str, Any]) -> BotSettings:
    """Build settings from raw TOML data.

    The file layout is:

        [bot]
        token = "..."
        guild_id = 123
        [roles]
        staff = 456
        [scheduler]
        interval_s = 10

    Raises:
        ConfigError: if the data does not validate
    """
    values: dict[str, Any] = dict(data.get("bot", {}))
    for section in ("roles", "scheduler"):
        if section in data:
            values[section] = data[section]
    try:
        return BotSettings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid bot configuration: {e}") from e


def load_settings(root: Path | None = None) -> BotSettings | None:
    """Load bot settings from .gatekeep/bot.toml.

    Args:
        root: Directory holding .gatekeep/. If None, will search upwards.

    Returns:
        BotSettings if config exists and is valid, None otherwise.
    """
    if root is None:
        root = find_config_root()
        if root is None:
            return None

    config_path = get_config_path(root)
    if not config_path.exists():
        return None

    try:
        data = read_raw_toml(config_path)
    except Exception as e:
        logger.error(
            "settings.load_failed",
            path=str(config_path),
            error=str(e),
        )
        return None

    try:
        return settings_from_data(data)
    except ConfigError as e:
        logger.error(
            "settings.validation_failed",
            path=str(config_path),
            error=str(e),
        )
        return None
