"""Validation utilities for PlayTimer configuration."""

from __future__ import annotations

from .config import WORLD_MODES, PlayTimerConfig, parse_reset_time
from .domain.exceptions import ConfigError

SUPPORTED_DATABASES = {"mysql", "mariadb", "sqlite", "memory"}


def validate_config(config: PlayTimerConfig) -> list[str]:
    """Return list of problems discovered in a configuration snapshot."""
    errors: list[str] = []

    database = config.database
    if not database.dsn and database.type.lower() not in SUPPORTED_DATABASES:
        errors.append(
            f"Database type '{database.type}' is not supported; MySQL will be used instead."
        )
    if not 0 < database.port < 65536:
        errors.append(f"Database port '{database.port}' is out of range.")
    if database.type.lower() in {"mysql", "mariadb"} and not database.name:
        errors.append("Database name must not be empty.")

    for rank, seconds in config.limits.group_limits.items():
        if seconds < 0:
            errors.append(f"Rank '{rank}' has negative limit '{seconds}'.")
    if not config.limits.bypass_permission:
        errors.append("Bypass permission must not be empty.")

    bonuses = config.bonuses
    if bonuses.max_daily_seconds < 0:
        errors.append("Bonus configuration 'max_daily_seconds' cannot be negative.")

    world_limits = config.world_limits
    if world_limits.enabled and world_limits.mode not in WORLD_MODES:
        errors.append(
            f"World limit mode '{world_limits.mode}' is unknown; every world will count."
        )
    if world_limits.enabled and world_limits.mode == "whitelist" and not world_limits.worlds:
        errors.append("World whitelist is empty; no playtime will be counted.")

    for seconds in config.notifications.times:
        if seconds < 0:
            errors.append(f"Notification threshold '{seconds}' cannot be negative.")

    try:
        parse_reset_time(config.daily_reset_time)
    except ConfigError as exc:
        errors.append(str(exc) + ".")

    if config.auto_save_minutes < 0:
        errors.append("'auto_save_minutes' cannot be negative.")

    return errors


__all__ = ["validate_config"]
