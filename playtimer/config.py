"""Configuration models for PlayTimer."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import time
from typing import Literal, Mapping

from sqlalchemy.engine import URL

from .domain.exceptions import ConfigError

logger = logging.getLogger(__name__)

DatabaseType = Literal["mysql", "mariadb", "sqlite", "memory"]

DEFAULT_RESET_TIME = "04:00"
DEFAULT_BYPASS_PERMISSION = "playtimer.bypass"
WORLD_MODES = ("whitelist", "blacklist")


@dataclass(slots=True, frozen=True)
class DatabaseConfig:
    """Connection settings for the relational store."""

    type: str = "mysql"
    host: str = "localhost"
    port: int = 3306
    name: str = "playtimer_db"
    user: str = "root"
    password: str = ""
    dsn: str | None = None
    echo_sql: bool = False

    def resolve_dsn(self) -> str | None:
        if self.dsn:
            return self.dsn
        kind = self.type.lower()
        if kind == "memory":
            return None
        if kind == "sqlite":
            return f"sqlite+aiosqlite:///{self.name}.db"
        if kind not in {"mysql", "mariadb"}:
            logger.warning("Unsupported database type '%s', using MySQL instead.", self.type)
        url = URL.create(
            "mysql+aiomysql",
            username=self.user,
            password=self.password or None,
            host=self.host,
            port=self.port,
            database=self.name,
        )
        return url.render_as_string(hide_password=False)


@dataclass(slots=True, frozen=True)
class LimitsConfig:
    """Daily allowance per rank and the permission that skips it."""

    group_limits: Mapping[str, int] = field(default_factory=dict)
    bypass_permission: str = DEFAULT_BYPASS_PERMISSION

    def __post_init__(self) -> None:
        # Ranks are matched case-insensitively.
        normalized = {
            str(rank).lower(): int(seconds) for rank, seconds in self.group_limits.items()
        }
        object.__setattr__(self, "group_limits", normalized)

    def limit_for_group(self, rank: str | None) -> int:
        """Seconds allowed per day for ``rank``; 0 means unlimited."""
        if not rank:
            return 0
        return int(self.group_limits.get(rank.lower(), 0))


@dataclass(slots=True, frozen=True)
class BonusConfig:
    """Switches for extra-time grants."""

    daily_enabled: bool = True
    permanent_enabled: bool = True
    max_daily_seconds: int = 7200
    notify_on_bonus: bool = True


@dataclass(slots=True, frozen=True)
class WorldLimitsConfig:
    """Worlds in which playtime is counted.

    ``whitelist`` counts time only in the listed worlds, ``blacklist`` counts
    it everywhere else. An unknown mode or a disabled section counts every
    world.
    """

    enabled: bool = False
    mode: str = "whitelist"
    worlds: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", str(self.mode).strip().lower())
        object.__setattr__(self, "worlds", tuple(self.worlds))

    def is_world_allowed(self, world: str | None) -> bool:
        if not self.enabled or world is None:
            return True
        listed = world in self.worlds
        if self.mode == "whitelist":
            return listed
        if self.mode == "blacklist":
            return not listed
        return True


@dataclass(slots=True, frozen=True)
class NotificationsConfig:
    """Message lines keyed by the remaining seconds that trigger them."""

    times: Mapping[int, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        normalized = {
            int(seconds): (lines,) if isinstance(lines, str) else tuple(lines)
            for seconds, lines in self.times.items()
        }
        object.__setattr__(self, "times", normalized)

    def thresholds(self) -> list[int]:
        return sorted(self.times, reverse=True)


@dataclass(slots=True, frozen=True)
class PlayTimerConfig:
    """Top-level configuration snapshot."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    bonuses: BonusConfig = field(default_factory=BonusConfig)
    world_limits: WorldLimitsConfig = field(default_factory=WorldLimitsConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    daily_reset_time: str = DEFAULT_RESET_TIME
    auto_save_minutes: int = 5
    data_dir: str = "./playtimer-data"

    def reset_time(self) -> time:
        try:
            return parse_reset_time(self.daily_reset_time)
        except ConfigError as exc:
            logger.warning("%s; using %s.", exc, DEFAULT_RESET_TIME)
            return parse_reset_time(DEFAULT_RESET_TIME)

    @classmethod
    def from_env(cls) -> "PlayTimerConfig":
        """Create config from environment variables prefixed with PLAYTIMER_."""
        prefix = "PLAYTIMER_"
        defaults = DatabaseConfig()
        database = DatabaseConfig(
            type=os.getenv(f"{prefix}DB_TYPE", defaults.type),
            host=os.getenv(f"{prefix}DB_HOST", defaults.host),
            port=_env_int(f"{prefix}DB_PORT", defaults.port),
            name=os.getenv(f"{prefix}DB_NAME", defaults.name),
            user=os.getenv(f"{prefix}DB_USER", defaults.user),
            password=os.getenv(f"{prefix}DB_PASSWORD", defaults.password),
            dsn=os.getenv(f"{prefix}DB_DSN") or None,
            echo_sql=os.getenv(f"{prefix}DB_ECHO_SQL", "false").lower() in {"1", "true", "yes"},
        )

        limits = LimitsConfig(
            group_limits=_parse_group_limits(os.getenv(f"{prefix}GROUP_LIMITS")),
            bypass_permission=os.getenv(f"{prefix}BYPASS_PERMISSION", DEFAULT_BYPASS_PERMISSION)
            or DEFAULT_BYPASS_PERMISSION,
        )

        bonus_defaults = BonusConfig()
        bonuses = BonusConfig(
            daily_enabled=os.getenv(f"{prefix}BONUS_DAILY_ENABLED", "true").lower()
            in {"1", "true", "yes"},
            permanent_enabled=os.getenv(f"{prefix}BONUS_PERMANENT_ENABLED", "true").lower()
            in {"1", "true", "yes"},
            max_daily_seconds=_env_int(f"{prefix}BONUS_MAX_DAILY", bonus_defaults.max_daily_seconds),
            notify_on_bonus=os.getenv(f"{prefix}BONUS_NOTIFY", "true").lower() in {"1", "true", "yes"},
        )

        worlds = os.getenv(f"{prefix}WORLDS", "")
        world_limits = WorldLimitsConfig(
            enabled=os.getenv(f"{prefix}WORLD_LIMITS_ENABLED", "false").lower()
            in {"1", "true", "yes"},
            mode=os.getenv(f"{prefix}WORLD_LIMITS_MODE", "whitelist"),
            worlds=tuple(world.strip() for world in worlds.split(",") if world.strip()),
        )

        return cls(
            database=database,
            limits=limits,
            bonuses=bonuses,
            world_limits=world_limits,
            daily_reset_time=os.getenv(f"{prefix}DAILY_RESET", DEFAULT_RESET_TIME),
            auto_save_minutes=_env_int(f"{prefix}AUTO_SAVE_MINUTES", 5),
            data_dir=os.getenv(f"{prefix}DATA_DIR", "./playtimer-data"),
        )


class ConfigProvider:
    """Hold the active configuration snapshot and swap it on reload.

    Readers call :meth:`current` once per operation and keep using that
    snapshot, so an operation started before a reload finishes under the old
    settings.
    """

    def __init__(self, config: PlayTimerConfig | None = None) -> None:
        self._config = config or PlayTimerConfig()

    def current(self) -> PlayTimerConfig:
        return self._config

    def reload(self, config: PlayTimerConfig) -> PlayTimerConfig:
        previous = self._config
        self._config = config
        logger.info("Configuration reloaded.")
        return previous


def parse_reset_time(raw: str) -> time:
    """Parse an ``HH:mm`` string."""
    hours, sep, minutes = str(raw).strip().partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit():
        raise ConfigError(f"Invalid daily reset time '{raw}', expected HH:mm")
    try:
        return time(int(hours), int(minutes))
    except ValueError as exc:
        raise ConfigError(f"Invalid daily reset time '{raw}', expected HH:mm") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Environment variable %s=%r is not an integer; using %s.", name, raw, default)
        return default


def _parse_group_limits(raw: str | None) -> Mapping[str, int]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("PLAYTIMER_GROUP_LIMITS is not valid JSON; ignoring it.")
        return {}
    if not isinstance(data, dict):
        logger.warning("PLAYTIMER_GROUP_LIMITS must be a JSON object; ignoring it.")
        return {}
    limits: dict[str, int] = {}
    for rank, seconds in data.items():
        try:
            limits[str(rank).lower()] = int(seconds)
        except (TypeError, ValueError):
            logger.warning("Group limit for '%s' is not an integer; skipping it.", rank)
    return limits
