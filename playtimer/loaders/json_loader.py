"""Load PlayTimer settings from JSON documents.

Keys follow the plugin's historical ``config.yml`` layout (``general``,
``database``, ``limits.groups``, ``bonuses.enable_daily_bonus`` ...) and the
camelCase names used by the host configuration API. Bad values never stop
startup: each one is logged and replaced by its default.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Mapping, TypeVar

from ..config import (
    DEFAULT_BYPASS_PERMISSION,
    DEFAULT_RESET_TIME,
    WORLD_MODES,
    BonusConfig,
    DatabaseConfig,
    LimitsConfig,
    NotificationsConfig,
    PlayTimerConfig,
    WorldLimitsConfig,
    parse_reset_time,
)
from ..domain.exceptions import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def load_config_from_json(path: str | Path) -> PlayTimerConfig:
    """Read a JSON file; a missing or unreadable file yields the defaults."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Config file %s not found; using defaults.", path)
        return PlayTimerConfig()
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Config file %s is unreadable (%s); using defaults.", path, exc)
        return PlayTimerConfig()
    return parse_config_dict(data)


def parse_config_dict(data: Any) -> PlayTimerConfig:
    """Parse a decoded JSON object into a :class:`PlayTimerConfig`."""
    if not isinstance(data, Mapping):
        logger.warning("Configuration root must be an object; using defaults.")
        return PlayTimerConfig()
    general = _section(data, "general")
    defaults = PlayTimerConfig()

    reset_raw = _first(data, general, ("dailyResetTime", "daily_reset"), DEFAULT_RESET_TIME)
    try:
        parse_reset_time(reset_raw)
    except ConfigError as exc:
        logger.warning("%s; using %s.", exc, DEFAULT_RESET_TIME)
        reset_raw = DEFAULT_RESET_TIME

    return PlayTimerConfig(
        database=parse_database(_section(data, "database")),
        limits=parse_limits(_section(data, "limits")),
        bonuses=parse_bonuses(_section(data, "bonuses")),
        world_limits=parse_world_limits(
            _section(data, "world_limits") or _section(data, "worldLimits")
        ),
        notifications=parse_notifications(_section(data, "notifications")),
        daily_reset_time=str(reset_raw),
        auto_save_minutes=_coerce(
            "general.auto_save_minutes",
            _first(data, general, ("autoSaveMinutes", "auto_save_minutes"), defaults.auto_save_minutes),
            _non_negative_int,
            defaults.auto_save_minutes,
        ),
        data_dir=str(_first(data, general, ("dataDir", "data_dir"), defaults.data_dir)),
    )


def parse_database(section: Mapping[str, Any] | None) -> DatabaseConfig:
    defaults = DatabaseConfig()
    if section is None:
        logger.warning("Section 'database' missing; using default connection settings.")
        return defaults
    return DatabaseConfig(
        type=str(section.get("type", defaults.type)).lower(),
        host=str(section.get("host", defaults.host)),
        port=_coerce("database.port", section.get("port", defaults.port), _port, defaults.port),
        name=str(section.get("name", defaults.name)),
        user=str(section.get("user", defaults.user)),
        password=str(section.get("password", defaults.password) or ""),
        dsn=section.get("dsn") or None,
        echo_sql=_coerce("database.echo_sql", section.get("echo_sql", False), _bool, False),
    )


def parse_limits(section: Mapping[str, Any] | None) -> LimitsConfig:
    if section is None:
        logger.warning("Section 'limits' missing; every rank is unlimited.")
        return LimitsConfig()
    groups = section.get("groups", section.get("groupLimits", {}))
    group_limits: dict[str, int] = {}
    if isinstance(groups, Mapping):
        for rank, seconds in groups.items():
            try:
                group_limits[str(rank).lower()] = _non_negative_int(seconds)
            except ConfigError as exc:
                logger.warning("limits.groups.%s: %s; skipping it.", rank, exc)
    else:
        logger.warning("limits.groups must be an object; every rank is unlimited.")
    bypass = section.get("bypass_permission", section.get("bypassPermission"))
    return LimitsConfig(
        group_limits=group_limits,
        bypass_permission=str(bypass) if bypass else DEFAULT_BYPASS_PERMISSION,
    )


def parse_bonuses(section: Mapping[str, Any] | None) -> BonusConfig:
    defaults = BonusConfig()
    if section is None:
        return defaults
    return BonusConfig(
        daily_enabled=_coerce(
            "bonuses.enable_daily_bonus",
            _pick(section, ("enable_daily_bonus", "dailyEnabled"), defaults.daily_enabled),
            _bool,
            defaults.daily_enabled,
        ),
        permanent_enabled=_coerce(
            "bonuses.enable_permanent_bonus",
            _pick(section, ("enable_permanent_bonus", "permanentEnabled"), defaults.permanent_enabled),
            _bool,
            defaults.permanent_enabled,
        ),
        max_daily_seconds=_coerce(
            "bonuses.max_daily_bonus",
            _pick(section, ("max_daily_bonus", "maxDailySeconds"), defaults.max_daily_seconds),
            _non_negative_int,
            defaults.max_daily_seconds,
        ),
        notify_on_bonus=_coerce(
            "bonuses.notify_on_bonus",
            _pick(section, ("notify_on_bonus", "notifyOnBonus"), defaults.notify_on_bonus),
            _bool,
            defaults.notify_on_bonus,
        ),
    )


def parse_world_limits(section: Mapping[str, Any] | None) -> WorldLimitsConfig:
    defaults = WorldLimitsConfig()
    if section is None:
        return defaults
    mode = str(section.get("mode", defaults.mode)).strip().lower()
    if mode not in WORLD_MODES:
        logger.warning("world_limits.mode '%s' is unknown; every world counts.", mode)
    worlds = section.get("worlds", [])
    if isinstance(worlds, str) or not isinstance(worlds, (list, tuple)):
        logger.warning("world_limits.worlds must be a list; ignoring it.")
        worlds = []
    return WorldLimitsConfig(
        enabled=_coerce("world_limits.enabled", section.get("enabled", False), _bool, False),
        mode=mode,
        worlds=tuple(str(world) for world in worlds),
    )


def parse_notifications(section: Mapping[str, Any] | None) -> NotificationsConfig:
    if section is None:
        return NotificationsConfig()
    times = section.get("times", {})
    if not isinstance(times, Mapping):
        logger.warning("notifications.times must be an object; no warnings will be sent.")
        return NotificationsConfig()
    parsed: dict[int, tuple[str, ...]] = {}
    for key, lines in times.items():
        try:
            seconds = _non_negative_int(key)
        except ConfigError as exc:
            logger.warning("notifications.times.%s: %s; skipping it.", key, exc)
            continue
        if isinstance(lines, str):
            lines = [lines]
        elif not isinstance(lines, (list, tuple)):
            logger.warning("notifications.times.%s must be text or a list; skipping it.", key)
            continue
        parsed[seconds] = tuple(str(line) for line in lines)
    return NotificationsConfig(times=parsed)


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        logger.warning("Section '%s' must be an object; ignoring it.", key)
        return None
    return value


def _pick(section: Mapping[str, Any], keys: tuple[str, ...], default: Any) -> Any:
    for key in keys:
        if key in section:
            return section[key]
    return default


def _first(
    data: Mapping[str, Any],
    general: Mapping[str, Any] | None,
    keys: tuple[str, ...],
    default: Any,
) -> Any:
    for key in keys:
        if key in data:
            return data[key]
        if general is not None and key in general:
            return general[key]
    return default


def _coerce(field_name: str, raw: Any, parser: Callable[[Any], T], default: T) -> T:
    try:
        return parser(raw)
    except ConfigError as exc:
        logger.warning("%s: %s; using %r.", field_name, exc, default)
        return default


def _non_negative_int(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"expected a whole number, got {raw!r}")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"expected a whole number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"expected a non-negative number, got {value}")
    return value


def _port(raw: Any) -> int:
    value = _non_negative_int(raw)
    if not 0 < value < 65536:
        raise ConfigError(f"port {value} is out of range")
    return value


def _bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in {"1", "true", "yes", "on"}:
        return True
    if isinstance(raw, str) and raw.strip().lower() in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"expected true/false, got {raw!r}")
