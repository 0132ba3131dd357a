"""Loaders for declarative configuration."""

from .json_loader import (
    load_config_from_json,
    parse_bonuses,
    parse_config_dict,
    parse_database,
    parse_limits,
    parse_notifications,
    parse_world_limits,
)

__all__ = [
    "load_config_from_json",
    "parse_bonuses",
    "parse_config_dict",
    "parse_database",
    "parse_limits",
    "parse_notifications",
    "parse_world_limits",
]
