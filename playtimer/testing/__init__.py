"""Testing utilities for PlayTimer.

The pytest fixtures live in :mod:`playtimer.testing.fixtures`, which needs the
``test`` extra (pytest-asyncio).
"""

from .doubles import FrozenClock, StaticPermissions
from .factory import PlayerFactory
from .apps import app_fixture

__all__ = [
    "FrozenClock",
    "StaticPermissions",
    "PlayerFactory",
    "app_fixture",
]
