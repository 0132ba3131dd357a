"""Ready-wired applications for tests and prototyping."""

from __future__ import annotations

from ..app import PlayTimerApp
from ..config import DatabaseConfig, PlayTimerConfig
from ..storage.memory import InMemoryStorage


def app_fixture(**kwargs) -> PlayTimerApp:
    """Helper for ad-hoc tests where pytest is not available."""
    config = kwargs.pop("config", None) or PlayTimerConfig(database=DatabaseConfig(type="memory"))
    return PlayTimerApp(config, storage=kwargs.pop("storage", None) or InMemoryStorage(), **kwargs)
