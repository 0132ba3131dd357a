"""PlayTimer: playtime accounting and daily limits for game servers."""

from .app import PlayTimerApp, open_storage
from .config import ConfigProvider, PlayTimerConfig
from .domain import AccountingService, BonusKind, TimeBudget

__all__ = [
    "PlayTimerApp",
    "open_storage",
    "ConfigProvider",
    "PlayTimerConfig",
    "AccountingService",
    "BonusKind",
    "TimeBudget",
]
