"""Domain models and services."""

from .accounting import AccountingService
from .bonuses import Bonus, BonusKind, BonusLedger
from .events import EventBus
from .exceptions import (
    ConfigError,
    PlayTimerError,
    ServiceUnavailable,
    StorageError,
    ValidationError,
)
from .limits import LimitPolicy, PermissionChecker, TimeBudget
from .reset import DailyResetScheduler, ResetState
from .sessions import SessionTracker

__all__ = [
    "AccountingService",
    "Bonus",
    "BonusKind",
    "BonusLedger",
    "EventBus",
    "ConfigError",
    "PlayTimerError",
    "ServiceUnavailable",
    "StorageError",
    "ValidationError",
    "LimitPolicy",
    "PermissionChecker",
    "TimeBudget",
    "DailyResetScheduler",
    "ResetState",
    "SessionTracker",
]
