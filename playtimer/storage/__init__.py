"""Storage backends for PlayTimer."""

from .base import (
    AccountRecord,
    AccountStore,
    BonusRecord,
    BonusStore,
    HistoryRecord,
    HistoryStore,
    PlayTimeStore,
    Storage,
)
from .json_file import JsonFileStorage
from .memory import InMemoryStorage
from .sqlalchemy import AsyncSQLAlchemyStorage

__all__ = [
    "AccountRecord",
    "AccountStore",
    "BonusRecord",
    "BonusStore",
    "HistoryRecord",
    "HistoryStore",
    "PlayTimeStore",
    "Storage",
    "JsonFileStorage",
    "InMemoryStorage",
    "AsyncSQLAlchemyStorage",
]
