"""Storage abstractions used by the PlayTimer services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol, Sequence
from uuid import UUID


@dataclass(slots=True)
class AccountRecord:
    player_id: UUID
    name: str | None = None
    rank: str = "default"
    played_today: int = 0
    last_reset_date: date | None = None
    base_allowance: int = 0


@dataclass(slots=True)
class BonusRecord:
    player_id: UUID
    kind: str
    seconds: int
    granted_date: date
    active: bool = True
    bonus_id: int | None = None


@dataclass(slots=True)
class HistoryRecord:
    player_id: UUID
    action: str
    timestamp: datetime


class PlayTimeStore(Protocol):
    """Cumulative seconds played, per player."""

    async def get_play_time(self, player_id: UUID) -> int:
        ...

    async def save_play_time(self, player_id: UUID, seconds: int) -> None:
        ...

    async def load_all(self) -> dict[UUID, int]:
        ...

    async def close(self) -> None:
        ...


class AccountStore(Protocol):
    async def ensure_account(
        self,
        player_id: UUID,
        *,
        name: str | None,
        rank: str,
        today: date,
        base_allowance: int,
    ) -> AccountRecord:
        ...

    async def get_account(self, player_id: UUID) -> AccountRecord | None:
        ...

    async def add_played_today(self, player_id: UUID, seconds: int) -> None:
        ...

    async def reset_today(self, player_id: UUID, today: date, *, force: bool = False) -> bool:
        ...

    async def stale_accounts(self, today: date) -> Sequence[UUID]:
        ...

    async def set_rank(self, player_id: UUID, rank: str, base_allowance: int) -> None:
        ...


class BonusStore(Protocol):
    async def add_bonus(self, record: BonusRecord) -> BonusRecord:
        ...

    async def remove_bonus(self, bonus_id: int) -> bool:
        ...

    async def set_active(self, bonus_id: int, active: bool) -> bool:
        ...

    async def bonuses_for(self, player_id: UUID) -> Sequence[BonusRecord]:
        ...


class HistoryStore(Protocol):
    async def add_entry(self, player_id: UUID, action: str, timestamp: datetime) -> None:
        ...

    async def recent_for(self, player_id: UUID, limit: int = 20) -> Sequence[HistoryRecord]:
        ...


class Storage(Protocol):
    """A backend bundle handing out the individual stores."""

    name: str

    def play_time_store(self) -> PlayTimeStore:
        ...

    def account_store(self) -> AccountStore:
        ...

    def bonus_store(self) -> BonusStore:
        ...

    def history_store(self) -> HistoryStore:
        ...

    async def close(self) -> None:
        ...
