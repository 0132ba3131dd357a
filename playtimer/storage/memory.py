"""In-memory storage backend for PlayTimer."""

from __future__ import annotations

from collections import deque
from dataclasses import replace
from datetime import date, datetime
from typing import Deque, Sequence
from uuid import UUID

from .base import (
    AccountRecord,
    AccountStore,
    BonusRecord,
    BonusStore,
    HistoryRecord,
    HistoryStore,
    PlayTimeStore,
)


class InMemoryPlayTimeStore(PlayTimeStore):
    def __init__(self) -> None:
        self._totals: dict[UUID, int] = {}

    async def get_play_time(self, player_id: UUID) -> int:
        return self._totals.get(player_id, 0)

    async def save_play_time(self, player_id: UUID, seconds: int) -> None:
        self._totals[player_id] = int(seconds)
        await self._changed()

    async def load_all(self) -> dict[UUID, int]:
        return dict(self._totals)

    async def close(self) -> None:
        await self._changed()

    async def _changed(self) -> None:
        return None


class InMemoryAccountStore(AccountStore):
    def __init__(self) -> None:
        self._accounts: dict[UUID, AccountRecord] = {}

    async def ensure_account(
        self,
        player_id: UUID,
        *,
        name: str | None,
        rank: str,
        today: date,
        base_allowance: int,
    ) -> AccountRecord:
        record = self._accounts.get(player_id)
        if record is None:
            record = AccountRecord(
                player_id=player_id,
                name=name,
                rank=rank,
                played_today=0,
                last_reset_date=today,
                base_allowance=base_allowance,
            )
            self._accounts[player_id] = record
            await self._changed()
        elif name and record.name != name:
            record.name = name
            await self._changed()
        return replace(record)

    async def get_account(self, player_id: UUID) -> AccountRecord | None:
        record = self._accounts.get(player_id)
        return replace(record) if record else None

    async def add_played_today(self, player_id: UUID, seconds: int) -> None:
        record = self._accounts.get(player_id)
        if record is None:
            return
        record.played_today += int(seconds)
        await self._changed()

    async def reset_today(self, player_id: UUID, today: date, *, force: bool = False) -> bool:
        record = self._accounts.get(player_id)
        if record is None:
            return False
        if not force and record.last_reset_date is not None and record.last_reset_date >= today:
            return False
        self._accounts[player_id] = replace(record, played_today=0, last_reset_date=today)
        await self._changed()
        return True

    async def stale_accounts(self, today: date) -> Sequence[UUID]:
        return [
            player_id
            for player_id, record in self._accounts.items()
            if record.last_reset_date is None or record.last_reset_date < today
        ]

    async def set_rank(self, player_id: UUID, rank: str, base_allowance: int) -> None:
        record = self._accounts.get(player_id)
        if record is None:
            return
        self._accounts[player_id] = replace(record, rank=rank, base_allowance=base_allowance)
        await self._changed()

    async def _changed(self) -> None:
        return None


class InMemoryBonusStore(BonusStore):
    def __init__(self) -> None:
        self._bonuses: dict[int, BonusRecord] = {}
        self._next_id = 1

    async def add_bonus(self, record: BonusRecord) -> BonusRecord:
        stored = replace(record, bonus_id=self._next_id)
        self._bonuses[stored.bonus_id] = stored
        self._next_id += 1
        await self._changed()
        return replace(stored)

    async def remove_bonus(self, bonus_id: int) -> bool:
        if self._bonuses.pop(bonus_id, None) is None:
            return False
        await self._changed()
        return True

    async def set_active(self, bonus_id: int, active: bool) -> bool:
        record = self._bonuses.get(bonus_id)
        if record is None:
            return False
        self._bonuses[bonus_id] = replace(record, active=active)
        await self._changed()
        return True

    async def bonuses_for(self, player_id: UUID) -> Sequence[BonusRecord]:
        return [replace(rec) for rec in self._bonuses.values() if rec.player_id == player_id]

    async def _changed(self) -> None:
        return None


class InMemoryHistoryStore(HistoryStore):
    def __init__(self, *, maxlen: int = 5000) -> None:
        self._history: Deque[HistoryRecord] = deque(maxlen=maxlen)

    async def add_entry(self, player_id: UUID, action: str, timestamp: datetime) -> None:
        record = HistoryRecord(player_id=player_id, action=action, timestamp=timestamp)
        self._history.append(record)
        await self._appended(record)

    async def recent_for(self, player_id: UUID, limit: int = 20) -> Sequence[HistoryRecord]:
        filtered = [rec for rec in reversed(self._history) if rec.player_id == player_id]
        return filtered[:limit]

    async def _appended(self, record: HistoryRecord) -> None:
        return None


class InMemoryStorage:
    """Bundle of in-process stores; nothing survives a restart."""

    name = "memory"

    def __init__(self) -> None:
        self._play_times = InMemoryPlayTimeStore()
        self._accounts = InMemoryAccountStore()
        self._bonuses = InMemoryBonusStore()
        self._history = InMemoryHistoryStore()

    def play_time_store(self) -> InMemoryPlayTimeStore:
        return self._play_times

    def account_store(self) -> InMemoryAccountStore:
        return self._accounts

    def bonus_store(self) -> InMemoryBonusStore:
        return self._bonuses

    def history_store(self) -> InMemoryHistoryStore:
        return self._history

    async def close(self) -> None:
        await self._play_times.close()
