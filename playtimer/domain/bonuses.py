"""Extra-time grants and their aggregation."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, DefaultDict, Sequence
from uuid import UUID

from ..storage.base import BonusRecord, BonusStore
from .exceptions import ValidationError
from .sessions import Clock, local_now

if TYPE_CHECKING:
    from ..config import ConfigProvider

logger = logging.getLogger(__name__)


class BonusKind(str, Enum):
    PERMANENT = "permanent"
    DAILY = "daily"

    @classmethod
    def parse(cls, value: "BonusKind | str") -> "BonusKind":
        if isinstance(value, BonusKind):
            return value
        normalized = str(value).strip().lower()
        normalized = _LEGACY_KINDS.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValidationError(f"Unknown bonus kind '{value}'") from exc


_LEGACY_KINDS = {"permanente": "permanent", "diario": "daily"}


@dataclass(slots=True, frozen=True)
class Bonus:
    bonus_id: int
    player_id: UUID
    kind: BonusKind
    seconds: int
    granted_date: date
    active: bool

    def counts_on(self, today: date) -> bool:
        if self.kind is BonusKind.PERMANENT:
            return self.active
        return self.granted_date == today


class BonusLedger:
    """Grant, revoke and total bonuses for players."""

    def __init__(
        self,
        store: BonusStore,
        config: ConfigProvider,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock or local_now
        self._locks: DefaultDict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def grant(
        self,
        player_id: UUID,
        seconds: int,
        kind: BonusKind | str,
        *,
        active: bool = True,
    ) -> Bonus:
        bonus_kind = BonusKind.parse(kind)
        if seconds < 0:
            raise ValidationError("Bonus seconds cannot be negative")
        settings = self._config.current().bonuses
        if bonus_kind is BonusKind.DAILY and not settings.daily_enabled:
            raise ValidationError("Daily bonuses are disabled")
        if bonus_kind is BonusKind.PERMANENT and not settings.permanent_enabled:
            raise ValidationError("Permanent bonuses are disabled")

        today = self._clock().date()
        async with self._locks[player_id]:
            if bonus_kind is BonusKind.DAILY and settings.max_daily_seconds > 0:
                granted_today = sum(
                    bonus.seconds
                    for bonus in await self.bonuses_for(player_id)
                    if bonus.kind is BonusKind.DAILY and bonus.granted_date == today
                )
                if granted_today + seconds > settings.max_daily_seconds:
                    raise ValidationError(
                        f"Daily bonus cap of {settings.max_daily_seconds} seconds exceeded"
                    )
            record = await self._store.add_bonus(
                BonusRecord(
                    player_id=player_id,
                    kind=bonus_kind.value,
                    seconds=int(seconds),
                    granted_date=today,
                    active=active,
                )
            )
        return _to_bonus(record)

    async def revoke(self, bonus_id: int) -> bool:
        """Remove a bonus; returns ``False`` when the id does not exist."""
        return await self._store.remove_bonus(bonus_id)

    async def set_active(self, bonus_id: int, active: bool) -> bool:
        return await self._store.set_active(bonus_id, active)

    async def bonuses_for(self, player_id: UUID) -> Sequence[Bonus]:
        bonuses = []
        for record in await self._store.bonuses_for(player_id):
            try:
                bonuses.append(_to_bonus(record))
            except ValidationError:
                logger.warning(
                    "Skipping bonus %s of %s with unknown kind %r.",
                    record.bonus_id,
                    player_id,
                    record.kind,
                )
        return bonuses

    async def active_total(self, player_id: UUID) -> int:
        today = self._clock().date()
        return sum(
            bonus.seconds for bonus in await self.bonuses_for(player_id) if bonus.counts_on(today)
        )


def _to_bonus(record: BonusRecord) -> Bonus:
    return Bonus(
        bonus_id=int(record.bonus_id or 0),
        player_id=record.player_id,
        kind=BonusKind.parse(record.kind),
        seconds=record.seconds,
        granted_date=record.granted_date,
        active=record.active,
    )
