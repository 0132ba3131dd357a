"""Rank-based daily caps and bypass resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from ..storage.base import AccountStore
from .bonuses import BonusLedger

if TYPE_CHECKING:
    from ..config import ConfigProvider

UNLIMITED = 0
DEFAULT_RANK = "default"


class PermissionChecker(Protocol):
    """Capability supplied by the host's permission system."""

    async def has_permission(self, player_id: UUID, permission: str) -> bool:
        ...


@dataclass(slots=True, frozen=True)
class TimeBudget:
    """Snapshot of a player's allowance for the current day.

    ``remaining`` is ``None`` when the player is not limited, either because
    the rank has no cap or because the player holds the bypass permission.
    """

    player_id: UUID
    rank: str
    base_allowance: int
    bonus_seconds: int
    limit: int
    played_today: int
    remaining: int | None
    bypass: bool = False

    @property
    def unlimited(self) -> bool:
        return self.remaining is None

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0


class LimitPolicy:
    """Resolve the effective cap for a player."""

    def __init__(
        self,
        accounts: AccountStore,
        bonuses: BonusLedger,
        config: ConfigProvider,
        *,
        permissions: PermissionChecker | None = None,
    ) -> None:
        self._accounts = accounts
        self._bonuses = bonuses
        self._config = config
        self._permissions = permissions

    def base_allowance(self, rank: str | None) -> int:
        """Seconds per day for ``rank``; unknown ranks are unlimited."""
        return self._config.current().limits.limit_for_group(rank)

    async def effective_limit(self, player_id: UUID) -> int:
        account = await self._accounts.get_account(player_id)
        rank = account.rank if account else DEFAULT_RANK
        return await self._limit_for(player_id, self.base_allowance(rank))

    async def remaining(self, player_id: UUID) -> int | None:
        return (await self.budget(player_id)).remaining

    async def has_bypass(self, player_id: UUID) -> bool:
        if self._permissions is None:
            return False
        permission = self._config.current().limits.bypass_permission
        return bool(await self._permissions.has_permission(player_id, permission))

    async def is_exhausted(self, player_id: UUID) -> bool:
        return (await self.budget(player_id)).exhausted

    async def budget(self, player_id: UUID) -> TimeBudget:
        account = await self._accounts.get_account(player_id)
        rank = account.rank if account else DEFAULT_RANK
        played_today = account.played_today if account else 0
        base = self.base_allowance(rank)
        bonus_seconds = await self._bonuses.active_total(player_id)
        limit = base + bonus_seconds if base != UNLIMITED else UNLIMITED
        bypass = await self.has_bypass(player_id)

        if bypass or limit == UNLIMITED:
            remaining = None
        else:
            remaining = max(0, limit - played_today)
        return TimeBudget(
            player_id=player_id,
            rank=rank,
            base_allowance=base,
            bonus_seconds=bonus_seconds,
            limit=limit,
            played_today=played_today,
            remaining=remaining,
            bypass=bypass,
        )

    async def _limit_for(self, player_id: UUID, base: int) -> int:
        if base == UNLIMITED:
            return UNLIMITED
        return base + await self._bonuses.active_total(player_id)
