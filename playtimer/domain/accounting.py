"""Entry point the host glue calls for every playtime operation."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Awaitable, DefaultDict
from uuid import UUID

from ..storage.base import AccountStore, HistoryStore, PlayTimeStore
from .bonuses import Bonus, BonusKind, BonusLedger
from .events import (
    ACCOUNT_RESET,
    BONUS_GRANTED,
    BONUS_REVOKED,
    LIMIT_WARNING,
    RANK_CHANGED,
    SESSION_COMMITTED,
    EventBus,
)
from .exceptions import ServiceUnavailable, StorageError, ValidationError
from .limits import DEFAULT_RANK, LimitPolicy, TimeBudget
from .sessions import Clock, SessionTracker, local_now

if TYPE_CHECKING:
    from ..config import ConfigProvider

logger = logging.getLogger(__name__)


class AccountingService:
    """Coordinate sessions, storage, bonuses and limits.

    Session accounting never raises on storage trouble: the failure is logged
    and that session's seconds are lost. Queries raise
    :class:`ServiceUnavailable`, whose message is safe to show to players.
    """

    def __init__(
        self,
        *,
        sessions: SessionTracker,
        play_times: PlayTimeStore,
        accounts: AccountStore,
        bonuses: BonusLedger,
        limits: LimitPolicy,
        config: ConfigProvider,
        history: HistoryStore | None = None,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._sessions = sessions
        self._play_times = play_times
        self._accounts = accounts
        self._bonuses = bonuses
        self._limits = limits
        self._config = config
        self._history = history
        self._events = event_bus or EventBus()
        self._clock = clock or local_now
        self._locks: DefaultDict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._pending: set[asyncio.Task] = set()
        self._autosave_task: asyncio.Task | None = None
        self._warning_task: asyncio.Task | None = None
        self._worlds: dict[UUID, str | None] = {}
        self._last_remaining: dict[UUID, int] = {}

    @property
    def sessions(self) -> SessionTracker:
        return self._sessions

    async def on_session_start(
        self,
        player_id: UUID,
        *,
        name: str | None = None,
        rank: str | None = None,
        world: str | None = None,
    ) -> None:
        self._worlds[player_id] = world
        if self._config.current().world_limits.is_world_allowed(world):
            self._sessions.begin(player_id)
        else:
            # Joined straight into a world that does not count.
            self._sessions.end(player_id)
        today = self._clock().date()
        initial_rank = rank or DEFAULT_RANK
        try:
            account = await self._accounts.ensure_account(
                player_id,
                name=name,
                rank=initial_rank,
                today=today,
                base_allowance=self._limits.base_allowance(initial_rank),
            )
            if rank and account.rank.lower() != rank.lower():
                await self._accounts.set_rank(player_id, rank, self._limits.base_allowance(rank))
        except StorageError as exc:
            logger.warning("Could not load account for %s on join: %s", player_id, exc)

    async def on_session_end(self, player_id: UUID) -> int:
        self._forget(player_id)
        seconds = self._sessions.end(player_id)
        await self._commit(player_id, seconds, action="session_end")
        return seconds

    def dispatch_session_end(self, player_id: UUID) -> asyncio.Task:
        """Close the session now and persist it in the background."""
        self._forget(player_id)
        seconds = self._sessions.end(player_id)
        return self._spawn(self._commit(player_id, seconds, action="session_end"))

    async def on_world_change(self, player_id: UUID, world: str | None) -> int:
        """Pause or resume counting as the player moves between worlds.

        Leaving a counted world commits the time spent there and returns it;
        entering one starts a new session.
        """
        self._worlds[player_id] = world
        if self._config.current().world_limits.is_world_allowed(world):
            if not self._sessions.is_active(player_id):
                self._sessions.begin(player_id)
            return 0
        seconds = self._sessions.end(player_id)
        await self._commit(player_id, seconds, action="world_pause")
        return seconds

    def current_world(self, player_id: UUID) -> str | None:
        return self._worlds.get(player_id)

    async def query_accumulated(self, player_id: UUID) -> int:
        try:
            return await self._play_times.get_play_time(player_id)
        except StorageError as exc:
            logger.warning("Playtime query for %s failed: %s", player_id, exc)
            raise ServiceUnavailable() from exc

    async def query_played_today(self, player_id: UUID) -> int:
        try:
            account = await self._accounts.get_account(player_id)
        except StorageError as exc:
            logger.warning("Played-today query for %s failed: %s", player_id, exc)
            raise ServiceUnavailable() from exc
        return account.played_today if account else 0

    async def get_remaining(self, player_id: UUID) -> TimeBudget:
        try:
            return await self._limits.budget(player_id)
        except StorageError as exc:
            logger.warning("Remaining-time query for %s failed: %s", player_id, exc)
            raise ServiceUnavailable() from exc

    async def grant_bonus(
        self,
        player_id: UUID,
        seconds: int,
        kind: BonusKind | str,
        *,
        active: bool = True,
    ) -> Bonus:
        if not isinstance(seconds, int) or isinstance(seconds, bool):
            raise ValidationError("Bonus seconds must be an integer")
        if seconds < 0:
            raise ValidationError("Bonus seconds cannot be negative")
        try:
            bonus = await self._bonuses.grant(player_id, seconds, kind, active=active)
        except StorageError as exc:
            logger.warning("Granting bonus to %s failed: %s", player_id, exc)
            raise ServiceUnavailable() from exc
        await self._record(player_id, f"bonus_grant:{bonus.kind.value}:{bonus.seconds}")
        await self._events.publish(
            BONUS_GRANTED,
            {
                "player_id": player_id,
                "bonus": bonus,
                "notify": self._config.current().bonuses.notify_on_bonus,
            },
        )
        return bonus

    async def revoke_bonus(self, bonus_id: int) -> bool:
        try:
            removed = await self._bonuses.revoke(bonus_id)
        except StorageError as exc:
            logger.warning("Revoking bonus %s failed: %s", bonus_id, exc)
            raise ServiceUnavailable() from exc
        if removed:
            await self._events.publish(BONUS_REVOKED, {"bonus_id": bonus_id})
        return removed

    async def change_rank(self, player_id: UUID, rank: str) -> int:
        """Assign ``rank`` and return its base allowance in seconds."""
        if not rank or not rank.strip():
            raise ValidationError("Rank cannot be empty")
        rank = rank.strip()
        allowance = self._limits.base_allowance(rank)
        try:
            await self._accounts.ensure_account(
                player_id,
                name=None,
                rank=rank,
                today=self._clock().date(),
                base_allowance=allowance,
            )
            await self._accounts.set_rank(player_id, rank, allowance)
        except StorageError as exc:
            logger.warning("Changing rank of %s failed: %s", player_id, exc)
            raise ServiceUnavailable() from exc
        await self._record(player_id, f"rank_change:{rank}")
        await self._events.publish(
            RANK_CHANGED, {"player_id": player_id, "rank": rank, "base_allowance": allowance}
        )
        return allowance

    async def reset_player(self, player_id: UUID) -> bool:
        """Operator reset of the played-today counter, regardless of date."""
        now = self._clock()
        try:
            changed = await self._accounts.reset_today(player_id, now.date(), force=True)
        except StorageError as exc:
            logger.warning("Manual reset of %s failed: %s", player_id, exc)
            raise ServiceUnavailable() from exc
        if changed:
            await self._record(player_id, "manual_reset")
            await self._events.publish(
                ACCOUNT_RESET, {"player_id": player_id, "date": now.date(), "manual": True}
            )
        return changed

    async def check_limit_warning(self, player_id: UUID) -> int | None:
        """Publish ``limit.warning`` when remaining time drops past a threshold.

        Remaining time includes the open session. When several thresholds are
        passed at once only the smallest one is announced. Returns the
        threshold announced, if any.
        """
        times = self._config.current().notifications.times
        if not times:
            return None
        budget = await self.get_remaining(player_id)
        if budget.remaining is None:
            self._last_remaining.pop(player_id, None)
            return None
        remaining = max(0, budget.remaining - self._sessions.elapsed(player_id))
        previous = self._last_remaining.get(player_id)
        self._last_remaining[player_id] = remaining
        crossed = [
            threshold
            for threshold in times
            if remaining <= threshold and (previous is None or threshold < previous)
        ]
        if not crossed:
            return None
        threshold = min(crossed)
        await self._events.publish(
            LIMIT_WARNING,
            {
                "player_id": player_id,
                "threshold": threshold,
                "remaining": remaining,
                "messages": times[threshold],
            },
        )
        return threshold

    async def check_limit_warnings(self) -> int:
        """Run :meth:`check_limit_warning` for every counted player."""
        sent = 0
        for player_id in self._sessions.active_players():
            try:
                if await self.check_limit_warning(player_id) is not None:
                    sent += 1
            except ServiceUnavailable:
                continue
        return sent

    async def autosave(self) -> int:
        """Persist the elapsed part of every open session; returns players saved."""
        saved = 0
        for player_id in self._sessions.active_players():
            seconds = self._sessions.checkpoint(player_id)
            if await self._commit(player_id, seconds, action=None):
                saved += 1
        return saved

    def start_autosave(self) -> None:
        minutes = self._config.current().auto_save_minutes
        if minutes <= 0 or (self._autosave_task and not self._autosave_task.done()):
            return
        self._autosave_task = asyncio.create_task(self._autosave_loop())

    def start_limit_warnings(self, interval_seconds: float = 30.0) -> None:
        if self._warning_task and not self._warning_task.done():
            return
        self._warning_task = asyncio.create_task(self._warning_loop(interval_seconds))

    async def shutdown(self) -> None:
        """Flush open sessions as ending now and wait for background commits."""
        await self._stop_autosave()
        await self._stop_limit_warnings()
        for player_id in self._sessions.active_players():
            await self.on_session_end(player_id)
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _commit(self, player_id: UUID, seconds: int, *, action: str | None) -> bool:
        if seconds <= 0:
            return False
        async with self._locks[player_id]:
            try:
                total = await self._play_times.get_play_time(player_id) + seconds
                await self._play_times.save_play_time(player_id, total)
                # The join handler may never have created the row.
                await self._accounts.ensure_account(
                    player_id,
                    name=None,
                    rank=DEFAULT_RANK,
                    today=self._clock().date(),
                    base_allowance=self._limits.base_allowance(DEFAULT_RANK),
                )
                await self._accounts.add_played_today(player_id, seconds)
            except StorageError as exc:
                logger.warning(
                    "Lost %s second(s) of playtime for %s: %s", seconds, player_id, exc
                )
                return False
        if action:
            await self._record(player_id, f"{action}:{seconds}")
        await self._events.publish(
            SESSION_COMMITTED, {"player_id": player_id, "seconds": seconds, "total": total}
        )
        return True

    async def _record(self, player_id: UUID, action: str) -> None:
        if self._history is None:
            return
        try:
            await self._history.add_entry(player_id, action, self._clock())
        except StorageError as exc:
            logger.warning("Could not record history '%s' for %s: %s", action, player_id, exc)

    def _forget(self, player_id: UUID) -> None:
        self._worlds.pop(player_id, None)
        self._last_remaining.pop(player_id, None)

    def _spawn(self, coro: Awaitable[bool]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _autosave_loop(self) -> None:
        while True:
            await asyncio.sleep(max(1, self._config.current().auto_save_minutes) * 60)
            try:
                saved = await self.autosave()
                if saved:
                    logger.info("Auto-save stored playtime for %s player(s).", saved)
            except Exception:
                logger.exception("Auto-save loop error")

    async def _warning_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.check_limit_warnings()
            except Exception:
                logger.exception("Limit warning loop error")

    async def _stop_limit_warnings(self) -> None:
        if self._warning_task is None:
            return
        self._warning_task.cancel()
        try:
            await self._warning_task
        except asyncio.CancelledError:
            pass
        self._warning_task = None

    async def _stop_autosave(self) -> None:
        if self._autosave_task is None:
            return
        self._autosave_task.cancel()
        try:
            await self._autosave_task
        except asyncio.CancelledError:
            pass
        self._autosave_task = None
