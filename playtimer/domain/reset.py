"""Daily zeroing of the played-today counters."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from ..storage.base import AccountStore, HistoryStore
from .events import ACCOUNT_RESET, EventBus
from .exceptions import StorageError
from .sessions import Clock, local_now

if TYPE_CHECKING:
    from ..config import ConfigProvider

logger = logging.getLogger(__name__)


class ResetState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    RESETTING = "resetting"


class DailyResetScheduler:
    """Check the wall clock on a fixed tick and reset stale accounts.

    Staleness is decided by each account's ``last_reset_date``, never by
    counting ticks, so a late or restarted scheduler catches up exactly once.
    """

    def __init__(
        self,
        accounts: AccountStore,
        config: ConfigProvider,
        *,
        clock: Clock | None = None,
        tick_seconds: float = 60.0,
        history: HistoryStore | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._accounts = accounts
        self._config = config
        self._clock = clock or local_now
        self._tick_seconds = tick_seconds
        self._history = history
        self._events = event_bus
        self._state = ResetState.IDLE
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> ResetState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def due(self, now: datetime) -> bool:
        return now.time() >= self._config.current().reset_time()

    async def tick(self) -> int:
        """Run one check; returns how many accounts were reset."""
        now = self._clock()
        self._state = ResetState.CHECKING
        try:
            if not self.due(now):
                return 0
            today = now.date()
            stale = await self._accounts.stale_accounts(today)
            if not stale:
                return 0

            self._state = ResetState.RESETTING
            reset = 0
            for player_id in stale:
                if await self._accounts.reset_today(player_id, today):
                    reset += 1
                    await self._after_reset(player_id, now)
                # Let ordinary reads and writes run between accounts.
                await asyncio.sleep(0)
            if reset:
                logger.info("Daily reset cleared %s account(s) for %s.", reset, today.isoformat())
            return reset
        finally:
            self._state = ResetState.IDLE

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except StorageError as exc:
                logger.warning("Daily reset check failed: %s", exc)
            except Exception:
                logger.exception("Daily reset loop error")
            await asyncio.sleep(self._tick_seconds)

    async def _after_reset(self, player_id: UUID, now: datetime) -> None:
        if self._history is not None:
            try:
                await self._history.add_entry(player_id, "daily_reset", now)
            except StorageError as exc:
                logger.warning("Could not record daily reset for %s: %s", player_id, exc)
        if self._events is not None:
            await self._events.publish(
                ACCOUNT_RESET,
                {"player_id": player_id, "date": now.date(), "manual": False},
            )
