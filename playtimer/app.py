"""Top level application object wiring PlayTimer together."""

from __future__ import annotations

import logging
from typing import Any

from .config import ConfigProvider, PlayTimerConfig
from .domain.accounting import AccountingService
from .domain.bonuses import BonusLedger
from .domain.events import EventBus
from .domain.exceptions import StorageError
from .domain.limits import LimitPolicy, PermissionChecker
from .domain.reset import DailyResetScheduler
from .domain.sessions import Clock, SessionTracker
from .storage.base import Storage
from .storage.json_file import JsonFileStorage
from .storage.memory import InMemoryStorage
from .storage.sqlalchemy import AsyncSQLAlchemyStorage

logger = logging.getLogger(__name__)


async def open_storage(config: PlayTimerConfig) -> Storage:
    """Pick the storage backend once, at startup.

    The relational store is tried first; if it cannot be reached the JSON
    files under ``config.data_dir`` are used for the rest of the process.
    """
    database = config.database
    if database.type.lower() == "memory" and not database.dsn:
        return InMemoryStorage()

    dsn = database.resolve_dsn()
    try:
        storage = AsyncSQLAlchemyStorage(dsn, echo=database.echo_sql)
        await storage.connect()
    except StorageError as exc:
        logger.warning(
            "Relational storage unavailable (%s); using JSON files in %s.",
            exc.cause,
            config.data_dir,
        )
        return JsonFileStorage(config.data_dir)
    logger.info("Connected to %s storage.", database.type)
    return storage


class PlayTimerApp:
    """Central dependency container used by the host integration."""

    def __init__(
        self,
        config: PlayTimerConfig | None = None,
        *,
        storage: Storage | None = None,
        permissions: PermissionChecker | None = None,
        event_bus: EventBus | None = None,
        clock: Clock | None = None,
        tick_seconds: float = 60.0,
    ) -> None:
        self.config_provider = ConfigProvider(config or PlayTimerConfig())
        self.event_bus = event_bus or EventBus()
        self.sessions = SessionTracker(clock)
        self._permissions = permissions
        self._clock = clock
        self._tick_seconds = tick_seconds
        self._storage = storage
        self._accounting: AccountingService | None = None
        self._scheduler: DailyResetScheduler | None = None
        self.bonuses: BonusLedger | None = None
        self.limits: LimitPolicy | None = None

    @property
    def config(self) -> PlayTimerConfig:
        return self.config_provider.current()

    @property
    def storage(self) -> Storage:
        if self._storage is None:
            raise RuntimeError("PlayTimerApp.start() has not been awaited")
        return self._storage

    @property
    def backend_name(self) -> str | None:
        return self._storage.name if self._storage else None

    @property
    def accounting(self) -> AccountingService:
        if self._accounting is None:
            raise RuntimeError("PlayTimerApp.start() has not been awaited")
        return self._accounting

    @property
    def scheduler(self) -> DailyResetScheduler:
        if self._scheduler is None:
            raise RuntimeError("PlayTimerApp.start() has not been awaited")
        return self._scheduler

    async def start(self, *, background: bool = True) -> None:
        """Select storage, build the services and optionally start the loops."""
        if self._accounting is not None:
            return
        if self._storage is None:
            self._storage = await open_storage(self.config)
        self._wire(self._storage)
        if background:
            self.scheduler.start()
            self.accounting.start_autosave()
            if self.config.notifications.times:
                self.accounting.start_limit_warnings()

    async def stop(self) -> None:
        if self._accounting is None:
            return
        await self.scheduler.stop()
        await self.accounting.shutdown()
        await self.storage.close()

    def reload_config(self, config: PlayTimerConfig) -> None:
        self.config_provider.reload(config)

    def snapshot(self) -> dict[str, Any]:
        """Export current configuration for debugging."""
        config = self.config
        return {
            "storage": self.backend_name,
            "database_type": config.database.type,
            "group_limits": dict(config.limits.group_limits),
            "daily_reset_time": config.daily_reset_time,
            "auto_save_minutes": config.auto_save_minutes,
            "counted_worlds": (
                list(config.world_limits.worlds) if config.world_limits.enabled else None
            ),
            "warning_thresholds": config.notifications.thresholds(),
            "active_sessions": [str(player) for player in self.sessions.active_players()],
        }

    def _wire(self, storage: Storage) -> None:
        accounts = storage.account_store()
        history = storage.history_store()
        self.bonuses = BonusLedger(storage.bonus_store(), self.config_provider, clock=self._clock)
        self.limits = LimitPolicy(
            accounts,
            self.bonuses,
            self.config_provider,
            permissions=self._permissions,
        )
        self._accounting = AccountingService(
            sessions=self.sessions,
            play_times=storage.play_time_store(),
            accounts=accounts,
            bonuses=self.bonuses,
            limits=self.limits,
            config=self.config_provider,
            history=history,
            event_bus=self.event_bus,
            clock=self._clock,
        )
        self._scheduler = DailyResetScheduler(
            accounts,
            self.config_provider,
            clock=self._clock,
            tick_seconds=self._tick_seconds,
            history=history,
            event_bus=self.event_bus,
        )
