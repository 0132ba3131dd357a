"""SQLAlchemy storage backend for PlayTimer."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator, Sequence
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, Integer, String, delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..domain.exceptions import StorageError
from .base import (
    AccountRecord,
    AccountStore,
    BonusRecord,
    BonusStore,
    HistoryRecord,
    HistoryStore,
    PlayTimeStore,
)


class Base(DeclarativeBase):
    pass


class PlayTimeTable(Base):
    __tablename__ = "playtimer_playtimes"

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True)
    seconds: Mapped[int] = mapped_column(Integer, default=0)


class UserTable(Base):
    __tablename__ = "playtimer_users"

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rank: Mapped[str] = mapped_column(String(64), default="default")
    played_today: Mapped[int] = mapped_column(Integer, default=0)
    last_reset_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    base_allowance: Mapped[int] = mapped_column(Integer, default=0)


class BonusTable(Base):
    __tablename__ = "playtimer_bonuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), index=True)
    kind: Mapped[str] = mapped_column(String(16))
    seconds: Mapped[int] = mapped_column(Integer)
    granted_date: Mapped[date] = mapped_column(Date)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class HistoryTable(Base):
    __tablename__ = "playtimer_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), index=True)
    action: Mapped[str] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Re-raise driver and connectivity failures as :class:`StorageError`."""
    try:
        yield
    except (SQLAlchemyError, OSError) as exc:
        raise StorageError(f"{action} failed: {exc}") from exc


class AsyncSQLAlchemyStorage:
    """Bundle of async stores backed by SQLAlchemy."""

    name = "sqlalchemy"

    def __init__(self, dsn: str, *, echo: bool = False) -> None:
        try:
            self._engine = create_async_engine(dsn, echo=echo, pool_pre_ping=True)
        except (SQLAlchemyError, ImportError) as exc:
            raise StorageError(f"Cannot create database engine: {exc}") from exc
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    async def connect(self) -> None:
        """Open a connection and create missing tables."""
        try:
            with storage_errors("Database connection"):
                async with self._engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
        except StorageError:
            await self._engine.dispose()
            raise

    def play_time_store(self) -> "AsyncSQLAlchemyPlayTimeStore":
        return AsyncSQLAlchemyPlayTimeStore(self._session_factory)

    def account_store(self) -> "AsyncSQLAlchemyAccountStore":
        return AsyncSQLAlchemyAccountStore(self._session_factory)

    def bonus_store(self) -> "AsyncSQLAlchemyBonusStore":
        return AsyncSQLAlchemyBonusStore(self._session_factory)

    def history_store(self) -> "AsyncSQLAlchemyHistoryStore":
        return AsyncSQLAlchemyHistoryStore(self._session_factory)

    async def close(self) -> None:
        with storage_errors("Closing database engine"):
            await self._engine.dispose()


class AsyncSQLAlchemyPlayTimeStore(PlayTimeStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_play_time(self, player_id: UUID) -> int:
        with storage_errors("Reading playtime"):
            async with self._session_factory() as session:
                row = await session.get(PlayTimeTable, str(player_id))
                return row.seconds if row else 0

    async def save_play_time(self, player_id: UUID, seconds: int) -> None:
        with storage_errors("Saving playtime"):
            async with self._session_factory() as session:
                stmt = (
                    update(PlayTimeTable)
                    .where(PlayTimeTable.uuid == str(player_id))
                    .values(seconds=int(seconds))
                )
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    session.add(PlayTimeTable(uuid=str(player_id), seconds=int(seconds)))
                try:
                    await session.commit()
                except IntegrityError:
                    # Row appeared between the update and the insert.
                    await session.rollback()
                    await session.execute(stmt)
                    await session.commit()

    async def load_all(self) -> dict[UUID, int]:
        with storage_errors("Loading playtimes"):
            async with self._session_factory() as session:
                rows = (await session.execute(select(PlayTimeTable))).scalars().all()
                return {UUID(row.uuid): row.seconds for row in rows}

    async def close(self) -> None:
        return None


class AsyncSQLAlchemyAccountStore(AccountStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def ensure_account(
        self,
        player_id: UUID,
        *,
        name: str | None,
        rank: str,
        today: date,
        base_allowance: int,
    ) -> AccountRecord:
        with storage_errors("Creating account"):
            async with self._session_factory() as session:
                row = await session.get(UserTable, str(player_id))
                if row is None:
                    row = UserTable(
                        uuid=str(player_id),
                        name=name,
                        rank=rank,
                        played_today=0,
                        last_reset_date=today,
                        base_allowance=base_allowance,
                    )
                    session.add(row)
                    try:
                        await session.commit()
                    except IntegrityError:
                        await session.rollback()
                        row = await session.get(UserTable, str(player_id))
                elif name and row.name != name:
                    row.name = name
                    await session.commit()
                return _to_account(row)

    async def get_account(self, player_id: UUID) -> AccountRecord | None:
        with storage_errors("Reading account"):
            async with self._session_factory() as session:
                row = await session.get(UserTable, str(player_id))
                return _to_account(row) if row else None

    async def add_played_today(self, player_id: UUID, seconds: int) -> None:
        with storage_errors("Updating played time"):
            async with self._session_factory() as session:
                stmt = (
                    update(UserTable)
                    .where(UserTable.uuid == str(player_id))
                    .values(played_today=UserTable.played_today + int(seconds))
                )
                await session.execute(stmt)
                await session.commit()

    async def reset_today(self, player_id: UUID, today: date, *, force: bool = False) -> bool:
        with storage_errors("Resetting daily counter"):
            async with self._session_factory() as session:
                stmt = (
                    update(UserTable)
                    .where(UserTable.uuid == str(player_id))
                    .values(played_today=0, last_reset_date=today)
                )
                if not force:
                    stmt = stmt.where(
                        or_(
                            UserTable.last_reset_date.is_(None),
                            UserTable.last_reset_date < today,
                        )
                    )
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount > 0

    async def stale_accounts(self, today: date) -> Sequence[UUID]:
        with storage_errors("Listing stale accounts"):
            async with self._session_factory() as session:
                stmt = select(UserTable.uuid).where(
                    or_(UserTable.last_reset_date.is_(None), UserTable.last_reset_date < today)
                )
                rows = (await session.execute(stmt)).scalars().all()
                return [UUID(value) for value in rows]

    async def set_rank(self, player_id: UUID, rank: str, base_allowance: int) -> None:
        with storage_errors("Changing rank"):
            async with self._session_factory() as session:
                stmt = (
                    update(UserTable)
                    .where(UserTable.uuid == str(player_id))
                    .values(rank=rank, base_allowance=base_allowance)
                )
                await session.execute(stmt)
                await session.commit()


class AsyncSQLAlchemyBonusStore(BonusStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add_bonus(self, record: BonusRecord) -> BonusRecord:
        with storage_errors("Adding bonus"):
            async with self._session_factory() as session:
                row = BonusTable(
                    uuid=str(record.player_id),
                    kind=record.kind,
                    seconds=record.seconds,
                    granted_date=record.granted_date,
                    active=record.active,
                )
                session.add(row)
                await session.commit()
                return _to_bonus(row)

    async def remove_bonus(self, bonus_id: int) -> bool:
        with storage_errors("Removing bonus"):
            async with self._session_factory() as session:
                result = await session.execute(delete(BonusTable).where(BonusTable.id == bonus_id))
                await session.commit()
                return result.rowcount > 0

    async def set_active(self, bonus_id: int, active: bool) -> bool:
        with storage_errors("Toggling bonus"):
            async with self._session_factory() as session:
                stmt = update(BonusTable).where(BonusTable.id == bonus_id).values(active=active)
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount > 0

    async def bonuses_for(self, player_id: UUID) -> Sequence[BonusRecord]:
        with storage_errors("Reading bonuses"):
            async with self._session_factory() as session:
                stmt = (
                    select(BonusTable)
                    .where(BonusTable.uuid == str(player_id))
                    .order_by(BonusTable.id)
                )
                rows = (await session.execute(stmt)).scalars().all()
                return [_to_bonus(row) for row in rows]


class AsyncSQLAlchemyHistoryStore(HistoryStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add_entry(self, player_id: UUID, action: str, timestamp: datetime) -> None:
        with storage_errors("Writing history"):
            async with self._session_factory() as session:
                session.add(HistoryTable(uuid=str(player_id), action=action, created_at=timestamp))
                await session.commit()

    async def recent_for(self, player_id: UUID, limit: int = 20) -> Sequence[HistoryRecord]:
        with storage_errors("Reading history"):
            async with self._session_factory() as session:
                stmt = (
                    select(HistoryTable)
                    .where(HistoryTable.uuid == str(player_id))
                    .order_by(HistoryTable.id.desc())
                    .limit(limit)
                )
                rows = (await session.execute(stmt)).scalars().all()
                return [
                    HistoryRecord(
                        player_id=UUID(row.uuid),
                        action=row.action,
                        timestamp=row.created_at,
                    )
                    for row in rows
                ]


def _to_account(row: UserTable) -> AccountRecord:
    return AccountRecord(
        player_id=UUID(row.uuid),
        name=row.name,
        rank=row.rank,
        played_today=row.played_today,
        last_reset_date=row.last_reset_date,
        base_allowance=row.base_allowance,
    )


def _to_bonus(row: BonusTable) -> BonusRecord:
    return BonusRecord(
        bonus_id=row.id,
        player_id=UUID(row.uuid),
        kind=row.kind,
        seconds=row.seconds,
        granted_date=row.granted_date,
        active=row.active,
    )
