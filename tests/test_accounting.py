import asyncio
import logging
from datetime import datetime
from uuid import uuid4

import pytest

from playtimer.config import DatabaseConfig, LimitsConfig, PlayTimerConfig
from playtimer.domain.bonuses import BonusKind
from playtimer.domain.events import BONUS_GRANTED, RANK_CHANGED, SESSION_COMMITTED
from playtimer.domain.exceptions import (
    TRY_AGAIN_LATER,
    ServiceUnavailable,
    StorageError,
    ValidationError,
)
from playtimer.storage.memory import InMemoryPlayTimeStore, InMemoryStorage
from playtimer.testing import FrozenClock, app_fixture


class BrokenPlayTimeStore(InMemoryPlayTimeStore):
    async def get_play_time(self, player_id):
        raise StorageError("connection refused")

    async def save_play_time(self, player_id, seconds):
        raise StorageError("connection refused")


class SlowPlayTimeStore(InMemoryPlayTimeStore):
    async def get_play_time(self, player_id):
        value = await super().get_play_time(player_id)
        await asyncio.sleep(0.01)
        return value


class StorageWith(InMemoryStorage):
    def __init__(self, play_times):
        super().__init__()
        self._play_times = play_times


def make_config(**limits):
    return PlayTimerConfig(
        database=DatabaseConfig(type="memory"),
        limits=LimitsConfig(group_limits=limits),
    )


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2024, 5, 2, 12, 0))


@pytest.mark.asyncio()
async def test_session_adds_to_total_and_played_today(clock):
    app = app_fixture(clock=clock, config=make_config(vip=3600))
    await app.start(background=False)
    player = uuid4()

    await app.accounting.on_session_start(player, name="Alex", rank="vip")
    clock.advance(seconds=125.7)
    assert await app.accounting.on_session_end(player) == 125

    await app.accounting.on_session_start(player, name="Alex", rank="vip")
    clock.advance(seconds=75)
    await app.accounting.on_session_end(player)

    assert await app.accounting.query_accumulated(player) == 200
    assert await app.accounting.query_played_today(player) == 200
    budget = await app.accounting.get_remaining(player)
    assert budget.remaining == 3400
    await app.stop()


@pytest.mark.asyncio()
async def test_unknown_player_queries_return_zero(clock):
    app = app_fixture(clock=clock)
    await app.start(background=False)
    player = uuid4()
    assert await app.accounting.query_accumulated(player) == 0
    assert await app.accounting.query_played_today(player) == 0
    assert await app.accounting.on_session_end(player) == 0
    await app.stop()


@pytest.mark.asyncio()
async def test_storage_failure_loses_session_without_raising(clock, caplog):
    app = app_fixture(clock=clock, storage=StorageWith(BrokenPlayTimeStore()))
    await app.start(background=False)
    player = uuid4()
    await app.accounting.on_session_start(player, name="Alex")
    clock.advance(seconds=90)

    with caplog.at_level(logging.WARNING):
        assert await app.accounting.on_session_end(player) == 90
    assert "Lost 90 second(s)" in caplog.text
    assert not app.sessions.is_active(player)
    await app.stop()


@pytest.mark.asyncio()
async def test_query_failure_raises_service_unavailable(clock):
    app = app_fixture(clock=clock, storage=StorageWith(BrokenPlayTimeStore()))
    await app.start(background=False)
    with pytest.raises(ServiceUnavailable) as excinfo:
        await app.accounting.query_accumulated(uuid4())
    assert excinfo.value.user_message == TRY_AGAIN_LATER
    await app.stop()


@pytest.mark.asyncio()
async def test_overlapping_commits_for_one_player_are_not_lost(clock):
    app = app_fixture(clock=clock, storage=StorageWith(SlowPlayTimeStore()))
    await app.start(background=False)
    player = uuid4()

    await app.accounting.on_session_start(player)
    clock.advance(seconds=50)
    first = app.accounting.dispatch_session_end(player)
    await app.accounting.on_session_start(player)
    clock.advance(seconds=30)
    second = app.accounting.dispatch_session_end(player)

    assert await asyncio.gather(first, second) == [True, True]
    assert await app.accounting.query_accumulated(player) == 80
    assert await app.accounting.query_played_today(player) == 80
    await app.stop()


@pytest.mark.asyncio()
async def test_autosave_checkpoints_open_sessions(clock):
    app = app_fixture(clock=clock)
    await app.start(background=False)
    player = uuid4()
    await app.accounting.on_session_start(player)
    clock.advance(minutes=5)

    assert await app.accounting.autosave() == 1
    assert await app.accounting.query_accumulated(player) == 300
    assert app.sessions.is_active(player)

    clock.advance(seconds=20)
    assert await app.accounting.on_session_end(player) == 20
    assert await app.accounting.query_accumulated(player) == 320
    await app.stop()


@pytest.mark.asyncio()
async def test_shutdown_flushes_open_sessions(clock):
    storage = InMemoryStorage()
    app = app_fixture(clock=clock, storage=storage)
    await app.start(background=False)
    players = [uuid4(), uuid4()]
    for player in players:
        await app.accounting.on_session_start(player)
    clock.advance(seconds=40)

    await app.stop()
    totals = await storage.play_time_store().load_all()
    assert totals == {players[0]: 40, players[1]: 40}
    assert app.sessions.active_players() == ()


@pytest.mark.asyncio()
async def test_grant_bonus_extends_remaining_and_publishes(clock):
    app = app_fixture(clock=clock, config=make_config(default=1800))
    await app.start(background=False)
    events = []

    async def listener(payload):
        events.append(payload)

    app.event_bus.subscribe(BONUS_GRANTED, listener)
    player = uuid4()
    await app.accounting.on_session_start(player)

    bonus = await app.accounting.grant_bonus(player, 600, "daily")
    assert bonus.kind is BonusKind.DAILY
    assert (await app.accounting.get_remaining(player)).remaining == 2400
    assert events[0]["bonus"] == bonus
    assert events[0]["notify"] is True

    assert await app.accounting.revoke_bonus(bonus.bonus_id)
    assert not await app.accounting.revoke_bonus(bonus.bonus_id)
    assert (await app.accounting.get_remaining(player)).remaining == 1800
    await app.stop()


@pytest.mark.asyncio()
async def test_grant_bonus_rejects_bad_seconds(clock):
    app = app_fixture(clock=clock)
    await app.start(background=False)
    with pytest.raises(ValidationError):
        await app.accounting.grant_bonus(uuid4(), -5, BonusKind.PERMANENT)
    with pytest.raises(ValidationError):
        await app.accounting.grant_bonus(uuid4(), True, BonusKind.PERMANENT)
    await app.stop()


@pytest.mark.asyncio()
async def test_change_rank_updates_allowance(clock):
    app = app_fixture(clock=clock, config=make_config(default=600, vip=7200))
    await app.start(background=False)
    changes = []

    async def listener(payload):
        changes.append(payload["rank"])

    app.event_bus.subscribe(RANK_CHANGED, listener)
    player = uuid4()
    await app.accounting.on_session_start(player)
    assert (await app.accounting.get_remaining(player)).limit == 600

    assert await app.accounting.change_rank(player, "VIP") == 7200
    budget = await app.accounting.get_remaining(player)
    assert budget.limit == 7200
    assert changes == ["VIP"]
    with pytest.raises(ValidationError):
        await app.accounting.change_rank(player, "  ")
    await app.stop()


@pytest.mark.asyncio()
async def test_reset_player_clears_played_today_but_keeps_total(clock):
    app = app_fixture(clock=clock)
    await app.start(background=False)
    player = uuid4()
    await app.accounting.on_session_start(player)
    clock.advance(seconds=500)
    await app.accounting.on_session_end(player)

    assert await app.accounting.reset_player(player)
    assert await app.accounting.query_played_today(player) == 0
    assert await app.accounting.query_accumulated(player) == 500
    history = await app.storage.history_store().recent_for(player)
    assert history[0].action == "manual_reset"
    await app.stop()


@pytest.mark.asyncio()
async def test_session_commit_event_carries_new_total(clock):
    app = app_fixture(clock=clock)
    await app.start(background=False)
    committed = []

    async def listener(payload):
        committed.append((payload["seconds"], payload["total"]))

    app.event_bus.subscribe(SESSION_COMMITTED, listener)
    player = uuid4()
    for seconds in (10, 15):
        await app.accounting.on_session_start(player)
        clock.advance(seconds=seconds)
        await app.accounting.on_session_end(player)
    assert committed == [(10, 10), (15, 25)]
    await app.stop()


@pytest.mark.asyncio()
async def test_session_without_join_hook_still_counts_today(clock):
    app = app_fixture(clock=clock, config=make_config(default=600))
    await app.start(background=False)
    player = uuid4()
    app.sessions.begin(player)
    clock.advance(seconds=900)

    assert await app.accounting.on_session_end(player) == 900
    assert await app.accounting.query_accumulated(player) == 900
    assert await app.accounting.query_played_today(player) == 900
    budget = await app.accounting.get_remaining(player)
    assert budget.remaining == 0
    assert budget.exhausted
    await app.stop()


@pytest.mark.asyncio()
async def test_reloaded_mixed_case_limits_apply(clock):
    app = app_fixture(clock=clock)
    await app.start(background=False)
    player = uuid4()
    await app.accounting.on_session_start(player, rank="vip")
    clock.advance(seconds=100)
    await app.accounting.on_session_end(player)
    assert (await app.accounting.get_remaining(player)).remaining is None

    app.reload_config(make_config(VIP=600))
    assert (await app.accounting.get_remaining(player)).remaining == 500
    await app.stop()
