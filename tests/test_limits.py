from datetime import date, datetime
from uuid import uuid4

import pytest

from playtimer.config import ConfigProvider, LimitsConfig, PlayTimerConfig
from playtimer.domain.bonuses import BonusKind, BonusLedger
from playtimer.domain.limits import LimitPolicy
from playtimer.storage.memory import InMemoryAccountStore, InMemoryBonusStore
from playtimer.testing import FrozenClock, StaticPermissions

TODAY = date(2024, 5, 2)


@pytest.fixture()
def setup():
    clock = FrozenClock(datetime(2024, 5, 2, 12, 0))
    config = ConfigProvider(
        PlayTimerConfig(limits=LimitsConfig(group_limits={"vip": 3600, "guest": 1800}))
    )
    accounts = InMemoryAccountStore()
    ledger = BonusLedger(InMemoryBonusStore(), config, clock=clock)
    permissions = StaticPermissions()
    policy = LimitPolicy(accounts, ledger, config, permissions=permissions)
    return accounts, ledger, policy, permissions


async def add_player(accounts, rank: str, played: int = 0):
    player = uuid4()
    await accounts.ensure_account(player, name="Steve", rank=rank, today=TODAY, base_allowance=0)
    if played:
        await accounts.add_played_today(player, played)
    return player


@pytest.mark.asyncio()
async def test_remaining_is_limit_minus_played_today(setup):
    accounts, ledger, policy, _ = setup
    player = await add_player(accounts, "vip", played=1000)
    await ledger.grant(player, 600, BonusKind.PERMANENT)
    assert await policy.effective_limit(player) == 4200
    budget = await policy.budget(player)
    assert budget.remaining == 3200
    assert budget.bonus_seconds == 600
    assert not budget.exhausted


@pytest.mark.asyncio()
async def test_remaining_is_floored_at_zero(setup):
    accounts, _, policy, _ = setup
    player = await add_player(accounts, "guest", played=5000)
    assert await policy.remaining(player) == 0
    assert await policy.is_exhausted(player)


@pytest.mark.asyncio()
async def test_unknown_rank_is_unlimited(setup):
    accounts, _, policy, _ = setup
    player = await add_player(accounts, "wanderer", played=99999)
    assert policy.base_allowance("wanderer") == 0
    assert await policy.effective_limit(player) == 0
    assert await policy.remaining(player) is None


@pytest.mark.asyncio()
async def test_rank_lookup_ignores_case(setup):
    accounts, _, policy, _ = setup
    player = await add_player(accounts, "VIP", played=600)
    assert await policy.remaining(player) == 3000


@pytest.mark.asyncio()
async def test_bypass_reports_unlimited(setup):
    accounts, _, policy, permissions = setup
    player = await add_player(accounts, "guest", played=5000)
    permissions.grant(player, "playtimer.bypass")
    budget = await policy.budget(player)
    assert budget.bypass
    assert budget.remaining is None
    assert budget.unlimited


@pytest.mark.asyncio()
async def test_bonus_does_not_cap_unlimited_rank(setup):
    accounts, ledger, policy, _ = setup
    player = await add_player(accounts, "staff")
    await ledger.grant(player, 600, BonusKind.DAILY)
    assert await policy.remaining(player) is None


@pytest.mark.asyncio()
async def test_player_without_account_uses_default_rank(setup):
    _, _, policy, _ = setup
    budget = await policy.budget(uuid4())
    assert budget.rank == "default"
    assert budget.played_today == 0
    assert budget.remaining is None
