import json
from datetime import date, datetime
from uuid import uuid4

import pytest

from playtimer.storage.base import BonusRecord
from playtimer.storage.json_file import (
    ACCOUNTS_FILE,
    BONUSES_FILE,
    HISTORY_FILE,
    PLAYTIMES_FILE,
    JsonFileStorage,
)


@pytest.mark.asyncio()
async def test_playtimes_file_maps_uuid_to_seconds(tmp_path):
    storage = JsonFileStorage(tmp_path)
    player = uuid4()
    await storage.play_time_store().save_play_time(player, 3600)

    data = json.loads((tmp_path / PLAYTIMES_FILE).read_text(encoding="utf-8"))
    assert data == {str(player): 3600}

    reopened = JsonFileStorage(tmp_path)
    assert await reopened.play_time_store().get_play_time(player) == 3600
    assert await reopened.play_time_store().load_all() == {player: 3600}


@pytest.mark.asyncio()
async def test_accounts_and_bonuses_survive_restart(tmp_path):
    storage = JsonFileStorage(tmp_path)
    player = uuid4()
    accounts = storage.account_store()
    await accounts.ensure_account(
        player, name="Alex", rank="vip", today=date(2024, 5, 1), base_allowance=3600
    )
    await accounts.add_played_today(player, 120)
    bonus = await storage.bonus_store().add_bonus(
        BonusRecord(player_id=player, kind="daily", seconds=300, granted_date=date(2024, 5, 1))
    )
    await storage.close()

    reopened = JsonFileStorage(tmp_path)
    account = await reopened.account_store().get_account(player)
    assert account.name == "Alex"
    assert account.played_today == 120
    assert account.last_reset_date == date(2024, 5, 1)
    bonuses = await reopened.bonus_store().bonuses_for(player)
    assert [record.bonus_id for record in bonuses] == [bonus.bonus_id]

    second = await reopened.bonus_store().add_bonus(
        BonusRecord(player_id=player, kind="permanent", seconds=60, granted_date=date(2024, 5, 1))
    )
    assert second.bonus_id > bonus.bonus_id


@pytest.mark.asyncio()
async def test_history_is_appended_as_json_lines(tmp_path):
    storage = JsonFileStorage(tmp_path)
    player = uuid4()
    history = storage.history_store()
    await history.add_entry(player, "session_end:10", datetime(2024, 5, 1, 10, 0))
    await history.add_entry(player, "session_end:20", datetime(2024, 5, 1, 11, 0))

    lines = (tmp_path / HISTORY_FILE).read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    reopened = JsonFileStorage(tmp_path)
    recent = await reopened.history_store().recent_for(player)
    assert [entry.action for entry in recent] == ["session_end:20", "session_end:10"]


def test_corrupt_files_start_empty(tmp_path, caplog):
    (tmp_path / PLAYTIMES_FILE).write_text("{not json", encoding="utf-8")
    (tmp_path / ACCOUNTS_FILE).write_text(json.dumps({"nope": {}}), encoding="utf-8")
    (tmp_path / BONUSES_FILE).write_text(
        json.dumps({"next_id": 3, "bonuses": [{"id": "x"}]}), encoding="utf-8"
    )
    storage = JsonFileStorage(tmp_path)
    assert storage.play_time_store()._totals == {}
    assert storage.account_store()._accounts == {}
    assert storage.bonus_store()._next_id == 3
    assert "Could not read" in caplog.text


@pytest.mark.asyncio()
async def test_no_temp_file_left_behind(tmp_path):
    storage = JsonFileStorage(tmp_path)
    await storage.play_time_store().save_play_time(uuid4(), 5)
    assert sorted(path.name for path in tmp_path.iterdir()) == [PLAYTIMES_FILE]


@pytest.mark.asyncio()
async def test_malformed_history_and_bonus_counter_do_not_block_startup(tmp_path, caplog):
    player = uuid4()
    good = json.dumps(
        {"uuid": str(player), "action": "session_end:5", "timestamp": "2024-05-01T10:00:00"}
    )
    (tmp_path / HISTORY_FILE).write_text(f"null\n[1,2]\n{good}\n\"text\"\n", encoding="utf-8")
    (tmp_path / BONUSES_FILE).write_text(
        json.dumps({"next_id": None, "bonuses": None}), encoding="utf-8"
    )

    storage = JsonFileStorage(tmp_path)
    recent = await storage.history_store().recent_for(player)
    assert [entry.action for entry in recent] == ["session_end:5"]
    assert "Ignoring malformed history line" in caplog.text

    bonus = await storage.bonus_store().add_bonus(
        BonusRecord(player_id=player, kind="daily", seconds=60, granted_date=date(2024, 5, 1))
    )
    assert bonus.bonus_id == 1


def test_bonus_counter_of_wrong_type_is_replaced(tmp_path, caplog):
    (tmp_path / BONUSES_FILE).write_text(
        json.dumps({"next_id": [7], "bonuses": "oops"}), encoding="utf-8"
    )
    storage = JsonFileStorage(tmp_path)
    assert storage.bonus_store()._next_id == 1
    assert "Ignoring invalid next_id" in caplog.text
