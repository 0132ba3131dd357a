"""File-backed fallback storage for PlayTimer.

Each store keeps its whole dataset in memory and rewrites its JSON file after
every change. ``playtimes.json`` is a single object mapping player UUID strings
to accumulated seconds.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable
from uuid import UUID

from ..domain.exceptions import StorageError
from .base import AccountRecord, BonusRecord, HistoryRecord
from .memory import (
    InMemoryAccountStore,
    InMemoryBonusStore,
    InMemoryHistoryStore,
    InMemoryPlayTimeStore,
)

logger = logging.getLogger(__name__)

PLAYTIMES_FILE = "playtimes.json"
ACCOUNTS_FILE = "accounts.json"
BONUSES_FILE = "bonuses.json"
HISTORY_FILE = "history.jsonl"


class JsonDocument:
    """One JSON file, rewritten wholesale through a temp file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    def read(self) -> Any:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8") or "null")
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read %s (%s); starting with empty data.", self.path, exc)
            return None

    async def write(self, snapshot: Callable[[], Any]) -> None:
        async with self._lock:
            payload = snapshot()
            try:
                await asyncio.to_thread(self._write_sync, payload)
            except OSError as exc:
                raise StorageError(f"Failed to write {self.path}: {exc}") from exc

    def _write_sync(self, payload: Any) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self.path)


class JsonPlayTimeStore(InMemoryPlayTimeStore):
    def __init__(self, path: Path) -> None:
        super().__init__()
        self._document = JsonDocument(path)
        data = self._document.read()
        if isinstance(data, dict):
            for key, seconds in data.items():
                player_id = _parse_uuid(key, path)
                if player_id is None:
                    continue
                try:
                    self._totals[player_id] = int(seconds)
                except (TypeError, ValueError):
                    logger.warning("Ignoring non-integer playtime for %s in %s.", key, path)
        elif data is not None:
            logger.warning("%s does not contain a JSON object; starting with empty data.", path)

    async def _changed(self) -> None:
        await self._document.write(
            lambda: {str(player_id): seconds for player_id, seconds in self._totals.items()}
        )


class JsonAccountStore(InMemoryAccountStore):
    def __init__(self, path: Path) -> None:
        super().__init__()
        self._document = JsonDocument(path)
        data = self._document.read()
        if isinstance(data, dict):
            for key, entry in data.items():
                player_id = _parse_uuid(key, path)
                if player_id is None or not isinstance(entry, dict):
                    continue
                last_reset = entry.get("last_reset_date")
                try:
                    self._accounts[player_id] = AccountRecord(
                        player_id=player_id,
                        name=entry.get("name"),
                        rank=entry.get("rank") or "default",
                        played_today=int(entry.get("played_today", 0)),
                        last_reset_date=date.fromisoformat(last_reset) if last_reset else None,
                        base_allowance=int(entry.get("base_allowance", 0)),
                    )
                except (TypeError, ValueError):
                    logger.warning("Ignoring malformed account %s in %s.", key, path)
        elif data is not None:
            logger.warning("%s does not contain a JSON object; starting with no accounts.", path)

    async def flush(self) -> None:
        await self._changed()

    async def _changed(self) -> None:
        await self._document.write(self._snapshot)

    def _snapshot(self) -> dict[str, Any]:
        return {
            str(player_id): {
                "name": record.name,
                "rank": record.rank,
                "played_today": record.played_today,
                "last_reset_date": (
                    record.last_reset_date.isoformat() if record.last_reset_date else None
                ),
                "base_allowance": record.base_allowance,
            }
            for player_id, record in self._accounts.items()
        }


class JsonBonusStore(InMemoryBonusStore):
    def __init__(self, path: Path) -> None:
        super().__init__()
        self._document = JsonDocument(path)
        data = self._document.read()
        if isinstance(data, dict):
            entries = data.get("bonuses") or []
            if not isinstance(entries, list):
                logger.warning("%s: 'bonuses' must be a list; starting with no bonuses.", path)
                entries = []
            for entry in entries:
                try:
                    record = BonusRecord(
                        bonus_id=int(entry["id"]),
                        player_id=UUID(str(entry["uuid"])),
                        kind=str(entry["kind"]),
                        seconds=int(entry["seconds"]),
                        granted_date=date.fromisoformat(entry["granted_date"]),
                        active=bool(entry.get("active", True)),
                    )
                except (KeyError, TypeError, ValueError):
                    logger.warning("Ignoring malformed bonus entry %r in %s.", entry, path)
                    continue
                self._bonuses[record.bonus_id] = record
            known_max = max(self._bonuses, default=0)
            try:
                next_id = int(data.get("next_id", 1))
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid next_id %r in %s.", data.get("next_id"), path)
                next_id = 1
            self._next_id = max(next_id, known_max + 1)
        elif data is not None:
            logger.warning("%s does not contain a JSON object; starting with no bonuses.", path)

    async def flush(self) -> None:
        await self._changed()

    async def _changed(self) -> None:
        await self._document.write(self._snapshot)

    def _snapshot(self) -> dict[str, Any]:
        return {
            "next_id": self._next_id,
            "bonuses": [
                {
                    "id": record.bonus_id,
                    "uuid": str(record.player_id),
                    "kind": record.kind,
                    "seconds": record.seconds,
                    "granted_date": record.granted_date.isoformat(),
                    "active": record.active,
                }
                for record in self._bonuses.values()
            ],
        }


class JsonHistoryStore(InMemoryHistoryStore):
    """Append-only JSON lines log."""

    def __init__(self, path: Path, *, maxlen: int = 5000) -> None:
        super().__init__(maxlen=maxlen)
        self._path = path
        self._lock = asyncio.Lock()
        if path.exists():
            try:
                lines = path.read_text(encoding="utf-8").splitlines()
            except OSError as exc:
                logger.warning("Could not read %s (%s); history starts empty.", path, exc)
                lines = []
            for line in lines[-maxlen:]:
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                    if not isinstance(entry, dict):
                        raise TypeError("history line is not an object")
                    self._history.append(
                        HistoryRecord(
                            player_id=UUID(str(entry["uuid"])),
                            action=str(entry["action"]),
                            timestamp=datetime.fromisoformat(entry["timestamp"]),
                        )
                    )
                except (KeyError, TypeError, ValueError):
                    logger.warning("Ignoring malformed history line in %s: %r", path, line)
                    continue

    async def _appended(self, record: HistoryRecord) -> None:
        line = json.dumps(
            {
                "uuid": str(record.player_id),
                "action": record.action,
                "timestamp": record.timestamp.isoformat(),
            }
        )
        async with self._lock:
            try:
                await asyncio.to_thread(self._append_sync, line)
            except OSError as exc:
                raise StorageError(f"Failed to append to {self._path}: {exc}") from exc

    def _append_sync(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


class JsonFileStorage:
    """Bundle of file-backed stores living in one data directory."""

    name = "json"

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create data directory {self.data_dir}: {exc}") from exc
        self._play_times = JsonPlayTimeStore(self.data_dir / PLAYTIMES_FILE)
        self._accounts = JsonAccountStore(self.data_dir / ACCOUNTS_FILE)
        self._bonuses = JsonBonusStore(self.data_dir / BONUSES_FILE)
        self._history = JsonHistoryStore(self.data_dir / HISTORY_FILE)

    def play_time_store(self) -> JsonPlayTimeStore:
        return self._play_times

    def account_store(self) -> JsonAccountStore:
        return self._accounts

    def bonus_store(self) -> JsonBonusStore:
        return self._bonuses

    def history_store(self) -> JsonHistoryStore:
        return self._history

    async def close(self) -> None:
        await self._play_times.close()
        await self._accounts.flush()
        await self._bonuses.flush()


def _parse_uuid(raw: str, path: Path) -> UUID | None:
    try:
        return UUID(str(raw))
    except ValueError:
        logger.warning("Ignoring invalid player id %r in %s.", raw, path)
        return None
