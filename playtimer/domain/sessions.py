"""Ephemeral tracking of who is online and since when."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable, Iterable
from uuid import UUID

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Timezone-aware local wall-clock time."""
    return datetime.now().astimezone()


class SessionTracker:
    """Map of active player to session start instant.

    Nothing here is persisted; a restart begins with an empty map. All access
    goes through one lock so host threads and the event loop can share it.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or local_now
        self._sessions: dict[UUID, datetime] = {}
        self._lock = threading.Lock()

    def begin(self, player_id: UUID) -> datetime:
        started = self._clock()
        with self._lock:
            # A duplicate join replaces a session that never ended properly.
            self._sessions[player_id] = started
        return started

    def end(self, player_id: UUID) -> int:
        """Close the session and return whole seconds played (0 if unknown)."""
        now = self._clock()
        with self._lock:
            started = self._sessions.pop(player_id, None)
        return _elapsed(started, now)

    def checkpoint(self, player_id: UUID) -> int:
        """Return seconds played so far and restart the session at now."""
        now = self._clock()
        with self._lock:
            started = self._sessions.get(player_id)
            if started is None:
                return 0
            seconds = _elapsed(started, now)
            # Keep the sub-second remainder so repeated checkpoints do not drift.
            self._sessions[player_id] = started + timedelta(seconds=seconds)
        return seconds

    def elapsed(self, player_id: UUID) -> int:
        now = self._clock()
        with self._lock:
            started = self._sessions.get(player_id)
        return _elapsed(started, now)

    def is_active(self, player_id: UUID) -> bool:
        with self._lock:
            return player_id in self._sessions

    def active_players(self) -> Iterable[UUID]:
        with self._lock:
            return tuple(self._sessions)


def _elapsed(started: datetime | None, now: datetime) -> int:
    if started is None:
        return 0
    return max(0, int((now - started).total_seconds()))
