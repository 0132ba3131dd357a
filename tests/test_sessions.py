from datetime import datetime
from uuid import uuid4

from playtimer.domain.sessions import SessionTracker
from playtimer.testing import FrozenClock


def test_end_truncates_to_whole_seconds():
    clock = FrozenClock(datetime(2024, 5, 2, 12, 0, 0))
    tracker = SessionTracker(clock)
    player = uuid4()
    tracker.begin(player)
    clock.advance(seconds=125.9)
    assert tracker.end(player) == 125
    assert not tracker.is_active(player)


def test_end_without_begin_is_zero():
    tracker = SessionTracker(FrozenClock(datetime(2024, 5, 2, 12, 0)))
    assert tracker.end(uuid4()) == 0


def test_duplicate_begin_restarts_session():
    clock = FrozenClock(datetime(2024, 5, 2, 12, 0))
    tracker = SessionTracker(clock)
    player = uuid4()
    tracker.begin(player)
    clock.advance(seconds=300)
    tracker.begin(player)
    clock.advance(seconds=20)
    assert tracker.end(player) == 20


def test_checkpoint_restarts_without_losing_fractions():
    clock = FrozenClock(datetime(2024, 5, 2, 12, 0))
    tracker = SessionTracker(clock)
    player = uuid4()
    tracker.begin(player)
    clock.advance(seconds=10.5)
    assert tracker.checkpoint(player) == 10
    clock.advance(seconds=0.6)
    assert tracker.elapsed(player) == 1
    assert tracker.is_active(player)


def test_active_players_snapshot():
    tracker = SessionTracker(FrozenClock(datetime(2024, 5, 2, 12, 0)))
    first, second = uuid4(), uuid4()
    tracker.begin(first)
    tracker.begin(second)
    tracker.end(first)
    assert tuple(tracker.active_players()) == (second,)
