import pytest

from random_access_engine import (
    IDLE,
    Backlogged,
    Idle,
    Ready,
    Source,
    backlog,
    countdown,
)


def test_countdown_last_tick_makes_source_ready():
    assert countdown(Backlogged(1, since_slot=3)) == Ready(3)


def test_countdown_keeps_ready_timestamp():
    assert countdown(Backlogged(4, since_slot=9)) == Backlogged(3, since_slot=9)


@pytest.mark.parametrize("state", [IDLE, Ready(2)])
def test_countdown_leaves_idle_and_ready_alone(state):
    assert countdown(state) == state


def test_backlog_without_ticks_is_ready():
    assert backlog(0, since_slot=5) == Ready(5)
    assert backlog(2, since_slot=5) == Backlogged(2, 5)


@pytest.mark.parametrize("state, status", [
    (Idle(), 0),
    (Ready(1), 1),
    (Backlogged(1, 1), 2),
    (Backlogged(6, 1), 7),
])
def test_status_encoding(state, status):
    assert Source(0, state=state).status == status


def test_ready_timestamp():
    assert Source(0).ready_timestamp is None
    assert Source(0, state=Backlogged(2, 11)).ready_timestamp == 11
