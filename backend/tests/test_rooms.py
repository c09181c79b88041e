import random

import pytest

from snitch.constants import (
    CONNECTED,
    DISCONNECTED,
    MAX_SPECTATORS,
    ROOM_CODE_ALPHABET,
    STATUS_PLAYING,
    STATUS_WAITING,
)
from snitch.models import Spectator
from snitch.services.game.rules import add_player, create_player, start_game
from snitch.services.rooms import RoomRegistry


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class ManualTasks:
    """Collects background tasks so a test decides when they run."""

    def __init__(self):
        self.pending = []

    def __call__(self, target, *args):
        self.pending.append((target, args))

    def run_all(self):
        pending, self.pending = self.pending, []
        for target, args in pending:
            target(*args)


@pytest.fixture()
def tasks():
    return ManualTasks()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def rooms(tasks, clock):
    return RoomRegistry(start_task=tasks, sleep=lambda _: None, clock=clock, rng=random.Random(5))


def _room_with_players(rooms, *names):
    room = rooms.create_room()
    state = room.game_state
    for name in names:
        state = add_player(state, create_player(f"sid-{name}", name))
    if len(names) == 2:
        state = start_game(state)
    rooms.update_state(room.code, state)
    return room


def test_room_codes_use_unambiguous_alphabet(rooms):
    for _ in range(30):
        code = rooms.create_room().code
        assert len(code) == 4
        assert all(ch in ROOM_CODE_ALPHABET for ch in code)
    assert rooms.room_count() == 30


def test_code_collisions_are_retried(tasks, clock):
    rooms = RoomRegistry(start_task=tasks, clock=clock, rng=random.Random(9))
    first = rooms.create_room()
    # Same seed produces the same first code, which is now taken
    rooms._rng = random.Random(9)
    second = rooms.create_room()
    assert second.code != first.code


def test_lookup_is_case_insensitive(rooms):
    room = rooms.create_room()
    assert rooms.get_room(room.code.lower()) is room
    assert rooms.get_room(f"  {room.code} ") is room
    assert rooms.get_room(None) is None
    assert rooms.get_room('ZZZZ') is None


def test_find_room_by_socket_id_covers_players_and_spectators(rooms):
    room = _room_with_players(rooms, 'alice')
    rooms.add_spectator(room.code, Spectator('spec-1', 'sid-watcher', 'Watcher'))
    assert rooms.find_room_by_socket_id('sid-alice') is room
    assert rooms.find_room_by_socket_id('sid-watcher') is room
    assert rooms.is_spectator(room.code, 'sid-watcher')
    assert not rooms.is_spectator(room.code, 'sid-alice')
    assert not rooms.is_spectator('ZZZZ', 'sid-watcher')
    assert rooms.find_room_by_socket_id('sid-nobody') is None


def test_spectator_cap(rooms):
    room = rooms.create_room()
    for i in range(MAX_SPECTATORS):
        assert rooms.add_spectator(room.code, Spectator(f"s{i}", f"sid-{i}", f"S{i}"))
    assert not rooms.add_spectator(room.code, Spectator('extra', 'sid-extra', 'Extra'))
    assert not rooms.add_spectator('NOPE', Spectator('x', 'sid-x', 'X'))
    assert len(room.spectators) == MAX_SPECTATORS


def test_remove_spectator(rooms):
    room = rooms.create_room()
    rooms.add_spectator(room.code, Spectator('s1', 'sid-1', 'One'))
    removed = rooms.remove_spectator(room.code, 'sid-1')
    assert removed.name == 'One'
    assert rooms.remove_spectator(room.code, 'sid-1') is None


def test_session_token_lookup_is_scoped_to_room(rooms):
    room = _room_with_players(rooms, 'alice', 'bob')
    other = _room_with_players(rooms, 'cara')
    alice = room.game_state.players[0]
    assert rooms.find_player_by_session_token(room.code, alice.session_token).id == alice.id
    assert rooms.find_player_by_session_token(other.code, alice.session_token) is None
    assert rooms.find_player_by_session_token(room.code, 'wrong') is None
    assert rooms.find_player_by_session_token(room.code, None) is None


def test_mark_disconnected_then_rebind(rooms, clock):
    room = _room_with_players(rooms, 'alice', 'bob')
    alice = room.game_state.players[0]

    marked = rooms.mark_player_disconnected(room.code, alice.id)
    assert marked.connection_status == DISCONNECTED
    assert marked.disconnected_at == clock.now

    rooms.schedule_disconnect_timer(alice.id, 60, lambda: None)
    rebound = rooms.rebind_player(room.code, alice.id, 'sid-alice-2')
    assert rebound.socket_id == 'sid-alice-2'
    assert rebound.connection_status == CONNECTED
    assert rebound.disconnected_at is None
    assert not rooms.has_disconnect_timer(alice.id)
    # Order of players is fixed at join time
    assert [p.name for p in room.game_state.players] == ['alice', 'bob']


def test_timer_fires_when_not_cancelled(rooms, tasks):
    fired = []
    rooms.schedule_disconnect_timer('p1', 60, lambda: fired.append('p1'))
    tasks.run_all()
    assert fired == ['p1']
    assert not rooms.has_disconnect_timer('p1')


def test_cancelled_timer_is_a_no_op(rooms, tasks):
    fired = []
    rooms.schedule_disconnect_timer('p1', 60, lambda: fired.append('p1'))
    assert rooms.cancel_disconnect_timer('p1')
    tasks.run_all()
    assert fired == []


def test_rescheduling_replaces_previous_timer(rooms, tasks):
    fired = []
    rooms.schedule_disconnect_timer('p1', 60, lambda: fired.append('old'))
    rooms.schedule_disconnect_timer('p1', 60, lambda: fired.append('new'))
    tasks.run_all()
    assert fired == ['new']


def test_delete_room_cancels_player_timers(rooms, tasks):
    room = _room_with_players(rooms, 'alice', 'bob')
    alice = room.game_state.players[0]
    fired = []
    rooms.schedule_disconnect_timer(alice.id, 60, lambda: fired.append(alice.id))
    rooms.delete_room(room.code)
    tasks.run_all()
    assert fired == []
    assert rooms.get_room(room.code) is None


def test_sweep_removes_only_old_waiting_rooms(rooms, clock):
    waiting = _room_with_players(rooms, 'alice')
    playing = _room_with_players(rooms, 'bob', 'cara')
    clock.now += 3601
    fresh = rooms.create_room()

    removed = rooms.sweep_idle_rooms(3600)

    assert removed == [waiting.code]
    assert rooms.get_room(playing.code).game_state.status == STATUS_PLAYING
    assert rooms.get_room(fresh.code).game_state.status == STATUS_WAITING


def test_room_summary(rooms):
    assert rooms.room_summary('NOPE') == {
        'exists': False,
        'canJoinAsPlayer': False,
        'canJoinAsSpectator': False,
        'playerCount': 0,
        'spectatorCount': 0,
        'gameStatus': None,
    }
    room = _room_with_players(rooms, 'alice')
    summary = rooms.room_summary(room.code.lower())
    assert summary['exists'] and summary['canJoinAsPlayer'] and summary['canJoinAsSpectator']
    assert summary['playerCount'] == 1
    assert summary['gameStatus'] == STATUS_WAITING
