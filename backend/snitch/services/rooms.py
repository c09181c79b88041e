"""In-memory room registry.

The registry is the only writer of rooms, players and spectators. Callers
that read a room, compute a new game state and write it back hold
``registry.lock`` for the whole sequence so two events for the same room can
never interleave.
"""
import dataclasses
import logging
import random
import secrets
import threading
import time
from typing import Callable, Dict, List, Optional

from snitch.constants import (
    CONNECTED,
    DISCONNECTED,
    MAX_SPECTATORS,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
    STATUS_WAITING,
)
from snitch.models import GameState, Player, Room, Spectator
from snitch.services.game.rules import create_initial_state


def normalize_room_code(code) -> Optional[str]:
    if not isinstance(code, str):
        return None
    return code.strip().upper()


class RoomRegistry:
    def __init__(
        self,
        start_task: Callable,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.lock = threading.RLock()
        self._rooms: Dict[str, Room] = {}
        # player id -> token of the one live disconnect timer for that player
        self._disconnect_timers: Dict[str, object] = {}
        self._start_task = start_task
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()
        self.logger = logger or logging.getLogger(__name__)

    # ---- Rooms ----

    def generate_room_code(self) -> str:
        return ''.join(self._rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))

    def create_room(self) -> Room:
        with self.lock:
            code = self.generate_room_code()
            while code in self._rooms:
                code = self.generate_room_code()
            room = Room(
                code=code,
                game_state=create_initial_state(code, self._rng),
                created_at=self._clock(),
            )
            self._rooms[code] = room
            self.logger.info(f"[room-create] room={code} rooms={len(self._rooms)}")
            return room

    def get_room(self, code) -> Optional[Room]:
        normalized = normalize_room_code(code)
        if not normalized:
            return None
        with self.lock:
            return self._rooms.get(normalized)

    def update_state(self, code: str, state: GameState) -> None:
        with self.lock:
            room = self._rooms.get(code)
            if room:
                room.game_state = state

    def delete_room(self, code: str) -> Optional[Room]:
        with self.lock:
            room = self._rooms.pop(code, None)
            if not room:
                return None
            for player in room.game_state.players:
                self.cancel_disconnect_timer(player.id)
            self.logger.info(f"[room-delete] room={code} rooms={len(self._rooms)}")
            return room

    def room_count(self) -> int:
        with self.lock:
            return len(self._rooms)

    def room_summary(self, code) -> dict:
        """Read-only joinability report for a room code."""
        with self.lock:
            room = self.get_room(code)
            if not room:
                return {
                    'exists': False,
                    'canJoinAsPlayer': False,
                    'canJoinAsSpectator': False,
                    'playerCount': 0,
                    'spectatorCount': 0,
                    'gameStatus': None,
                }
            state = room.game_state
            return {
                'exists': True,
                'canJoinAsPlayer': not state.is_full and state.status == STATUS_WAITING,
                'canJoinAsSpectator': len(room.spectators) < MAX_SPECTATORS,
                'playerCount': len(state.players),
                'spectatorCount': len(room.spectators),
                'gameStatus': state.status,
            }

    def find_room_by_socket_id(self, socket_id: str) -> Optional[Room]:
        with self.lock:
            for room in self._rooms.values():
                if any(p.socket_id == socket_id for p in room.game_state.players):
                    return room
                if any(s.socket_id == socket_id for s in room.spectators):
                    return room
            return None

    # ---- Spectators ----

    def is_spectator(self, code: str, socket_id: str) -> bool:
        with self.lock:
            room = self.get_room(code)
            return bool(room) and any(s.socket_id == socket_id for s in room.spectators)

    def add_spectator(self, code: str, spectator: Spectator) -> bool:
        with self.lock:
            room = self.get_room(code)
            if not room or len(room.spectators) >= MAX_SPECTATORS:
                return False
            room.spectators.append(spectator)
            return True

    def remove_spectator(self, code: str, socket_id: str) -> Optional[Spectator]:
        with self.lock:
            room = self.get_room(code)
            if not room:
                return None
            for i, spectator in enumerate(room.spectators):
                if spectator.socket_id == socket_id:
                    return room.spectators.pop(i)
            return None

    # ---- Players and sessions ----

    def find_player_by_session_token(self, code: str, session_token) -> Optional[Player]:
        if not isinstance(session_token, str) or not session_token:
            return None
        with self.lock:
            room = self.get_room(code)
            if not room:
                return None
            for player in room.game_state.players:
                if secrets.compare_digest(player.session_token, session_token):
                    return player
            return None

    def _replace_player(self, code: str, player_id: str, **changes) -> Optional[Player]:
        room = self.get_room(code)
        if not room:
            return None
        players = list(room.game_state.players)
        for i, player in enumerate(players):
            if player.id == player_id:
                players[i] = dataclasses.replace(player, **changes)
                room.game_state = dataclasses.replace(room.game_state, players=tuple(players))
                return players[i]
        return None

    def rebind_player(self, code: str, player_id: str, socket_id: str) -> Optional[Player]:
        """Point a player at a new socket and mark them connected again."""
        with self.lock:
            self.cancel_disconnect_timer(player_id)
            return self._replace_player(
                code,
                player_id,
                socket_id=socket_id,
                connection_status=CONNECTED,
                disconnected_at=None,
            )

    def mark_player_disconnected(self, code: str, player_id: str) -> Optional[Player]:
        with self.lock:
            return self._replace_player(
                code,
                player_id,
                connection_status=DISCONNECTED,
                disconnected_at=self._clock(),
            )

    # ---- Disconnect timers ----

    def schedule_disconnect_timer(self, player_id: str, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` after ``delay`` seconds unless cancelled first.

        Scheduling again for the same player replaces the previous timer.
        """
        token = object()
        with self.lock:
            self._disconnect_timers[player_id] = token
        self.logger.info(f"[timer-set] player={player_id} delay={delay}s")
        self._start_task(self._run_disconnect_timer, player_id, token, delay, callback)

    def _run_disconnect_timer(self, player_id: str, token: object, delay: float, callback) -> None:
        self._sleep(delay)
        with self.lock:
            if self._disconnect_timers.get(player_id) is not token:
                self.logger.info(f"[timer-abort] player={player_id} cancelled or replaced")
                return
            del self._disconnect_timers[player_id]
        self.logger.info(f"[timer-fire] player={player_id}")
        try:
            callback()
        except Exception:
            self.logger.exception(f"[timer-error] player={player_id}")

    def cancel_disconnect_timer(self, player_id: str) -> bool:
        with self.lock:
            return self._disconnect_timers.pop(player_id, None) is not None

    def has_disconnect_timer(self, player_id: str) -> bool:
        with self.lock:
            return player_id in self._disconnect_timers

    # ---- Housekeeping ----

    def sweep_idle_rooms(self, max_age_sec: float) -> List[str]:
        """Delete rooms still waiting for a second player after ``max_age_sec``."""
        cutoff = self._clock() - max_age_sec
        with self.lock:
            stale = [
                code for code, room in self._rooms.items()
                if room.created_at < cutoff and room.game_state.status == STATUS_WAITING
            ]
            for code in stale:
                self.delete_room(code)
        if stale:
            self.logger.info(f"[sweep] removed {len(stale)} idle rooms: {', '.join(stale)}")
        return stale

    def start_idle_sweeper(self, interval_sec: float, max_age_sec: float) -> None:
        def _sweeper():
            while True:
                self._sleep(interval_sec)
                try:
                    self.sweep_idle_rooms(max_age_sec)
                except Exception:
                    self.logger.exception("[sweep-error]")

        self._start_task(_sweeper)
