from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import time

from snitch.constants import (
    CONNECTED,
    MAX_PLAYERS,
    QUAFFLE_RED,
    STATUS_WAITING,
)


@dataclass(frozen=True)
class Quaffle:
    id: str
    type: str

    @property
    def is_red(self) -> bool:
        return self.type == QUAFFLE_RED

    def to_dict(self):
        return {'id': self.id, 'type': self.type}


@dataclass(frozen=True)
class Player:
    id: str
    socket_id: str
    session_token: str
    name: str
    red_quaffles: int = 0
    connection_status: str = CONNECTED
    disconnected_at: Optional[float] = None

    @property
    def is_connected(self) -> bool:
        return self.connection_status == CONNECTED

    def to_dict(self):
        # session_token is a capability secret and never leaves in a snapshot
        return {
            'id': self.id,
            'socketId': self.socket_id,
            'name': self.name,
            'redQuaffles': self.red_quaffles,
            'connectionStatus': self.connection_status,
            'disconnectedAt': self.disconnected_at,
        }


@dataclass
class Spectator:
    id: str
    socket_id: str
    name: str
    joined_at: float = field(default_factory=time.time)

    def to_dict(self):
        return {
            'id': self.id,
            'socketId': self.socket_id,
            'name': self.name,
            'joinedAt': self.joined_at,
        }


@dataclass(frozen=True)
class GameState:
    """Authoritative snapshot of one room's game.

    Never mutated in place; the rules engine returns new instances and the
    room registry swaps them in.
    """
    room_id: str
    players: Tuple[Player, ...] = ()
    current_turn_player_id: Optional[str] = None
    status: str = STATUS_WAITING
    winner: Optional[str] = None
    turn_number: int = 0
    shared_quaffle_row: Tuple[Quaffle, ...] = ()

    @property
    def is_full(self) -> bool:
        return len(self.players) >= MAX_PLAYERS

    def to_dict(self):
        return {
            'roomId': self.room_id,
            'players': [p.to_dict() for p in self.players],
            'currentTurnPlayerId': self.current_turn_player_id,
            'status': self.status,
            'winner': self.winner,
            'turnNumber': self.turn_number,
            'sharedQuaffleRow': [q.to_dict() for q in self.shared_quaffle_row],
        }


@dataclass
class Room:
    code: str
    game_state: GameState
    spectators: List[Spectator] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    def to_dict(self):
        return {
            'id': self.code,
            'gameState': self.game_state.to_dict(),
            'spectators': [s.to_dict() for s in self.spectators],
            'createdAt': self.created_at,
        }
