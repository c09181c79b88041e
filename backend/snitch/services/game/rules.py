import dataclasses
import itertools
import random
import secrets
import string
import time
from typing import Optional

from snitch.constants import (
    CONNECTED,
    MAX_PLAYERS,
    MAX_SELECTABLE,
    QUAFFLES_TO_WIN,
    SESSION_TOKEN_LENGTH,
    STATUS_FINISHED,
    STATUS_PLAYING,
    STATUS_WAITING,
    VISIBLE_QUAFFLES,
)
from snitch.models import GameState, Player
from .errors import (
    DuplicateSelectionError,
    EmptySelectionError,
    GameNotInProgressError,
    InsufficientPlayersError,
    MalformedSelectionError,
    NotYourTurnError,
    OutOfRangeError,
    PlayerNotFoundError,
    RoomFullError,
    TooManySelectedError,
)
from .quaffles import generate_quaffle_row, refill_quaffle_row


_player_ids = itertools.count(1)
_TOKEN_ALPHABET = string.ascii_letters + string.digits


def generate_player_id() -> str:
    return f"player_{int(time.time() * 1000)}_{next(_player_ids)}"


def generate_session_token() -> str:
    return ''.join(secrets.choice(_TOKEN_ALPHABET) for _ in range(SESSION_TOKEN_LENGTH))


def create_player(socket_id: str, name: str) -> Player:
    return Player(
        id=generate_player_id(),
        socket_id=socket_id,
        session_token=generate_session_token(),
        name=name,
        red_quaffles=0,
        connection_status=CONNECTED,
    )


def create_initial_state(room_id: str, rng: Optional[random.Random] = None) -> GameState:
    return GameState(
        room_id=room_id,
        players=(),
        current_turn_player_id=None,
        status=STATUS_WAITING,
        winner=None,
        turn_number=0,
        shared_quaffle_row=generate_quaffle_row(VISIBLE_QUAFFLES, rng),
    )


def add_player(state: GameState, player: Player) -> GameState:
    if len(state.players) >= MAX_PLAYERS:
        raise RoomFullError()
    return dataclasses.replace(state, players=state.players + (player,))


def start_game(state: GameState, rng: Optional[random.Random] = None) -> GameState:
    """Move a full room from waiting to playing with a random first player."""
    if len(state.players) != MAX_PLAYERS:
        raise InsufficientPlayersError(len(state.players))
    first = (rng or random).choice(state.players)
    return dataclasses.replace(
        state,
        current_turn_player_id=first.id,
        status=STATUS_PLAYING,
        turn_number=1,
    )


def validate_selection(indices) -> None:
    """Raise a MoveError unless ``indices`` is a legal draw.

    A legal draw takes 1 to MAX_SELECTABLE distinct positions, all among the
    first MAX_SELECTABLE quaffles of the row.
    """
    if not isinstance(indices, (list, tuple)):
        raise MalformedSelectionError()
    if any(isinstance(i, bool) or not isinstance(i, int) for i in indices):
        raise MalformedSelectionError()
    if not indices:
        raise EmptySelectionError()
    if len(indices) > MAX_SELECTABLE:
        raise TooManySelectedError()
    if any(i < 0 or i >= MAX_SELECTABLE for i in indices):
        raise OutOfRangeError()
    if len(set(indices)) != len(indices):
        raise DuplicateSelectionError()


def get_player(state: GameState, player_id: str) -> Optional[Player]:
    return next((p for p in state.players if p.id == player_id), None)


def get_player_by_socket_id(state: GameState, socket_id: str) -> Optional[Player]:
    return next((p for p in state.players if p.socket_id == socket_id), None)


def process_move(state: GameState, player_id: str, indices, rng: Optional[random.Random] = None) -> GameState:
    """Apply one draw and return the resulting state.

    Raises a MoveError and leaves ``state`` untouched when the move is not
    legal. Positions refer to the row as it was before the draw.
    """
    if state.current_turn_player_id != player_id:
        raise NotYourTurnError()
    if state.status != STATUS_PLAYING:
        raise GameNotInProgressError()
    validate_selection(indices)

    player_index = next((i for i, p in enumerate(state.players) if p.id == player_id), None)
    if player_index is None:
        raise PlayerNotFoundError()
    player = state.players[player_index]

    row = list(state.shared_quaffle_row)
    red_taken = 0
    # Highest index first so the lower ones still point at the same quaffle
    for index in sorted(indices, reverse=True):
        if row[index].is_red:
            red_taken += 1
        del row[index]

    updated = dataclasses.replace(player, red_quaffles=player.red_quaffles + red_taken)
    players = list(state.players)
    players[player_index] = updated
    shared_row = refill_quaffle_row(row, VISIBLE_QUAFFLES, rng)

    if updated.red_quaffles >= QUAFFLES_TO_WIN:
        return dataclasses.replace(
            state,
            players=tuple(players),
            shared_quaffle_row=shared_row,
            current_turn_player_id=None,
            status=STATUS_FINISHED,
            winner=player_id,
        )

    next_player = players[1 - player_index]
    return dataclasses.replace(
        state,
        players=tuple(players),
        shared_quaffle_row=shared_row,
        current_turn_player_id=next_player.id,
        turn_number=state.turn_number + 1,
    )


def remove_player(state: GameState, player_id: str) -> GameState:
    """Drop a player and end the game without a winner (abandonment)."""
    return dataclasses.replace(
        state,
        players=tuple(p for p in state.players if p.id != player_id),
        current_turn_player_id=None,
        status=STATUS_FINISHED,
        winner=None,
    )
