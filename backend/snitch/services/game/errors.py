"""Errors raised by the rules engine.

``GameError`` subclasses are client request errors: their message is safe to
show to the player who caused them. ``GameInvariantError`` subclasses mean a
caller broke a precondition and should never reach a player.
"""
from snitch.constants import MAX_SELECTABLE


class GameError(Exception):
    message = 'Invalid request'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class RoomFullError(GameError):
    message = 'Room is full'


class MoveError(GameError):
    message = 'Invalid move'


class NotYourTurnError(MoveError):
    message = 'Not your turn'


class GameNotInProgressError(MoveError):
    message = 'Game is not in progress'


class PlayerNotFoundError(MoveError):
    message = 'Player not found'


class MalformedSelectionError(MoveError):
    message = 'Selection must be a list of quaffle positions'


class EmptySelectionError(MoveError):
    message = 'Must select at least 1 quaffle'


class TooManySelectedError(MoveError):
    message = f'Cannot select more than {MAX_SELECTABLE} quaffles'


class OutOfRangeError(MoveError):
    message = f'Can only select from the first {MAX_SELECTABLE} quaffles'


class DuplicateSelectionError(MoveError):
    message = 'Cannot select the same quaffle twice'


class GameInvariantError(Exception):
    pass


class InsufficientPlayersError(GameInvariantError):
    def __init__(self, player_count: int):
        super().__init__(f'Need exactly 2 players to start, got {player_count}')
        self.player_count = player_count
