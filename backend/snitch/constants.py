"""Game constants shared by the rules engine, the room registry and handlers."""

# Win condition and board shape
QUAFFLES_TO_WIN = 10
VISIBLE_QUAFFLES = 20
MAX_SELECTABLE = 3
RED_QUAFFLE_PROBABILITY = 0.1

# Room capacity
MAX_PLAYERS = 2
MAX_SPECTATORS = 20
MAX_NAME_LENGTH = 20

# Room codes skip I, O, 0 and 1
ROOM_CODE_LENGTH = 4
ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'

SESSION_TOKEN_LENGTH = 32

STATUS_WAITING = 'waiting'
STATUS_PLAYING = 'playing'
STATUS_FINISHED = 'finished'

QUAFFLE_RED = 'red'
QUAFFLE_NEUTRAL = 'neutral'

CONNECTED = 'connected'
DISCONNECTED = 'disconnected'
