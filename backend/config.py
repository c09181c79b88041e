import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Deployed client origin, allowed next to the local dev server
    CLIENT_URL = os.environ.get('CLIENT_URL')
    PORT = int(os.environ.get('PORT', '3001'))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Reconnection window after an unexpected drop (seconds)
    DISCONNECT_GRACE_SEC = float(os.environ.get('DISCONNECT_GRACE_SEC', '60'))
    # Rooms still waiting for an opponent after this long are purged (seconds)
    ROOM_IDLE_TIMEOUT_SEC = int(os.environ.get('ROOM_IDLE_TIMEOUT_SEC', '3600'))
    ROOM_SWEEP_INTERVAL_SEC = int(os.environ.get('ROOM_SWEEP_INTERVAL_SEC', '1800'))
