from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config

from snitch.services.rooms import RoomRegistry

DEV_CLIENT_ORIGIN = 'http://localhost:5173'

socketio = SocketIO(async_mode=None)


def allowed_origins(config):
    origins = [DEV_CLIENT_ORIGIN]
    client_url = config.get('CLIENT_URL')
    if client_url and client_url not in origins:
        origins.insert(0, client_url)
    return origins


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    origins = allowed_origins(flask_app.config)
    CORS(flask_app, supports_credentials=True, origins=origins, methods=['GET', 'POST'])

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    # One registry per app; rooms live only in this process
    registry = RoomRegistry(
        start_task=socketio.start_background_task,
        sleep=socketio.sleep,
        logger=flask_app.logger,
    )
    flask_app.extensions['rooms'] = registry

    from snitch.main import main
    flask_app.register_blueprint(main)

    from snitch.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from snitch.socketio_events import GameCoordinator, register_socketio_handlers
    coordinator = GameCoordinator(flask_app, socketio, registry)
    register_socketio_handlers(coordinator)
    flask_app.extensions['game_coordinator'] = coordinator

    if not flask_app.config.get('TESTING'):
        registry.start_idle_sweeper(
            flask_app.config.get('ROOM_SWEEP_INTERVAL_SEC', 1800),
            flask_app.config.get('ROOM_IDLE_TIMEOUT_SEC', 3600),
        )
        flask_app.logger.info(f"[startup] allowed origins: {', '.join(origins)}")

    return flask_app
