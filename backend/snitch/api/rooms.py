from flask import Blueprint, current_app, jsonify

rooms = Blueprint('rooms', __name__)


@rooms.route('/<string:room_code>', methods=['GET'])
def get_room_status(room_code):
    """
    Reports whether a room exists and who can still join it, so a shared
    link can be checked before opening a socket.
    """
    summary = current_app.extensions['rooms'].room_summary(room_code)
    status = 200 if summary['exists'] else 404
    return jsonify(summary), status
