from functools import partial
import time

from flask import request
from flask_socketio import emit, join_room, leave_room

from snitch.constants import MAX_NAME_LENGTH, MAX_SPECTATORS, STATUS_FINISHED, STATUS_PLAYING, STATUS_WAITING
from snitch.models import Room, Spectator
from snitch.services.game.errors import GameError, MoveError
from snitch.services.game.rules import (
    add_player,
    create_player,
    get_player,
    get_player_by_socket_id,
    process_move,
    remove_player,
    start_game,
)
from snitch.services.rooms import RoomRegistry


def _clean_name(value) -> str:
    if not isinstance(value, str):
        return ''
    return value.strip()[:MAX_NAME_LENGTH]


def _failure(message: str) -> dict:
    return {'success': False, 'error': message}


class GameCoordinator:
    """Binds Socket.IO events to the room registry and the rules engine.

    Every handler does its read-modify-write of a room while holding the
    registry lock, then fans the resulting snapshot out to the room channel
    (the Socket.IO room named after the room code).
    """

    def __init__(self, app, socketio, registry: RoomRegistry, namespace: str = '/'):
        self.app = app
        self.socketio = socketio
        self.registry = registry
        self.namespace = namespace

    @property
    def logger(self):
        return self.app.logger

    @property
    def grace_period(self) -> float:
        return float(self.app.config.get('DISCONNECT_GRACE_SEC', 60))

    def _broadcast(self, event, data, code, skip_sid=None) -> None:
        self.socketio.emit(event, data, to=code, namespace=self.namespace, skip_sid=skip_sid)

    # ---- Connection lifecycle ----

    def handle_connect(self, auth=None):
        self.logger.info(f"[connect] sid={request.sid}")

    def handle_disconnect(self, reason=None):
        self.logger.info(f"[disconnect] sid={request.sid} reason={reason}")
        self._depart(request.sid, intentional=False)

    def handle_leave_room(self):
        self._depart(request.sid, intentional=True)

    # ---- Players ----

    def handle_create_room(self, player_name=None):
        name = _clean_name(player_name)
        if not name:
            return _failure('Player name is required')
        sid = request.sid
        try:
            with self.registry.lock:
                self._depart(sid, intentional=True)
                room = self.registry.create_room()
                player = create_player(sid, name)
                state = add_player(room.game_state, player)
                self.registry.update_state(room.code, state)
        except Exception:
            self.logger.exception(f"[create-error] sid={sid}")
            return _failure('Failed to create room')

        join_room(room.code)
        self.logger.info(f"[room-create] room={room.code} player={player.id} name={name}")
        emit('game_state', state.to_dict())
        return {
            'success': True,
            'roomId': room.code,
            'playerId': player.id,
            'sessionToken': player.session_token,
        }

    def handle_join_room(self, room_code=None, player_name=None):
        name = _clean_name(player_name)
        if not name:
            return _failure('Player name is required')
        sid = request.sid
        try:
            with self.registry.lock:
                room = self.registry.get_room(room_code)
                if not room:
                    return _failure('Room not found')
                if get_player_by_socket_id(room.game_state, sid):
                    return _failure('Already in this room')
                if room.game_state.is_full:
                    return _failure('Room is full')
                if room.game_state.status != STATUS_WAITING:
                    return _failure('Game already in progress')
                self._depart(sid, intentional=True)
                player = create_player(sid, name)
                state = start_game(add_player(room.game_state, player))
                self.registry.update_state(room.code, state)
        except GameError as exc:
            return _failure(exc.message)
        except Exception:
            self.logger.exception(f"[join-error] sid={sid} room={room_code}")
            return _failure('Failed to join room')

        join_room(room.code)
        self.logger.info(f"[room-join] room={room.code} player={player.id} name={name} first={state.current_turn_player_id}")
        self._broadcast('game_start', state.to_dict(), room.code)
        self._broadcast('turn_change', state.current_turn_player_id, room.code)
        return {
            'success': True,
            'playerId': player.id,
            'sessionToken': player.session_token,
            'gameState': state.to_dict(),
        }

    def handle_reconnect_game(self, room_code=None, player_id=None, session_token=None):
        sid = request.sid
        try:
            with self.registry.lock:
                room = self.registry.get_room(room_code)
                if not room:
                    return _failure('Room not found')
                player = self.registry.find_player_by_session_token(room.code, session_token)
                if not player or player.id != player_id:
                    return _failure('Invalid session')
                current = self.registry.find_room_by_socket_id(sid)
                if current is room:
                    seated = get_player_by_socket_id(room.game_state, sid)
                    if seated and seated.id != player.id:
                        return _failure('Already in this room')
                    if not seated:
                        self._depart(sid, intentional=True)
                elif current:
                    self._depart(sid, intentional=True)
                previous_sid = player.socket_id
                self.registry.rebind_player(room.code, player.id, sid)
                state = room.game_state
        except Exception:
            self.logger.exception(f"[reconnect-error] sid={sid} room={room_code}")
            return _failure('Failed to reconnect')

        join_room(room.code)
        if previous_sid != sid:
            # Only the newest socket stays bound to this player
            leave_room(room.code, sid=previous_sid, namespace=self.namespace)
        self.logger.info(f"[reconnect] room={room.code} player={player.id} sid={previous_sid}->{sid}")
        self._broadcast('player_reconnected', player.name, room.code, skip_sid=sid)
        emit('game_state', state.to_dict())
        return {'success': True, 'gameState': state.to_dict()}

    def handle_take_quaffles(self, indices=None):
        sid = request.sid
        try:
            with self.registry.lock:
                room = self.registry.find_room_by_socket_id(sid)
                if not room:
                    emit('error', 'Not in a room')
                    return
                player = get_player_by_socket_id(room.game_state, sid)
                if not player:
                    emit('error', 'Player not found')
                    return
                try:
                    state = process_move(room.game_state, player.id, indices)
                except MoveError as exc:
                    emit('error', exc.message)
                    return
                self.registry.update_state(room.code, state)

                self._broadcast('game_update', state.to_dict(), room.code)
                if state.status == STATUS_FINISHED and state.winner:
                    winner = get_player(state, state.winner)
                    self.logger.info(f"[game-over] room={room.code} winner={winner.id} turn={state.turn_number}")
                    self._broadcast('game_over', (winner.id, winner.name), room.code)
                elif state.current_turn_player_id:
                    self._broadcast('turn_change', state.current_turn_player_id, room.code)
        except Exception:
            self.logger.exception(f"[move-error] sid={sid}")
            emit('error', 'Failed to process move')

    # ---- Spectators and lookups ----

    def handle_check_room(self, room_code=None):
        return self.registry.room_summary(room_code)

    def handle_join_as_spectator(self, room_code=None, spectator_name=None):
        name = _clean_name(spectator_name)
        if not name:
            return _failure('Spectator name is required')
        sid = request.sid
        try:
            with self.registry.lock:
                room = self.registry.get_room(room_code)
                if not room:
                    return _failure('Room not found')
                if self.registry.find_room_by_socket_id(sid) is room:
                    return _failure('Already in this room')
                if len(room.spectators) >= MAX_SPECTATORS:
                    return _failure('Spectator limit reached')
                self._depart(sid, intentional=True)
                spectator = Spectator(
                    id=f"spectator_{int(time.time() * 1000)}_{sid}",
                    socket_id=sid,
                    name=name,
                )
                if not self.registry.add_spectator(room.code, spectator):
                    return _failure('Failed to add spectator')
                count = len(room.spectators)
                state = room.game_state
        except Exception:
            self.logger.exception(f"[spectate-error] sid={sid} room={room_code}")
            return _failure('Failed to join as spectator')

        join_room(room.code)
        self.logger.info(f"[spectator-join] room={room.code} name={name} count={count}")
        self._broadcast('spectator_joined', (name, count), room.code)
        return {
            'success': True,
            'spectatorId': spectator.id,
            'gameState': state.to_dict(),
            'spectatorCount': count,
        }

    # ---- Departures ----

    def _depart(self, sid: str, intentional: bool) -> None:
        """Apply the departure policy for a socket leaving its room."""
        with self.registry.lock:
            room = self.registry.find_room_by_socket_id(sid)
            if not room:
                return
            code = room.code

            if self.registry.is_spectator(code, sid):
                spectator = self.registry.remove_spectator(code, sid)
                if spectator:
                    self.logger.info(f"[spectator-leave] room={code} name={spectator.name}")
                    self._broadcast('spectator_left', (spectator.name, len(room.spectators)), code)
                if intentional:
                    leave_room(code, sid=sid, namespace=self.namespace)
                return

            state = room.game_state
            player = get_player_by_socket_id(state, sid)
            if not player:
                return

            if len(state.players) <= 1 or state.status == STATUS_FINISHED:
                self.logger.info(f"[room-close] room={code} player={player.id} status={state.status}")
                self.registry.delete_room(code)
                if intentional:
                    leave_room(code, sid=sid, namespace=self.namespace)
                return

            if intentional:
                self.logger.info(f"[leave] room={code} player={player.id}")
                self._broadcast('player_left', player.name, code, skip_sid=sid)
                self._abandon(room, player.id)
                leave_room(code, sid=sid, namespace=self.namespace)
                return

            self.registry.mark_player_disconnected(code, player.id)
            self._broadcast('player_disconnected', player.name, code, skip_sid=sid)
            self.registry.schedule_disconnect_timer(
                player.id,
                self.grace_period,
                partial(self._expire_disconnected_player, code, player.id),
            )

    def _abandon(self, room: Room, player_id: str) -> None:
        state = remove_player(room.game_state, player_id)
        self.registry.update_state(room.code, state)
        self._broadcast('game_update', state.to_dict(), room.code)
        self._close_if_deserted(room)

    def _close_if_deserted(self, room: Room) -> None:
        if not any(p.is_connected for p in room.game_state.players):
            self.logger.info(f"[room-close] room={room.code} no connected players left")
            self.registry.delete_room(room.code)

    def _expire_disconnected_player(self, code: str, player_id: str) -> None:
        """Grace period ran out; runs from the timer task, outside any request."""
        with self.registry.lock:
            room = self.registry.get_room(code)
            if not room:
                return
            player = get_player(room.game_state, player_id)
            if not player or player.is_connected:
                return
            if room.game_state.status != STATUS_PLAYING:
                self._close_if_deserted(room)
                return
            self.logger.info(f"[grace-expired] room={code} player={player_id}")
            self._broadcast('player_left', player.name, code)
            self._abandon(room, player_id)


def register_socketio_handlers(coordinator: GameCoordinator) -> None:
    """Register Socket.IO event handlers on the coordinator's namespace."""
    socketio = coordinator.socketio
    namespace = coordinator.namespace
    handlers = {
        'connect': coordinator.handle_connect,
        'disconnect': coordinator.handle_disconnect,
        'create_room': coordinator.handle_create_room,
        'join_room': coordinator.handle_join_room,
        'reconnect_game': coordinator.handle_reconnect_game,
        'take_quaffles': coordinator.handle_take_quaffles,
        'leave_room': coordinator.handle_leave_room,
        'check_room': coordinator.handle_check_room,
        'join_as_spectator': coordinator.handle_join_as_spectator,
    }
    for event, handler in handlers.items():
        socketio.on_event(event, handler, namespace=namespace)
