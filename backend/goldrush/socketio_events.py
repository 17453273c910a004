from flask import current_app, request
from flask_socketio import join_room, leave_room, emit

from goldrush import socketio, SOCKET_NAMESPACE
from goldrush.services.broadcast import ADMIN_ROOM, team_room


def _team_id_from(data):
    # Clients send either {"team_id": 3} or the bare id
    raw = data.get('team_id') if isinstance(data, dict) else data
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def handle_connect():
    current_app.logger.info(f"[socket-connect] sid={request.sid}")
    emit('connected', {'message': f'Connected to {SOCKET_NAMESPACE}'})


def handle_disconnect(*args):
    # Rooms are dropped with the socket; reconnecting clients simply re-join
    current_app.logger.info(f"[socket-disconnect] sid={request.sid}")


def handle_join_team(data=None):
    team_id = _team_id_from(data)
    if team_id is None:
        emit('error', {'message': 'team_id is required'})
        return
    room = team_room(team_id)
    join_room(room)
    current_app.logger.info(f"[socket-join] sid={request.sid} room={room}")
    emit('joined', {'room': room})


def handle_leave_team(data=None):
    team_id = _team_id_from(data)
    if team_id is None:
        emit('error', {'message': 'team_id is required'})
        return
    room = team_room(team_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_join_admin(data=None):
    join_room(ADMIN_ROOM)
    current_app.logger.info(f"[socket-join] sid={request.sid} room={ADMIN_ROOM}")
    emit('joined', {'room': ADMIN_ROOM})


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the game namespace."""
    socketio.on_event('connect', handle_connect, namespace=SOCKET_NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=SOCKET_NAMESPACE)
    socketio.on_event('join_team', handle_join_team, namespace=SOCKET_NAMESPACE)
    socketio.on_event('leave_team', handle_leave_team, namespace=SOCKET_NAMESPACE)
    socketio.on_event('join_admin', handle_join_admin, namespace=SOCKET_NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=SOCKET_NAMESPACE)
