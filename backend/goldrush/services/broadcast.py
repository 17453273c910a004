"""Fan-out of game events to Socket.IO rooms.

Publishing never fails the operation that triggered it: errors are logged
and dropped.
"""

from flask import current_app, has_app_context

from goldrush import socketio, SOCKET_NAMESPACE

ADMIN_ROOM = 'admin'


def team_room(team_id) -> str:
    return f"team_{team_id}"


def _emit(event: str, payload, room=None) -> None:
    try:
        if room is None:
            socketio.emit(event, payload, namespace=SOCKET_NAMESPACE)
        else:
            socketio.emit(event, payload, to=room, namespace=SOCKET_NAMESPACE)
    except Exception as exc:
        if has_app_context():
            current_app.logger.warning(f"[broadcast-error] event={event} room={room or '*'} error={exc!r}")


def emit_global(event: str, payload=None) -> None:
    _emit(event, payload if payload is not None else {})


def emit_team(team_id, event: str, payload=None) -> None:
    _emit(event, payload if payload is not None else {}, room=team_room(team_id))


def emit_admin(event: str, payload=None) -> None:
    _emit(event, payload if payload is not None else {}, room=ADMIN_ROOM)
