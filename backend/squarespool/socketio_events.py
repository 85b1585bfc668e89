from flask import current_app
from flask_socketio import join_room, leave_room, emit
from squarespool import socketio

POOL_ROOM = 'pool'
NAMESPACE = '/ws'


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect():
    pass


def handle_join_pool(data=None):
    join_room(POOL_ROOM)
    emit('joined', {'room': POOL_ROOM})


def handle_leave_pool(data=None):
    leave_room(POOL_ROOM)
    emit('left', {'room': POOL_ROOM})


def handle_ping(data):
    emit('pong', data or {})


def broadcast(event: str, payload) -> None:
    """Push a change to every client in the pool room.

    Called after the database commit; a failed emit never undoes the write.
    """
    try:
        socketio.emit(event, payload, to=POOL_ROOM, namespace=NAMESPACE)
    except Exception as exc:
        current_app.logger.warning(f"[socketio] emit {event} failed: {exc}")


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' for the test client.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_pool', handle_join_pool, namespace=namespace)
        socketio.on_event('leave_pool', handle_leave_pool, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
