from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from flask_login import current_user
from taprace import socketio, get_registry, get_stats, get_store
from taprace.errors import RaceError, RaceRejected, RoomNotFound
from taprace.identity import current_identity
from taprace.schemas import Room
from taprace.services.race.codes import parse_invite
from taprace.services.race.session import ROOMS_PATH
from taprace.services.race.stats import check_limit
from typing import Any, Callable, Dict, Set, Tuple

NAMESPACE = '/ws'


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    hub = _hub()
    for key in list(hub['sids'].pop(_get_sid(), set())):
        _release_if_unwatched(key)


def handle_watch_lobby(data=None):
    _watch('lobby')


def handle_watch_room(data):
    try:
        room_id = parse_invite((data or {}).get('room_id'))
    except RaceError as err:
        emit('error', err.to_dict())
        return
    _watch(f'room:{room_id}')


def handle_watch_leaderboard(data=None):
    try:
        limit = int((data or {}).get('limit') or get_stats().default_limit)
    except (TypeError, ValueError):
        emit('error', {'error': 'limit must be a number'})
        return
    try:
        check_limit(limit)
    except RaceError as err:
        emit('error', err.to_dict())
        return
    _watch(f'leaderboard:{limit}')


def handle_unwatch(data):
    channel = (data or {}).get('channel')
    if not channel:
        emit('error', {'error': 'channel is required'})
        return
    key = (request.namespace, channel)
    leave_room(channel)
    _hub()['sids'].get(_get_sid(), set()).discard(key)
    _release_if_unwatched(key)
    emit('unwatched', {'channel': channel})


def handle_room_action(data):
    data = data or {}
    action = data.get('action')
    if not current_user.is_authenticated:
        emit('action_rejected', {'action': action, 'error': 'Login required'})
        return
    try:
        with get_registry().join_room(data.get('room_id'), current_identity()) as session:
            if session.room is None:
                raise RoomNotFound()
            if action == 'select_car':
                result = session.select_car(data.get('car')).value
            elif action == 'toggle_ready':
                result = session.toggle_ready()
            elif action == 'start_race':
                result = session.start_race()
            elif action == 'tap':
                result = session.tap()
            else:
                raise RaceRejected(f'Unknown action: {action!r}')
    except RaceError as err:
        current_app.logger.info(f"[rejected] action={action} reason={err.message}")
        emit('action_rejected', {'action': action, **err.to_dict()})
        return
    emit('action_done', {'action': action, 'result': result})


def handle_ping(data):
    emit('pong', data or {})

# ---- Channel subscriptions ----
# One store subscription per (namespace, channel), shared by every socket
# watching it and released when the last watcher leaves.

def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _hub() -> Dict[str, Any]:
    return current_app.extensions.setdefault('taprace_channels', {
        'sids': {},      # sid -> set of (namespace, channel)
        'subs': {},      # (namespace, channel) -> unsubscribe
        'last': {},      # (namespace, channel) -> last payload pushed
    })


def _channel_feed(channel: str) -> Tuple[str, Callable[[Callable[[Any], None]], Callable[[], None]]]:
    """Return the event name and a subscribe function for *channel*."""
    kind, _, arg = channel.partition(':')
    if kind == 'lobby':
        def subscribe(push):
            return get_registry().watch_open_rooms(lambda rooms: push([r.to_dict() for r in rooms]))
        return 'lobby_update', subscribe
    if kind == 'leaderboard':
        limit = int(arg)

        def subscribe(push):
            return get_stats().watch_top_stats(lambda top: push([s.to_dict() for s in top]), limit=limit)
        return 'leaderboard_update', subscribe
    if kind == 'room':
        def subscribe(push):
            def on_room(value):
                room = Room.from_dict(arg, value).to_dict() if value else None
                push({'room_id': arg, 'room': room})
            return get_store().subscribe(f'{ROOMS_PATH}/{arg}', on_room)
        return 'room_state', subscribe
    raise ValueError(f'Unknown channel: {channel}')


def _watch(channel: str) -> None:
    hub = _hub()
    namespace = request.namespace
    key = (namespace, channel)
    join_room(channel)
    hub['sids'].setdefault(_get_sid(), set()).add(key)
    event, subscribe = _channel_feed(channel)
    if key in hub['subs']:
        # Already live: bring the newcomer up to date
        emit(event, hub['last'].get(key))
        return

    def push(payload):
        hub['last'][key] = payload
        socketio.emit(event, payload, to=channel, namespace=namespace)

    hub['subs'][key] = subscribe(push)
    current_app.logger.info(f"[watch] channel={channel} namespace={namespace}")


def _release_if_unwatched(key) -> None:
    hub = _hub()
    watchers: Set = set()
    for keys in hub['sids'].values():
        watchers |= keys
    if key in watchers:
        return
    unsubscribe = hub['subs'].pop(key, None)
    hub['last'].pop(key, None)
    if unsubscribe is not None:
        unsubscribe()
        current_app.logger.info(f"[unwatch] channel={key[1]} namespace={key[0]}")


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('watch_lobby', handle_watch_lobby, namespace=namespace)
        socketio.on_event('watch_room', handle_watch_room, namespace=namespace)
        socketio.on_event('watch_leaderboard', handle_watch_leaderboard, namespace=namespace)
        socketio.on_event('unwatch', handle_unwatch, namespace=namespace)
        socketio.on_event('room_action', handle_room_action, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
