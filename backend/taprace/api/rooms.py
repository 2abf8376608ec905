from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required
from taprace import get_registry
from taprace.errors import RaceError, RoomNotFound
from taprace.identity import current_identity
from taprace.services.race.codes import invite_link, parse_invite


rooms = Blueprint('rooms', __name__)


@rooms.errorhandler(RaceError)
def handle_race_error(err):
    current_app.logger.info(f"[rejected] path={request.path} status={err.status_code} reason={err.message}")
    return jsonify(err.to_dict()), err.status_code


def _origin():
    return request.headers.get('Origin') or request.host_url


def _room_payload(session):
    if session.room is None:
        raise RoomNotFound()
    payload = session.room.to_dict()
    payload['invite_link'] = invite_link(_origin(), session.room_id)
    return payload


@rooms.route('/create', methods=['POST'])
@login_required
def create_room():
    room_id = get_registry().create_room(current_identity())
    return jsonify({
        'message': 'New room created!',
        'room_id': room_id,
        'invite_link': invite_link(_origin(), room_id),
    }), 201


@rooms.route('', methods=['GET'])
def list_rooms():
    return jsonify([room.to_dict() for room in get_registry().list_open_rooms()])


@rooms.route('/join', methods=['POST'])
@login_required
def join_room():
    data = request.get_json(silent=True) or {}
    room_id = parse_invite(data.get('invite') or data.get('room_id'))
    if get_registry().read_room(room_id) is None:
        raise RoomNotFound()
    return jsonify({'room_id': room_id})


@rooms.route('/<string:room_id>/state', methods=['GET'])
def get_room_state(room_id):
    room = get_registry().read_room(parse_invite(room_id))
    if room is None:
        raise RoomNotFound()
    return jsonify(room.to_dict())


def _with_session(room_id, action):
    """Open a session for the current user, run *action* on it and return the room."""
    registry = get_registry()
    with registry.join_room(room_id, current_identity()) as session:
        if session.room is None:
            raise RoomNotFound()
        result = action(session)
        payload = _room_payload(session)
    return payload, result


@rooms.route('/<string:room_id>/enter', methods=['POST'])
@login_required
def enter_room(room_id):
    payload, joined = _with_session(room_id, lambda s: s.joined)
    payload['joined'] = joined
    return jsonify(payload)


@rooms.route('/<string:room_id>/car', methods=['POST'])
@login_required
def select_car(room_id):
    data = request.get_json(silent=True) or {}
    payload, _ = _with_session(room_id, lambda s: s.select_car(data.get('car')))
    return jsonify(payload)


@rooms.route('/<string:room_id>/ready', methods=['POST'])
@login_required
def toggle_ready(room_id):
    payload, _ = _with_session(room_id, lambda s: s.toggle_ready())
    return jsonify(payload)


@rooms.route('/<string:room_id>/start', methods=['POST'])
@login_required
def start_race(room_id):
    payload, _ = _with_session(room_id, lambda s: s.start_race())
    return jsonify(payload)


@rooms.route('/<string:room_id>/tap', methods=['POST'])
@login_required
def tap(room_id):
    payload, progress = _with_session(room_id, lambda s: s.tap())
    payload['accepted'] = progress is not None
    payload['progress'] = progress
    return jsonify(payload)
