from flask import Blueprint, jsonify, request
from taprace import get_stats


stats = Blueprint('stats', __name__)


@stats.route('/top', methods=['GET'])
def top_stats():
    try:
        limit = int(request.args.get('limit', 0)) or None
    except (TypeError, ValueError):
        return jsonify({'error': 'limit must be a number'}), 400
    if limit is not None and limit < 0:
        return jsonify({'error': 'limit must be positive'}), 400
    return jsonify([s.to_dict() for s in get_stats().top_stats(limit)])


@stats.route('/<string:uid>', methods=['GET'])
def user_stats(uid):
    record = get_stats().read_stats(uid)
    if record is None:
        return jsonify({'error': 'No races recorded for this user'}), 404
    return jsonify(record.to_dict())
