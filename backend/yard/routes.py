import hmac

from flask import Blueprint, current_app, jsonify, request

main = Blueprint('main', __name__)


def _hub():
    return current_app.extensions['yard']


@main.route('/')
def index():
    return jsonify({'message': 'Scotland Yard game server', 'socketNamespace': '/ws'})


@main.route('/health', methods=['GET', 'OPTIONS'])
def health():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    hub = _hub()
    now = hub.clock.now_ms()
    return jsonify({
        'status': 'ok',
        'uptime': round((now - hub.started_at) / 1000.0, 3),
        'timestamp': now,
        'rooms': hub.registry.counts_by_status(),
        'roomCount': len(hub.registry),
        'connectedClients': hub.connections.connected_count(),
        'map': {'name': hub.graph.name, 'stations': len(hub.graph), 'edges': hub.graph.edge_count},
    })


@main.route('/api/admin/rooms', methods=['GET'])
def admin_rooms():
    expected = current_app.config.get('ADMIN_TOKEN')
    if expected:
        supplied = request.headers.get('X-Admin-Token', '')
        if not hmac.compare_digest(supplied, expected):
            current_app.logger.warning(f'[admin-denied] remote={request.remote_addr}')
            return jsonify({'message': 'Not authorized', 'code': 'auth.denied'}), 403
    rooms = _hub().registry.snapshot()
    return jsonify({'rooms': rooms, 'count': len(rooms)})


@main.app_errorhandler(429)
def rate_limited(exc):
    current_app.logger.info(f'[throttled] remote={request.remote_addr} path={request.path} limit={exc.description}')
    return jsonify({'message': 'Too many requests from this IP, please try again later.', 'code': 'rate.limited'}), 429
