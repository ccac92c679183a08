import logging

import click
from flask import Flask
from flask.logging import default_handler
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_socketio import SocketIO

from config import Config

allowed_origins = list(Config.CORS_ORIGINS)
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def _send(event, payload, sid, namespace):
    socketio.emit(event, payload, to=sid, namespace=namespace)


def _disconnect(sid, namespace):
    socketio.server.disconnect(sid, namespace=namespace)


def _gc_loop(flask_app):
    hub = flask_app.extensions['yard']
    interval = max(1, int(flask_app.config.get('GC_INTERVAL_SEC', 60)))
    while True:
        socketio.sleep(interval)
        try:
            report = hub.sweep()
            if report['removed'] or report['skipped']:
                flask_app.logger.info(
                    f"[gc] removed={len(report['removed'])} skipped={report['skipped']} "
                    f"expired_players={len(report['expired'])} rooms={len(hub.registry)}"
                )
        except Exception:
            flask_app.logger.exception('[gc] sweep failed')


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    level = flask_app.config.get('LOG_LEVEL', 'INFO')
    flask_app.logger.setLevel(level)
    yard_logger = logging.getLogger('yard')
    yard_logger.setLevel(level)
    if default_handler not in yard_logger.handlers:
        yard_logger.addHandler(default_handler)

    origins = list(flask_app.config.get('CORS_ORIGINS') or allowed_origins)
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from yard.services.hub import build_hub
    flask_app.extensions['yard'] = build_hub(
        flask_app.config,
        send=_send,
        disconnect=_disconnect,
        start_task=socketio.start_background_task,
    )

    from yard.routes import main
    # Per-IP limit on the HTTP endpoints; socket traffic is throttled by the hub.
    limiter = Limiter(get_remote_address, app=flask_app, headers_enabled=True)
    http_limit = flask_app.config.get('HTTP_RATE_LIMIT')
    if http_limit:
        limiter.limit(http_limit)(main)
    flask_app.register_blueprint(main)

    from yard.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    if not flask_app.config.get('TESTING'):
        socketio.start_background_task(_gc_loop, flask_app)

    @click.command('check-map')
    @click.argument('path', required=False)
    def check_map_command(path):
        """Validates a map definition (default: the configured map)."""
        from yard.services.game.graph import MapDefinitionError
        from yard.services.game.maps import load_graph

        max_players = flask_app.config.get('MAX_PLAYERS', 6)
        try:
            graph = load_graph(path or flask_app.config.get('MAP_PATH'), max_players=max_players)
        except MapDefinitionError as exc:
            raise click.ClickException(str(exc))
        click.echo(
            f'Map {graph.name!r} is valid: {len(graph)} stations, {graph.edge_count} edges, '
            f'{len(graph.mr_x_start_candidates())} Mr. X start candidates'
        )

    @click.command('rooms')
    def rooms_command():
        """Prints the live room registry."""
        snapshot = flask_app.extensions['yard'].registry.snapshot()
        if not snapshot:
            click.echo('No rooms.')
            return
        for room in snapshot:
            names = ', '.join(p['name'] for p in room['players'])
            click.echo(f"{room['code']}  {room['status']:<8}  round={room['currentRound']}  players={names}")

    flask_app.cli.add_command(check_map_command)
    flask_app.cli.add_command(rooms_command)

    return flask_app
