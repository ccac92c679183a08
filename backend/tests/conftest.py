import os
import sys
import pytest

# Ensure the backend root (containing the `yard` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from yard import create_app, socketio
from yard.services.game.clock import FixedClock
from yard.services.game.constants import GameRules, Role
from yard.services.game.maps import SMALL_MAP
from yard.services.game.graph import TransportGraph
from yard.services.game.state import GameState, Seat
from yard.services.game.tickets import TicketLedger


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    LOG_LEVEL = 'DEBUG'
    MAP_PATH = None
    MAX_PLAYERS = 6
    MIN_PLAYERS = 2
    MAX_ROUNDS = 24
    REVEAL_ROUNDS = []
    MAX_ROOMS = 100
    # Deterministic delivery: frames and room commands run on the handler thread
    SYNC_FANOUT = True
    INLINE_SESSIONS = True
    TURN_TIMEOUT_SEC = 0
    RECONNECT_TIMEOUT_SEC = 300
    ADMIN_TOKEN = None
    HTTP_RATE_LIMIT = None
    RATELIMIT_STORAGE_URI = 'memory://'
    SOCKET_RATE_LIMIT = 5
    SOCKET_RATE_WINDOW_SEC = 10


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def make_app():
    """Build an app with some TestConfig values overridden."""

    def _make(**overrides):
        return create_app(type('OverriddenConfig', (TestConfig,), overrides))

    return _make


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def hub(flask_app):
    return flask_app.extensions['yard']


@pytest.fixture()
def connect(flask_app):
    """Factory for Socket.IO test clients on /ws; all are closed at teardown."""
    opened = []

    def _connect():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        test_client.get_received('/ws')  # drop the `connected` greeting
        opened.append(test_client)
        return test_client

    yield _connect
    for test_client in opened:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


@pytest.fixture()
def sio_client(connect):
    return connect()


@pytest.fixture()
def graph():
    return TransportGraph.from_definition(SMALL_MAP)


@pytest.fixture()
def rules():
    return GameRules()


@pytest.fixture()
def clock():
    return FixedClock()


@pytest.fixture()
def make_game(graph, rules, clock):
    """Build an in-play GameState with Mr. X and detectives on chosen stations."""

    def _make(mr_x=1, detectives=(2,), game_rules=None):
        game_rules = game_rules or rules
        seats = [Seat('x', 'Xena', Role.MR_X, None, mr_x, TicketLedger.for_mr_x(game_rules, len(detectives)))]
        for index, position in enumerate(detectives):
            seats.append(Seat(f'd{index}', f'Det{index}', Role.DETECTIVE, index, position,
                              TicketLedger.for_detective(game_rules)))
        state = GameState(graph, game_rules, seats, clock)
        state.ready()
        return state

    return _make
