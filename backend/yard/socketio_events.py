import functools
import hmac
import re
from typing import Any, Dict, Optional

from flask import current_app, request

from yard import socketio
from yard.services.game.clock import normalize_room_code
from yard.services.game.constants import TicketKind
from yard.services.game.errors import ErrorCode, GameError
from yard.services.rooms import Command, CommandKind, Outbound, PlayerRecord, move_command

NAME_RE = re.compile(r'^[a-zA-Z0-9\s\-_]+$')
NAME_MAX_LENGTH = 20
TOKEN_RE = re.compile(r'^[0-9a-f]{64}$')


def _hub():
    return current_app.extensions['yard']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _reply(event: str, payload: Dict[str, Any]) -> None:
    """Send to the originating connection through its outbox."""
    _hub().connections.send(_get_sid(), event, payload)


def _throttle(action: str) -> None:
    _hub().throttle.check(_get_sid(), action)


def socket_handler(fn):
    """Turn GameErrors into `error` replies for the originator only."""

    @functools.wraps(fn)
    def wrapper(data=None):
        try:
            fn(data if isinstance(data, dict) else {})
        except GameError as err:
            current_app.logger.info(f'[rejected] event={fn.__name__} sid={_get_sid()} code={err.code.value}')
            _reply(Outbound.ERROR, err.to_payload())
        except Exception:
            current_app.logger.exception(f'[handler-failed] event={fn.__name__} sid={_get_sid()}')
            _reply(Outbound.ERROR, GameError(ErrorCode.INTERNAL_ERROR).to_payload())

    return wrapper


# ---- input validation ----

def _player_name(data) -> str:
    name = data.get('playerName')
    if not isinstance(name, str):
        raise GameError(ErrorCode.REQUEST_INVALID, 'Player name is required')
    name = name.strip()
    if not name or len(name) > NAME_MAX_LENGTH:
        raise GameError(ErrorCode.REQUEST_INVALID, f'Player name must be 1-{NAME_MAX_LENGTH} characters')
    if not NAME_RE.match(name):
        raise GameError(ErrorCode.REQUEST_INVALID, 'Player name may only contain letters, numbers, spaces, - and _')
    return name


def _room_code(data, fallback: Optional[str] = None) -> str:
    raw = data.get('roomCode')
    if raw is None and fallback:
        return fallback
    code = normalize_room_code(raw)
    if code is None:
        raise GameError(ErrorCode.REQUEST_INVALID, 'Room code must be 6 letters or digits')
    return code


def _station(value, field: str, required: bool = True) -> Optional[int]:
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise GameError(ErrorCode.REQUEST_INVALID, f'{field} must be a station number')
    return value


def _ticket(value) -> TicketKind:
    try:
        return TicketKind(value)
    except ValueError:
        raise GameError(ErrorCode.REQUEST_INVALID, f'Unknown ticket type: {value!r}')


def _require_player() -> PlayerRecord:
    record = _hub().connections.player_for_sid(_get_sid())
    if record is None:
        raise GameError(ErrorCode.REQUEST_INVALID, 'Join the lobby first')
    return record


def _ensure_player(data) -> PlayerRecord:
    """The connection's player; joins the lobby first when a name is supplied."""
    record = _hub().connections.player_for_sid(_get_sid())
    if record is not None:
        return record
    if 'playerName' not in data:
        raise GameError(ErrorCode.REQUEST_INVALID, 'Join the lobby first')
    record = _hub().connections.register(_get_sid(), _player_name(data))
    _reply('lobby:joined', record.lobby_payload())
    return record


def _check_admin(data) -> None:
    expected = current_app.config.get('ADMIN_TOKEN')
    if not expected:
        return
    supplied = data.get('adminToken')
    if not isinstance(supplied, str) or not hmac.compare_digest(supplied, expected):
        current_app.logger.warning(f'[admin-denied] sid={_get_sid()}')
        raise GameError(ErrorCode.AUTH_DENIED)


def _dispatch(code: str, command: Command):
    """Submit a command to the room's session and dispose of the room if it asks."""
    hub = _hub()
    try:
        session = hub.registry.find(code)
    except GameError:
        if command.player_id:
            record = hub.connections.player(command.player_id)
            if record is not None and record.room_code == code:
                hub.connections.set_room(command.player_id, None)
        raise
    result = session.submit(command)
    if result.dispose:
        hub.registry.destroy(code, 'empty')
        hub.connections.release_room(code)
    if not result.ok:
        raise result.error
    return result


# ---- connection lifecycle ----

def handle_connect(auth=None):
    _hub().connections.open(_get_sid(), request.namespace)
    _reply('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    hub = _hub()
    hub.throttle.forget(_get_sid())
    record = hub.connections.close(_get_sid())
    if record is None or not record.room_code:
        return
    session = hub.registry.get(record.room_code)
    if session is None:
        return
    result = session.submit(Command(CommandKind.DISCONNECT, record.player_id, record.name))
    if result.dispose:
        hub.registry.destroy(record.room_code, 'abandoned')
        hub.connections.release_room(record.room_code)


# ---- lobby and rooms ----

@socket_handler
def handle_join_lobby(data):
    _throttle('join:lobby')
    record = _hub().connections.player_for_sid(_get_sid())
    if record is None:
        record = _hub().connections.register(_get_sid(), _player_name(data))
    _reply('lobby:joined', record.lobby_payload())


@socket_handler
def handle_room_create(data):
    _throttle('room:create')
    hub = _hub()
    record = _ensure_player(data)
    if record.room_code:
        raise GameError(ErrorCode.REQUEST_INVALID, 'Leave your current room first')
    session = hub.registry.create(record.player_id, record.name)
    hub.connections.set_room(record.player_id, session.code)
    try:
        _dispatch(session.code, Command(CommandKind.CREATE_ROOM, record.player_id, record.name))
    except GameError:
        hub.registry.destroy(session.code, 'create-failed')
        hub.connections.set_room(record.player_id, None)
        raise


@socket_handler
def handle_room_join(data):
    _throttle('room:join')
    hub = _hub()
    code = _room_code(data)
    record = _ensure_player(data)
    if record.room_code:
        message = 'You are already in this room' if record.room_code == code else 'Leave your current room first'
        raise GameError(ErrorCode.REQUEST_INVALID, message)
    # Bound first so the joiner's own room:updated can be routed.
    hub.connections.set_room(record.player_id, code)
    try:
        _dispatch(code, Command(CommandKind.JOIN_ROOM, record.player_id, record.name))
    except GameError:
        hub.connections.set_room(record.player_id, None)
        raise


@socket_handler
def handle_room_leave(data):
    record = _require_player()
    code = _room_code(data, fallback=record.room_code)
    if record.room_code != code:
        raise GameError(ErrorCode.ROOM_NOT_MEMBER)
    _dispatch(code, Command(CommandKind.LEAVE_ROOM, record.player_id, record.name))
    _hub().connections.set_room(record.player_id, None)


# ---- game ----

@socket_handler
def handle_game_start(data):
    record = _require_player()
    code = _room_code(data, fallback=record.room_code)
    _dispatch(code, Command(CommandKind.START_GAME, record.player_id, record.name,
                            payload={'mrXPlayerId': data.get('mrXPlayerId')}))


@socket_handler
def handle_game_move(data):
    record = _require_player()
    code = _room_code(data, fallback=record.room_code)
    command = move_command(
        record.player_id,
        _station(data.get('from'), 'from', required=False),
        _station(data.get('to'), 'to'),
        _ticket(data.get('ticketType')),
        use_double_move=bool(data.get('useDoubleMove')),
    )
    _dispatch(code, command)


@socket_handler
def handle_game_rematch(data):
    record = _require_player()
    code = _room_code(data, fallback=record.room_code)
    _dispatch(code, Command(CommandKind.REMATCH, record.player_id, record.name,
                            payload={'mrXPlayerId': data.get('mrXPlayerId')}))


# ---- presence ----

@socket_handler
def handle_player_reconnect(data):
    hub = _hub()
    player_id = data.get('playerId')
    token = data.get('reconnectionToken')
    if not isinstance(player_id, str) or not isinstance(token, str) or not TOKEN_RE.match(token):
        raise GameError(ErrorCode.REQUEST_INVALID, 'Invalid reconnection token format.')
    record = hub.connections.reattach(player_id, token, _get_sid())
    if record.room_code and hub.registry.get(record.room_code) is not None:
        try:
            _dispatch(record.room_code, Command(CommandKind.RECONNECT, record.player_id, record.name))
            return
        except GameError as err:
            if err.code is not ErrorCode.ROOM_NOT_MEMBER:
                raise
    hub.connections.set_room(record.player_id, None)
    # No room to return to: back in the lobby.
    payload = record.lobby_payload()
    payload.update({'roomCode': None, 'room': None, 'message': 'Reconnected. Your room is no longer available.'})
    _reply(Outbound.PLAYER_RECONNECTED, payload)


@socket_handler
def handle_heartbeat(data):
    hub = _hub()
    record = hub.connections.player_for_sid(_get_sid())
    if record is not None and record.room_code:
        _dispatch(record.room_code, Command(CommandKind.HEARTBEAT, record.player_id, record.name))
        return
    _reply(Outbound.HEARTBEAT_ACK, {'roomCode': None, 'serverTime': hub.clock.now_ms()})


# ---- admin ----

@socket_handler
def handle_admin_fetch(data):
    _check_admin(data)
    rooms = _hub().registry.snapshot()
    _reply('admin:rooms', {'rooms': rooms, 'count': len(rooms)})


@socket_handler
def handle_admin_kick(data):
    _check_admin(data)
    code = _room_code(data)
    name = data.get('playerName')
    if not isinstance(name, str) or not name.strip():
        raise GameError(ErrorCode.REQUEST_INVALID, 'Player name is required')
    result = _dispatch(code, Command(CommandKind.ADMIN_KICK, payload={'playerName': name}))
    _hub().connections.set_room(result.value, None)
    current_app.logger.info(f'[admin-kick] code={code} player={name.strip()}')
    _reply('admin:kicked', {'roomCode': code, 'playerName': name.strip()})


@socket_handler
def handle_admin_close(data):
    _check_admin(data)
    hub = _hub()
    code = _room_code(data)
    _dispatch(code, Command(CommandKind.ADMIN_CLOSE))
    hub.registry.destroy(code, 'admin')
    hub.connections.release_room(code)
    _reply('admin:closed', {'roomCode': code})


HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'join:lobby': handle_join_lobby,
    'room:create': handle_room_create,
    'room:join': handle_room_join,
    'room:leave': handle_room_leave,
    'game:start': handle_game_start,
    'game:move': handle_game_move,
    'game:rematch': handle_game_rematch,
    'player:reconnect': handle_player_reconnect,
    'heartbeat': handle_heartbeat,
    'admin:fetch': handle_admin_fetch,
    'admin:kick-player': handle_admin_kick,
    'admin:close-room': handle_admin_close,
}


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for event, handler in HANDLERS.items():
        socketio.on_event(event, handler, namespace='/ws')
    if testing:
        for event, handler in HANDLERS.items():
            socketio.on_event(event, handler, namespace='/')
