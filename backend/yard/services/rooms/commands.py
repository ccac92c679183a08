from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from yard.services.game.errors import ErrorCode, GameError


class CommandKind(str, Enum):
    CREATE_ROOM = 'createRoom'
    JOIN_ROOM = 'joinRoom'
    LEAVE_ROOM = 'leaveRoom'
    START_GAME = 'startGame'
    MOVE = 'move'
    REMATCH = 'rematch'
    DISCONNECT = 'disconnect'
    RECONNECT = 'reconnect'
    ADMIN_KICK = 'adminKick'
    ADMIN_CLOSE = 'adminClose'
    HEARTBEAT = 'heartbeat'
    # Internal: periodic sweep for turn timeouts.
    TICK = 'tick'


class Outbound:
    """Wire names of the deltas a session produces."""

    ROOM_CREATED = 'room:created'
    ROOM_UPDATED = 'room:updated'
    ROOM_LEFT = 'room:left'
    ROOM_KICKED = 'room:kicked'
    ROOM_CLOSED = 'room:closed'
    GAME_STARTED = 'game:started'
    STATE_UPDATED = 'game:state:updated'
    GAME_OVER = 'game:over'
    PLAYER_DISCONNECTED = 'player:disconnected'
    PLAYER_RECONNECTED = 'player:reconnected'
    PLAYER_RECONNECTED_BROADCAST = 'player:reconnected:broadcast'
    HEARTBEAT_ACK = 'heartbeat:ack'
    ERROR = 'error'


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    player_id: Optional[str] = None
    player_name: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


def move_command(player_id: str, from_station, to_station: int, ticket, use_double_move: bool = False) -> Command:
    return Command(CommandKind.MOVE, player_id, payload={
        'from': from_station,
        'to': to_station,
        'ticketType': ticket,
        'useDoubleMove': bool(use_double_move),
    })


@dataclass(frozen=True)
class Delta:
    """One outbound message for one recipient, already projected for them."""

    player_id: str
    event: str
    payload: Dict[str, Any]


@dataclass
class CommandResult:
    ok: bool
    error: Optional[GameError] = None
    value: Any = None
    dispose: bool = False

    @classmethod
    def failed(cls, code: ErrorCode, message: Optional[str] = None) -> 'CommandResult':
        return cls(ok=False, error=GameError(code, message))
