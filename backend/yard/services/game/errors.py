from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    ROOM_NOT_FOUND = 'room.notFound'
    ROOM_FULL = 'room.full'
    ROOM_ALREADY_STARTED = 'room.alreadyStarted'
    ROOM_NOT_HOST = 'room.notHost'
    ROOM_TOO_FEW_PLAYERS = 'room.tooFewPlayers'
    ROOM_NOT_FINISHED = 'room.notFinished'
    ROOM_NOT_MEMBER = 'room.notMember'
    GAME_NOT_IN_PLAY = 'game.notInPlay'
    MOVE_NOT_YOUR_TURN = 'move.notYourTurn'
    MOVE_INVALID_FROM = 'move.invalidFrom'
    MOVE_UNKNOWN_STATION = 'move.unknownStation'
    MOVE_SAME_STATION = 'move.sameStation'
    MOVE_NO_TICKET = 'move.noTicket'
    MOVE_NOT_CONNECTED = 'move.notConnected'
    MOVE_OCCUPIED = 'move.occupied'
    MOVE_BLACK_NOT_ALLOWED = 'move.blackNotAllowed'
    MOVE_DOUBLE_NOT_ALLOWED = 'move.doubleNotAllowed'
    REQUEST_INVALID = 'request.invalid'
    SERVER_FULL = 'server.full'
    AUTH_DENIED = 'auth.denied'
    RATE_LIMITED = 'rate.limited'
    INTERNAL_BUSY = 'internal.busy'
    INTERNAL_ERROR = 'internal.error'


DEFAULT_MESSAGES = {
    ErrorCode.ROOM_NOT_FOUND: 'Room not found',
    ErrorCode.ROOM_FULL: 'Room is full',
    ErrorCode.ROOM_ALREADY_STARTED: 'Game already in progress',
    ErrorCode.ROOM_NOT_HOST: 'Only the host can do that',
    ErrorCode.ROOM_TOO_FEW_PLAYERS: 'Need at least 2 players to start',
    ErrorCode.ROOM_NOT_FINISHED: 'Game must be finished before rematch',
    ErrorCode.ROOM_NOT_MEMBER: 'You are not in this room',
    ErrorCode.GAME_NOT_IN_PLAY: 'Game is not in progress',
    ErrorCode.MOVE_NOT_YOUR_TURN: 'Not your turn',
    ErrorCode.MOVE_INVALID_FROM: 'Invalid starting position',
    ErrorCode.MOVE_UNKNOWN_STATION: 'Unknown station',
    ErrorCode.MOVE_SAME_STATION: 'Cannot move to the same station',
    ErrorCode.MOVE_NO_TICKET: 'No ticket of that kind available',
    ErrorCode.MOVE_NOT_CONNECTED: 'Stations are not connected by that ticket',
    ErrorCode.MOVE_OCCUPIED: 'Destination station is occupied',
    ErrorCode.MOVE_BLACK_NOT_ALLOWED: 'Only Mr. X can use black tickets',
    ErrorCode.MOVE_DOUBLE_NOT_ALLOWED: 'Double move not available',
    ErrorCode.REQUEST_INVALID: 'Invalid request',
    ErrorCode.SERVER_FULL: 'Server is at capacity. Please try again later.',
    ErrorCode.AUTH_DENIED: 'Not authorized',
    ErrorCode.RATE_LIMITED: 'Too many requests. Please slow down.',
    ErrorCode.INTERNAL_BUSY: 'Room is busy, please retry',
    ErrorCode.INTERNAL_ERROR: 'An error occurred. Please try again.',
}


class GameError(Exception):
    """A command-level rejection, reported only to the command's originator."""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = ErrorCode(code)
        self.message = message or DEFAULT_MESSAGES[self.code]
        super().__init__(f'{self.code.value}: {self.message}')

    def to_payload(self) -> Dict[str, Any]:
        return {'message': self.message, 'code': self.code.value}


class InvariantViolation(RuntimeError):
    """Raised when a mutation would break a state invariant (e.g. negative tickets)."""
