"""Move validation.

Every check runs against server-side state; the client's declared
``from`` is verified, never trusted.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Set, Union

from .constants import NORMAL_TICKETS, Phase, TicketKind
from .errors import DEFAULT_MESSAGES, ErrorCode

if TYPE_CHECKING:
    from .state import GameState, Seat


@dataclass(frozen=True)
class Accepted:
    ok = True


@dataclass(frozen=True)
class Rejected:
    reason: ErrorCode
    message: str = ''
    ok = False

    def __post_init__(self):
        if not self.message:
            object.__setattr__(self, 'message', DEFAULT_MESSAGES[self.reason])


MoveVerdict = Union[Accepted, Rejected]
ACCEPTED = Accepted()


def validate_move(
    state: 'GameState',
    player_id: str,
    from_station: Optional[int],
    to_station: int,
    ticket: TicketKind,
    use_double_move: bool = False,
) -> MoveVerdict:
    if state.phase is not Phase.IN_PLAY:
        return Rejected(ErrorCode.GAME_NOT_IN_PLAY)
    seat = state.current_seat
    if seat is None or seat.player_id != player_id:
        return Rejected(ErrorCode.MOVE_NOT_YOUR_TURN)

    if from_station is None:
        from_station = seat.position
    if from_station != seat.position:
        return Rejected(ErrorCode.MOVE_INVALID_FROM)
    if from_station == to_station:
        return Rejected(ErrorCode.MOVE_SAME_STATION)
    graph = state.graph
    if from_station not in graph or to_station not in graph:
        return Rejected(ErrorCode.MOVE_UNKNOWN_STATION)

    ticket = TicketKind(ticket)
    if ticket is TicketKind.FERRY:
        return Rejected(ErrorCode.MOVE_NO_TICKET, 'Ferry can only be used with black tickets')
    if ticket is TicketKind.BLACK and not seat.is_mr_x:
        return Rejected(ErrorCode.MOVE_BLACK_NOT_ALLOWED)
    if not seat.tickets.has_ticket(ticket):
        return Rejected(ErrorCode.MOVE_NO_TICKET, f'No {ticket.value} tickets available')

    if ticket is TicketKind.BLACK:
        if not graph.modes_between(from_station, to_station):
            return Rejected(ErrorCode.MOVE_NOT_CONNECTED, 'Stations are not connected')
    elif ticket not in graph.valid_tickets_for(from_station, to_station):
        return Rejected(ErrorCode.MOVE_NOT_CONNECTED, f'Stations are not connected by {ticket.value}')

    if to_station in state.detective_positions(exclude=seat.player_id):
        if seat.is_mr_x:
            return Rejected(ErrorCode.MOVE_OCCUPIED, 'Destination station is occupied by a detective')
        return Rejected(ErrorCode.MOVE_OCCUPIED, 'Destination station is occupied by another detective')

    if use_double_move:
        if not seat.is_mr_x:
            return Rejected(ErrorCode.MOVE_DOUBLE_NOT_ALLOWED, 'Only Mr. X can use double-move cards')
        if state.double_move_in_progress:
            return Rejected(ErrorCode.MOVE_DOUBLE_NOT_ALLOWED, 'Double-move already in progress')
        if seat.tickets.double_moves_remaining <= 0:
            return Rejected(ErrorCode.MOVE_DOUBLE_NOT_ALLOWED, 'No double-move cards remaining')

    return ACCEPTED


def legal_destinations(state: 'GameState', seat: 'Seat') -> Set[int]:
    """Stations the seat could reach right now with a ticket it holds."""
    blocked = state.detective_positions(exclude=seat.player_id)
    kinds = list(NORMAL_TICKETS)
    if seat.is_mr_x:
        kinds.append(TicketKind.BLACK)
    out = set()
    for kind in kinds:
        if seat.tickets.has_ticket(kind):
            out.update(state.graph.destinations(seat.position, kind))
    return out - blocked


def has_legal_move(state: 'GameState', seat: 'Seat') -> bool:
    return bool(legal_destinations(state, seat))
