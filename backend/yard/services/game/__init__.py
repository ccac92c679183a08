"""Game domain services: transport graph, tickets, move rules and win rules.

This package contains pure domain logic that is driven by the room
sessions, keeping transport concerns separated from core game mechanics.
"""

from .constants import GameRules, Mode, Phase, Role, RoomStatus, TicketKind, Visibility, Winner, WinReason
from .errors import ErrorCode, GameError, InvariantViolation
from .graph import MapDefinitionError, Station, TransportGraph
from .maps import SMALL_MAP, load_graph
from .state import GameState, MoveRecord, Seat, Verdict
from .tickets import TicketLedger

__all__ = [
    'ErrorCode', 'GameError', 'GameRules', 'GameState', 'InvariantViolation', 'MapDefinitionError',
    'Mode', 'MoveRecord', 'Phase', 'Role', 'RoomStatus', 'SMALL_MAP', 'Seat', 'Station',
    'TicketKind', 'TicketLedger', 'TransportGraph', 'Verdict', 'Visibility', 'Winner', 'WinReason',
    'load_graph',
]
