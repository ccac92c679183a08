from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional


class TicketKind(str, Enum):
    TAXI = 'taxi'
    BUS = 'bus'
    UNDERGROUND = 'underground'
    BLACK = 'black'
    # Never held; a ferry edge is travelled by spending BLACK.
    FERRY = 'ferry'


class Mode(str, Enum):
    TAXI = 'taxi'
    BUS = 'bus'
    UNDERGROUND = 'underground'
    FERRY = 'ferry'

    @property
    def ticket(self) -> Optional[TicketKind]:
        """The ticket that pays for this mode, or None for ferry."""
        if self is Mode.FERRY:
            return None
        return TicketKind(self.value)


LAND_MODES = (Mode.TAXI, Mode.BUS, Mode.UNDERGROUND)
NORMAL_TICKETS = (TicketKind.TAXI, TicketKind.BUS, TicketKind.UNDERGROUND)


class Role(str, Enum):
    MR_X = 'mrX'
    DETECTIVE = 'detective'


class Phase(str, Enum):
    IN_LOBBY = 'inLobby'
    ASSIGNING = 'assigning'
    IN_PLAY = 'inPlay'
    TERMINATED = 'terminated'


class RoomStatus(str, Enum):
    WAITING = 'waiting'
    PLAYING = 'playing'
    FINISHED = 'finished'


class Winner(str, Enum):
    MR_X = 'mrX'
    DETECTIVES = 'detectives'


class WinReason(str, Enum):
    CAPTURE = 'capture'
    ESCAPED = 'escaped'
    DETECTIVES_STUCK = 'detectivesStuck'
    FORFEIT = 'forfeit'
    # Mr. X has no legal move at the start of his turn.
    CORNERED = 'cornered'


class Visibility(str, Enum):
    ALL = 'all'
    MR_X_ONLY = 'mrX-only'


MAX_PLAYERS = 6
MIN_PLAYERS = 2
MAX_ROUNDS = 24
REVEAL_ROUNDS = frozenset({3, 8, 13, 18, 24})
MR_X_DOUBLE_MOVES = 2

# Black tickets are added at game start, one per detective.
MR_X_STARTING_TICKETS = {
    TicketKind.TAXI: 4,
    TicketKind.BUS: 3,
    TicketKind.UNDERGROUND: 3,
}

DETECTIVE_STARTING_TICKETS = {
    TicketKind.TAXI: 10,
    TicketKind.BUS: 8,
    TicketKind.UNDERGROUND: 4,
}


@dataclass(frozen=True)
class GameRules:
    """Tunable rule set for one room; built from app config."""

    max_players: int = MAX_PLAYERS
    min_players: int = MIN_PLAYERS
    max_rounds: int = MAX_ROUNDS
    reveal_rounds: FrozenSet[int] = REVEAL_ROUNDS
    double_moves: int = MR_X_DOUBLE_MOVES
    mr_x_tickets: Dict[TicketKind, int] = field(default_factory=lambda: dict(MR_X_STARTING_TICKETS))
    detective_tickets: Dict[TicketKind, int] = field(default_factory=lambda: dict(DETECTIVE_STARTING_TICKETS))

    def is_reveal_round(self, round_number: int) -> bool:
        return round_number in self.reveal_rounds

    @classmethod
    def from_config(cls, config, map_reveal_rounds: Optional[FrozenSet[int]] = None) -> 'GameRules':
        reveal = config.get('REVEAL_ROUNDS')
        if reveal:
            reveal_rounds = frozenset(int(r) for r in reveal)
        elif map_reveal_rounds:
            reveal_rounds = frozenset(map_reveal_rounds)
        else:
            reveal_rounds = REVEAL_ROUNDS
        return cls(
            max_players=int(config.get('MAX_PLAYERS', MAX_PLAYERS)),
            min_players=int(config.get('MIN_PLAYERS', MIN_PLAYERS)),
            max_rounds=int(config.get('MAX_ROUNDS', MAX_ROUNDS)),
            reveal_rounds=reveal_rounds,
        )
