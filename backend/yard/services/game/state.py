"""Authoritative per-game state and its transitions.

A GameState is created when a room starts (or rematches) and is only ever
mutated by the owning room session. Index 0 of ``seats`` is always Mr. X;
detectives follow in their fixed turn order.
"""

import random
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .clock import Clock
from .constants import GameRules, Phase, Role, TicketKind, Visibility, Winner, WinReason
from .errors import InvariantViolation
from .graph import TransportGraph
from .tickets import TicketLedger, transfer
from .validation import has_legal_move


@dataclass
class Seat:
    player_id: str
    name: str
    role: Role
    detective_index: Optional[int]
    position: int
    tickets: TicketLedger

    @property
    def is_mr_x(self) -> bool:
        return self.role is Role.MR_X

    @property
    def label(self) -> str:
        return 'mrX' if self.is_mr_x else f'detective{self.detective_index}'


@dataclass(frozen=True)
class MoveRecord:
    round: int
    player_id: str
    player_name: str
    role: Role
    detective_index: Optional[int]
    from_station: int
    to_station: int
    ticket: TicketKind
    timestamp: int
    visible_to: Visibility
    double_leg: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'round': self.round,
            'playerId': self.player_id,
            'playerName': self.player_name,
            'role': self.role.value,
            'detectiveIndex': self.detective_index,
            'from': self.from_station,
            'to': self.to_station,
            'ticketType': self.ticket.value,
            'timestamp': self.timestamp,
            'visibleTo': self.visible_to.value,
            'doubleLeg': self.double_leg,
        }


@dataclass(frozen=True)
class Verdict:
    winner: Winner
    reason: WinReason

    def to_dict(self) -> Dict[str, str]:
        return {'winner': self.winner.value, 'reason': self.reason.value}


def assign_starting_stations(graph: TransportGraph, player_count: int, rng: random.Random) -> List[int]:
    """Draw distinct starting stations; the first entry is Mr. X's."""
    pool = list(dict.fromkeys(graph.starting_stations))
    if len(pool) < player_count:
        raise InvariantViolation(f'{len(pool)} starting stations for {player_count} players')
    rng.shuffle(pool)
    for station in pool:
        if graph.is_mr_x_start_candidate(station):
            mr_x_station = station
            break
    else:
        mr_x_station = pool[0]
    rest = [s for s in pool if s != mr_x_station]
    return [mr_x_station] + rest[:player_count - 1]


class GameState:
    def __init__(self, graph: TransportGraph, rules: GameRules, seats: Sequence[Seat], clock: Optional[Clock] = None):
        if not seats or not seats[0].is_mr_x:
            raise InvariantViolation('seat 0 must be Mr. X')
        self.graph = graph
        self.rules = rules
        self.clock = clock or Clock()
        self.seats: List[Seat] = list(seats)
        self.phase = Phase.ASSIGNING
        self.current_round = 1
        self.current_player_index = 0
        self.last_revealed_position: Optional[int] = None
        self.double_move_in_progress = False
        self.rounds_exhausted = False
        self.move_history: List[MoveRecord] = []
        self.verdict: Optional[Verdict] = None
        self.retired: Set[str] = set()

    @classmethod
    def start(
        cls,
        graph: TransportGraph,
        rules: GameRules,
        roster: Sequence[Tuple[str, str]],
        rng: random.Random,
        clock: Optional[Clock] = None,
    ) -> 'GameState':
        """Assign roles, stations and tickets for ``roster`` ((player_id, name) pairs, Mr. X first)."""
        stations = assign_starting_stations(graph, len(roster), rng)
        detective_count = len(roster) - 1
        seats = []
        for index, (player_id, name) in enumerate(roster):
            if index == 0:
                seats.append(Seat(player_id, name, Role.MR_X, None, stations[0],
                                  TicketLedger.for_mr_x(rules, detective_count)))
            else:
                seats.append(Seat(player_id, name, Role.DETECTIVE, index - 1, stations[index],
                                  TicketLedger.for_detective(rules)))
        state = cls(graph, rules, seats, clock)
        state.ready()
        return state

    def ready(self) -> None:
        if self.phase is not Phase.ASSIGNING:
            raise InvariantViolation(f'cannot enter play from {self.phase.value}')
        self.phase = Phase.IN_PLAY

    # ---- lookups ----

    @property
    def mr_x(self) -> Seat:
        return self.seats[0]

    @property
    def detectives(self) -> List[Seat]:
        return self.seats[1:]

    @property
    def active_detectives(self) -> List[Seat]:
        return [d for d in self.detectives if d.player_id not in self.retired]

    @property
    def current_seat(self) -> Optional[Seat]:
        if self.phase is not Phase.IN_PLAY:
            return None
        return self.seats[self.current_player_index]

    def seat_for(self, player_id: str) -> Optional[Seat]:
        for seat in self.seats:
            if seat.player_id == player_id:
                return seat
        return None

    def detective_positions(self, exclude: Optional[str] = None) -> Set[int]:
        return {d.position for d in self.active_detectives if d.player_id != exclude}

    def is_reveal_round(self, round_number: Optional[int] = None) -> bool:
        return self.rules.is_reveal_round(self.current_round if round_number is None else round_number)

    @property
    def captured(self) -> bool:
        return self.mr_x.position in self.detective_positions()

    @property
    def at_mr_x_turn_start(self) -> bool:
        return (
            self.phase is Phase.IN_PLAY
            and self.current_player_index == 0
            and not self.double_move_in_progress
        )

    @property
    def pending_moves_this_round(self) -> List[str]:
        """Ids of players still due to move in the current round."""
        if self.phase is not Phase.IN_PLAY:
            return []
        return [
            seat.player_id for seat in self.seats[self.current_player_index:]
            if seat.player_id not in self.retired
        ]

    # ---- transitions ----

    def apply_move(self, player_id: str, to_station: int, ticket: TicketKind, use_double_move: bool = False) -> MoveRecord:
        """Apply a move that ``validate_move`` has already accepted."""
        seat = self.current_seat
        if seat is None or seat.player_id != player_id:
            raise InvariantViolation(f'{player_id} moved out of turn')
        ticket = TicketKind(ticket)
        from_station = seat.position

        if seat.is_mr_x:
            if use_double_move:
                seat.tickets.use_double_move()
            seat.tickets.debit(ticket)
            if use_double_move:
                leg = 1
            elif self.double_move_in_progress:
                leg = 2
            else:
                leg = 0
            visible = Visibility.ALL if self.is_reveal_round() else Visibility.MR_X_ONLY
        else:
            transfer(seat.tickets, self.mr_x.tickets, ticket)
            leg = 0
            visible = Visibility.ALL

        seat.position = to_station
        record = MoveRecord(
            round=self.current_round,
            player_id=seat.player_id,
            player_name=seat.name,
            role=seat.role,
            detective_index=seat.detective_index,
            from_station=from_station,
            to_station=to_station,
            ticket=ticket,
            timestamp=self.clock.now_ms(),
            visible_to=visible,
            double_leg=leg,
        )
        self.move_history.append(record)

        if seat.is_mr_x and self.is_reveal_round():
            self.last_revealed_position = to_station

        if self.captured:
            # The capture ends the game; the cursor stays where it happened.
            return record

        if seat.is_mr_x and leg == 1:
            self.double_move_in_progress = True
            if not has_legal_move(self, seat):
                # No second leg is possible: the turn passes to the detectives.
                self._advance_from(seat)
        else:
            self._advance_from(seat)
        return record

    def forfeit_turn(self) -> Optional[Seat]:
        """Skip the current player without a move; returns the skipped seat."""
        seat = self.current_seat
        if seat is None:
            return None
        self._advance_from(seat)
        return seat

    def retire(self, player_id: str) -> None:
        """Permanently remove a player from turn order (they left mid-game)."""
        seat = self.seat_for(player_id)
        if seat is None or player_id in self.retired:
            return
        self.retired.add(player_id)
        current = self.current_seat
        if current is not None and current.player_id == player_id and not seat.is_mr_x:
            self._advance_from(seat)

    def terminate(self, verdict: Verdict) -> None:
        self.verdict = verdict
        self.phase = Phase.TERMINATED

    def _advance_from(self, seat: Seat) -> None:
        if seat.is_mr_x:
            self.double_move_in_progress = False
            self._seek_detective(1)
        else:
            self._seek_detective(self.current_player_index + 1)

    def _seek_detective(self, start: int) -> None:
        # Detectives with no legal move forfeit their turn this round.
        for index in range(start, len(self.seats)):
            seat = self.seats[index]
            if seat.player_id in self.retired:
                continue
            if has_legal_move(self, seat):
                self.current_player_index = index
                return
        self._end_round()

    def _end_round(self) -> None:
        self.current_player_index = 0
        if self.current_round >= self.rules.max_rounds:
            self.rounds_exhausted = True
            return
        self.current_round += 1

    # ---- copies ----

    def clone(self) -> 'GameState':
        """Independent copy sharing the immutable graph, rules and clock."""
        other = GameState(
            self.graph,
            self.rules,
            [replace(seat, tickets=seat.tickets.copy()) for seat in self.seats],
            self.clock,
        )
        other.phase = self.phase
        other.current_round = self.current_round
        other.current_player_index = self.current_player_index
        other.last_revealed_position = self.last_revealed_position
        other.double_move_in_progress = self.double_move_in_progress
        other.rounds_exhausted = self.rounds_exhausted
        other.move_history = list(self.move_history)
        other.verdict = self.verdict
        other.retired = set(self.retired)
        return other

    def fingerprint(self) -> Dict[str, Any]:
        """Comparable summary of the state, timestamps excluded."""
        return {
            'phase': self.phase.value,
            'round': self.current_round,
            'cursor': self.current_player_index,
            'doubleMoveInProgress': self.double_move_in_progress,
            'lastRevealedPosition': self.last_revealed_position,
            'seats': [
                (s.player_id, s.role.value, s.position, s.tickets.to_dict(), s.tickets.double_moves_remaining)
                for s in self.seats
            ],
            'history': [
                (m.round, m.player_id, m.from_station, m.to_station, m.ticket.value, m.visible_to.value, m.double_leg)
                for m in self.move_history
            ],
            'verdict': self.verdict.to_dict() if self.verdict else None,
        }
