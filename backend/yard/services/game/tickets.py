from typing import Dict, Mapping

from .constants import GameRules, TicketKind
from .errors import ErrorCode, GameError, InvariantViolation


class TicketLedger:
    """Per-player ticket inventory.

    Counts are never negative and ferry is never held. Mr. X additionally
    holds double-move cards, tracked separately from tickets.
    """

    def __init__(self, counts: Mapping[TicketKind, int], double_moves: int = 0):
        self._counts: Dict[TicketKind, int] = {}
        for kind, count in counts.items():
            kind = TicketKind(kind)
            if kind is TicketKind.FERRY and count:
                raise InvariantViolation('ferry tickets cannot be held')
            if count < 0:
                raise InvariantViolation(f'negative {kind.value} count')
            if kind is not TicketKind.FERRY:
                self._counts[kind] = int(count)
        if double_moves < 0:
            raise InvariantViolation('negative double-move count')
        self._double_moves = int(double_moves)

    @classmethod
    def for_mr_x(cls, rules: GameRules, detective_count: int) -> 'TicketLedger':
        counts = dict(rules.mr_x_tickets)
        counts[TicketKind.BLACK] = detective_count
        return cls(counts, double_moves=rules.double_moves)

    @classmethod
    def for_detective(cls, rules: GameRules) -> 'TicketLedger':
        return cls(rules.detective_tickets)

    def count(self, kind: TicketKind) -> int:
        return self._counts.get(TicketKind(kind), 0)

    def has_ticket(self, kind: TicketKind) -> bool:
        return self.count(kind) > 0

    def debit(self, kind: TicketKind) -> None:
        kind = TicketKind(kind)
        if kind is TicketKind.FERRY:
            raise InvariantViolation('ferry is paid for with a black ticket')
        if self.count(kind) <= 0:
            raise GameError(ErrorCode.MOVE_NO_TICKET, f'No {kind.value} tickets available')
        self._counts[kind] -= 1

    def credit(self, kind: TicketKind, amount: int = 1) -> None:
        kind = TicketKind(kind)
        if kind is TicketKind.FERRY:
            raise InvariantViolation('ferry tickets cannot be credited')
        if amount < 0:
            raise InvariantViolation('credit amount must be non-negative')
        self._counts[kind] = self.count(kind) + amount

    @property
    def double_moves_remaining(self) -> int:
        return self._double_moves

    def use_double_move(self) -> None:
        if self._double_moves <= 0:
            raise GameError(ErrorCode.MOVE_DOUBLE_NOT_ALLOWED, 'No double-move cards remaining')
        self._double_moves -= 1

    def total(self) -> int:
        return sum(self._counts.values())

    def copy(self) -> 'TicketLedger':
        return TicketLedger(dict(self._counts), double_moves=self._double_moves)

    def to_dict(self) -> Dict[str, int]:
        return {kind.value: count for kind, count in self._counts.items()}

    def __eq__(self, other) -> bool:
        if not isinstance(other, TicketLedger):
            return NotImplemented
        return self.to_dict() == other.to_dict() and self._double_moves == other._double_moves

    def __repr__(self) -> str:
        return f'TicketLedger({self.to_dict()}, double_moves={self._double_moves})'


def transfer(source: TicketLedger, target: TicketLedger, kind: TicketKind) -> None:
    """Debit one ticket from source and credit it to target, both or neither."""
    source.debit(kind)
    try:
        target.credit(kind)
    except InvariantViolation:
        source.credit(kind)
        raise
