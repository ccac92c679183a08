from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from yard.services.game.constants import Phase, RoomStatus
from yard.services.game.projection import project_game
from yard.services.game.state import GameState


@dataclass
class Member:
    player_id: str
    name: str
    connected: bool = True
    disconnected_at: Optional[int] = None
    # Left mid-game: kept for the record, no longer takes turns.
    retired: bool = False

    def to_dict(self, game: Optional[GameState] = None) -> Dict[str, Any]:
        seat = game.seat_for(self.player_id) if game else None
        return {
            'id': self.player_id,
            'name': self.name,
            'role': seat.role.value if seat else None,
            'detectiveIndex': seat.detective_index if seat else None,
            'label': seat.label if seat else None,
            'connected': self.connected,
            'retired': self.retired,
        }


class Room:
    """A code-addressed match. Owned and mutated only by its RoomSession."""

    def __init__(self, code: str, host_id: str, host_name: str, max_players: int, now_ms: int):
        self.code = code
        self.host_id = host_id
        self.members: List[Member] = [Member(host_id, host_name)]
        self.status = RoomStatus.WAITING
        self.max_players = max_players
        self.created_at = now_ms
        self.last_activity = now_ms
        self.started_at: Optional[int] = None
        self.generation = 0
        self.game: Optional[GameState] = None
        self.idle_since: Optional[int] = None

    @property
    def phase(self) -> Phase:
        return self.game.phase if self.game else Phase.IN_LOBBY

    def member(self, player_id: str) -> Optional[Member]:
        for m in self.members:
            if m.player_id == player_id:
                return m
        return None

    def member_by_name(self, name: str) -> Optional[Member]:
        wanted = name.strip().lower()
        for m in self.members:
            if m.name.lower() == wanted:
                return m
        return None

    def online_members(self) -> List[Member]:
        return [m for m in self.members if m.connected]

    def touch(self, now_ms: int) -> None:
        self.last_activity = now_ms
        if self.online_members():
            self.idle_since = None
        elif self.idle_since is None:
            self.idle_since = now_ms

    def to_dict(self, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        return {
            'code': self.code,
            'host': self.host_id,
            'players': [m.to_dict(self.game) for m in self.members],
            'status': self.status.value,
            'phase': self.phase.value,
            'maxPlayers': self.max_players,
            'createdAt': self.created_at,
            'lastActivity': self.last_activity,
            'startedAt': self.started_at,
            'gameState': project_game(self.game, viewer_id) if self.game else None,
        }

    def summary(self) -> Dict[str, Any]:
        game = self.game
        return {
            'code': self.code,
            'host': self.host_id,
            'status': self.status.value,
            'phase': self.phase.value,
            'players': [{'id': m.player_id, 'name': m.name, 'connected': m.connected} for m in self.members],
            'online': len(self.online_members()),
            'currentRound': game.current_round if game else None,
            'winner': game.verdict.winner.value if game and game.verdict else None,
            'createdAt': self.created_at,
            'lastActivity': self.last_activity,
            'idleSince': self.idle_since,
        }
