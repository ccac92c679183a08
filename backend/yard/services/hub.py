"""Process-wide game services shared by the socket handlers and HTTP routes."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from yard.services.game.clock import Clock
from yard.services.game.constants import GameRules
from yard.services.game.graph import TransportGraph
from yard.services.game.maps import load_graph
from yard.services.rooms import ActionThrottle, Command, CommandKind, Connections, RoomRegistry, RoomSession

logger = logging.getLogger(__name__)


@dataclass
class Hub:
    graph: TransportGraph
    rules: GameRules
    registry: RoomRegistry
    connections: Connections
    clock: Clock
    turn_timeout: float = 0
    started_at: int = field(default=0)
    throttle: ActionThrottle = field(default_factory=ActionThrottle)

    def sweep(self, now_ms: Optional[int] = None) -> Dict[str, Any]:
        """One maintenance pass: turn timeouts, room GC, expired players."""
        skipped = 0
        if self.turn_timeout:
            for session in self.registry.sessions():
                result = session.submit(Command(CommandKind.TICK))
                if result.ok and result.value:
                    skipped += 1
        removed = self.registry.collect_garbage(now_ms)
        for code in removed:
            self.connections.release_room(code)
        expired = self.connections.purge_expired(now_ms)
        return {'skipped': skipped, 'removed': removed, 'expired': expired}


def build_hub(
    config: Mapping[str, Any],
    send: Callable,
    disconnect: Callable[[str, str], None],
    start_task: Callable,
    clock: Optional[Clock] = None,
) -> Hub:
    """Wire graph, rules, registry and connection tables from app config."""
    clock = clock or Clock()
    graph = load_graph(config.get('MAP_PATH'), max_players=int(config.get('MAX_PLAYERS', 6)))
    rules = GameRules.from_config(config, graph.reveal_rounds)

    connections = Connections(
        send,
        disconnect,
        outbox_size=int(config.get('OUTBOX_SIZE', 256)),
        start_task=None if config.get('SYNC_FANOUT') else start_task,
        clock=clock,
        reconnect_timeout=float(config.get('RECONNECT_TIMEOUT_SEC', 300)),
    )
    session_task = None if config.get('INLINE_SESSIONS') else start_task

    def session_factory(code: str, host_id: str, host_name: str) -> RoomSession:
        return RoomSession(
            code,
            host_id,
            host_name,
            graph,
            rules,
            connections.publish,
            clock=clock,
            queue_size=int(config.get('SESSION_QUEUE_SIZE', 64)),
            enqueue_timeout=float(config.get('ENQUEUE_TIMEOUT_SEC', 0.5)),
            command_timeout=float(config.get('COMMAND_TIMEOUT_SEC', 5)),
            turn_timeout=float(config.get('TURN_TIMEOUT_SEC', 0)),
            reconnect_timeout=float(config.get('RECONNECT_TIMEOUT_SEC', 300)),
            start_task=session_task,
        )

    registry = RoomRegistry(
        session_factory,
        max_rooms=int(config.get('MAX_ROOMS', 100)),
        clock=clock,
        idle_timeout=float(config.get('ROOM_IDLE_TIMEOUT_SEC', 600)),
        waiting_ttl=float(config.get('WAITING_ROOM_TTL_SEC', 1800)),
        room_ttl=float(config.get('ROOM_TTL_SEC', 7200)),
    )
    logger.info(
        f'[hub] map={graph.name} stations={len(graph)} edges={graph.edge_count} '
        f'max_players={rules.max_players} max_rooms={registry.max_rooms}'
    )
    return Hub(graph, rules, registry, connections, clock,
               turn_timeout=float(config.get('TURN_TIMEOUT_SEC', 0)),
               started_at=clock.now_ms(),
               throttle=ActionThrottle(
                   limit=int(config.get('SOCKET_RATE_LIMIT', 5)),
                   window=float(config.get('SOCKET_RATE_WINDOW_SEC', 10)),
                   clock=clock,
               ))
