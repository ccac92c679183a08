import hmac
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from yard.services.game.clock import Clock, new_player_id, new_reconnection_token
from yard.services.game.errors import ErrorCode, GameError

from .commands import Delta
from .outbox import Outbox

logger = logging.getLogger(__name__)


@dataclass
class PlayerRecord:
    player_id: str
    name: str
    token: str
    sid: Optional[str] = None
    room_code: Optional[str] = None
    disconnected_at: Optional[int] = None

    def lobby_payload(self) -> dict:
        return {'playerId': self.player_id, 'playerName': self.name, 'reconnectionToken': self.token}


class Connections:
    """Who is connected where: sid -> player, player -> room, sid -> outbox.

    One instance per app. Every table change happens under ``_lock``;
    sends happen outside it.
    """

    def __init__(
        self,
        send: Callable,
        disconnect: Callable[[str, str], None],
        outbox_size: int = 256,
        start_task: Optional[Callable] = None,
        clock: Optional[Clock] = None,
        reconnect_timeout: float = 300,
    ):
        self._send = send
        self._disconnect = disconnect
        self._outbox_size = outbox_size
        self._start_task = start_task
        self.clock = clock or Clock()
        self.reconnect_timeout = reconnect_timeout
        self._lock = threading.Lock()
        self._players: Dict[str, PlayerRecord] = {}
        self._by_sid: Dict[str, str] = {}
        self._outboxes: Dict[str, Outbox] = {}

    # ---- connections ----

    def open(self, sid: str, namespace: str) -> Outbox:
        outbox = Outbox(sid, namespace, self._send, self._disconnect, self._outbox_size, self._start_task)
        with self._lock:
            previous = self._outboxes.get(sid)
            self._outboxes[sid] = outbox
        if previous is not None:
            previous.close()
        return outbox

    def close(self, sid: str) -> Optional[PlayerRecord]:
        """Forget a closed connection; returns the player it carried, if any."""
        with self._lock:
            outbox = self._outboxes.pop(sid, None)
            player_id = self._by_sid.pop(sid, None)
            record = self._players.get(player_id) if player_id else None
            if record is not None and record.sid == sid:
                record.sid = None
                record.disconnected_at = self.clock.now_ms()
        if outbox is not None:
            outbox.close()
        return record

    def connected_count(self) -> int:
        with self._lock:
            return len(self._outboxes)

    # ---- players ----

    def register(self, sid: str, name: str) -> PlayerRecord:
        record = PlayerRecord(new_player_id(), name, new_reconnection_token(), sid=sid)
        with self._lock:
            self._players[record.player_id] = record
            self._by_sid[sid] = record.player_id
        logger.info(f'[lobby-joined] player={name} sid={sid}')
        return record

    def player_for_sid(self, sid: str) -> Optional[PlayerRecord]:
        with self._lock:
            player_id = self._by_sid.get(sid)
            return self._players.get(player_id) if player_id else None

    def player(self, player_id: str) -> Optional[PlayerRecord]:
        with self._lock:
            return self._players.get(player_id)

    def set_room(self, player_id: str, code: Optional[str]) -> None:
        with self._lock:
            record = self._players.get(player_id)
            if record is not None:
                record.room_code = code

    def release_room(self, code: str) -> int:
        """Detach every player still bound to a room that is gone."""
        released = 0
        with self._lock:
            for record in self._players.values():
                if record.room_code == code:
                    record.room_code = None
                    released += 1
        return released

    def reattach(self, player_id: str, token: str, sid: str) -> PlayerRecord:
        """Move a player onto a new connection after checking their token."""
        now = self.clock.now_ms()
        with self._lock:
            record = self._players.get(player_id)
            if record is None or not hmac.compare_digest(record.token, token):
                raise GameError(ErrorCode.AUTH_DENIED, 'Invalid or expired reconnection token. Please rejoin the game.')
            if record.disconnected_at is not None and now - record.disconnected_at > self.reconnect_timeout * 1000:
                del self._players[player_id]
                raise GameError(ErrorCode.AUTH_DENIED, 'Invalid or expired reconnection token. Please rejoin the game.')
            old_sid = record.sid
            if old_sid and old_sid != sid:
                self._by_sid.pop(old_sid, None)
                old_outbox = self._outboxes.pop(old_sid, None)
            else:
                old_outbox = None
            displaced = self._players.get(self._by_sid.get(sid, ''))
            if displaced is not None and displaced is not record:
                displaced.sid = None
                displaced.disconnected_at = now
            record.sid = sid
            record.disconnected_at = None
            self._by_sid[sid] = player_id
        if old_outbox is not None:
            old_outbox.close()
            self._disconnect(old_sid, old_outbox.namespace)
            logger.info(f'[reconnect] player={record.name} replaced sid={old_sid}')
        return record

    def purge_expired(self, now_ms: Optional[int] = None) -> List[str]:
        """Drop offline players whose reconnection window has passed."""
        now_ms = self.clock.now_ms() if now_ms is None else now_ms
        limit = self.reconnect_timeout * 1000
        with self._lock:
            expired = [
                pid for pid, r in self._players.items()
                if r.sid is None and r.disconnected_at is not None and now_ms - r.disconnected_at > limit
            ]
            for pid in expired:
                del self._players[pid]
        if expired:
            logger.info(f'[cleanup] expired_players={len(expired)}')
        return expired

    # ---- sending ----

    def send(self, sid: str, event: str, payload: dict) -> bool:
        with self._lock:
            outbox = self._outboxes.get(sid)
        if outbox is None:
            return False
        return outbox.push(event, payload)

    def publish(self, delta: Delta) -> None:
        """Route a session delta to the player's current connection."""
        with self._lock:
            record = self._players.get(delta.player_id)
            outbox = self._outboxes.get(record.sid) if record and record.sid else None
        if outbox is None:
            logger.debug(f'[publish-skip] player={delta.player_id} event={delta.event}')
            return
        outbox.push(delta.event, delta.payload)
