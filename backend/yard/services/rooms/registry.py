import logging
import threading
from typing import Callable, Dict, List, Optional

from yard.services.game.clock import Clock, generate_room_code, normalize_room_code
from yard.services.game.errors import ErrorCode, GameError

from .session import RoomSession

logger = logging.getLogger(__name__)

CODE_ATTEMPTS = 10


class RoomRegistry:
    """Process-wide map of room code to RoomSession.

    The lock guards the dict only; it is never held while talking to a
    session.
    """

    def __init__(
        self,
        session_factory: Callable[[str, str, str], RoomSession],
        max_rooms: int = 100,
        clock: Optional[Clock] = None,
        code_factory: Callable[[], str] = generate_room_code,
        idle_timeout: float = 600,
        waiting_ttl: float = 1800,
        room_ttl: float = 7200,
    ):
        self._session_factory = session_factory
        self._code_factory = code_factory
        self._rooms: Dict[str, RoomSession] = {}
        self._lock = threading.Lock()
        self.max_rooms = max_rooms
        self.clock = clock or Clock()
        self.idle_timeout = idle_timeout
        self.waiting_ttl = waiting_ttl
        self.room_ttl = room_ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def create(self, host_id: str, host_name: str) -> RoomSession:
        with self._lock:
            if len(self._rooms) >= self.max_rooms:
                raise GameError(ErrorCode.SERVER_FULL)
            for _ in range(CODE_ATTEMPTS):
                code = self._code_factory()
                if code not in self._rooms:
                    break
            else:
                logger.error(f'[code-exhausted] attempts={CODE_ATTEMPTS} rooms={len(self._rooms)}')
                raise GameError(ErrorCode.INTERNAL_ERROR, 'Could not allocate a room code')
            # Reserve the code before the session (and its worker) exists.
            self._rooms[code] = None
        try:
            session = self._session_factory(code, host_id, host_name)
        except Exception:
            with self._lock:
                self._rooms.pop(code, None)
            raise
        with self._lock:
            self._rooms[code] = session
        return session

    def get(self, code: Optional[str]) -> Optional[RoomSession]:
        normalized = normalize_room_code(code) if code else None
        if normalized is None:
            return None
        with self._lock:
            return self._rooms.get(normalized)

    def find(self, code: Optional[str]) -> RoomSession:
        session = self.get(code)
        if session is None:
            raise GameError(ErrorCode.ROOM_NOT_FOUND)
        return session

    def destroy(self, code: str, reason: str = 'disposed') -> bool:
        with self._lock:
            session = self._rooms.pop(code, None)
        if session is None:
            return False
        session.stop()
        logger.info(f'[room-destroyed] code={code} reason={reason}')
        return True

    def sessions(self) -> List[RoomSession]:
        with self._lock:
            return [s for s in self._rooms.values() if s is not None]

    def snapshot(self) -> List[dict]:
        """Last published summary of every live room."""
        return [s.summary for s in self.sessions()]

    def counts_by_status(self) -> Dict[str, int]:
        counts = {'waiting': 0, 'playing': 0, 'finished': 0}
        for summary in self.snapshot():
            counts[summary['status']] = counts.get(summary['status'], 0) + 1
        return counts

    def expiry_reason(self, summary: dict, now_ms: int) -> Optional[str]:
        """Why the room described by ``summary`` should go, or None to keep it."""
        age = now_ms - summary['createdAt']
        if age > self.room_ttl * 1000:
            return 'ttl'
        status = summary['status']
        if status == 'finished' and summary['online'] == 0:
            return 'finished'
        if status == 'waiting' and age > self.waiting_ttl * 1000:
            return 'waiting-ttl'
        idle_since = summary['idleSince']
        if idle_since is not None and now_ms - idle_since > self.idle_timeout * 1000:
            return 'idle'
        return None

    def collect_garbage(self, now_ms: Optional[int] = None) -> List[str]:
        now_ms = self.clock.now_ms() if now_ms is None else now_ms
        removed = []
        for session in self.sessions():
            reason = self.expiry_reason(session.summary, now_ms)
            if reason and self.destroy(session.code, reason):
                removed.append(session.code)
        if removed:
            logger.info(f'[gc] removed={len(removed)} codes={",".join(removed)} remaining={len(self)}')
        return removed
