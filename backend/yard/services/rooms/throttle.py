import logging
import threading
from collections import deque
from typing import Deque, Dict, Optional, Tuple

from yard.services.game.clock import Clock
from yard.services.game.errors import ErrorCode, GameError

logger = logging.getLogger(__name__)


class ActionThrottle:
    """Sliding-window limit on how often one connection may repeat an action.

    A limit of 0 turns the throttle off.
    """

    def __init__(self, limit: int = 5, window: float = 10.0, clock: Optional[Clock] = None):
        self.limit = limit
        self.window = window
        self.clock = clock or Clock()
        self._hits: Dict[Tuple[str, str], Deque[float]] = {}
        self._lock = threading.Lock()

    def allow(self, sid: str, action: str) -> bool:
        if self.limit <= 0:
            return True
        now = self.clock.monotonic()
        with self._lock:
            hits = self._hits.setdefault((sid, action), deque())
            while hits and now - hits[0] >= self.window:
                hits.popleft()
            if len(hits) >= self.limit:
                return False
            hits.append(now)
            return True

    def check(self, sid: str, action: str) -> None:
        if not self.allow(sid, action):
            logger.info(f'[throttled] sid={sid} action={action} limit={self.limit} window={self.window}')
            raise GameError(ErrorCode.RATE_LIMITED)

    def forget(self, sid: str) -> None:
        with self._lock:
            for key in [key for key in self._hits if key[0] == sid]:
                del self._hits[key]

    def __len__(self) -> int:
        return len(self._hits)
