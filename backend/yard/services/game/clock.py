import re
import secrets
import string
import threading
import time
import uuid
from typing import Callable, Optional

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_LENGTH = 6
ROOM_CODE_RE = re.compile(r'^[A-Z0-9]{6}$')


class Clock:
    """Wall-clock milliseconds that never run backwards, plus a monotonic source for timeouts."""

    def __init__(self):
        self._last_ms = 0
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        current = int(time.time() * 1000)
        with self._lock:
            if current < self._last_ms:
                current = self._last_ms
            self._last_ms = current
        return current

    def monotonic(self) -> float:
        return time.monotonic()


class FixedClock(Clock):
    """Manually advanced clock for tests and replays."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        super().__init__()
        self._now_ms = start_ms

    def now_ms(self) -> int:
        return self._now_ms

    def monotonic(self) -> float:
        return self._now_ms / 1000.0

    def advance(self, seconds: float) -> None:
        self._now_ms += int(seconds * 1000)


def generate_room_code(choice: Callable[[str], str] = secrets.choice) -> str:
    return ''.join(choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_room_code(code) -> Optional[str]:
    """Upper-case and validate a client room code; None when malformed."""
    if not isinstance(code, str):
        return None
    code = code.strip().upper()
    return code if ROOM_CODE_RE.match(code) else None


def new_player_id() -> str:
    return uuid.uuid4().hex


def new_reconnection_token() -> str:
    return secrets.token_hex(32)
