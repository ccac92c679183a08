import logging
import queue
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

_CLOSE = object()


class Outbox:
    """Bounded per-connection send queue.

    A slow client only ever fills its own outbox. When it overflows the
    connection is dropped and the player may come back through
    ``player:reconnect``.
    """

    def __init__(
        self,
        sid: str,
        namespace: str,
        send: Callable[[str, Dict[str, Any], str, str], None],
        disconnect: Callable[[str, str], None],
        size: int = 256,
        start_task: Optional[Callable] = None,
    ):
        self.sid = sid
        self.namespace = namespace
        self.closed = False
        self.dropped = False
        self._send = send
        self._disconnect = disconnect
        self._queue: queue.Queue = queue.Queue(maxsize=size)
        # No task starter means frames go out inline, in push order.
        self._pump = start_task(self._drain) if start_task else None

    def push(self, event: str, payload: Dict[str, Any]) -> bool:
        if self.closed:
            return False
        if self._pump is None:
            self._deliver(event, payload)
            return True
        try:
            self._queue.put_nowait((event, payload))
        except queue.Full:
            logger.warning(f'[outbox-overflow] sid={self.sid} size={self._queue.maxsize}')
            self.dropped = True
            self.close()
            self._disconnect(self.sid, self.namespace)
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._pump is not None:
            try:
                self._queue.put_nowait(_CLOSE)
            except queue.Full:
                # The pump checks `closed` after every frame.
                pass

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _drain(self) -> None:
        # Frames still queued when the connection closes are discarded.
        while not self.closed:
            item = self._queue.get()
            if item is _CLOSE or self.closed:
                break
            self._deliver(*item)

    def _deliver(self, event: str, payload: Dict[str, Any]) -> None:
        try:
            self._send(event, payload, self.sid, self.namespace)
        except Exception:
            logger.exception(f'[send-failed] sid={self.sid} event={event}')
