"""Room services: per-room sessions, the room registry and connection fan-out.

Sessions own their room exclusively; everything else talks to them by
submitting commands.
"""

from .commands import Command, CommandKind, CommandResult, Delta, Outbound, move_command
from .connections import Connections, PlayerRecord
from .outbox import Outbox
from .registry import RoomRegistry
from .session import RoomSession
from .throttle import ActionThrottle

__all__ = [
    'ActionThrottle', 'Command', 'CommandKind', 'CommandResult', 'Connections', 'Delta', 'Outbound', 'Outbox',
    'PlayerRecord', 'RoomRegistry', 'RoomSession', 'move_command',
]
