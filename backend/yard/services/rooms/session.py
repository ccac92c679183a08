"""Single-writer room sessions.

Each RoomSession owns one Room (and its GameState) exclusively. Commands
enter a bounded queue and are applied one at a time by the session's
worker; the deltas a command produces are published only after it has
been applied in full, so observers never see a partial state.
"""

import logging
import queue
import random
import threading
from dataclasses import replace
from typing import Callable, List, Optional

from yard.models import Member, Room
from yard.services.game.clock import Clock
from yard.services.game.constants import GameRules, Phase, RoomStatus, TicketKind
from yard.services.game.errors import ErrorCode, GameError, InvariantViolation
from yard.services.game.graph import TransportGraph
from yard.services.game.projection import can_see_everything, game_over_payload, project_move
from yard.services.game.rules import settle
from yard.services.game.state import GameState
from yard.services.game.validation import Rejected, validate_move

from .commands import Command, CommandKind, CommandResult, Delta, Outbound

logger = logging.getLogger(__name__)

_STOP = object()


def start_daemon(target: Callable, *args):
    worker = threading.Thread(target=target, args=args, daemon=True)
    worker.start()
    return worker


class _Pending:
    __slots__ = ('command', 'result', 'done', 'cancelled')

    def __init__(self, command: Command):
        self.command = command
        self.result: Optional[CommandResult] = None
        self.done = threading.Event()
        # Set by a caller that gave up waiting; the worker then skips the command.
        self.cancelled = False


class RoomSession:
    def __init__(
        self,
        code: str,
        host_id: str,
        host_name: str,
        graph: TransportGraph,
        rules: GameRules,
        publish: Callable[[Delta], None],
        clock: Optional[Clock] = None,
        queue_size: int = 64,
        enqueue_timeout: float = 0.5,
        command_timeout: float = 5.0,
        turn_timeout: float = 0,
        reconnect_timeout: float = 300,
        start_task: Optional[Callable] = start_daemon,
    ):
        self.code = code
        self.graph = graph
        self.rules = rules
        self.clock = clock or Clock()
        self.room = Room(code, host_id, host_name, rules.max_players, self.clock.now_ms())
        self.summary = self.room.summary()
        self.closed = False
        self._publish = publish
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._enqueue_timeout = enqueue_timeout
        self._command_timeout = command_timeout
        self._turn_timeout = turn_timeout
        self._reconnect_timeout = reconnect_timeout
        self._handlers = {
            CommandKind.CREATE_ROOM: self._create_room,
            CommandKind.JOIN_ROOM: self._join_room,
            CommandKind.LEAVE_ROOM: self._leave_room,
            CommandKind.START_GAME: self._start_game,
            CommandKind.MOVE: self._move,
            CommandKind.REMATCH: self._rematch,
            CommandKind.DISCONNECT: self._disconnect,
            CommandKind.RECONNECT: self._reconnect,
            CommandKind.ADMIN_KICK: self._admin_kick,
            CommandKind.ADMIN_CLOSE: self._admin_close,
            CommandKind.HEARTBEAT: self._heartbeat,
            CommandKind.TICK: self._tick,
        }
        # Held for the whole of each apply, inline or on the worker.
        self._apply_lock = threading.Lock()
        # Without a task starter commands run inline on the caller, one at a time.
        self._worker = start_task(self._run) if start_task else None

    # ---- command channel ----

    def submit(self, command: Command) -> CommandResult:
        """Enqueue a command and wait for its result."""
        if self.closed:
            return CommandResult.failed(ErrorCode.ROOM_NOT_FOUND)
        if self._worker is None:
            with self._apply_lock:
                return self.apply(command)
        pending = _Pending(command)
        try:
            self._queue.put(pending, timeout=self._enqueue_timeout)
        except queue.Full:
            logger.warning(f'[busy] code={self.code} kind={command.kind.value}')
            return CommandResult.failed(ErrorCode.INTERNAL_BUSY)
        if not pending.done.wait(self._command_timeout):
            # A command the worker has started is waited out; one still queued is withdrawn.
            with self._apply_lock:
                if not pending.done.is_set():
                    pending.cancelled = True
            if pending.cancelled:
                logger.warning(f'[timeout] code={self.code} kind={command.kind.value}')
                return CommandResult.failed(ErrorCode.INTERNAL_BUSY)
        return pending.result

    def stop(self) -> None:
        self.closed = True
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            # The worker checks `closed` after every command.
            pass

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            with self._apply_lock:
                if item.cancelled:
                    continue
                if self.closed and item.command.kind is not CommandKind.ADMIN_CLOSE:
                    item.result = CommandResult.failed(ErrorCode.ROOM_NOT_FOUND)
                else:
                    item.result = self.apply(item.command)
                item.done.set()
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not _STOP:
                item.result = CommandResult.failed(ErrorCode.ROOM_NOT_FOUND)
                item.done.set()

    def apply(self, command: Command) -> CommandResult:
        """Apply one command atomically; on any failure the room is left untouched."""
        handler = self._handlers[command.kind]
        snapshot = self._snapshot()
        deltas: List[Delta] = []
        try:
            value = handler(command, deltas)
        except GameError as err:
            self._restore(snapshot)
            logger.debug(f'[rejected] code={self.code} kind={command.kind.value} reason={err.code.value}')
            return CommandResult(ok=False, error=err)
        except InvariantViolation as exc:
            self._restore(snapshot)
            logger.error(f'[invariant] code={self.code} kind={command.kind.value} error={exc}')
            return CommandResult.failed(ErrorCode.INTERNAL_ERROR)
        except Exception:
            self._restore(snapshot)
            logger.exception(f'[command-failed] code={self.code} kind={command.kind.value}')
            return CommandResult.failed(ErrorCode.INTERNAL_ERROR)

        if command.kind is not CommandKind.TICK:
            self.room.touch(self.clock.now_ms())
        self.summary = self.room.summary()
        for delta in deltas:
            try:
                self._publish(delta)
            except Exception:
                logger.exception(f'[publish-failed] code={self.code} event={delta.event}')
        return CommandResult(ok=True, value=value, dispose=self.disposable)

    @property
    def disposable(self) -> bool:
        room = self.room
        if self.closed or not room.members:
            return True
        return room.status is RoomStatus.FINISHED and not room.online_members()

    def _snapshot(self):
        room = self.room
        return (
            [replace(m) for m in room.members],
            room.host_id,
            room.status,
            room.started_at,
            room.generation,
            room.game.clone() if room.game else None,
            room.idle_since,
            self.closed,
        )

    def _restore(self, snapshot) -> None:
        room = self.room
        (room.members, room.host_id, room.status, room.started_at,
         room.generation, room.game, room.idle_since, self.closed) = snapshot

    # ---- helpers ----

    def _require_member(self, player_id: Optional[str]) -> Member:
        member = self.room.member(player_id) if player_id else None
        if member is None:
            raise GameError(ErrorCode.ROOM_NOT_MEMBER)
        return member

    def _require_host(self, player_id: Optional[str]) -> None:
        self._require_member(player_id)
        if player_id != self.room.host_id:
            raise GameError(ErrorCode.ROOM_NOT_HOST)

    def _broadcast(self, deltas: List[Delta], event: str, build, exclude: Optional[str] = None) -> None:
        """Queue one delta per online member, projected by ``build(player_id)``."""
        for member in self.room.online_members():
            if member.player_id == exclude:
                continue
            deltas.append(Delta(member.player_id, event, build(member.player_id)))

    def _room_updated(self, deltas: List[Delta], exclude: Optional[str] = None) -> None:
        self._broadcast(deltas, Outbound.ROOM_UPDATED, lambda pid: {'room': self.room.to_dict(pid)}, exclude)

    def _state_updated(self, deltas: List[Delta], record=None, **extra) -> None:
        game = self.room.game

        def build(pid):
            payload = {
                'room': self.room.to_dict(pid),
                'lastMove': project_move(record, can_see_everything(game, pid)) if record else None,
            }
            payload.update(extra)
            return payload

        self._broadcast(deltas, Outbound.STATE_UPDATED, build)

    def _finish_if_decided(self, deltas: List[Delta]) -> bool:
        game = self.room.game
        verdict = settle(game)
        if verdict is None:
            return False
        self.room.status = RoomStatus.FINISHED
        payload = game_over_payload(game)
        self._broadcast(deltas, Outbound.GAME_OVER, lambda pid: payload)
        logger.info(
            f'[game-over] code={self.code} winner={verdict.winner.value} '
            f'reason={verdict.reason.value} round={game.current_round}'
        )
        return True

    def _remove_member(self, member: Member) -> None:
        room = self.room
        room.members = [m for m in room.members if m.player_id != member.player_id]
        if room.host_id == member.player_id and room.members:
            online = room.online_members()
            room.host_id = (online[0] if online else room.members[0]).player_id

    def _begin_game(self, deltas: List[Delta], mr_x_player_id: Optional[str], message: str) -> None:
        room = self.room
        if mr_x_player_id:
            chosen = room.member(mr_x_player_id)
            if chosen is None:
                raise GameError(ErrorCode.REQUEST_INVALID, 'Chosen Mr. X is not in this room')
            room.members = [chosen] + [m for m in room.members if m is not chosen]
        room.generation += 1
        rng = random.Random(f'{room.code}:{room.generation}')
        roster = [(m.player_id, m.name) for m in room.members]
        room.game = GameState.start(self.graph, self.rules, roster, rng, self.clock)
        room.status = RoomStatus.PLAYING
        room.started_at = self.clock.now_ms()
        self._broadcast(deltas, Outbound.GAME_STARTED, lambda pid: {'room': room.to_dict(pid), 'message': message})
        logger.info(
            f'[game-started] code={room.code} generation={room.generation} players={len(roster)} '
            f'mrX={roster[0][1]}'
        )

    # ---- handlers ----

    def _create_room(self, command: Command, deltas: List[Delta]):
        host = self.room.host_id
        deltas.append(Delta(host, Outbound.ROOM_CREATED, {'roomCode': self.code, 'room': self.room.to_dict(host)}))
        logger.info(f'[room-created] code={self.code} host={self.room.members[0].name}')
        return self.code

    def _join_room(self, command: Command, deltas: List[Delta]):
        room = self.room
        if room.member(command.player_id):
            raise GameError(ErrorCode.REQUEST_INVALID, 'You are already in this room')
        if len(room.members) >= room.max_players:
            raise GameError(ErrorCode.ROOM_FULL)
        if room.status is not RoomStatus.WAITING:
            raise GameError(ErrorCode.ROOM_ALREADY_STARTED)
        room.members.append(Member(command.player_id, command.player_name or 'Player'))
        self._room_updated(deltas)
        logger.info(f'[room-joined] code={room.code} player={command.player_name} count={len(room.members)}/{room.max_players}')
        return self.code

    def _leave_room(self, command: Command, deltas: List[Delta], kicked: bool = False):
        room = self.room
        member = self._require_member(command.player_id)
        farewell = Outbound.ROOM_KICKED if kicked else Outbound.ROOM_LEFT
        if member.connected:
            deltas.append(Delta(member.player_id, farewell, {'roomCode': room.code}))

        if room.status is RoomStatus.PLAYING:
            member.retired = True
            member.connected = False
            room.game.retire(member.player_id)
            if room.host_id == member.player_id:
                online = [m for m in room.online_members() if not m.retired]
                if online:
                    room.host_id = online[0].player_id
            if not self._finish_if_decided(deltas):
                self._state_updated(deltas, left=member.player_id)
        else:
            self._remove_member(member)
        self._room_updated(deltas)
        logger.info(f'[room-left] code={room.code} player={member.name} kicked={kicked}')
        return member.player_id

    def _start_game(self, command: Command, deltas: List[Delta]):
        room = self.room
        self._require_host(command.player_id)
        if room.status is not RoomStatus.WAITING:
            raise GameError(ErrorCode.ROOM_ALREADY_STARTED)
        if len(room.members) < self.rules.min_players:
            raise GameError(ErrorCode.ROOM_TOO_FEW_PLAYERS)
        self._begin_game(deltas, command.payload.get('mrXPlayerId'),
                         'Game started! All players have starting positions.')
        return room.game.current_player_index

    def _rematch(self, command: Command, deltas: List[Delta]):
        room = self.room
        self._require_host(command.player_id)
        if room.status is not RoomStatus.FINISHED:
            raise GameError(ErrorCode.ROOM_NOT_FINISHED)
        room.members = [m for m in room.members if not m.retired]
        if len(room.members) < self.rules.min_players:
            raise GameError(ErrorCode.ROOM_TOO_FEW_PLAYERS)
        self._begin_game(deltas, command.payload.get('mrXPlayerId'),
                         'Rematch started! New positions assigned.')
        return room.game.current_player_index

    def _move(self, command: Command, deltas: List[Delta]):
        room = self.room
        self._require_member(command.player_id)
        game = room.game
        if game is None or game.phase is not Phase.IN_PLAY:
            raise GameError(ErrorCode.GAME_NOT_IN_PLAY)
        payload = command.payload
        ticket = TicketKind(payload['ticketType'])
        use_double = bool(payload.get('useDoubleMove'))
        verdict = validate_move(game, command.player_id, payload.get('from'), payload['to'], ticket, use_double)
        if isinstance(verdict, Rejected):
            raise GameError(verdict.reason, verdict.message)

        seat = game.current_seat
        record = game.apply_move(command.player_id, payload['to'], ticket, use_double)
        logger.info(
            f'[move] code={room.code} round={record.round} player={seat.name} '
            f'as={seat.label} ticket={ticket.value} leg={record.double_leg}'
        )
        logger.debug(f'[move-detail] code={room.code} from={record.from_station} to={record.to_station}')
        finished = self._finish_if_decided(deltas)
        # The final state goes out ahead of game:over.
        state_deltas: List[Delta] = []
        self._state_updated(state_deltas, record)
        deltas[:0] = state_deltas
        return {'record': record, 'finished': finished}

    def _disconnect(self, command: Command, deltas: List[Delta]):
        member = self.room.member(command.player_id)
        if member is None or not member.connected:
            return False
        member.connected = False
        member.disconnected_at = self.clock.now_ms()
        payload = {
            'playerId': member.player_id,
            'playerName': member.name,
            'canReconnect': True,
            'reconnectTimeout': self._reconnect_timeout,
        }
        self._broadcast(deltas, Outbound.PLAYER_DISCONNECTED, lambda pid: payload)
        logger.info(f'[disconnect] code={self.code} player={member.name}')
        return True

    def _reconnect(self, command: Command, deltas: List[Delta]):
        member = self._require_member(command.player_id)
        if member.retired:
            raise GameError(ErrorCode.ROOM_NOT_MEMBER, 'You left this game')
        member.connected = True
        member.disconnected_at = None
        deltas.append(Delta(member.player_id, Outbound.PLAYER_RECONNECTED, {
            'roomCode': self.code,
            'room': self.room.to_dict(member.player_id),
            'message': 'Successfully reconnected to the game!',
        }))
        payload = {'playerId': member.player_id, 'playerName': member.name}
        self._broadcast(deltas, Outbound.PLAYER_RECONNECTED_BROADCAST, lambda pid: payload, exclude=member.player_id)
        logger.info(f'[reconnect] code={self.code} player={member.name}')
        return True

    def _admin_kick(self, command: Command, deltas: List[Delta]):
        name = command.payload.get('playerName') or ''
        member = self.room.member_by_name(name)
        if member is None:
            raise GameError(ErrorCode.ROOM_NOT_MEMBER, 'Player not found in room')
        leave = Command(CommandKind.LEAVE_ROOM, member.player_id, member.name)
        return self._leave_room(leave, deltas, kicked=True)

    def _admin_close(self, command: Command, deltas: List[Delta]):
        payload = {'roomCode': self.code, 'message': 'This room was closed by an administrator.'}
        self._broadcast(deltas, Outbound.ROOM_CLOSED, lambda pid: payload)
        self.closed = True
        logger.info(f'[room-closed] code={self.code}')
        return [m.player_id for m in self.room.members]

    def _heartbeat(self, command: Command, deltas: List[Delta]):
        if command.player_id and self.room.member(command.player_id):
            deltas.append(Delta(command.player_id, Outbound.HEARTBEAT_ACK, {
                'roomCode': self.code,
                'serverTime': self.clock.now_ms(),
            }))
        return True

    def _tick(self, command: Command, deltas: List[Delta]):
        game = self.room.game
        if not self._turn_timeout or game is None or game.phase is not Phase.IN_PLAY:
            return False
        seat = game.current_seat
        member = self.room.member(seat.player_id)
        if member is None or member.connected or member.disconnected_at is None:
            return False
        if self.clock.now_ms() - member.disconnected_at < self._turn_timeout * 1000:
            return False
        game.forfeit_turn()
        logger.info(f'[turn-skipped] code={self.code} player={member.name} round={game.current_round}')
        if not self._finish_if_decided(deltas):
            self._state_updated(deltas, skipped=member.player_id)
        return True
