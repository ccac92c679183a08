import time

import pytest

from yard.services.game.clock import FixedClock
from yard.services.game.errors import ErrorCode, GameError
from yard.services.rooms import Connections, Delta, Outbox
from yard.services.rooms.session import start_daemon


class Wire:
    """Records what would have gone out on the socket."""

    def __init__(self):
        self.sent = []
        self.disconnected = []

    def send(self, event, payload, sid, namespace):
        self.sent.append((sid, event, payload))

    def disconnect(self, sid, namespace):
        self.disconnected.append(sid)


def test_inline_outbox_sends_in_order():
    wire = Wire()
    outbox = Outbox('s1', '/ws', wire.send, wire.disconnect)
    for n in range(3):
        assert outbox.push('tick', {'n': n})
    assert [p['n'] for _, _, p in wire.sent] == [0, 1, 2]


def test_pumped_outbox_drains_in_order():
    wire = Wire()
    outbox = Outbox('s1', '/ws', wire.send, wire.disconnect, size=16, start_task=start_daemon)
    for n in range(10):
        outbox.push('tick', {'n': n})
    deadline = time.time() + 2
    while len(wire.sent) < 10 and time.time() < deadline:
        time.sleep(0.01)
    outbox.close()
    outbox._pump.join(timeout=2)
    assert [p['n'] for _, _, p in wire.sent] == list(range(10))
    assert not outbox._pump.is_alive()


def test_close_discards_pending_frames():
    wire = Wire()
    pumps = []
    outbox = Outbox('s1', '/ws', wire.send, wire.disconnect, size=8, start_task=lambda target: pumps.append(target) or object())
    for n in range(3):
        assert outbox.push('tick', {'n': n})
    outbox.close()
    # The pump only gets to run after the close.
    pumps[0]()
    assert wire.sent == []
    assert not outbox.push('tick', {'n': 3})


def test_overflow_disconnects_only_that_connection():
    wire = Wire()
    # A pump that never runs: frames pile up.
    slow = Outbox('slow', '/ws', wire.send, wire.disconnect, size=2, start_task=lambda target: object())
    fast = Outbox('fast', '/ws', wire.send, wire.disconnect)
    assert slow.push('a', {})
    assert slow.push('b', {})
    assert not slow.push('c', {})
    assert slow.dropped and slow.closed
    assert wire.disconnected == ['slow']
    assert not slow.push('d', {})

    assert fast.push('a', {})
    assert wire.sent == [('fast', 'a', {})]


def test_send_failures_do_not_escape():
    def broken_send(event, payload, sid, namespace):
        raise RuntimeError('socket gone')

    outbox = Outbox('s1', '/ws', broken_send, lambda sid, ns: None)
    assert outbox.push('tick', {})


@pytest.fixture()
def wire():
    return Wire()


@pytest.fixture()
def connections(wire):
    return Connections(wire.send, wire.disconnect, clock=FixedClock(), reconnect_timeout=300)


def test_publish_follows_the_player(connections, wire):
    connections.open('s1', '/ws')
    record = connections.register('s1', 'Alice')
    connections.publish(Delta(record.player_id, 'room:updated', {'n': 1}))
    assert wire.sent == [('s1', 'room:updated', {'n': 1})]

    # Offline players are skipped silently.
    connections.close('s1')
    connections.publish(Delta(record.player_id, 'room:updated', {'n': 2}))
    assert len(wire.sent) == 1


def test_reattach_checks_the_token(connections):
    connections.open('s1', '/ws')
    record = connections.register('s1', 'Alice')
    connections.close('s1')
    connections.open('s2', '/ws')
    with pytest.raises(GameError) as excinfo:
        connections.reattach(record.player_id, '0' * 64, 's2')
    assert excinfo.value.code is ErrorCode.AUTH_DENIED

    again = connections.reattach(record.player_id, record.token, 's2')
    assert again.sid == 's2'
    assert again.disconnected_at is None
    assert connections.player_for_sid('s2') is again


def test_reattach_replaces_a_live_connection(connections, wire):
    connections.open('s1', '/ws')
    record = connections.register('s1', 'Alice')
    connections.open('s2', '/ws')
    connections.reattach(record.player_id, record.token, 's2')
    assert wire.disconnected == ['s1']
    assert connections.player_for_sid('s1') is None


def test_reconnect_window_expires(connections):
    connections.open('s1', '/ws')
    record = connections.register('s1', 'Alice')
    connections.close('s1')
    connections.clock.advance(301)
    with pytest.raises(GameError):
        connections.reattach(record.player_id, record.token, 's2')
    assert connections.player(record.player_id) is None


def test_purge_expired(connections):
    connections.open('s1', '/ws')
    gone = connections.register('s1', 'Alice')
    connections.open('s2', '/ws')
    connections.register('s2', 'Bob')
    connections.close('s1')
    connections.clock.advance(301)
    assert connections.purge_expired() == [gone.player_id]
    assert connections.connected_count() == 1


def test_release_room(connections):
    connections.open('s1', '/ws')
    record = connections.register('s1', 'Alice')
    connections.set_room(record.player_id, 'ABCDEF')
    assert connections.release_room('ABCDEF') == 1
    assert record.room_code is None
