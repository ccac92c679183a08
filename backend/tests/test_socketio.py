NS = '/ws'


def _frames(sio):
    return [(pkt['name'], pkt['args'][0] if pkt['args'] else None) for pkt in sio.get_received(NS)]


def _payloads(frames, name):
    return [payload for event, payload in frames if event == name]


def _join_lobby(connect, name):
    sio = connect()
    sio.emit('join:lobby', {'playerName': name}, namespace=NS)
    lobby = _payloads(_frames(sio), 'lobby:joined')[0]
    return sio, lobby


def _room_with_guest(connect):
    host, host_lobby = _join_lobby(connect, 'Alice')
    guest, guest_lobby = _join_lobby(connect, 'Bob')
    host.emit('room:create', {}, namespace=NS)
    code = _payloads(_frames(host), 'room:created')[0]['roomCode']
    guest.emit('room:join', {'roomCode': code}, namespace=NS)
    return host, host_lobby, guest, guest_lobby, code


STARTING_STATIONS = {1, 2, 4, 7, 9, 10, 12, 14, 16}


def _started(connect, hub, mr_x=1, detective=9, round_number=1, turn=0):
    host, host_lobby, guest, guest_lobby, code = _room_with_guest(connect)
    host.emit('game:start', {'mrXPlayerId': host_lobby['playerId']}, namespace=NS)
    game = hub.registry.find(code).room.game
    game.mr_x.position = mr_x
    game.detectives[0].position = detective
    game.current_round = round_number
    game.current_player_index = turn
    host.get_received(NS)
    guest.get_received(NS)
    return host, guest, guest_lobby, code, game


def test_create_join_start(connect):
    host, host_lobby, guest, guest_lobby, code = _room_with_guest(connect)
    assert len(code) == 6

    host_frames = _frames(host)
    guest_frames = _frames(guest)
    assert len(_payloads(host_frames, 'room:updated')[-1]['room']['players']) == 2
    assert _payloads(guest_frames, 'room:updated')[-1]['room']['code'] == code

    host.emit('game:start', {}, namespace=NS)
    host_view = _payloads(_frames(host), 'game:started')[0]['room']['gameState']
    guest_view = _payloads(_frames(guest), 'game:started')[0]['room']['gameState']
    assert host_view['mrX']['playerId'] == host_lobby['playerId']
    assert host_view['mrX']['position'] is not None
    assert guest_view['mrX']['position'] is None
    assert guest_view['detectives'][0]['playerId'] == guest_lobby['playerId']
    assert guest_view['currentPlayerIndex'] == 0
    stations = {host_view['mrX']['position'], host_view['detectives'][0]['position']}
    assert len(stations) == 2 and stations <= STARTING_STATIONS


def test_compound_create_joins_the_lobby(sio_client):
    sio_client.emit('room:create', {'playerName': 'Alice'}, namespace=NS)
    frames = _frames(sio_client)
    assert [event for event, _ in frames] == ['lobby:joined', 'room:created']
    assert len(frames[0][1]['reconnectionToken']) == 64


def test_name_validation(sio_client):
    for bad in ('', ' ' * 3, 'x' * 21, '<script>', 42):
        sio_client.emit('join:lobby', {'playerName': bad}, namespace=NS)
        errors = _payloads(_frames(sio_client), 'error')
        assert errors and errors[0]['code'] == 'request.invalid'


def test_unknown_room(sio_client):
    sio_client.emit('room:join', {'roomCode': 'ZZZZZZ', 'playerName': 'Bob'}, namespace=NS)
    assert _payloads(_frames(sio_client), 'error')[0]['code'] == 'room.notFound'
    sio_client.emit('room:join', {'roomCode': 'nope'}, namespace=NS)
    assert _payloads(_frames(sio_client), 'error')[0]['code'] == 'request.invalid'


def test_only_host_starts(connect):
    host, _, guest, _, code = _room_with_guest(connect)
    host.get_received(NS)
    guest.emit('game:start', {}, namespace=NS)
    assert _payloads(_frames(guest), 'error')[0]['code'] == 'room.notHost'
    assert host.get_received(NS) == []


def test_legal_and_illegal_taxi(connect, hub):
    host, guest, _, _, game = _started(connect, hub, mr_x=1, detective=9)

    # Out of turn: the error goes to the sender only.
    guest.emit('game:move', {'to': 10, 'ticketType': 'taxi'}, namespace=NS)
    assert _payloads(_frames(guest), 'error')[0]['code'] == 'move.notYourTurn'
    assert host.get_received(NS) == []

    host.emit('game:move', {'from': 1, 'to': 2, 'ticketType': 'taxi'}, namespace=NS)
    host_update = _payloads(_frames(host), 'game:state:updated')[0]
    guest_update = _payloads(_frames(guest), 'game:state:updated')[0]
    assert host_update['lastMove']['to'] == 2
    assert 'to' not in guest_update['lastMove']
    assert guest_update['lastMove']['ticketType'] == 'taxi'
    assert guest_update['room']['gameState']['mrX']['position'] is None
    assert guest_update['room']['gameState']['mrX']['tickets']['taxi'] == 3
    assert game.current_player_index == 1

    host.emit('game:move', {'from': 2, 'to': 9, 'ticketType': 'taxi'}, namespace=NS)
    assert _payloads(_frames(host), 'error')[0]['code'] == 'move.notYourTurn'
    guest.emit('game:move', {'to': 12, 'ticketType': 'taxi'}, namespace=NS)
    assert _payloads(_frames(guest), 'error')[0]['code'] == 'move.notConnected'
    guest.emit('game:move', {'from': 8, 'to': 10, 'ticketType': 'taxi'}, namespace=NS)
    assert _payloads(_frames(guest), 'error')[0]['code'] == 'move.invalidFrom'
    assert game.detectives[0].position == 9


def test_capture_ends_the_game(connect, hub):
    host, guest, _, _, game = _started(connect, hub, mr_x=5, detective=2, turn=1)

    guest.emit('game:move', {'from': 2, 'to': 5, 'ticketType': 'taxi'}, namespace=NS)
    frames = _frames(guest)
    names = [event for event, _ in frames]
    assert names.index('game:state:updated') < names.index('game:over')
    over = _payloads(frames, 'game:over')[0]
    assert (over['winner'], over['reason'], over['finalRound']) == ('detectives', 'capture', 1)
    assert _payloads(_frames(host), 'game:over')[0] == over

    guest.emit('game:move', {'to': 6, 'ticketType': 'taxi'}, namespace=NS)
    assert _payloads(_frames(guest), 'error')[0]['code'] == 'game.notInPlay'


def test_reveal_round_move_is_public(connect, hub):
    host, guest, _, _, game = _started(connect, hub, mr_x=8, detective=9, round_number=3)
    host.emit('game:move', {'from': 8, 'to': 6, 'ticketType': 'bus'}, namespace=NS)
    update = _payloads(_frames(guest), 'game:state:updated')[0]
    assert update['lastMove']['to'] == 6
    assert update['room']['gameState']['mrX']['position'] == 6
    assert update['room']['gameState']['mrX']['lastRevealedPosition'] == 6


def test_black_ticket_over_the_ferry(connect, hub):
    host, guest, _, _, game = _started(connect, hub, mr_x=17, detective=9, round_number=2)
    host.emit('game:move', {'to': 18, 'ticketType': 'ferry'}, namespace=NS)
    assert _payloads(_frames(host), 'error')[0]['code'] == 'move.noTicket'

    before = game.mr_x.tickets.to_dict()
    host.emit('game:move', {'from': 17, 'to': 18, 'ticketType': 'black'}, namespace=NS)
    update = _payloads(_frames(guest), 'game:state:updated')[0]
    assert update['lastMove']['ticketType'] == 'black'
    assert 'to' not in update['lastMove']
    assert update['room']['gameState']['mrX']['position'] is None
    after = game.mr_x.tickets.to_dict()
    assert after['black'] == before['black'] - 1
    assert {k: after[k] for k in ('taxi', 'bus', 'underground')} == \
        {k: before[k] for k in ('taxi', 'bus', 'underground')}

    guest.emit('game:move', {'to': 10, 'ticketType': 'black'}, namespace=NS)
    assert _payloads(_frames(guest), 'error')[0]['code'] == 'move.blackNotAllowed'


def test_double_move(connect, hub):
    host, guest, _, _, game = _started(connect, hub, mr_x=5, detective=9, round_number=5)
    host.emit('game:move', {'from': 5, 'to': 17, 'ticketType': 'bus', 'useDoubleMove': True}, namespace=NS)
    state = _payloads(_frames(host), 'game:state:updated')[0]['room']['gameState']
    assert state['doubleMoveInProgress'] is True
    assert state['currentPlayerIndex'] == 0
    assert state['mrX']['doubleMoves'] == 1

    host.emit('game:move', {'to': 11, 'ticketType': 'taxi', 'useDoubleMove': True}, namespace=NS)
    assert _payloads(_frames(host), 'error')[0]['code'] == 'move.doubleNotAllowed'

    host.emit('game:move', {'from': 17, 'to': 18, 'ticketType': 'black'}, namespace=NS)
    state = _payloads(_frames(host), 'game:state:updated')[0]['room']['gameState']
    assert state['doubleMoveInProgress'] is False
    assert state['currentPlayerIndex'] == 1
    assert state['currentRound'] == 5
    assert [m['doubleLeg'] for m in state['moveHistory']] == [1, 2]


def test_disconnect_and_reconnect(connect, hub):
    host, guest, guest_lobby, code, game = _started(connect, hub)
    guest.disconnect(namespace=NS)
    dropped = _payloads(_frames(host), 'player:disconnected')[0]
    assert dropped['playerId'] == guest_lobby['playerId']
    assert dropped['canReconnect'] is True

    again = connect()
    again.emit('player:reconnect', {'playerId': guest_lobby['playerId'], 'reconnectionToken': 'f' * 64},
               namespace=NS)
    assert _payloads(_frames(again), 'error')[0]['code'] == 'auth.denied'

    again.emit('player:reconnect', {'playerId': guest_lobby['playerId'],
                                    'reconnectionToken': guest_lobby['reconnectionToken']}, namespace=NS)
    back = _payloads(_frames(again), 'player:reconnected')[0]
    assert back['roomCode'] == code
    assert back['room']['gameState']['mrX']['position'] is None
    assert _payloads(_frames(host), 'player:reconnected:broadcast')[0]['playerId'] == guest_lobby['playerId']


def test_leave_during_play_forfeits(connect, hub):
    host, guest, _, code, game = _started(connect, hub)
    guest.emit('room:leave', {}, namespace=NS)
    assert _payloads(_frames(guest), 'room:left')[0]['roomCode'] == code
    over = _payloads(_frames(host), 'game:over')[0]
    assert (over['winner'], over['reason']) == ('mrX', 'forfeit')


def test_heartbeat(connect, hub):
    host, _, _, code, _ = _started(connect, hub)
    host.emit('heartbeat', {}, namespace=NS)
    ack = _payloads(_frames(host), 'heartbeat:ack')[0]
    assert ack['roomCode'] == code
    assert isinstance(ack['serverTime'], int)


def test_admin_fetch_kick_and_close(connect, flask_app):
    host, _, guest, _, code = _room_with_guest(connect)
    host.get_received(NS)
    guest.get_received(NS)
    admin = connect()

    admin.emit('admin:fetch', {}, namespace=NS)
    rooms = _payloads(_frames(admin), 'admin:rooms')[0]
    assert rooms['count'] == 1 and rooms['rooms'][0]['code'] == code

    admin.emit('admin:kick-player', {'roomCode': code, 'playerName': 'bob'}, namespace=NS)
    assert _payloads(_frames(admin), 'admin:kicked')[0]['playerName'] == 'bob'
    assert _payloads(_frames(guest), 'room:kicked')[0]['roomCode'] == code
    assert len(_payloads(_frames(host), 'room:updated')[-1]['room']['players']) == 1

    admin.emit('admin:close-room', {'roomCode': code}, namespace=NS)
    assert _payloads(_frames(admin), 'admin:closed')[0]['roomCode'] == code
    assert _payloads(_frames(host), 'room:closed')[0]['roomCode'] == code

    # The host is free to make a new room.
    host.emit('room:create', {}, namespace=NS)
    assert _payloads(_frames(host), 'room:created')

    flask_app.config['ADMIN_TOKEN'] = 'sesame'
    admin.emit('admin:fetch', {'adminToken': 'wrong'}, namespace=NS)
    assert _payloads(_frames(admin), 'error')[0]['code'] == 'auth.denied'
    admin.emit('admin:fetch', {'adminToken': 'sesame'}, namespace=NS)
    assert _payloads(_frames(admin), 'admin:rooms')


def test_lobby_joins_are_throttled(sio_client, connect):
    for _ in range(6):
        sio_client.emit('join:lobby', {'playerName': 'Alice'}, namespace=NS)
    frames = _frames(sio_client)
    assert len(_payloads(frames, 'lobby:joined')) == 5
    assert [e['code'] for e in _payloads(frames, 'error')] == ['rate.limited']

    # Another connection has its own window.
    other = connect()
    other.emit('join:lobby', {'playerName': 'Bob'}, namespace=NS)
    assert _payloads(_frames(other), 'lobby:joined')


def test_room_creates_are_throttled(sio_client, hub):
    for _ in range(5):
        sio_client.emit('room:create', {'playerName': 'Alice'}, namespace=NS)
        sio_client.emit('room:leave', {}, namespace=NS)
    sio_client.get_received(NS)
    sio_client.emit('room:create', {'playerName': 'Alice'}, namespace=NS)
    assert _payloads(_frames(sio_client), 'error')[0]['code'] == 'rate.limited'
    assert len(hub.registry) == 0
