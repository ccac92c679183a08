from yard.services.game.constants import TicketKind
from yard.services.game.projection import game_over_payload, mr_x_log, project_game, project_move
from yard.services.game.rules import settle


def test_detectives_do_not_see_hidden_moves(make_game):
    game = make_game(mr_x=1, detectives=(9,))
    game.apply_move('x', 2, TicketKind.TAXI)

    detective_view = project_game(game, 'd0')
    assert detective_view['mrX']['position'] is None
    assert detective_view['mrX']['lastRevealedPosition'] is None
    last = detective_view['moveHistory'][-1]
    assert last['ticketType'] == 'taxi'
    assert 'to' not in last and 'from' not in last

    mr_x_view = project_game(game, 'x')
    assert mr_x_view['mrX']['position'] == 2
    assert mr_x_view['moveHistory'][-1]['to'] == 2


def test_unknown_viewer_gets_the_detective_view(make_game):
    game = make_game(mr_x=1, detectives=(9,))
    game.apply_move('x', 2, TicketKind.TAXI)
    assert project_game(game, None) == project_game(game, 'd0')
    assert project_game(game, 'stranger')['mrX']['position'] is None


def test_reveal_round_shows_position(make_game):
    game = make_game(mr_x=8, detectives=(9,))
    game.current_round = 3
    game.apply_move('x', 6, TicketKind.BUS)
    view = project_game(game, 'd0')
    assert view['mrX']['position'] == 6
    assert view['mrX']['lastRevealedPosition'] == 6
    assert view['moveHistory'][-1]['to'] == 6

    # The next hidden move leaves the last revealed station in place.
    game.apply_move('d0', 10, TicketKind.TAXI)
    game.apply_move('x', 7, TicketKind.TAXI)
    view = project_game(game, 'd0')
    assert game.current_round == 4
    assert view['mrX']['position'] == 6
    assert 'to' not in view['moveHistory'][-1]


def test_projection_is_stable(make_game):
    game = make_game(mr_x=1, detectives=(9,))
    record = game.apply_move('x', 2, TicketKind.TAXI)
    before = project_move(record, full_view=False)
    first = project_game(game, 'd0')
    assert project_game(game, 'd0') == first
    game.apply_move('d0', 10, TicketKind.TAXI)
    assert project_move(record, full_view=False) == before


def test_mr_x_log(make_game):
    game = make_game(mr_x=1, detectives=(9,))
    game.apply_move('x', 2, TicketKind.TAXI)
    hidden = mr_x_log(game, full_view=False)
    assert hidden == [{'round': 1, 'ticketType': 'taxi', 'revealed': False, 'doubleLeg': 0}]
    assert mr_x_log(game, full_view=True)[0]['to'] == 2


def test_game_over_reveals_everything(make_game):
    game = make_game(mr_x=5, detectives=(9,))
    game.apply_move('x', 6, TicketKind.TAXI)
    game.mr_x.position = 8
    game.apply_move('d0', 8, TicketKind.TAXI)
    settle(game)

    view = project_game(game, 'd0')
    assert view['mrX']['position'] == 8
    assert view['winner'] == 'detectives'
    assert view['moveHistory'][0]['to'] == 6

    payload = game_over_payload(game)
    assert payload == {
        'winner': 'detectives',
        'reason': 'capture',
        'moveHistory': [m.to_dict() for m in game.move_history],
        'finalRound': 1,
    }
