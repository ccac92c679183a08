"""Per-recipient views of game state.

Projections are pure functions of the state and the viewer, so computing
one again later yields the same result. Detectives never see Mr. X's true
position outside a reveal; once the game is over everything is shown.
"""

from typing import Any, Dict, List, Optional

from .constants import Phase, Role, Visibility
from .state import GameState, MoveRecord


def can_see_everything(state: GameState, viewer_id: Optional[str]) -> bool:
    if state.phase is Phase.TERMINATED:
        return True
    return viewer_id is not None and viewer_id == state.mr_x.player_id


def project_move(record: MoveRecord, full_view: bool) -> Dict[str, Any]:
    data = record.to_dict()
    if full_view or record.visible_to is Visibility.ALL:
        return data
    data.pop('from')
    data.pop('to')
    return data


def mr_x_log(state: GameState, full_view: bool) -> List[Dict[str, Any]]:
    """Mr. X's travel log: one entry per move, stations only where visible."""
    log = []
    for record in state.move_history:
        if record.role is not Role.MR_X:
            continue
        entry = {
            'round': record.round,
            'ticketType': record.ticket.value,
            'revealed': record.visible_to is Visibility.ALL,
            'doubleLeg': record.double_leg,
        }
        if full_view or record.visible_to is Visibility.ALL:
            entry['to'] = record.to_station
        log.append(entry)
    return log


def project_game(state: GameState, viewer_id: Optional[str]) -> Dict[str, Any]:
    full_view = can_see_everything(state, viewer_id)
    mr_x = state.mr_x
    current = state.current_seat
    return {
        'phase': state.phase.value,
        'currentRound': state.current_round,
        'maxRounds': state.rules.max_rounds,
        'revealRounds': sorted(state.rules.reveal_rounds),
        'isRevealRound': state.is_reveal_round(),
        'currentPlayerIndex': state.current_player_index,
        'currentPlayerId': current.player_id if current else None,
        'doubleMoveInProgress': state.double_move_in_progress,
        'pendingMovesThisRound': state.pending_moves_this_round,
        'mrX': {
            'playerId': mr_x.player_id,
            'name': mr_x.name,
            'position': mr_x.position if full_view else state.last_revealed_position,
            'lastRevealedPosition': state.last_revealed_position,
            'tickets': mr_x.tickets.to_dict(),
            'doubleMoves': mr_x.tickets.double_moves_remaining,
            'moveHistory': mr_x_log(state, full_view),
        },
        'detectives': [
            {
                'playerId': d.player_id,
                'name': d.name,
                'detectiveIndex': d.detective_index,
                'position': d.position,
                'tickets': d.tickets.to_dict(),
                'active': d.player_id not in state.retired,
            }
            for d in state.detectives
        ],
        'moveHistory': [project_move(m, full_view) for m in state.move_history],
        'winner': state.verdict.winner.value if state.verdict else None,
        'winReason': state.verdict.reason.value if state.verdict else None,
    }


def game_over_payload(state: GameState) -> Dict[str, Any]:
    return {
        'winner': state.verdict.winner.value if state.verdict else None,
        'reason': state.verdict.reason.value if state.verdict else None,
        'moveHistory': [m.to_dict() for m in state.move_history],
        'finalRound': state.current_round,
    }
