from typing import Optional

from .constants import Phase, Winner, WinReason
from .state import GameState, Verdict
from .validation import has_legal_move


def evaluate(state: GameState) -> Optional[Verdict]:
    """Return the termination verdict for ``state``, or None while play continues.

    Rules, in order: forfeits, capture, round limit, stuck detectives,
    cornered Mr. X.
    """
    if state.phase is not Phase.IN_PLAY:
        return state.verdict

    if state.mr_x.player_id in state.retired:
        return Verdict(Winner.DETECTIVES, WinReason.FORFEIT)
    if not state.active_detectives:
        return Verdict(Winner.MR_X, WinReason.FORFEIT)

    if state.captured:
        return Verdict(Winner.DETECTIVES, WinReason.CAPTURE)

    if state.rounds_exhausted:
        return Verdict(Winner.MR_X, WinReason.ESCAPED)

    if state.at_mr_x_turn_start:
        if not any(has_legal_move(state, d) for d in state.active_detectives):
            return Verdict(Winner.MR_X, WinReason.DETECTIVES_STUCK)
        if not has_legal_move(state, state.mr_x):
            return Verdict(Winner.DETECTIVES, WinReason.CORNERED)

    return None


def settle(state: GameState) -> Optional[Verdict]:
    """Evaluate and, on a verdict, terminate the game."""
    verdict = evaluate(state)
    if verdict is not None and state.phase is Phase.IN_PLAY:
        state.terminate(verdict)
    return verdict
