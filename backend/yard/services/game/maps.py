"""Bundled map definitions."""

from typing import Optional

from .graph import TransportGraph

# 18 stations on both banks of the river; 17 and 18 are the ferry docks.
SMALL_MAP = {
    'name': 'small',
    'stations': [
        {'id': 1, 'x': 100, 'y': 100},
        {'id': 2, 'x': 220, 'y': 80},
        {'id': 3, 'x': 340, 'y': 100},
        {'id': 4, 'x': 460, 'y': 80},
        {'id': 5, 'x': 400, 'y': 200},
        {'id': 6, 'x': 280, 'y': 220},
        {'id': 7, 'x': 160, 'y': 240},
        {'id': 8, 'x': 60, 'y': 200},
        {'id': 9, 'x': 80, 'y': 340},
        {'id': 10, 'x': 200, 'y': 380},
        {'id': 11, 'x': 320, 'y': 360},
        {'id': 12, 'x': 440, 'y': 380},
        {'id': 13, 'x': 380, 'y': 480},
        {'id': 14, 'x': 500, 'y': 500},
        {'id': 15, 'x': 260, 'y': 520},
        {'id': 16, 'x': 120, 'y': 500},
        {'id': 17, 'x': 540, 'y': 260},
        {'id': 18, 'x': 560, 'y': 420},
    ],
    'edges': [
        {'from': 1, 'to': 2, 'modes': ['taxi']},
        {'from': 1, 'to': 8, 'modes': ['taxi']},
        {'from': 2, 'to': 3, 'modes': ['taxi']},
        {'from': 2, 'to': 5, 'modes': ['taxi']},
        {'from': 3, 'to': 4, 'modes': ['taxi']},
        {'from': 4, 'to': 5, 'modes': ['taxi']},
        {'from': 5, 'to': 6, 'modes': ['taxi']},
        {'from': 6, 'to': 7, 'modes': ['taxi']},
        {'from': 7, 'to': 8, 'modes': ['taxi']},
        {'from': 8, 'to': 9, 'modes': ['taxi']},
        {'from': 9, 'to': 10, 'modes': ['taxi']},
        {'from': 10, 'to': 11, 'modes': ['taxi']},
        {'from': 11, 'to': 12, 'modes': ['taxi']},
        {'from': 12, 'to': 13, 'modes': ['taxi']},
        {'from': 13, 'to': 14, 'modes': ['taxi']},
        {'from': 14, 'to': 15, 'modes': ['taxi']},
        {'from': 15, 'to': 16, 'modes': ['taxi']},
        {'from': 16, 'to': 9, 'modes': ['taxi']},
        {'from': 3, 'to': 11, 'modes': ['taxi']},
        {'from': 6, 'to': 13, 'modes': ['taxi']},
        {'from': 11, 'to': 17, 'modes': ['taxi']},
        {'from': 16, 'to': 18, 'modes': ['taxi']},
        {'from': 8, 'to': 6, 'modes': ['bus']},
        {'from': 5, 'to': 17, 'modes': ['bus']},
        {'from': 1, 'to': 9, 'modes': ['bus']},
        {'from': 1, 'to': 12, 'modes': ['bus']},
        {'from': 4, 'to': 14, 'modes': ['bus']},
        {'from': 10, 'to': 16, 'modes': ['bus']},
        {'from': 7, 'to': 15, 'modes': ['bus']},
        {'from': 3, 'to': 13, 'modes': ['bus']},
        {'from': 12, 'to': 18, 'modes': ['bus']},
        {'from': 1, 'to': 7, 'modes': ['underground']},
        {'from': 7, 'to': 13, 'modes': ['underground']},
        {'from': 13, 'to': 16, 'modes': ['underground']},
        {'from': 4, 'to': 10, 'modes': ['underground']},
        {'from': 17, 'to': 18, 'modes': ['ferry']},
    ],
    'startingStations': [1, 2, 4, 7, 9, 10, 12, 14, 16],
    'ferryStations': [17, 18],
    'revealRounds': [3, 8, 13, 18, 24],
}


def load_graph(map_path: Optional[str] = None, max_players: Optional[int] = None) -> TransportGraph:
    """Load the configured map (or the bundled small map) and validate it."""
    if map_path:
        graph = TransportGraph.load(map_path)
    else:
        graph = TransportGraph.from_definition(SMALL_MAP)
    if max_players is not None:
        graph.validate(max_players)
    return graph
