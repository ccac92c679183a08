"""Immutable multi-modal transport graph.

Stations are positive integers. Edges are unordered pairs carrying one or
more modes; duplicate edges between the same pair are merged at load time
by taking the union of their modes. The graph is read-only once built and
is shared by every room without locking.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

import networkx as nx

from .constants import LAND_MODES, Mode, TicketKind


class MapDefinitionError(ValueError):
    pass


@dataclass(frozen=True)
class Station:
    id: int
    x: Optional[float] = None
    y: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'x': self.x, 'y': self.y}


class TransportGraph:
    """Map of stations backed by an ``nx.Graph``; each edge has a ``modes`` frozenset."""

    def __init__(
        self,
        stations: Iterable[Station],
        edges: Iterable[Tuple[int, int, Iterable[Mode]]],
        starting_stations: Iterable[int] = (),
        ferry_stations: Iterable[int] = (),
        reveal_rounds: Optional[Iterable[int]] = None,
        name: str = 'custom',
    ):
        self.name = name
        graph = nx.Graph(name=name)
        for station in stations:
            if not isinstance(station.id, int) or station.id <= 0:
                raise MapDefinitionError(f'station id must be a positive integer: {station.id!r}')
            if graph.has_node(station.id):
                raise MapDefinitionError(f'duplicate station {station.id}')
            graph.add_node(station.id, station=station)

        for a, b, modes in edges:
            if not graph.has_node(a) or not graph.has_node(b):
                raise MapDefinitionError(f'edge {a}-{b} references an unknown station')
            if a == b:
                raise MapDefinitionError(f'edge {a}-{b} is a self loop')
            mode_set = frozenset(Mode(m) for m in modes)
            if not mode_set:
                raise MapDefinitionError(f'edge {a}-{b} has no modes')
            if graph.has_edge(a, b):
                mode_set = mode_set | graph.edges[a, b]['modes']
            graph.add_edge(a, b, modes=mode_set)

        self._graph = nx.freeze(graph)
        self.starting_stations: Tuple[int, ...] = tuple(starting_stations)
        self.ferry_stations: FrozenSet[int] = frozenset(ferry_stations)
        self.reveal_rounds: Optional[FrozenSet[int]] = frozenset(reveal_rounds) if reveal_rounds else None

    # ---- loading ----

    @classmethod
    def from_definition(cls, definition: Mapping[str, Any]) -> 'TransportGraph':
        """Build a graph from a declarative map definition.

        Expected shape::

            {
              "name": "small",
              "stations": [{"id": 1, "x": 100, "y": 80}, ...],
              "edges": [{"from": 1, "to": 2, "modes": ["taxi"]}, ...],
              "startingStations": [1, 2, ...],
              "ferryStations": [17, 18],
              "revealRounds": [3, 8, 13, 18, 24]      # optional
            }
        """
        try:
            stations = [
                Station(int(s['id']), s.get('x'), s.get('y'))
                for s in definition['stations']
            ]
            edges = [
                (int(e['from']), int(e['to']), [Mode(m) for m in e['modes']])
                for e in definition['edges']
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise MapDefinitionError(f'malformed map definition: {exc}') from exc
        return cls(
            stations,
            edges,
            starting_stations=[int(s) for s in definition.get('startingStations', [])],
            ferry_stations=[int(s) for s in definition.get('ferryStations', [])],
            reveal_rounds=definition.get('revealRounds'),
            name=definition.get('name', 'custom'),
        )

    @classmethod
    def load(cls, path) -> 'TransportGraph':
        with open(Path(path), 'r', encoding='utf-8') as fh:
            try:
                definition = json.load(fh)
            except json.JSONDecodeError as exc:
                raise MapDefinitionError(f'{path}: {exc}') from exc
        return cls.from_definition(definition)

    # ---- queries ----

    @property
    def stations(self) -> Tuple[int, ...]:
        return tuple(sorted(self._graph.nodes))

    def station(self, station_id: int) -> Station:
        return self._graph.nodes[station_id]['station']

    def __contains__(self, station_id) -> bool:
        return isinstance(station_id, int) and self._graph.has_node(station_id)

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def neighbors(self, station_id: int) -> FrozenSet[Tuple[int, FrozenSet[Mode]]]:
        return frozenset(self.adjacent(station_id).items())

    def adjacent(self, station_id: int) -> Mapping[int, FrozenSet[Mode]]:
        if station_id not in self:
            return {}
        return {n: data['modes'] for n, data in self._graph.adj[station_id].items()}

    def modes_between(self, a: int, b: int) -> FrozenSet[Mode]:
        data = self._graph.get_edge_data(a, b)
        return data['modes'] if data else frozenset()

    def connected(self, a: int, b: int, mode: Mode) -> bool:
        return Mode(mode) in self.modes_between(a, b)

    def valid_tickets_for(self, a: int, b: int) -> FrozenSet[TicketKind]:
        modes = self.modes_between(a, b)
        if not modes:
            return frozenset()
        tickets = {m.ticket for m in modes if m.ticket is not None}
        tickets.add(TicketKind.BLACK)
        return frozenset(tickets)

    def destinations(self, station_id: int, ticket: TicketKind) -> Set[int]:
        ticket = TicketKind(ticket)
        return {
            neighbor for neighbor, modes in self.adjacent(station_id).items()
            if ticket is TicketKind.BLACK or any(m.ticket is ticket for m in modes)
        }

    # ---- structural checks ----

    def is_connected(self) -> bool:
        if not len(self):
            return False
        return nx.is_connected(self._graph)

    def is_mr_x_start_candidate(self, station_id: int) -> bool:
        """True when every land mode leaves this station (black covers any edge)."""
        available = set()
        for modes in self.adjacent(station_id).values():
            available.update(modes)
        return all(mode in available for mode in LAND_MODES)

    def mr_x_start_candidates(self) -> List[int]:
        return [s for s in self.starting_stations if self.is_mr_x_start_candidate(s)]

    def validate(self, max_players: int) -> None:
        problems = []
        if not self.is_connected():
            problems.append('graph is not connected')
        unknown = [s for s in list(self.starting_stations) + sorted(self.ferry_stations) if s not in self]
        if unknown:
            problems.append(f'unknown starting/ferry stations: {unknown}')
        if len(set(self.starting_stations)) < max_players:
            problems.append(
                f'{len(set(self.starting_stations))} starting stations for up to {max_players} players'
            )
        if not self.mr_x_start_candidates():
            problems.append('no starting station offers taxi, bus and underground')
        if problems:
            raise MapDefinitionError(f'map {self.name!r}: ' + '; '.join(problems))

    def to_dict(self) -> Dict[str, Any]:
        edges = sorted((min(a, b), max(a, b), modes) for a, b, modes in self._graph.edges(data='modes'))
        return {
            'name': self.name,
            'stations': [self.station(s).to_dict() for s in self.stations],
            'edges': [{'from': a, 'to': b, 'modes': sorted(m.value for m in modes)} for a, b, modes in edges],
            'startingStations': list(self.starting_stations),
            'ferryStations': sorted(self.ferry_stations),
        }
