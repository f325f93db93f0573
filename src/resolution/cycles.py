"""Cycle detection over dependency graphs.

Every elementary cycle is enumerated, not just the first one a traversal
happens to hit. Strongly connected components bound the search; inside a
component each cycle is produced exactly once, rooted at its smallest id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from constants import EdgeKind, Severity

from .errors import CircularDependencyError
from .graph import DependencyGraph
from .models import Cycle

logger = logging.getLogger(__name__)

Adjacency = Dict[str, List[str]]


def _adjacency(graph: DependencyGraph, kinds: Sequence[EdgeKind]) -> Adjacency:
    adj: Adjacency = {node: [] for node in graph}
    for src, dst, kind in graph.edges():
        if kind in kinds:
            adj[src].append(dst)
    return adj


def strongly_connected_components(adj: Adjacency) -> List[List[str]]:
    """Tarjan's algorithm, iterative. Components come back with sorted members."""
    index: Dict[str, int] = {}
    lowlink: Dict[str, int] = {}
    on_stack: Set[str] = set()
    stack: List[str] = []
    components: List[List[str]] = []
    counter = 0

    for root in sorted(adj):
        if root in index:
            continue
        work = [(root, iter(sorted(adj[root])))]
        index[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        while work:
            node, children = work[-1]
            advanced = False
            for child in children:
                if child not in index:
                    index[child] = lowlink[child] = counter
                    counter += 1
                    stack.append(child)
                    on_stack.add(child)
                    work.append((child, iter(sorted(adj[child]))))
                    advanced = True
                    break
                if child in on_stack:
                    lowlink[node] = min(lowlink[node], index[child])
            if advanced:
                continue
            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
            if lowlink[node] == index[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(sorted(component))
    return components


def find_cycles(adj: Adjacency) -> List[Tuple[str, ...]]:
    """Return every elementary cycle, each rotated to start at its smallest id."""
    cycles: List[Tuple[str, ...]] = []
    for component in strongly_connected_components(adj):
        members = set(component)
        if len(component) == 1:
            node = component[0]
            if node in adj[node]:
                cycles.append((node,))
            continue
        for start in component:
            cycles.extend(_cycles_from(start, members, adj))
    return sorted(cycles)


def _cycles_from(start: str, members: Set[str], adj: Adjacency) -> List[Tuple[str, ...]]:
    found: List[Tuple[str, ...]] = []
    path = [start]
    on_path = {start}

    def visit(node: str) -> None:
        for nxt in sorted(adj[node]):
            if nxt == start:
                found.append(tuple(path))
            elif nxt in members and nxt > start and nxt not in on_path:
                path.append(nxt)
                on_path.add(nxt)
                visit(nxt)
                path.pop()
                on_path.discard(nxt)

    visit(start)
    return found


def _cycle_edges(nodes: Sequence[str]) -> List[Tuple[str, str]]:
    return [(nodes[i], nodes[(i + 1) % len(nodes)]) for i in range(len(nodes))]


@dataclass
class CycleReport:
    """Outcome of cycle analysis.

    Attributes:
        critical: Cycles made only of required edges.
        soft: Cycles with at least one optional edge, each annotated with the
            edge that broke it.
        broken_edges: Optional edges removed, in removal order.
        graph: Acyclic working graph, or None when critical cycles remain.
    """

    critical: List[Cycle] = field(default_factory=list)
    soft: List[Cycle] = field(default_factory=list)
    broken_edges: List[Tuple[str, str]] = field(default_factory=list)
    graph: Optional[DependencyGraph] = None

    @property
    def cycles(self) -> List[Cycle]:
        return self.critical + self.soft

    def errors(self) -> List[CircularDependencyError]:
        return [CircularDependencyError(c.nodes, c.severity) for c in self.critical]

    def warnings(self) -> List[CircularDependencyError]:
        return [CircularDependencyError(c.nodes, c.severity, c.broken_edge) for c in self.soft]


class CycleDetector:
    """Classifies cycles and breaks soft ones by dropping optional edges."""

    def analyze(self, graph: DependencyGraph) -> CycleReport:
        report = CycleReport()
        required_cycles = find_cycles(_adjacency(graph, (EdgeKind.REQUIRED,)))
        report.critical = [Cycle(nodes, Severity.CRITICAL) for nodes in required_cycles]

        all_cycles = find_cycles(_adjacency(graph, (EdgeKind.REQUIRED, EdgeKind.OPTIONAL)))
        critical_set = set(required_cycles)
        soft_nodes = [c for c in all_cycles if c not in critical_set]

        if report.critical:
            report.soft = [Cycle(nodes, Severity.WARNING) for nodes in soft_nodes]
            logger.warning("Detected %d critical dependency cycle(s)", len(report.critical))
            return report

        working = graph.copy()
        while True:
            remaining = find_cycles(_adjacency(working, (EdgeKind.REQUIRED, EdgeKind.OPTIONAL)))
            if not remaining:
                break
            edge = self._weakest_optional_edge(working, remaining[0])
            working.remove_edge(*edge)
            report.broken_edges.append(edge)
            logger.info("Broke soft dependency cycle by dropping optional edge %s -> %s", *edge)

        for nodes in soft_nodes:
            edges = set(_cycle_edges(nodes))
            broken = next((e for e in report.broken_edges if e in edges), None)
            report.soft.append(Cycle(nodes, Severity.WARNING, broken))
        report.graph = working
        return report

    @staticmethod
    def _weakest_optional_edge(graph: DependencyGraph, nodes: Sequence[str]) -> Tuple[str, str]:
        candidates = [
            (graph.get(dst).priority, graph.get(src).priority, src, dst)
            for src, dst in _cycle_edges(nodes)
            if graph.edge_kind(src, dst) == EdgeKind.OPTIONAL
        ]
        if not candidates:
            # only reachable if a required-only cycle slipped past the first pass
            raise CircularDependencyError(nodes, Severity.CRITICAL)
        _, _, src, dst = min(candidates)
        return src, dst
