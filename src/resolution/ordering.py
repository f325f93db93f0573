"""Deterministic topological ordering (Kahn's algorithm)."""

from __future__ import annotations

import heapq
from typing import Dict, List

from catalog.models import Service

from .errors import CircularDependencyError
from .graph import DependencyGraph


class TopologicalOrderer:
    """Produces the injection order: dependencies before dependents.

    Among simultaneously eligible services the higher priority goes first,
    then the lexically smaller id.
    """

    def order(self, graph: DependencyGraph) -> List[Service]:
        remaining: Dict[str, int] = {sid: len(graph.dependencies(sid)) for sid in graph}
        ready = [(-graph.get(sid).priority, sid) for sid, count in remaining.items() if count == 0]
        heapq.heapify(ready)

        ordered: List[Service] = []
        while ready:
            _, sid = heapq.heappop(ready)
            ordered.append(graph.get(sid))
            for dependent in graph.dependents(sid):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, (-graph.get(dependent).priority, dependent))

        if len(ordered) != len(graph):
            stuck = sorted(sid for sid, count in remaining.items() if count > 0)
            raise CircularDependencyError(stuck)
        return ordered

    def order_ids(self, graph: DependencyGraph) -> List[str]:
        return [s.id for s in self.order(graph)]
