"""Greedy post-resolution optimizer.

Evaluates single-step modifications of a valid graph (drop an optional
service, swap a top-level provider for another of the same type) and keeps
applying the best strictly improving one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from catalog.provider import CatalogProvider
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants, EdgeKind
from resolution.graph import DependencyGraph
from resolution.models import ObjectiveWeights, ResolutionOptions

from .scoring import Scorer, WeightedScorer

logger = logging.getLogger(__name__)

MIN_IMPROVEMENT = 1e-9


@dataclass(frozen=True)
class Modification:
    kind: str  # "drop" | "swap"
    removed: str
    added: Optional[str]
    graph: DependencyGraph

    @property
    def description(self) -> str:
        if self.kind == "drop":
            return f"drop {self.removed}"
        return f"swap {self.removed} for {self.added}"


@dataclass(frozen=True)
class OptimizationResult:
    """Adjusted graph plus what changed and why."""

    graph: DependencyGraph
    removed: Tuple[str, ...]
    added: Tuple[str, ...]
    score: float
    explanation: str
    iterations: int


class Optimizer:
    def __init__(self, scorer: Optional[Scorer] = None, max_iterations: Optional[int] = None):
        self._scorer: Scorer = scorer or WeightedScorer()
        self._max_iterations = max_iterations if max_iterations is not None else Constants.OPTIMIZER_MAX_ITERATIONS

    def score(self, graph: DependencyGraph, weights: ObjectiveWeights, options: ResolutionOptions) -> float:
        return float(self._scorer(graph, weights, options))

    def optimize(
        self,
        graph: DependencyGraph,
        catalog: CatalogProvider,
        weights: ObjectiveWeights,
        options: ResolutionOptions,
    ) -> OptimizationResult:
        current = graph
        current_score = self.score(current, weights, options)
        removed: List[str] = []
        added: List[str] = []
        notes: List[str] = []
        iterations = 0

        while iterations < self._max_iterations:
            best: Optional[Tuple[float, str, Modification]] = None
            for modification in self.candidates(current, catalog):
                candidate_score = self.score(modification.graph, weights, options)
                delta = candidate_score - current_score
                if delta <= MIN_IMPROVEMENT:
                    continue
                rank = (-delta, modification.description)
                if best is None or rank < (-best[0], best[1]):
                    best = (delta, modification.description, modification)
            if best is None:
                break
            delta, description, modification = best
            iterations += 1
            current = modification.graph
            current_score += delta
            notes.append(f"{description} (+{delta:.4f})")
            if modification.removed in added:
                added.remove(modification.removed)
            else:
                removed.append(modification.removed)
            if modification.added:
                added.append(modification.added)
            if is_debug_enabled(logger):
                logger.debug(
                    "Applied optimization",
                    extra=extra_context(event="optimize", component="optimizer",
                                        action=modification.kind, target=description),
                )

        explanation = "; ".join(notes) if notes else "No improving modification found"
        return OptimizationResult(
            graph=current,
            removed=tuple(sorted(removed)),
            added=tuple(sorted(added)),
            score=round(current_score, 6),
            explanation=explanation,
            iterations=iterations,
        )

    def candidates(self, graph: DependencyGraph, catalog: CatalogProvider) -> List[Modification]:
        """Every single-step modification that keeps the graph valid."""
        result: List[Modification] = []
        roots = set(graph.roots)
        for sid in graph:
            dependents = graph.dependents(sid)
            if any(kind == EdgeKind.REQUIRED for kind in dependents.values()):
                continue
            if sid not in roots:
                result.append(Modification("drop", sid, None, graph.without(sid)))
                continue
            result.extend(self._swaps(graph, sid, catalog))
        return result

    def _swaps(self, graph: DependencyGraph, sid: str, catalog: CatalogProvider) -> List[Modification]:
        current = graph.get(sid)
        reduced = graph.without(sid)
        present = reduced.services()
        swaps = []
        for alternative in catalog.list_by_type(current.type):
            if alternative.id == sid or alternative.id in graph:
                continue
            if not all(ref.key in reduced and ref.matches(reduced.get(ref.key))
                       for ref in alternative.required_dependencies):
                continue
            if any(alternative.conflicts(s) or s.conflicts(alternative) for s in present):
                continue
            swaps.append(Modification("swap", sid, alternative.id, reduced.with_service(alternative, root=True)))
        return swaps
