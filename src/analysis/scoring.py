"""Objective scoring for resolved service sets.

The optimizer accepts any callable with the ``Scorer`` signature; the
``WeightedScorer`` here is only the default.
"""
from __future__ import annotations

from typing import Callable, Sequence

from catalog.models import Service
from resolution.graph import DependencyGraph
from resolution.models import ObjectiveWeights, ResolutionOptions

# Each edge counts as half a service towards complexity.
EDGE_COMPLEXITY_WEIGHT = 0.5
COST_METADATA_KEY = "cost"

Scorer = Callable[[DependencyGraph, ObjectiveWeights, ResolutionOptions], float]


def complexity_of(graph: DependencyGraph) -> float:
    return len(graph) + EDGE_COMPLEXITY_WEIGHT * len(graph.edges())


def compatibility_ratio(services: Sequence[Service], options: ResolutionOptions) -> float:
    """Fraction of services supporting the requested framework and platform."""
    if not services:
        return 1.0
    supported = sum(
        1 for s in services
        if s.supports_framework(options.framework) and s.supports_platform(options.platform)
    )
    return supported / len(services)


def total_cost(services: Sequence[Service]) -> float:
    cost = 0.0
    for service in services:
        try:
            cost += max(0.0, float(service.metadata.get(COST_METADATA_KEY, 0) or 0))
        except (TypeError, ValueError):
            continue
    return cost


class WeightedScorer:
    """Weighted sum of three normalized objectives, each in (0, 1].

    simplicity    = 1 / (1 + services + 0.5 * edges)
    compatibility = share of services supporting the target
    cheapness     = 1 / (1 + summed ``metadata["cost"]``)
    """

    def __call__(self, graph: DependencyGraph, weights: ObjectiveWeights, options: ResolutionOptions) -> float:
        services = graph.services()
        simplicity = 1.0 / (1.0 + complexity_of(graph))
        compatibility = compatibility_ratio(services, options)
        cheapness = 1.0 / (1.0 + total_cost(services))
        score = (
            weights.minimize_complexity * simplicity
            + weights.maximize_compatibility * compatibility
            + weights.cost_aversion * cheapness
        )
        return round(score, 9)
