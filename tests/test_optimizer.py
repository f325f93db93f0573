"""Tests for the greedy optimizer and default scorer."""

import pytest

from analysis.optimizer import Optimizer
from analysis.scoring import WeightedScorer, compatibility_ratio, complexity_of, total_cost
from catalog import Catalog
from resolution.graph import DependencyGraph, GraphBuilder
from resolution.models import ObjectiveWeights, ResolutionOptions


class TestObjectiveWeights:
    def test_bounds_validated(self):
        with pytest.raises(ValueError):
            ObjectiveWeights(minimize_complexity=1.5)
        with pytest.raises(ValueError):
            ObjectiveWeights(cost_aversion=-0.1)


class TestWeightedScorer:
    def test_components(self, make_service):
        graph = DependencyGraph().with_service(make_service("cache", "redis", metadata={"cost": 3}))
        graph = graph.with_service(
            make_service("auth", "clerk", required_dependencies=["cache:redis"], supported_frameworks=("nextjs",))
        )
        assert complexity_of(graph) == 2.5
        assert total_cost(graph.services()) == 3.0
        assert compatibility_ratio(graph.services(), ResolutionOptions(framework="remix")) == 0.5

    def test_bad_cost_metadata_ignored(self, make_service):
        assert total_cost([make_service("cache", "redis", metadata={"cost": "n/a"})]) == 0.0

    def test_zero_weights_score_zero(self, make_service):
        graph = DependencyGraph().with_service(make_service("cache", "redis"))
        assert WeightedScorer()(graph, ObjectiveWeights(), ResolutionOptions()) == 0.0


class TestOptimizer:
    def test_drops_optional_service_for_simplicity(self, catalog):
        options = ResolutionOptions(include_optional=True)
        graph = GraphBuilder(catalog).build([catalog.get_service("auth", "clerk")], options).graph
        result = Optimizer().optimize(graph, catalog, ObjectiveWeights(minimize_complexity=1.0), options)
        assert result.removed == ("rbac/casbin",)
        assert result.added == ()
        assert "drop rbac/casbin" in result.explanation
        assert "cache/redis" in result.graph
        assert result.iterations == 1

    def test_required_dependency_never_dropped(self, catalog):
        options = ResolutionOptions()
        graph = GraphBuilder(catalog).build([catalog.get_service("auth", "clerk")], options).graph
        result = Optimizer().optimize(graph, catalog, ObjectiveWeights(minimize_complexity=1.0), options)
        assert list(result.graph) == ["auth/clerk", "cache/redis"]
        assert result.explanation == "No improving modification found"

    def test_swaps_provider_for_cost(self, make_service):
        catalog = Catalog([
            make_service("payments", "stripe", metadata={"cost": 10}),
            make_service("payments", "paddle", metadata={"cost": 1}),
        ])
        graph = DependencyGraph().with_service(catalog.get_service("payments", "stripe"), root=True)
        result = Optimizer().optimize(graph, catalog, ObjectiveWeights(cost_aversion=1.0), ResolutionOptions())
        assert result.removed == ("payments/stripe",)
        assert result.added == ("payments/paddle",)
        assert result.graph.roots == ("payments/paddle",)

    def test_swap_skips_alternative_with_absent_dependency(self, catalog):
        graph = DependencyGraph().with_service(catalog.get_service("auth", "clerk"), root=True)
        graph = graph.with_service(catalog.get_service("cache", "redis"))
        candidates = Optimizer().candidates(graph, catalog)
        # better-auth needs postgresql, which is not present
        assert all(c.added != "auth/better-auth" for c in candidates)

    def test_pluggable_scorer(self, catalog):
        calls = []

        def scorer(graph, weights, options):
            calls.append(len(graph))
            return 1.0

        options = ResolutionOptions(include_optional=True)
        graph = GraphBuilder(catalog).build([catalog.get_service("auth", "clerk")], options).graph
        result = Optimizer(scorer=scorer).optimize(graph, catalog, ObjectiveWeights(), options)
        assert calls
        assert result.removed == ()
        assert result.score == 1.0

    def test_iteration_budget(self, make_service):
        catalog = Catalog([
            make_service("api", "app", optional_dependencies=["cache:a", "email:b"]),
            make_service("cache", "a"),
            make_service("email", "b"),
        ])
        options = ResolutionOptions(include_optional=True)
        graph = GraphBuilder(catalog).build([catalog.get_service("api", "app")], options).graph
        result = Optimizer(max_iterations=1).optimize(
            graph, catalog, ObjectiveWeights(minimize_complexity=1.0), options
        )
        assert result.iterations == 1
        assert len(result.removed) == 1
