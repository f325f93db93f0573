"""Tests for dependency graph expansion."""

import pytest

from catalog import Catalog
from constants import EdgeKind
from resolution.errors import MissingDependencyError
from resolution.graph import DependencyGraph, GraphBuilder
from resolution.models import ResolutionOptions


class TestGraphBuilder:
    def setup_method(self):
        self.options = ResolutionOptions()

    def test_required_only_by_default(self, catalog):
        builder = GraphBuilder(catalog)
        built = builder.build([catalog.get_service("auth", "clerk")], self.options)
        assert list(built.graph) == ["auth/clerk", "cache/redis"]
        assert built.graph.edges() == [("auth/clerk", "cache/redis", EdgeKind.REQUIRED)]
        assert built.warnings == []

    def test_optional_followed_when_requested(self, catalog):
        builder = GraphBuilder(catalog)
        built = builder.build([catalog.get_service("auth", "clerk")], ResolutionOptions(include_optional=True))
        assert "rbac/casbin" in built.graph
        assert built.graph.edge_kind("auth/clerk", "rbac/casbin") == EdgeKind.OPTIONAL

    def test_shared_dependency_is_one_node(self, catalog):
        builder = GraphBuilder(catalog)
        selection = builder.resolve_refs([
            catalog.get_service("auth", "better-auth").ref(),
            catalog.get_service("payments", "stripe").ref(),
        ])
        graph = builder.build(selection, self.options).graph
        assert len(graph) == 3
        assert set(graph.dependents("database/postgresql")) == {"auth/better-auth", "payments/stripe"}

    def test_missing_dependency(self, make_service):
        catalog = Catalog([make_service("auth", "clerk", required_dependencies=["cache:redis"])])
        builder = GraphBuilder(catalog)
        with pytest.raises(MissingDependencyError) as exc_info:
            builder.build([catalog.get_service("auth", "clerk")], self.options)
        assert exc_info.value.required_by == "auth/clerk"
        assert exc_info.value.to_issue().context["ref"] == "cache/redis"

    def test_unknown_conflict_target_is_missing(self, make_service):
        catalog = Catalog([make_service("auth", "clerk", conflicts_with=["auth:ghost"])])
        with pytest.raises(MissingDependencyError):
            GraphBuilder(catalog).build([catalog.get_service("auth", "clerk")], self.options)

    def test_max_depth_truncates_with_warning(self, make_service):
        catalog = Catalog([
            make_service("api", "gateway", required_dependencies=["auth:clerk"]),
            make_service("auth", "clerk", required_dependencies=["cache:redis"]),
            make_service("cache", "redis"),
        ])
        built = GraphBuilder(catalog).build([catalog.get_service("api", "gateway")], ResolutionOptions(max_depth=1))
        assert list(built.graph) == ["api/gateway", "auth/clerk"]
        assert [w.code for w in built.warnings] == ["DepthLimitWarning"]
        assert built.warnings[0].context["skipped"] == ["cache/redis"]

    def test_max_depth_zero_keeps_selection_only(self, catalog):
        built = GraphBuilder(catalog).build([catalog.get_service("auth", "clerk")], ResolutionOptions(max_depth=0))
        assert list(built.graph) == ["auth/clerk"]

    def test_version_mismatch_warns_and_keeps_existing(self, make_service):
        catalog = Catalog([
            make_service("auth", "clerk", required_dependencies=["cache:redis@^6.0.0"]),
            make_service("cache", "redis", "7.2.0"),
            make_service("cache", "redis", "6.4.0"),
        ])
        selection = [catalog.get_service("auth", "clerk"), catalog.get_service("cache", "redis")]
        built = GraphBuilder(catalog).build(selection, self.options)
        assert built.graph.get("cache/redis").version == "7.2.0"
        assert [w.code for w in built.warnings] == ["VersionMismatchWarning"]


class TestDependencyGraph:
    def _graph(self, make_service):
        graph = DependencyGraph(["auth/a"])
        for provider in ("a", "b", "c"):
            graph.add_node(make_service("auth", provider))
        graph.add_edge("auth/a", "auth/b", EdgeKind.REQUIRED)
        graph.add_edge("auth/b", "auth/c", EdgeKind.OPTIONAL)
        return graph

    def test_required_edge_not_downgraded(self, make_service):
        graph = self._graph(make_service)
        graph.add_edge("auth/a", "auth/b", EdgeKind.OPTIONAL)
        assert graph.edge_kind("auth/a", "auth/b") == EdgeKind.REQUIRED

    def test_duplicate_node_rejected(self, make_service):
        graph = self._graph(make_service)
        with pytest.raises(ValueError):
            graph.add_node(make_service("auth", "a"))

    def test_edge_to_unknown_node_rejected(self, make_service):
        graph = self._graph(make_service)
        with pytest.raises(KeyError):
            graph.add_edge("auth/a", "auth/zzz", EdgeKind.REQUIRED)

    def test_required_subgraph(self, make_service):
        graph = self._graph(make_service).required_subgraph()
        assert graph.edges() == [("auth/a", "auth/b", EdgeKind.REQUIRED)]

    def test_without_drops_node_and_edges(self, make_service):
        graph = self._graph(make_service).without("auth/b")
        assert list(graph) == ["auth/a", "auth/c"]
        assert graph.edges() == []

    def test_with_service_wires_existing_dependencies(self, make_service):
        graph = self._graph(make_service)
        extended = graph.with_service(make_service("cache", "redis", required_dependencies=["auth:c"]), root=True)
        assert extended.edge_kind("cache/redis", "auth/c") == EdgeKind.REQUIRED
        assert "cache/redis" in extended.roots
        assert "cache/redis" not in graph
