"""Tests for cycle enumeration and soft-cycle breaking."""

from catalog import Catalog
from constants import EdgeKind, Severity
from resolution.cycles import CycleDetector, find_cycles, strongly_connected_components
from resolution.graph import DependencyGraph, GraphBuilder
from resolution.models import ResolutionOptions


def _graph(make_service, edges, priorities=None):
    priorities = priorities or {}
    nodes = sorted({n for edge in edges for n in edge[:2]})
    graph = DependencyGraph(f"queue/{n}" for n in nodes[:1])
    for node in nodes:
        graph.add_node(make_service("queue", node, priority=priorities.get(node, 0)))
    for src, dst, kind in edges:
        graph.add_edge(f"queue/{src}", f"queue/{dst}", kind)
    return graph


REQ = EdgeKind.REQUIRED
OPT = EdgeKind.OPTIONAL


class TestFindCycles:
    def test_scc_members_sorted(self):
        adj = {"a": ["b"], "b": ["a"], "c": []}
        assert sorted(strongly_connected_components(adj)) == [["a", "b"], ["c"]]

    def test_rotated_to_smallest(self):
        adj = {"c": ["a"], "a": ["b"], "b": ["c"]}
        assert find_cycles(adj) == [("a", "b", "c")]

    def test_every_elementary_cycle_in_one_component(self):
        # two loops sharing node a
        adj = {"a": ["b", "c"], "b": ["a"], "c": ["a"]}
        assert find_cycles(adj) == [("a", "b"), ("a", "c")]

    def test_self_loop(self):
        assert find_cycles({"a": ["a"]}) == [("a",)]

    def test_acyclic(self):
        assert find_cycles({"a": ["b"], "b": []}) == []


class TestCycleDetector:
    def setup_method(self):
        self.detector = CycleDetector()

    def test_required_cycle_is_critical(self, make_service):
        graph = _graph(make_service, [("a", "b", REQ), ("b", "c", REQ), ("c", "a", REQ)])
        report = self.detector.analyze(graph)
        assert [c.nodes for c in report.critical] == [("queue/a", "queue/b", "queue/c")]
        assert report.graph is None
        issue = report.errors()[0].to_issue()
        assert issue.code == "CircularDependencyError"
        assert issue.context == {"cycle": ["queue/a", "queue/b", "queue/c"], "severity": "critical"}

    def test_two_independent_cycles_two_reports(self, make_service):
        graph = _graph(make_service, [("a", "b", REQ), ("b", "a", REQ), ("c", "d", REQ), ("d", "c", REQ)])
        report = self.detector.analyze(graph)
        assert [c.nodes for c in report.critical] == [("queue/a", "queue/b"), ("queue/c", "queue/d")]
        assert len(report.errors()) == 2

    def test_soft_cycle_broken_at_optional_edge(self, make_service):
        graph = _graph(make_service, [("x", "y", REQ), ("y", "x", OPT)])
        report = self.detector.analyze(graph)
        assert report.critical == []
        assert report.broken_edges == [("queue/y", "queue/x")]
        assert report.soft[0].severity == Severity.WARNING
        assert report.soft[0].broken_edge == ("queue/y", "queue/x")
        assert report.graph.edge_kind("queue/y", "queue/x") is None
        # input graph untouched
        assert graph.edge_kind("queue/y", "queue/x") == OPT
        warning = report.warnings()[0].to_issue()
        assert warning.severity == Severity.WARNING
        assert warning.context["broken_edge"] == ["queue/y", "queue/x"]

    def test_lowest_priority_optional_edge_dropped(self, make_service):
        graph = _graph(
            make_service,
            [("a", "b", OPT), ("b", "a", OPT)],
            priorities={"a": 1, "b": 9},
        )
        report = self.detector.analyze(graph)
        # edge into the lower priority target goes first
        assert report.broken_edges == [("queue/b", "queue/a")]

    def test_all_cycles_reported_with_critical_present(self, make_service):
        graph = _graph(make_service, [
            ("a", "b", REQ), ("b", "a", REQ),
            ("c", "d", REQ), ("d", "c", OPT),
        ])
        report = self.detector.analyze(graph)
        assert len(report.critical) == 1
        assert [c.nodes for c in report.soft] == [("queue/c", "queue/d")]
        assert len(report.cycles) == 2

    def test_scenario_b_through_builder(self, make_service):
        catalog = Catalog([
            make_service("search", "a", required_dependencies=["search:b"]),
            make_service("search", "b", required_dependencies=["search:c"]),
            make_service("search", "c", required_dependencies=["search:a"]),
        ])
        graph = GraphBuilder(catalog).build([catalog.get_service("search", "a")], ResolutionOptions()).graph
        report = self.detector.analyze(graph)
        assert [c.nodes for c in report.critical] == [("search/a", "search/b", "search/c")]
