"""Dependency graph and breadth-first graph expansion from the catalog."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from catalog.models import Service, ServiceRef
from catalog.provider import CatalogProvider
from common.logging_utils import extra_context, is_debug_enabled
from constants import EdgeKind, Severity

from .errors import Issue, MissingDependencyError
from .models import ResolutionOptions

logger = logging.getLogger(__name__)

Edge = Tuple[str, str, EdgeKind]


class DependencyGraph:
    """Services keyed by id with tagged edges.

    An edge ``a -> b`` means "a depends on b". Every edge target is a node.
    """

    def __init__(self, roots: Iterable[str] = ()):
        self._nodes: Dict[str, Service] = {}
        self._out: Dict[str, Dict[str, EdgeKind]] = {}
        self._in: Dict[str, Dict[str, EdgeKind]] = {}
        self.roots: Tuple[str, ...] = tuple(sorted(set(roots)))

    def add_node(self, service: Service) -> None:
        if service.id in self._nodes:
            raise ValueError(f"Duplicate node {service.id}")
        self._nodes[service.id] = service
        self._out[service.id] = {}
        self._in[service.id] = {}

    def add_edge(self, source: str, target: str, kind: EdgeKind) -> None:
        if source not in self._nodes or target not in self._nodes:
            raise KeyError(f"Edge {source} -> {target} references an unknown node")
        current = self._out[source].get(target)
        # a required edge is never downgraded to optional
        if current == EdgeKind.REQUIRED:
            return
        self._out[source][target] = kind
        self._in[target][source] = kind

    def remove_edge(self, source: str, target: str) -> None:
        self._out[source].pop(target, None)
        self._in[target].pop(source, None)

    def __contains__(self, service_id: str) -> bool:
        return service_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._nodes))

    def get(self, service_id: str) -> Service:
        return self._nodes[service_id]

    def services(self) -> List[Service]:
        return [self._nodes[k] for k in sorted(self._nodes)]

    def dependencies(self, service_id: str) -> Dict[str, EdgeKind]:
        return dict(self._out[service_id])

    def dependents(self, service_id: str) -> Dict[str, EdgeKind]:
        return dict(self._in[service_id])

    def edges(self, kind: Optional[EdgeKind] = None) -> List[Edge]:
        result = [
            (src, dst, k)
            for src, targets in self._out.items()
            for dst, k in targets.items()
            if kind is None or k == kind
        ]
        return sorted(result)

    def edge_kind(self, source: str, target: str) -> Optional[EdgeKind]:
        return self._out.get(source, {}).get(target)

    def copy(self) -> "DependencyGraph":
        clone = DependencyGraph(self.roots)
        for service_id in sorted(self._nodes):
            clone.add_node(self._nodes[service_id])
        for src, dst, kind in self.edges():
            clone.add_edge(src, dst, kind)
        return clone

    def required_subgraph(self) -> "DependencyGraph":
        clone = DependencyGraph(self.roots)
        for service_id in sorted(self._nodes):
            clone.add_node(self._nodes[service_id])
        for src, dst, _ in self.edges(EdgeKind.REQUIRED):
            clone.add_edge(src, dst, EdgeKind.REQUIRED)
        return clone

    def without(self, service_id: str) -> "DependencyGraph":
        """Copy of the graph with one node and all its edges removed."""
        clone = DependencyGraph(r for r in self.roots if r != service_id)
        for sid in sorted(self._nodes):
            if sid != service_id:
                clone.add_node(self._nodes[sid])
        for src, dst, kind in self.edges():
            if service_id not in (src, dst):
                clone.add_edge(src, dst, kind)
        return clone

    def with_service(self, service: Service, root: bool = False) -> "DependencyGraph":
        """Copy with ``service`` added and wired to dependencies already present."""
        clone = self.copy()
        clone.add_node(service)
        if root:
            clone.roots = tuple(sorted(set(clone.roots) | {service.id}))
        for ref in service.required_dependencies:
            if ref.key in clone:
                clone.add_edge(service.id, ref.key, EdgeKind.REQUIRED)
        for ref in service.optional_dependencies:
            if ref.key in clone:
                clone.add_edge(service.id, ref.key, EdgeKind.OPTIONAL)
        return clone


@dataclass
class BuildResult:
    graph: DependencyGraph
    warnings: List[Issue] = field(default_factory=list)


class GraphBuilder:
    """Expands a selection into a full dependency graph through the catalog."""

    def __init__(self, catalog: CatalogProvider):
        self._catalog = catalog

    def _lookup(self, ref: ServiceRef, required_by: Optional[str]) -> Service:
        service = self._catalog.get_service(ref.type, ref.provider, ref.version_constraint)
        if service is None:
            raise MissingDependencyError(ref, required_by)
        return service

    def resolve_refs(self, refs: Sequence[ServiceRef]) -> List[Service]:
        """Look up each ref, failing on the first miss."""
        return [self._lookup(ref, None) for ref in refs]

    def build(
        self,
        selection: Sequence[Service],
        options: ResolutionOptions,
    ) -> BuildResult:
        """Expand ``selection`` breadth-first.

        Args:
            selection: Already-resolved top level services.
            options: Controls optional expansion and depth.

        Raises:
            MissingDependencyError: A dependency or conflict target is unknown.
        """
        graph = DependencyGraph(s.id for s in selection)
        warnings: List[Issue] = []
        queue = deque()
        for service in sorted(selection, key=lambda s: s.id):
            if service.id in graph:
                continue
            self._validate_conflict_refs(service)
            graph.add_node(service)
            queue.append((service, 0))

        while queue:
            service, depth = queue.popleft()
            dependencies = [(ref, EdgeKind.REQUIRED) for ref in service.required_dependencies]
            if options.include_optional:
                dependencies += [(ref, EdgeKind.OPTIONAL) for ref in service.optional_dependencies]

            truncated = options.max_depth is not None and depth >= options.max_depth
            skipped: List[str] = []
            for ref, kind in dependencies:
                if ref.key in graph:
                    existing = graph.get(ref.key)
                    if not ref.matches(existing):
                        warnings.append(_version_mismatch(service, ref, existing))
                    graph.add_edge(service.id, ref.key, kind)
                    continue
                if truncated:
                    skipped.append(ref.key)
                    continue
                dependency = self._lookup(ref, service.id)
                self._validate_conflict_refs(dependency)
                graph.add_node(dependency)
                graph.add_edge(service.id, dependency.id, kind)
                queue.append((dependency, depth + 1))

            if skipped:
                warnings.append(Issue(
                    code="DepthLimitWarning",
                    message=f"Dependencies of {service.id} not expanded beyond depth {options.max_depth}: "
                            f"{', '.join(sorted(skipped))}",
                    severity=Severity.WARNING,
                    context={"service": service.id, "skipped": sorted(skipped)},
                ))

        if is_debug_enabled(logger):
            logger.debug(
                "Graph expanded",
                extra=extra_context(event="graph_built", component="graph_builder",
                                    count=len(graph), outcome="success"),
            )
        return BuildResult(graph=graph, warnings=warnings)

    def _validate_conflict_refs(self, service: Service) -> None:
        for ref in service.conflicts_with:
            if self._catalog.get_service(ref.type, ref.provider) is None:
                raise MissingDependencyError(ref, service.id)


def _version_mismatch(service: Service, ref: ServiceRef, existing: Service) -> Issue:
    return Issue(
        code="VersionMismatchWarning",
        message=f"{service.id} wants {ref} but {existing.id}@{existing.version} is already selected",
        severity=Severity.WARNING,
        context={"service": service.id, "ref": str(ref), "selected_version": existing.version},
    )
