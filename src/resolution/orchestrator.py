"""Resolution orchestrator: the public entry point.

Drives one request through merge, expansion, cycle detection, ordering and
compatibility validation, consulting the cache first and emitting lifecycle
events. Expected failures come back as result errors; nothing raises out of
``resolve_dependencies``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from analysis.optimizer import Optimizer
from analysis.suggestions import recommend_bundles as rank_bundles
from analysis.suggestions import suggest_services as complementary_services
from catalog.bundles import BundleSource
from catalog.models import Service, ServiceBundle, ServiceRef, _freeze_refs
from catalog.provider import CatalogProvider
from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants, MergeStrategy, ResolutionEvent, ResolutionState, Severity, load_config

from .cache import ResolutionCache, make_cache_key
from .compatibility import CompatibilityChecker, compatibility_score
from .cycles import CycleDetector
from .errors import (
    BundleNotFoundError,
    CacheCorruptionError,
    Issue,
    ResolutionCancelledError,
    ResolutionError,
    ResolutionTimeoutError,
    internal_error_issue,
)
from .events import EventBus, Listener, ResolutionEventPayload, Subscription
from .graph import DependencyGraph, GraphBuilder
from .merger import BundleMerger, MergeResult
from .models import (
    BundleCheck,
    BundleRecommendation,
    CancellationToken,
    Cycle,
    DependencyResolutionResult,
    ResolutionOptions,
    ResolutionRequest,
    Suggestion,
    ValidationReport,
)
from .ordering import TopologicalOrderer

logger = logging.getLogger(__name__)

RefLike = Union[ServiceRef, str]

_TRANSITIONS: Mapping[ResolutionState, Tuple[ResolutionState, ...]] = {
    ResolutionState.PENDING: (ResolutionState.MERGING,),
    ResolutionState.MERGING: (ResolutionState.EXPANDING,),
    ResolutionState.EXPANDING: (ResolutionState.DETECTING_CYCLES,),
    ResolutionState.DETECTING_CYCLES: (ResolutionState.ORDERING,),
    ResolutionState.ORDERING: (ResolutionState.VALIDATING_COMPATIBILITY,),
    # back to MERGING when a conflicting provider is substituted
    ResolutionState.VALIDATING_COMPATIBILITY: (ResolutionState.SUCCEEDED, ResolutionState.MERGING),
    ResolutionState.SUCCEEDED: (ResolutionState.CACHED,),
    ResolutionState.FAILED: (),
    ResolutionState.CACHED: (),
}


class ResolutionRun:
    """Per-request state machine.

    Cancellation and the deadline are only checked when moving between
    states, so a phase that has started always completes.
    """

    def __init__(self, timeout: Optional[float], cancel_token: Optional[CancellationToken] = None):
        self.state = ResolutionState.PENDING
        self._timeout = timeout
        self._deadline = time.monotonic() + timeout if timeout else None
        self._cancel_token = cancel_token

    def advance(self, new_state: ResolutionState) -> None:
        """Move to ``new_state``.

        Raises:
            ResolutionCancelledError: The token was cancelled.
            ResolutionTimeoutError: The deadline has passed.
            RuntimeError: The transition is not part of the state machine.
        """
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal resolution transition {self.state.value} -> {new_state.value}")
        if self._cancel_token is not None and self._cancel_token.cancelled:
            raise ResolutionCancelledError(new_state.value)
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise ResolutionTimeoutError(self._timeout, new_state.value)
        logger.debug("Resolution state %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    def fail(self) -> None:
        if self.state not in (ResolutionState.SUCCEEDED, ResolutionState.CACHED):
            self.state = ResolutionState.FAILED


class ResolutionOrchestrator:
    """Public resolution API over an injected catalog."""

    def __init__(
        self,
        catalog: CatalogProvider,
        bundle_source: Optional[BundleSource] = None,
        cache: Optional[ResolutionCache] = None,
        optimizer: Optional[Optimizer] = None,
        checker: Optional[CompatibilityChecker] = None,
        config_path: Optional[str] = None,
    ):
        """Initialize the orchestrator.

        Args:
            catalog: Service definitions; reloads clear the cache when the
                catalog supports ``on_update``.
            bundle_source: Looks up ``ResolutionRequest.bundle_ids``.
            cache: Result cache; a private one is created when omitted.
            optimizer: Used when a request carries objective weights.
            checker: Compatibility rules to validate with.
            config_path: YAML config to apply; without one the default
                location and environment overrides are read once per process.
        """
        load_config(config_path)
        self._catalog = catalog
        self._bundle_source = bundle_source
        self._cache = cache if cache is not None else ResolutionCache()
        self._optimizer = optimizer or Optimizer()
        self._checker = checker or CompatibilityChecker()
        self._merger = BundleMerger(catalog)
        self._builder = GraphBuilder(catalog)
        self._detector = CycleDetector()
        self._orderer = TopologicalOrderer()
        self._events = EventBus()
        self._catalog_unsubscribe = None
        on_update = getattr(catalog, "on_update", None)
        if callable(on_update):
            self._catalog_unsubscribe = on_update(self._on_catalog_update)

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    def close(self) -> None:
        """Detach from catalog reload notifications."""
        if self._catalog_unsubscribe is not None:
            self._catalog_unsubscribe()
            self._catalog_unsubscribe = None

    def _on_catalog_update(self, _catalog) -> None:
        removed = self._cache.clear()
        logger.info("Catalog reloaded; dropped %d cached resolution(s)", removed)

    # Events

    def subscribe(self, event, callback: Listener) -> Subscription:
        """Register a lifecycle listener; call the returned handle to detach."""
        return self._events.subscribe(event, callback)

    def _emit(self, event: ResolutionEvent, request: ResolutionRequest,
              result: Optional[DependencyResolutionResult], timer: Timer) -> None:
        self._events.emit(ResolutionEventPayload(event, request, result, timer.duration_ms()))

    # Resolution

    def resolve_dependencies(
        self,
        request: ResolutionRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DependencyResolutionResult:
        """Resolve a request into an ordered, validated service plan.

        Args:
            request: Requested services, bundles and options.
            cancel_token: Optional cooperative cancellation flag.

        Returns:
            The resolution result. Failures are reported in ``errors``.
        """
        with Timer() as timer:
            self._emit(ResolutionEvent.STARTED, request, None, timer)
            try:
                bundles = self._bundles_for(request)
                generation = self._catalog.generation
                key = make_cache_key(request, bundles, generation)
                result = self._cached(key)
                if result is None:
                    result = self._resolve(request, bundles, key, generation, cancel_token)
            except BundleNotFoundError as exc:
                result = DependencyResolutionResult(errors=(exc.to_issue(),))
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.exception("Unexpected failure while resolving dependencies")
                result = DependencyResolutionResult(errors=(internal_error_issue(exc),))

        event = ResolutionEvent.COMPLETED if result.success else ResolutionEvent.FAILED
        logger.info(
            "Resolution %s: %d service(s), %d error(s), %d warning(s)",
            result.status, len(result.ordered_services), len(result.errors), len(result.warnings),
            extra=extra_context(event="resolve", component="orchestrator", outcome=result.status,
                                duration_ms=timer.duration_ms(), cache_hit=result.cache_hit),
        )
        self._emit(event, request, result, timer)
        return result

    async def aresolve_dependencies(
        self,
        request: ResolutionRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DependencyResolutionResult:
        """Run ``resolve_dependencies`` in a worker thread."""
        return await asyncio.to_thread(self.resolve_dependencies, request, cancel_token)

    def _cached(self, key: str) -> Optional[DependencyResolutionResult]:
        try:
            result = self._cache.get(key)
        except CacheCorruptionError as exc:
            logger.warning("%s; resolving again", exc)
            return None
        if is_debug_enabled(logger):
            logger.debug(
                "Cache lookup",
                extra=extra_context(event="cache_lookup", component="orchestrator",
                                    request_key=key[:12], outcome="hit" if result else "miss"),
            )
        return result

    def _resolve(
        self,
        request: ResolutionRequest,
        bundles: Sequence[ServiceBundle],
        key: str,
        generation: int,
        cancel_token: Optional[CancellationToken],
    ) -> DependencyResolutionResult:
        options = request.options
        run = ResolutionRun(options.timeout, cancel_token)
        warnings: List[Issue] = []
        substitution_notes: List[Issue] = []
        try:
            run.advance(ResolutionState.MERGING)
            pins: Dict[str, str] = {}
            tried: Dict[str, Set[str]] = {}
            while True:
                merged = self._merger.merge(request.requested_services, bundles, options, pins)
                warnings = list(merged.warnings)

                run.advance(ResolutionState.EXPANDING)
                built = self._builder.build(merged.selected, options)
                warnings += built.warnings

                run.advance(ResolutionState.DETECTING_CYCLES)
                cycles = self._detector.analyze(built.graph)
                warnings += [w.to_issue() for w in cycles.warnings()]
                if cycles.critical:
                    run.fail()
                    return DependencyResolutionResult(
                        errors=tuple(e.to_issue() for e in cycles.errors()),
                        warnings=tuple(warnings + substitution_notes),
                    )

                run.advance(ResolutionState.ORDERING)
                graph = cycles.graph
                ordered = self._orderer.order(graph)

                run.advance(ResolutionState.VALIDATING_COMPATIBILITY)
                report = self._checker.check(ordered, options)
                if not report.conflicts:
                    break
                substitution = None
                if (options.strategy != MergeStrategy.MANUAL
                        and len(substitution_notes) < Constants.MAX_CONFLICT_SUBSTITUTIONS):
                    substitution = self._substitution(report.conflicts, merged, tried)
                if substitution is None:
                    run.fail()
                    return DependencyResolutionResult(
                        errors=tuple(report.errors),
                        warnings=tuple(warnings + report.warnings + substitution_notes),
                    )
                replaced, alternative = substitution
                pins[alternative.type.value] = alternative.provider
                tried.setdefault(alternative.type.value, set()).update({replaced.provider, alternative.provider})
                substitution_notes.append(Issue(
                    code="ConflictSubstitution",
                    message=f"Replaced {replaced.id} with {alternative.id} to avoid a conflict",
                    severity=Severity.WARNING,
                    context={"replaced": replaced.id, "substitute": alternative.id},
                ))
                logger.info("Substituting %s with %s to resolve a conflict", replaced.id, alternative.id)
                run.advance(ResolutionState.MERGING)

            warnings += report.warnings
            score = None
            if options.objective is not None:
                optimized = self._optimizer.optimize(graph, self._catalog, options.objective, options)
                score = optimized.score
                if optimized.iterations:
                    ordered = self._orderer.order(optimized.graph)
                    warnings = [w for w in warnings if w.code != "CompatibilityWarning"]
                    warnings += self._checker.check(ordered, options).warnings
                    warnings.append(Issue(
                        code="OptimizationApplied",
                        message=optimized.explanation,
                        severity=Severity.INFO,
                        context={"removed": list(optimized.removed), "added": list(optimized.added)},
                    ))

            run.advance(ResolutionState.SUCCEEDED)
            result = DependencyResolutionResult(
                ordered_services=tuple(ordered),
                warnings=tuple(warnings + substitution_notes),
                score=score,
            )
            if self._catalog.generation != generation:
                logger.info("Catalog reloaded during resolution; result not cached")
                return result
            self._cache.set(key, result)
            run.advance(ResolutionState.CACHED)
            return result
        except ResolutionError as exc:
            run.fail()
            if isinstance(exc, (ResolutionTimeoutError, ResolutionCancelledError)):
                logger.warning("%s", exc)
            return DependencyResolutionResult(
                errors=(exc.to_issue(),),
                warnings=tuple(warnings + substitution_notes),
            )

    def _bundles_for(self, request: ResolutionRequest) -> List[ServiceBundle]:
        bundles = {b.id: b for b in request.bundles}
        for bundle_id in request.bundle_ids:
            if bundle_id in bundles:
                continue
            bundle = self._bundle_source.get_bundle(bundle_id) if self._bundle_source else None
            if bundle is None:
                raise BundleNotFoundError(bundle_id)
            bundles[bundle_id] = bundle
        return [bundles[k] for k in sorted(bundles)]

    @staticmethod
    def _substitution(
        conflicts: Sequence[Tuple[str, str]],
        merged: MergeResult,
        tried: Dict[str, Set[str]],
    ) -> Optional[Tuple[Service, Service]]:
        """Pick the next ranked alternative for a collided type in a conflict."""
        selected = {s.id: s for s in merged.selected}
        for pair in conflicts:
            for service_id in pair:
                current = selected.get(service_id)
                if current is None:
                    continue
                used = tried.get(current.type.value, set())
                for alternative in merged.alternatives.get(current.type.value, ()):
                    if alternative.provider not in used:
                        return current, alternative
        return None

    # Analysis helpers

    def _graph_for(self, services: Sequence[RefLike], options: ResolutionOptions) -> DependencyGraph:
        selection = self._builder.resolve_refs(_freeze_refs(services))
        return self._builder.build(selection, options).graph

    def calculate_injection_order(
        self, services: Sequence[RefLike], options: Optional[ResolutionOptions] = None
    ) -> List[str]:
        """Return service ids in injection order (dependencies first).

        Raises:
            MissingDependencyError: A service or dependency is unknown.
            CircularDependencyError: A required-edge cycle exists.
        """
        graph = self._graph_for(services, options or ResolutionOptions())
        report = self._detector.analyze(graph)
        if report.critical:
            raise report.errors()[0]
        return self._orderer.order_ids(report.graph)

    def detect_circular_dependencies(
        self, services: Sequence[RefLike], options: Optional[ResolutionOptions] = None
    ) -> List[Cycle]:
        """Every cycle reachable from ``services``, critical ones first."""
        graph = self._graph_for(services, options or ResolutionOptions())
        return self._detector.analyze(graph).cycles

    def validate_service_combination(
        self, services: Sequence[RefLike], options: Optional[ResolutionOptions] = None
    ) -> ValidationReport:
        """Check a set of services without caching or emitting events."""
        options = options or ResolutionOptions()
        errors: List[Issue] = []
        warnings: List[Issue] = []
        suggestions: Tuple[Suggestion, ...] = ()
        try:
            graph = self._graph_for(services, options)
        except ResolutionError as exc:
            errors.append(exc.to_issue())
        else:
            report = self._detector.analyze(graph)
            errors += [e.to_issue() for e in report.errors()]
            warnings += [w.to_issue() for w in report.warnings()]
            present = graph.services()
            compatibility = self._checker.check(present, options)
            errors += compatibility.errors
            warnings += compatibility.warnings
            suggestions = tuple(complementary_services(present, self._catalog, options))
        return ValidationReport(
            valid=not errors,
            errors=tuple(errors),
            warnings=tuple(warnings),
            suggestions=suggestions,
            score=compatibility_score(errors + warnings),
        )

    def suggest_services(
        self, current: Sequence[RefLike], options: Optional[ResolutionOptions] = None
    ) -> List[Suggestion]:
        """Services that complement ``current``, most relevant first."""
        selection = self._builder.resolve_refs(_freeze_refs(current))
        return complementary_services(selection, self._catalog, options or ResolutionOptions())

    def can_resolve_bundle(
        self, bundle: Union[ServiceBundle, str], options: Optional[ResolutionOptions] = None
    ) -> BundleCheck:
        """Cheap pre-check: catalog coverage and target prerequisites only.

        Raises:
            BundleNotFoundError: ``bundle`` is an id the bundle source does not know.
        """
        options = options or ResolutionOptions()
        if isinstance(bundle, str):
            found = self._bundle_source.get_bundle(bundle) if self._bundle_source else None
            if found is None:
                raise BundleNotFoundError(bundle)
            bundle = found
        missing = []
        services = []
        for ref in bundle.required_services:
            service = self._catalog.get_service(ref.type, ref.provider, ref.version_constraint)
            if service is None:
                missing.append(str(ref))
            else:
                services.append(service)
        incompatibilities = []
        framework_ok, platform_ok = bundle.supports(options.framework, options.platform)
        if not framework_ok:
            incompatibilities.append(f"bundle {bundle.id} does not support framework '{options.framework}'")
        if not platform_ok:
            incompatibilities.append(f"bundle {bundle.id} does not support platform '{options.platform}'")
        incompatibilities += [issue.message for issue in self._checker.check(services, options).errors]
        return BundleCheck(
            can_resolve=not missing and not incompatibilities,
            missing_services=tuple(missing),
            incompatibilities=tuple(incompatibilities),
        )

    def recommend_bundles(self, options: Optional[ResolutionOptions] = None) -> List[BundleRecommendation]:
        """Known bundles ranked by fit for the target framework and platform."""
        if self._bundle_source is None:
            return []
        return rank_bundles(
            self._bundle_source.list_bundles(), self._catalog, options or ResolutionOptions(), self._checker
        )

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        return self._cache.clear(pattern)
