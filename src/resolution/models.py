"""Request, option and result models for one resolution cycle."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from catalog.models import Service, ServiceBundle, ServiceRef, _freeze_refs
from constants import Constants, MergeStrategy, Severity

from .errors import Issue


@dataclass(frozen=True)
class ObjectiveWeights:
    """Optimizer objective weights, each in [0, 1]."""

    minimize_complexity: float = 0.0
    maximize_compatibility: float = 0.0
    cost_aversion: float = 0.0

    def __post_init__(self):
        for name in ("minimize_complexity", "maximize_compatibility", "cost_aversion"):
            value = getattr(self, name)
            if not 0.0 <= float(value) <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

    def to_dict(self) -> Dict[str, float]:
        return {
            "minimize_complexity": float(self.minimize_complexity),
            "maximize_compatibility": float(self.maximize_compatibility),
            "cost_aversion": float(self.cost_aversion),
        }


@dataclass(frozen=True)
class ResolutionOptions:
    """Per-request knobs.

    Attributes:
        framework: Target framework; unset skips framework checks.
        platform: Target platform; unset skips platform checks.
        environment: Deployment environment label.
        include_optional: Follow optional dependencies and bundle optional services.
        max_depth: Expansion depth limit; None is unbounded.
        strategy: Collision policy for the merger.
        timeout: Seconds allowed for expansion through validation.
        overrides: ``type -> provider`` choices for the manual strategy.
        objective: Optimizer weights; None disables the optimizer.
    """

    framework: Optional[str] = None
    platform: Optional[str] = None
    environment: Optional[str] = None
    include_optional: bool = False
    max_depth: Optional[int] = None
    strategy: MergeStrategy = field(default_factory=lambda: Constants.DEFAULT_STRATEGY)
    timeout: float = field(default_factory=lambda: Constants.DEFAULT_TIMEOUT_SEC)
    overrides: Mapping[str, str] = field(default_factory=dict, hash=False)
    objective: Optional[ObjectiveWeights] = None

    def __post_init__(self):
        object.__setattr__(self, "strategy", MergeStrategy(self.strategy))
        if self.max_depth is not None and self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
        object.__setattr__(
            self, "overrides", {str(k).lower(): str(v).lower() for k, v in dict(self.overrides).items()}
        )

    def normalized(self) -> Dict[str, Any]:
        """Canonical mapping of every option that changes the outcome.

        ``timeout`` is excluded; it bounds the work, not the answer.
        """
        return {
            "framework": self.framework,
            "platform": self.platform,
            "environment": self.environment,
            "include_optional": bool(self.include_optional),
            "max_depth": self.max_depth,
            "strategy": self.strategy.value,
            "overrides": dict(sorted(self.overrides.items())),
            "objective": self.objective.to_dict() if self.objective else None,
        }


@dataclass(frozen=True)
class ResolutionRequest:
    """Normalized input to the orchestrator."""

    requested_services: Tuple[ServiceRef, ...] = ()
    bundles: Tuple[ServiceBundle, ...] = ()
    bundle_ids: Tuple[str, ...] = ()
    options: ResolutionOptions = field(default_factory=ResolutionOptions)

    def __post_init__(self):
        object.__setattr__(self, "requested_services", _freeze_refs(self.requested_services))
        object.__setattr__(self, "bundles", tuple(self.bundles))
        object.__setattr__(self, "bundle_ids", tuple(self.bundle_ids))

    def with_options(self, **changes) -> "ResolutionRequest":
        return replace(self, options=replace(self.options, **changes))


@dataclass(frozen=True)
class Cycle:
    """A dependency loop as the ordered ids forming it."""

    nodes: Tuple[str, ...]
    severity: Severity
    broken_edge: Optional[Tuple[str, str]] = None

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL


@dataclass(frozen=True)
class DependencyResolutionResult:
    """Outcome of one resolution call. Created once and never mutated."""

    ordered_services: Tuple[Service, ...] = ()
    errors: Tuple[Issue, ...] = ()
    warnings: Tuple[Issue, ...] = ()
    cache_hit: bool = False
    score: Optional[float] = None

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def status(self) -> str:
        if self.errors:
            return "failed"
        return "warning" if self.warnings else "success"

    @property
    def service_ids(self) -> Tuple[str, ...]:
        return tuple(s.id for s in self.ordered_services)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "ordered_services": [s.to_dict() for s in self.ordered_services],
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "cache_hit": self.cache_hit,
            "score": self.score,
        }


@dataclass(frozen=True)
class Suggestion:
    service: Service
    reason: str
    score: float
    optional: bool


@dataclass(frozen=True)
class ValidationReport:
    valid: bool
    errors: Tuple[Issue, ...]
    warnings: Tuple[Issue, ...]
    suggestions: Tuple[Suggestion, ...]
    score: float


@dataclass(frozen=True)
class BundleCheck:
    """Result of checking a bundle without resolving it."""

    can_resolve: bool
    missing_services: Tuple[str, ...]
    incompatibilities: Tuple[str, ...]


@dataclass(frozen=True)
class BundleRecommendation:
    bundle: ServiceBundle
    score: float
    compatibility: float
    reasons: Tuple[str, ...]


class CancellationToken:
    """Cooperative cancellation flag checked at state boundaries."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
