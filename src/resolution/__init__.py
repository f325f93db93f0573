"""Service dependency resolution.

- merger.py: bundle merging and same-type collision strategies
- graph.py: dependency graph and breadth-first expansion
- cycles.py: cycle enumeration and soft-cycle breaking
- ordering.py: deterministic topological order
- compatibility.py: framework, platform and conflict rules
- cache.py: TTL result cache
- events.py: lifecycle event subscription
- orchestrator.py: public API (import from resolution.orchestrator)
"""

from .cache import ResolutionCache, make_cache_key
from .errors import (
    AmbiguousSelectionError,
    BundleNotFoundError,
    CacheCorruptionError,
    CircularDependencyError,
    ConflictError,
    Issue,
    MissingDependencyError,
    ResolutionCancelledError,
    ResolutionError,
    ResolutionTimeoutError,
)
from .models import (
    CancellationToken,
    Cycle,
    DependencyResolutionResult,
    ObjectiveWeights,
    ResolutionOptions,
    ResolutionRequest,
)

__all__ = [
    "AmbiguousSelectionError",
    "BundleNotFoundError",
    "CacheCorruptionError",
    "CancellationToken",
    "CircularDependencyError",
    "ConflictError",
    "Cycle",
    "DependencyResolutionResult",
    "Issue",
    "MissingDependencyError",
    "ObjectiveWeights",
    "ResolutionCache",
    "ResolutionCancelledError",
    "ResolutionError",
    "ResolutionOptions",
    "ResolutionRequest",
    "ResolutionTimeoutError",
    "make_cache_key",
]
