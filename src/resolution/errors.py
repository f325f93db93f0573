"""Resolution error taxonomy and the immutable Issue records built from it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from constants import Severity


@dataclass(frozen=True)
class Issue:
    """A single error or warning attached to a resolution result.

    Attributes:
        code: Name of the error class that produced it (e.g. ``ConflictError``).
        message: Human readable description.
        severity: Issue severity.
        context: Structured details (cycle ids, service ids, refs).
    """

    code: str
    message: str
    severity: Severity = Severity.ERROR
    context: Dict[str, Any] = field(default_factory=dict, compare=True, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "context": dict(self.context),
        }


class ResolutionError(Exception):
    """Base class for every failure the resolver reports."""

    severity = Severity.ERROR
    fatal = True

    def context(self) -> Dict[str, Any]:
        return {}

    def to_issue(self) -> Issue:
        return Issue(
            code=type(self).__name__,
            message=str(self),
            severity=self.severity,
            context=self.context(),
        )


class MissingDependencyError(ResolutionError):
    """A referenced dependency or conflict target is not in the catalog."""

    def __init__(self, ref, required_by: Optional[str] = None):
        self.ref = ref
        self.required_by = required_by
        where = f" (required by {required_by})" if required_by else ""
        super().__init__(f"Service not found in catalog: {ref}{where}")

    def context(self) -> Dict[str, Any]:
        return {"ref": str(self.ref), "required_by": self.required_by}


class CircularDependencyError(ResolutionError):
    """A dependency loop; critical loops are fatal, soft ones are warnings."""

    def __init__(self, cycle: Sequence[str], severity: Severity = Severity.CRITICAL,
                 broken_edge: Optional[Tuple[str, str]] = None):
        self.cycle = list(cycle)
        self.severity = severity
        self.fatal = severity == Severity.CRITICAL
        self.broken_edge = broken_edge
        path = " -> ".join(self.cycle + self.cycle[:1])
        if broken_edge:
            msg = f"Circular dependency {path} broken by dropping optional edge {broken_edge[0]} -> {broken_edge[1]}"
        else:
            msg = f"Circular dependency detected: {path}"
        super().__init__(msg)

    def context(self) -> Dict[str, Any]:
        ctx: Dict[str, Any] = {"cycle": list(self.cycle), "severity": self.severity.value}
        if self.broken_edge:
            ctx["broken_edge"] = list(self.broken_edge)
        return ctx


class ConflictError(ResolutionError):
    """Two resolved services declare each other (or one the other) incompatible."""

    def __init__(self, service_a: str, service_b: str):
        self.service_a, self.service_b = sorted((service_a, service_b))
        super().__init__(f"Services conflict: {self.service_a} and {self.service_b}")

    def context(self) -> Dict[str, Any]:
        return {"service_a": self.service_a, "service_b": self.service_b}


class AmbiguousSelectionError(ResolutionError):
    """Manual merge left one or more service types without a chosen provider."""

    def __init__(self, types: Iterable[str], candidates: Optional[Dict[str, Sequence[str]]] = None):
        self.types = sorted(types)
        self.candidates = {k: list(v) for k, v in (candidates or {}).items()}
        super().__init__(f"No provider selected for service type(s): {', '.join(self.types)}")

    def context(self) -> Dict[str, Any]:
        return {"types": list(self.types), "candidates": dict(self.candidates)}


class BundleNotFoundError(ResolutionError):
    def __init__(self, bundle_id: str):
        self.bundle_id = bundle_id
        super().__init__(f"Bundle not found: {bundle_id}")

    def context(self) -> Dict[str, Any]:
        return {"bundle_id": self.bundle_id}


class ResolutionTimeoutError(ResolutionError, TimeoutError):
    """The resolution exceeded its time budget; nothing is cached."""

    def __init__(self, timeout: float, state: str):
        self.timeout = timeout
        self.state = state
        super().__init__(f"Resolution exceeded {timeout:g}s before {state}")

    def context(self) -> Dict[str, Any]:
        return {"timeout": self.timeout, "state": self.state}


class ResolutionCancelledError(ResolutionError):
    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Resolution cancelled before {state}")

    def context(self) -> Dict[str, Any]:
        return {"state": self.state}


class CacheCorruptionError(ResolutionError):
    """A cache entry failed its integrity check. Recovered by eviction."""

    severity = Severity.WARNING
    fatal = False

    def __init__(self, key: str, reason: str = "checksum mismatch"):
        self.key = key
        self.reason = reason
        super().__init__(f"Cache entry {key[:12]} corrupted: {reason}")

    def context(self) -> Dict[str, Any]:
        return {"key": self.key, "reason": self.reason}


def internal_error_issue(exc: BaseException) -> Issue:
    """Wrap an unexpected exception as a generic error issue."""
    return Issue(
        code="InternalError",
        message=f"Unexpected resolution failure: {type(exc).__name__}: {exc}",
        severity=Severity.CRITICAL,
        context={"exception": type(exc).__name__},
    )
