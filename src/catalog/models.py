"""Catalog data models: services, references and bundles.

All three are frozen; once a catalog is loaded nothing in the resolver
mutates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

from constants import ServiceType
from versioning.constraints import satisfies
from versioning.parser import parse_service_token


def _service_type(value) -> ServiceType:
    if isinstance(value, ServiceType):
        return value
    return ServiceType(str(value).strip().lower())


@dataclass(frozen=True)
class ServiceRef:
    """Reference to a service by category and provider.

    Attributes:
        type: Service category.
        provider: Provider name within the category (e.g. ``clerk``).
        version_constraint: Optional exact version or range (``^2.0``).
    """

    type: ServiceType
    provider: str
    version_constraint: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "type", _service_type(self.type))
        object.__setattr__(self, "provider", self.provider.strip().lower())

    @property
    def key(self) -> str:
        return f"{self.type.value}/{self.provider}"

    @classmethod
    def parse(cls, token: str) -> "ServiceRef":
        """Parse ``type:provider``, ``type/provider`` with optional ``@constraint``.

        Raises:
            ValueError: On a malformed token or an unknown service type.
        """
        service_type, provider, constraint = parse_service_token(token)
        return cls(service_type, provider, constraint)

    def matches(self, service: "Service") -> bool:
        """Return True when ``service`` is what this reference names."""
        if service.type != self.type or service.provider != self.provider:
            return False
        return satisfies(service.version, self.version_constraint)

    def __str__(self) -> str:
        if self.version_constraint:
            return f"{self.key}@{self.version_constraint}"
        return self.key


def _freeze_refs(refs) -> Tuple[ServiceRef, ...]:
    return tuple(r if isinstance(r, ServiceRef) else ServiceRef.parse(r) for r in refs)


@dataclass(frozen=True)
class Service:
    """A versioned capability offering from the catalog.

    Attributes:
        type: Service category.
        provider: Provider name.
        version: Semantic version string.
        required_dependencies: Services that must be present.
        optional_dependencies: Services pulled in only when optional expansion is on.
        conflicts_with: Services that must not be present alongside this one.
        supported_frameworks: Frameworks this service supports; empty means any.
        supported_platforms: Platforms this service supports; empty means any.
        priority: Tie-break weight, higher wins.
        config_schema: Opaque configuration schema.
        metadata: Opaque metadata read by scorers (e.g. ``cost``).
    """

    type: ServiceType
    provider: str
    version: str = "1.0.0"
    required_dependencies: Tuple[ServiceRef, ...] = ()
    optional_dependencies: Tuple[ServiceRef, ...] = ()
    conflicts_with: Tuple[ServiceRef, ...] = ()
    supported_frameworks: Tuple[str, ...] = ()
    supported_platforms: Tuple[str, ...] = ()
    priority: int = 0
    config_schema: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "type", _service_type(self.type))
        object.__setattr__(self, "provider", self.provider.strip().lower())
        object.__setattr__(self, "required_dependencies", _freeze_refs(self.required_dependencies))
        object.__setattr__(self, "optional_dependencies", _freeze_refs(self.optional_dependencies))
        object.__setattr__(self, "conflicts_with", _freeze_refs(self.conflicts_with))
        object.__setattr__(self, "supported_frameworks", tuple(self.supported_frameworks))
        object.__setattr__(self, "supported_platforms", tuple(self.supported_platforms))

    @property
    def id(self) -> str:
        return f"{self.type.value}/{self.provider}"

    def ref(self) -> ServiceRef:
        """Exact reference to this service version."""
        return ServiceRef(self.type, self.provider, self.version)

    def supports_framework(self, framework: Optional[str]) -> bool:
        return not framework or not self.supported_frameworks or framework in self.supported_frameworks

    def supports_platform(self, platform: Optional[str]) -> bool:
        return not platform or not self.supported_platforms or platform in self.supported_platforms

    def conflicts(self, other: "Service") -> bool:
        """Return True when this service declares a conflict with ``other``."""
        return any(ref.matches(other) for ref in self.conflicts_with)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "provider": self.provider,
            "version": self.version,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class ServiceBundle:
    """A curated, named collection of services meant to be requested together."""

    id: str
    required_services: Tuple[ServiceRef, ...] = ()
    optional_services: Tuple[ServiceRef, ...] = ()
    name: str = ""
    description: str = ""
    frameworks: Tuple[str, ...] = ()
    platforms: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "required_services", _freeze_refs(self.required_services))
        object.__setattr__(self, "optional_services", _freeze_refs(self.optional_services))
        object.__setattr__(self, "frameworks", tuple(self.frameworks))
        object.__setattr__(self, "platforms", tuple(self.platforms))
        if not self.name:
            object.__setattr__(self, "name", self.id)

    def supports(self, framework: Optional[str], platform: Optional[str]) -> Tuple[bool, bool]:
        """Return (framework ok, platform ok) against the bundle prerequisites."""
        framework_ok = not framework or not self.frameworks or framework in self.frameworks
        platform_ok = not platform or not self.platforms or platform in self.platforms
        return framework_ok, platform_ok
