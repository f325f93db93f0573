"""Catalog provider interface and the in-memory catalog implementation."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from common.logging_utils import extra_context, is_debug_enabled
from constants import ServiceType
from versioning.constraints import compare_versions, pick_highest

from .models import Service, _service_type

logger = logging.getLogger(__name__)

ServiceIndex = Mapping[Tuple[ServiceType, str], Tuple[Service, ...]]


class CatalogProvider(ABC):
    """Read-only source of known service definitions."""

    @abstractmethod
    def get_service(self, service_type, provider: str, version: Optional[str] = None) -> Optional[Service]:
        """Return the best service matching the lookup, or None.

        Args:
            service_type: ServiceType or its string value.
            provider: Provider name.
            version: Exact version or range; None selects the highest version.
        """

    @abstractmethod
    def list_by_type(self, service_type) -> List[Service]:
        """Return the newest version of every provider in a category."""

    def list_types(self) -> List[ServiceType]:
        """Categories with at least one service."""
        return [t for t in ServiceType if self.list_by_type(t)]

    @property
    def generation(self) -> int:
        """Counter bumped each time the contents change; 0 for static providers."""
        return 0


class Catalog(CatalogProvider):
    """In-memory catalog built once and swapped wholesale on reload.

    Several versions of the same ``(type, provider)`` may be held; lookups
    select among them with version constraints.
    """

    def __init__(
        self,
        services: Iterable[Service] = (),
        loader: Optional[Callable[[], Iterable[Service]]] = None,
    ):
        """Initialize the catalog.

        Args:
            services: Initial service definitions.
            loader: Optional callable re-invoked by ``reload()``.
        """
        self._loader = loader
        self._lock = threading.Lock()
        self._listeners: Dict[int, Callable[["Catalog"], None]] = {}
        self._next_token = 0
        self._generation = 0
        initial = list(services)
        if not initial and loader is not None:
            initial = list(loader())
        self._index: ServiceIndex = self._build_index(initial)

    @staticmethod
    def _build_index(services: Iterable[Service]) -> ServiceIndex:
        grouped: Dict[Tuple[ServiceType, str], Dict[str, Service]] = {}
        for service in services:
            versions = grouped.setdefault((service.type, service.provider), {})
            if service.version in versions:
                logger.warning("Duplicate catalog entry %s@%s; keeping the last one", service.id, service.version)
            versions[service.version] = service
        index = {}
        for key, versions in grouped.items():
            ordered = sorted(versions.values(), key=_VersionOrder)
            index[key] = tuple(reversed(ordered))
        return MappingProxyType(index)

    def get_service(self, service_type, provider: str, version: Optional[str] = None) -> Optional[Service]:
        key = (_service_type(service_type), provider.strip().lower())
        candidates = self._index.get(key, ())
        if not candidates:
            return None
        if version is None:
            return candidates[0]
        chosen = pick_highest((s.version for s in candidates), version)
        if chosen is None:
            return None
        return next(s for s in candidates if s.version == chosen)

    def list_by_type(self, service_type) -> List[Service]:
        wanted = _service_type(service_type)
        services = [versions[0] for (stype, _), versions in self._index.items() if stype == wanted]
        return sorted(services, key=lambda s: s.provider)

    @property
    def generation(self) -> int:
        return self._generation

    def versions_of(self, service_type, provider: str) -> List[str]:
        """All known versions of a provider, newest first."""
        key = (_service_type(service_type), provider.strip().lower())
        return [s.version for s in self._index.get(key, ())]

    def __len__(self) -> int:
        return sum(len(v) for v in self._index.values())

    def reload(self, services: Optional[Iterable[Service]] = None) -> None:
        """Replace the catalog contents and notify update listeners.

        Args:
            services: New definitions; when omitted the loader is re-run.

        Raises:
            ValueError: If neither services nor a loader are available.
        """
        if services is None:
            if self._loader is None:
                raise ValueError("Catalog has no loader; pass services to reload()")
            services = self._loader()
        new_index = self._build_index(services)
        with self._lock:
            self._index = new_index
            self._generation += 1
            listeners = list(self._listeners.values())
        if is_debug_enabled(logger):
            logger.debug(
                "Catalog reloaded",
                extra=extra_context(event="catalog_reload", component="catalog", count=len(self)),
            )
        for listener in listeners:
            try:
                listener(self)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Catalog update listener failed")

    def on_update(self, callback: Callable[["Catalog"], None]) -> Callable[[], None]:
        """Register a reload listener; returns an unsubscribe function."""
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners[token] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe


class _VersionOrder:
    """Sort key wrapper ordering services by semantic version."""

    __slots__ = ("service",)

    def __init__(self, service: Service):
        self.service = service

    def __lt__(self, other: "_VersionOrder") -> bool:
        return compare_versions(self.service.version, other.service.version) < 0
