"""Bundle source interface and an in-memory implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from .models import ServiceBundle


class BundleSource(ABC):
    """Supplies bundle definitions by id. Loading is the caller's concern."""

    @abstractmethod
    def get_bundle(self, bundle_id: str) -> Optional[ServiceBundle]:
        """Return the bundle with this id, or None."""

    @abstractmethod
    def list_bundles(self) -> List[ServiceBundle]:
        """Return every known bundle ordered by id."""


class InMemoryBundleSource(BundleSource):
    def __init__(self, bundles: Iterable[ServiceBundle] = ()):
        self._bundles: Dict[str, ServiceBundle] = {b.id: b for b in bundles}

    def get_bundle(self, bundle_id: str) -> Optional[ServiceBundle]:
        return self._bundles.get(bundle_id)

    def list_bundles(self) -> List[ServiceBundle]:
        return [self._bundles[k] for k in sorted(self._bundles)]

    def put(self, bundle: ServiceBundle) -> None:
        """Add a bundle or replace the one with the same id."""
        self._bundles[bundle.id] = bundle
