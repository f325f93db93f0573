"""Service catalog: models, the provider interface and bundle sources."""

from .bundles import BundleSource, InMemoryBundleSource
from .models import Service, ServiceBundle, ServiceRef
from .provider import Catalog, CatalogProvider

__all__ = [
    "BundleSource",
    "Catalog",
    "CatalogProvider",
    "InMemoryBundleSource",
    "Service",
    "ServiceBundle",
    "ServiceRef",
]
