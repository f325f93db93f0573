"""Shared catalog fixtures."""

import pytest

from catalog.bundles import InMemoryBundleSource
from catalog.models import Service, ServiceBundle
from catalog.provider import Catalog
from resolution.orchestrator import ResolutionOrchestrator


def _service(service_type, provider, version="1.0.0", **kwargs):
    return Service(type=service_type, provider=provider, version=version, **kwargs)


@pytest.fixture
def make_service():
    """Factory for ad-hoc services."""
    return _service


@pytest.fixture
def base_services():
    return [
        _service(
            "auth", "clerk", "2.0.0",
            required_dependencies=["cache:redis"],
            optional_dependencies=["rbac:casbin"],
            supported_frameworks=("nextjs", "remix"),
            supported_platforms=("vercel", "node"),
            priority=5,
        ),
        _service("auth", "clerk", "1.4.0", required_dependencies=["cache:redis"], priority=5),
        _service(
            "auth", "better-auth", "1.5.0",
            required_dependencies=["database:postgresql"],
            supported_frameworks=("nextjs", "sveltekit"),
            priority=3,
        ),
        _service("cache", "redis", "7.2.0", priority=10),
        _service("rbac", "casbin", "5.0.0"),
        _service("database", "postgresql", "16.1.0", priority=10),
        _service("database", "mongodb", "7.0.0"),
        _service(
            "payments", "stripe", "14.0.0",
            required_dependencies=["database:postgresql"],
            optional_dependencies=["email:resend"],
        ),
        _service("email", "resend", "3.0.0"),
        _service("analytics", "posthog", "1.0.0", conflicts_with=["monitoring:datadog"]),
        _service("monitoring", "datadog", "1.0.0", conflicts_with=["analytics:posthog"]),
        _service("monitoring", "sentry", "8.0.0"),
    ]


@pytest.fixture
def catalog(base_services):
    return Catalog(base_services)


@pytest.fixture
def bundles():
    return InMemoryBundleSource([
        ServiceBundle(
            id="saas-starter",
            name="SaaS Starter",
            required_services=["auth:clerk", "database:postgresql", "payments:stripe"],
            optional_services=["email:resend"],
            frameworks=("nextjs",),
            platforms=("vercel",),
        ),
        ServiceBundle(
            id="analytics-suite",
            required_services=["analytics:posthog", "monitoring:datadog"],
        ),
        ServiceBundle(
            id="search-kit",
            required_services=["search:algolia"],
        ),
    ])


@pytest.fixture
def orchestrator(catalog, bundles):
    return ResolutionOrchestrator(catalog, bundle_source=bundles)
