"""Complementary service suggestions and bundle recommendations."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from catalog.models import Service, ServiceBundle
from catalog.provider import CatalogProvider
from constants import Constants
from resolution.compatibility import CompatibilityChecker
from resolution.models import BundleRecommendation, ResolutionOptions, Suggestion

logger = logging.getLogger(__name__)

# Base relevance by how a candidate relates to the current set.
OPTIONAL_DEPENDENCY_SCORE = 0.6
INTEGRATION_SCORE = 0.4
TARGET_SUPPORT_BONUS = 0.2
TARGET_MISMATCH_PENALTY = 0.3
PRIORITY_BONUS_CAP = 10
PRIORITY_BONUS_UNIT = 0.01

# Bundle recommendation weights.
FRAMEWORK_FIT_POINTS = 20.0
PLATFORM_FIT_POINTS = 15.0
FRAMEWORK_MISFIT_POINTS = -30.0
PLATFORM_MISFIT_POINTS = -20.0
SERVICE_SUPPORT_POINTS = 30.0
COMPATIBILITY_WEIGHT = 0.35
MISSING_SERVICE_PENALTY = 10.0


def _supports_target(service: Service, options: ResolutionOptions) -> bool:
    return service.supports_framework(options.framework) and service.supports_platform(options.platform)


def _relevance(base: float, service: Service, options: ResolutionOptions) -> float:
    score = base + min(max(service.priority, 0), PRIORITY_BONUS_CAP) * PRIORITY_BONUS_UNIT
    if options.framework or options.platform:
        score += TARGET_SUPPORT_BONUS if _supports_target(service, options) else -TARGET_MISMATCH_PENALTY
    return round(max(0.0, min(1.0, score)), 4)


def _iter_catalog(catalog: CatalogProvider) -> Iterable[Service]:
    for service_type in catalog.list_types():
        yield from catalog.list_by_type(service_type)


def suggest_services(
    current: Sequence[Service],
    catalog: CatalogProvider,
    options: ResolutionOptions,
    limit: Optional[int] = None,
) -> List[Suggestion]:
    """Suggest services that complement ``current``.

    Two sources are considered: optional dependencies of current services
    that are not yet present, and catalog services that declare a dependency
    on something already present. Candidates that conflict with the current
    set, or whose type is already covered by another provider, are skipped.

    Args:
        current: Services already selected.
        catalog: Catalog to draw candidates from.
        options: Target framework and platform used for the relevance bonus.
        limit: Maximum number of suggestions; defaults to ``Constants.SUGGESTION_LIMIT``.

    Returns:
        Suggestions ordered by score descending, then service id.
    """
    limit = Constants.SUGGESTION_LIMIT if limit is None else limit
    present = {s.id: s for s in current}
    covered_types = {s.type for s in current}
    best: Dict[str, Suggestion] = {}

    def consider(candidate: Service, reason: str, base: float, optional: bool) -> None:
        if candidate.id in present or candidate.type in covered_types:
            return
        if any(candidate.conflicts(s) or s.conflicts(candidate) for s in present.values()):
            return
        suggestion = Suggestion(candidate, reason, _relevance(base, candidate, options), optional)
        existing = best.get(candidate.id)
        if existing is None or suggestion.score > existing.score:
            best[candidate.id] = suggestion

    for service in sorted(present.values(), key=lambda s: s.id):
        for ref in service.optional_dependencies:
            candidate = catalog.get_service(ref.type, ref.provider, ref.version_constraint)
            if candidate is not None:
                consider(candidate, f"optional dependency of {service.id}", OPTIONAL_DEPENDENCY_SCORE, True)

    for candidate in _iter_catalog(catalog):
        refs = candidate.required_dependencies + candidate.optional_dependencies
        linked = sorted(ref.key for ref in refs if ref.key in present)
        if linked:
            consider(candidate, f"integrates with {', '.join(linked)}", INTEGRATION_SCORE, False)

    ranked = sorted(best.values(), key=lambda s: (-s.score, s.service.id))
    logger.debug("Produced %d suggestion(s) for %d service(s)", len(ranked), len(present))
    return ranked[:limit]


def _bundle_services(
    bundle: ServiceBundle, catalog: CatalogProvider
) -> Tuple[List[Service], List[str]]:
    found, missing = [], []
    for ref in bundle.required_services:
        service = catalog.get_service(ref.type, ref.provider, ref.version_constraint)
        if service is None:
            missing.append(str(ref))
        else:
            found.append(service)
    return found, missing


def recommend_bundles(
    bundles: Sequence[ServiceBundle],
    catalog: CatalogProvider,
    options: ResolutionOptions,
    checker: Optional[CompatibilityChecker] = None,
) -> List[BundleRecommendation]:
    """Rank bundles by how well they fit the requested framework and platform.

    Score components: prerequisite fit (framework, platform), the share of
    required services supporting the target, a fraction of the compatibility
    score of the required set, and a penalty per service missing from the
    catalog.
    """
    checker = checker or CompatibilityChecker()
    recommendations = []
    for bundle in bundles:
        reasons: List[str] = []
        score = 0.0
        framework_ok, platform_ok = bundle.supports(options.framework, options.platform)
        if options.framework:
            if framework_ok:
                score += FRAMEWORK_FIT_POINTS
                reasons.append(f"supports framework {options.framework}")
            else:
                score += FRAMEWORK_MISFIT_POINTS
                reasons.append(f"requires one of frameworks {', '.join(bundle.frameworks)}")
        if options.platform:
            if platform_ok:
                score += PLATFORM_FIT_POINTS
                reasons.append(f"supports platform {options.platform}")
            else:
                score += PLATFORM_MISFIT_POINTS
                reasons.append(f"requires one of platforms {', '.join(bundle.platforms)}")

        services, missing = _bundle_services(bundle, catalog)
        if services:
            supported = sum(1 for s in services if _supports_target(s, options))
            score += SERVICE_SUPPORT_POINTS * supported / len(services)
        report = checker.check(services, options)
        compatibility = report.score
        score += COMPATIBILITY_WEIGHT * compatibility
        if missing:
            score -= MISSING_SERVICE_PENALTY * len(missing)
            reasons.append(f"missing from catalog: {', '.join(missing)}")
        if report.conflicts:
            reasons.append(f"{len(report.conflicts)} conflicting pair(s)")

        recommendations.append(BundleRecommendation(
            bundle=bundle,
            score=round(score, 2),
            compatibility=compatibility,
            reasons=tuple(reasons),
        ))

    return sorted(recommendations, key=lambda r: (-r.score, -r.compatibility, r.bundle.id))
