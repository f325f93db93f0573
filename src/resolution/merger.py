"""Bundle merging and same-type collision resolution."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from catalog.models import Service, ServiceBundle, ServiceRef
from catalog.provider import CatalogProvider
from common.logging_utils import extra_context, is_debug_enabled
from constants import MergeStrategy, Severity
from versioning.constraints import compare_versions

from .errors import AmbiguousSelectionError, Issue, MissingDependencyError
from .models import ResolutionOptions

logger = logging.getLogger(__name__)

REQUEST_SOURCE = "request"


@dataclass
class MergeResult:
    """Merged selection.

    Attributes:
        selected: One service per chosen ``(type, provider)``, ordered by id.
        alternatives: Losing candidates per collided type, best first.
        warnings: Collision and duplicate notes.
        sources: Which inputs asked for each selected id.
    """

    selected: List[Service] = field(default_factory=list)
    alternatives: Dict[str, List[Service]] = field(default_factory=dict)
    warnings: List[Issue] = field(default_factory=list)
    sources: Dict[str, List[str]] = field(default_factory=dict)


def _newer_first(left: Service, right: Service) -> int:
    by_version = compare_versions(right.version, left.version)
    if by_version:
        return by_version
    if left.priority != right.priority:
        return -1 if left.priority > right.priority else 1
    return (left.provider > right.provider) - (left.provider < right.provider)


def rank_prefer_newer(candidates: Sequence[Service], options: ResolutionOptions) -> Tuple[List[Service], List[Issue]]:
    return sorted(candidates, key=functools.cmp_to_key(_newer_first)), []


def rank_prefer_compatible(candidates: Sequence[Service], options: ResolutionOptions) -> Tuple[List[Service], List[Issue]]:
    matching = [c for c in candidates if c.supports_framework(options.framework) and c.supports_platform(options.platform)]
    others = [c for c in candidates if c not in matching]
    ranked = sorted(matching, key=functools.cmp_to_key(_newer_first))
    ranked += sorted(others, key=functools.cmp_to_key(_newer_first))
    warnings = []
    if not matching:
        warnings.append(Issue(
            code="MergeWarning",
            message=f"No {candidates[0].type.value} candidate supports the requested target; "
                    f"falling back to the newest",
            severity=Severity.WARNING,
            context={"type": candidates[0].type.value, "candidates": sorted(c.id for c in candidates)},
        ))
    return ranked, warnings


def rank_manual(candidates: Sequence[Service], options: ResolutionOptions) -> Tuple[List[Service], List[Issue]]:
    # manual selections come from overrides; an un-overridden collision is ambiguous
    raise AmbiguousSelectionError([candidates[0].type.value], {candidates[0].type.value: sorted(c.provider for c in candidates)})


Ranker = Callable[[Sequence[Service], ResolutionOptions], Tuple[List[Service], List[Issue]]]

RANKERS: Mapping[MergeStrategy, Ranker] = {
    MergeStrategy.PREFER_NEWER: rank_prefer_newer,
    MergeStrategy.PREFER_COMPATIBLE: rank_prefer_compatible,
    MergeStrategy.MANUAL: rank_manual,
}


def ranker_for(strategy: MergeStrategy) -> Ranker:
    try:
        return RANKERS[strategy]
    except KeyError as exc:
        raise ValueError(f"Unsupported merge strategy: {strategy}") from exc


def _collides(candidates: Sequence[Service], sources: Mapping[str, Sequence[str]]) -> bool:
    """True when no single input asked for every candidate provider."""
    if len(candidates) < 2:
        return False
    wanted = {c.id for c in candidates}
    by_source: Dict[str, Set[str]] = {}
    for candidate in candidates:
        for source in sources.get(candidate.id, ()):
            by_source.setdefault(source, set()).add(candidate.id)
    return all(ids != wanted for ids in by_source.values())


class BundleMerger:
    """Combines bundles and ad-hoc refs into one deduplicated selection."""

    def __init__(self, catalog: CatalogProvider):
        self._catalog = catalog

    def collect(
        self,
        refs: Sequence[ServiceRef],
        bundles: Sequence[ServiceBundle],
        include_optional: bool,
    ) -> List[Tuple[str, ServiceRef, bool]]:
        """Flatten inputs into ``(source, ref, optional)`` entries in a canonical order."""
        entries = [(REQUEST_SOURCE, ref, False) for ref in refs]
        for bundle in bundles:
            entries += [(f"bundle:{bundle.id}", ref, False) for ref in bundle.required_services]
            if include_optional:
                entries += [(f"bundle:{bundle.id}", ref, True) for ref in bundle.optional_services]
        return sorted(entries, key=lambda e: (e[1].key, e[1].version_constraint or "", e[0], e[2]))

    def merge(
        self,
        refs: Sequence[ServiceRef],
        bundles: Sequence[ServiceBundle],
        options: ResolutionOptions,
        pins: Optional[Mapping[str, str]] = None,
    ) -> MergeResult:
        """Merge inputs according to ``options.strategy``.

        A type collides only when the inputs disagree on it: providers that a
        single input lists together are all kept.

        Args:
            refs: Ad-hoc requested services.
            bundles: Resolved bundle objects.
            options: Strategy, overrides and compatibility targets.
            pins: ``type -> provider`` choices that beat the strategy.

        Raises:
            MissingDependencyError: A requested or required bundle service is
                not in the catalog.
            AmbiguousSelectionError: Manual strategy left collided types unresolved.
        """
        result = MergeResult()
        by_id: Dict[str, Service] = {}
        for source, ref, optional in self.collect(refs, bundles, options.include_optional):
            service = self._catalog.get_service(ref.type, ref.provider, ref.version_constraint)
            if service is None:
                if optional:
                    result.warnings.append(Issue(
                        code="MergeWarning",
                        message=f"Optional service {ref} from {source} is not in the catalog; skipped",
                        severity=Severity.WARNING,
                        context={"service": str(ref), "source": source},
                    ))
                    continue
                raise MissingDependencyError(ref, None if source == REQUEST_SOURCE else source)
            result.sources.setdefault(service.id, [])
            if source not in result.sources[service.id]:
                result.sources[service.id].append(source)
            existing = by_id.get(service.id)
            if existing is None:
                by_id[service.id] = service
            elif existing.version != service.version:
                keep = existing if _newer_first(existing, service) <= 0 else service
                by_id[service.id] = keep
                result.warnings.append(Issue(
                    code="MergeWarning",
                    message=f"{service.id} requested at {existing.version} and {service.version}; "
                            f"using {keep.version}",
                    severity=Severity.WARNING,
                    context={"service": service.id, "versions": sorted({existing.version, service.version})},
                ))

        by_type: Dict[str, List[Service]] = {}
        for service in by_id.values():
            by_type.setdefault(service.type.value, []).append(service)

        overrides = dict(options.overrides)
        overrides.update(pins or {})
        ranker = ranker_for(options.strategy)
        ambiguous: Dict[str, List[str]] = {}

        for type_name in sorted(by_type):
            candidates = sorted(by_type[type_name], key=lambda s: s.provider)
            if type_name in overrides:
                chosen = self._override(type_name, overrides[type_name], candidates)
                rest, _ = rank_prefer_newer([c for c in candidates if c.id != chosen.id], options)
                ranked = [chosen] + rest
            elif not _collides(candidates, result.sources):
                result.selected.extend(candidates)
                continue
            else:
                try:
                    ranked, notes = ranker(candidates, options)
                except AmbiguousSelectionError as exc:
                    ambiguous.update(exc.candidates)
                    continue
                result.warnings.extend(notes)

            result.selected.append(ranked[0])
            if len(ranked) > 1:
                result.alternatives[type_name] = ranked[1:]
                result.warnings.append(Issue(
                    code="MergeWarning",
                    message=f"{type_name}: selected {ranked[0].provider} over "
                            f"{', '.join(c.provider for c in ranked[1:])} ({options.strategy.value})",
                    severity=Severity.WARNING,
                    context={"type": type_name, "selected": ranked[0].id,
                             "rejected": [c.id for c in ranked[1:]]},
                ))

        if ambiguous:
            raise AmbiguousSelectionError(ambiguous.keys(), ambiguous)

        result.selected.sort(key=lambda s: s.id)
        if is_debug_enabled(logger):
            logger.debug(
                "Merged selection",
                extra=extra_context(event="merge", component="merger", count=len(result.selected),
                                    strategy=options.strategy.value),
            )
        return result

    def _override(self, type_name: str, provider: str, candidates: Sequence[Service]) -> Service:
        for candidate in candidates:
            if candidate.provider == provider:
                return candidate
        service = self._catalog.get_service(type_name, provider)
        if service is None:
            raise MissingDependencyError(ServiceRef(type_name, provider), "overrides")
        return service
