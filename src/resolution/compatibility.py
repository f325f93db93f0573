"""Compatibility rule evaluators for a finished service set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import List, Sequence, Tuple

from catalog.models import Service
from constants import DefaultScores, Severity

from .errors import ConflictError, Issue
from .models import ResolutionOptions

logger = logging.getLogger(__name__)


class CompatibilityRule:
    """Base class for compatibility rules."""

    def evaluate(self, services: Sequence[Service], options: ResolutionOptions) -> List[Issue]:
        """Evaluate the rule against the resolved services.

        Args:
            services: Resolved services, any order.
            options: Request options.

        Returns:
            Issues found; empty when the rule passes.
        """
        raise NotImplementedError


class FrameworkRule(CompatibilityRule):
    """Every service must support the requested framework."""

    def evaluate(self, services: Sequence[Service], options: ResolutionOptions) -> List[Issue]:
        if not options.framework:
            return []
        return [
            Issue(
                code="CompatibilityWarning",
                message=f"{s.id} does not support framework '{options.framework}'",
                severity=Severity.WARNING,
                context={"service": s.id, "framework": options.framework,
                         "supported": list(s.supported_frameworks)},
            )
            for s in services
            if not s.supports_framework(options.framework)
        ]


class PlatformRule(CompatibilityRule):
    """Every service must support the requested platform."""

    def evaluate(self, services: Sequence[Service], options: ResolutionOptions) -> List[Issue]:
        if not options.platform:
            return []
        return [
            Issue(
                code="CompatibilityWarning",
                message=f"{s.id} does not support platform '{options.platform}'",
                severity=Severity.WARNING,
                context={"service": s.id, "platform": options.platform,
                         "supported": list(s.supported_platforms)},
            )
            for s in services
            if not s.supports_platform(options.platform)
        ]


class ConflictRule(CompatibilityRule):
    """No pair of services may declare a conflict in either direction."""

    def conflicting_pairs(self, services: Sequence[Service]) -> List[Tuple[str, str]]:
        pairs = []
        for left, right in combinations(sorted(services, key=lambda s: s.id), 2):
            if left.conflicts(right) or right.conflicts(left):
                pairs.append((left.id, right.id))
        return pairs

    def evaluate(self, services: Sequence[Service], options: ResolutionOptions) -> List[Issue]:
        return [ConflictError(a, b).to_issue() for a, b in self.conflicting_pairs(services)]


@dataclass
class CompatibilityReport:
    errors: List[Issue] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)
    conflicts: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def compatible(self) -> bool:
        return not self.errors

    @property
    def score(self) -> float:
        return compatibility_score(self.errors + self.warnings)


def compatibility_score(issues: Sequence[Issue]) -> float:
    """100 minus per-issue penalties, clamped to [0, 100]."""
    penalties = {
        Severity.CRITICAL: DefaultScores.CRITICAL_PENALTY.value,
        Severity.ERROR: DefaultScores.ERROR_PENALTY.value,
        Severity.WARNING: DefaultScores.WARNING_PENALTY.value,
        Severity.INFO: 0,
    }
    score = DefaultScores.MAX_SCORE.value - sum(penalties[i.severity] for i in issues)
    return float(max(0, min(DefaultScores.MAX_SCORE.value, score)))


class CompatibilityChecker:
    """Runs framework, platform and conflict rules over a resolved set."""

    def __init__(self, rules: Sequence[CompatibilityRule] = None):
        self._conflict_rule = ConflictRule()
        self._rules = list(rules) if rules is not None else [FrameworkRule(), PlatformRule()]

    def check(self, services: Sequence[Service], options: ResolutionOptions) -> CompatibilityReport:
        report = CompatibilityReport()
        for rule in self._rules:
            for issue in rule.evaluate(services, options):
                if issue.severity in (Severity.ERROR, Severity.CRITICAL):
                    report.errors.append(issue)
                else:
                    report.warnings.append(issue)
        report.conflicts = self._conflict_rule.conflicting_pairs(services)
        report.errors.extend(ConflictError(a, b).to_issue() for a, b in report.conflicts)
        if report.conflicts:
            logger.warning("Found %d conflicting service pair(s)", len(report.conflicts))
        return report
