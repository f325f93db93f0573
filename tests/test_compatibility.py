"""Tests for compatibility rules and scoring."""

from constants import Severity
from resolution.compatibility import (
    CompatibilityChecker,
    ConflictRule,
    FrameworkRule,
    compatibility_score,
)
from resolution.errors import Issue
from resolution.models import ResolutionOptions


class TestCompatibilityChecker:
    def setup_method(self):
        self.checker = CompatibilityChecker()

    def test_scenario_c_mutual_conflict_reported_once(self, catalog):
        services = [catalog.get_service("analytics", "posthog"), catalog.get_service("monitoring", "datadog")]
        report = self.checker.check(services, ResolutionOptions())
        assert report.conflicts == [("analytics/posthog", "monitoring/datadog")]
        assert [e.code for e in report.errors] == ["ConflictError"]
        assert report.errors[0].context == {"service_a": "analytics/posthog", "service_b": "monitoring/datadog"}
        assert not report.compatible

    def test_one_sided_conflict(self, make_service):
        services = [
            make_service("cache", "redis", conflicts_with=["cache:memcached"]),
            make_service("cache", "memcached"),
        ]
        assert ConflictRule().conflicting_pairs(services) == [("cache/memcached", "cache/redis")]

    def test_conflict_honors_version_constraint(self, make_service):
        services = [
            make_service("cache", "redis", conflicts_with=["queue:bullmq@<2.0.0"]),
            make_service("queue", "bullmq", "3.0.0"),
        ]
        assert ConflictRule().conflicting_pairs(services) == []

    def test_framework_mismatch_is_warning(self, catalog):
        services = [catalog.get_service("auth", "better-auth"), catalog.get_service("database", "postgresql")]
        report = self.checker.check(services, ResolutionOptions(framework="remix"))
        assert report.compatible
        assert [w.context["service"] for w in report.warnings] == ["auth/better-auth"]
        assert report.warnings[0].code == "CompatibilityWarning"

    def test_platform_mismatch_is_warning(self, catalog):
        report = self.checker.check([catalog.get_service("auth", "clerk")], ResolutionOptions(platform="deno"))
        assert [w.severity for w in report.warnings] == [Severity.WARNING]

    def test_unset_options_skip_target_rules(self, catalog):
        report = self.checker.check([catalog.get_service("auth", "clerk")], ResolutionOptions())
        assert report.warnings == []
        assert report.score == 100.0

    def test_custom_rules(self, catalog):
        checker = CompatibilityChecker(rules=[FrameworkRule()])
        report = checker.check([catalog.get_service("auth", "clerk")], ResolutionOptions(platform="deno"))
        assert report.warnings == []


class TestCompatibilityScore:
    def test_penalties(self):
        issues = [
            Issue("A", "a", Severity.CRITICAL),
            Issue("B", "b", Severity.ERROR),
            Issue("C", "c", Severity.WARNING),
            Issue("D", "d", Severity.INFO),
        ]
        assert compatibility_score(issues) == 55.0

    def test_clamped_at_zero(self):
        assert compatibility_score([Issue("A", "a", Severity.CRITICAL)] * 5) == 0.0
