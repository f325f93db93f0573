"""Tests for service suggestions and bundle recommendations."""

from analysis.suggestions import recommend_bundles, suggest_services
from catalog import Catalog
from resolution.models import ResolutionOptions


class TestSuggestServices:
    def test_optional_dependency_suggested(self, catalog):
        suggestions = suggest_services([catalog.get_service("auth", "clerk")], catalog, ResolutionOptions())
        assert [s.service.id for s in suggestions] == ["rbac/casbin"]
        assert suggestions[0].optional is True
        assert suggestions[0].reason == "optional dependency of auth/clerk"

    def test_integrating_services_ranked(self, catalog):
        suggestions = suggest_services([catalog.get_service("database", "postgresql")], catalog, ResolutionOptions())
        assert [s.service.id for s in suggestions] == ["auth/better-auth", "payments/stripe"]
        assert all(not s.optional for s in suggestions)
        assert suggestions[0].score > suggestions[1].score

    def test_conflicting_candidates_excluded(self, make_service):
        catalog = Catalog([
            make_service("api", "app", optional_dependencies=["analytics:posthog"],
                         conflicts_with=["analytics:posthog"]),
            make_service("analytics", "posthog"),
        ])
        assert suggest_services([catalog.get_service("api", "app")], catalog, ResolutionOptions()) == []

    def test_covered_type_excluded(self, catalog):
        current = [catalog.get_service("database", "postgresql"), catalog.get_service("auth", "clerk")]
        ids = [s.service.id for s in suggest_services(current, catalog, ResolutionOptions())]
        assert "auth/better-auth" not in ids

    def test_target_support_adjusts_score(self, catalog):
        current = [catalog.get_service("database", "postgresql")]
        fits = suggest_services(current, catalog, ResolutionOptions(framework="sveltekit"))
        misfits = suggest_services(current, catalog, ResolutionOptions(framework="remix"))
        score = {s.service.id: s.score for s in fits}
        worse = {s.service.id: s.score for s in misfits}
        assert score["auth/better-auth"] > worse["auth/better-auth"]

    def test_limit(self, catalog):
        current = [catalog.get_service("database", "postgresql")]
        assert len(suggest_services(current, catalog, ResolutionOptions(), limit=1)) == 1


class TestRecommendBundles:
    def test_ranked_by_fit(self, catalog, bundles):
        options = ResolutionOptions(framework="nextjs", platform="vercel")
        ranked = recommend_bundles(bundles.list_bundles(), catalog, options)
        assert [r.bundle.id for r in ranked] == ["saas-starter", "analytics-suite", "search-kit"]
        assert ranked[0].compatibility == 100.0
        assert ranked[1].compatibility < 100.0
        assert any("missing from catalog" in reason for reason in ranked[2].reasons)

    def test_prerequisite_misfit_penalized(self, catalog, bundles):
        nextjs = recommend_bundles([bundles.get_bundle("saas-starter")], catalog, ResolutionOptions(framework="nextjs"))
        django = recommend_bundles([bundles.get_bundle("saas-starter")], catalog, ResolutionOptions(framework="django"))
        assert nextjs[0].score > django[0].score
