"""Tests for the resolution result cache."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from catalog import Service, ServiceBundle
from resolution.cache import ResolutionCache, make_cache_key
from resolution.errors import CacheCorruptionError
from resolution.models import DependencyResolutionResult, ResolutionOptions, ResolutionRequest


def _result(*ids):
    services = tuple(Service(*sid.split("/")) for sid in ids)
    return DependencyResolutionResult(ordered_services=services)


class TestCacheKey:
    def test_argument_order_irrelevant(self):
        a = ResolutionRequest(requested_services=["auth:clerk", "cache:redis"])
        b = ResolutionRequest(requested_services=["cache/redis", "auth/clerk"])
        assert make_cache_key(a) == make_cache_key(b)

    def test_timeout_not_part_of_key(self):
        a = ResolutionRequest(["auth:clerk"], options=ResolutionOptions(timeout=5))
        b = ResolutionRequest(["auth:clerk"], options=ResolutionOptions(timeout=50))
        assert make_cache_key(a) == make_cache_key(b)

    def test_options_change_key(self):
        base = ResolutionRequest(["auth:clerk"])
        assert make_cache_key(base) != make_cache_key(base.with_options(framework="nextjs"))
        assert make_cache_key(base) != make_cache_key(base.with_options(include_optional=True))

    def test_constraint_changes_key(self):
        assert make_cache_key(ResolutionRequest(["auth:clerk"])) != make_cache_key(
            ResolutionRequest(["auth:clerk@^1.0.0"])
        )

    def test_bundle_contents_not_ids(self):
        request = ResolutionRequest(bundle_ids=["starter"])
        old = ServiceBundle("starter", required_services=["auth:clerk"])
        new = ServiceBundle("starter", required_services=["auth:better-auth"])
        assert make_cache_key(request, [old]) != make_cache_key(request, [new])
        assert make_cache_key(request, [old]) == make_cache_key(ResolutionRequest(bundles=[old]), [old])

    def test_catalog_generation_changes_key(self):
        request = ResolutionRequest(["auth:clerk"])
        assert make_cache_key(request, generation=0) != make_cache_key(request, generation=1)


class TestResolutionCache:
    def setup_method(self):
        self.cache = ResolutionCache(default_ttl=60, max_entries=10)

    def test_hit_marks_cache_hit_only(self):
        result = _result("auth/clerk")
        self.cache.set("k", result)
        hit = self.cache.get("k")
        assert hit.cache_hit is True
        assert hit.ordered_services == result.ordered_services
        assert self.cache.stats()["hits"] == 1

    def test_miss(self):
        assert self.cache.get("absent") is None
        assert self.cache.stats()["misses"] == 1

    def test_expired_entry_is_a_miss(self):
        self.cache.set("k", _result("auth/clerk"), ttl=-1)
        assert self.cache.get("k") is None
        assert len(self.cache) == 0

    def test_corruption_raises_and_evicts(self):
        self.cache.set("k", _result("auth/clerk"))
        self.cache._cache["k"].checksum = "0" * 64  # pylint: disable=protected-access
        with pytest.raises(CacheCorruptionError):
            self.cache.get("k")
        assert len(self.cache) == 0

    def test_clear_by_pattern(self):
        self.cache.set("one", _result("auth/clerk", "cache/redis"))
        self.cache.set("two", _result("database/postgresql"))
        assert self.cache.clear("auth/*") == 1
        assert self.cache.get("one") is None
        assert self.cache.get("two") is not None

    def test_clear_all(self):
        self.cache.set("one", _result("auth/clerk"))
        self.cache.set("two", _result("cache/redis"))
        assert self.cache.clear() == 2
        assert len(self.cache) == 0

    def test_invalidate(self):
        self.cache.set("one", _result("auth/clerk"))
        self.cache.invalidate("one")
        assert self.cache.get("one") is None

    def test_evicts_oldest_when_full(self):
        for i in range(11):
            self.cache.set(f"k{i}", _result("auth/clerk"))
        assert len(self.cache) == 10

    def test_concurrent_access(self):
        def work(i):
            key = f"k{i % 7}"
            self.cache.set(key, _result("auth/clerk"))
            hit = self.cache.get(key)
            if i % 5 == 0:
                self.cache.clear("auth/*")
            return hit

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(work, range(200)))

        assert all(r is None or r.cache_hit for r in results)
        assert len(self.cache) <= 7
