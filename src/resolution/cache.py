"""TTL cache for resolution results."""

from __future__ import annotations

import fnmatch
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Generic, Optional, Sequence, TypeVar

from catalog.models import ServiceBundle
from constants import Constants

from .errors import CacheCorruptionError
from .models import DependencyResolutionResult, ResolutionRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with TTL."""

    value: T
    expires_at: float
    checksum: str
    tags: FrozenSet[str] = frozenset()
    created_at: float = field(default_factory=time.time)

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        return time.time() > self.expires_at


def make_cache_key(
    request: ResolutionRequest,
    bundles: Optional[Sequence[ServiceBundle]] = None,
    generation: int = 0,
) -> str:
    """Stable hash of the canonicalized request.

    Args:
        request: The request being resolved.
        bundles: Every bundle the request names, with ``bundle_ids`` already
            looked up; their contents are hashed. Defaults to ``request.bundles``.
        generation: Catalog generation the result is computed against.

    Requested refs and bundle contents are sorted so argument order never
    changes the key.
    """
    if bundles is None:
        bundles = request.bundles
        bundle_ids = sorted(request.bundle_ids)
    else:
        bundle_ids = []
    payload = {
        "services": sorted(str(r) for r in request.requested_services),
        "bundles": sorted(
            [
                b.id,
                sorted(str(r) for r in b.required_services),
                sorted(str(r) for r in b.optional_services),
            ]
            for b in bundles
        ),
        "bundle_ids": bundle_ids,
        "options": request.options.normalized(),
        "generation": generation,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def result_checksum(result: DependencyResolutionResult) -> str:
    """Checksum over the cache-relevant content of a result."""
    body = result.to_dict()
    body.pop("cache_hit", None)
    canonical = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ResolutionCache:
    """Thread-safe TTL cache of resolution results.

    Every public method holds the instance lock, so concurrent get/set/clear
    calls never observe a half-written entry.
    """

    def __init__(self, default_ttl: Optional[int] = None, max_entries: Optional[int] = None):
        """Initialize the resolution cache.

        Args:
            default_ttl: Default time-to-live in seconds.
            max_entries: Entry count that triggers eviction of the oldest tenth.
        """
        self._default_ttl = default_ttl if default_ttl is not None else Constants.CACHE_TTL_SEC
        self._max_entries = max_entries if max_entries is not None else Constants.CACHE_MAX_ENTRIES
        self._cache: Dict[str, CacheEntry[DependencyResolutionResult]] = {}
        self._lock = threading.RLock()
        self._last_cleanup = time.time()
        self._cleanup_interval = Constants.CACHE_CLEANUP_INTERVAL_SEC
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[DependencyResolutionResult]:
        """Get a cached result marked as a cache hit.

        Returns:
            The cached result or None if not found/expired.

        Raises:
            CacheCorruptionError: The stored entry failed its integrity check;
                it has already been evicted.
        """
        with self._lock:
            self._maybe_cleanup()
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired():
                del self._cache[key]
                self._misses += 1
                return None
            value = entry.value
            if not isinstance(value, DependencyResolutionResult):
                del self._cache[key]
                raise CacheCorruptionError(key, f"unexpected value type {type(value).__name__}")
            if result_checksum(value) != entry.checksum:
                del self._cache[key]
                raise CacheCorruptionError(key)
            self._hits += 1
            return replace(value, cache_hit=True)

    def set(self, key: str, result: DependencyResolutionResult, ttl: Optional[int] = None) -> None:
        """Cache a result.

        Args:
            key: Key from ``make_cache_key``.
            result: Result to store; stored with ``cache_hit=False``.
            ttl: Optional TTL override in seconds.
        """
        stored = replace(result, cache_hit=False)
        effective_ttl = ttl if ttl is not None else self._default_ttl
        entry = CacheEntry(
            value=stored,
            expires_at=time.time() + effective_ttl,
            checksum=result_checksum(stored),
            tags=frozenset(stored.service_ids),
        )
        with self._lock:
            self._maybe_cleanup()
            self._cache[key] = entry
            # Evict oldest entries if over limit
            if len(self._cache) > self._max_entries:
                self._evict_oldest(max(1, self._max_entries // 10))

    def invalidate(self, key: str) -> None:
        """Invalidate a single entry."""
        with self._lock:
            self._cache.pop(key, None)

    def clear(self, pattern: Optional[str] = None) -> int:
        """Clear entries.

        Args:
            pattern: Optional fnmatch pattern over service ids (``auth/*``);
                entries containing a matching service are removed. None
                clears everything.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            if pattern is None:
                removed = len(self._cache)
                self._cache.clear()
            else:
                keys = [k for k, e in self._cache.items()
                        if any(fnmatch.fnmatchcase(tag, pattern) for tag in e.tags)]
                for key in keys:
                    del self._cache[key]
                removed = len(keys)
        logger.debug("Cleared %d cache entries (pattern=%s)", removed, pattern)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            expired_count = sum(1 for e in self._cache.values() if e.is_expired())
            return {
                "total_entries": len(self._cache),
                "expired_entries": expired_count,
                "active_entries": len(self._cache) - expired_count,
                "max_entries": self._max_entries,
                "default_ttl": self._default_ttl,
                "hits": self._hits,
                "misses": self._misses,
            }

    def _maybe_cleanup(self) -> None:
        """Run cleanup if enough time has passed."""
        now = time.time()
        if now - self._last_cleanup > self._cleanup_interval:
            self._cleanup()
            self._last_cleanup = now

    def _cleanup(self) -> None:
        """Remove expired entries."""
        keys_to_remove = [k for k, v in self._cache.items() if v.is_expired()]
        for key in keys_to_remove:
            del self._cache[key]

    def _evict_oldest(self, count: int) -> None:
        """Evict the oldest entries."""
        sorted_keys = sorted(self._cache.keys(), key=lambda k: self._cache[k].created_at)
        for key in sorted_keys[:count]:
            del self._cache[key]
