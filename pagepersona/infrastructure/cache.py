"""Result cache keyed by request fingerprint."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Protocol

from pagepersona.domain import CacheEntry, utcnow

logger = logging.getLogger(__name__)


class ResultCache(Protocol):
    """Storage contract for completed transformation results."""

    def get(self, fingerprint: str) -> dict[str, Any] | None: ...

    def put(self, fingerprint: str, result: dict[str, Any], ttl: int | None = None) -> CacheEntry: ...

    def delete(self, fingerprint: str) -> bool: ...

    def clear(self) -> int: ...

    def stats(self) -> dict[str, object]: ...

    def reset(self) -> None: ...


class InMemoryResultCache:
    """Process-local TTL cache.

    ``max_entries`` bounds memory for high-cardinality deployments; when the
    bound is hit the entry closest to expiry is evicted first.
    """

    def __init__(
        self,
        default_ttl: int = 3600,
        *,
        max_entries: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._default_ttl = default_ttl
        self._max_entries = max_entries or None
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._writes = 0
        self._evictions = 0

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _purge_expired(self, now: datetime) -> None:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self._evictions += len(expired)

    def _make_room(self) -> None:
        if self._max_entries is None:
            return
        while len(self._entries) >= self._max_entries:
            victim = min(self._entries.values(), key=lambda entry: entry.expires_at)
            del self._entries[victim.fingerprint]
            self._evictions += 1

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def get(self, fingerprint: str) -> dict[str, Any] | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is not None and entry.is_expired(now):
                del self._entries[fingerprint]
                self._evictions += 1
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry.result

    def put(self, fingerprint: str, result: dict[str, Any], ttl: int | None = None) -> CacheEntry:
        now = self._clock()
        lifetime = self._default_ttl if ttl is None else ttl
        entry = CacheEntry(
            fingerprint=fingerprint,
            result=result,
            created_at=now,
            expires_at=now + timedelta(seconds=lifetime),
        )
        with self._lock:
            self._purge_expired(now)
            if fingerprint not in self._entries:
                self._make_room()
            self._entries[fingerprint] = entry
            self._writes += 1
        logger.info("Cached transformation result %s (ttl=%ss)", fingerprint[:12], lifetime)
        return entry

    def delete(self, fingerprint: str) -> bool:
        with self._lock:
            return self._entries.pop(fingerprint, None) is not None

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        logger.info("Cleared %d cached transformation results", removed)
        return removed

    def stats(self) -> dict[str, object]:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            lookups = self._hits + self._misses
            return {
                "keys": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "writes": self._writes,
                "evictions": self._evictions,
                "hitRate": round(self._hits / lookups, 4) if lookups else 0.0,
                "defaultTtlSeconds": self._default_ttl,
                "maxEntries": self._max_entries,
            }

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = self._misses = self._writes = self._evictions = 0
