"""
Response Cache — TTL-based LLM response caching.

Caches provider answers to avoid redundant upstream calls for repeated
questions (FAQ-style traffic is very repetitive).

Cache keys are computed from the normalized message (trimmed,
lower-cased) and the model id, so "Hello" and "  hello " share an entry
while the same text sent to another model does not. The reference text
and system prompt are not part of the key: changing them leaves stale
answers in place until they expire.

Expiry is lazy: an entry older than the TTL reads as a miss but stays in
the store until `purge_expired()` removes it.

Store errors never fail a completion: reads degrade to a miss, writes are
skipped, and both log a warning.

Usage:
    from llm_gateway.llm.cache import ResponseCache
    from llm_gateway.llm.cache_store import InMemoryCacheStore

    cache = ResponseCache(InMemoryCacheStore(), ttl_seconds=86400)

    cached = cache.get("What is the capital of France?", "gpt-4o")
    if cached is None:
        answer = ...  # call the provider
        cache.put("What is the capital of France?", "gpt-4o", answer)
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Callable, Optional

from llm_gateway.exceptions import CacheStoreError
from llm_gateway.llm.cache_store import CacheEntry, CacheStore, InMemoryCacheStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 3600


class ResponseCache:
    """
    Maps (normalized message, model) to a previous response.

    Features:
    - TTL expiration (default 24 hours, lazy)
    - Upsert on refresh (last write wins)
    - Kill switch: get/put are no-ops when disabled
    - Stats tracking (hits, misses, stores, errors)
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        *,
        enabled: bool = True,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store if store is not None else InMemoryCacheStore()
        self._enabled = enabled
        self._ttl = ttl_seconds
        self._clock = clock

        # Stats
        self._hits: int = 0
        self._misses: int = 0
        self._stores: int = 0
        self._errors: int = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def hit_rate(self) -> float:
        """Cache hit rate (0.0 to 1.0)."""
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    # --- Key Generation ---

    @staticmethod
    def normalize(message: str) -> str:
        return message.strip().lower()

    @staticmethod
    def make_key(message: str, model: str) -> str:
        """
        Create a deterministic cache key for a message/model pair.

        Uses SHA-256 hash to keep keys short and fixed-length.
        """
        raw = json.dumps({
            "message": ResponseCache.normalize(message),
            "model": model,
        }, sort_keys=True)
        return hashlib.sha256(raw.encode()).hexdigest()

    # --- Core Operations ---

    def get(self, message: str, model: str) -> Optional[str]:
        """
        Look up a cached response.

        Returns the response text if found and younger than the TTL,
        otherwise None.
        """
        if not self._enabled:
            return None

        key = self.make_key(message, model)
        try:
            entry = self._store.get(key, model)
        except CacheStoreError as e:
            self._errors += 1
            logger.warning(
                "cache_read_failed",
                extra={"key": key[:16], "model": model, "error": str(e)[:200]},
            )
            return None

        if entry is None or self.is_expired(entry):
            self._misses += 1
            return None

        self._hits += 1
        logger.debug(
            "cache_hit",
            extra={
                "key": key[:16],
                "model": model,
                "age_seconds": round(self._clock() - entry.created_at, 1),
            },
        )
        return entry.response

    def put(self, message: str, model: str, response: str) -> None:
        """Store (or refresh) the response for a message/model pair."""
        if not self._enabled:
            return

        entry = CacheEntry(
            key=self.make_key(message, model),
            message=message,
            response=response,
            model=model,
            created_at=self._clock(),
        )
        try:
            self._store.upsert(entry)
        except CacheStoreError as e:
            self._errors += 1
            logger.warning(
                "cache_write_failed",
                extra={"key": entry.key[:16], "model": model, "error": str(e)[:200]},
            )
            return
        self._stores += 1

    def is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.created_at >= self._ttl

    def purge_expired(self, max_age_seconds: Optional[int] = None) -> int:
        """
        Delete entries older than `max_age_seconds` (default: the TTL).

        Returns number of entries removed.
        """
        max_age = self._ttl if max_age_seconds is None else max_age_seconds
        cutoff = self._clock() - max_age
        removed = self._store.delete_older_than(cutoff)
        logger.info("cache_purged", extra={"removed": removed, "cutoff": cutoff})
        return removed

    def clear(self) -> int:
        """Clear all cached entries. Returns number of entries cleared."""
        return self._store.clear()

    # --- Stats ---

    def get_stats(self) -> dict[str, Any]:
        """Return cache performance statistics."""
        return {
            "enabled": self._enabled,
            "ttl_seconds": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self.hit_rate, 3),
            "stores": self._stores,
            "errors": self._errors,
        }
