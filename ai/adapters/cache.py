from __future__ import annotations
"""Approximate-match result cache for the adapter layer.

SimilarityCache – in-memory cache keyed by **normalized idea text**.  A lookup
first tries the exact normalized key, then falls back to the stored entry with
the highest token-set (Jaccard) similarity above a threshold, so re-phrasings
and token re-orderings of an idea reuse an earlier analysis.  Entries expire
after a TTL (enforced lazily on access) and the least-recently-used entry is
evicted once the cache grows past ``max_size``.
"""

import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from core.errors import ConfigError
from core.locks import ReadWriteLock
from core.logging import logger

__all__ = [
    "CacheEntry",
    "CacheStats",
    "SimilarityCache",
    "jaccard_similarity",
    "normalize_text",
    "tokenize",
]

DEFAULT_TTL_SEC = 3600
DEFAULT_SIMILARITY_THRESHOLD = 0.5
DEFAULT_MAX_SIZE = 1000

_TOKEN_SPLIT = re.compile(r"[^0-9a-z]+")


def tokenize(text: str) -> List[str]:
    """Case-fold and split on non-alphanumeric boundaries, dropping empties."""
    return [tok for tok in _TOKEN_SPLIT.split(text.casefold()) if tok]


def normalize_text(text: str) -> str:
    return " ".join(tokenize(text))


def jaccard_similarity(a: str, b: str) -> float:
    """|A∩B| / |A∪B| over the token sets of two texts."""
    set_a = set(tokenize(a))
    set_b = set(tokenize(b))
    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


@dataclass
class CacheEntry:
    key: str
    value: Any
    created_at: float
    hit_count: int = 0
    last_similarity: float = 0.0


@dataclass(frozen=True)
class CacheStats:
    size: int
    hits: int
    misses: int
    hit_rate: float
    avg_hit_count: float


class SimilarityCache:
    """Thread-safe TTL + LRU cache with approximate key matching."""

    def __init__(
        self,
        ttl_sec: float = DEFAULT_TTL_SEC,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_sec <= 0:
            raise ConfigError(f"cache TTL must be positive, got {ttl_sec}")
        if not 0.0 < similarity_threshold <= 1.0:
            raise ConfigError(f"similarity threshold must be in (0, 1], got {similarity_threshold}")
        if max_size < 1:
            raise ConfigError(f"cache max size must be at least 1, got {max_size}")
        self._ttl = ttl_sec
        self._threshold = similarity_threshold
        self._max_size = max_size
        self._clock = clock
        # Most recently used entries live at the end.
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = ReadWriteLock()

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def similarity_threshold(self) -> float:
        return self._threshold

    @property
    def max_size(self) -> int:
        return self._max_size

    # ------------------------------------------------------------------
    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self._ttl

    def get(self, text: str) -> Optional[Any]:
        """Return the cached value for ``text`` or a similar text, else None."""
        key = normalize_text(text)
        # Lookups reorder the LRU list and bump counters, so they take the
        # write side of the lock.
        with self._lock.write():
            now = self._clock()
            entry = self._store.get(key)
            if entry is not None:
                if not self._expired(entry, now):
                    entry.hit_count += 1
                    entry.last_similarity = 1.0
                    self._store.move_to_end(key)
                    self._hits += 1
                    return entry.value
                del self._store[key]

            best = self._find_similar(key, now)
            if best is not None:
                best.hit_count += 1
                self._store.move_to_end(best.key)
                self._hits += 1
                logger.debug(f"Similarity cache hit ({best.last_similarity:.2f}) for {key!r}")
                return best.value

            self._misses += 1
            return None

    def _find_similar(self, key: str, now: float) -> Optional[CacheEntry]:
        best: Optional[CacheEntry] = None
        best_similarity = 0.0
        expired: List[str] = []
        for entry in self._store.values():
            if self._expired(entry, now):
                expired.append(entry.key)
                continue
            similarity = jaccard_similarity(key, entry.key)
            if similarity >= self._threshold and similarity > best_similarity:
                best, best_similarity = entry, similarity
        for stale in expired:
            del self._store[stale]
        if best is not None:
            best.last_similarity = best_similarity
        return best

    def store(self, text: str, value: Any) -> None:
        key = normalize_text(text)
        with self._lock.write():
            self._store.pop(key, None)
            self._store[key] = CacheEntry(key=key, value=value, created_at=self._clock())
            while len(self._store) > self._max_size:
                evicted, _ = self._store.popitem(last=False)
                logger.debug(f"Similarity cache evicted {evicted!r}")

    def purge_expired(self) -> int:
        """Drop every expired entry now; returns how many were removed."""
        with self._lock.write():
            now = self._clock()
            stale = [k for k, e in self._store.items() if self._expired(e, now)]
            for key in stale:
                del self._store[key]
            return len(stale)

    def size(self) -> int:
        with self._lock.read():
            return len(self._store)

    def __len__(self) -> int:
        return self.size()

    def stats(self) -> CacheStats:
        with self._lock.read():
            total = self._hits + self._misses
            size = len(self._store)
            hit_sum = sum(e.hit_count for e in self._store.values())
            return CacheStats(
                size=size,
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / total if total else 0.0,
                avg_hit_count=hit_sum / size if size else 0.0,
            )

    def clear(self) -> None:
        with self._lock.write():
            self._store.clear()
            self._hits = 0
            self._misses = 0
