"""Bounded LRU cache for recently loaded file bodies.

The document service consults this cache before touching the workspace so a
cache hit never reaches the retry-wrapped IO path.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "ContentCache",
    "CacheEntry",
    "CacheConfig",
    "CacheStats",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_CACHE_ENTRIES = 50


@dataclass(slots=True, frozen=True)
class CacheConfig:
    """Configuration for the content cache.

    Attributes:
        max_entries: Maximum number of file bodies to keep.
        track_stats: Whether to count hits, misses and evictions.
    """

    max_entries: int = DEFAULT_CACHE_ENTRIES
    track_stats: bool = True


@dataclass(slots=True)
class CacheEntry:
    content: str
    created_at: float = field(default_factory=time.monotonic)
    accessed_at: float = field(default_factory=time.monotonic)
    access_count: int = 0

    def touch(self) -> None:
        self.accessed_at = time.monotonic()
        self.access_count += 1


@dataclass(slots=True)
class CacheStats:
    """Counters describing cache behaviour."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    invalidations: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Cache hit rate (0.0 to 1.0)."""
        total = self.total_requests
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "invalidations": self.invalidations,
            "total_requests": self.total_requests,
            "hit_rate": self.hit_rate,
        }

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.invalidations = 0


class ContentCache:
    """LRU cache of file contents keyed by workspace path.

    Example:
        >>> cache = ContentCache()
        >>> cache.set("notes/todo.md", "- buy milk")
        >>> cache.get("notes/todo.md")
        '- buy milk'
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        self._config = config or CacheConfig()
        if self._config.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._stats = CacheStats() if self._config.track_stats else None

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def stats(self) -> CacheStats | None:
        """Cache statistics (None if tracking disabled)."""
        return self._stats

    def get(self, key: str) -> str | None:
        """Return the cached content for ``key`` and mark it most recently used."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                if self._stats:
                    self._stats.misses += 1
                return None
            entry.touch()
            self._entries.move_to_end(key)
            if self._stats:
                self._stats.hits += 1
            return entry.content

    def set(self, key: str, content: str) -> None:
        """Store ``content``, evicting the least recently used entry when full."""
        with self._lock:
            if key in self._entries:
                self._entries[key] = CacheEntry(content=content)
                self._entries.move_to_end(key)
                return

            while len(self._entries) >= self._config.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                if self._stats:
                    self._stats.evictions += 1
                LOGGER.debug("Evicted cache entry for %s", evicted)

            self._entries[key] = CacheEntry(content=content)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            if key not in self._entries:
                return False
            del self._entries[key]
            if self._stats:
                self._stats.invalidations += 1
            LOGGER.debug("Invalidated cache entry for %s", key)
            return True

    def clear(self) -> int:
        """Drop every entry and return how many were removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            if self._stats:
                self._stats.invalidations += count
            return count

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> list[str]:
        """Keys ordered from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())
