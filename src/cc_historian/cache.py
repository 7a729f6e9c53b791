"""Process-wide cache of parsed session files.

Entries are keyed by path and remember the file version ``(mtime_ns, size)``
they were parsed from. A lookup with a different version is a miss, and a
newer version of a cached file always replaces the old one in place.

Eviction is value-biased, not LRU: once the cache is full, a new file is
admitted only if one of its records scored above ``high_value_threshold``,
and it then replaces the entry with the lowest average score. Files that
do not clear the bar are simply not cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Lock

from cc_historian import config
from cc_historian.models import Message

logger = logging.getLogger(__name__)

FileKey = tuple[str, int, int]


def file_key(path: Path) -> FileKey:
    """Identity of a file's current contents: (path, mtime_ns, size)."""
    stat = path.stat()
    return (str(path), stat.st_mtime_ns, stat.st_size)


@dataclass(frozen=True)
class CacheEntry:
    """Parsed records of one file version plus the scores they earned when cached."""

    version: tuple[int, int]
    messages: tuple[Message, ...]
    max_score: float
    avg_score: float


class ValueBiasedCache:
    """Bounded map from file path to the parsed records of its latest version.

    Example:
        >>> cache = ValueBiasedCache(capacity=2, high_value_threshold=8)
        >>> cache.put(("a.jsonl", 1, 10), [], scores=[])
        True
        >>> cache.get(("a.jsonl", 1, 10))
        []
        >>> cache.get(("a.jsonl", 2, 12)) is None
        True
    """

    def __init__(
        self,
        capacity: int = config.CACHE_CAPACITY,
        high_value_threshold: float = config.CACHE_HIGH_VALUE_SCORE,
    ) -> None:
        self._capacity = capacity
        self._threshold = high_value_threshold
        self._entries: dict[str, CacheEntry] = {}
        self._lock = Lock()

        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: FileKey) -> bool:
        entry = self._entries.get(key[0])
        return entry is not None and entry.version == key[1:]

    def get(self, key: FileKey) -> list[Message] | None:
        """Cached records for ``key`` (a fresh list), or None."""
        path, *version = key
        with self._lock:
            entry = self._entries.get(path)
            if entry is None or entry.version != tuple(version):
                self._misses += 1
                return None
            self._hits += 1
            return list(entry.messages)

    def put(self, key: FileKey, messages: list[Message], scores: list[float]) -> bool:
        """Offer parsed records to the cache. Returns whether they were stored.

        Args:
            key: File identity from ``file_key``
            messages: Parsed, unscored records
            scores: Relevance of each record for the query that loaded it
        """
        path, mtime_ns, size = key
        max_score = max(scores, default=0.0)
        avg_score = sum(scores) / len(scores) if scores else 0.0
        entry = CacheEntry((mtime_ns, size), tuple(messages), max_score, avg_score)

        with self._lock:
            if path in self._entries or len(self._entries) < self._capacity:
                self._entries[path] = entry
                return True

            if max_score <= self._threshold:
                return False

            victim = min(self._entries, key=lambda p: self._entries[p].avg_score)
            logger.debug(
                "Evicting %s (avg %.2f) for %s (max %.2f)",
                victim, self._entries[victim].avg_score, path, max_score,
            )
            del self._entries[victim]
            self._entries[path] = entry
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def get_stats(self) -> dict[str, int | float]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "capacity": self._capacity,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
            }
