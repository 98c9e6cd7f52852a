"""
Bounded memoization of per-term enrichment lookups.

``EnrichmentCache`` is a fixed-capacity map backed by a ring buffer of keys,
so insertion and eviction are O(1). Eviction is first-in first-out: a hit
does not refresh an entry's position.

``RecentTokens`` suppresses repeated emission for the same term within the
last N distinct terms, even when the cache already holds the entry.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


CacheKey = Tuple[str, str]


def normalize_token(token: str) -> str:
    return " ".join(token.lower().split())


@dataclass
class EnrichmentEntry:
    """Derived data attached to one detected term."""

    term: str
    translation: str
    phonetics: str
    definition: str
    language: str
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "term": self.term,
            "translation": self.translation,
            "phonetics": self.phonetics,
            "definition": self.definition,
            "language": self.language,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class CacheStats:
    """Cache counters."""

    size: int = 0
    capacity: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": round(self.hit_rate, 4),
        }


class EnrichmentCache:
    """Fixed-capacity FIFO cache keyed by (normalized token, language)."""

    def __init__(self, capacity: int = 500):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._keys: List[Optional[CacheKey]] = [None] * capacity
        self._head = 0
        self._entries: Dict[CacheKey, EnrichmentEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        token, lang = key
        return (normalize_token(token), lang) in self._entries

    @staticmethod
    def make_key(token: str, lang: str) -> CacheKey:
        return normalize_token(token), lang

    def get(self, token: str, lang: str) -> Optional[EnrichmentEntry]:
        entry = self._entries.get(self.make_key(token, lang))
        if entry is None:
            self._misses += 1
        else:
            self._hits += 1
        return entry

    def put(self, token: str, lang: str, entry: EnrichmentEntry) -> None:
        key = self.make_key(token, lang)
        if key in self._entries:
            self._entries[key] = entry
            return

        evicted = self._keys[self._head]
        if evicted is not None:
            del self._entries[evicted]
            self._evictions += 1

        self._keys[self._head] = key
        self._entries[key] = entry
        self._head = (self._head + 1) % self.capacity

    def clear(self) -> None:
        self._keys = [None] * self.capacity
        self._head = 0
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            capacity=self.capacity,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )


class RecentTokens:
    """Set of the most recent N distinct tokens."""

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._tokens: "OrderedDict[str, None]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, token: str) -> bool:
        return normalize_token(token) in self._tokens

    def add(self, token: str) -> None:
        key = normalize_token(token)
        if key in self._tokens:
            self._tokens.move_to_end(key)
            return
        self._tokens[key] = None
        if len(self._tokens) > self.capacity:
            self._tokens.popitem(last=False)

    def clear(self) -> None:
        self._tokens.clear()
