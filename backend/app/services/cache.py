"""
Response cache for AI calls.

Size-bound LRU (OrderedDict) with a per-entry TTL and tags for bulk
invalidation. Exact keys hash the canonical JSON of the request; semantic
keys collapse case, whitespace and stop words so near-identical prompts
share an entry.
"""
import hashlib
import json
import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
})

WHITESPACE = re.compile(r"\s+")


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    ttl: float
    tags: frozenset = field(default_factory=frozenset)

    def expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


def exact_key(kind: str, key_obj: Any) -> str:
    canonical = json.dumps(key_obj, sort_keys=True, separators=(",", ":"), default=str)
    return f"{kind}:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"


def normalize_text(text: str) -> str:
    words = WHITESPACE.split(text.lower().strip())
    return " ".join(w for w in words if w and w not in STOP_WORDS)


def semantic_key(kind: str, text: str) -> str:
    digest = hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()
    return f"semantic:{kind}:{digest}"


class ResponseCache:
    """In-memory LRU cache with TTL. Not thread-safe; one event loop only."""

    def __init__(
        self,
        max_entries: int = 100,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(1, max_entries)
        self.default_ttl = default_ttl
        self.clock = clock
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._store)

    # === Raw keys ===

    def get_key(self, key: str) -> Any:
        entry = self._store.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.expired(self.clock()):
            del self._store[key]
            self._misses += 1
            return None

        self._store.move_to_end(key)
        self._hits += 1
        return entry.value

    def set_key(self, key: str, value: Any, ttl: float | None = None, tags: Iterable[str] = ()) -> None:
        self._store[key] = CacheEntry(
            value=value,
            created_at=self.clock(),
            ttl=self.default_ttl if ttl is None else ttl,
            tags=frozenset(tags),
        )
        self._store.move_to_end(key)
        while len(self._store) > self.max_entries:
            evicted, _ = self._store.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Cache evicted {evicted}")

    # === Exact and semantic lookups ===

    def get(self, kind: str, key_obj: Any) -> Any:
        return self.get_key(exact_key(kind, key_obj))

    def set(self, kind: str, key_obj: Any, value: Any, ttl: float | None = None, tags: Iterable[str] = ()) -> None:
        self.set_key(exact_key(kind, key_obj), value, ttl=ttl, tags=(kind, *tags))

    def get_semantic(self, kind: str, text: str) -> Any:
        return self.get_key(semantic_key(kind, text))

    def set_semantic(self, kind: str, text: str, value: Any, ttl: float | None = None, tags: Iterable[str] = ()) -> None:
        self.set_key(semantic_key(kind, text), value, ttl=ttl, tags=("semantic", kind, *tags))

    # === Invalidation ===

    def invalidate_tag(self, tag: str) -> int:
        keys = [key for key, entry in self._store.items() if tag in entry.tags]
        for key in keys:
            del self._store[key]
        if keys:
            logger.info(f"Cache invalidated {len(keys)} entries tagged '{tag}'")
        return len(keys)

    def clear(self) -> None:
        self._store.clear()
        self._hits = self._misses = self._evictions = 0

    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "entries": len(self._store),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": self._hits / total if total else 0.0,
        }
