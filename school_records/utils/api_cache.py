# =============================================
# File: school_records/utils/api_cache.py
# Purpose: In-process TTL cache for API read endpoints (per-category TTL,
#          pattern invalidation, optional LRU bound)
# =============================================
from __future__ import annotations

import json
import os
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Pattern, TypeVar, Union

from loguru import logger

T = TypeVar("T")

# Category -> key prefix. Keys are "<prefix>:<scope>" (e.g. "class:etab:3").
CATEGORY_PREFIXES: Dict[str, str] = {
    "establishments": "etab",
    "classes": "class",
    "students": "eleve",
    "staff": "pers",
}

# Defaults in seconds
_DEFAULT_TTLS: Dict[str, int] = {
    "establishments": 5 * 60,
    "classes": 3 * 60,
    "students": 2 * 60,
    "staff": 2 * 60,
}

# Keys with an unknown prefix fall back to this category
_FALLBACK_CATEGORY = "establishments"


def load_ttls() -> Dict[str, float]:
    """Read per-category TTLs (seconds) from env, e.g. CACHE_TTL_STUDENTS=60."""
    ttls: Dict[str, float] = {}
    for category, default in _DEFAULT_TTLS.items():
        raw = os.getenv(f"CACHE_TTL_{category.upper()}")
        try:
            ttls[category] = float(raw) if raw else float(default)
        except ValueError:
            ttls[category] = float(default)
    return ttls


def _max_entries_from_env() -> int:
    try:
        return max(0, int(os.getenv("CACHE_MAX_ENTRIES", "0")))
    except ValueError:
        return 0


@dataclass
class CacheEntry(Generic[T]):
    value: T
    inserted_at: float


class EntryCache(Generic[T]):
    """
    Keyed store of API payloads with lazy expiry.

    - TTLs are fixed per category when the cache is built and resolved from the
      key prefix on every read (an entry aged exactly `ttl` is still fresh).
    - No background sweep: stale entries are dropped when read.
    - `max_entries > 0` turns on LRU eviction; reads refresh recency.
    - `get_or_set` has no single-flight: concurrent misses each run the loader.
    """

    def __init__(
        self,
        ttls: Optional[Dict[str, float]] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttls = dict(ttls) if ttls is not None else load_ttls()
        self._max = _max_entries_from_env() if max_entries is None else max(0, max_entries)
        self._clock = clock
        self._store: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._prefix_to_category = {p: c for c, p in CATEGORY_PREFIXES.items()}

    # ---------- TTL lookup ----------

    @property
    def ttls(self) -> Dict[str, float]:
        return dict(self._ttls)

    @property
    def max_entries(self) -> int:
        """LRU bound; 0 means unbounded."""
        return self._max

    def ttl_for(self, key: str) -> float:
        prefix = key.split(":", 1)[0]
        category = self._prefix_to_category.get(prefix, _FALLBACK_CATEGORY)
        return self._ttls.get(category, self._ttls.get(_FALLBACK_CATEGORY, 0.0))

    def _fresh(self, entry: CacheEntry[T], ttl: float) -> bool:
        return self._clock() - entry.inserted_at <= ttl

    # ---------- Basic operations ----------

    def get(self, key: str) -> Optional[T]:
        """Return the stored value while fresh, else None (stale entries are dropped)."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if not self._fresh(entry, self.ttl_for(key)):
            self._store.pop(key, None)
            return None
        self._store.move_to_end(key, last=True)
        return entry.value

    def set(self, key: str, value: T) -> None:
        self._store[key] = CacheEntry(value=value, inserted_at=self._clock())
        self._store.move_to_end(key, last=True)
        # enforce size
        if self._max:
            while len(self._store) > self._max:
                self._store.popitem(last=False)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def delete_matching(self, pattern: Union[str, Pattern[str]]) -> int:
        """Drop every key matching `pattern` (re.search semantics). Returns the count."""
        rx = re.compile(pattern) if isinstance(pattern, str) else pattern
        dead = [k for k in self._store if rx.search(k)]
        for k in dead:
            self._store.pop(k, None)
        return len(dead)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return key in self._store

    # ---------- Loader accessor ----------

    async def get_or_set(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
    ) -> T:
        """
        Return the fresh value for `key`, or await `loader()` and store its result.

        Freshness is checked against `ttl` when given, else the key's category TTL.
        Loader exceptions propagate unchanged and nothing is stored.
        """
        entry = self._store.get(key)
        if entry is not None:
            if self._fresh(entry, self.ttl_for(key) if ttl is None else ttl):
                self._store.move_to_end(key, last=True)
                return entry.value

        value = await loader()
        self.set(key, value)
        return value

    # ---------- Diagnostics ----------

    def stats(self) -> Dict[str, int]:
        values = [e.value for e in self._store.values()]
        try:
            size = len(json.dumps(values, ensure_ascii=False, default=str))
        except (TypeError, ValueError):
            size = 0
        return {"total_entries": len(self._store), "size_bytes": size}


# ---------------------------------------------------------------------
# Key builders
# ---------------------------------------------------------------------

class cache_keys:
    """Standard cache keys. Every key keeps its category prefix."""

    ALL_ESTABLISHMENTS = "etab:all"
    ALL_CLASSES = "class:all"
    ALL_STUDENTS = "eleve:all"
    ALL_STAFF = "pers:all"

    @staticmethod
    def establishment(establishment_id: Any) -> str:
        return f"etab:{establishment_id}"

    @staticmethod
    def classes_by_establishment(establishment_id: Any) -> str:
        return f"class:etab:{establishment_id}"

    @staticmethod
    def school_class(class_id: Any) -> str:
        return f"class:{class_id}"

    @staticmethod
    def students_by_class(class_id: Any) -> str:
        return f"eleve:class:{class_id}"

    @staticmethod
    def students_by_establishment(establishment_id: Any) -> str:
        return f"eleve:etab:{establishment_id}"

    @staticmethod
    def students(class_id: Any = None, establishment_id: Any = None) -> str:
        if class_id is not None and establishment_id is not None:
            return f"eleve:class:{class_id}:etab:{establishment_id}"
        if class_id is not None:
            return cache_keys.students_by_class(class_id)
        if establishment_id is not None:
            return cache_keys.students_by_establishment(establishment_id)
        return cache_keys.ALL_STUDENTS

    @staticmethod
    def student(student_id: Any) -> str:
        return f"eleve:{student_id}"

    @staticmethod
    def staff_by_establishment(establishment_id: Any) -> str:
        return f"pers:etab:{establishment_id}"

    @staticmethod
    def staff_member(staff_id: Any) -> str:
        return f"pers:{staff_id}"

    @staticmethod
    def staff_page(**params: Any) -> str:
        parts = [f"{k}={params[k]}" for k in sorted(params) if params[k] is not None]
        return "pers:list:" + "&".join(parts)


# ---------------------------------------------------------------------
# Invalidation cascade
# ---------------------------------------------------------------------

INVALIDATION_PATTERNS: Dict[str, tuple] = {
    "establishment": (r"^etab:", r"^class:", r"^eleve:", r"^pers:"),
    "class": (r"^class:", r"^eleve:class:"),
    "student": (r"^eleve:",),
    "staff": (r"^pers:",),
}


def invalidate_after_change(cache: EntryCache, entity: str) -> int:
    """Evict the cached reads that depend on `entity` after a create/update/delete."""
    try:
        patterns = INVALIDATION_PATTERNS[entity]
    except KeyError:
        raise ValueError(f"unknown entity type: {entity!r}") from None
    removed = sum(cache.delete_matching(p) for p in patterns)
    logger.debug(f"[cache] invalidate entity={entity} removed={removed}")
    return removed


# Parent reads that embed the child entity: class/student totals, and the
# class + establishment carried inside every student payload
PARENT_AGGREGATE_PATTERNS: Dict[str, tuple] = {
    "establishment": (),
    "class": (r"^etab:\d+$", r"^eleve:"),
    "student": (r"^class:", r"^etab:\d+$"),
    "staff": (),
}


def invalidate_parent_aggregates(cache: EntryCache, entity: str) -> int:
    """Evict parent detail/list entries whose embedded counts a child write changed."""
    removed = sum(cache.delete_matching(p) for p in PARENT_AGGREGATE_PATTERNS.get(entity, ()))
    if removed:
        logger.debug(f"[cache] parent aggregates entity={entity} removed={removed}")
    return removed
