"""TTL cache with tag-based invalidation."""

import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    tags: Set[str] = field(default_factory=set)


class TTLCache:
    """Thread-safe in-process cache.

    Entries expire after their own TTL and can be dropped in groups by tag.
    Values are deep-copied on the way in and out so callers cannot mutate
    cached results.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._tags: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                self._drop(key)
                return None
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl_seconds: int, tags: Iterable[str] = ()):
        if ttl_seconds <= 0:
            return
        with self._lock:
            self._drop(key)
            entry = CacheEntry(copy.deepcopy(value), self._clock() + ttl_seconds, set(tags))
            self._entries[key] = entry
            for tag in entry.tags:
                self._tags.setdefault(tag, set()).add(key)

    def invalidate_by_tag(self, tag: str) -> int:
        with self._lock:
            keys = list(self._tags.pop(tag, set()))
            for key in keys:
                self._drop(key)
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries tagged {tag}")
        return len(keys)

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._tags.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _drop(self, key: str):
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for tag in entry.tags:
            keys = self._tags.get(tag)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._tags[tag]
