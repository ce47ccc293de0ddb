"""
Thread-safe state shared between simulator tasks
"""
import itertools
import random
import threading
from collections import OrderedDict
from typing import Any, Dict, Hashable, List, Optional, Tuple


class ResourceIdRegistry:
    """Ordered, bounded set of resource ids known to exist on the demo API.

    Oldest ids are evicted first once the capacity is exceeded.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("Registry capacity must be at least 1")
        self.capacity = capacity
        self._ids: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    def add(self, resource_id: str) -> List[str]:
        """Track an id; returns whatever was evicted to stay within capacity."""
        evicted = []
        with self._lock:
            if resource_id in self._ids:
                return evicted
            self._ids[resource_id] = None
            while len(self._ids) > self.capacity:
                oldest, _ = self._ids.popitem(last=False)
                evicted.append(oldest)
        return evicted

    def remove(self, resource_id: str) -> bool:
        with self._lock:
            if resource_id in self._ids:
                del self._ids[resource_id]
                return True
            return False

    def choice(self, rng: random.Random) -> Optional[str]:
        """Pick a random tracked id, or None when nothing is tracked."""
        with self._lock:
            if not self._ids:
                return None
            index = rng.randrange(len(self._ids))
            return next(itertools.islice(self._ids, index, None))

    def snapshot(self) -> List[str]:
        with self._lock:
            return list(self._ids)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


class RetentionPool:
    """Insertion-ordered collection of retained objects with nominal MB weights."""

    def __init__(self, name: str):
        self.name = name
        self._entries: "OrderedDict[Hashable, Tuple[Any, float]]" = OrderedDict()
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def add(self, obj: Any, size_mb: float, key: Optional[Hashable] = None) -> Hashable:
        with self._lock:
            if key is None:
                key = next(self._counter)
            self._entries[key] = (obj, size_mb)
            return key

    def add_all(self, objects: List[Any], size_mb_each: float) -> None:
        with self._lock:
            for obj in objects:
                self._entries[next(self._counter)] = (obj, size_mb_each)

    def get(self, key: Hashable) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            return entry[0] if entry else None

    def evict_oldest(self, count: int) -> int:
        """Drop up to ``count`` entries in insertion order."""
        removed = 0
        with self._lock:
            while removed < count and self._entries:
                self._entries.popitem(last=False)
                removed += 1
        return removed

    def discard_alternating(self, count: int) -> int:
        """Drop ``count`` entries taking every other one from the front.

        Leaves survivors interleaved with the holes, which is worse for the
        allocator than freeing one contiguous block.
        """
        with self._lock:
            keys = list(self._entries)[0:2 * count:2]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            return removed

    def retained_mb(self) -> float:
        with self._lock:
            return sum(size for _, size in self._entries.values())

    def snapshot(self) -> List[Any]:
        with self._lock:
            return [obj for obj, _ in self._entries.values()]

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class MemoryRetentionPools:
    """The three retention pools used by the memory simulator."""

    def __init__(self):
        self.primary = RetentionPool("primary")
        self.cache = RetentionPool("cache")
        self.volatile = RetentionPool("volatile")

    def estimate_mb(self) -> float:
        return self.primary.retained_mb() + self.cache.retained_mb() + self.volatile.retained_mb()

    def counts(self) -> Dict[str, int]:
        return {
            "primary": len(self.primary),
            "cache": len(self.cache),
            "volatile": len(self.volatile),
        }
