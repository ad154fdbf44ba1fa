"""Process-local memo of recent nutrition lookups."""

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from meal_planner.domain.nutrition import NutritionCacheEntry


@dataclass
class NutritionMemo:
    """Nutrition rows keyed by normalized ingredient name.

    Entries expire ``ttl_seconds`` after they were remembered. The memo is
    shared by request handlers and worker threads, so every access holds the
    lock.
    """

    ttl_seconds: float = 3600.0
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, tuple[float, NutritionCacheEntry]] = field(
        default_factory=dict
    )
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def lookup(
        self, names: Iterable[str]
    ) -> tuple[dict[str, NutritionCacheEntry], list[str]]:
        """Split ``names`` into fresh hits and names that need a database read."""
        now = self.clock()
        hits: dict[str, NutritionCacheEntry] = {}
        missing: list[str] = []
        with self._lock:
            for name in names:
                cached = self._entries.get(name)
                if cached is not None and cached[0] > now:
                    hits[name] = cached[1]
                    continue
                self._entries.pop(name, None)
                missing.append(name)
        return hits, missing

    def remember(self, entries: Iterable[NutritionCacheEntry]) -> None:
        expires_at = self.clock() + self.ttl_seconds
        with self._lock:
            for entry in entries:
                self._entries[entry.name_normalized] = (expires_at, entry)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
