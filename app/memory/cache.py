# app/memory/cache.py

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, NamedTuple, Optional


class MapSummaryKey(NamedTuple):
    """Cache key for one chunk's map-summary."""

    model: str
    per_chunk_chars: int
    chunk_id: str


class TTLCache:
    """
    Bounded in-process key-value cache.

    • entries expire `ttl_seconds` after they were written
    • reads refresh recency; beyond `max_entries` the least recently
      used entry is evicted
    • thread-safe
    """

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):

        if max_entries <= 0:
            raise ValueError("max_entries must be positive")

        self._max_entries = max_entries
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[Hashable, tuple]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:

        with self._lock:

            hit = self._entries.get(key)

            if hit is None:
                return None

            value, expires_at = hit

            if self._clock() > expires_at:
                del self._entries[key]
                return None

            self._entries.move_to_end(key)

            return value

    def set(self, key: Hashable, value: Any) -> None:

        with self._lock:

            self._entries.pop(key, None)
            self._entries[key] = (value, self._clock() + self._ttl_seconds)

            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:

        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None
