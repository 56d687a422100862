"""Time-bounded in-memory cache."""

import time
from typing import Callable, Generic, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Key-value cache whose entries expire after a fixed time-to-live.

    The cache is an ordinary value: whoever needs one owns an instance and
    passes it where it is used.
    """

    def __init__(self, ttl_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            ttl_s: Seconds an entry stays valid after being set.
            clock: Monotonic time source, injectable for tests.
        """
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}

    def get(self, key: str) -> V | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        """Store a value, resetting its expiry."""
        self._entries[key] = (self._clock() + self.ttl_s, value)

    def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
