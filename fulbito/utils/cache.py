"""Keyed TTL cache for provider responses and score maps.

Replaces the repetitive dict pattern:
    _cache = {key: {"value": ..., "expires_at": ...}}

Usage:
    cache = TTLCache(ttl=120, max_entries=256)

    # Read
    hit, value = cache.get(key)
    if hit:
        return value

    # Write
    value = await expensive_fetch()
    cache.set(key, value)

    # Invalidate
    cache.invalidate(key)
    cache.clear()

Concurrent misses on the same key both compute and the last write wins.
Values are stored as given; callers that hand out mutable values should copy
on read.
"""

import time
from collections import OrderedDict
from typing import Callable, Hashable, Optional


class TTLCache:
    """TTL-based keyed cache with oldest-first eviction once max_entries is hit."""

    __slots__ = ("ttl", "max_entries", "_entries", "_clock")

    def __init__(self, ttl: float, max_entries: int = 256, clock: Optional[Callable[[], float]] = None):
        self.ttl = ttl
        self.max_entries = max_entries
        self._entries: "OrderedDict[Hashable, tuple[float, object]]" = OrderedDict()
        self._clock = clock or time.monotonic

    def get(self, key: Hashable) -> tuple[bool, object]:
        """Return (hit, value). Expired entries are dropped on read."""
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return False, None
        return True, value

    def set(self, key: Hashable, value: object) -> None:
        """Store value with a fresh expiry, evicting expired then oldest entries."""
        now = self._clock()
        self._entries.pop(key, None)
        self._entries[key] = (now + self.ttl, value)
        self._evict(now)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
