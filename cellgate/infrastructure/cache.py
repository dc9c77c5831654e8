"""Keyed time-to-live cache used for tenant configuration lookups.

``CacheStore`` is the interface the configuration resolver depends on. The
in-process ``MemoryCacheStore`` is the only implementation shipped; entries
are independent per key and the last write wins, so concurrent resolutions
of the same key need no coordination.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

type Clock = Callable[[], float]


class CacheStore(Protocol):
    """Async key-value store with per-entry expiry."""

    async def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` or None."""
        ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it was present."""
        ...

    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; return the count."""
        ...


@dataclass(frozen=True, slots=True)
class _Entry:
    value: Any
    expires_at: float


class MemoryCacheStore:
    """Dictionary-backed ``CacheStore`` with lazy expiry.

    Expired entries are dropped when read. When the store grows past
    ``max_entries`` every expired entry is pruned; if it is still full, the
    oldest insertion is evicted.

    Args:
        max_entries: Upper bound on stored entries.
        clock: Monotonic time source in seconds, injectable for tests.
    """

    def __init__(self, max_entries: int = 10_000, clock: Clock = time.monotonic) -> None:
        self._entries: dict[str, _Entry] = {}
        self._max_entries = max_entries
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            msg = f"ttl_seconds must be positive, got {ttl_seconds}"
            raise ValueError(msg)

        if key not in self._entries and len(self._entries) >= self._max_entries:
            self._make_room()

        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def _make_room(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]

        if len(self._entries) >= self._max_entries:
            # dicts preserve insertion order
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("Cache full, evicted oldest entry {}", oldest)
