"""In-memory TTL cache behind an explicit get/put/invalidate interface.

Values are stored by reference, so a ``put`` replaces an entry atomically:
readers see either the old snapshot or the new one, never a mix.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, Protocol, TypeVar

V = TypeVar("V")

_MAX_CACHE_SIZE = 10_000


class Cache(Protocol[V]):
    """Storage contract shared by the catalog cache and the usage counters."""

    def get(self, key: Hashable) -> Optional[V]: ...

    def put(self, key: Hashable, value: V, ttl_seconds: Optional[float] = None) -> None: ...

    def invalidate(self, key: Hashable) -> bool: ...


class TTLCache(Generic[V]):
    """LRU cache whose entries expire ``ttl_seconds`` after they were put.

    ``ttl_seconds=None`` keeps entries until evicted or invalidated.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_size: int = _MAX_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[V, Optional[float]]] = OrderedDict()

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        self._entries.move_to_end(key)
        return value

    def put(self, key: Hashable, value: V, ttl_seconds: Optional[float] = None) -> None:
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + ttl if ttl is not None else None
        self._entries[key] = (value, expires_at)
        self._entries.move_to_end(key)
        if len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    def invalidate(self, key: Hashable) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
