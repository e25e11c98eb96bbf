from __future__ import annotations

import time
from dataclasses import dataclass
from threading import RLock
from typing import Callable, Dict, Generic, Optional, TypeVar


K = TypeVar('K')
V = TypeVar('V')


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[K, V]):
    """Small in-process TTL cache for resolved category snapshots.

    - Best-effort only: each worker holds its own copy, so another worker's
      admin save becomes visible here after at most ``ttl_seconds``
    - Thread-safe
    - ``clock`` is injectable so expiry can be tested without sleeping
    """

    def __init__(self, ttl_seconds: float = 30, max_items: int = 64, clock: Callable[[], float] = time.monotonic):
        self._ttl = max(0.0, float(ttl_seconds))
        self._max = max(1, int(max_items))
        self._clock = clock
        self._data: Dict[K, _Entry[V]] = {}
        self._lock = RLock()

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def get(self, key: K) -> Optional[V]:
        now = self._clock()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                self._data.pop(key, None)
                return None
            return entry.value

    def set(self, key: K, value: V) -> None:
        expires_at = self._clock() + self._ttl
        with self._lock:
            if key not in self._data and len(self._data) >= self._max:
                # drop the oldest insertion
                self._data.pop(next(iter(self._data)), None)
            self._data[key] = _Entry(value=value, expires_at=expires_at)

    def get_or_set(self, key: K, factory: Callable[[], V]) -> V:
        existing = self.get(key)
        if existing is not None:
            return existing
        value = factory()
        if self._ttl > 0:
            self.set(key, value)
        return value
