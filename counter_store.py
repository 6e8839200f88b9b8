# counter_store.py
"""Ephemeral TTL key-value stores for rate-limit counters.

Entries expire on their own; nothing ever deletes a counter explicitly.
"""
import json
import math
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis


class CounterStore:
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def put(self, key: str, value: Dict[str, Any], ttl: float) -> None:
        raise NotImplementedError


class InMemoryCounterStore(CounterStore):
    """Single-process store. For multiple workers, use RedisCounterStore."""

    # expired entries are dropped at most once per this many seconds
    SWEEP_INTERVAL = 60.0

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + self.SWEEP_INTERVAL

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._data[key]
                return None
            return dict(value)

    def put(self, key: str, value: Dict[str, Any], ttl: float) -> None:
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            self._data[key] = (now + ttl, dict(value))

    def _sweep(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        self._next_sweep = now + self.SWEEP_INTERVAL

    def __len__(self) -> int:
        return len(self._data)


class RedisCounterStore(CounterStore):
    def __init__(self, client: "redis.Redis"):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterStore":
        return cls(redis.Redis.from_url(url, socket_timeout=2, decode_responses=True))

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self.client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, key: str, value: Dict[str, Any], ttl: float) -> None:
        self.client.set(key, json.dumps(value), ex=max(1, math.ceil(ttl)))
