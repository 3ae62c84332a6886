# payments/services/dedup.py

"""
WEBHOOK DEDUP (Seen store)

seen(key) / mark_seen(key) with a fixed TTL (WEBHOOK_DEDUP_TTL_SECONDS, 1h).

Two implementations:
- InMemorySeenStore: per-process dict with lazy TTL eviction. Correct ONLY
  when a single process serves webhooks (dev, tests).
- CacheSeenStore: Django cache framework (Redis via REDIS_URL). Shared by
  every instance; required for multi-instance deployments.

Empty keys are never stored: a delivery without a key bypasses dedup.
"""

from __future__ import annotations

import abc
import threading
import time
from typing import Callable, Dict, Optional

from django.conf import settings
from django.core.cache import caches

DEFAULT_TTL_SECONDS = 3600
CACHE_KEY_PREFIX = "payments:webhook-seen:"


def _ttl() -> int:
    return int(getattr(settings, "WEBHOOK_DEDUP_TTL_SECONDS", DEFAULT_TTL_SECONDS) or DEFAULT_TTL_SECONDS)


class SeenStore(abc.ABC):
    @abc.abstractmethod
    def seen(self, key: str) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def mark_seen(self, key: str) -> None:
        raise NotImplementedError


class InMemorySeenStore(SeenStore):
    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = int(ttl_seconds or _ttl())
        self._clock = clock
        self._entries: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _sweep(self, now: float) -> None:
        cutoff = now - self.ttl_seconds
        expired = [k for k, first_seen in self._entries.items() if first_seen <= cutoff]
        for k in expired:
            del self._entries[k]

    def seen(self, key: str) -> bool:
        if not key:
            return False
        with self._lock:
            now = self._clock()
            self._sweep(now)
            return key in self._entries

    def mark_seen(self, key: str) -> None:
        if not key:
            return
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries.setdefault(key, now)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)


class CacheSeenStore(SeenStore):
    def __init__(self, alias: str = "default", ttl_seconds: Optional[int] = None):
        self.alias = alias
        self.ttl_seconds = int(ttl_seconds or _ttl())

    @property
    def _cache(self):
        return caches[self.alias]

    def seen(self, key: str) -> bool:
        if not key:
            return False
        return self._cache.get(CACHE_KEY_PREFIX + key) is not None

    def mark_seen(self, key: str) -> None:
        if not key:
            return
        # add() keeps the original firstSeenAt/TTL on repeats
        self._cache.add(CACHE_KEY_PREFIX + key, int(time.time()), timeout=self.ttl_seconds)


_store: Optional[SeenStore] = None
_store_lock = threading.Lock()


def get_seen_store() -> SeenStore:
    global _store
    with _store_lock:
        if _store is None:
            kind = (getattr(settings, "WEBHOOK_SEEN_STORE", "memory") or "memory").strip().lower()
            _store = CacheSeenStore() if kind == "cache" else InMemorySeenStore()
        return _store


def set_seen_store(store: Optional[SeenStore]) -> None:
    global _store
    with _store_lock:
        _store = store


def reset_seen_store() -> None:
    set_seen_store(None)
