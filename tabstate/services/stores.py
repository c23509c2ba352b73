"""
Key-value stores backing the content cache.

`KeyValueStore` is the minimal capability; `TaggedStore` adds multi-key
removal by tag. The content cache checks which one it was given and degrades
to exact-key removal on plain stores.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Protocol, runtime_checkable

Clock = Callable[[], float]


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    def forget(self, key: str) -> bool: ...


@runtime_checkable
class TaggedStore(KeyValueStore, Protocol):
    def put_tagged(self, key: str, value: Any, tags: Iterable[str], ttl: Optional[float] = None) -> None: ...

    def flush_tags(self, tags: Iterable[str]) -> int: ...


@dataclass
class _Slot:
    value: Any
    expires_at: Optional[float]
    tags: FrozenSet[str] = frozenset()


class MemoryStore:
    """In-process store with lazy TTL expiry and per-key locking.

    Expired slots are reaped every `reap_every` writes and on tag flushes.
    Locks are dropped together with their slots.
    """

    def __init__(self, clock: Clock = time.time, reap_every: int = 128) -> None:
        self._clock = clock
        self._slots: Dict[str, _Slot] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._reap_every = max(1, reap_every)
        self._writes = 0
        self._writes_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        # dict.setdefault is atomic, so two writers always share one lock per key.
        return self._locks.setdefault(key, threading.Lock())

    def _expired(self, slot: _Slot) -> bool:
        return slot.expires_at is not None and self._clock() >= slot.expires_at

    def get(self, key: str) -> Any:
        if key not in self._slots:
            return None
        with self._lock_for(key):
            slot = self._slots.get(key)
            if slot is None:
                return None
            if self._expired(slot):
                self._slots.pop(key, None)
                return None
            return slot.value

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._store(key, value, frozenset(), ttl)

    def _store(self, key: str, value: Any, tags: FrozenSet[str], ttl: Optional[float]) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock_for(key):
            self._slots[key] = _Slot(value=value, expires_at=expires_at, tags=tags)
        with self._writes_lock:
            self._writes += 1
            due = self._writes >= self._reap_every
            if due:
                self._writes = 0
        if due:
            self.reap_expired()

    def forget(self, key: str) -> bool:
        with self._lock_for(key):
            removed = self._slots.pop(key, None) is not None
        self._locks.pop(key, None)
        return removed

    def reap_expired(self) -> int:
        """Drop expired slots and any lock left without a slot. Returns slots dropped."""
        reaped = 0
        for key in self.keys():
            with self._lock_for(key):
                slot = self._slots.get(key)
                if slot is not None and self._expired(slot):
                    del self._slots[key]
                    reaped += 1
        for key in list(self._locks):
            if key not in self._slots:
                self._locks.pop(key, None)
        return reaped

    def keys(self) -> List[str]:
        return list(self._slots.keys())

    def __len__(self) -> int:
        return len(self._slots)


class TaggedMemoryStore(MemoryStore):
    """MemoryStore that also supports selective removal by tag set."""

    def put_tagged(self, key: str, value: Any, tags: Iterable[str], ttl: Optional[float] = None) -> None:
        self._store(key, value, frozenset(tags), ttl)

    def flush_tags(self, tags: Iterable[str]) -> int:
        """Remove every entry carrying all of `tags`. Returns the number removed."""
        wanted = frozenset(tags)
        removed = 0
        for key in self.keys():
            with self._lock_for(key):
                slot = self._slots.get(key)
                if slot is not None and wanted <= slot.tags:
                    del self._slots[key]
                    removed += 1
        self.reap_expired()
        return removed


def supports_tags(store: Any) -> bool:
    return isinstance(store, TaggedStore)
