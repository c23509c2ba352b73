"""
Tagged, TTL-based cache of rendered tab content plus adjacent-tab preloading.

The cache is an accelerator only: every failure is logged and degrades to a
miss, and callers must behave correctly when it always misses.
"""

from __future__ import annotations

import hashlib
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from loguru import logger

from tabstate.config import CacheSettings
from tabstate.services.stores import Clock, KeyValueStore, TaggedMemoryStore, supports_tags
from tabstate.tabs.definition import TabDefinition
from tabstate.tabs.registry import TabCollection

logger = logger.bind(module="content_cache")

Producer = Callable[[TabDefinition], str]


@dataclass(frozen=True)
class CacheEntry:
    tab_id: str
    subject_id: Optional[str]
    content: str
    cached_at: float
    hash: str
    tags: FrozenSet[str]


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class ContentCache:
    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        store: Optional[KeyValueStore] = None,
        executor: Optional[Executor] = None,
        clock: Clock = time.time,
        debug: bool = False,
        preload_workers: int = 2,
    ) -> None:
        self.settings = settings or CacheSettings()
        self._clock = clock
        self._store = store if store is not None else TaggedMemoryStore(clock=clock)
        self._executor = executor
        self._preload_workers = preload_workers
        self._debug = debug
        self._written_keys: Set[str] = set()
        self._stats: Dict[str, int] = {"hits": 0, "misses": 0, "writes": 0, "preloads": 0}
        self._stats_lock = threading.Lock()
        # Invalidation counters, compared by preloads before they write.
        self._epoch = 0
        self._generations: Dict[str, int] = {}
        self._generation_lock = threading.Lock()

    # Key and tag derivation

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    def supports_tags(self) -> bool:
        return self.settings.tags and supports_tags(self._store)

    def content_key(self, tab_id: str, subject_id: Optional[str] = None) -> str:
        key = f"{self.settings.prefix}:content:{tab_id}"
        if subject_id and self.settings.per_user:
            key += f":user:{subject_id}"
        return key

    def tags_for(self, tab_id: str, subject_id: Optional[str] = None) -> FrozenSet[str]:
        tags = {self.settings.prefix, f"tab:{tab_id}"}
        if subject_id and self.settings.per_user:
            tags.add(f"user:{subject_id}")
        return frozenset(tags)

    # Reads and writes

    def put(self, tab_id: str, subject_id: Optional[str], content: str) -> None:
        if not self.enabled:
            return
        key = self.content_key(tab_id, subject_id)
        tags = self.tags_for(tab_id, subject_id)
        entry = CacheEntry(
            tab_id=tab_id,
            subject_id=subject_id,
            content=content,
            cached_at=self._clock(),
            hash=content_hash(content),
            tags=tags,
        )
        ttl = self.settings.ttl
        try:
            if self.supports_tags():
                self._store.put_tagged(key, entry, tags, ttl)  # type: ignore[attr-defined]
            else:
                self._store.put(key, entry, ttl)
                self._written_keys.add(key)
        except Exception as exc:
            logger.error(f"Tabs Cache Error: content_store_failed for '{tab_id}': {exc}")
            return
        self._bump("writes")
        self._log("content_cached", key, ttl=ttl)

    def get_entry(self, tab_id: str, subject_id: Optional[str] = None) -> Optional[CacheEntry]:
        if not self.enabled:
            return None
        key = self.content_key(tab_id, subject_id)
        try:
            cached = self._store.get(key)
        except Exception as exc:
            logger.error(f"Tabs Cache Error: content_retrieval_failed for '{tab_id}': {exc}")
            self._bump("misses")
            return None
        if not isinstance(cached, CacheEntry) or not self._is_fresh(cached):
            self._bump("misses")
            return None
        self._bump("hits")
        self._log("content_hit", key)
        return cached

    def get(self, tab_id: str, subject_id: Optional[str] = None) -> Optional[str]:
        entry = self.get_entry(tab_id, subject_id)
        return entry.content if entry is not None else None

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.cached_at) < self.settings.ttl

    # Invalidation

    def generation(self, tab_id: str) -> Tuple[int, int]:
        with self._generation_lock:
            return self._epoch, self._generations.get(tab_id, 0)

    def _bump_generation(self, tab_id: Optional[str] = None) -> None:
        with self._generation_lock:
            if tab_id is None:
                self._epoch += 1
                self._generations.clear()
            else:
                self._generations[tab_id] = self._generations.get(tab_id, 0) + 1

    def invalidate(self, tab_id: str, subject_id: Optional[str] = None) -> bool:
        self._bump_generation(tab_id)
        try:
            if self.supports_tags():
                tags = self.tags_for(tab_id, subject_id)
                removed = self._store.flush_tags(tags)  # type: ignore[attr-defined]
                self._log("content_invalidated", ",".join(sorted(tags)), removed=removed)
                return True
            key = self.content_key(tab_id, subject_id)
            self._written_keys.discard(key)
            self._store.forget(key)
            self._log("content_invalidated", key)
            return True
        except Exception as exc:
            logger.error(f"Tabs Cache Error: invalidation_failed for '{tab_id}': {exc}")
            return False

    def invalidate_all(self) -> bool:
        self._bump_generation()
        try:
            if self.supports_tags():
                removed = self._store.flush_tags({self.settings.prefix})  # type: ignore[attr-defined]
                self._log("cache_cleared", self.settings.prefix, removed=removed)
                return True
            for key in list(self._written_keys):
                self._store.forget(key)
            self._written_keys.clear()
            self._log("cache_cleared", self.settings.prefix)
            return True
        except Exception as exc:
            logger.error(f"Tabs Cache Error: clear_all_failed: {exc}")
            return False

    # Preloading

    def preload_adjacent(
        self,
        tabs: TabCollection,
        current_id: str,
        subject_id: Optional[str],
        produce: Producer,
        allowed: Optional[Callable[[TabDefinition], bool]] = None,
    ) -> List[str]:
        """Schedule production of the tabs right before and after `current_id`.

        `allowed` is the caller's authorization check; tabs it rejects are
        never produced. Returns the ids that were scheduled. Never blocks on
        production.
        """
        if not self.enabled:
            return []
        scheduled: List[str] = []
        for tab_id in tabs.neighbours(current_id):
            if tab_id is None:
                continue
            tab = tabs.get(tab_id)
            if tab is None or self._preload_skipped(tab, allowed):
                continue
            if self.get_entry(tab_id, subject_id) is not None:
                continue
            generation = self.generation(tab_id)
            try:
                self._get_executor().submit(self._preload_one, tab, subject_id, produce, generation)
            except Exception as exc:
                logger.warning(f"Tabs Cache: preload scheduling failed for '{tab_id}': {exc}")
                continue
            scheduled.append(tab_id)
            self._log("preload_scheduled", self.content_key(tab_id, subject_id))
        return scheduled

    def _preload_skipped(
        self, tab: TabDefinition, allowed: Optional[Callable[[TabDefinition], bool]] = None
    ) -> bool:
        try:
            if tab.is_disabled():
                return True
            return allowed is not None and not allowed(tab)
        except Exception as exc:
            logger.warning(f"Tabs Cache: preload check failed for '{tab.id}', skipping: {exc}")
            return True

    def _preload_one(
        self,
        tab: TabDefinition,
        subject_id: Optional[str],
        produce: Producer,
        generation: Optional[Tuple[int, int]] = None,
    ) -> None:
        started = time.perf_counter()
        try:
            content = produce(tab)
        except Exception as exc:
            logger.warning(f"Tabs Cache: preload failed for '{tab.id}': {exc}")
            return
        key = self.content_key(tab.id, subject_id)
        if generation is not None and generation != self.generation(tab.id):
            self._log("preload_discarded", key, reason="invalidated")
            return
        if self._peek_fresh(key):
            self._log("preload_discarded", key, reason="fresh_entry")
            return
        self.put(tab.id, subject_id, content)
        self._bump("preloads")
        self._log(
            "preload_completed",
            key,
            load_time_ms=round((time.perf_counter() - started) * 1000, 2),
            content_length=len(content),
        )

    def _peek_fresh(self, key: str) -> bool:
        try:
            cached = self._store.get(key)
        except Exception:
            return False
        return isinstance(cached, CacheEntry) and self._is_fresh(cached)

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._preload_workers, thread_name_prefix="tab-preload"
            )
        return self._executor

    def shutdown(self, wait: bool = False) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    # Diagnostics

    def stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            counters = dict(self._stats)
        return {
            "enabled": self.enabled,
            "prefix": self.settings.prefix,
            "supports_tags": self.supports_tags(),
            "content_ttl": self.settings.ttl,
            "per_user": self.settings.per_user,
            **counters,
        }

    def _bump(self, counter: str) -> None:
        with self._stats_lock:
            self._stats[counter] += 1

    def _log(self, operation: str, key: str, **context: Any) -> None:
        if self._debug:
            logger.debug(f"Tabs Cache: {operation} key={key} {context}")
