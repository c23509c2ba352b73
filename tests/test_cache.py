# test_cache.py
# Unit tests for the content cache, its stores and adjacent preloading

import pytest

from tabstate.config import CacheSettings
from tabstate.services.cache import CacheEntry, ContentCache, content_hash
from tabstate.services.stores import MemoryStore, TaggedMemoryStore, supports_tags
from tabstate.tabs.definition import TabDefinition
from tabstate.tabs.registry import TabCollection

from tests.conftest import DeferredExecutor


class BrokenStore:
    def get(self, key):
        raise ConnectionError("store offline")

    def put(self, key, value, ttl=None):
        raise ConnectionError("store offline")

    def forget(self, key):
        raise ConnectionError("store offline")


def _cache(clock, executor=None, store=None, **overrides):
    settings = CacheSettings(**{"enabled": True, "ttl": 300, **overrides})
    return ContentCache(settings, store=store, executor=executor, clock=clock)


class TestStores:
    def test_memory_store_expires_lazily(self, clock):
        store = MemoryStore(clock=clock)
        store.put("k", "v", ttl=10)
        assert store.get("k") == "v"
        clock.advance(10)
        assert store.get("k") is None
        assert len(store) == 0

    def test_flush_requires_every_tag(self, clock):
        store = TaggedMemoryStore(clock=clock)
        store.put_tagged("a1", 1, {"tabs", "tab:a", "user:1"})
        store.put_tagged("a2", 2, {"tabs", "tab:a", "user:2"})
        store.put_tagged("b1", 3, {"tabs", "tab:b", "user:1"})
        assert store.flush_tags({"tabs", "tab:a", "user:1"}) == 1
        assert store.keys() == ["a2", "b1"]

    def test_forget_drops_the_key_lock(self, clock):
        store = MemoryStore(clock=clock)
        store.put("k", "v")
        assert store.forget("k")
        assert store._locks == {}
        assert store.get("k") is None
        assert store._locks == {}

    def test_expired_slots_are_reaped_on_write(self, clock):
        store = MemoryStore(clock=clock, reap_every=3)
        store.put("a", 1, ttl=10)
        store.put("b", 2, ttl=10)
        clock.advance(10)
        store.put("c", 3, ttl=10)
        assert store.keys() == ["c"]
        assert list(store._locks) == ["c"]

    def test_flush_reaps_expired_slots_and_locks(self, clock):
        store = TaggedMemoryStore(clock=clock)
        store.put_tagged("a1", 1, {"tabs", "tab:a"}, ttl=100)
        store.put_tagged("b1", 2, {"tabs", "tab:b"}, ttl=10)
        clock.advance(10)
        assert store.flush_tags({"tab:a"}) == 1
        assert len(store) == 0
        assert store._locks == {}

    def test_capability_check(self, clock):
        assert supports_tags(TaggedMemoryStore(clock=clock))
        assert not supports_tags(MemoryStore(clock=clock))


class TestContentCache:
    """Keys, TTL and invalidation"""

    def test_disabled_cache_always_misses(self, clock):
        cache = ContentCache(CacheSettings(enabled=False), clock=clock)
        cache.put("a", None, "<p>A</p>")
        assert cache.get("a") is None

    def test_keys_and_tags(self, clock):
        shared = _cache(clock)
        per_user = _cache(clock, per_user=True)
        assert shared.content_key("a", "u1") == "tabs:content:a"
        assert per_user.content_key("a", "u1") == "tabs:content:a:user:u1"
        assert per_user.tags_for("a", "u1") == frozenset({"tabs", "tab:a", "user:u1"})
        assert per_user.tags_for("a") == frozenset({"tabs", "tab:a"})

    def test_entry_metadata(self, clock):
        cache = _cache(clock)
        cache.put("a", None, "<p>A</p>")
        entry = cache.get_entry("a")
        assert isinstance(entry, CacheEntry)
        assert entry.hash == content_hash("<p>A</p>")
        assert entry.cached_at == clock.now

    def test_ttl_expiry(self, clock):
        cache = _cache(clock)
        cache.put("a", None, "<p>A</p>")
        clock.advance(299)
        assert cache.get("a") == "<p>A</p>"
        clock.advance(1)
        assert cache.get("a") is None

    def test_tagged_invalidation_is_selective(self, clock):
        cache = _cache(clock, per_user=True)
        cache.put("a", "u1", "a-u1")
        cache.put("a", "u2", "a-u2")
        cache.put("b", "u1", "b-u1")
        assert cache.supports_tags()
        assert cache.invalidate("a", "u1")
        assert cache.get("a", "u1") is None
        assert cache.get("a", "u2") == "a-u2"
        assert cache.get("b", "u1") == "b-u1"

    def test_invalidate_without_subject_flushes_every_user(self, clock):
        cache = _cache(clock, per_user=True)
        cache.put("a", "u1", "a-u1")
        cache.put("a", "u2", "a-u2")
        cache.invalidate("a")
        assert cache.get("a", "u1") is None
        assert cache.get("a", "u2") is None

    def test_plain_store_degrades_to_exact_key(self, clock):
        store = MemoryStore(clock=clock)
        cache = _cache(clock, store=store)
        assert not cache.supports_tags()
        cache.put("a", None, "A")
        cache.put("b", None, "B")
        cache.invalidate("a")
        assert cache.get("a") is None
        assert cache.get("b") == "B"
        cache.invalidate_all()
        assert len(store) == 0

    def test_invalidate_all_with_tags(self, clock):
        cache = _cache(clock)
        cache.put("a", None, "A")
        cache.put("b", None, "B")
        assert cache.invalidate_all()
        assert cache.get("a") is None
        assert cache.get("b") is None

    def test_store_failures_degrade_to_miss(self, clock):
        cache = _cache(clock, store=BrokenStore())
        cache.put("a", None, "A")
        assert cache.get("a") is None
        assert cache.invalidate("a") is False

    def test_stats(self, clock):
        cache = _cache(clock)
        cache.put("a", None, "A")
        cache.get("a")
        cache.get("missing")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["writes"] == 1
        assert stats["supports_tags"] is True


class TestPreload:
    @pytest.fixture
    def tabs(self):
        return TabCollection(
            [
                TabDefinition("a", content="A"),
                TabDefinition("b", content="B"),
                TabDefinition("c", content="C"),
                TabDefinition("d", content="D", disabled=True),
            ]
        )

    def test_preloads_immediate_neighbours_only(self, clock, executor, tabs):
        cache = _cache(clock, executor=executor)
        produced = []

        def produce(tab):
            produced.append(tab.id)
            return f"<p>{tab.id}</p>"

        assert cache.preload_adjacent(tabs, "b", None, produce) == ["a", "c"]
        assert produced == ["a", "c"]
        assert cache.get("a") == "<p>a</p>"
        assert cache.get("c") == "<p>c</p>"

    def test_skips_disabled_and_fresh_tabs(self, clock, executor, tabs):
        cache = _cache(clock, executor=executor)
        cache.put("b", None, "cached")
        assert cache.preload_adjacent(tabs, "c", None, lambda tab: "x") == []

    def test_failed_production_is_swallowed(self, clock, executor, tabs):
        cache = _cache(clock, executor=executor)

        def produce(tab):
            raise RuntimeError("backend down")

        assert cache.preload_adjacent(tabs, "a", None, produce) == ["b"]
        assert cache.get("b") is None

    def test_disabled_cache_never_preloads(self, clock, executor, tabs):
        cache = ContentCache(CacheSettings(enabled=False), executor=executor, clock=clock)
        assert cache.preload_adjacent(tabs, "b", None, lambda tab: "x") == []
        assert executor.submitted == []

    def test_skips_tabs_the_caller_may_not_see(self, clock, executor, tabs):
        cache = _cache(clock, executor=executor)
        produced = []

        def produce(tab):
            produced.append(tab.id)
            return tab.id

        assert cache.preload_adjacent(tabs, "b", None, produce, allowed=lambda tab: tab.id != "c") == ["a"]
        assert produced == ["a"]
        assert cache.get("c") is None

    def test_raising_authorization_check_skips_tab(self, clock, executor, tabs):
        cache = _cache(clock, executor=executor)

        def allowed(tab):
            raise RuntimeError("policy offline")

        assert cache.preload_adjacent(tabs, "b", None, lambda tab: "x", allowed=allowed) == []

    def test_pending_preload_is_discarded_after_invalidation(self, clock, tabs):
        deferred = DeferredExecutor()
        cache = _cache(clock, executor=deferred)
        assert cache.preload_adjacent(tabs, "b", None, lambda tab: f"old {tab.id}") == ["a", "c"]
        cache.invalidate("c")
        deferred.run_pending()
        assert cache.get("a") == "old a"
        assert cache.get("c") is None
        assert cache.stats()["preloads"] == 1

    def test_pending_preload_is_discarded_after_invalidate_all(self, clock, tabs):
        deferred = DeferredExecutor()
        cache = _cache(clock, executor=deferred)
        cache.preload_adjacent(tabs, "b", None, lambda tab: "old")
        cache.invalidate_all()
        deferred.run_pending()
        assert cache.get("a") is None
        assert cache.get("c") is None

    def test_pending_preload_keeps_newer_entry(self, clock, tabs):
        deferred = DeferredExecutor()
        cache = _cache(clock, executor=deferred)
        cache.preload_adjacent(tabs, "b", None, lambda tab: "preloaded")
        cache.put("c", None, "loaded")
        deferred.run_pending()
        assert cache.get("c") == "loaded"
        assert cache.get("a") == "preloaded"
