"""
Shared fixtures: deterministic clock, inline executor and tab factories.
"""

from concurrent.futures import Executor, Future

import pytest

from tabstate.component import TabsComponent, build_services
from tabstate.config import (
    CacheSettings,
    NavigationSettings,
    SecuritySettings,
    TabsSettings,
    UrlStrategy,
)
from tabstate.context import RequestContext
from tabstate.services.session import MemorySessionStore
from tabstate.tabs.definition import TabDefinition


class FakeClock:
    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def __init__(self):
        self.submitted = []

    def submit(self, fn, *args, **kwargs):
        self.submitted.append(args)
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class DeferredExecutor(Executor):
    """Queues submitted work until `run_pending` is called."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_pending(self):
        pending, self.pending = self.pending, []
        for future, fn, args, kwargs in pending:
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as exc:
                future.set_exception(exc)


class RecordingRouter:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def navigate(self, url, full=False):
        if self.fail:
            raise RuntimeError("navigation unavailable")
        self.calls.append((url, full))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def executor():
    return InlineExecutor()


@pytest.fixture
def three_tabs():
    return [
        TabDefinition("a", content="<p>A</p>"),
        TabDefinition("b", content="<p>B</p>"),
        TabDefinition("c", content="<p>C</p>"),
    ]


def make_settings(
    routable=False,
    url_strategy=UrlStrategy.QUERY,
    remember_tab=False,
    default_tab="first",
    cache_enabled=False,
    rate_limit=False,
    attempts=60,
    middleware=(),
):
    return TabsSettings(
        navigation=NavigationSettings(
            routable=routable,
            url_strategy=url_strategy,
            remember_tab=remember_tab,
            default_tab=default_tab,
        ),
        cache=CacheSettings(enabled=cache_enabled, ttl=300),
        security=SecuritySettings(
            rate_limit_enabled=rate_limit,
            rate_limit_attempts=attempts,
            rate_limit_decay=60,
            csrf_secret="test-secret",
            middleware=tuple(middleware),
        ),
    )


@pytest.fixture
def make_component(clock, executor):
    """Factory building a component over fresh services."""

    def _make(tabs, settings=None, context=None, router=None, location=None, session=None, instance_id="t"):
        services = build_services(
            settings or make_settings(),
            session=session or MemorySessionStore(),
            executor=executor,
            clock=clock,
        )
        return TabsComponent(
            lambda: list(tabs),
            services,
            instance_id=instance_id,
            context=context or RequestContext(session_id="s1", ip="10.0.0.1"),
            router=router,
            location=location,
        )

    return _make
