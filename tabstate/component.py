"""
Per-instance tab component: the surface exposed to the hosting UI.

An inbound interaction flows through resolution/synchronization, the security
gate and the hook pipeline before state is committed and a change
notification is emitted. Services are shared across instances; state is not.
"""

from __future__ import annotations

import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from tabstate.config import TabsSettings, load_settings
from tabstate.context import RequestContext
from tabstate.results import (
    Err,
    ErrorKind,
    LoadOk,
    LoadResult,
    SwitchOk,
    SwitchResult,
    SyncResult,
    invalid_identifier,
    not_found,
)
from tabstate.services.cache import ContentCache
from tabstate.services.events import TAB_CHANGED, TAB_REFRESHED, EventDispatcher
from tabstate.services.hooks import HookPipeline
from tabstate.services.navigation import Location, Router, requires_full_navigation
from tabstate.services.performance import LoadTracker
from tabstate.services.resolver import ActiveTabResolver, Denial, Resolution
from tabstate.services.security import SecurityGate
from tabstate.services.session import MemorySessionStore, SessionStore
from tabstate.services.stores import Clock, KeyValueStore
from tabstate.services.synchronizer import NavigationSynchronizer
from tabstate.tabs.definition import is_valid_tab_id
from tabstate.tabs.registry import TabCollection, TabFactory, TabRegistry
from tabstate.tabs.state import ComponentState

logger = logger.bind(module="tabs_component")

# Failures worth showing next to the tab with a retry action.
_RECORDED_ERRORS = frozenset(
    {ErrorKind.DISABLED, ErrorKind.ACCESS_DENIED, ErrorKind.CANCELLED, ErrorKind.PRODUCTION_FAILED}
)


@dataclass
class TabServices:
    settings: TabsSettings
    gate: SecurityGate
    cache: ContentCache
    events: EventDispatcher
    pipeline: HookPipeline
    resolver: ActiveTabResolver
    synchronizer: NavigationSynchronizer
    tracker: LoadTracker = field(default_factory=LoadTracker)


def build_services(
    settings: Optional[TabsSettings] = None,
    session: Optional[SessionStore] = None,
    store: Optional[KeyValueStore] = None,
    executor: Optional[Executor] = None,
    clock: Clock = time.time,
) -> TabServices:
    """Construct the shared services once per process (or test).

    `session` is shared by every component built on these services. Leave it
    unset to give each component its own in-memory store for the remembered
    tab, or pass a session-scoped store per component instead.
    """
    settings = settings or load_settings()
    gate = SecurityGate(settings.security, clock=clock)
    cache = ContentCache(
        settings.cache,
        store=store,
        executor=executor,
        clock=clock,
        debug=settings.debug,
        preload_workers=settings.performance.preload_workers,
    )
    events = EventDispatcher(settings.hooks)
    tracker = LoadTracker(settings.performance)
    pipeline = HookPipeline(gate, cache, events=events, tracker=tracker)
    resolver = ActiveTabResolver(gate, settings.navigation, session)
    synchronizer = NavigationSynchronizer(resolver, events=events)
    return TabServices(
        settings=settings,
        gate=gate,
        cache=cache,
        events=events,
        pipeline=pipeline,
        resolver=resolver,
        synchronizer=synchronizer,
        tracker=tracker,
    )


class TabsComponent:
    def __init__(
        self,
        factory: TabFactory,
        services: TabServices,
        instance_id: str = "default",
        context: Optional[RequestContext] = None,
        router: Optional[Router] = None,
        location: Optional[Location] = None,
        session: Optional[SessionStore] = None,
    ) -> None:
        self.registry = TabRegistry(factory)
        self.services = services
        if session is None:
            session = services.resolver.session
        self.session: SessionStore = session if session is not None else MemorySessionStore()
        self.instance_id = instance_id
        self.context = context or RequestContext()
        self.router = router
        self.location = location
        self.state = ComponentState()
        self.last_denials: List[Denial] = []

    @property
    def settings(self) -> TabsSettings:
        return self.services.settings

    @property
    def active_tab(self) -> Optional[str]:
        return self.state.active_tab

    def tabs(self) -> TabCollection:
        return self.registry.collection()

    def is_loaded(self, tab_id: str) -> bool:
        return self.state.is_loaded(tab_id)

    def error(self, tab_id: str) -> Optional[str]:
        return self.state.get_error(tab_id)

    # Resolution

    def _resolve(self, tabs: TabCollection, candidate: Optional[str]) -> Resolution:
        resolution = self.services.resolver.resolve(
            tabs,
            explicit=candidate,
            location=self.location,
            instance_id=self.instance_id,
            context=self.context,
            session=self.session,
        )
        self.last_denials = list(resolution.denials)
        return resolution

    def resolve_active_tab(self, candidate: Optional[str] = None) -> Optional[str]:
        return self._resolve(self.tabs(), candidate).tab_id

    def mount(self, active_tab: Optional[str] = None, location: Optional[Location] = None) -> Optional[str]:
        if location is not None:
            self.location = location
        tabs = self.tabs()
        self.services.events.dispatch_event(
            "init", {"component_id": self.instance_id, "tabs_count": len(tabs)}
        )
        resolution = self._resolve(tabs, active_tab)
        self.state.active_tab = resolution.tab_id
        if resolution.tab_id is not None:
            # The active tab is rendered immediately, so it counts as loaded.
            self.state.mark_loaded(resolution.tab_id)
            self.services.resolver.remember(self.instance_id, resolution.tab_id, self.session)
        return resolution.tab_id

    # Switching

    def switch_to(self, raw_id: object) -> SwitchResult:
        services = self.services
        validated = services.gate.validate_identifier(raw_id)
        if isinstance(validated, Err):
            return validated
        tab_id = validated
        tabs = self.tabs()
        tab = tabs.get(tab_id)
        if tab is None:
            return not_found(tab_id)

        decision = services.gate.authorize(tab, self.context)
        if not decision.allowed:
            return decision.to_err()

        limit = services.gate.check_rate_limit(tab_id, services.gate.caller_key(self.context))
        if limit.limited:
            return Err(ErrorKind.RATE_LIMITED, "Too many tab switch attempts", reset_at=limit.reset_at)

        vetoed = services.pipeline.switch(tabs, self.state.active_tab, tab_id)
        if vetoed is not None:
            return vetoed

        old = self.state.active_tab
        self.state.active_tab = tab_id
        self.state.mark_loaded(tab_id)
        services.resolver.remember(self.instance_id, tab_id, self.session)
        services.events.dispatch(TAB_CHANGED, {"old": old, "new": tab_id, "source": "switch"})

        redirect_url = services.synchronizer.url_update_for(self.location, tab_id)
        if redirect_url is not None:
            self._navigate(redirect_url)

        if self.settings.performance.preload_adjacent:
            services.cache.preload_adjacent(
                tabs,
                tab_id,
                self.context.subject_id,
                services.pipeline.produce,
                allowed=lambda neighbour: services.gate.authorize(neighbour, self.context).allowed,
            )
        return SwitchOk(old=old, new=tab_id, redirect_url=redirect_url)

    def _navigate(self, url: str) -> None:
        if self.router is None:
            return
        try:
            self.router.navigate(url, full=requires_full_navigation(self.settings.navigation))
            self.location = Location.from_url(url)
        except Exception as exc:
            # Stay in single-page mode when the host cannot navigate.
            logger.warning(f"Navigation to '{url}' failed, staying on current location: {exc}")

    # Content

    def load_content(self, tab_id: object) -> LoadResult:
        return self._load(tab_id, refresh=False)

    def _load(self, tab_id: object, refresh: bool) -> LoadResult:
        if not is_valid_tab_id(tab_id):
            return invalid_identifier()
        pipeline = self.services.pipeline
        run = pipeline.refresh_load if refresh else pipeline.load
        result = run(self.tabs(), tab_id, self.context)  # type: ignore[arg-type]
        if isinstance(result, LoadOk):
            self.state.mark_loaded(result.tab_id)
            self.state.errors.pop(result.tab_id, None)
        elif result.kind in _RECORDED_ERRORS:
            self.state.set_error(tab_id, result.message)  # type: ignore[arg-type]
        return result

    def refresh(self, tab_id: str) -> Optional[LoadResult]:
        """Forget loaded/error state and cached content; reload when `tab_id` is active."""
        if not is_valid_tab_id(tab_id):
            return invalid_identifier()
        self.state.clear(tab_id)
        self.services.cache.invalidate(tab_id, self.context.subject_id)
        self.services.events.dispatch(TAB_REFRESHED, {"tab_id": tab_id})
        if self.state.active_tab == tab_id:
            return self._load(tab_id, refresh=True)
        return None

    def preload(self, tab_id: str) -> Optional[LoadResult]:
        if self.state.is_loaded(tab_id):
            return None
        return self.load_content(tab_id)

    # Navigation

    def on_navigation_reentry(self, location: Optional[Location]) -> SyncResult:
        self.location = location
        return self.services.synchronizer.reenter(
            location,
            self.state,
            self.tabs(),
            context=self.context,
            instance_id=self.instance_id,
            session=self.session,
        )

    def csrf_token(self, tab_id: str) -> str:
        return self.services.gate.csrf_token(tab_id, self.context.session_id or "")

    def verify_csrf_token(self, token: Optional[str], tab_id: str) -> bool:
        return self.services.gate.verify_csrf_token(token, tab_id, self.context.session_id or "")


def build_component(
    factory: TabFactory,
    settings: Optional[TabsSettings] = None,
    services: Optional[TabServices] = None,
    instance_id: str = "default",
    context: Optional[RequestContext] = None,
    router: Optional[Router] = None,
    location: Optional[Location] = None,
    session: Optional[SessionStore] = None,
) -> TabsComponent:
    """Convenience constructor building fresh services when none are shared."""
    return TabsComponent(
        factory,
        services or build_services(settings),
        instance_id=instance_id,
        context=context,
        router=router,
        location=location,
        session=session,
    )
