"""
Keeps a component's active tab consistent with the host location.

Invoked on every re-entry point (reload, back/forward, deep link,
programmatic route change). The URL is the source of truth when it names a
valid, visible and authorized tab; anything else is logged and ignored.
"""

from __future__ import annotations

from typing import List, Optional

from loguru import logger

from tabstate.config import NavigationSettings
from tabstate.context import RequestContext
from tabstate.results import SyncResult
from tabstate.services.events import TAB_CHANGED, EventDispatcher
from tabstate.services.navigation import Location, tab_from_location, url_update_for
from tabstate.services.resolver import ActiveTabResolver, CandidateSource, Denial
from tabstate.services.session import SessionStore
from tabstate.tabs.registry import TabCollection
from tabstate.tabs.state import ComponentState

logger = logger.bind(module="navigation_sync")


class NavigationSynchronizer:
    def __init__(
        self,
        resolver: ActiveTabResolver,
        events: Optional[EventDispatcher] = None,
        settings: Optional[NavigationSettings] = None,
    ) -> None:
        self.resolver = resolver
        self.events = events or EventDispatcher()
        self.settings = settings or resolver.settings

    def reenter(
        self,
        location: Optional[Location],
        state: ComponentState,
        tabs: TabCollection,
        context: Optional[RequestContext] = None,
        instance_id: str = "default",
        session: Optional[SessionStore] = None,
    ) -> SyncResult:
        held = state.active_tab
        if not self.settings.routable:
            return SyncResult.unchanged(held)

        from_url = tab_from_location(location, self.settings)
        if not from_url or from_url == held:
            return SyncResult.unchanged(held)

        denials: List[Denial] = []
        if not self.resolver.accept(tabs, CandidateSource.URL, from_url, context or RequestContext(), denials):
            reason = denials[-1].reason if denials else "rejected"
            logger.warning(
                f"Location names tab '{from_url[:60]}' but it was rejected ({reason}); keeping '{held}'"
            )
            return SyncResult.unchanged(held)

        state.active_tab = from_url
        state.mark_loaded(from_url)
        self.resolver.remember(instance_id, from_url, session)
        self.events.dispatch(TAB_CHANGED, {"old": held, "new": from_url, "source": "navigation"})
        logger.debug(f"Synchronized active tab from location: {held} -> {from_url}")
        return SyncResult(changed=True, old=held, new=from_url)

    def url_update_for(self, location: Optional[Location], tab_id: str) -> Optional[str]:
        return url_update_for(location, tab_id, self.settings)
