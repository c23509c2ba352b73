"""
Bridges the tab component to the Streamlit runtime.

Streamlit reruns the script on every interaction, so per-session state lives
in ``st.session_state`` and the shared services live in ``st.cache_resource``.
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping, MutableMapping, Optional

import streamlit as st
from loguru import logger

from tabstate.component import TabServices, TabsComponent, build_services
from tabstate.config import TabsSettings, load_settings
from tabstate.context import RequestContext
from tabstate.results import LoadResult
from tabstate.services.navigation import Location
from tabstate.tabs.registry import TabFactory, TabRegistry

logger = logger.bind(module="streamlit_host")

SESSION_ID_KEY = "tabstate_session_id"
COMPONENT_KEY_PREFIX = "tabstate_component_"


class SessionStateStore:
    """SessionStore backed by ``st.session_state`` (or any mutable mapping)."""

    def __init__(self, state: Optional[MutableMapping[str, Any]] = None) -> None:
        self._state = state

    @property
    def state(self) -> MutableMapping[str, Any]:
        return self._state if self._state is not None else st.session_state

    def get(self, key: str) -> Optional[str]:
        value = self.state.get(key)
        return None if value is None else str(value)

    def put(self, key: str, value: str) -> None:
        self.state[key] = value


def _params_dict(query_params: Any) -> dict:
    to_dict = getattr(query_params, "to_dict", None)
    return dict(to_dict()) if callable(to_dict) else dict(query_params)


def location_from_query_params(query_params: Optional[Mapping[str, Any]] = None, path: str = "/") -> Location:
    """Snapshot the current location from ``st.query_params``."""
    params = st.query_params if query_params is None else query_params
    return Location.from_parts(path, _params_dict(params))


class QueryParamsRouter:
    """Router that writes the query string of a target URL into ``st.query_params``.

    Streamlit cannot rewrite the page path, so only query-encoded tabs
    round-trip through the browser URL.
    """

    def __init__(self, query_params: Optional[MutableMapping[str, Any]] = None) -> None:
        self._query_params = query_params

    @property
    def query_params(self) -> MutableMapping[str, Any]:
        return self._query_params if self._query_params is not None else st.query_params

    def navigate(self, url: str, full: bool = False) -> None:
        target = Location.from_url(url).query_dict()
        params = self.query_params
        for key in [k for k in _params_dict(params) if k not in target]:
            del params[key]
        for key, value in target.items():
            params[key] = value
        logger.debug(f"Query params updated for {url} (full={full})")
        if full:
            st.rerun()


def session_context(
    state: Optional[MutableMapping[str, Any]] = None,
    subject_id: Optional[str] = None,
    permissions: Optional[frozenset] = None,
) -> RequestContext:
    """Request context for the current Streamlit session."""
    store = st.session_state if state is None else state
    if SESSION_ID_KEY not in store:
        store[SESSION_ID_KEY] = uuid.uuid4().hex
    return RequestContext(
        subject_id=subject_id,
        session_id=store[SESSION_ID_KEY],
        permissions=permissions or frozenset(),
    )


@st.cache_resource(show_spinner=False)
def shared_services() -> TabServices:
    """Process-wide services, built once per Streamlit server."""
    settings: TabsSettings = load_settings()
    logger.info("Building shared tab services")
    return build_services(settings, session=SessionStateStore())


def session_component(
    factory: TabFactory,
    instance_id: str = "default",
    services: Optional[TabServices] = None,
    context: Optional[RequestContext] = None,
) -> TabsComponent:
    """Return this session's component for `instance_id`, mounting it on first use.

    Later reruns re-enter navigation from the current query params so
    back/forward and deep links win over the held state.
    """
    key = f"{COMPONENT_KEY_PREFIX}{instance_id}"
    location = location_from_query_params()
    component = st.session_state.get(key)
    if component is None:
        component = TabsComponent(
            factory,
            services or shared_services(),
            instance_id=instance_id,
            context=context or session_context(),
            router=QueryParamsRouter(),
            location=location,
        )
        component.mount()
        st.session_state[key] = component
        return component
    component.registry = TabRegistry(factory)
    if context is not None:
        component.context = context
    component.on_navigation_reentry(location)
    return component


def active_content(component: TabsComponent, refresh: bool = False) -> Optional[LoadResult]:
    """Content for the active tab on this rerun, produced at most once.

    With `refresh` the tab is invalidated and the reload that `refresh`
    already performed is returned as is.
    """
    active = component.active_tab
    if active is None:
        return None
    if refresh:
        refreshed = component.refresh(active)
        if refreshed is not None:
            return refreshed
    return component.load_content(active)
