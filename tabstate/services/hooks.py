"""
Lifecycle hook pipeline around tab content production.

Stages: before-load (may cancel), produce, after-load (may replace content),
on-error (may supply fallback content) and on-switch (may veto a switch).
Every outcome is returned as a tagged result; nothing raised by user code
crosses this boundary.
"""

from __future__ import annotations

import html
import json
import time
from typing import Any, Callable, Optional

from loguru import logger

from tabstate.context import RequestContext
from tabstate.results import Err, ErrorKind, LoadOk, LoadResult, not_found
from tabstate.services.cache import ContentCache
from tabstate.services.events import EventDispatcher
from tabstate.services.performance import LoadTracker
from tabstate.services.security import SecurityGate
from tabstate.tabs.definition import Cancel, RemoteComponent, TabDefinition, evaluate
from tabstate.tabs.registry import TabCollection

logger = logger.bind(module="hook_pipeline")

RemoteRenderer = Callable[[RemoteComponent, TabDefinition], str]

NO_CONTENT = '<p class="text-gray-500">No content available for this tab.</p>'
DEFAULT_CANCEL_MESSAGE = "Tab loading cancelled by before-load hook"
DEFAULT_SWITCH_CANCEL_MESSAGE = "Tab switch cancelled"


class _Cancelled(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def render_remote_placeholder(remote: RemoteComponent, tab: TabDefinition) -> str:
    """Default placeholder the host swaps for the real remote component."""
    params = json.dumps(remote.resolved_params(), sort_keys=True, default=str)
    return (
        f'<div data-remote-component="{html.escape(remote.resolved_name())}" '
        f'data-tab-id="{html.escape(tab.id)}" data-params="{html.escape(params)}"></div>'
    )


def coerce_content(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    to_html = getattr(value, "__html__", None)
    if callable(to_html):
        return str(to_html())
    return str(value)


def cancel_message(result: Any, default: str) -> Optional[str]:
    """Return the veto message when a hook result cancels, else None."""
    if isinstance(result, Cancel):
        return result.message or default
    if isinstance(result, dict) and result.get("cancel"):
        return str(result.get("message") or default)
    return None


def _replacement(result: Any, key: str) -> Optional[str]:
    if isinstance(result, str):
        return result
    if isinstance(result, dict) and key in result:
        return coerce_content(result[key])
    return None


class HookPipeline:
    def __init__(
        self,
        gate: SecurityGate,
        cache: ContentCache,
        events: Optional[EventDispatcher] = None,
        tracker: Optional[LoadTracker] = None,
        remote_renderer: RemoteRenderer = render_remote_placeholder,
    ) -> None:
        self.gate = gate
        self.cache = cache
        self.events = events or EventDispatcher()
        self.tracker = tracker or LoadTracker()
        self._remote_renderer = remote_renderer

    def produce(self, tab: TabDefinition) -> str:
        """Materialize content without running before/after hooks. May raise."""
        if tab.has_content():
            return coerce_content(evaluate(tab.content))
        if tab.remote is not None:
            return self._remote_renderer(tab.remote, tab)
        return NO_CONTENT

    def load(
        self,
        tabs: TabCollection,
        tab_id: str,
        context: Optional[RequestContext] = None,
        use_cache: bool = True,
    ) -> LoadResult:
        context = context or RequestContext()
        tab = tabs.get(tab_id)
        if tab is None:
            return not_found(tab_id)

        decision = self.gate.authorize(tab, context)
        if not decision.allowed:
            return decision.to_err()

        if use_cache:
            cached = self.cache.get(tab_id, context.subject_id)
            if cached is not None:
                return LoadOk(tab_id=tab_id, content=cached, used_cache=True)

        started = time.perf_counter()
        try:
            content = self._run_stages(tab)
        except _Cancelled as cancelled:
            logger.info(f"Load of tab '{tab_id}' cancelled: {cancelled.message}")
            return Err(ErrorKind.CANCELLED, cancelled.message)
        except Exception as exc:
            return self._handle_error(tab, exc)

        self.tracker.track(tab_id, started, time.perf_counter(), len(content))
        self.events.dispatch_event("after_load", {"tab_id": tab_id, "content_length": len(content)})
        self.cache.put(tab_id, context.subject_id, content)
        return LoadOk(tab_id=tab_id, content=content)

    def refresh_load(
        self,
        tabs: TabCollection,
        tab_id: str,
        context: Optional[RequestContext] = None,
    ) -> LoadResult:
        """Load skipping the cache read so every hook re-runs."""
        return self.load(tabs, tab_id, context, use_cache=False)

    def _run_stages(self, tab: TabDefinition) -> str:
        if tab.before_load is not None:
            result = tab.before_load(tab)
            self.events.log_hook_execution("before_load", {"tab_id": tab.id})
            message = cancel_message(result, DEFAULT_CANCEL_MESSAGE)
            if message is not None:
                raise _Cancelled(message)

        self.events.dispatch_event("before_load", {"tab_id": tab.id, "tab_label": tab.get_label()})
        content = self.produce(tab)

        if tab.after_load is not None:
            result = tab.after_load(tab, content)
            self.events.log_hook_execution("after_load", {"tab_id": tab.id})
            replacement = _replacement(result, "modified_content")
            if replacement is not None:
                content = replacement
        return content

    def _handle_error(self, tab: TabDefinition, exc: Exception) -> LoadResult:
        logger.opt(exception=exc).error(f"Content production failed for tab '{tab.id}': {exc}")
        if tab.on_error is not None:
            try:
                result = tab.on_error(tab, exc)
            except Exception as hook_exc:
                logger.error(f"onError hook for tab '{tab.id}' raised: {hook_exc}")
                result = None
            self.events.log_hook_execution("on_error", {"tab_id": tab.id, "error": str(exc)})
            fallback = _replacement(result, "fallback_content")
            if fallback is not None:
                return LoadOk(tab_id=tab.id, content=fallback, from_fallback=True)
        return Err(ErrorKind.PRODUCTION_FAILED, str(exc) or exc.__class__.__name__)

    def switch(self, tabs: TabCollection, from_id: Optional[str], to_id: str) -> Optional[Err]:
        """Run the target tab's on-switch hook. Returns an Err when the switch is vetoed."""
        tab = tabs.get(to_id)
        if tab is None:
            return not_found(to_id)
        if tab.on_switch is None:
            return None
        try:
            result = tab.on_switch(tab, from_id, to_id)
        except Exception as exc:
            logger.error(f"onSwitch hook for tab '{to_id}' raised: {exc}")
            return Err(ErrorKind.CANCELLED, f"Tab switch failed: {exc}")
        self.events.log_hook_execution("on_switch", {"from": from_id, "to": to_id})
        message = cancel_message(result, DEFAULT_SWITCH_CANCEL_MESSAGE)
        if message is not None:
            return Err(ErrorKind.CANCELLED, message)
        return None
