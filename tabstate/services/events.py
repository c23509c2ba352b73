"""
Event dispatching for tab lifecycle notifications.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping

from loguru import logger

from tabstate.config import HookSettings

logger = logger.bind(module="tab_events")

Listener = Callable[[str, Mapping[str, Any]], None]

TAB_CHANGED = "tab-changed"
TAB_REFRESHED = "tab:refreshed"

# Component-level notifications always go out; global "tabs.*" events are opt-in.
ALWAYS_DISPATCHED = frozenset({TAB_CHANGED, TAB_REFRESHED})


class EventDispatcher:
    def __init__(self, settings: HookSettings | None = None) -> None:
        self.settings = settings or HookSettings()
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def subscribe(self, name: str, listener: Listener) -> Callable[[], None]:
        """Register `listener` for `name` ("*" for all). Returns an unsubscribe callable."""
        self._listeners[name].append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners[name]:
                self._listeners[name].remove(listener)

        return _unsubscribe

    def dispatch_event(self, name: str, payload: Mapping[str, Any]) -> None:
        """Dispatch a global `tabs.<name>` event when global events are enabled."""
        if not self.settings.dispatch_events:
            return
        self.dispatch(f"tabs.{name}", payload)

    def dispatch(self, name: str, payload: Mapping[str, Any]) -> None:
        if self.settings.debug:
            logger.debug(f"Tabs event: {name} {dict(payload)}")
        for listener in list(self._listeners.get(name, ())) + list(self._listeners.get("*", ())):
            try:
                listener(name, payload)
            except Exception as exc:
                logger.error(f"Listener for '{name}' raised: {exc}")

    def log_hook_execution(self, hook_name: str, context: Mapping[str, Any]) -> None:
        if self.settings.debug:
            logger.debug(f"Tab hook executed: {hook_name} {dict(context)}")
