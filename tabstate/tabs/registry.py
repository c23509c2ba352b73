"""
Visibility-filtered, ordered tab collections.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from loguru import logger

from tabstate.tabs.definition import TabDefinition

logger = logger.bind(module="tab_registry")

TabFactory = Callable[[], Iterable[TabDefinition]]


class TabCollection:
    """Ordered mapping of tab id -> TabDefinition for a single resolution pass."""

    def __init__(self, tabs: Iterable[TabDefinition] = ()) -> None:
        self._tabs: Dict[str, TabDefinition] = {}
        for tab in tabs:
            # Later duplicates overwrite earlier ones but keep the first position.
            self._tabs[tab.id] = tab

    def __contains__(self, tab_id: object) -> bool:
        return tab_id in self._tabs

    def __iter__(self) -> Iterator[TabDefinition]:
        return iter(self._tabs.values())

    def __len__(self) -> int:
        return len(self._tabs)

    def has(self, tab_id: str) -> bool:
        return tab_id in self._tabs

    def get(self, tab_id: str) -> Optional[TabDefinition]:
        return self._tabs.get(tab_id)

    def ids(self) -> List[str]:
        return list(self._tabs.keys())

    def first(self) -> Optional[TabDefinition]:
        return next(iter(self._tabs.values()), None)

    def last(self) -> Optional[TabDefinition]:
        return next(reversed(self._tabs.values()), None) if self._tabs else None

    def neighbours(self, tab_id: str) -> Tuple[Optional[str], Optional[str]]:
        """Return the ids immediately before and after `tab_id`."""
        ids = self.ids()
        if tab_id not in self._tabs:
            return None, None
        index = ids.index(tab_id)
        previous_id = ids[index - 1] if index > 0 else None
        next_id = ids[index + 1] if index < len(ids) - 1 else None
        return previous_id, next_id


def _safe_is_visible(tab: TabDefinition) -> bool:
    try:
        return tab.is_visible()
    except Exception as exc:
        logger.warning(f"Visibility predicate for tab '{tab.id}' raised, hiding tab: {exc}")
        return False


class TabRegistry:
    """Builds a fresh TabCollection from a user-supplied factory on every pass.

    Collections are never cached between requests because visibility may
    depend on the caller's authorization context.
    """

    def __init__(self, factory: Optional[TabFactory] = None) -> None:
        self._factory = factory

    def definitions(self) -> List[TabDefinition]:
        if self._factory is None:
            return []
        return list(self._factory())

    def collection(self, definitions: Optional[Iterable[TabDefinition]] = None) -> TabCollection:
        source = self.definitions() if definitions is None else definitions
        return TabCollection(tab for tab in source if _safe_is_visible(tab))

    def get(self, tab_id: str) -> Optional[TabDefinition]:
        return self.collection().get(tab_id)
