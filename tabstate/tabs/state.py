from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Set


@dataclass
class ComponentState:
    """Per UI-instance state. Owned by exactly one component, never shared."""

    active_tab: Optional[str] = None
    loaded: Set[str] = field(default_factory=set)
    errors: Dict[str, str] = field(default_factory=dict)

    def mark_loaded(self, tab_id: str) -> None:
        self.loaded.add(tab_id)

    def is_loaded(self, tab_id: str) -> bool:
        return tab_id in self.loaded

    def set_error(self, tab_id: str, message: str) -> None:
        self.errors[tab_id] = message

    def get_error(self, tab_id: str) -> Optional[str]:
        return self.errors.get(tab_id)

    def has_error(self, tab_id: str) -> bool:
        return tab_id in self.errors

    def clear(self, tab_id: str) -> None:
        self.loaded.discard(tab_id)
        self.errors.pop(tab_id, None)
