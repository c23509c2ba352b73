"""
Tab definitions: identifiers, lazily evaluated attributes and lifecycle hooks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

TAB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,50}$")
MAX_TAB_ID_LENGTH = 50

# Literal value or a zero-argument producer, resolved through `evaluate`.
Lazy = Union[Any, Callable[[], Any]]


class InvalidTabDefinition(ValueError):
    """Raised when a tab is declared with an unusable configuration."""


@dataclass(frozen=True)
class Cancel:
    """Returned by a before-load or on-switch hook to veto the operation."""

    message: Optional[str] = None


@dataclass(frozen=True)
class RemoteComponent:
    """Reference to a component rendered by the host instead of inline content."""

    name: Lazy
    params: Lazy = field(default_factory=dict)

    def resolved_name(self) -> str:
        return str(evaluate(self.name))

    def resolved_params(self) -> Dict[str, Any]:
        params = evaluate(self.params)
        return dict(params) if isinstance(params, Mapping) else {}


def evaluate(value: Lazy) -> Any:
    """Return `value()` for callables and `value` unchanged otherwise."""
    if callable(value):
        return value()
    return value


def is_valid_tab_id(raw: object) -> bool:
    return isinstance(raw, str) and TAB_ID_PATTERN.match(raw) is not None


def humanize_tab_id(tab_id: str) -> str:
    text = tab_id.replace("-", " ").replace("_", " ")
    return text[:1].upper() + text[1:]


@dataclass(frozen=True)
class TabDefinition:
    id: str
    label: Lazy = None
    icon: Lazy = None
    badge: Lazy = None
    disabled: Lazy = False
    visible: Lazy = True
    permissions: Tuple[str, ...] = ()
    content: Lazy = None
    remote: Optional[RemoteComponent] = None
    before_load: Optional[Callable[["TabDefinition"], Any]] = None
    after_load: Optional[Callable[["TabDefinition", str], Any]] = None
    on_error: Optional[Callable[["TabDefinition", Exception], Any]] = None
    on_switch: Optional[Callable[["TabDefinition", Optional[str], str], Any]] = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise InvalidTabDefinition("Tab ID cannot be empty")
        if not is_valid_tab_id(self.id):
            raise InvalidTabDefinition(
                "Tab ID must contain only alphanumeric characters, hyphens, and underscores, "
                f"and be no longer than {MAX_TAB_ID_LENGTH} characters"
            )
        if self.content is not None and self.remote is not None:
            raise InvalidTabDefinition("Cannot set both content and a remote component")
        if self.label is None:
            object.__setattr__(self, "label", humanize_tab_id(self.id))
        object.__setattr__(self, "permissions", tuple(self.permissions))

    def get_label(self) -> str:
        return str(evaluate(self.label))

    def get_icon(self) -> Optional[str]:
        return evaluate(self.icon)

    def get_badge(self) -> Optional[str]:
        return evaluate(self.badge)

    def is_disabled(self) -> bool:
        return bool(evaluate(self.disabled))

    def is_visible(self) -> bool:
        return bool(evaluate(self.visible))

    def has_content(self) -> bool:
        return self.content is not None

    def has_remote(self) -> bool:
        return self.remote is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.get_label(),
            "icon": self.get_icon(),
            "badge": self.get_badge(),
            "disabled": self.is_disabled(),
            "has_content": self.has_content(),
            "has_remote": self.has_remote(),
            "remote": self.remote.resolved_name() if self.remote else None,
            "remote_params": self.remote.resolved_params() if self.remote else {},
        }
