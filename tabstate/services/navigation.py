"""
Location snapshots and URL strategies for routable tab surfaces.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit

from loguru import logger

from tabstate.config import NavigationMode, NavigationSettings, UrlStrategy

logger = logger.bind(module="navigation")


@dataclass(frozen=True)
class Location:
    """Snapshot of the host's current location (path plus query parameters)."""

    path: str = "/"
    query: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def from_url(cls, url: str) -> "Location":
        parts = urlsplit(url)
        return cls(path=parts.path or "/", query=tuple(parse_qsl(parts.query, keep_blank_values=True)))

    @classmethod
    def from_parts(cls, path: str = "/", query: Optional[Mapping[str, Any]] = None) -> "Location":
        return cls(path=path or "/", query=tuple((str(k), str(v)) for k, v in (query or {}).items()))

    @property
    def segments(self) -> List[str]:
        return [segment for segment in self.path.strip("/").split("/") if segment]

    def query_dict(self) -> Dict[str, str]:
        # Last value wins for repeated keys.
        return dict(self.query)

    def param(self, name: str) -> Optional[str]:
        return self.query_dict().get(name)

    def url(self) -> str:
        return f"{self.path}?{urlencode(self.query)}" if self.query else self.path


class Router(Protocol):
    """Host capability to move the browser to a new URL."""

    def navigate(self, url: str, full: bool = False) -> None: ...


def tab_from_location(location: Optional[Location], settings: NavigationSettings) -> Optional[str]:
    """Raw (unvalidated) tab id encoded in `location`, if any."""
    if location is None:
        return None
    if settings.url_strategy is UrlStrategy.QUERY:
        value = location.param(settings.query_param)
        return value or None
    segments = location.segments
    # Route structure like 'settings/profile': the last segment names the tab.
    if len(segments) >= 2:
        return segments[-1]
    return None


def tab_url(location: Location, tab_id: str, settings: NavigationSettings) -> str:
    """URL for `tab_id` relative to the current location."""
    if settings.url_strategy is UrlStrategy.QUERY:
        query = location.query_dict()
        query[settings.query_param] = tab_id
        return f"{location.path}?{urlencode(query)}"
    segments = location.segments
    if len(segments) >= 2:
        base = "/".join(segments[:-1])
    else:
        base = "/".join(segments)
    path = f"/{base}/{tab_id}" if base else f"/{tab_id}"
    return f"{path}?{urlencode(location.query)}" if location.query else path


def url_update_for(location: Optional[Location], tab_id: str, settings: NavigationSettings) -> Optional[str]:
    """URL to navigate to after switching to `tab_id`, or None when no update is needed.

    No URL is produced when routing or history updates are off, or when the
    location already encodes `tab_id` (avoids redundant redirect loops).
    """
    if not settings.routable or not settings.browser_history or location is None:
        return None
    if tab_from_location(location, settings) == tab_id:
        return None
    return tab_url(location, tab_id, settings)


def requires_full_navigation(settings: NavigationSettings) -> bool:
    return settings.mode is NavigationMode.RELOAD


def remembered_tab_key(instance_id: str) -> str:
    return f"tabs_active_{instance_id}"
