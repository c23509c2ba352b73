"""
Active-tab resolution from competing candidate sources.

Sources are tried in strict priority order (explicit, url, remembered,
default) and the first candidate that is a valid identifier, present in the
current collection and authorized wins. Every rejection is kept in a denial
trail so the host can report why a tab was skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from loguru import logger

from tabstate.config import NavigationSettings
from tabstate.context import RequestContext
from tabstate.results import ErrorKind
from tabstate.services.navigation import Location, remembered_tab_key, tab_from_location
from tabstate.services.security import SecurityGate
from tabstate.services.session import SessionStore
from tabstate.tabs.definition import is_valid_tab_id
from tabstate.tabs.registry import TabCollection

logger = logger.bind(module="tab_resolver")


class CandidateSource(str, Enum):
    EXPLICIT = "explicit"
    URL = "url"
    REMEMBERED = "remembered"
    DEFAULT = "default"


@dataclass(frozen=True)
class Denial:
    source: CandidateSource
    tab_id: str
    kind: ErrorKind
    reason: str


@dataclass(frozen=True)
class Resolution:
    tab_id: Optional[str]
    source: Optional[CandidateSource] = None
    denials: Tuple[Denial, ...] = field(default_factory=tuple)

    @property
    def resolved(self) -> bool:
        return self.tab_id is not None


class ActiveTabResolver:
    def __init__(
        self,
        gate: SecurityGate,
        settings: Optional[NavigationSettings] = None,
        session: Optional[SessionStore] = None,
    ) -> None:
        self.gate = gate
        self.settings = settings or NavigationSettings()
        self.session = session

    def resolve(
        self,
        tabs: TabCollection,
        explicit: Optional[str] = None,
        location: Optional[Location] = None,
        instance_id: str = "default",
        context: Optional[RequestContext] = None,
        session: Optional[SessionStore] = None,
    ) -> Resolution:
        context = context or RequestContext()
        denials: List[Denial] = []
        for source, candidate in self._candidates(tabs, explicit, location, instance_id, session):
            if self.accept(tabs, source, candidate, context, denials):
                return Resolution(tab_id=candidate, source=source, denials=tuple(denials))
        if denials:
            logger.info(f"No active tab resolved; denials: {[(d.source.value, d.tab_id) for d in denials]}")
        return Resolution(tab_id=None, denials=tuple(denials))

    def accept(
        self,
        tabs: TabCollection,
        source: CandidateSource,
        candidate: str,
        context: RequestContext,
        denials: List[Denial],
    ) -> bool:
        if not is_valid_tab_id(candidate):
            denials.append(Denial(source, str(candidate), ErrorKind.INVALID_IDENTIFIER, "Invalid tab identifier"))
            return False
        tab = tabs.get(candidate)
        if tab is None:
            denials.append(Denial(source, candidate, ErrorKind.NOT_FOUND, f"Tab '{candidate}' not found"))
            return False
        decision = self.gate.authorize(tab, context)
        if not decision.allowed:
            kind = decision.kind or ErrorKind.ACCESS_DENIED
            denials.append(Denial(source, tab.id, kind, decision.reason or "Access denied to this tab"))
            return False
        return True

    def _candidates(
        self,
        tabs: TabCollection,
        explicit: Optional[str],
        location: Optional[Location],
        instance_id: str,
        session: Optional[SessionStore] = None,
    ) -> Iterator[Tuple[CandidateSource, str]]:
        if explicit:
            yield CandidateSource.EXPLICIT, explicit
        if self.settings.routable:
            from_url = tab_from_location(location, self.settings)
            if from_url:
                yield CandidateSource.URL, from_url
        remembered = self.remembered(instance_id, session)
        if remembered:
            yield CandidateSource.REMEMBERED, remembered
        for default_id in self._default_candidates(tabs):
            yield CandidateSource.DEFAULT, default_id

    def _default_candidates(self, tabs: TabCollection) -> Iterator[str]:
        configured = self.settings.default_tab or "first"
        if configured == "first":
            yield from tabs.ids()
        elif configured == "last":
            yield from reversed(tabs.ids())
        else:
            yield configured

    # Remembered tab

    def _session_for(self, session: Optional[SessionStore]) -> Optional[SessionStore]:
        return session if session is not None else self.session

    def remembered(self, instance_id: str, session: Optional[SessionStore] = None) -> Optional[str]:
        session = self._session_for(session)
        if not self.settings.remember_tab or session is None:
            return None
        try:
            return session.get(remembered_tab_key(instance_id))
        except Exception as exc:
            logger.warning(f"Could not read remembered tab for '{instance_id}': {exc}")
            return None

    def remember(self, instance_id: str, tab_id: str, session: Optional[SessionStore] = None) -> None:
        session = self._session_for(session)
        if not self.settings.remember_tab or session is None:
            return
        try:
            session.put(remembered_tab_key(instance_id), tab_id)
        except Exception as exc:
            logger.warning(f"Could not remember tab '{tab_id}' for '{instance_id}': {exc}")
