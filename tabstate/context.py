from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional


@dataclass(frozen=True)
class RequestContext:
    """Who is interacting with a tab surface, as seen by the host."""

    subject_id: Optional[str] = None
    session_id: Optional[str] = None
    ip: Optional[str] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def authenticated(self) -> bool:
        return self.subject_id is not None
