"""
Tagged results returned across the component boundary.

Expected failures (bad ids, denials, vetoes, producer errors) are values,
never exceptions, so the hosting UI can render them without crashing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ErrorKind(str, Enum):
    INVALID_IDENTIFIER = "invalid_identifier"
    NOT_FOUND = "not_found"
    DISABLED = "disabled"
    ACCESS_DENIED = "access_denied"
    RATE_LIMITED = "rate_limited"
    CANCELLED = "cancelled"
    PRODUCTION_FAILED = "production_failed"


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    reset_at: Optional[float] = None

    ok = False


@dataclass(frozen=True)
class LoadOk:
    tab_id: str
    content: str
    used_cache: bool = False
    from_fallback: bool = False

    ok = True


@dataclass(frozen=True)
class SwitchOk:
    old: Optional[str]
    new: str
    redirect_url: Optional[str] = None

    ok = True


@dataclass(frozen=True)
class SyncResult:
    changed: bool
    old: Optional[str] = None
    new: Optional[str] = None

    @classmethod
    def unchanged(cls, current: Optional[str] = None) -> "SyncResult":
        return cls(changed=False, old=current, new=current)


LoadResult = Union[LoadOk, Err]
SwitchResult = Union[SwitchOk, Err]


def invalid_identifier() -> Err:
    return Err(ErrorKind.INVALID_IDENTIFIER, "Invalid tab identifier")


def not_found(tab_id: str) -> Err:
    return Err(ErrorKind.NOT_FOUND, f"Tab '{tab_id}' not found")
