"""
Advisory security gate for tab operations: identifier validation,
authorization, rate limiting and CSRF tokens.

Every check returns a value for the caller to act on; the gate never touches
component state.
"""

from __future__ import annotations

import hashlib
import hmac
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from loguru import logger

from tabstate.config import RateLimitKey, SecuritySettings
from tabstate.context import RequestContext
from tabstate.results import Err, ErrorKind, invalid_identifier
from tabstate.services.stores import Clock
from tabstate.tabs.definition import TabDefinition, is_valid_tab_id

logger = logger.bind(module="security_gate")

GlobalCheck = Callable[[TabDefinition, RequestContext], bool]
PermissionChecker = Callable[[RequestContext, str], bool]


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    kind: Optional[ErrorKind] = None
    reason: Optional[str] = None

    def to_err(self) -> Err:
        return Err(self.kind or ErrorKind.ACCESS_DENIED, self.reason or "Access denied to this tab")


ALLOWED = AccessDecision(allowed=True)


@dataclass(frozen=True)
class RateLimitDecision:
    limited: bool
    reset_at: Optional[float] = None


NOT_LIMITED = RateLimitDecision(limited=False)


@dataclass
class _Counter:
    attempts: int
    reset_at: float


def _check_auth(tab: TabDefinition, context: RequestContext) -> bool:
    return context.authenticated


def _check_guest(tab: TabDefinition, context: RequestContext) -> bool:
    return not context.authenticated


def _granted_permission(context: RequestContext, permission: str) -> bool:
    return permission in context.permissions


class SecurityGate:
    def __init__(
        self,
        settings: Optional[SecuritySettings] = None,
        clock: Clock = time.time,
        permission_checker: PermissionChecker = _granted_permission,
        sweep_every: int = 256,
    ) -> None:
        self.settings = settings or SecuritySettings()
        self._clock = clock
        self._permission_checker = permission_checker
        self._checks: Dict[str, GlobalCheck] = {"auth": _check_auth, "guest": _check_guest}
        self._counters: Dict[str, _Counter] = {}
        self._counter_locks: Dict[str, threading.Lock] = {}
        # Expired counters are swept every `sweep_every` rate-limit checks.
        self._sweep_every = max(1, sweep_every)
        self._checks_since_sweep = 0
        self._sweep_lock = threading.Lock()

    def register_check(self, name: str, check: GlobalCheck) -> None:
        """Make `name` usable in the configured middleware list."""
        self._checks[name] = check

    # Identifiers

    def validate_identifier(self, raw: object) -> Union[str, Err]:
        if not is_valid_tab_id(raw):
            self._log_event("invalid_identifier", str(raw)[:60])
            return invalid_identifier()
        return raw  # type: ignore[return-value]

    # Authorization

    def authorize(self, tab: TabDefinition, context: Optional[RequestContext] = None) -> AccessDecision:
        context = context or RequestContext()
        try:
            disabled = tab.is_disabled()
        except Exception as exc:
            logger.warning(f"Disabled predicate for tab '{tab.id}' raised, treating as disabled: {exc}")
            disabled = True
        if disabled:
            return AccessDecision(False, ErrorKind.DISABLED, f"Tab '{tab.id}' is disabled")

        decision = ALLOWED
        for name in self.settings.middleware:
            if not self._run_check(name, tab, context):
                decision = AccessDecision(False, ErrorKind.ACCESS_DENIED, f"Failed middleware: {name}")
                break

        if decision.allowed and tab.permissions and not self._has_permissions(tab, context):
            decision = AccessDecision(False, ErrorKind.ACCESS_DENIED, "Insufficient permissions")

        if not decision.allowed:
            self._log_event("tab_access_denied", tab.id, subject_id=context.subject_id, reason=decision.reason)
        return decision

    def _run_check(self, name: str, tab: TabDefinition, context: RequestContext) -> bool:
        check = self._checks.get(name)
        if check is None:
            logger.warning(f"Unknown middleware '{name}' configured for tabs; denying access")
            return False
        try:
            return bool(check(tab, context))
        except Exception as exc:
            logger.warning(f"Middleware '{name}' raised for tab '{tab.id}': {exc}")
            return False

    def _has_permissions(self, tab: TabDefinition, context: RequestContext) -> bool:
        if not context.authenticated:
            return False
        try:
            return all(self._permission_checker(context, permission) for permission in tab.permissions)
        except Exception as exc:
            logger.warning(f"Permission check for tab '{tab.id}' raised: {exc}")
            return False

    # Rate limiting

    def caller_key(self, context: Optional[RequestContext] = None) -> str:
        context = context or RequestContext()
        key_type = self.settings.rate_limit_key
        if key_type is RateLimitKey.USER and context.subject_id:
            return f"user:{context.subject_id}"
        if key_type is RateLimitKey.SESSION and context.session_id:
            return f"session:{context.session_id}"
        return f"ip:{context.ip or 'unknown'}"

    def _counter_key(self, tab_id: str, caller_key: str) -> str:
        return f"tabs:{tab_id}:{caller_key}"

    def check_rate_limit(self, tab_id: str, caller_key: str) -> RateLimitDecision:
        if not self.settings.rate_limit_enabled:
            return NOT_LIMITED
        key = self._counter_key(tab_id, caller_key)
        now = self._clock()
        self._maybe_sweep(now)
        with self._counter_locks.setdefault(key, threading.Lock()):
            counter = self._counters.get(key)
            if counter is None or now >= counter.reset_at:
                counter = _Counter(attempts=0, reset_at=now + self.settings.rate_limit_decay)
                self._counters[key] = counter
            if counter.attempts >= self.settings.rate_limit_attempts:
                self._log_event(
                    "rate_limit_exceeded",
                    tab_id,
                    identifier=caller_key,
                    max_attempts=self.settings.rate_limit_attempts,
                )
                return RateLimitDecision(limited=True, reset_at=counter.reset_at)
            counter.attempts += 1
        return NOT_LIMITED

    def _maybe_sweep(self, now: float) -> None:
        with self._sweep_lock:
            self._checks_since_sweep += 1
            if self._checks_since_sweep < self._sweep_every:
                return
            self._checks_since_sweep = 0
        self.sweep_expired(now)

    def sweep_expired(self, now: Optional[float] = None) -> int:
        """Forget counters whose window has closed. Returns how many were dropped."""
        now = self._clock() if now is None else now
        dropped = 0
        for key, counter in list(self._counters.items()):
            if now < counter.reset_at:
                continue
            with self._counter_locks.setdefault(key, threading.Lock()):
                if self._counters.get(key) is not counter:
                    continue
                del self._counters[key]
            self._counter_locks.pop(key, None)
            dropped += 1
        return dropped

    def remaining_attempts(self, tab_id: str, caller_key: str) -> int:
        if not self.settings.rate_limit_enabled:
            return -1
        key = self._counter_key(tab_id, caller_key)
        counter = self._counters.get(key)
        if counter is None or self._clock() >= counter.reset_at:
            return self.settings.rate_limit_attempts
        return max(0, self.settings.rate_limit_attempts - counter.attempts)

    def reset_in(self, tab_id: str, caller_key: str) -> Optional[float]:
        if not self.settings.rate_limit_enabled:
            return None
        counter = self._counters.get(self._counter_key(tab_id, caller_key))
        if counter is None:
            return 0.0
        return max(0.0, counter.reset_at - self._clock())

    # CSRF

    def _digest(self, message: str) -> str:
        secret = self.settings.csrf_secret.encode("utf-8")
        return hmac.new(secret, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def csrf_token(self, tab_id: str, session_id: str) -> str:
        if not self.settings.csrf:
            return ""
        return f"{self._digest(f'session:{session_id}')}:{self._digest(f'tab:{session_id}:{tab_id}')}"

    def verify_csrf_token(self, token: Optional[str], tab_id: str, session_id: str) -> bool:
        if not self.settings.csrf:
            return True
        if not token or not isinstance(token, str):
            self._log_event("csrf_token_missing", tab_id)
            return False
        parts = token.split(":")
        if len(parts) != 2:
            self._log_event("csrf_token_invalid_format", tab_id)
            return False
        session_part, tab_part = (part.encode("utf-8") for part in parts)
        expected_session = self._digest(f"session:{session_id}").encode("utf-8")
        expected_tab = self._digest(f"tab:{session_id}:{tab_id}").encode("utf-8")
        if not hmac.compare_digest(session_part, expected_session):
            self._log_event("csrf_token_mismatch", tab_id)
            return False
        if not hmac.compare_digest(tab_part, expected_tab):
            self._log_event("csrf_tab_hash_mismatch", tab_id)
            return False
        return True

    def _log_event(self, event: str, tab_id: str, **context: object) -> None:
        logger.warning(f"Tabs Security: {event} tab_id={tab_id} {context}")
