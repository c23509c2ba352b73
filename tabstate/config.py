"""
Application-wide configuration: typed settings resolved from env vars and Streamlit secrets.
"""

from __future__ import annotations

import json
import os
import secrets as token_source
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple, Type, TypeVar

from loguru import logger

from tabstate.bootstrap_env import secrets_mapping

logger = logger.bind(module="config")

ENV_PREFIX = "TABSTATE_"

E = TypeVar("E", bound=Enum)


class NavigationMode(str, Enum):
    SPA = "spa"
    NAVIGATE = "navigate"
    RELOAD = "reload"


class UrlStrategy(str, Enum):
    PATH = "path"
    QUERY = "query"


class RateLimitKey(str, Enum):
    USER = "user"
    SESSION = "session"
    IP = "ip"


@dataclass(frozen=True)
class NavigationSettings:
    routable: bool = False
    mode: NavigationMode = NavigationMode.SPA
    url_strategy: UrlStrategy = UrlStrategy.PATH
    query_param: str = "tab"
    remember_tab: bool = False
    # "first", "last" or a concrete tab id
    default_tab: str = "first"
    browser_history: bool = True


@dataclass(frozen=True)
class CacheSettings:
    enabled: bool = False
    ttl: int = 300
    prefix: str = "tabs"
    per_user: bool = False
    tags: bool = True


@dataclass(frozen=True)
class PerformanceSettings:
    preload_adjacent: bool = True
    preload_workers: int = 2
    slow_load_ms: float = 1000.0
    moderate_load_ms: float = 500.0


@dataclass(frozen=True)
class SecuritySettings:
    rate_limit_enabled: bool = False
    rate_limit_attempts: int = 60
    rate_limit_decay: int = 60
    rate_limit_key: RateLimitKey = RateLimitKey.IP
    csrf: bool = True
    csrf_secret: str = ""
    middleware: Tuple[str, ...] = ()


@dataclass(frozen=True)
class HookSettings:
    dispatch_events: bool = False
    debug: bool = False


@dataclass(frozen=True)
class TabsSettings:
    navigation: NavigationSettings = field(default_factory=NavigationSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    performance: PerformanceSettings = field(default_factory=PerformanceSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    hooks: HookSettings = field(default_factory=HookSettings)
    debug: bool = False
    log_level: str = "INFO"


class _Source:
    """Env first, then st.secrets (if available)."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ
        self._secrets = secrets_mapping() if environ is None else None

    def raw(self, name: str) -> Any:
        key = f"{ENV_PREFIX}{name}"
        env = os.environ if self._environ is None else self._environ
        val = env.get(key)
        if val not in (None, ""):
            return val
        if self._secrets:
            return self._secrets.get(key)
        return None


def _get_str(source: _Source, name: str, default: str) -> str:
    raw = source.raw(name)
    return default if raw is None else str(raw).strip()


def _get_bool(source: _Source, name: str, default: bool) -> bool:
    raw = source.raw(name)
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _get_number(source: _Source, name: str, default: float, cast: Type = int) -> Any:
    raw = source.raw(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric value for {ENV_PREFIX}{name}: {raw!r}")
        return default


def _get_choice(source: _Source, name: str, enum_cls: Type[E], default: E) -> E:
    raw = source.raw(name)
    if raw is None:
        return default
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        logger.warning(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}; using '{default.value}'")
        return default


def _parse_list(raw: Any) -> List[str]:
    """Accepts TOML array, JSON array string, or comma-separated string."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(x).strip() for x in raw if str(x).strip()]
    s = str(raw).strip()
    if not s:
        return []
    if s.startswith("[") and s.endswith("]"):
        try:
            arr = json.loads(s)
            return [str(x).strip() for x in arr if str(x).strip()]
        except ValueError:
            pass
    return [item.strip() for item in s.split(",") if item.strip()]


def load_settings(environ: Optional[Mapping[str, str]] = None) -> TabsSettings:
    """Build settings from `environ` (defaults to os.environ plus st.secrets)."""
    source = _Source(environ)

    navigation = NavigationSettings(
        routable=_get_bool(source, "ROUTABLE", False),
        mode=_get_choice(source, "NAVIGATION_MODE", NavigationMode, NavigationMode.SPA),
        url_strategy=_get_choice(source, "URL_STRATEGY", UrlStrategy, UrlStrategy.PATH),
        query_param=_get_str(source, "QUERY_PARAM", "tab"),
        remember_tab=_get_bool(source, "REMEMBER_TAB", False),
        default_tab=_get_str(source, "DEFAULT_TAB", "first"),
        browser_history=_get_bool(source, "BROWSER_HISTORY", True),
    )
    cache = CacheSettings(
        enabled=_get_bool(source, "CACHE_ENABLED", False),
        ttl=_get_number(source, "CACHE_TTL", 300),
        prefix=_get_str(source, "CACHE_PREFIX", "tabs"),
        per_user=_get_bool(source, "CACHE_PER_USER", False),
        tags=_get_bool(source, "CACHE_TAGS", True),
    )
    performance = PerformanceSettings(
        preload_adjacent=_get_bool(source, "PRELOAD_ADJACENT", True),
        preload_workers=_get_number(source, "PRELOAD_WORKERS", 2),
        slow_load_ms=_get_number(source, "SLOW_LOAD_MS", 1000.0, float),
        moderate_load_ms=_get_number(source, "MODERATE_LOAD_MS", 500.0, float),
    )
    csrf_secret = _get_str(source, "CSRF_SECRET", "")
    security = SecuritySettings(
        rate_limit_enabled=_get_bool(source, "RATE_LIMIT_ENABLED", False),
        rate_limit_attempts=_get_number(source, "RATE_LIMIT_ATTEMPTS", 60),
        rate_limit_decay=_get_number(source, "RATE_LIMIT_DECAY", 60),
        rate_limit_key=_get_choice(source, "RATE_LIMIT_KEY", RateLimitKey, RateLimitKey.IP),
        csrf=_get_bool(source, "CSRF", True),
        # A per-process secret still binds tokens to session and tab.
        csrf_secret=csrf_secret or token_source.token_hex(32),
        middleware=tuple(_parse_list(source.raw("MIDDLEWARE"))),
    )
    debug = _get_bool(source, "DEBUG", False)
    hooks = HookSettings(
        dispatch_events=_get_bool(source, "DISPATCH_EVENTS", False),
        debug=debug,
    )
    return TabsSettings(
        navigation=navigation,
        cache=cache,
        performance=performance,
        security=security,
        hooks=hooks,
        debug=debug,
        log_level=_get_str(source, "LOG_LEVEL", "DEBUG" if debug else "INFO").upper(),
    )


def validate_settings(settings: TabsSettings) -> List[str]:
    """Return human-readable configuration problems (empty when valid)."""
    issues: List[str] = []
    nav = settings.navigation
    if nav.url_strategy is UrlStrategy.QUERY and not nav.query_param:
        issues.append("Query URL strategy requires a non-empty query parameter name")
    if nav.mode is not NavigationMode.SPA and not nav.routable:
        issues.append(f"Navigation mode '{nav.mode.value}' has no effect while routing is disabled")
    if settings.cache.enabled and settings.cache.ttl <= 0:
        issues.append(f"Cache TTL must be positive, got {settings.cache.ttl}")
    sec = settings.security
    if sec.rate_limit_enabled:
        if sec.rate_limit_attempts <= 0:
            issues.append(f"Rate limit attempts must be positive, got {sec.rate_limit_attempts}")
        if sec.rate_limit_decay <= 0:
            issues.append(f"Rate limit decay must be positive, got {sec.rate_limit_decay}")
    if settings.performance.preload_workers <= 0:
        issues.append("Preload worker count must be positive")
    return issues
