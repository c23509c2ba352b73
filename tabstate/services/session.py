from __future__ import annotations

import threading
from typing import Dict, Optional, Protocol


class SessionStore(Protocol):
    """Session-scoped key-value storage for the remembered active tab."""

    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...


class MemorySessionStore:
    def __init__(self) -> None:
        self._values: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value
