"""
Load-time tracking for tab content production.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger

from tabstate.config import PerformanceSettings

logger = logger.bind(module="tab_performance")

FAST_LOAD_MS = 200.0
MAX_TRACKED_TABS = 100


@dataclass(frozen=True)
class LoadMetrics:
    tab_id: str
    load_time_ms: float
    content_length: int
    recorded_at: float


class LoadTracker:
    def __init__(self, settings: Optional[PerformanceSettings] = None) -> None:
        self.settings = settings or PerformanceSettings()
        self._loads: Dict[str, LoadMetrics] = {}
        self._lock = threading.Lock()

    def track(self, tab_id: str, started: float, finished: float, content_length: int) -> LoadMetrics:
        """Record one load; `started`/`finished` come from time.perf_counter()."""
        load_time_ms = round((finished - started) * 1000, 2)
        metrics = LoadMetrics(tab_id, load_time_ms, content_length, time.time())
        with self._lock:
            self._loads.pop(tab_id, None)
            self._loads[tab_id] = metrics
            while len(self._loads) > MAX_TRACKED_TABS:
                self._loads.pop(next(iter(self._loads)))

        if load_time_ms > self.settings.slow_load_ms:
            logger.warning(f"Tab load slow: '{tab_id}' took {load_time_ms}ms")
        elif load_time_ms > self.settings.moderate_load_ms:
            logger.info(f"Tab load moderate: '{tab_id}' took {load_time_ms}ms")
        return metrics

    def last(self, tab_id: str) -> Optional[LoadMetrics]:
        return self._loads.get(tab_id)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            times = [m.load_time_ms for m in self._loads.values()]
        stats: Dict[str, Any] = {
            "config": {
                "preload_adjacent": self.settings.preload_adjacent,
                "slow_load_ms": self.settings.slow_load_ms,
            },
            "tracked_tabs": len(times),
        }
        if times:
            stats["performance"] = {
                "average_load_time": round(sum(times) / len(times), 2),
                "min_load_time": round(min(times), 2),
                "max_load_time": round(max(times), 2),
                "slow_loads": sum(1 for t in times if t > self.settings.slow_load_ms),
                "fast_loads": sum(1 for t in times if t < FAST_LOAD_MS),
            }
        return stats
