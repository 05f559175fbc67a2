"""Per-query timing counters surfaced through the performance metrics call."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from threading import RLock
from typing import Dict


@dataclass
class QueryStats:
    count: int = 0
    total_ms: float = 0.0
    avg_ms: float = 0.0


class QueryMetrics:
    def __init__(self) -> None:
        self._stats: Dict[str, QueryStats] = {}
        self._lock = RLock()

    def track(self, query_name: str, duration_ms: float) -> None:
        with self._lock:
            stats = self._stats.setdefault(query_name, QueryStats())
            stats.count += 1
            stats.total_ms += duration_ms
            stats.avg_ms = stats.total_ms / stats.count

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            return {name: asdict(stats) for name, stats in self._stats.items()}

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()


__all__ = ["QueryMetrics", "QueryStats"]
