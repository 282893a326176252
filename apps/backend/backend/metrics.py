from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque


@dataclass
class RouteStats:
    latencies_ms: Deque[float]
    total: int = 0
    errors: int = 0
    timeouts: int = 0
    # ステータスクラス（"2xx"/"4xx"/...）ごとの件数。422/409 の増加はクライアント側の不整合の兆候
    status_classes: dict[str, int] = field(default_factory=dict)


class MetricsRegistry:
    """In-memory request metrics keyed by ``"METHOD /path"``.

    - p95 latency over a rolling window
    - unhandled error / timeout counters
    - response status class counts
    """

    def __init__(self, window_size: int = 200) -> None:
        self._window_size = window_size
        self._lock = threading.Lock()
        self._per_route: dict[str, RouteStats] = defaultdict(
            lambda: RouteStats(latencies_ms=deque(maxlen=self._window_size))
        )

    def record(
        self,
        route: str,
        latency_ms: float,
        *,
        status_code: int | None = None,
        is_error: bool = False,
        is_timeout: bool = False,
    ) -> None:
        with self._lock:
            stats = self._per_route[route]
            stats.latencies_ms.append(latency_ms)
            stats.total += 1
            if is_error:
                stats.errors += 1
            if is_timeout:
                stats.timeouts += 1
            if status_code is not None:
                bucket = f"{status_code // 100}xx"
                stats.status_classes[bucket] = stats.status_classes.get(bucket, 0) + 1

    def snapshot(self) -> dict[str, dict[str, object]]:
        with self._lock:
            return {
                route: {
                    "p95_ms": round(calculate_p95(list(stats.latencies_ms)), 2),
                    "count": stats.total,
                    "errors": stats.errors,
                    "timeouts": stats.timeouts,
                    "status": dict(stats.status_classes),
                }
                for route, stats in self._per_route.items()
            }

    def reset(self) -> None:
        with self._lock:
            self._per_route.clear()


def calculate_p95(values: list[float]) -> float:
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    k = int(0.95 * (len(sorted_vals) - 1))
    return sorted_vals[k]


registry = MetricsRegistry()
