"""
In-process performance monitor for timed operations.
"""

import json
import math
import uuid
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, TypeVar

from shared.clock import Clock, system_clock
from shared.logging import get_logger
from shared.metrics import MetricsCollector

T = TypeVar("T")

DEFAULT_MAX_METRICS_PER_NAME = 1000


@dataclass
class PerformanceMetric:
    """One recorded duration."""
    name: str
    duration_ms: float
    timestamp: float
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class PerformanceStats:
    """Distribution statistics for one operation name."""
    count: int
    total_duration: float
    avg_duration: float
    min_duration: float
    max_duration: float
    p50: float
    p90: float
    p95: float
    p99: float


@dataclass
class ActiveTimer:
    """A started, not yet ended, timer."""
    label: str
    started_at: float
    metadata: Optional[Dict[str, Any]] = field(default=None)


def percentile(sorted_durations: List[float], p: float) -> float:
    """Nearest-rank percentile: ``sorted[ceil(p/100 * n) - 1]``."""
    index = math.ceil((p / 100) * len(sorted_durations)) - 1
    return sorted_durations[max(0, index)]


class PerformanceMonitor:
    """Records named operation durations in bounded per-name histories."""

    def __init__(
        self,
        max_metrics_per_name: int = DEFAULT_MAX_METRICS_PER_NAME,
        *,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
        enabled: bool = True,
    ):
        self.max_metrics_per_name = max_metrics_per_name
        self.clock = clock or system_clock
        self.metrics = metrics
        self.logger = get_logger("content.performance")

        self._metrics: Dict[str, Deque[PerformanceMetric]] = {}
        self._active_timers: Dict[str, ActiveTimer] = {}
        self._enabled = enabled

    def enable(self):
        self._enabled = True

    def disable(self):
        self._enabled = False

    def is_enabled(self) -> bool:
        return self._enabled

    def start_timer(self, label: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Start a timer and return its id."""
        if not self._enabled:
            return label

        timer_id = f"{label}:{uuid.uuid4().hex}"
        self._active_timers[timer_id] = ActiveTimer(
            label=label,
            started_at=self.clock.monotonic(),
            metadata=metadata,
        )
        return timer_id

    def end_timer(self, timer_id: str) -> Optional[float]:
        """End a timer, record its duration and return it in milliseconds."""
        timer = self._active_timers.pop(timer_id, None)
        if not self._enabled:
            return None
        if timer is None:
            self.logger.warning("Timer not found", timer_id=timer_id)
            return None

        duration_ms = (self.clock.monotonic() - timer.started_at) * 1000
        self.record_metric(timer.label, duration_ms, timer.metadata)
        return duration_ms

    async def measure(
        self,
        label: str,
        fn: Callable[[], Awaitable[T]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> T:
        """Await ``fn`` while timing it; the timer ends on every exit path."""
        if not self._enabled:
            return await fn()

        timer_id = self.start_timer(label, metadata)
        try:
            return await fn()
        finally:
            self.end_timer(timer_id)

    def record_metric(self, name: str, duration_ms: float, metadata: Optional[Dict[str, Any]] = None):
        """Append a duration to the bounded history for ``name``."""
        if not self._enabled:
            return

        history = self._metrics.get(name)
        if history is None:
            history = deque(maxlen=self.max_metrics_per_name)
            self._metrics[name] = history

        history.append(PerformanceMetric(
            name=name,
            duration_ms=duration_ms,
            timestamp=self.clock.time(),
            metadata=metadata,
        ))

        if self.metrics is not None:
            self.metrics.observe_histogram("operation_duration_seconds", duration_ms / 1000, operation=name)

    def get_stats(self, name: str) -> Optional[PerformanceStats]:
        history = self._metrics.get(name)
        if not history:
            return None

        durations = sorted(m.duration_ms for m in history)
        count = len(durations)
        total = sum(durations)

        return PerformanceStats(
            count=count,
            total_duration=total,
            avg_duration=total / count,
            min_duration=durations[0],
            max_duration=durations[-1],
            p50=percentile(durations, 50),
            p90=percentile(durations, 90),
            p95=percentile(durations, 95),
            p99=percentile(durations, 99),
        )

    def get_all_stats(self) -> Dict[str, PerformanceStats]:
        all_stats = {}
        for name in self._metrics:
            stats = self.get_stats(name)
            if stats:
                all_stats[name] = stats
        return all_stats

    def get_recent_metrics(self, name: str, limit: int = 10) -> List[PerformanceMetric]:
        history = self._metrics.get(name)
        if not history:
            return []
        return list(history)[-limit:]

    def clear_metrics(self, name: Optional[str] = None):
        if name:
            self._metrics.pop(name, None)
        else:
            self._metrics.clear()

    def log_stats(self, name: Optional[str] = None):
        """Log statistics for one operation, or a summary of all of them."""
        if name:
            stats = self.get_stats(name)
            if stats:
                self.logger.info(
                    "Performance stats",
                    operation=name,
                    count=stats.count,
                    avg_ms=round(stats.avg_duration, 2),
                    min_ms=round(stats.min_duration, 2),
                    max_ms=round(stats.max_duration, 2),
                    p50_ms=round(stats.p50, 2),
                    p90_ms=round(stats.p90, 2),
                    p95_ms=round(stats.p95, 2),
                    p99_ms=round(stats.p99, 2),
                )
            return

        for metric_name, stats in self.get_all_stats().items():
            self.logger.info(
                "Performance stats",
                operation=metric_name,
                count=stats.count,
                avg_ms=round(stats.avg_duration, 2),
                p90_ms=round(stats.p90, 2),
                p99_ms=round(stats.p99, 2),
            )

    def export_metrics(self, name: Optional[str] = None) -> str:
        """Serialize recorded metrics as indented JSON."""
        if name:
            return json.dumps([asdict(m) for m in self._metrics.get(name, [])], indent=2)

        return json.dumps(
            {metric_name: [asdict(m) for m in history] for metric_name, history in self._metrics.items()},
            indent=2,
        )

    def get_slowest_operations(self, limit: int = 10) -> List[Dict[str, Any]]:
        operations = [
            {"name": name, "duration_ms": m.duration_ms, "timestamp": m.timestamp}
            for name, history in self._metrics.items()
            for m in history
        ]
        operations.sort(key=lambda op: op["duration_ms"], reverse=True)
        return operations[:limit]

    def get_memory_usage(self) -> Dict[str, Any]:
        """Rough footprint estimate from record and timer counts."""
        total_metrics = sum(len(history) for history in self._metrics.values())
        estimated_size_kb = (total_metrics * 100 + len(self._active_timers) * 50) / 1024

        return {
            "metrics_count": total_metrics,
            "active_timers": len(self._active_timers),
            "estimated_size_kb": round(estimated_size_kb, 2),
        }
