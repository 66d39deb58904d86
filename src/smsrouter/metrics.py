"""In-process metrics for the SMS command flow.

Best-effort in multi-worker deployments: each worker keeps its own counts.
"""

import os
import threading
from dataclasses import dataclass, field
from typing import Any


@dataclass
class MetricsCollector:
    """Thread-safe in-memory metrics collector."""

    # Counters per command type
    command_counts: dict[str, int] = field(default_factory=dict)

    # Counters per dispatch status (ok, deferred, precondition, error)
    status_counts: dict[str, int] = field(default_factory=dict)

    # Counters for deferred job outcomes (sent, send_failed, error)
    deferred_outcomes: dict[str, int] = field(default_factory=dict)

    # Latency samples for synchronous dispatch (in milliseconds)
    dispatch_latencies: list[float] = field(default_factory=list)

    _lock: threading.Lock = field(default_factory=threading.Lock)

    def record_command(self, command_type: str, status: str, latency_ms: float) -> None:
        """Record one dispatched command."""
        with self._lock:
            self.command_counts[command_type] = self.command_counts.get(command_type, 0) + 1
            self.status_counts[status] = self.status_counts.get(status, 0) + 1
            self.dispatch_latencies.append(latency_ms)

    def record_deferred(self, outcome: str) -> None:
        """Record the outcome of a deferred job."""
        with self._lock:
            self.deferred_outcomes[outcome] = self.deferred_outcomes.get(outcome, 0) + 1

    @staticmethod
    def _percentile(sorted_values: list[float], percentile: float) -> float | None:
        if not sorted_values:
            return None
        n = len(sorted_values)
        return sorted_values[min(int(n * percentile), n - 1)]

    def get_snapshot(self) -> dict[str, Any]:
        """Get a snapshot of current metrics including latency percentiles."""
        with self._lock:
            sorted_latencies = sorted(self.dispatch_latencies)
            return {
                "command_counts": dict(self.command_counts),
                "status_counts": dict(self.status_counts),
                "deferred_outcomes": dict(self.deferred_outcomes),
                "dispatch_latency_ms": {
                    "p50": self._percentile(sorted_latencies, 0.5),
                    "p95": self._percentile(sorted_latencies, 0.95),
                    "count": len(sorted_latencies),
                },
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self.command_counts.clear()
            self.status_counts.clear()
            self.deferred_outcomes.clear()
            self.dispatch_latencies.clear()


_metrics_collector: MetricsCollector | None = None
_metrics_lock = threading.Lock()


def get_metrics_collector() -> MetricsCollector:
    """Get or create the global metrics collector instance."""
    global _metrics_collector
    with _metrics_lock:
        if _metrics_collector is None:
            _metrics_collector = MetricsCollector()
        return _metrics_collector


def is_metrics_enabled() -> bool:
    """True if SMSROUTER_ENABLE_METRICS is set to a truthy value."""
    return os.getenv("SMSROUTER_ENABLE_METRICS", "false").lower() in ("true", "1", "yes")
