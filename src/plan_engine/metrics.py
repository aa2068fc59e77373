"""Running aggregates over generation outcomes."""

from __future__ import annotations

import threading


class MetricsCollector:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._success_rate = 0.0
        self._average_time = 0.0
        self._error_counts: dict[str, int] = {}

    def record(self, duration: float, success: bool, error_kind: str | None = None) -> None:
        """Fold one outcome into the running averages.

        ``avg' = (avg * (n - 1) + duration) / n``, with the success rate
        updated the same way.
        """
        with self._lock:
            self._total += 1
            n = self._total
            if n == 1:
                self._average_time = float(duration)
                self._success_rate = 1.0 if success else 0.0
            else:
                self._average_time = (self._average_time * (n - 1) + duration) / n
                self._success_rate = (
                    self._success_rate * (n - 1) + (1 if success else 0)
                ) / n
            if error_kind:
                self._error_counts[error_kind] = self._error_counts.get(error_kind, 0) + 1

    def get_metrics(self) -> dict:
        with self._lock:
            return {
                "total_generated": self._total,
                "success_rate": self._success_rate,
                "average_generation_time": self._average_time,
                "error_counts": dict(self._error_counts),
            }

    def reset(self) -> None:
        with self._lock:
            self._total = 0
            self._success_rate = 0.0
            self._average_time = 0.0
            self._error_counts = {}
