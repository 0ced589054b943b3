"""Observability: learning-engine counters, timers, and run summary logging."""

import time
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")

# Counters the learning engine emits; listed so summaries always show them
ENGINE_COUNTERS = (
    "interactions_logged",
    "hypotheses_created",
    "hypotheses_confirmed",
    "hypotheses_rejected",
    "hypotheses_stale",
    "patterns_promoted",
    "pattern_applications",
    "decay_warnings",
    "persistence_failures",
)


class Metrics:
    """Process-local counters and timers. Not thread-safe on its own; the engine lock covers it."""

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}

    def counter(self, name: str, value: int = 1):
        self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Record wall time of the block under `name`, even if it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self._timers.setdefault(name, []).append(time.perf_counter() - start)

    def rates(self) -> dict[str, float | None]:
        """Outcome ratios; None until there is something to divide by."""
        resolved = sum(
            self.get(k) for k in ("hypotheses_confirmed", "hypotheses_rejected", "hypotheses_stale")
        )
        flushes = len(self._timers.get("persistence_flush", []))
        return {
            "confirmation_rate": self.get("hypotheses_confirmed") / resolved if resolved else None,
            "persistence_failure_rate": (
                self.get("persistence_failures") / flushes if flushes else None
            ),
        }

    def summary(self) -> dict[str, Any]:
        counters = {name: 0 for name in ENGINE_COUNTERS}
        counters.update(self._counters)
        timers = {
            name: {
                "count": len(durations),
                "total": sum(durations),
                "avg": sum(durations) / len(durations),
                "max": max(durations),
            }
            for name, durations in self._timers.items()
            if durations
        }
        return {"counters": counters, "timers": timers, "rates": self.rates()}

    def reset(self):
        self._counters.clear()
        self._timers.clear()


# Module-level singleton
metrics = Metrics()


def log_run_summary():
    """Log the current metrics summary via structlog."""
    logger.info("run_summary", **metrics.summary())
