from __future__ import annotations

from collections import Counter
from statistics import mean
from threading import Lock

MAX_LATENCY_SAMPLES = 1000


class PipelineTelemetry:
    """Counters for render calls, guard trips and swallowed application failures."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._render_latencies_ms: list[float] = []
        self.renders: int = 0
        self.render_failures: int = 0
        self.guard_trips: Counter[str] = Counter()
        self.application_failures: Counter[str] = Counter()

    def reset(self) -> None:
        with self._lock:
            self._render_latencies_ms = []
            self.renders = 0
            self.render_failures = 0
            self.guard_trips = Counter()
            self.application_failures = Counter()

    def record_render(self, *, latency_ms: float) -> None:
        with self._lock:
            self.renders += 1
            self._render_latencies_ms.append(float(latency_ms))
            if len(self._render_latencies_ms) > MAX_LATENCY_SAMPLES:
                self._render_latencies_ms = self._render_latencies_ms[-MAX_LATENCY_SAMPLES:]

    def record_render_failure(self) -> None:
        with self._lock:
            self.render_failures += 1

    def record_guard_trip(self, where: str) -> None:
        with self._lock:
            self.guard_trips[str(where)] += 1

    def record_application_failure(self, where: str) -> None:
        with self._lock:
            self.application_failures[str(where)] += 1

    def summary(self) -> dict:
        with self._lock:
            latencies = list(self._render_latencies_ms)
            avg_latency = float(mean(latencies)) if latencies else 0.0
            p95_latency = 0.0
            if latencies:
                ordered = sorted(latencies)
                idx = max(0, min(len(ordered) - 1, round(0.95 * (len(ordered) - 1))))
                p95_latency = float(ordered[idx])

            return {
                "renders": int(self.renders),
                "render_failures": int(self.render_failures),
                "avg_render_latency_ms": round(avg_latency, 3),
                "p95_render_latency_ms": round(p95_latency, 3),
                "guard_trips": int(sum(self.guard_trips.values())),
                "guard_trips_by_stage": dict(self.guard_trips),
                "application_failures": int(sum(self.application_failures.values())),
                "application_failures_by_stage": dict(self.application_failures),
            }
