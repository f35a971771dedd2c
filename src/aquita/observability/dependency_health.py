"""In-process health tracking for external dependency calls.

Every completed call to an external dependency (WhatsApp Cloud API, AI
provider) records one sample: latency plus outcome. Samples are grouped by
"dependency:operation" key and kept in a bounded window of the most recent
latencies (a count window, not a time window).

Snapshots compute p50/p95 and error rate per key and decide health against a
latency threshold. State lives in this process only and resets on restart.
"""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping

from aquita.infra.time import utc_now

WINDOW_SIZE = 180
DEFAULT_THRESHOLD_MS = 1800.0
UNHEALTHY_ERROR_RATE_PCT = 20.0


@dataclass
class DependencySample:
    """Rolling state for one dependency:operation key."""

    dependency: str
    operation: str
    latencies: deque = field(default_factory=lambda: deque(maxlen=WINDOW_SIZE))
    success_count: int = 0
    failure_count: int = 0
    last_seen_at: datetime | None = None


@dataclass(frozen=True)
class DependencyReport:
    key: str
    dependency: str
    operation: str
    samples: int
    p50_ms: float
    p95_ms: float
    success_count: int
    failure_count: int
    error_rate_pct: float
    threshold_ms: float
    healthy: bool
    last_seen_at: datetime | None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "dependency": self.dependency,
            "operation": self.operation,
            "samples": self.samples,
            "p50Ms": self.p50_ms,
            "p95Ms": self.p95_ms,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "errorRatePct": self.error_rate_pct,
            "thresholdMs": self.threshold_ms,
            "healthy": self.healthy,
            "lastSeenAt": self.last_seen_at.isoformat() if self.last_seen_at else None,
        }


def normalize_name(value: str | None) -> str:
    """Lowercase and trim a dependency/operation name; empty becomes 'unknown'."""
    normalized = (value or "").strip().lower()
    return normalized or "unknown"


def percentile(sorted_values: list[float], p: float) -> float:
    """Nearest-rank-below percentile over an ascending list. Empty -> 0."""
    n = len(sorted_values)
    if n == 0:
        return 0.0
    index = min(max(math.floor((n - 1) * p), 0), n - 1)
    return round(float(sorted_values[index]), 2)


class DependencyHealthTracker:
    """Records latency/outcome samples and produces percentile snapshots.

    Construct once per process and share; record() and snapshot() are safe
    to call from concurrent request threads.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._samples: dict[str, DependencySample] = {}

    def record(
        self,
        dependency: str,
        operation: str,
        duration_ms: float,
        success: bool,
    ) -> None:
        """Record one completed call."""
        dep = normalize_name(dependency)
        op = normalize_name(operation)
        key = f"{dep}:{op}"

        with self._lock:
            sample = self._samples.get(key)
            if sample is None:
                sample = DependencySample(dependency=dep, operation=op)
                self._samples[key] = sample

            sample.latencies.append(float(duration_ms))
            if success:
                sample.success_count += 1
            else:
                sample.failure_count += 1
            sample.last_seen_at = self._clock()

    def snapshot(
        self,
        thresholds: Mapping[str, float] | None = None,
    ) -> list[DependencyReport]:
        """Compute reports for every tracked key, worst first.

        Args:
            thresholds: p95 limits keyed by exact "dependency:operation" or by
                        bare dependency name. Unmatched keys use 1800 ms.

        Returns:
            Unhealthy reports first, then by descending p95.
        """
        thresholds = thresholds or {}

        with self._lock:
            frozen = [
                (
                    key,
                    sample.dependency,
                    sample.operation,
                    sorted(sample.latencies),
                    sample.success_count,
                    sample.failure_count,
                    sample.last_seen_at,
                )
                for key, sample in self._samples.items()
            ]

        reports = []
        for key, dep, op, latencies, successes, failures, last_seen_at in frozen:
            total = successes + failures
            error_rate = round(failures / total * 100, 2) if total else 0.0
            p95 = percentile(latencies, 0.95)
            threshold = float(thresholds.get(key, thresholds.get(dep, DEFAULT_THRESHOLD_MS)))

            reports.append(
                DependencyReport(
                    key=key,
                    dependency=dep,
                    operation=op,
                    samples=len(latencies),
                    p50_ms=percentile(latencies, 0.50),
                    p95_ms=p95,
                    success_count=successes,
                    failure_count=failures,
                    error_rate_pct=error_rate,
                    threshold_ms=threshold,
                    healthy=p95 <= threshold and error_rate < UNHEALTHY_ERROR_RATE_PCT,
                    last_seen_at=last_seen_at,
                )
            )

        reports.sort(key=lambda r: (r.healthy, -r.p95_ms))
        return reports

    def reset(self) -> None:
        """Drop all samples (process shutdown / tests)."""
        with self._lock:
            self._samples.clear()
