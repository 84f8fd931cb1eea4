"""Metrics aggregation shared by every iteration of a run.

One MetricsAggregator per run, passed explicitly to all workers. Every update
happens under a single lock, so concurrent record() calls from threads or
asyncio tasks never lose counts.

Percentiles in the final snapshot are exact: all latency samples are kept and
interpolated linearly between closest ranks, so the result depends only on the
set of samples, not on insertion order. A T-Digest is fed alongside for the
approximate, cheap live view.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tdigest import TDigest

from .logging_config import get_logger
from .models import MetricsSnapshot, ResponseVerdict, StatusClass, Threshold

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = get_logger("metrics")

# Number of distinct failure messages listed in reports
TOP_MESSAGES = 5
# Failure messages are truncated to keep the counter dict small
MAX_MESSAGE_LENGTH = 200


@dataclass(slots=True)
class LiveView:
    """Approximate, cheap numbers for the live dashboard."""

    total: int
    failed: int
    avg_ms: float
    p95_ms: float
    p99_ms: float
    elapsed_seconds: float

    @property
    def throughput(self) -> float:
        return self.total / self.elapsed_seconds if self.elapsed_seconds > 0 else 0.0

    @property
    def error_rate_pct(self) -> float:
        return 100.0 * self.failed / self.total if self.total else 0.0


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linear interpolation between closest ranks: k = (n - 1) * p / 100. 0.0 when empty."""
    if not sorted_values:
        return 0.0
    k = (len(sorted_values) - 1) * (p / 100.0)
    f = int(k)
    c = f + 1 if f + 1 < len(sorted_values) else f
    return sorted_values[f] + (k - f) * (sorted_values[c] - sorted_values[f])


def _percentile_from_digest(digest: TDigest, p: float) -> float:
    try:
        return digest.percentile(p) or 0.0
    except (ValueError, IndexError):
        return 0.0


def _failure_key(verdict: ResponseVerdict) -> str:
    if verdict.error:
        return verdict.error[:MAX_MESSAGE_LENGTH]
    if verdict.message:
        return f"HTTP {verdict.status_code}: {verdict.message[:MAX_MESSAGE_LENGTH]}"
    return f"HTTP {verdict.status_code}"


class MetricsAggregator:
    """Accumulates verdicts for a whole run.

    record() is safe under concurrent invocation. snapshot() is meant to be called
    once, after the driver has drained; it is also safe to call mid-run.
    """

    __slots__ = (
        "_lock", "_start_time", "_end_time", "_latencies", "_digest", "_sum_ms",
        "_total", "_passed", "_http_failed", "_transport_errors",
        "_class_counts", "_status_counts", "_message_counts", "_endpoint_counts",
        "_dropped",
    )

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._start_time: float | None = None
        self._end_time: float | None = None
        self._latencies: list[float] = []
        self._digest = TDigest()
        self._sum_ms = 0.0
        self._total = 0
        self._passed = 0
        self._http_failed = 0
        self._transport_errors = 0
        self._class_counts: dict[str, int] = {c.value: 0 for c in StatusClass}
        self._status_counts: dict[str, int] = defaultdict(int)
        self._message_counts: dict[str, int] = defaultdict(int)
        self._endpoint_counts: dict[str, int] = defaultdict(int)
        self._dropped = 0

    def start(self, t: float | None = None) -> None:
        with self._lock:
            self._start_time = time.perf_counter() if t is None else t
            self._end_time = None

    def finish(self, t: float | None = None) -> None:
        with self._lock:
            self._end_time = time.perf_counter() if t is None else t

    @property
    def total(self) -> int:
        return self._total

    def record(self, verdict: ResponseVerdict) -> None:
        """Add one verdict to every counter and to the latency distribution."""
        latency = verdict.latency_ms
        with self._lock:
            if self._start_time is None:
                self._start_time = time.perf_counter()
            self._total += 1
            self._class_counts[verdict.status_class.value] += 1
            key = str(verdict.status_code) if verdict.status_code is not None else "error"
            self._status_counts[key] += 1
            if verdict.passed:
                self._passed += 1
            else:
                self._message_counts[_failure_key(verdict)] += 1
            if verdict.http_failed:
                self._http_failed += 1
            if verdict.status_code is None:
                self._transport_errors += 1
            tags = verdict.tags
            if tags:
                self._endpoint_counts[f"{tags.get('endpoint', '?')} [{tags.get('mode', '-')}]"] += 1
            self._latencies.append(latency)
            self._sum_ms += latency
            self._digest.update(latency)

    def record_batch(self, verdicts: Iterable[ResponseVerdict]) -> None:
        for v in verdicts:
            self.record(v)

    def record_dropped(self, n: int = 1) -> None:
        """Arrival-rate iterations that could not start because every VU was busy."""
        with self._lock:
            self._dropped += n

    def live_view(self) -> LiveView:
        """Approximate numbers from the T-Digest; O(1) in the number of samples."""
        with self._lock:
            total = self._total
            start = self._start_time
            end = self._end_time or time.perf_counter()
            return LiveView(
                total=total,
                failed=total - self._passed,
                avg_ms=self._sum_ms / total if total else 0.0,
                p95_ms=_percentile_from_digest(self._digest, 95) if total else 0.0,
                p99_ms=_percentile_from_digest(self._digest, 99) if total else 0.0,
                elapsed_seconds=(end - start) if start is not None else 0.0,
            )

    def snapshot(self) -> MetricsSnapshot:
        """Exact, order-independent summary of everything recorded so far."""
        with self._lock:
            samples = sorted(self._latencies)
            total = self._total
            start = self._start_time
            end = self._end_time or time.perf_counter()
            top = sorted(self._message_counts.items(), key=lambda x: (-x[1], x[0]))[:TOP_MESSAGES]
            snap = MetricsSnapshot(
                total=total,
                passed=self._passed,
                failed=total - self._passed,
                http_failed=self._http_failed,
                transport_errors=self._transport_errors,
                duration_seconds=(end - start) if start is not None else 0.0,
                status_class_counts=dict(self._class_counts),
                status_code_counts=dict(self._status_counts),
                avg_ms=self._sum_ms / total if total else 0.0,
                min_ms=samples[0] if samples else 0.0,
                max_ms=samples[-1] if samples else 0.0,
                p50_ms=percentile(samples, 50),
                p90_ms=percentile(samples, 90),
                p95_ms=percentile(samples, 95),
                p99_ms=percentile(samples, 99),
                top_messages=dict(top),
                endpoint_counts=dict(self._endpoint_counts),
                dropped_iterations=self._dropped,
            )
        logger.debug("Snapshot: total=%d failed=%d p95=%.2fms", snap.total, snap.failed, snap.p95_ms)
        return snap


def evaluate_thresholds(snapshot: MetricsSnapshot, thresholds: Iterable[Threshold]) -> list[str]:
    """Return a description for every threshold the snapshot violates."""
    violations: list[str] = []
    for t in thresholds:
        actual = snapshot.metric(t.metric)
        if not t.check(actual):
            violations.append(f"{t.expression} (actual {actual:.4g})")
    return violations
