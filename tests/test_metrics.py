"""Unit tests for metrics aggregation, percentiles and thresholds."""

from __future__ import annotations

import asyncio
import random
import threading

import pytest

from beban.classifier import classify, transport_failure
from beban.metrics import TOP_MESSAGES, MetricsAggregator, evaluate_thresholds, percentile
from beban.models import MetricsSnapshot, ResponseVerdict, StatusClass, Threshold


def _ok(latency_ms: float = 10.0) -> ResponseVerdict:
    return classify(200, b"[]", latency_ms, list_endpoint=True, tags={"endpoint": "/properties", "mode": "query"})


def test_empty_snapshot() -> None:
    snap = MetricsAggregator().snapshot()
    assert snap.total == 0
    assert snap.failed_rate == 0.0
    assert snap.pass_rate == 0.0
    assert snap.p95_ms == 0.0
    assert snap.throughput == 0.0


def test_concurrent_records_from_threads_lose_nothing() -> None:
    agg = MetricsAggregator()

    def worker() -> None:
        for _ in range(10):
            agg.record(_ok())

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    snap = agg.snapshot()
    assert snap.total == 100
    assert snap.passed == 100
    assert snap.status_class_counts["2xx"] == 100


def test_concurrent_records_from_tasks_lose_nothing() -> None:
    agg = MetricsAggregator()

    async def worker() -> None:
        for _ in range(10):
            agg.record(_ok())
            await asyncio.sleep(0)

    async def run() -> None:
        await asyncio.gather(*(worker() for _ in range(10)))

    asyncio.run(run())
    assert agg.snapshot().total == 100


def test_counts_by_class_and_code() -> None:
    agg = MetricsAggregator()
    agg.record(_ok())
    agg.record(classify(404, b"", 5.0))
    agg.record(classify(500, b'{"message":"boom"}', 5.0))
    agg.record(classify(429, b"", 5.0))
    agg.record(transport_failure("timeout: read", 30.0))
    agg.record(classify(200, b'{"data":"x"}', 5.0, list_endpoint=True))
    snap = agg.snapshot()
    assert snap.total == 6
    assert snap.passed == 1
    assert snap.failed == 5
    assert snap.http_failed == 4
    assert snap.transport_errors == 1
    assert snap.status_class_counts == {"2xx": 2, "4xx": 2, "5xx": 1, "other": 1}
    assert snap.status_code_counts == {"200": 2, "404": 1, "500": 1, "429": 1, "error": 1}
    assert snap.failed_rate == pytest.approx(4 / 6)
    assert snap.check_failed_rate == pytest.approx(5 / 6)
    assert snap.metric("status_500") == 1
    assert snap.metric("status_429") == 1
    assert snap.metric("status_5xx") == 1
    assert snap.metric("status_503") == 0
    assert "HTTP 500: boom" in snap.top_messages
    assert "timeout: read" in snap.top_messages


def test_top_messages_limited() -> None:
    agg = MetricsAggregator()
    for i in range(TOP_MESSAGES + 3):
        for _ in range(i + 1):
            agg.record(classify(400, f'{{"message":"m{i}"}}'.encode(), 1.0))
    top = agg.snapshot().top_messages
    assert len(top) == TOP_MESSAGES
    assert list(top)[0] == f"HTTP 400: m{TOP_MESSAGES + 2}"


def test_endpoint_breakdown_from_tags() -> None:
    agg = MetricsAggregator()
    agg.record(_ok())
    agg.record(_ok())
    agg.record(classify(200, b"[]", 1.0, tags={"endpoint": "/properties", "mode": "form"}))
    counts = agg.snapshot().endpoint_counts
    assert counts == {"/properties [query]": 2, "/properties [form]": 1}


def test_percentile_linear_interpolation() -> None:
    values = [float(v) for v in range(1, 101)]
    assert percentile(values, 50) == pytest.approx(50.5)
    assert percentile(values, 95) == pytest.approx(95.05)
    assert percentile(values, 100) == 100.0
    assert percentile(values, 0) == 1.0
    assert percentile([7.0], 99) == 7.0
    assert percentile([], 95) == 0.0


def test_snapshot_percentiles_independent_of_order() -> None:
    latencies = [float(v) for v in range(1, 501)]
    shuffled = latencies[:]
    random.Random(3).shuffle(shuffled)
    a, b = MetricsAggregator(), MetricsAggregator()
    for v in latencies:
        a.record(_ok(v))
    for v in shuffled:
        b.record(_ok(v))
    sa, sb = a.snapshot(), b.snapshot()
    for field in ("p50_ms", "p90_ms", "p95_ms", "p99_ms", "min_ms", "max_ms", "avg_ms"):
        assert getattr(sa, field) == getattr(sb, field)
    assert sa.min_ms == 1.0
    assert sa.max_ms == 500.0
    assert sa.avg_ms == pytest.approx(250.5)


def test_duration_and_throughput_use_start_and_finish() -> None:
    agg = MetricsAggregator()
    agg.start(100.0)
    for _ in range(50):
        agg.record(_ok())
    agg.finish(110.0)
    snap = agg.snapshot()
    assert snap.duration_seconds == 10.0
    assert snap.throughput == 5.0


def test_record_dropped() -> None:
    agg = MetricsAggregator()
    agg.record_dropped()
    agg.record_dropped(4)
    snap = agg.snapshot()
    assert snap.dropped_iterations == 5
    assert snap.total == 0


def test_live_view() -> None:
    agg = MetricsAggregator()
    agg.start(0.0)
    agg.record_batch([_ok(10.0), _ok(20.0), classify(500, b"", 30.0)])
    agg.finish(3.0)
    view = agg.live_view()
    assert view.total == 3
    assert view.failed == 1
    assert view.avg_ms == pytest.approx(20.0)
    assert view.throughput == pytest.approx(1.0)
    assert view.error_rate_pct == pytest.approx(100 / 3)
    assert 10.0 <= view.p95_ms <= 30.0


def test_evaluate_thresholds(sample_snapshot: MetricsSnapshot) -> None:
    thresholds = (
        Threshold("failed_rate", "<", 0.05),
        Threshold("p95_ms", "<", 100),
        Threshold("pass_rate", ">", 0.75),
        Threshold("status_500", "==", 0),
    )
    violations = evaluate_thresholds(sample_snapshot, thresholds)
    assert len(violations) == 2
    assert violations[0].startswith("failed_rate < 0.05 (actual 0.1)")
    assert violations[1].startswith("p95_ms < 100 (actual 110)")


def test_evaluate_thresholds_all_pass(sample_snapshot: MetricsSnapshot) -> None:
    assert evaluate_thresholds(sample_snapshot, (Threshold("p99_ms", "<=", 119),)) == []


def test_threshold_rejects_unknown_operator() -> None:
    with pytest.raises(ValueError, match="Unsupported threshold operator"):
        Threshold("p95_ms", "!=", 1)


def test_verdict_status_class_other_for_transport_failure() -> None:
    agg = MetricsAggregator()
    agg.record(transport_failure("connection refused", 1.0))
    assert agg.snapshot().status_class_counts[StatusClass.OTHER.value] == 1
