"""Unit tests for load scenarios (build_load_profile, target_at, run_profile)."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from beban.classifier import classify
from beban.metrics import MetricsAggregator
from beban.models import Executor, LoadProfile, LoadStage, RunConfig, ScenarioName
from beban.scenarios import build_load_profile, expected_active_users, profile_for, run_profile, target_at


def _arun(coro):
    return asyncio.run(coro)


def test_bogus_scenario_is_constant() -> None:
    assert build_load_profile("bogus", 100, 50, 300) == build_load_profile("constant", 100, 50, 300)
    assert build_load_profile("", 10, 5, 60) == build_load_profile(ScenarioName.CONSTANT, 10, 5, 60)


def test_scenario_name_case_insensitive() -> None:
    assert build_load_profile(" SPIKE ", 0, 300, 0).scenario == ScenarioName.SPIKE


def test_smoke_profile() -> None:
    p = build_load_profile("smoke", 100, 50, 300)
    assert p.executor == Executor.RAMPING_VUS
    assert p.duration_seconds == 60
    assert p.peak_target == 1
    assert {t.metric for t in p.thresholds} == {"failed_rate", "p95_ms", "pass_rate"}


def test_ramp_profile_follows_rps() -> None:
    p = build_load_profile("ramp", 100, 50, 300)
    assert p.executor == Executor.RAMPING_ARRIVAL_RATE
    assert p.start_target == 10
    assert [s.target for s in p.stages] == [50, 100, 25]
    assert p.duration_seconds == 240
    assert p.pre_allocated_vus == 50
    assert p.max_vus == 200


def test_ramp_profile_low_rps_floors() -> None:
    p = build_load_profile("ramp", 4, 1, 300)
    assert p.start_target == 1
    assert [s.target for s in p.stages] == [10, 4, 10]


def test_spike_profile_peak_is_vus() -> None:
    p = build_load_profile("spike", 100, 120, 300)
    assert p.executor == Executor.RAMPING_VUS
    assert p.peak_target == 120
    assert p.duration_seconds == 80


def test_soak_profile_uses_duration() -> None:
    p = build_load_profile("soak", 100, 30, 1800)
    assert p.executor == Executor.CONSTANT_VUS
    assert p.duration_seconds == 1800
    assert expected_active_users(p, 900) == 30


def test_constant_profile_thresholds() -> None:
    p = build_load_profile("constant", 100, 50, 300)
    assert p.executor == Executor.CONSTANT_ARRIVAL_RATE
    assert p.duration_seconds == 300
    assert p.max_vus == 300
    expressions = [t.expression for t in p.thresholds]
    assert "status_500 == 0" in expressions
    assert "status_429 == 0" in expressions
    assert "p95_ms < 800" in expressions


def test_profile_for_config() -> None:
    config = RunConfig(scenario=ScenarioName.SOAK, vus=7, duration_seconds=42)
    p = profile_for(config)
    assert p.scenario == ScenarioName.SOAK
    assert p.peak_target == 7
    assert p.duration_seconds == 42


def test_target_at_interpolates() -> None:
    p = build_load_profile("ramp", 100, 50, 300)
    assert target_at(p, -1) == 0
    assert target_at(p, 0) == 10
    assert target_at(p, 30) == pytest.approx(30)
    assert target_at(p, 120) == pytest.approx(75)
    assert target_at(p, 210) == pytest.approx(62.5)
    assert target_at(p, 240) == 0


def test_expected_active_users_smoke() -> None:
    p = build_load_profile("smoke", 0, 0, 0)
    assert expected_active_users(p, 0) == 0
    assert expected_active_users(p, 10) == 1
    assert expected_active_users(p, 45) == 1
    assert expected_active_users(p, 61) == 0


async def _fake_send(client, req, list_endpoint=False, timeout=None):
    await asyncio.sleep(0.01)
    return classify(200, b"[]", 10.0, list_endpoint=list_endpoint, tags=req.tags)


def test_run_profile_arrival_rate(properties_config: RunConfig) -> None:
    profile = LoadProfile(
        scenario=ScenarioName.CONSTANT,
        executor=Executor.CONSTANT_ARRIVAL_RATE,
        start_target=20,
        stages=(LoadStage(20, 1),),
        pre_allocated_vus=5,
        max_vus=10,
    )
    agg = MetricsAggregator()
    with patch("beban.engine.send_request", side_effect=_fake_send):
        start, end = _arun(run_profile(properties_config, profile, agg, client=MagicMock()))
    snap = agg.snapshot()
    assert end - start >= 1.0
    assert 10 <= snap.total <= 25
    assert snap.passed == snap.total
    assert snap.dropped_iterations == 0


def test_run_profile_arrival_rate_drops_when_vus_exhausted(properties_config: RunConfig) -> None:
    async def slow_send(client, req, list_endpoint=False, timeout=None):
        await asyncio.sleep(0.4)
        return classify(200, b"[]", 400.0, list_endpoint=list_endpoint)

    profile = LoadProfile(
        scenario=ScenarioName.CONSTANT,
        executor=Executor.CONSTANT_ARRIVAL_RATE,
        start_target=30,
        stages=(LoadStage(30, 1),),
        pre_allocated_vus=1,
        max_vus=1,
    )
    agg = MetricsAggregator()
    with patch("beban.engine.send_request", side_effect=slow_send):
        _arun(run_profile(properties_config, profile, agg, client=MagicMock()))
    snap = agg.snapshot()
    assert 1 <= snap.total <= 4
    assert snap.dropped_iterations > 10


def test_run_profile_vus(properties_config: RunConfig) -> None:
    profile = LoadProfile(
        scenario=ScenarioName.SOAK,
        executor=Executor.CONSTANT_VUS,
        start_target=2,
        stages=(LoadStage(2, 0.5),),
        pre_allocated_vus=2,
        max_vus=2,
    )
    agg = MetricsAggregator()
    with patch("beban.engine.send_request", side_effect=_fake_send):
        _arun(run_profile(properties_config, profile, agg, client=MagicMock()))
    snap = agg.snapshot()
    # 2 VUs x ~50 iterations of 10ms each
    assert 20 <= snap.total <= 110
    assert snap.endpoint_counts == {"/properties [query]": snap.total}


def test_run_profile_zero_duration_does_nothing(properties_config: RunConfig) -> None:
    profile = LoadProfile(scenario=ScenarioName.SOAK, executor=Executor.CONSTANT_VUS, stages=())
    agg = MetricsAggregator()
    client = MagicMock()
    _arun(run_profile(properties_config, profile, agg, client=client))
    assert agg.total == 0
    client.request.assert_not_called()
