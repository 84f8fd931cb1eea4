"""Pytest fixtures for beban tests."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from beban.models import (
    EndpointFamily,
    LoadProfile,
    LoadStage,
    MetricsSnapshot,
    RunConfig,
    ScenarioName,
    Executor,
    Threshold,
)


@pytest.fixture
def tmp_path_config_constant() -> Path:
    """Write a minimal valid properties config (constant scenario) to a temp file."""
    content = """
host: http://localhost:18080
endpoint: properties
scenario: constant
duration: 1m
vus: 10
rps: 50
think_time_ms: 100
cities: [Jakarta, Bandung]
property_types: rumah,apartemen
"""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write(content)
        path = Path(f.name)
    yield path
    path.unlink(missing_ok=True)


@pytest.fixture
def tmp_path_config_otp() -> Path:
    """Write a verify-otp spike config to a temp file."""
    content = """
host: https://api.example.com
base_path: /v2
endpoint: verify-otp
scenario: spike
vus: 40
identifiers: alice, bob
otps: ["111111", "222222"]
purpose: register
headers:
  X-Trace: load
"""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write(content)
        path = Path(f.name)
    yield path
    path.unlink(missing_ok=True)


@pytest.fixture
def properties_config() -> RunConfig:
    return RunConfig(
        host="http://localhost:18080",
        endpoint=EndpointFamily.PROPERTIES,
        scenario=ScenarioName.CONSTANT,
        duration_seconds=1,
        vus=2,
        rps=20,
        think_time_ms=0,
        cities=("A",),
        property_types=("x",),
        min_price_min=100,
        min_price_max=100,
        max_price_min=200,
        max_price_max=200,
        seed=7,
    )


@pytest.fixture
def short_profile() -> LoadProfile:
    return LoadProfile(
        scenario=ScenarioName.CONSTANT,
        executor=Executor.CONSTANT_ARRIVAL_RATE,
        start_target=10,
        stages=(LoadStage(10, 1),),
        pre_allocated_vus=2,
        max_vus=4,
        thresholds=(Threshold("failed_rate", "<", 0.01), Threshold("p95_ms", "<", 800)),
    )


@pytest.fixture
def sample_snapshot() -> MetricsSnapshot:
    return MetricsSnapshot(
        total=10,
        passed=8,
        failed=2,
        http_failed=1,
        transport_errors=1,
        duration_seconds=2.0,
        status_class_counts={"2xx": 9, "4xx": 0, "5xx": 0, "other": 1},
        status_code_counts={"200": 9, "error": 1},
        avg_ms=50.0,
        min_ms=10.0,
        max_ms=120.0,
        p50_ms=45.0,
        p90_ms=100.0,
        p95_ms=110.0,
        p99_ms=119.0,
        top_messages={"timeout: read": 1, "HTTP 200: not a list": 1},
        endpoint_counts={"/properties [query]": 10},
    )
