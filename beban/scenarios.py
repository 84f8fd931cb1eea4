"""Load scenarios: scenario name -> LoadProfile, plus the asyncio driver that plays a profile.

build_load_profile is a pure lookup: every name maps to a profile, unknown names
fall back to ``constant``. run_profile drives VU-based profiles with parked
worker tasks and arrival-rate profiles with a rate-paced dispatcher.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

import httpx

from .engine import IterationContext, create_client, run_iteration, run_vu_worker
from .logging_config import get_logger
from .metrics import MetricsAggregator
from .models import Executor, LoadProfile, LoadStage, RunConfig, ScenarioName, Threshold

logger = get_logger("scenarios")

# Dispatcher / ramp loop interval (seconds). Lower = finer rate shaping, more CPU.
DISPATCH_POLL_SEC = 0.01
# Time allowed for in-flight iterations after the profile ends
DEFAULT_GRACEFUL_STOP_SEC = 30.0

_SMOKE_THRESHOLDS = (
    Threshold("failed_rate", "<", 0.05),
    Threshold("p95_ms", "<", 1500),
    Threshold("pass_rate", ">", 0.95),
)
_RAMP_THRESHOLDS = (
    Threshold("failed_rate", "<", 0.02),
    Threshold("p95_ms", "<", 900),
    Threshold("p99_ms", "<", 1500),
    Threshold("pass_rate", ">", 0.98),
)
_SPIKE_THRESHOLDS = (
    Threshold("failed_rate", "<", 0.03),
    Threshold("p95_ms", "<", 1200),
    Threshold("p99_ms", "<", 2500),
    Threshold("pass_rate", ">", 0.97),
)
_SOAK_THRESHOLDS = (
    Threshold("failed_rate", "<", 0.01),
    Threshold("p95_ms", "<", 1000),
    Threshold("pass_rate", ">", 0.99),
)
_CONSTANT_THRESHOLDS = (
    Threshold("failed_rate", "<", 0.01),
    Threshold("p95_ms", "<", 800),
    Threshold("p99_ms", "<", 1500),
    Threshold("pass_rate", ">", 0.99),
    Threshold("status_500", "==", 0),
    Threshold("status_429", "==", 0),
)


def _smoke(rps: int, vus: int, duration: float) -> LoadProfile:
    return LoadProfile(
        scenario=ScenarioName.SMOKE,
        executor=Executor.RAMPING_VUS,
        stages=(LoadStage(1, 10), LoadStage(1, 40), LoadStage(0, 10)),
        pre_allocated_vus=1,
        max_vus=1,
        thresholds=_SMOKE_THRESHOLDS,
        graceful_ramp_down_seconds=5,
    )


def _ramp(rps: int, vus: int, duration: float) -> LoadProfile:
    return LoadProfile(
        scenario=ScenarioName.RAMP,
        executor=Executor.RAMPING_ARRIVAL_RATE,
        start_target=max(1, rps // 10),
        stages=(
            LoadStage(max(10, rps // 2), 60),
            LoadStage(rps, 120),
            LoadStage(max(10, rps // 4), 60),
        ),
        pre_allocated_vus=max(vus, 50),
        max_vus=max(vus * 2, 200),
        thresholds=_RAMP_THRESHOLDS,
    )


def _spike(rps: int, vus: int, duration: float) -> LoadProfile:
    peak = vus or 300
    return LoadProfile(
        scenario=ScenarioName.SPIKE,
        executor=Executor.RAMPING_VUS,
        stages=(LoadStage(10, 20), LoadStage(peak, 10), LoadStage(10, 40), LoadStage(0, 10)),
        pre_allocated_vus=max(peak, 10),
        max_vus=max(peak, 10),
        thresholds=_SPIKE_THRESHOLDS,
    )


def _soak(rps: int, vus: int, duration: float) -> LoadProfile:
    n = vus or 30
    return LoadProfile(
        scenario=ScenarioName.SOAK,
        executor=Executor.CONSTANT_VUS,
        start_target=n,
        stages=(LoadStage(n, duration or 1800),),
        pre_allocated_vus=n,
        max_vus=n,
        thresholds=_SOAK_THRESHOLDS,
    )


def _constant(rps: int, vus: int, duration: float) -> LoadProfile:
    rate = rps or 100
    return LoadProfile(
        scenario=ScenarioName.CONSTANT,
        executor=Executor.CONSTANT_ARRIVAL_RATE,
        start_target=rate,
        stages=(LoadStage(rate, duration or 300),),
        pre_allocated_vus=max(vus, 100),
        max_vus=max(vus * 2, 300),
        thresholds=_CONSTANT_THRESHOLDS,
    )


_PROFILES: dict[ScenarioName, Callable[[int, int, float], LoadProfile]] = {
    ScenarioName.SMOKE: _smoke,
    ScenarioName.RAMP: _ramp,
    ScenarioName.SPIKE: _spike,
    ScenarioName.SOAK: _soak,
    ScenarioName.CONSTANT: _constant,
}


def build_load_profile(
    scenario: ScenarioName | str,
    rps: int,
    vus: int,
    duration_seconds: float,
) -> LoadProfile:
    """Map a scenario name and the RPS/VUS/duration knobs to a LoadProfile.

    Total over its input: unknown names silently map to ``constant``.
    """
    if not isinstance(scenario, ScenarioName):
        try:
            scenario = ScenarioName(str(scenario).strip().lower())
        except ValueError:
            scenario = ScenarioName.CONSTANT
    return _PROFILES[scenario](rps, vus, duration_seconds)


def profile_for(config: RunConfig) -> LoadProfile:
    return build_load_profile(config.scenario, config.rps, config.vus, config.duration_seconds)


def target_at(profile: LoadProfile, elapsed_seconds: float) -> float:
    """Target VUs (or iterations/s) at elapsed time, linearly interpolated within each stage."""
    if elapsed_seconds < 0:
        return 0.0
    previous = profile.start_target
    stage_start = 0.0
    for stage in profile.stages:
        stage_end = stage_start + stage.duration_seconds
        if elapsed_seconds < stage_end:
            if stage.duration_seconds <= 0:
                return stage.target
            progress = (elapsed_seconds - stage_start) / stage.duration_seconds
            return previous + (stage.target - previous) * progress
        previous = stage.target
        stage_start = stage_end
    return 0.0


def expected_active_users(profile: LoadProfile, elapsed_seconds: float) -> int:
    """Whole VUs a VU-based profile should have running; for arrival-rate, the current rate."""
    return int(target_at(profile, elapsed_seconds))


async def _drain(tasks: set[asyncio.Task], timeout: float) -> None:
    if not tasks:
        return
    _, pending = await asyncio.wait(tasks, timeout=timeout)
    for t in pending:
        t.cancel()
    if pending:
        logger.info("Cancelled %d in-flight iteration(s) after graceful stop", len(pending))
        await asyncio.gather(*pending, return_exceptions=True)


async def _run_vus(ctx: IterationContext, profile: LoadProfile, stop_event: asyncio.Event) -> None:
    start = time.perf_counter()

    def active_limit() -> int:
        return expected_active_users(profile, time.perf_counter() - start)

    n_workers = max(1, int(profile.peak_target))
    workers = [
        asyncio.create_task(run_vu_worker(ctx, index, active_limit, stop_event))
        for index in range(n_workers)
    ]
    await asyncio.sleep(profile.duration_seconds)
    stop_event.set()
    await _drain(set(workers), profile.graceful_ramp_down_seconds or DEFAULT_GRACEFUL_STOP_SEC)


async def _run_arrival_rate(ctx: IterationContext, profile: LoadProfile, stop_event: asyncio.Event) -> None:
    vus = asyncio.Semaphore(max(1, profile.max_vus))
    in_flight: set[asyncio.Task] = set()

    async def one_iteration() -> None:
        try:
            await run_iteration(ctx)
        finally:
            vus.release()

    start = time.perf_counter()
    last = start
    due = 0.0
    duration = profile.duration_seconds
    while True:
        now = time.perf_counter()
        elapsed = now - start
        if elapsed >= duration:
            break
        due += target_at(profile, elapsed) * (now - last)
        last = now
        while due >= 1.0:
            due -= 1.0
            if vus.locked():
                ctx.aggregator.record_dropped()
                continue
            await vus.acquire()
            task = asyncio.create_task(one_iteration())
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)
        await asyncio.sleep(DISPATCH_POLL_SEC)
    stop_event.set()
    await _drain(set(in_flight), DEFAULT_GRACEFUL_STOP_SEC)


async def run_profile(
    config: RunConfig,
    profile: LoadProfile,
    aggregator: MetricsAggregator,
    client: httpx.AsyncClient | None = None,
) -> tuple[float, float]:
    """Play the profile against the configured endpoint; returns (start_time, end_time).

    A shared httpx client is created for the run unless one is passed in.
    """
    stop_event = asyncio.Event()
    start_time = time.perf_counter()
    if profile.duration_seconds <= 0:
        return start_time, time.perf_counter()
    aggregator.start(start_time)

    async def _play(c: httpx.AsyncClient) -> None:
        ctx = IterationContext(config, c, aggregator)
        if profile.executor.is_arrival_rate:
            await _run_arrival_rate(ctx, profile, stop_event)
        else:
            await _run_vus(ctx, profile, stop_event)

    if client is not None:
        await _play(client)
    else:
        async with await create_client(config) as shared:
            await _play(shared)
    end_time = time.perf_counter()
    aggregator.finish(end_time)
    return start_time, end_time
