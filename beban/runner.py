"""Execution runner: profile, driver, metrics, thresholds, reports."""

from __future__ import annotations

import asyncio
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import httpx
from rich.console import Console
from rich.live import Live

from .config import format_duration
from .dashboard import create_live_panel, streaming_line
from .exceptions import BebanRunnerError
from .logging_config import get_logger
from .metrics import MetricsAggregator, evaluate_thresholds
from .models import LoadProfile, MetricsSnapshot, RunConfig
from .report import (
    REPORT_HTML_NAME,
    SUMMARY_JSON_NAME,
    generate_html_report,
    generate_json_report,
    generate_junit_report,
    render_text_summary,
)
from .scenarios import profile_for, run_profile

logger = get_logger("runner")

LIVE_REFRESH_PER_SEC = 1
LIVE_POLL_SEC = 0.25
# When stdout is not a TTY (e.g. Docker without -it), refresh interval for streaming fallback
STREAMING_FALLBACK_INTERVAL_SEC = 1.0


@dataclass(slots=True)
class RunResult:
    """Outcome of one run: final snapshot, threshold violations and where reports went."""

    snapshot: MetricsSnapshot
    profile: LoadProfile
    violations: list[str]
    summary_text: str
    summary_json_path: Path
    report_html_path: Path
    junit_path: Path | None = None

    @property
    def passed(self) -> bool:
        return not self.violations


def _stdout_is_tty() -> bool:
    """True if stdout is a TTY (interactive terminal). False in Docker without -it, CI, pipes."""
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def resolve_output_dir(output_dir: str | Path) -> Path:
    """Directory that receives summary.json and report.html; created if missing."""
    p = Path(output_dir)
    if p.exists() and not p.is_dir():
        raise BebanRunnerError(f"Output path is not a directory: {p}", context={"path": str(p)})
    p.mkdir(parents=True, exist_ok=True)
    return p


async def _show_live(
    aggregator: MetricsAggregator,
    config: RunConfig,
    profile: LoadProfile,
    start_time: float,
    scenario_task: asyncio.Task,
) -> None:
    console = Console()
    with Live(
        create_live_panel(aggregator, config, profile, start_time),
        console=console,
        refresh_per_second=LIVE_REFRESH_PER_SEC,
    ) as live_ctx:
        while not scenario_task.done():
            await asyncio.wait({scenario_task}, timeout=LIVE_POLL_SEC)
            live_ctx.update(create_live_panel(aggregator, config, profile, start_time))


async def _show_streaming(
    aggregator: MetricsAggregator,
    profile: LoadProfile,
    start_time: float,
    scenario_task: asyncio.Task,
) -> None:
    """Print one line per interval when not a TTY (Docker, CI) so output streams in real time."""
    while not scenario_task.done():
        await asyncio.wait({scenario_task}, timeout=STREAMING_FALLBACK_INTERVAL_SEC)
        sys.stdout.write(streaming_line(aggregator, profile, start_time))
        sys.stdout.flush()


async def run_load_test(
    config: RunConfig,
    output_dir: str | Path = ".",
    live: bool = True,
    junit_path: str | Path | None = None,
    client: httpx.AsyncClient | None = None,
) -> RunResult:
    """Run the configured scenario to completion and write every report.

    The text summary goes to stdout; summary.json and report.html go to
    ``output_dir``. Threshold violations are returned, not raised: the caller
    decides the exit status.

    Raises:
        BebanRunnerError: If the profile has no duration or the output dir is unusable
    """
    profile = profile_for(config)
    if profile.duration_seconds <= 0:
        raise BebanRunnerError(
            "Load profile has zero duration",
            context={"scenario": profile.scenario.value},
        )
    out_dir = resolve_output_dir(output_dir)

    logger.info(
        "TARGET -> %s | scenario=%s | RPS=%s | VUS=%s | DURATION=%s",
        config.target_url,
        profile.scenario.value,
        config.rps,
        config.vus,
        format_duration(profile.duration_seconds),
    )
    aggregator = MetricsAggregator()
    test_start_dt = datetime.now(timezone.utc)
    start_time = time.perf_counter()
    scenario_task = asyncio.create_task(run_profile(config, profile, aggregator, client))

    if live:
        if _stdout_is_tty():
            await _show_live(aggregator, config, profile, start_time, scenario_task)
        else:
            await _show_streaming(aggregator, profile, start_time, scenario_task)
    await scenario_task
    test_end_dt = datetime.now(timezone.utc)

    snapshot = aggregator.snapshot()
    violations = evaluate_thresholds(snapshot, profile.thresholds)
    logger.info(
        "Load test finished: total_requests=%s, throughput=%.1f, failed_rate=%.4f, violations=%d",
        snapshot.total, snapshot.throughput, snapshot.failed_rate, len(violations),
    )
    for v in violations:
        logger.warning("Threshold violated: %s", v)

    summary_text = render_text_summary(snapshot, config, profile, violations)
    sys.stdout.write(summary_text)
    sys.stdout.flush()

    summary_json_path = out_dir / SUMMARY_JSON_NAME
    report_html_path = out_dir / REPORT_HTML_NAME
    generate_json_report(
        summary_json_path, snapshot, config, profile, violations,
        start_dt=test_start_dt, end_dt=test_end_dt,
    )
    generate_html_report(
        report_html_path, snapshot, config, profile, violations,
        start_dt=test_start_dt, end_dt=test_end_dt,
    )
    junit_out: Path | None = None
    if junit_path:
        junit_out = Path(junit_path)
        generate_junit_report(junit_out, snapshot, config, profile, violations, start_dt=test_start_dt)
    logger.info("Reports written to %s", out_dir)

    return RunResult(
        snapshot=snapshot,
        profile=profile,
        violations=violations,
        summary_text=summary_text,
        summary_json_path=summary_json_path,
        report_html_path=report_html_path,
        junit_path=junit_out,
    )
