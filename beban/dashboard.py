"""Rich live dashboard with low overhead for real-time metrics."""

from __future__ import annotations

import time

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .metrics import MetricsAggregator
from .models import LoadProfile, RunConfig
from .scenarios import expected_active_users


def build_metrics_table(
    aggregator: MetricsAggregator,
    profile: LoadProfile,
    elapsed_seconds: float,
) -> Table:
    """Build a single Rich table with current metrics."""
    view = aggregator.live_view()
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan")
    table.add_column(style="green")

    expected = expected_active_users(profile, elapsed_seconds)
    if profile.executor.is_arrival_rate:
        table.add_row("Target rate (it/s)", str(expected))
    else:
        table.add_row("Active VUs (expected)", str(expected))
    table.add_row("Total requests", str(view.total))

    if view.total:
        table.add_row("TPS", f"{view.throughput:.1f}")
        table.add_row("Avg response (ms)", f"{view.avg_ms:.1f}")
        table.add_row("P95 (ms)", f"{view.p95_ms:.1f}")
        table.add_row("P99 (ms)", f"{view.p99_ms:.1f}")
        table.add_row("Check failure %", f"{view.error_rate_pct:.2f}%")
    else:
        for label in ("TPS", "Avg response (ms)", "P95 (ms)", "P99 (ms)", "Check failure %"):
            table.add_row(label, "-")
    return table


def format_remaining(seconds: float) -> str:
    """Format remaining time as Xs or Xm Ys."""
    s = max(0, int(round(seconds)))
    if s >= 60:
        m, s = divmod(s, 60)
        return f"{m}m {s}s"
    return f"{s}s"


def create_live_panel(
    aggregator: MetricsAggregator,
    config: RunConfig,
    profile: LoadProfile,
    start_time: float,
) -> Panel:
    """Create Rich Panel for live display."""
    total = profile.duration_seconds
    elapsed = time.perf_counter() - start_time if start_time else 0.0
    remaining = max(0.0, total - elapsed) if start_time else total
    table = build_metrics_table(aggregator, profile, elapsed)
    table.add_row("Elapsed", f"{elapsed:.1f}s / {total:.0f}s")
    table.add_row("Remaining (ETA)", format_remaining(remaining))
    title = Text()
    title.append("beban ", style="bold magenta")
    title.append(f"| {config.endpoint.value} | {profile.scenario.value} | {elapsed:.1f}s / {total:.0f}s", style="dim")
    title.append(f" | ETA: {format_remaining(remaining)}", style="bold yellow")
    return Panel(table, title=title, border_style="blue")


def streaming_line(
    aggregator: MetricsAggregator,
    profile: LoadProfile,
    start_time: float,
) -> str:
    """One-line progress for non-TTY output (CI, Docker without -t)."""
    view = aggregator.live_view()
    elapsed = time.perf_counter() - start_time if start_time else 0.0
    remaining = max(0.0, profile.duration_seconds - elapsed)
    return (
        f"beban | {elapsed:.1f}s/{profile.duration_seconds:.0f}s | remaining: {format_remaining(remaining)}"
        f" | requests={view.total} tps={view.throughput:.1f} fail%={view.error_rate_pct:.2f}\n"
    )
