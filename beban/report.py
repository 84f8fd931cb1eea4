"""Report rendering over a finalized MetricsSnapshot: text, JSON, HTML, JUnit XML.

All functions here are pure formatting; no metric is computed that the snapshot
does not already hold.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse, urlunparse

import orjson
from jinja2 import Environment, PackageLoader, select_autoescape

from . import __version__ as beban_version
from .config import format_duration
from .models import EndpointFamily, LoadProfile, MetricsSnapshot, RunConfig

SUMMARY_JSON_NAME = "summary.json"
REPORT_HTML_NAME = "report.html"
# Failed-rate cell turns red above this fraction
FAILED_RATE_OK_MAX = 0.01
DATETIME_FMT = "%Y-%m-%d %H:%M:%S UTC"

_TITLES = {
    EndpointFamily.PROPERTIES: "Properties Load Test",
    EndpointFamily.VERIFY_OTP: "Verify OTP Load Test",
    EndpointFamily.USER_PROFILE: "User Profile Load Test",
}


def mask_url(url: str, max_path_length: int = 120) -> str:
    """Remove query string and fragment from URL to avoid leaking parameters in reports."""
    if not url or not url.strip():
        return url
    parsed = urlparse(url)
    clean = urlunparse((parsed.scheme, parsed.netloc, parsed.path or "", "", "", ""))
    if len(clean) > max_path_length:
        clean = clean[: max_path_length - 3] + "..."
    return clean


def report_title(config: RunConfig) -> str:
    return _TITLES[config.endpoint]


def _fmt_ms(value: float, total: int) -> str:
    return f"{value:.2f}" if total else "n/a"


def _pools(config: RunConfig) -> list[tuple[str, str]]:
    if config.endpoint == EndpointFamily.PROPERTIES:
        return [("Cities", ", ".join(config.cities)), ("Types", ", ".join(config.property_types))]
    if config.endpoint == EndpointFamily.VERIFY_OTP:
        return [("Identifiers", ", ".join(config.identifiers)), ("Purpose", config.purpose)]
    return []


def config_summary(config: RunConfig, profile: LoadProfile) -> dict[str, Any]:
    """Configuration fields shown in every report. The bearer token is never included."""
    return {
        "target": mask_url(config.target_url),
        "endpoint": config.endpoint.value,
        "scenario": config.scenario.value,
        "executor": profile.executor.value,
        "duration": format_duration(profile.duration_seconds),
        "rps": config.rps,
        "vus": config.vus,
        "think_time_ms": config.think_time_ms,
        "timeout_seconds": config.timeout_seconds,
        "mode": config.request_mode.value if config.endpoint == EndpointFamily.PROPERTIES else "-",
        "pools": dict(_pools(config)),
        "thresholds": [t.expression for t in profile.thresholds],
    }


def render_text_summary(
    snapshot: MetricsSnapshot,
    config: RunConfig,
    profile: LoadProfile,
    violations: list[str],
) -> str:
    """Plain-text summary for stdout."""
    title = f"=== {report_title(config)} Summary ==="
    classes = snapshot.status_class_counts
    total = snapshot.total
    lines = [
        title,
        f"Host       : {mask_url(config.base_url)}",
        f"Endpoint   : {config.endpoint_path}",
        f"Scenario   : {profile.scenario.value} ({profile.executor.value})",
        f"Duration   : {format_duration(profile.duration_seconds)}",
        f"RPS/VUs    : {config.rps or '-'} / {config.vus}",
    ]
    lines += [f"{label:<11}: {value}" for label, value in _pools(config)]
    lines += [
        f"Requests   : {total} ({snapshot.throughput:.1f}/s)",
        f"FailedRate : {snapshot.failed_rate * 100:.2f}%",
        f"PassRate   : {snapshot.pass_rate * 100:.2f}%",
        f"2xx/4xx/5xx: {classes.get('2xx', 0)}/{classes.get('4xx', 0)}/{classes.get('5xx', 0)}",
        f"p50        : {_fmt_ms(snapshot.p50_ms, total)} ms",
        f"p95        : {_fmt_ms(snapshot.p95_ms, total)} ms",
        f"p99        : {_fmt_ms(snapshot.p99_ms, total)} ms",
        f"Avg        : {_fmt_ms(snapshot.avg_ms, total)} ms",
        f"Errors     : {snapshot.failed}",
    ]
    if snapshot.dropped_iterations:
        lines.append(f"Dropped    : {snapshot.dropped_iterations}")
    if violations:
        lines.append("Thresholds : FAILED")
        lines += [f"  x {v}" for v in violations]
    else:
        lines.append("Thresholds : passed")
    lines.append("=" * len(title))
    return "\n".join(lines) + "\n"


def _payload(
    snapshot: MetricsSnapshot,
    config: RunConfig,
    profile: LoadProfile,
    violations: list[str],
    start_dt: datetime | None,
    end_dt: datetime | None,
) -> dict[str, Any]:
    return {
        "title": report_title(config),
        "config": config_summary(config, profile),
        "start_datetime": start_dt.strftime("%Y-%m-%dT%H:%M:%SZ") if start_dt else None,
        "end_datetime": end_dt.strftime("%Y-%m-%dT%H:%M:%SZ") if end_dt else None,
        "metrics": snapshot.to_dict(),
        "threshold_violations": violations,
        "passed": not violations,
    }


def generate_json_report(
    output_path: str | Path,
    snapshot: MetricsSnapshot,
    config: RunConfig,
    profile: LoadProfile,
    violations: list[str],
    start_dt: datetime | None = None,
    end_dt: datetime | None = None,
) -> None:
    """Write the full metrics snapshot plus configuration and threshold results as JSON."""
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    payload = _payload(snapshot, config, profile, violations, start_dt, end_dt)
    out.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))


def generate_html_report(
    output_path: str | Path,
    snapshot: MetricsSnapshot,
    config: RunConfig,
    profile: LoadProfile,
    violations: list[str],
    start_dt: datetime | None = None,
    end_dt: datetime | None = None,
) -> None:
    """Single self-contained HTML page: configuration card, headline metrics table, raw snapshot."""
    env = Environment(
        loader=PackageLoader("beban", "templates"),
        autoescape=select_autoescape(["html", "xml"]),
    )
    template = env.get_template(REPORT_HTML_NAME)
    total = snapshot.total
    classes = snapshot.status_class_counts
    metrics_rows = [
        ("Total Requests", str(total), ""),
        (
            "Failed Rate (HTTP)",
            f"{snapshot.failed_rate * 100:.2f}%",
            "status-ok" if snapshot.failed_rate <= FAILED_RATE_OK_MAX else "status-bad",
        ),
        ("Check Pass Rate", f"{snapshot.pass_rate * 100:.2f}%", ""),
        (
            "Status Count (2xx / 4xx / 5xx / other)",
            f"{classes.get('2xx', 0)} / {classes.get('4xx', 0)} / {classes.get('5xx', 0)} / {classes.get('other', 0)}",
            "",
        ),
        ("Latency avg", f"{_fmt_ms(snapshot.avg_ms, total)} ms", ""),
        ("Latency p50", f"{_fmt_ms(snapshot.p50_ms, total)} ms", ""),
        ("Latency p95", f"{_fmt_ms(snapshot.p95_ms, total)} ms", ""),
        ("Latency p99", f"{_fmt_ms(snapshot.p99_ms, total)} ms", ""),
        ("Throughput", f"{snapshot.throughput:.2f} req/s", ""),
        ("Total Errors (checks)", str(snapshot.failed), ""),
        ("Dropped Iterations", str(snapshot.dropped_iterations), ""),
    ]
    raw_snapshot = orjson.dumps(snapshot.to_dict(), option=orjson.OPT_INDENT_2).decode("utf-8")
    html = template.render(
        title=report_title(config),
        config=config_summary(config, profile),
        metrics_rows=metrics_rows,
        violations=violations,
        passed=not violations,
        top_messages=list(snapshot.top_messages.items()),
        endpoint_counts=sorted(snapshot.endpoint_counts.items(), key=lambda x: -x[1]),
        raw_snapshot=raw_snapshot,
        summary_json_name=SUMMARY_JSON_NAME,
        start_datetime_str=start_dt.strftime(DATETIME_FMT) if start_dt else "",
        end_datetime_str=end_dt.strftime(DATETIME_FMT) if end_dt else "",
        generated_at=datetime.now(timezone.utc).strftime(DATETIME_FMT),
        beban_version=beban_version,
        python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
    )
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(html, encoding="utf-8")


def generate_junit_report(
    output_path: str | Path,
    snapshot: MetricsSnapshot,
    config: RunConfig,
    profile: LoadProfile,
    violations: list[str],
    start_dt: datetime | None = None,
) -> None:
    """JUnit XML for CI: one testcase per threshold, failed thresholds become failures."""
    import xml.etree.ElementTree as ET
    from xml.dom import minidom

    suite_name = f"beban.{config.endpoint.value}"
    failed_exprs = {v.split(" (actual", 1)[0]: v for v in violations}
    elapsed = f"{snapshot.duration_seconds:.3f}"
    testsuite = ET.Element(
        "testsuite",
        name=suite_name,
        tests=str(len(profile.thresholds)),
        failures=str(len(violations)),
        errors="0",
        skipped="0",
        time=elapsed,
    )
    if start_dt:
        testsuite.set("timestamp", start_dt.strftime("%Y-%m-%dT%H:%M:%S"))
    for t in profile.thresholds:
        testcase = ET.SubElement(
            testsuite,
            "testcase",
            name=t.expression,
            classname=f"{suite_name}.{profile.scenario.value}",
            time=elapsed,
        )
        if t.expression in failed_exprs:
            failure = ET.SubElement(testcase, "failure", message="threshold violated")
            failure.text = failed_exprs[t.expression]
    system_out = ET.SubElement(testsuite, "system-out")
    system_out.text = (
        f"total={snapshot.total} failed_rate={snapshot.failed_rate:.4f} "
        f"p95_ms={snapshot.p95_ms:.2f} p99_ms={snapshot.p99_ms:.2f}"
    )

    root = ET.Element("testsuites")
    root.append(testsuite)
    xml_str = minidom.parseString(ET.tostring(root, encoding="unicode", method="xml")).toprettyxml(indent="  ")
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(xml_str, encoding="utf-8")
