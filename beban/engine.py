"""Per-iteration execution: generate -> build -> send -> classify -> record -> think.

This module provides the hot path of a run:
- create_client: Shared async HTTP client factory (one per run)
- send_request: Single request with timing; never raises, always returns a verdict
- run_iteration: One full iteration against the aggregator
- run_vu_worker: VU loop that parks while its index is above the target VU count

Timing uses perf_counter_ns; latency covers send to fully read body.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

import httpx

from .classifier import classify, transport_failure
from .logging_config import get_logger
from .metrics import MetricsAggregator
from .models import EndpointFamily, RequestDescriptor, ResponseVerdict, RunConfig
from .params import ParamGenerator
from .request_builder import build_request

logger = get_logger("engine")

# Tuned for throughput: high connection limits, shared client.
DEFAULT_MAX_CONNECTIONS = 1000
DEFAULT_MAX_KEEPALIVE = 200
DEFAULT_KEEPALIVE_EXPIRY = 30.0
# How often a parked VU re-checks whether it may run (seconds)
VU_PARK_SEC = 0.05
NS_TO_MS = 1_000_000


class IterationContext:
    """Everything an iteration needs. Config is read-only; the aggregator is the only shared mutable state."""

    __slots__ = ("config", "client", "aggregator", "generator", "list_endpoint")

    def __init__(
        self,
        config: RunConfig,
        client: httpx.AsyncClient,
        aggregator: MetricsAggregator,
        generator: ParamGenerator | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.aggregator = aggregator
        self.generator = generator or ParamGenerator(config)
        self.list_endpoint = config.endpoint == EndpointFamily.PROPERTIES


async def create_client(
    config: RunConfig,
    http2: bool = True,
    limits: httpx.Limits | None = None,
) -> httpx.AsyncClient:
    """Create the shared async HTTP client for a run.

    Args:
        config: Supplies the request timeout and TLS verification flag
        http2: Enable HTTP/2 (multiplexing over fewer connections)
        limits: Custom connection limits (high defaults if not specified)

    Returns:
        Configured AsyncClient ready for use as async context manager
    """
    limits = limits or httpx.Limits(
        max_connections=DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections=DEFAULT_MAX_KEEPALIVE,
        keepalive_expiry=DEFAULT_KEEPALIVE_EXPIRY,
    )
    return httpx.AsyncClient(
        http2=http2,
        timeout=config.timeout_seconds,
        limits=limits,
        verify=not config.insecure,
    )


async def send_request(
    client: httpx.AsyncClient,
    req: RequestDescriptor,
    list_endpoint: bool = False,
    timeout: float | None = None,
) -> ResponseVerdict:
    """Send one request and classify the outcome.

    ``timeout`` caps the whole exchange (connect, send, body read). The client's
    own httpx timeout only bounds each phase separately.

    Note:
        This never raises: timeouts and transport errors become failed verdicts
        with status_code None.
    """
    start_ns = time.perf_counter_ns()
    try:
        r = await asyncio.wait_for(
            client.request(req.method, req.url, headers=req.headers, content=req.body),
            timeout,
        )
        body = r.content
    except httpx.TimeoutException as e:
        elapsed_ms = (time.perf_counter_ns() - start_ns) / NS_TO_MS
        return transport_failure(f"timeout: {str(e) or type(e).__name__}", elapsed_ms, req.tags)
    except asyncio.TimeoutError:
        elapsed_ms = (time.perf_counter_ns() - start_ns) / NS_TO_MS
        reason = f"exceeded {timeout}s" if timeout is not None else "TimeoutError"
        return transport_failure(f"timeout: {reason}", elapsed_ms, req.tags)
    except Exception as e:  # noqa: BLE001
        elapsed_ms = (time.perf_counter_ns() - start_ns) / NS_TO_MS
        return transport_failure(str(e) or type(e).__name__, elapsed_ms, req.tags)
    elapsed_ms = (time.perf_counter_ns() - start_ns) / NS_TO_MS
    return classify(r.status_code, body, elapsed_ms, list_endpoint=list_endpoint, tags=req.tags)


def _log_verdict(config: RunConfig, req: RequestDescriptor, verdict: ResponseVerdict) -> None:
    status = verdict.status_code if verdict.status_code is not None else "ERR"
    if config.show_message:
        logger.info("[%s] %s - %s", status, verdict.message or verdict.error or "(no message)", req.url)
    if config.log_fail and not verdict.passed:
        logger.error(
            'FAIL %s dur=%.2fms msg="%s" url=%s',
            status, verdict.latency_ms, verdict.message or verdict.error or "", req.url,
        )


async def run_iteration(ctx: IterationContext) -> ResponseVerdict:
    """One iteration. Records the verdict, logs it if asked, then sleeps the think time."""
    config = ctx.config
    req = build_request(ctx.generator.next(), config)
    verdict = await send_request(ctx.client, req, ctx.list_endpoint, config.timeout_seconds)
    ctx.aggregator.record(verdict)
    if config.show_message or config.log_fail:
        _log_verdict(config, req, verdict)
    if config.think_time_ms > 0:
        await asyncio.sleep(config.think_time_ms / 1000.0)
    return verdict


async def run_vu_worker(
    ctx: IterationContext,
    index: int,
    active_limit: Callable[[], int],
    stop_event: asyncio.Event,
) -> int:
    """Loop iterations while VU ``index`` is within the current target; park otherwise.

    Returns the number of iterations this VU completed.
    """
    done = 0
    is_set = stop_event.is_set
    while not is_set():
        if index >= active_limit():
            await asyncio.sleep(VU_PARK_SEC)
            continue
        await run_iteration(ctx)
        done += 1
    return done
