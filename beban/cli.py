"""CLI entry point for beban.

Speed-first design:
- Uses uvloop for a faster event loop when it is installed
- GC disabled during test execution for consistent latency
"""

from __future__ import annotations

import argparse
import asyncio
import gc
import sys
from typing import Any, Coroutine

# Try to use uvloop for 2-4x faster async performance
_HAS_UVLOOP = False
try:
    import uvloop
    _HAS_UVLOOP = True
except ImportError:
    pass

from . import __version__
from .config import apply_overrides, load_config, load_config_from_env, parse_duration, validate_run_config
from .exceptions import BebanError
from .logging_config import get_logger
from .models import EndpointFamily, RunConfig, ScenarioName
from .runner import run_load_test

logger = get_logger("cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_THRESHOLDS_FAILED = 2
EXIT_INTERRUPTED = 130


def _run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run async coroutine with uvloop when available; GC disabled for the duration."""
    gc_was_enabled = gc.isenabled()
    gc.disable()
    try:
        if _HAS_UVLOOP:
            return uvloop.run(coro)
        return asyncio.run(coro)
    finally:
        if gc_was_enabled:
            gc.enable()
        gc.collect()


def _base_config(args: argparse.Namespace) -> RunConfig:
    if args.config:
        return load_config(args.config)
    if args.from_env:
        return load_config_from_env()
    config = RunConfig()
    validate_run_config(config)
    return config


def build_config(args: argparse.Namespace) -> RunConfig:
    """Config file or environment (or built-in defaults), then CLI overrides on top."""
    base = _base_config(args)
    return apply_overrides(
        base,
        endpoint=args.endpoint,
        host=args.host,
        scenario=args.scenario,
        duration_seconds=parse_duration(args.duration) if args.duration is not None else None,
        vus=args.vus,
        rps=args.rps,
        think_time_ms=args.think_time_ms,
        seed=args.seed,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beban",
        description="HTTP load generator for property search, OTP verification and profile endpoints. "
        "Async HTTP/2, named scenarios with thresholds, text/JSON/HTML reports.",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "-f",
        "--config",
        default=None,
        help="Path to YAML config (optional: built-in defaults are used without -f)",
    )
    source.add_argument(
        "--from-env",
        action="store_true",
        dest="from_env",
        help="Read config from environment variables (HOST, SCENARIO, VUS, RPS, CITIES, ...)",
    )
    parser.add_argument(
        "-e",
        "--endpoint",
        choices=[e.value for e in EndpointFamily],
        default=None,
        help="Override config: endpoint family to load",
    )
    parser.add_argument("--host", default=None, help="Override config: target host, e.g. http://localhost:18080")
    parser.add_argument(
        "--scenario",
        choices=[s.value for s in ScenarioName],
        default=None,
        help="Override config: load scenario",
    )
    parser.add_argument("--duration", default=None, metavar="DUR", help="Override config: duration (90, 30s, 5m, 1h30m)")
    parser.add_argument("--vus", type=int, default=None, help="Override config: virtual users")
    parser.add_argument("--rps", type=int, default=None, help="Override config: target iterations per second")
    parser.add_argument("--think-time", type=float, default=None, metavar="MS", dest="think_time_ms", help="Override config: think time between iterations (ms)")
    parser.add_argument("--seed", type=int, default=None, help="Override config: random seed for parameter generation")
    parser.add_argument(
        "-o",
        "--output",
        default=".",
        help="Directory for summary.json and report.html (default: current directory)",
    )
    parser.add_argument(
        "--junit",
        metavar="PATH",
        dest="junit_path",
        help="Also write JUnit XML report to PATH (for CI)",
    )
    parser.add_argument(
        "--no-live",
        action="store_true",
        help="Disable live Rich dashboard (headless mode)",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"beban {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    def handle_error(e: BaseException) -> int:
        if isinstance(e, BebanError):
            print(f"Error: {e.message}", file=sys.stderr)
            return EXIT_ERROR
        if isinstance(e, (FileNotFoundError, ValueError)):
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR
        logger.exception("Unexpected error")
        print("Error: An unexpected error occurred. Check logs for details.", file=sys.stderr)
        return EXIT_ERROR

    try:
        config = build_config(args)
        result = _run_async(
            run_load_test(
                config,
                output_dir=args.output,
                live=not args.no_live,
                junit_path=args.junit_path,
            )
        )
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as e:
        return handle_error(e)
    return EXIT_OK if result.passed else EXIT_THRESHOLDS_FAILED


if __name__ == "__main__":
    sys.exit(main())
