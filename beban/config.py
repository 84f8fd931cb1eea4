"""Run configuration: YAML file or environment variables, validated once before the run."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .exceptions import BebanConfigError
from .logging_config import get_logger
from .models import EndpointFamily, RunConfig, ScenarioName

logger = get_logger("config")

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})

# Environment variable -> RunConfig field. K6_SCENARIO is accepted as an alias of SCENARIO.
ENV_KEYS: dict[str, str] = {
    "HOST": "host",
    "BASE_PATH": "base_path",
    "ENDPOINT": "endpoint",
    "SCENARIO": "scenario",
    "K6_SCENARIO": "scenario",
    "DURATION": "duration",
    "VUS": "vus",
    "RPS": "rps",
    "THINK_MS": "think_time_ms",
    "TIMEOUT": "timeout",
    "CITIES": "cities",
    "TYPES": "property_types",
    "IDENTIFIERS": "identifiers",
    "OTPS": "otps",
    "PURPOSE": "purpose",
    "PROPERTIES_PATH": "properties_path",
    "VERIFY_PATH": "verify_path",
    "TARGET_PATH": "profile_path",
    "TOKEN": "token",
    "MIN_PRICE_MIN": "min_price_min",
    "MIN_PRICE_MAX": "min_price_max",
    "MAX_PRICE_MIN": "max_price_min",
    "MAX_PRICE_MAX": "max_price_max",
    "LIMIT": "limit",
    "MAX_OFFSET": "max_offset",
    "LOG_FAIL": "log_fail",
    "SHOW_MSG": "show_message",
    "USE_FORM": "use_form",
    "FORM_METHOD": "form_method",
    "INSECURE": "insecure",
    "SEED": "seed",
}

_INT_FIELDS = (
    "vus", "rps", "min_price_min", "min_price_max", "max_price_min",
    "max_price_max", "limit", "max_offset",
)
_BOOL_FIELDS = ("log_fail", "show_message", "use_form", "insecure")
_POOL_FIELDS = ("cities", "property_types", "identifiers", "otps")
_STR_FIELDS = (
    "host", "base_path", "purpose", "properties_path", "verify_path",
    "profile_path", "token", "form_method",
)
_PRICE_BOUNDS = (
    ("min_price_min", "min_price_max"),
    ("max_price_min", "max_price_max"),
)


def parse_duration(value: str | int | float) -> float:
    """Parse ``90``, ``30s``, ``5m``, ``1h30m`` or ``500ms`` into seconds."""
    if isinstance(value, bool):
        raise BebanConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower()
    if not text:
        raise BebanConfigError("Duration must not be empty")
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for m in _DURATION_RE.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(text) or pos == 0:
        raise BebanConfigError(f"Invalid duration: {value!r}", context={"expected": "e.g. 30s, 5m, 1h30m"})
    return total


def format_duration(seconds: float) -> str:
    """Inverse of parse_duration for display: 300 -> '5m', 90 -> '1m30s'."""
    if seconds <= 0:
        return "0s"
    whole = int(seconds)
    if whole != seconds:
        return f"{seconds:g}s"
    h, rest = divmod(whole, 3600)
    m, s = divmod(rest, 60)
    out = ""
    if h:
        out += f"{h}h"
    if m:
        out += f"{m}m"
    if s or not out:
        out += f"{s}s"
    return out


def split_pool(value: str | list[Any] | tuple[Any, ...] | None) -> tuple[str, ...]:
    """Comma-separated string or YAML list -> tuple of trimmed, non-blank values."""
    if value is None:
        return ()
    if isinstance(value, str):
        items: list[Any] = value.split(",")
    else:
        items = list(value)
    return tuple(s for s in (str(v).strip() for v in items if v is not None) if s)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_STRINGS


def _parse_scenario(value: Any) -> ScenarioName:
    name = str(value or "constant").strip().lower()
    try:
        return ScenarioName(name)
    except ValueError:
        logger.debug("Unknown scenario '%s', defaulting to 'constant'", name)
        return ScenarioName.CONSTANT


def _parse_endpoint(value: Any) -> EndpointFamily:
    name = str(value or EndpointFamily.PROPERTIES.value).strip().lower().replace("-", "_")
    try:
        return EndpointFamily(name)
    except ValueError as e:
        choices = ", ".join(f.value for f in EndpointFamily)
        raise BebanConfigError(f"Unknown endpoint '{value}' (expected one of: {choices})") from e


def _build(raw: Mapping[str, Any], source: str) -> RunConfig:
    """Turn a flat mapping of RunConfig-ish keys into a validated RunConfig."""
    kwargs: dict[str, Any] = {}
    try:
        for key in _STR_FIELDS:
            if raw.get(key) is not None:
                kwargs[key] = str(raw[key]).strip()
        for key in _INT_FIELDS:
            if raw.get(key) not in (None, ""):
                kwargs[key] = int(raw[key])
        for key in _BOOL_FIELDS:
            if raw.get(key) not in (None, ""):
                kwargs[key] = _parse_bool(raw[key])
        for key in _POOL_FIELDS:
            if raw.get(key) is not None:
                kwargs[key] = split_pool(raw[key])
        if raw.get("think_time_ms") not in (None, ""):
            kwargs["think_time_ms"] = float(raw["think_time_ms"])
        if raw.get("duration") not in (None, ""):
            kwargs["duration_seconds"] = parse_duration(raw["duration"])
        elif raw.get("duration_seconds") not in (None, ""):
            kwargs["duration_seconds"] = float(raw["duration_seconds"])
        if raw.get("timeout") not in (None, ""):
            kwargs["timeout_seconds"] = parse_duration(raw["timeout"])
        elif raw.get("timeout_seconds") not in (None, ""):
            kwargs["timeout_seconds"] = float(raw["timeout_seconds"])
        if raw.get("seed") not in (None, ""):
            kwargs["seed"] = int(raw["seed"])
        headers = raw.get("headers")
        if headers is not None:
            if not isinstance(headers, Mapping):
                raise BebanConfigError("headers must be a mapping", context={"source": source})
            kwargs["static_headers"] = tuple((str(k), str(v)) for k, v in headers.items())
    except (TypeError, ValueError) as e:
        raise BebanConfigError(
            f"Invalid config value: {e}",
            context={"source": source},
            original_error=e,
        ) from e

    config = RunConfig(
        endpoint=_parse_endpoint(raw.get("endpoint")),
        scenario=_parse_scenario(raw.get("scenario")),
        **kwargs,
    )
    validate_run_config(config)
    logger.debug(
        "Loaded config from %s: endpoint=%s, scenario=%s, vus=%s, rps=%s, duration=%ss",
        source, config.endpoint.value, config.scenario.value, config.vus, config.rps, config.duration_seconds,
    )
    return config


def _check_pool(name: str, values: tuple[str, ...]) -> None:
    cleaned = split_pool(values)
    if not cleaned:
        raise BebanConfigError(f"{name} pool is empty")
    if cleaned != tuple(values):
        raise BebanConfigError(
            f"{name} pool contains blank or untrimmed values",
            context={name: list(values)},
        )


def validate_run_config(c: RunConfig) -> None:
    """Validate RunConfig once before any iteration runs. Raises BebanConfigError if invalid."""
    parsed = urlparse(c.host)
    if not parsed.scheme or not parsed.netloc:
        raise BebanConfigError("host must include scheme and host, e.g. http://localhost:18080", context={"host": c.host})
    if c.duration_seconds <= 0:
        raise BebanConfigError("duration must be > 0")
    # 0 lets each scenario pick its own VU count (spike 300, soak 30)
    if c.vus < 0:
        raise BebanConfigError("vus must be >= 0")
    if c.rps < 0:
        raise BebanConfigError("rps must be >= 0")
    if c.think_time_ms < 0:
        raise BebanConfigError("think_time_ms must be >= 0")
    if c.timeout_seconds <= 0:
        raise BebanConfigError("timeout must be > 0")
    if c.form_method.upper() not in ("GET", "POST"):
        raise BebanConfigError("form_method must be GET or POST", context={"form_method": c.form_method})

    if c.endpoint == EndpointFamily.PROPERTIES:
        _check_pool("cities", c.cities)
        _check_pool("property types", c.property_types)
        for low_key, high_key in _PRICE_BOUNDS:
            low, high = getattr(c, low_key), getattr(c, high_key)
            if low > high:
                raise BebanConfigError(
                    f"{low_key} must be <= {high_key}",
                    context={low_key: low, high_key: high},
                )
        if c.min_price_min < 0:
            raise BebanConfigError("min_price_min must be >= 0")
        if c.limit < 0:
            raise BebanConfigError("limit must be >= 0")
        if c.max_offset < 0:
            raise BebanConfigError("max_offset must be >= 0")
    elif c.endpoint == EndpointFamily.VERIFY_OTP:
        _check_pool("identifiers", c.identifiers)
        _check_pool("otps", c.otps)


def load_config(path: str | Path) -> RunConfig:
    """Load run configuration from a YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated RunConfig instance

    Raises:
        BebanConfigError: If file not found, invalid YAML, or validation fails
    """
    p = Path(path)
    if not p.exists():
        raise BebanConfigError(f"Config file not found: {path}", context={"path": str(path)})

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.exception("Failed to parse YAML config file")
        raise BebanConfigError(
            f"Invalid YAML syntax in config file: {e}",
            context={"path": str(path)},
            original_error=e,
        ) from e
    except OSError as e:
        logger.exception("Failed to read config file")
        raise BebanConfigError(
            f"Cannot read config file: {e}",
            context={"path": str(path)},
            original_error=e,
        ) from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise BebanConfigError(
            "Config must be a YAML object/dictionary",
            context={"path": str(path), "actual_type": type(raw).__name__},
        )
    return _build(raw, source=str(p))


def load_config_from_env(environ: Mapping[str, str] | None = None) -> RunConfig:
    """Build RunConfig from environment variables (HOST, SCENARIO, VUS, CITIES, ...)."""
    env = os.environ if environ is None else environ
    raw: dict[str, Any] = {}
    for env_key, field_name in ENV_KEYS.items():
        value = env.get(env_key)
        if value is None or field_name in raw:
            continue
        raw[field_name] = value
    return _build(raw, source="environment")


def apply_overrides(config: RunConfig, **overrides: Any) -> RunConfig:
    """Return a copy of config with non-None overrides applied, re-validated."""
    changes = {k: v for k, v in overrides.items() if v is not None}
    if not changes:
        return config
    if "scenario" in changes and not isinstance(changes["scenario"], ScenarioName):
        changes["scenario"] = _parse_scenario(changes["scenario"])
    if "endpoint" in changes and not isinstance(changes["endpoint"], EndpointFamily):
        changes["endpoint"] = _parse_endpoint(changes["endpoint"])
    try:
        merged = replace(config, **changes)
    except TypeError as e:
        raise BebanConfigError(f"Invalid override: {e}", original_error=e) from e
    validate_run_config(merged)
    return merged
