"""Response classification: status bucket, list-shape check, best-effort message.

Nothing in here raises on a bad body. Bodies are parsed once into an optional
value and every shape check guards on that value explicitly.
"""

from __future__ import annotations

from typing import Any

import orjson

from .models import ResponseVerdict, StatusClass

MESSAGE_FIELDS = ("message", "msg", "status", "error")


def status_class(status_code: int | None) -> StatusClass:
    if status_code is None:
        return StatusClass.OTHER
    if 200 <= status_code < 300:
        return StatusClass.S2XX
    if 400 <= status_code < 500:
        return StatusClass.S4XX
    if 500 <= status_code < 600:
        return StatusClass.S5XX
    return StatusClass.OTHER


def parse_body(body: bytes | str | None) -> Any:
    """Decoded JSON value, or None for empty or malformed bodies (a JSON null body is also None)."""
    if not body:
        return None
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError:
        return None


def extract_message(parsed: Any) -> str:
    """First truthy field among message, msg, status, error; "" otherwise."""
    if not isinstance(parsed, dict):
        return ""
    for key in MESSAGE_FIELDS:
        value = parsed.get(key)
        if value:
            return value if isinstance(value, str) else str(value)
    return ""


def is_listish(parsed: Any) -> bool:
    """A list, ``{"data": [...]}`` or ``{"data": {"items": [...]}}``."""
    if isinstance(parsed, list):
        return True
    if not isinstance(parsed, dict):
        return False
    data = parsed.get("data")
    if isinstance(data, list):
        return True
    return isinstance(data, dict) and isinstance(data.get("items"), list)


def classify(
    status_code: int,
    body: bytes | str | None,
    latency_ms: float,
    list_endpoint: bool = False,
    tags: dict[str, str] | None = None,
) -> ResponseVerdict:
    """Classify a completed response.

    Args:
        status_code: HTTP status of the response
        body: Raw response body (may be empty or not JSON)
        latency_ms: Time from send to full response
        list_endpoint: Require a list-ish JSON body in addition to a 2xx status
        tags: Request tags carried through to the metrics breakdown

    Returns:
        ResponseVerdict; never raises for malformed bodies
    """
    parsed = parse_body(body)
    ok_status = 200 <= status_code < 300
    passed = ok_status and (not list_endpoint or is_listish(parsed))
    return ResponseVerdict(
        status_code=status_code,
        status_class=status_class(status_code),
        passed=passed,
        message=extract_message(parsed),
        latency_ms=latency_ms,
        error=None,
        tags=tags,
    )


def transport_failure(
    error: str,
    latency_ms: float,
    tags: dict[str, str] | None = None,
) -> ResponseVerdict:
    """Verdict for a request that produced no response (timeout, connection refused...)."""
    return ResponseVerdict(
        status_code=None,
        status_class=StatusClass.OTHER,
        passed=False,
        message="",
        latency_ms=latency_ms,
        error=error,
        tags=tags,
    )
