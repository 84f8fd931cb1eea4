"""Turn generated parameters into RequestDescriptor values. No network I/O here."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from urllib.parse import quote

import orjson

from .models import (
    EndpointFamily,
    GeneratedParams,
    OtpVerifyParams,
    PropertySearchParams,
    RequestDescriptor,
    RequestMode,
    RunConfig,
)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"
# Characters encodeURIComponent leaves unescaped
_URI_COMPONENT_SAFE = "-_.!~*'()"


def _effective_pairs(pairs: Iterable[tuple[str, Any]]) -> tuple[tuple[str, str], ...]:
    """Drop None and empty-string values; stringify the rest, preserving order."""
    out: list[tuple[str, str]] = []
    for key, value in pairs:
        if value is None:
            continue
        text = str(value)
        if text == "":
            continue
        out.append((key, text))
    return tuple(out)


def _encode_pairs(pairs: Iterable[tuple[str, str]]) -> str:
    return "&".join(
        f"{quote(k, safe=_URI_COMPONENT_SAFE)}={quote(v, safe=_URI_COMPONENT_SAFE)}" for k, v in pairs
    )


def build_query(pairs: Iterable[tuple[str, Any]]) -> str:
    """``?k=v&...`` for the non-empty pairs, or ``""`` when nothing is left."""
    qs = _encode_pairs(_effective_pairs(pairs))
    return f"?{qs}" if qs else ""


def build_form_body(pairs: Iterable[tuple[str, Any]]) -> bytes:
    return _encode_pairs(_effective_pairs(pairs)).encode("ascii")


def _base_headers(config: RunConfig) -> dict[str, str]:
    headers = dict(config.static_headers)
    headers["Accept"] = JSON_CONTENT_TYPE
    return headers


def _build_property_search(
    params: PropertySearchParams,
    config: RunConfig,
    mode: RequestMode,
) -> RequestDescriptor:
    pairs = _effective_pairs(params.as_pairs())
    headers = _base_headers(config)
    tags = {
        "endpoint": config.properties_path,
        "mode": mode.value,
        "scenario": config.scenario.value,
        "city": params.city,
        "propertyType": params.property_type,
    }
    if mode == RequestMode.FORM:
        headers["Content-Type"] = FORM_CONTENT_TYPE
        return RequestDescriptor(
            method=config.form_method.upper(),
            url=config.target_url,
            headers=headers,
            body=build_form_body(pairs),
            params=pairs,
            tags=tags,
        )
    return RequestDescriptor(
        method="GET",
        url=config.target_url + build_query(pairs),
        headers=headers,
        body=None,
        params=pairs,
        tags=tags,
    )


def _build_verify_otp(params: OtpVerifyParams, config: RunConfig) -> RequestDescriptor:
    headers = _base_headers(config)
    headers["Content-Type"] = JSON_CONTENT_TYPE
    payload = {"identifier": params.identifier, "otp": params.otp, "purpose": params.purpose}
    return RequestDescriptor(
        method="POST",
        url=config.target_url,
        headers=headers,
        body=orjson.dumps(payload),
        params=_effective_pairs(params.as_pairs()),
        tags={"endpoint": config.verify_path, "mode": "json", "scenario": config.scenario.value},
    )


def _build_user_profile(config: RunConfig) -> RequestDescriptor:
    headers = _base_headers(config)
    if config.token:
        headers["Authorization"] = f"Bearer {config.token}"
    return RequestDescriptor(
        method="GET",
        url=config.target_url,
        headers=headers,
        tags={"endpoint": config.profile_path, "mode": "query", "scenario": config.scenario.value},
    )


def build_request(
    params: GeneratedParams,
    config: RunConfig,
    mode: RequestMode | None = None,
) -> RequestDescriptor:
    """Build the request for one iteration.

    Args:
        params: Freshly generated parameters
        config: Run configuration (target URL, headers, form method)
        mode: Query or form encoding for property search; defaults to config.request_mode

    Returns:
        RequestDescriptor carrying method, URL, headers, optional body and metric tags
    """
    if isinstance(params, PropertySearchParams):
        return _build_property_search(params, config, mode or config.request_mode)
    if isinstance(params, OtpVerifyParams):
        return _build_verify_otp(params, config)
    if config.endpoint == EndpointFamily.USER_PROFILE:
        return _build_user_profile(config)
    raise TypeError(f"No request builder for {type(params).__name__} on endpoint {config.endpoint.value}")
