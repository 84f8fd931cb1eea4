"""Unit tests for response classification."""

from __future__ import annotations

import pytest

from beban.classifier import classify, extract_message, is_listish, parse_body, status_class, transport_failure
from beban.models import StatusClass


def test_list_endpoint_nested_items_passes() -> None:
    v = classify(200, b'{"data":{"items":[1,2]}}', 12.0, list_endpoint=True)
    assert v.passed is True
    assert v.status_class == StatusClass.S2XX
    assert v.http_failed is False


def test_404_unparsable_body() -> None:
    v = classify(404, b"<html>nope</html>", 5.0, list_endpoint=True)
    assert v.passed is False
    assert v.status_class == StatusClass.S4XX
    assert v.message == ""
    assert v.http_failed is True


def test_list_endpoint_data_not_a_list_fails() -> None:
    v = classify(200, b'{"data":"not-a-list"}', 5.0, list_endpoint=True)
    assert v.passed is False
    assert v.status_class == StatusClass.S2XX
    assert v.http_failed is False


def test_non_list_endpoint_only_needs_2xx() -> None:
    assert classify(200, b'{"data":"ok"}', 1.0).passed is True
    assert classify(204, b"", 1.0).passed is True
    assert classify(500, b'{"message":"boom"}', 1.0).passed is False


@pytest.mark.parametrize(
    "body",
    [b"[]", b"[1,2,3]", b'{"data":[]}', b'{"data":{"items":[]}}'],
)
def test_listish_shapes(body: bytes) -> None:
    assert is_listish(parse_body(body)) is True


@pytest.mark.parametrize(
    "body",
    [b"", b"null", b"42", b'"x"', b"{}", b'{"items":[1]}', b'{"data":{"items":"x"}}', b'{"data":null}'],
)
def test_not_listish_shapes(body: bytes) -> None:
    assert is_listish(parse_body(body)) is False


def test_parse_body_malformed_returns_none() -> None:
    assert parse_body(b"{broken") is None
    assert parse_body(None) is None
    assert parse_body("") is None
    assert parse_body('{"a":1}') == {"a": 1}


def test_extract_message_priority() -> None:
    assert extract_message({"message": "m", "msg": "x", "status": "s", "error": "e"}) == "m"
    assert extract_message({"message": "", "msg": "x"}) == "x"
    assert extract_message({"status": 401}) == "401"
    assert extract_message({"error": "Unauthorized"}) == "Unauthorized"
    assert extract_message({"other": 1}) == ""
    assert extract_message([{"message": "m"}]) == ""
    assert extract_message(None) == ""


def test_classify_carries_message_and_tags() -> None:
    v = classify(400, b'{"msg":"bad otp"}', 3.0, tags={"endpoint": "/verify"})
    assert v.message == "bad otp"
    assert v.tags == {"endpoint": "/verify"}
    assert v.latency_ms == 3.0


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (200, StatusClass.S2XX),
        (299, StatusClass.S2XX),
        (301, StatusClass.OTHER),
        (404, StatusClass.S4XX),
        (429, StatusClass.S4XX),
        (503, StatusClass.S5XX),
        (100, StatusClass.OTHER),
        (None, StatusClass.OTHER),
    ],
)
def test_status_class(code: int | None, expected: StatusClass) -> None:
    assert status_class(code) == expected


def test_transport_failure_verdict() -> None:
    v = transport_failure("timeout: read", 30000.0)
    assert v.status_code is None
    assert v.status_class == StatusClass.OTHER
    assert v.passed is False
    assert v.http_failed is True
    assert v.error == "timeout: read"
