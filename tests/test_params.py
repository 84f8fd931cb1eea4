"""Unit tests for randomized parameter generation."""

from __future__ import annotations

import random

import pytest

from beban.models import (
    EndpointFamily,
    OtpVerifyParams,
    ProfileParams,
    PropertySearchParams,
    RunConfig,
)
from beban.params import ParamGenerator, generate_otp_params, generate_params, generate_property_params


def test_fixed_bounds_produce_fixed_params(properties_config: RunConfig) -> None:
    gen = ParamGenerator(properties_config)
    for _ in range(200):
        p = gen.next()
        assert isinstance(p, PropertySearchParams)
        assert p.city == "A"
        assert p.property_type == "x"
        assert p.min_price == 100
        assert p.max_price == 200


def test_min_price_always_below_max_price() -> None:
    config = RunConfig()
    rng = random.Random(1)
    for _ in range(1000):
        p = generate_property_params(config, rng)
        assert p.min_price < p.max_price
        assert p.max_price >= config.max_price_min


def test_overlapping_ranges_lift_max_price_above_min_price() -> None:
    config = RunConfig(min_price_min=500, min_price_max=900, max_price_min=100, max_price_max=600)
    rng = random.Random(2)
    for _ in range(1000):
        p = generate_property_params(config, rng)
        assert p.min_price < p.max_price


def test_max_price_forced_upward_when_range_exhausted() -> None:
    config = RunConfig(min_price_min=700, min_price_max=700, max_price_min=100, max_price_max=200)
    p = generate_property_params(config, random.Random(3))
    assert p.min_price == 700
    assert p.max_price == 701


def test_offset_within_bounds() -> None:
    config = RunConfig(max_offset=5, limit=25)
    rng = random.Random(4)
    offsets = set()
    for _ in range(500):
        p = generate_property_params(config, rng)
        assert 0 <= p.offset <= 5
        assert p.limit == 25
        offsets.add(p.offset)
    assert offsets == {0, 1, 2, 3, 4, 5}


def test_zero_max_offset_always_zero() -> None:
    config = RunConfig(max_offset=0)
    rng = random.Random(5)
    assert all(generate_property_params(config, rng).offset == 0 for _ in range(50))


def test_otp_params_drawn_from_pools() -> None:
    config = RunConfig(
        endpoint=EndpointFamily.VERIFY_OTP,
        identifiers=("alice", "bob"),
        otps=("111111", "222222"),
        purpose="register",
    )
    rng = random.Random(6)
    seen = set()
    for _ in range(200):
        p = generate_otp_params(config, rng)
        assert p.identifier in config.identifiers
        assert p.otp in config.otps
        assert p.purpose == "register"
        seen.add((p.identifier, p.otp))
    # identifier and otp are independent draws
    assert len(seen) == 4


@pytest.mark.parametrize(
    ("endpoint", "expected_type"),
    [
        (EndpointFamily.PROPERTIES, PropertySearchParams),
        (EndpointFamily.VERIFY_OTP, OtpVerifyParams),
        (EndpointFamily.USER_PROFILE, ProfileParams),
    ],
)
def test_generate_params_dispatch(endpoint: EndpointFamily, expected_type: type) -> None:
    config = RunConfig(endpoint=endpoint)
    assert isinstance(generate_params(config, random.Random(0)), expected_type)


def test_same_seed_same_sequence() -> None:
    config = RunConfig(seed=42)
    gen_a, gen_b = ParamGenerator(config), ParamGenerator(config)
    assert [gen_a.next() for _ in range(20)] == [gen_b.next() for _ in range(20)]
    assert ParamGenerator(config).next() == ParamGenerator(RunConfig(), seed=42).next()


def test_property_params_pair_order() -> None:
    p = PropertySearchParams(city="A", min_price=1, max_price=2, property_type="x", offset=3, limit=10)
    assert [k for k, _ in p.as_pairs()] == ["city", "minPrice", "maxPrice", "propertyType", "offset", "limit"]
