"""Randomized request parameters, one fresh value per iteration.

Generators are pure functions of (RunConfig, random source): no state carries over
between calls. Pool emptiness and min/max ordering are checked by
config.validate_run_config before the run, not here.
"""

from __future__ import annotations

import random

from .models import (
    EndpointFamily,
    GeneratedParams,
    OtpVerifyParams,
    ProfileParams,
    PropertySearchParams,
    RunConfig,
)


def generate_property_params(config: RunConfig, rng: random.Random) -> PropertySearchParams:
    """Pick a property search: city/type from pools, random price window and page offset.

    maxPrice's lower bound is lifted to minPrice + 1 so the window is never empty,
    even when the configured min and max price ranges overlap.
    """
    city = rng.choice(config.cities)
    min_price = rng.randint(config.min_price_min, config.min_price_max)
    max_low = max(min_price + 1, config.max_price_min)
    max_price = rng.randint(max_low, max(max_low, config.max_price_max))
    property_type = rng.choice(config.property_types)
    offset = rng.randint(0, config.max_offset)
    return PropertySearchParams(
        city=city,
        min_price=min_price,
        max_price=max_price,
        property_type=property_type,
        offset=offset,
        limit=config.limit,
    )


def generate_otp_params(config: RunConfig, rng: random.Random) -> OtpVerifyParams:
    """Identifier and OTP are drawn independently."""
    return OtpVerifyParams(
        identifier=rng.choice(config.identifiers),
        otp=rng.choice(config.otps),
        purpose=config.purpose,
    )


def generate_params(config: RunConfig, rng: random.Random) -> GeneratedParams:
    if config.endpoint == EndpointFamily.PROPERTIES:
        return generate_property_params(config, rng)
    if config.endpoint == EndpointFamily.VERIFY_OTP:
        return generate_otp_params(config, rng)
    return ProfileParams()


class ParamGenerator:
    """Binds a RunConfig to one random source. Same seed, same parameter sequence."""

    __slots__ = ("_config", "_rng")

    def __init__(self, config: RunConfig, seed: int | None = None) -> None:
        self._config = config
        self._rng = random.Random(seed if seed is not None else config.seed)

    def next(self) -> GeneratedParams:
        return generate_params(self._config, self._rng)
