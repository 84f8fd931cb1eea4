"""Data models for the beban load harness.

Optimized for the per-iteration hot path:
- __slots__ on RequestDescriptor and ResponseVerdict (allocated once per iteration)
- Frozen dataclasses for values shared read-only across all iterations
- Enums for endpoint family, request mode, scenario and executor
"""

from __future__ import annotations

import operator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class EndpointFamily(str, Enum):
    """Which REST endpoint an iteration targets."""

    PROPERTIES = "properties"  # GET property search, list response
    VERIFY_OTP = "verify_otp"  # POST JSON identifier/otp/purpose
    USER_PROFILE = "user_profile"  # GET with bearer token


class RequestMode(str, Enum):
    """Parameter encoding for the property search endpoint."""

    QUERY = "query"
    FORM = "form"


class ScenarioName(str, Enum):
    """Named load shapes."""

    SMOKE = "smoke"
    RAMP = "ramp"
    SPIKE = "spike"
    SOAK = "soak"
    CONSTANT = "constant"


class Executor(str, Enum):
    """How a load profile is driven: by concurrent VUs or by arrival rate."""

    RAMPING_VUS = "ramping-vus"
    CONSTANT_VUS = "constant-vus"
    RAMPING_ARRIVAL_RATE = "ramping-arrival-rate"
    CONSTANT_ARRIVAL_RATE = "constant-arrival-rate"

    @property
    def is_arrival_rate(self) -> bool:
        return self in (Executor.RAMPING_ARRIVAL_RATE, Executor.CONSTANT_ARRIVAL_RATE)


class StatusClass(str, Enum):
    """Status-code bucket used for counters and reports."""

    S2XX = "2xx"
    S4XX = "4xx"
    S5XX = "5xx"
    OTHER = "other"


DEFAULT_CITIES = ("Jakarta Selatan", "Jakarta", "Bandung", "Surabaya")
DEFAULT_PROPERTY_TYPES = ("rumah", "apartemen", "ruko")
DEFAULT_IDENTIFIERS = ("testingiano",)
DEFAULT_OTPS = ("000000",)


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Process-wide run configuration. Built once at startup, shared read-only by all iterations."""

    host: str = "http://localhost:18080"
    base_path: str = ""
    endpoint: EndpointFamily = EndpointFamily.PROPERTIES
    scenario: ScenarioName = ScenarioName.CONSTANT
    duration_seconds: float = 300.0
    vus: int = 50
    rps: int = 100
    think_time_ms: float = 250.0
    timeout_seconds: float = 30.0
    # Value pools
    cities: tuple[str, ...] = DEFAULT_CITIES
    property_types: tuple[str, ...] = DEFAULT_PROPERTY_TYPES
    identifiers: tuple[str, ...] = DEFAULT_IDENTIFIERS
    otps: tuple[str, ...] = DEFAULT_OTPS
    purpose: str = "login"
    # Endpoint paths (joined after host + base_path)
    properties_path: str = "/properties"
    verify_path: str = "/api/v1/auth/verify-otp"
    profile_path: str = "/api/v1/user/profile"
    token: str = ""
    # Numeric ranges
    min_price_min: int = 100_000_000
    min_price_max: int = 500_000_000
    max_price_min: int = 600_000_000
    max_price_max: int = 2_000_000_000
    limit: int = 10
    max_offset: int = 1000
    # Flags
    log_fail: bool = False
    show_message: bool = False
    use_form: bool = False
    form_method: str = "GET"
    insecure: bool = False
    seed: int | None = None
    # (name, value) pairs; a tuple keeps the frozen config hashable
    static_headers: tuple[tuple[str, str], ...] = ()

    @property
    def request_mode(self) -> RequestMode:
        return RequestMode.FORM if self.use_form else RequestMode.QUERY

    @property
    def base_url(self) -> str:
        return self.host.rstrip("/") + self.base_path.rstrip("/")

    @property
    def endpoint_path(self) -> str:
        if self.endpoint == EndpointFamily.VERIFY_OTP:
            return self.verify_path
        if self.endpoint == EndpointFamily.USER_PROFILE:
            return self.profile_path
        return self.properties_path

    @property
    def target_url(self) -> str:
        return self.base_url + self.endpoint_path


@dataclass(frozen=True, slots=True)
class PropertySearchParams:
    city: str
    min_price: int
    max_price: int
    property_type: str
    offset: int
    limit: int

    def as_pairs(self) -> list[tuple[str, Any]]:
        """Wire names in stable order."""
        return [
            ("city", self.city),
            ("minPrice", self.min_price),
            ("maxPrice", self.max_price),
            ("propertyType", self.property_type),
            ("offset", self.offset),
            ("limit", self.limit),
        ]


@dataclass(frozen=True, slots=True)
class OtpVerifyParams:
    identifier: str
    otp: str
    purpose: str

    def as_pairs(self) -> list[tuple[str, Any]]:
        return [("identifier", self.identifier), ("otp", self.otp), ("purpose", self.purpose)]


@dataclass(frozen=True, slots=True)
class ProfileParams:
    """The profile endpoint takes no parameters."""

    def as_pairs(self) -> list[tuple[str, Any]]:
        return []


GeneratedParams = PropertySearchParams | OtpVerifyParams | ProfileParams


class RequestDescriptor:
    """A fully formed HTTP request, built without any network I/O.

    Uses __slots__; one instance is allocated per iteration.
    """

    __slots__ = ("method", "url", "headers", "body", "params", "tags")

    def __init__(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None = None,
        params: tuple[tuple[str, str], ...] = (),
        tags: dict[str, str] | None = None,
    ) -> None:
        self.method = method
        self.url = url
        self.headers = headers
        self.body = body
        self.params = params
        self.tags = tags if tags is not None else {}

    def __repr__(self) -> str:
        return f"RequestDescriptor(method={self.method!r}, url={self.url!r}, body={self.body!r})"


class ResponseVerdict:
    """Classification of one completed (or failed) request.

    status_code is None when the request never produced a response
    (timeout, connection error).
    """

    __slots__ = ("status_code", "status_class", "passed", "message", "latency_ms", "error", "tags")

    def __init__(
        self,
        status_code: int | None,
        status_class: StatusClass,
        passed: bool,
        message: str,
        latency_ms: float,
        error: str | None = None,
        tags: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.status_class = status_class
        self.passed = passed
        self.message = message
        self.latency_ms = latency_ms
        self.error = error
        self.tags = tags if tags is not None else {}

    @property
    def http_failed(self) -> bool:
        """Transport error or status >= 400 (independent of body checks)."""
        return self.status_code is None or self.status_code >= 400

    def __repr__(self) -> str:
        return (
            f"ResponseVerdict(status={self.status_code}, class={self.status_class.value}, "
            f"passed={self.passed}, latency_ms={self.latency_ms:.2f})"
        )


_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
}


@dataclass(frozen=True, slots=True)
class Threshold:
    """Pass/fail expression over one snapshot metric, e.g. ``p95_ms < 800``."""

    metric: str
    op: str
    value: float

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported threshold operator: {self.op!r}")

    @property
    def expression(self) -> str:
        return f"{self.metric} {self.op} {self.value:g}"

    def check(self, actual: float) -> bool:
        return _OPERATORS[self.op](actual, self.value)


@dataclass(frozen=True, slots=True)
class LoadStage:
    """Ramp linearly to ``target`` (VUs or iterations/s) over ``duration_seconds``."""

    target: float
    duration_seconds: float


@dataclass(frozen=True, slots=True)
class LoadProfile:
    scenario: ScenarioName
    executor: Executor
    stages: tuple[LoadStage, ...]
    start_target: float = 0.0
    pre_allocated_vus: int = 0
    max_vus: int = 0
    thresholds: tuple[Threshold, ...] = ()
    graceful_ramp_down_seconds: float = 0.0

    @property
    def duration_seconds(self) -> float:
        return sum(s.duration_seconds for s in self.stages)

    @property
    def peak_target(self) -> float:
        return max([self.start_target, *(s.target for s in self.stages)])


@dataclass(slots=True)
class MetricsSnapshot:
    """Final metrics of a run. Produced once by MetricsAggregator.snapshot()."""

    total: int
    passed: int
    failed: int
    http_failed: int
    transport_errors: int
    duration_seconds: float
    status_class_counts: dict[str, int] = field(default_factory=dict)
    status_code_counts: dict[str, int] = field(default_factory=dict)
    avg_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    p50_ms: float = 0.0
    p90_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    top_messages: dict[str, int] = field(default_factory=dict)
    endpoint_counts: dict[str, int] = field(default_factory=dict)
    dropped_iterations: int = 0

    @property
    def failed_rate(self) -> float:
        """Fraction of requests that failed at HTTP level (transport error or status >= 400)."""
        return self.http_failed / self.total if self.total else 0.0

    @property
    def check_failed_rate(self) -> float:
        """Fraction of verdicts that did not pass (status and body checks)."""
        return self.failed / self.total if self.total else 0.0

    @property
    def pass_rate(self) -> float:
        return self.passed / self.total if self.total else 0.0

    @property
    def throughput(self) -> float:
        return self.total / self.duration_seconds if self.duration_seconds > 0 else 0.0

    def metric(self, name: str) -> float:
        """Look up a metric by threshold name (``failed_rate``, ``p95_ms``, ``status_500`` ...)."""
        if name.startswith("status_"):
            key = name[len("status_"):]
            return float(self.status_code_counts.get(key, self.status_class_counts.get(key, 0)))
        value = getattr(self, name)
        return float(value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "http_failed": self.http_failed,
            "transport_errors": self.transport_errors,
            "failed_rate": self.failed_rate,
            "check_failed_rate": self.check_failed_rate,
            "pass_rate": self.pass_rate,
            "duration_seconds": self.duration_seconds,
            "throughput": self.throughput,
            "status_class_counts": dict(self.status_class_counts),
            "status_code_counts": dict(self.status_code_counts),
            "latency_ms": {
                "avg": self.avg_ms,
                "min": self.min_ms,
                "max": self.max_ms,
                "p50": self.p50_ms,
                "p90": self.p90_ms,
                "p95": self.p95_ms,
                "p99": self.p99_ms,
            },
            "top_messages": dict(self.top_messages),
            "endpoint_counts": dict(self.endpoint_counts),
            "dropped_iterations": self.dropped_iterations,
        }
