"""
beban - HTTP load generator for a property-search and auth backend.

Randomized property search queries (query string or form body), OTP verification
and profile lookups, driven by named load scenarios with pass/fail thresholds.
Async HTTP/2, exact latency percentiles, text/JSON/HTML reports.
"""

from .exceptions import BebanConfigError, BebanError, BebanRunnerError

__all__ = [
    "__version__",
    "BebanConfigError",
    "BebanError",
    "BebanRunnerError",
]

__version__ = "1.0.0"
