"""Custom exceptions for the beban load harness.

All beban-specific exceptions inherit from BebanError for unified error handling.
Only configuration-time and setup errors are raised; per-iteration failures are
absorbed into ResponseVerdict values and never surface as exceptions.
"""

from __future__ import annotations

from typing import Any


class BebanError(Exception):
    """Base exception for all beban errors.

    Attributes:
        message: Human-readable error description
        context: Optional dictionary with additional debugging context
        original_error: Original exception that caused this error (if any)
    """

    def __init__(
        self,
        message: str,
        *args: object,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, *args)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        base = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            base = f"{base} [{ctx_str}]"
        if self.original_error:
            base = f"{base} (caused by: {type(self.original_error).__name__}: {self.original_error})"
        return base

    def with_context(self, **kwargs: Any) -> "BebanError":
        """Add context to this error and return self for chaining."""
        self.context.update(kwargs)
        return self


class BebanConfigError(BebanError):
    """Raised when the run configuration is invalid.

    Common causes:
    - Config file not found or invalid YAML
    - Empty value pool (cities, types, identifiers, otps) after trimming blanks
    - A numeric bound with min > max
    - Host without scheme
    """


class BebanRunnerError(BebanError):
    """Raised when a run cannot be started or driven.

    Common causes:
    - Load profile with zero total duration
    - Output directory cannot be created
    """
