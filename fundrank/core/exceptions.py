"""Custom exceptions for the scoring engine and its collaborators."""

from __future__ import annotations

from typing import Any


class FundRankError(Exception):
    """Base exception with a structured error payload."""

    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a problem+json style payload."""
        return {
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class ConfigurationError(FundRankError):
    """Invalid policy or settings detected at load time."""

    error_code = "CONFIGURATION_ERROR"
    message = "Invalid scoring configuration"


class WeightSourceError(FundRankError):
    """Weight profile backing store could not be read."""

    error_code = "WEIGHT_SOURCE_ERROR"
    message = "Weight profile source unavailable"
