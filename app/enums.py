"""Shared enums for the short link service.

This module defines the status values used in health responses and metric labels.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "OutcomeStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_str(cls, value: str) -> "HealthStatus":
        """Safely parse from string, falling back to UNHEALTHY for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNHEALTHY


class OutcomeStatus(StrEnum):
    """Outcome of a lifecycle operation, used as a metric label."""

    SUCCESS = "success"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ERROR = "error"

    @classmethod
    def from_str(cls, value: str) -> "OutcomeStatus":
        """Safely parse from string, falling back to ERROR for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.ERROR
