"""Shared enums for the short key service.

This module defines all status and label enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "Method", "Outcome"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"


class Method(StrEnum):
    """Service operations, used as log fields and metric labels."""

    CREATE = "create"
    LOOKUP = "lookup"


class Outcome(StrEnum):
    """Call outcome label values for prometheus metrics."""

    SUCCESS = "true"
    FAILURE = "false"

    @classmethod
    def of(cls, err: BaseException | None) -> "Outcome":
        return cls.SUCCESS if err is None else cls.FAILURE
