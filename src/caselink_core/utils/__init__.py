"""Utility Functions"""

from caselink_core.utils.resilience import (
    service_startup_retry,
    retry_on_conflict,
)

__all__ = [
    "service_startup_retry",
    "retry_on_conflict",
]
