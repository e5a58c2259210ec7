"""Resilience utilities for the case lifecycle engine.

Standard retry policies built on tenacity:
- service_startup_retry: connection verification at startup (Redis, K8s scale-to-zero)
- retry_on_conflict: re-run a whole read-validate-write cycle after a version conflict
"""

import logging
from typing import Any, Callable, TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
    RetryCallState,
)

from caselink_core.errors import CaseConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_conflict_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    if outcome is not None and outcome.failed:
        cause = outcome.exception()
    else:
        cause = "conflict result"
    logger.warning(
        f"[Resilience] Conflict retry {retry_state.attempt_number} for "
        f"{retry_state.fn.__name__} after {retry_state.seconds_since_start:.2f}s: {cause}"
    )


def _is_conflict_result(result: Any) -> bool:
    """OperationResult carrying a CONFLICT error."""
    return getattr(result, "is_conflict", False) is True


def _return_last_outcome(retry_state: RetryCallState) -> Any:
    # Re-raises if the last attempt raised, otherwise hands back the conflict result
    return retry_state.outcome.result()


# Standard retry policy for service startup connections
# - Wait 2^x * 1 seconds between retries (2s, 4s, 8s, 16s, 32s)
# - Stop after 5 attempts
# - Re-raise the exception if all retries fail
service_startup_retry = retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=32),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def retry_on_conflict(
    max_attempts: int = 3,
    min_wait: float = 0.05,
    max_wait: float = 1.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry an async operation while it fails with a version conflict.

    Works both for functions that raise CaseConflictError and for service
    methods returning an OperationResult whose error kind is CONFLICT. The
    decorated function must re-read the case on every attempt.

    Args:
        max_attempts: Total attempts including the first
        min_wait: Minimum wait between attempts (seconds)
        max_wait: Maximum wait between attempts (seconds)

    Returns:
        A retry decorator; after the last attempt the final outcome is
        returned (or raised) unchanged

    Example:
        ```python
        @retry_on_conflict(max_attempts=5)
        async def approve(case_id: str):
            return await service.review(actor, case_id, ReviewDecision.APPROVE)
        ```
    """
    return retry(
        retry=retry_if_exception_type(CaseConflictError) | retry_if_result(_is_conflict_result),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        before_sleep=_log_conflict_retry,
        retry_error_callback=_return_last_outcome,
    )
