"""
Retry Policy: Exponential Backoff with Jitter

Implements the committer's bounded retry strategy:
- Exponential backoff: base_delay_ms × base^n, capped at max_delay_ms
- Full jitter: random(0, backoff) to prevent thundering herd
- Only transient errors (see BucketMeshError.is_transient) are retried;
  validation, permission and routing errors are returned unchanged
- Budget is attempt-count based, optionally paired with an overall
  deadline supplied by the caller
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from bucketmesh.core import constants as C
from bucketmesh.core.config import ReliabilityConfig
from bucketmesh.core.errors import BucketMeshError, ReliabilityError
from bucketmesh.core.types import Result, Err

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration.

    max_attempts counts every attempt, the first one included.
    """

    max_attempts: int = C.RETRY_MAX_ATTEMPTS
    base_delay_ms: int = C.RETRY_BASE_MS
    max_delay_ms: int = C.RETRY_MAX_DELAY_MS
    exponential_base: float = C.RETRY_EXPONENTIAL_BASE
    jitter: bool = True
    deadline_s: Optional[float] = None

    @classmethod
    def default(cls) -> RetryPolicy:
        return cls()

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """Single attempt."""
        return cls(max_attempts=1)

    @classmethod
    def from_config(cls, config: ReliabilityConfig) -> RetryPolicy:
        """Whole-object commit policy."""
        return cls(
            max_attempts=config.max_attempts,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            exponential_base=config.exponential_base,
            jitter=config.jitter,
            deadline_s=config.deadline_s,
        )

    @classmethod
    def for_parts(cls, config: ReliabilityConfig) -> RetryPolicy:
        """Per-part policy: own attempt budget, shared backoff shape."""
        return cls(
            max_attempts=config.part_max_attempts,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            exponential_base=config.exponential_base,
            jitter=config.jitter,
            deadline_s=config.deadline_s,
        )


@dataclass
class RetryStats:
    """Retry attempt statistics."""
    total_attempts: int = 0
    failed_attempts: int = 0
    total_delay_ms: float = 0.0
    last_error: Optional[BucketMeshError] = None


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    exponential_base: float,
    jitter: bool,
) -> float:
    """
    Calculate backoff delay in milliseconds.

    Full jitter: random(0, min(cap, base * exp_base^attempt))
    """
    delay = min(max_delay_ms, base_delay_ms * (exponential_base ** attempt))
    if jitter:
        delay = random.uniform(0, delay)
    return delay


async def retry_with_backoff(
    func: Callable[[], Awaitable[Result[T, BucketMeshError]]],
    policy: Optional[RetryPolicy] = None,
    operation: str = "operation",
    stats: Optional[RetryStats] = None,
    on_retry: Optional[Callable[[int, BucketMeshError], None]] = None,
) -> Result[T, BucketMeshError]:
    """
    Execute an async Result-returning function with retry and backoff.

    Args:
        func: Zero-argument coroutine factory, called once per attempt.
        policy: Retry configuration (default if None).
        operation: Name used in logs and errors.
        stats: Optional accumulator the caller can inspect afterwards.
        on_retry: Callback invoked with (attempt_number, error) before
            each backoff sleep.

    Returns:
        The first Ok, the first non-transient Err unchanged, or
        Err(ReliabilityError) once the budget or deadline is exhausted.
    """
    if policy is None:
        policy = RetryPolicy.default()
    if stats is None:
        stats = RetryStats()

    deadline = (
        time.monotonic() + policy.deadline_s if policy.deadline_s is not None else None
    )

    for attempt in range(policy.max_attempts):
        if deadline is not None and time.monotonic() >= deadline:
            return Err(ReliabilityError.deadline_exceeded(
                operation=operation,
                attempts=stats.total_attempts,
                deadline_s=policy.deadline_s,
                last_error=stats.last_error,
            ))

        stats.total_attempts += 1
        result = await func()
        if result.is_ok():
            return result

        error = result.error
        if not error.is_transient:
            return result

        stats.failed_attempts += 1
        stats.last_error = error
        logger.debug(
            "Attempt %d of '%s' failed: %s", attempt + 1, operation, error.message
        )

        if attempt + 1 >= policy.max_attempts:
            break

        delay = calculate_backoff(
            attempt=attempt,
            base_delay_ms=policy.base_delay_ms,
            max_delay_ms=policy.max_delay_ms,
            exponential_base=policy.exponential_base,
            jitter=policy.jitter,
        )
        if deadline is not None:
            delay = min(delay, max(0.0, (deadline - time.monotonic()) * 1000))
        stats.total_delay_ms += delay

        if on_retry is not None:
            on_retry(attempt + 1, error)
        logger.debug("Retrying '%s' in %.1fms (attempt %d)", operation, delay, attempt + 2)
        await asyncio.sleep(delay / 1000)

    return Err(ReliabilityError.retry_exhausted(
        operation=operation,
        attempts=stats.total_attempts,
        last_error=stats.last_error,
    ))
