"""
Reliability module: bounded retry with exponential backoff.
"""

from bucketmesh.reliability.retry import (
    RetryPolicy,
    RetryStats,
    calculate_backoff,
    retry_with_backoff,
)

__all__ = [
    "RetryPolicy",
    "RetryStats",
    "calculate_backoff",
    "retry_with_backoff",
]
