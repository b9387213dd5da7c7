"""
Observability module: Metrics and structured logging.
"""

from bucketmesh.observability.metrics import MetricsRegistry, Counter, Histogram
from bucketmesh.observability.logging import (
    JsonFormatter,
    LogLevel,
    StructuredLogger,
    setup_logging,
)

__all__ = [
    "MetricsRegistry",
    "Counter",
    "Histogram",
    "JsonFormatter",
    "LogLevel",
    "StructuredLogger",
    "setup_logging",
]
