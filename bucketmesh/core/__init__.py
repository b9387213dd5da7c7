"""
Core module: Type definitions, error taxonomy, and configuration.

This module provides the foundational abstractions:
- Result/Either monad for zero-exception control flow
- Error taxonomy deciding retry, re-route, or immediate surfacing
- Configuration management with validation
"""

from bucketmesh.core.types import (
    Result,
    Ok,
    Err,
    StagingStrategy,
    ObjectInfo,
    ObjectPage,
    CompletedPart,
    MultipartSession,
    UploadReceipt,
)
from bucketmesh.core.errors import (
    ErrorCode,
    BucketMeshError,
    TransportError,
    RoutingError,
    RequestError,
    UploadError,
    StagingError,
    ReliabilityError,
    ConfigError,
)
from bucketmesh.core.config import (
    BucketMeshConfig,
    StagingConfig,
    ReliabilityConfig,
    RoutingConfig,
    ObservabilityConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "StagingStrategy",
    "ObjectInfo",
    "ObjectPage",
    "CompletedPart",
    "MultipartSession",
    "UploadReceipt",
    "ErrorCode",
    "BucketMeshError",
    "TransportError",
    "RoutingError",
    "RequestError",
    "UploadError",
    "StagingError",
    "ReliabilityError",
    "ConfigError",
    "BucketMeshConfig",
    "StagingConfig",
    "ReliabilityConfig",
    "RoutingConfig",
    "ObservabilityConfig",
]
