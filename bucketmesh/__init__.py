"""
Region-Aware Object Storage Client

Client-side access layer for a region-partitioned object storage service:
- Region routing: bucket → region discovery, cached and corrected on
  mismatch, one client per region
- Upload pipeline: bytes staged in memory, on disk, or as a streamed
  multipart session, then committed with bounded retry
- Typed results: every operation returns Ok or Err; a failed disk-staged
  upload names the file still holding the bytes

Usage:
    async with RegionAwareRouter(config) as router:
        async with router.open_writer("photos", "cat.jpg") as writer:
            await writer.write(data)
        receipt = writer.result

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from bucketmesh.core.types import (
    Result,
    Ok,
    Err,
    StagingStrategy,
    ObjectInfo,
    ObjectPage,
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
)
from bucketmesh.core.config import BucketMeshConfig
from bucketmesh.routing import RegionAwareRouter, RegionResolver, RegionalClientPool
from bucketmesh.upload import ObjectWriter, UploadCommitter
from bucketmesh.storage import InMemoryClientFactory, InMemoryObjectService, S3Config

__all__ = [
    # Version
    "__version__",
    # Types
    "Result",
    "Ok",
    "Err",
    "StagingStrategy",
    "ObjectInfo",
    "ObjectPage",
    "UploadReceipt",
    # Errors
    "ErrorCode",
    "BucketMeshError",
    "TransportError",
    "RoutingError",
    "RequestError",
    "UploadError",
    "StagingError",
    # Config
    "BucketMeshConfig",
    "S3Config",
    # Routing and uploads
    "RegionAwareRouter",
    "RegionResolver",
    "RegionalClientPool",
    "ObjectWriter",
    "UploadCommitter",
    # Simulated service
    "InMemoryClientFactory",
    "InMemoryObjectService",
]
