"""
Storage module: regional client boundary.

Provides:
- RegionalClient protocol (one client per region)
- InMemoryObjectService: region-partitioned simulation for tests and demos
- S3Config: connection settings shared by every regional client

The aioboto3 implementation lives in bucketmesh.storage.s3_store and is
imported on demand.
"""

from bucketmesh.storage.config import S3Config
from bucketmesh.storage.protocols import Body, RegionalClient, RegionalClientFactory
from bucketmesh.storage.backends import (
    FaultRule,
    InMemoryClientFactory,
    InMemoryObjectService,
    InMemoryRegionalClient,
)

__all__ = [
    "S3Config",
    "Body",
    "RegionalClient",
    "RegionalClientFactory",
    "FaultRule",
    "InMemoryClientFactory",
    "InMemoryObjectService",
    "InMemoryRegionalClient",
]
