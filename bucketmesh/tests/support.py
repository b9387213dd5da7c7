"""
Shared builders for the test suite.

Routers are always built inside the coroutine that uses them, so their
locks and tasks belong to the running event loop.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

from bucketmesh.core.config import (
    BucketMeshConfig,
    ReliabilityConfig,
    RoutingConfig,
    StagingConfig,
)
from bucketmesh.core.types import StagingStrategy
from bucketmesh.routing.router import RegionAwareRouter
from bucketmesh.storage.backends import InMemoryClientFactory, InMemoryObjectService


def make_config(
    temp_dir: Optional[Path] = None,
    *,
    strategy: StagingStrategy = StagingStrategy.MEMORY,
    threshold: int = 1024,
    spill: bool = False,
    part_size: int = 4,
    inflight: int = 4,
    max_attempts: int = 3,
    part_max_attempts: int = 2,
    deadline_s: Optional[float] = None,
    base_delay_ms: int = 0,
    cross_region: bool = True,
    default_region: str = "us-east-1",
) -> BucketMeshConfig:
    """Config with no backoff unless asked for, and tiny parts."""
    return BucketMeshConfig(
        staging=StagingConfig(
            strategy=strategy,
            memory_threshold_bytes=threshold,
            spill_to_disk=spill,
            temp_dir=temp_dir,
            part_size_bytes=part_size,
            max_inflight_parts=inflight,
        ),
        reliability=ReliabilityConfig(
            max_attempts=max_attempts,
            base_delay_ms=base_delay_ms,
            max_delay_ms=base_delay_ms,
            jitter=False,
            part_max_attempts=part_max_attempts,
            deadline_s=deadline_s,
        ),
        routing=RoutingConfig(
            cross_region_enabled=cross_region,
            default_region=default_region,
        ),
    )


def make_router(
    service: InMemoryObjectService,
    config: Optional[BucketMeshConfig] = None,
    **factory_kwargs,
) -> Tuple[RegionAwareRouter, InMemoryClientFactory]:
    factory = InMemoryClientFactory(service, **factory_kwargs)
    return RegionAwareRouter(config or make_config(), factory), factory


def make_service(**buckets: str) -> InMemoryObjectService:
    """Service with one bucket per keyword: make_service(photos="eu-west-1")."""
    service = InMemoryObjectService()
    for bucket, region in buckets.items():
        service.create_bucket(bucket, region)
    return service
