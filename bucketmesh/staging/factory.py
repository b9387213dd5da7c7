"""
Stager Selection

The strategy comes from StagingConfig or from an explicit per-writer
override; it is never inferred from the data.
"""

from __future__ import annotations

from functools import partial
from typing import Mapping, Optional

from bucketmesh.core.config import StagingConfig
from bucketmesh.core.types import StagingStrategy
from bucketmesh.observability.metrics import MetricsRegistry
from bucketmesh.staging.base import ContentStager
from bucketmesh.staging.disk import DiskStager
from bucketmesh.staging.memory import MemoryStager
from bucketmesh.staging.multipart import MultipartStager, PartCommitter


def create_stager(
    config: StagingConfig,
    bucket: str,
    key: str,
    committer: PartCommitter,
    *,
    strategy: Optional[StagingStrategy] = None,
    content_type: Optional[str] = None,
    metadata: Optional[Mapping[str, str]] = None,
    metrics: Optional[MetricsRegistry] = None,
) -> ContentStager:
    """
    Build a fresh stager for one write.

    Args:
        config: Staging configuration.
        bucket: Destination bucket.
        key: Destination key.
        committer: Used by the multipart strategy to upload parts.
        strategy: Overrides config.strategy for this write.
        content_type: Explicit content type; resolved from the key if None.
        metadata: User metadata.
        metrics: Registry receiving staged byte counts.
    """
    chosen = strategy or config.strategy

    if chosen is StagingStrategy.MEMORY:
        spill = None
        if config.spill_to_disk:
            # No metrics: the memory stager already counts every byte it
            # forwards, so spilled bytes appear once, under strategy=memory.
            spill = partial(DiskStager, bucket, key, config.temp_dir, content_type, metadata)
        return MemoryStager(
            bucket, key,
            threshold_bytes=config.memory_threshold_bytes,
            spill=spill,
            content_type=content_type,
            metadata=metadata,
            metrics=metrics,
        )

    if chosen is StagingStrategy.DISK:
        return DiskStager(bucket, key, config.temp_dir, content_type, metadata, metrics)

    if chosen is StagingStrategy.MULTIPART:
        return MultipartStager(
            bucket, key, committer,
            part_size_bytes=config.part_size_bytes,
            max_inflight_parts=config.max_inflight_parts,
            content_type=content_type,
            metadata=metadata,
            metrics=metrics,
        )

    raise ValueError(f"Unknown staging strategy: {chosen!r}")
