"""
Region Resolver: Bucket → Region Mapping with Lazy Discovery

Answers "which region hosts this bucket?" from a cache, probing the
service on a miss.

Resolution:
    1. Cache hit → return immediately, no I/O
    2. Miss → HeadBucket against the default-region client; the service
       names the bucket's region (directly or through a redirect)
    3. Cache the region, then return it

Invariants:
    - Once resolve(B) returns R, later calls return R without probing
      until a mismatch for B is reported
    - report_mismatch overwrites the entry with the signaled region;
      entries never go back to "unknown" except through forget()
    - Concurrent misses for one bucket share a single in-flight probe
    - Failed probes are not cached

Complexity: O(1) per cached lookup
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from bucketmesh.core.errors import (
    BucketMeshError,
    RequestError,
    RoutingError,
    TransportError,
)
from bucketmesh.core.types import Err, Ok, Result
from bucketmesh.observability.metrics import MetricsRegistry
from bucketmesh.routing.pool import RegionalClientPool

logger = logging.getLogger(__name__)


class RegionResolver:
    """
    Cached bucket-to-region resolution.

    Example:
        >>> resolver = RegionResolver(pool, default_region="us-east-1")
        >>> region = (await resolver.resolve("photos")).unwrap()
        >>> resolver.report_mismatch("photos", "eu-west-1")
        'eu-west-1'
    """

    __slots__ = ("_pool", "_default_region", "_metrics", "_cache", "_inflight")

    def __init__(
        self,
        pool: RegionalClientPool,
        default_region: str,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._pool = pool
        self._default_region = default_region
        self._metrics = metrics or MetricsRegistry()
        self._cache: Dict[str, str] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    @property
    def default_region(self) -> str:
        return self._default_region

    # -------------------------------------------------------------------------
    # RESOLUTION
    # -------------------------------------------------------------------------

    async def resolve(self, bucket: str) -> Result[str, BucketMeshError]:
        """
        Region hosting the bucket.

        Callers cancelled while waiting do not cancel the shared probe.
        """
        region = self._cache.get(bucket)
        if region is not None:
            self._metrics.region_cache_hits.inc(region=region)
            return Ok(region)

        task = self._inflight.get(bucket)
        if task is None:
            task = asyncio.ensure_future(self._probe(bucket))
            self._inflight[bucket] = task
            task.add_done_callback(lambda t, b=bucket: self._clear_inflight(b, t))
        return await asyncio.shield(task)

    async def refresh(self, bucket: str) -> Result[str, BucketMeshError]:
        """Drop the entry and probe again. Used when a mismatch carries no hint."""
        self._cache.pop(bucket, None)
        return await self.resolve(bucket)

    def report_mismatch(self, bucket: str, signaled_region: str) -> str:
        """
        Record the region named by a mismatch response.

        Overwrites any cached value and returns the new region.
        """
        previous = self._cache.get(bucket)
        self._cache[bucket] = signaled_region
        self._metrics.region_mismatches.inc(region=signaled_region)
        logger.info(
            "Region corrected for bucket %s: %s -> %s",
            bucket, previous, signaled_region,
            extra={"bucket": bucket, "region": signaled_region},
        )
        return signaled_region

    # -------------------------------------------------------------------------
    # CACHE ACCESS
    # -------------------------------------------------------------------------

    def peek(self, bucket: str) -> Optional[str]:
        """Cached region without probing."""
        return self._cache.get(bucket)

    def prime(self, bucket: str, region: str) -> None:
        """Seed a known mapping, e.g. from configuration."""
        self._cache[bucket] = region

    def forget(self, bucket: str) -> None:
        """Drop an entry. Only used once the bucket is known not to exist."""
        self._cache.pop(bucket, None)

    def cached_regions(self) -> Dict[str, str]:
        return dict(self._cache)

    # -------------------------------------------------------------------------
    # DISCOVERY PROBE
    # -------------------------------------------------------------------------

    async def _probe(self, bucket: str) -> Result[str, BucketMeshError]:
        client_result = await self._pool.get(self._default_region)
        if client_result.is_err():
            return client_result

        self._metrics.region_probes.inc(region=self._default_region)
        result = await client_result.value.head_bucket(bucket)

        if result.is_err():
            error = result.error
            if isinstance(error, RoutingError) and error.signaled_region:
                region = error.signaled_region
            elif isinstance(error, (RequestError, TransportError)):
                logger.debug("Region probe for %s failed: %s", bucket, error.message)
                return result
            else:
                return Err(RoutingError.discovery_failed(bucket, error.message, cause=error))
        else:
            region = result.value

        if not region:
            return Err(RoutingError.discovery_failed(bucket, "service returned no region"))

        # A mismatch reported while probing wins over the probe's answer
        region = self._cache.setdefault(bucket, region)
        logger.debug("Resolved bucket %s to region %s", bucket, region)
        return Ok(region)

    def _clear_inflight(self, bucket: str, task: asyncio.Task) -> None:
        if self._inflight.get(bucket) is task:
            del self._inflight[bucket]
