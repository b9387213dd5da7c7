"""
Regional Client Pool: One Client per Region

Registry mapping region → RegionalClient, owned by a single router and
torn down with it.

Concurrency:
    - Clients are created lazily on first use of a region
    - Creation runs under a lock keyed by region, so first users of
      different regions never wait on each other
    - The registry is re-checked under the lock: N concurrent first users
      of one region observe exactly one client
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from bucketmesh.core.errors import BucketMeshError, internal_error
from bucketmesh.core.types import Err, Ok, Result
from bucketmesh.observability.metrics import MetricsRegistry
from bucketmesh.storage.protocols import RegionalClient, RegionalClientFactory

logger = logging.getLogger(__name__)


class RegionalClientPool:
    """
    Lazily populated region → client registry.

    Example:
        >>> pool = RegionalClientPool(S3ClientFactory(s3_config))
        >>> client = (await pool.get("eu-west-1")).unwrap()
        >>> await pool.close()
    """

    __slots__ = ("_factory", "_metrics", "_clients", "_locks", "_closed")

    def __init__(
        self,
        factory: RegionalClientFactory,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._factory = factory
        self._metrics = metrics or MetricsRegistry()
        self._clients: Dict[str, RegionalClient] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def get(self, region: str) -> Result[RegionalClient, BucketMeshError]:
        """Client for the region, created on first use."""
        if self._closed:
            return Err(internal_error("Regional client pool is closed"))

        client = self._clients.get(region)
        if client is not None:
            return Ok(client)

        lock = self._locks.setdefault(region, asyncio.Lock())
        async with lock:
            client = self._clients.get(region)
            if client is not None:
                return Ok(client)

            result = await self._factory(region)
            if result.is_err():
                logger.warning(
                    "Failed to create client for region %s: %s",
                    region, result.error.message,
                    extra={"region": region},
                )
                return result

            client = result.value
            if self._closed:
                await client.close()
                return Err(internal_error("Regional client pool is closed"))

            self._clients[region] = client
            self._metrics.clients_created.inc(region=region)
            logger.info("Regional client created", extra={"region": region})
            return Ok(client)

    def regions(self) -> List[str]:
        """Regions with a live client."""
        return sorted(self._clients)

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, region: str) -> bool:
        return region in self._clients

    async def close(self) -> None:
        """Close every client. The pool cannot be used afterwards."""
        self._closed = True
        clients, self._clients = self._clients, {}
        for region, client in clients.items():
            try:
                await client.close()
            except Exception as e:
                logger.warning(
                    "Error closing client for region %s: %s", region, e,
                    extra={"region": region},
                )
        self._locks.clear()
