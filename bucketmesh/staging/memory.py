"""
Bounded In-Memory Stager

Buffers bytes in a bytearray up to a threshold. Crossing the threshold
either spills everything into a DiskStager (when a spill target is
configured) or fails with StagingError.size_exceeded, releasing the
buffer before any upload is attempted.
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional

from bucketmesh.core.errors import BucketMeshError, StagingError
from bucketmesh.core.types import Err, Ok, Result, StagingStrategy
from bucketmesh.observability.metrics import MetricsRegistry
from bucketmesh.staging.base import ContentStager, StagedContent
from bucketmesh.staging.disk import DiskStager

logger = logging.getLogger(__name__)


class MemoryStager(ContentStager):
    """
    Example:
        >>> stager = MemoryStager("photos", "cat.jpg", threshold_bytes=8 * MB)
        >>> await stager.write(b"...")
        >>> staged = (await stager.close()).unwrap()
    """

    strategy = StagingStrategy.MEMORY

    def __init__(
        self,
        bucket: str,
        key: str,
        threshold_bytes: int,
        spill: Optional[Callable[[], DiskStager]] = None,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        super().__init__(bucket, key, content_type, metadata, metrics)
        self._threshold = threshold_bytes
        self._spill = spill
        self._buffer = bytearray()
        self._spilled: Optional[DiskStager] = None

    @property
    def spilled(self) -> bool:
        return self._spilled is not None

    async def _write(self, data: bytes) -> Result[None, BucketMeshError]:
        if self._spilled is not None:
            return (await self._spilled.write(data)).map(lambda _: None)

        attempted = len(self._buffer) + len(data)
        if attempted <= self._threshold:
            self._buffer.extend(data)
            return Ok(None)

        if self._spill is None:
            return Err(StagingError.size_exceeded(self._key, self._threshold, attempted))

        logger.debug(
            "Spilling %d buffered bytes of %s to disk", len(self._buffer), self._key,
            extra={"bucket": self._bucket, "key": self._key},
        )
        self._spilled = self._spill()
        buffered, self._buffer = bytes(self._buffer), bytearray()
        for chunk in (buffered, data):
            result = await self._spilled.write(chunk)
            if result.is_err():
                return result
        return Ok(None)

    async def _close(self) -> Result[StagedContent, BucketMeshError]:
        if self._spilled is not None:
            return await self._spilled.close()

        body, self._buffer = bytes(self._buffer), bytearray()
        return Ok(self._describe(body=body))

    async def _release(self) -> None:
        self._buffer = bytearray()
        if self._spilled is not None:
            await self._spilled.abort()
