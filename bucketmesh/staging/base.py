"""
Content Stager Contract

A stager accumulates the bytes of exactly one object write, then hands
an immutable StagedContent to the committer.

State machine:
    OPEN ──close()──▶ CLOSED      (ownership moved to the committer)
      │
      ├──abort()───▶ ABORTED     (all resources released)
      │
      └──failure───▶ FAILED      (resources released; error repeated by
                                  every later write/close)

abort() is idempotent and never raises: on a CLOSED or ABORTED stager
it does nothing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, Mapping, Optional, Tuple

from bucketmesh.core.errors import BucketMeshError, StagingError
from bucketmesh.core.types import (
    CompletedPart,
    Err,
    MultipartSession,
    Ok,
    Result,
    StagingStrategy,
)
from bucketmesh.observability.metrics import MetricsRegistry


class StagerState(Enum):
    OPEN = "open"
    CLOSED = "closed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StagedContent:
    """
    Immutable description of staged bytes, ready for commit.

    Exactly one location field is set, depending on strategy:
    body (MEMORY), path (DISK), or session + parts (MULTIPART).
    """
    bucket: str
    key: str
    strategy: StagingStrategy
    size_bytes: int
    content_type: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    path: Optional[str] = None
    session: Optional[MultipartSession] = None
    parts: Tuple[CompletedPart, ...] = ()


class ContentStager(ABC):
    """
    Base class for the three staging strategies.

    Subclasses implement _write, _close and _release; the base class
    owns state transitions and byte accounting.
    """

    strategy: ClassVar[StagingStrategy]

    def __init__(
        self,
        bucket: str,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._bucket = bucket
        self._key = key
        self._content_type = content_type
        self._metadata = dict(metadata or {})
        self._metrics = metrics
        self._state = StagerState.OPEN
        self._bytes_written = 0
        self._failure: Optional[BucketMeshError] = None

    @property
    def state(self) -> StagerState:
        return self._state

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def key(self) -> str:
        return self._key

    async def write(self, data: bytes) -> Result[int, BucketMeshError]:
        """Append bytes. Returns the number of bytes accepted."""
        usable = self._check_open()
        if usable.is_err():
            return usable
        if not data:
            return Ok(0)

        result = await self._write(bytes(data))
        if result.is_err():
            await self._fail(result.error)
            return result

        self._bytes_written += len(data)
        if self._metrics is not None:
            self._metrics.bytes_staged.inc(len(data), strategy=self.strategy.value)
        return Ok(len(data))

    async def close(self) -> Result[StagedContent, BucketMeshError]:
        """Finalize staging and transfer ownership of the content."""
        usable = self._check_open()
        if usable.is_err():
            return usable

        result = await self._close()
        if result.is_err():
            await self._fail(result.error)
            return result

        self._state = StagerState.CLOSED
        return result

    async def abort(self) -> None:
        """Discard all staged resources."""
        if self._state in (StagerState.CLOSED, StagerState.ABORTED):
            return
        was_open = self._state is StagerState.OPEN
        self._state = StagerState.ABORTED
        if was_open:
            await self._release()

    def _check_open(self) -> Result[None, BucketMeshError]:
        if self._state is StagerState.OPEN:
            return Ok(None)
        if self._failure is not None:
            return Err(self._failure)
        return Err(StagingError.closed(self._key, self._state.value))

    async def _fail(self, error: BucketMeshError) -> None:
        self._state = StagerState.FAILED
        self._failure = error
        await self._release()

    def _describe(self, **location) -> StagedContent:
        return StagedContent(
            bucket=self._bucket,
            key=self._key,
            strategy=location.pop("strategy", self.strategy),
            size_bytes=location.pop("size_bytes", self._bytes_written),
            content_type=self._content_type,
            metadata=dict(self._metadata),
            **location,
        )

    @abstractmethod
    async def _write(self, data: bytes) -> Result[None, BucketMeshError]:
        ...

    @abstractmethod
    async def _close(self) -> Result[StagedContent, BucketMeshError]:
        ...

    @abstractmethod
    async def _release(self) -> None:
        """Free every resource. Must not raise."""
        ...
