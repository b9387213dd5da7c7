"""
Assisted-Multipart Stager

Streams an object to the service as a multipart session instead of
buffering it whole:

    write() ──▶ buffer ──(part_size reached)──▶ upload task ──▶ service
                                    │
                                    └── at most max_inflight tasks at once

- The session is created lazily, when the first part is full
- Each part is retried independently by the committer (part budget)
- A part that exhausts its budget fails the stager: pending parts are
  cancelled, the session is aborted, and the part error is returned by
  the next write() or close()
- close() uploads the trailing part and waits for every pending part
- A stream that never fills one part is uploaded as a single part; an
  empty stream becomes an empty in-memory body
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Mapping, Optional, Protocol, Set

from bucketmesh.core import constants as C
from bucketmesh.core.errors import BucketMeshError, RequestError, internal_error
from bucketmesh.core.types import (
    CompletedPart,
    Err,
    MultipartSession,
    Ok,
    Result,
    StagingStrategy,
)
from bucketmesh.observability.metrics import MetricsRegistry
from bucketmesh.staging.base import ContentStager, StagedContent

logger = logging.getLogger(__name__)


class PartCommitter(Protocol):
    """Multipart half of upload.committer.UploadCommitter."""

    async def begin_multipart(
        self,
        bucket: str,
        key: str,
        content_type: Optional[str],
        metadata: Mapping[str, str],
    ) -> Result[MultipartSession, BucketMeshError]:
        ...

    async def upload_part(
        self,
        session: MultipartSession,
        part_number: int,
        data: bytes,
    ) -> Result[CompletedPart, BucketMeshError]:
        ...

    async def abort_multipart(self, session: MultipartSession) -> Result[None, BucketMeshError]:
        ...


class MultipartStager(ContentStager):

    strategy = StagingStrategy.MULTIPART

    def __init__(
        self,
        bucket: str,
        key: str,
        committer: PartCommitter,
        part_size_bytes: int = C.DEFAULT_PART_SIZE_BYTES,
        max_inflight_parts: int = C.DEFAULT_MAX_INFLIGHT_PARTS,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        super().__init__(bucket, key, content_type, metadata, metrics)
        self._committer = committer
        self._part_size = part_size_bytes
        self._slots = asyncio.Semaphore(max_inflight_parts)
        self._buffer = bytearray()
        self._session: Optional[MultipartSession] = None
        self._next_part = 1
        self._parts: List[CompletedPart] = []
        self._pending: Set[asyncio.Task] = set()
        self._part_error: Optional[BucketMeshError] = None

    @property
    def session(self) -> Optional[MultipartSession]:
        return self._session

    @property
    def parts_uploaded(self) -> int:
        return len(self._parts)

    # -------------------------------------------------------------------------
    # STAGING HOOKS
    # -------------------------------------------------------------------------

    async def _write(self, data: bytes) -> Result[None, BucketMeshError]:
        if self._part_error is not None:
            return Err(self._part_error)

        self._buffer.extend(data)
        while len(self._buffer) >= self._part_size:
            chunk = bytes(self._buffer[:self._part_size])
            del self._buffer[:self._part_size]
            submitted = await self._submit(chunk)
            if submitted.is_err():
                return submitted
        return Ok(None)

    async def _close(self) -> Result[StagedContent, BucketMeshError]:
        if self._session is None and not self._buffer:
            return Ok(self._describe(strategy=StagingStrategy.MEMORY, body=b""))

        if self._buffer or self._session is None:
            chunk, self._buffer = bytes(self._buffer), bytearray()
            submitted = await self._submit(chunk)
            if submitted.is_err():
                return submitted

        if self._pending:
            await asyncio.wait(set(self._pending))
        if self._part_error is not None:
            return Err(self._part_error)

        # Every submitted part number must have completed exactly once.
        numbers = sorted(part.part_number for part in self._parts)
        if numbers != list(range(1, self._next_part)):
            return Err(internal_error(
                f"Multipart parts for '{self._key}' incomplete: "
                f"expected 1..{self._next_part - 1}, got {numbers}"
            ))

        return Ok(self._describe(
            session=self._session,
            parts=tuple(sorted(self._parts)),
        ))

    async def _release(self) -> None:
        pending = set(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._buffer = bytearray()

        if self._session is not None:
            session, self._session = self._session, None
            logger.info(
                "Aborting multipart session for %s/%s", session.bucket, session.key,
                extra={"bucket": session.bucket, "key": session.key},
            )
            await self._committer.abort_multipart(session)

    # -------------------------------------------------------------------------
    # PART SCHEDULING
    # -------------------------------------------------------------------------

    async def _submit(self, chunk: bytes) -> Result[None, BucketMeshError]:
        if self._session is None:
            begun = await self._committer.begin_multipart(
                self._bucket, self._key, self._content_type, self._metadata
            )
            if begun.is_err():
                return begun
            self._session = begun.value

        if self._next_part > C.MAX_PART_COUNT:
            return Err(RequestError.invalid(
                "upload_part",
                f"'{self._key}' needs more than {C.MAX_PART_COUNT} parts; raise part size",
            ))

        await self._slots.acquire()
        if self._part_error is not None:
            self._slots.release()
            return Err(self._part_error)

        part_number = self._next_part
        self._next_part += 1
        task = asyncio.ensure_future(self._upload(self._session, part_number, chunk))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return Ok(None)

    async def _upload(self, session: MultipartSession, part_number: int, chunk: bytes) -> None:
        try:
            result = await self._committer.upload_part(session, part_number, chunk)
        except Exception as exc:
            logger.exception(
                "Part %d of %s/%s raised", part_number, session.bucket, session.key,
                extra={"bucket": session.bucket, "key": session.key, "part_number": part_number},
            )
            result = Err(internal_error(f"Part {part_number} upload raised: {exc}", cause=exc))
        finally:
            self._slots.release()

        if result.is_ok():
            self._parts.append(result.value)
        elif self._part_error is None:
            self._part_error = result.error
