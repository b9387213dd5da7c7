"""
Object Writer: One Write, One Stager

Async context manager pairing a stager with the committer:

    async with router.open_writer("photos", "cat.jpg") as writer:
        await writer.write(chunk)
        ...
    receipt = writer.result

Leaving the block normally closes the stager and commits. Leaving it
through an exception or cancellation aborts: the buffer is dropped, the
temp file deleted, any multipart session aborted.
"""

from __future__ import annotations

from types import TracebackType
from typing import Optional, Type

from bucketmesh.core.errors import BucketMeshError, StagingError, UploadError
from bucketmesh.core.types import Err, Result, UploadReceipt
from bucketmesh.staging.base import ContentStager
from bucketmesh.upload.committer import UploadCommitter


class ObjectWriter:
    """
    Single-use writer for one object.

    close() is idempotent: later calls return the first result.
    """

    __slots__ = ("_stager", "_committer", "_result")

    def __init__(self, stager: ContentStager, committer: UploadCommitter) -> None:
        self._stager = stager
        self._committer = committer
        self._result: Optional[Result[UploadReceipt, BucketMeshError]] = None

    @property
    def bucket(self) -> str:
        return self._stager.bucket

    @property
    def key(self) -> str:
        return self._stager.key

    @property
    def stager(self) -> ContentStager:
        return self._stager

    @property
    def result(self) -> Optional[Result[UploadReceipt, BucketMeshError]]:
        """Final outcome, None while the write is in progress."""
        return self._result

    @property
    def bytes_written(self) -> int:
        return self._stager.bytes_written

    async def write(self, data: bytes) -> Result[int, BucketMeshError]:
        if self._result is not None:
            return Err(StagingError.closed(self.key, "finished"))
        return await self._stager.write(data)

    async def close(self) -> Result[UploadReceipt, BucketMeshError]:
        """
        Finalize staging and commit.

        Cancelled while pending parts drain or while committing, the
        writer aborts before re-raising.
        """
        if self._result is not None:
            return self._result

        try:
            staged = await self._stager.close()
            if staged.is_err():
                await self._stager.abort()
                self._result = staged
                return staged

            self._result = await self._committer.commit(staged.value)
        except BaseException as exc:
            await self.abort(f"{type(exc).__name__} raised while closing")
            raise
        return self._result

    async def abort(self, reason: str = "abandoned by caller") -> None:
        """Discard everything written so far. No-op once finished."""
        if self._result is not None:
            return
        await self._stager.abort()
        self._result = Err(UploadError.aborted(self.bucket, self.key, reason))

    async def __aenter__(self) -> ObjectWriter:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc_type is None:
            await self.close()
        else:
            await self.abort(f"{exc_type.__name__} raised while writing")

    def __repr__(self) -> str:
        state = self._stager.state.value if self._result is None else (
            "committed" if self._result.is_ok() else "failed"
        )
        return f"ObjectWriter({self.bucket}/{self.key}, {state})"
