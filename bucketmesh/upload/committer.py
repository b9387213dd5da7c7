"""
Upload Committer: Staged Content → Remote Object

Performs the remote write for a StagedContent and releases the staged
resources according to the outcome.

Outcomes by strategy:
-------------------------------------------------------------------------
| Strategy  | Success                 | Failure                           |
|-----------|-------------------------|-----------------------------------|
| MEMORY    | receipt, buffer dropped | UploadError, no artifact          |
| DISK      | receipt, file deleted   | UploadError, file kept and named  |
|           |                         | in recovery_path                  |
| MULTIPART | receipt                 | session aborted, UploadError      |
-------------------------------------------------------------------------

Retry:
    Only transient transport errors are retried (RetryPolicy from
    ReliabilityConfig, optional overall deadline). Validation,
    permission and routing errors fail immediately as
    UploadError.rejected. Region mismatches never reach the retry loop
    as such: every remote call goes through the router's execute(),
    which corrects the region once.
"""

from __future__ import annotations

import asyncio
import os
import time
from typing import Awaitable, Callable, Mapping, Optional, TypeVar

from bucketmesh.codec.content_type import ContentTypeResolver
from bucketmesh.codec.headers import (
    ContextAwareHeaderMapper,
    ConversionContext,
    DefaultHeaderMapper,
    ObjectHeaders,
)
from bucketmesh.core.config import ReliabilityConfig
from bucketmesh.core.errors import (
    BucketMeshError,
    ErrorCode,
    ReliabilityError,
    StagingError,
    UploadError,
)
from bucketmesh.core.types import (
    CompletedPart,
    Err,
    MultipartSession,
    ObjectInfo,
    Ok,
    Result,
    StagingStrategy,
    UploadReceipt,
)
from bucketmesh.observability.logging import StructuredLogger
from bucketmesh.observability.metrics import MetricsRegistry
from bucketmesh.reliability.retry import RetryPolicy, RetryStats, retry_with_backoff
from bucketmesh.staging.base import StagedContent
from bucketmesh.storage.protocols import RegionalClient

T = TypeVar("T")

Operation = Callable[[RegionalClient], Awaitable[Result[T, BucketMeshError]]]
Invoke = Callable[[str, Operation], Awaitable[Result[T, BucketMeshError]]]

logger = StructuredLogger(__name__)


class UploadCommitter:
    """
    Commits staged content through a routed invoke function.

    Args:
        invoke: (bucket, operation) -> Result; normally
            RegionAwareRouter.execute, which picks the regional client.
        reliability: Retry budgets and optional deadline.
        header_mapper: Derives request headers from staged content.
        content_types: Resolves a default content type from the key.
        metrics: Registry for attempt and outcome counters.

    Example:
        >>> committer = UploadCommitter(router.execute, ReliabilityConfig())
        >>> receipt = (await committer.commit(staged)).unwrap()
    """

    __slots__ = (
        "_invoke", "_policy", "_part_policy", "_mapper", "_content_types", "_metrics",
    )

    def __init__(
        self,
        invoke: Invoke,
        reliability: Optional[ReliabilityConfig] = None,
        header_mapper: Optional[ContextAwareHeaderMapper] = None,
        content_types: Optional[ContentTypeResolver] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        reliability = reliability or ReliabilityConfig()
        self._invoke = invoke
        self._policy = RetryPolicy.from_config(reliability)
        self._part_policy = RetryPolicy.for_parts(reliability)
        self._mapper = header_mapper or DefaultHeaderMapper()
        self._content_types = content_types or ContentTypeResolver()
        self._metrics = metrics or MetricsRegistry()

    # -------------------------------------------------------------------------
    # COMMIT
    # -------------------------------------------------------------------------

    async def commit(self, staged: StagedContent) -> Result[UploadReceipt, BucketMeshError]:
        """
        Upload staged content and release its resources.

        Cancellation while committing releases the staged content the
        same way abort() would: the file is deleted and an open session
        is aborted.
        """
        start = time.monotonic()
        strategy = staged.strategy.value

        with logger.context(bucket=staged.bucket, key=staged.key, strategy=strategy):
            try:
                result = await self._commit(staged)
            except asyncio.CancelledError:
                logger.warning("Commit cancelled, releasing staged content")
                await self._discard(staged)
                raise

            self._metrics.commit_latency.observe(time.monotonic() - start, strategy=strategy)
            if result.is_ok():
                self._metrics.uploads_committed.inc(strategy=strategy)
                logger.info(
                    "Upload committed",
                    etag=result.value.etag,
                    size_bytes=result.value.size_bytes,
                    attempts=result.value.attempts,
                )
            else:
                error = result.error
                self._metrics.uploads_failed.inc(strategy=strategy, code=error.code.name)
                logger.error(
                    "Upload failed",
                    code=error.code.name,
                    error_id=error.error_id,
                    recovery_path=error.recovery_path,
                )
            return result

    async def _commit(self, staged: StagedContent) -> Result[UploadReceipt, BucketMeshError]:
        headers = self._headers(staged)
        if headers.is_err():
            await self._on_failure(staged)
            return Err(UploadError.rejected(
                staged.bucket, staged.key, headers.error, recovery_path=staged.path
            ))
        kwargs = headers.value.to_request_kwargs()

        if staged.strategy is StagingStrategy.MULTIPART:
            operation_name = "complete_multipart_upload"

            async def operation(client: RegionalClient) -> Result[ObjectInfo, BucketMeshError]:
                return await client.complete_multipart_upload(staged.session, staged.parts)

        elif staged.strategy is StagingStrategy.DISK:
            operation_name = "put_object"

            async def operation(client: RegionalClient) -> Result[ObjectInfo, BucketMeshError]:
                try:
                    with open(staged.path, "rb") as body:
                        return await client.put_object(staged.bucket, staged.key, body, kwargs)
                except OSError as e:
                    return Err(StagingError.io_failed(staged.key, staged.path, e))

        else:
            operation_name = "put_object"

            async def operation(client: RegionalClient) -> Result[ObjectInfo, BucketMeshError]:
                return await client.put_object(staged.bucket, staged.key, staged.body, kwargs)

        stats = RetryStats()
        result = await self._run(
            staged.bucket, operation, self._policy, operation_name, stats, staged.strategy
        )

        if result.is_err():
            await self._on_failure(staged)
            return Err(self._upload_error(staged, result.error))

        await self._on_success(staged)
        info = result.value
        return Ok(UploadReceipt(
            bucket=staged.bucket,
            key=staged.key,
            etag=info.etag,
            size_bytes=staged.size_bytes,
            content_type=headers.value.content_type,
            strategy=staged.strategy,
            attempts=stats.total_attempts,
            version_id=info.version_id,
            parts=len(staged.parts),
        ))

    # -------------------------------------------------------------------------
    # MULTIPART SESSION SUPPORT
    # -------------------------------------------------------------------------

    async def begin_multipart(
        self,
        bucket: str,
        key: str,
        content_type: Optional[str],
        metadata: Mapping[str, str],
    ) -> Result[MultipartSession, BucketMeshError]:
        """Create a multipart session carrying the object headers."""
        source = StagedContent(
            bucket=bucket,
            key=key,
            strategy=StagingStrategy.MULTIPART,
            size_bytes=0,
            content_type=content_type,
            metadata=dict(metadata),
        )
        headers = self._headers(source)
        if headers.is_err():
            return Err(UploadError.rejected(bucket, key, headers.error))
        kwargs = headers.value.to_request_kwargs()

        async def operation(client: RegionalClient) -> Result[MultipartSession, BucketMeshError]:
            return await client.create_multipart_upload(bucket, key, kwargs)

        result = await self._run(
            bucket, operation, self._policy, "create_multipart_upload",
            RetryStats(), StagingStrategy.MULTIPART,
        )
        if result.is_err():
            return Err(self._upload_error(source, result.error))
        logger.debug("Multipart session started", bucket=bucket, key=key)
        return result

    async def upload_part(
        self,
        session: MultipartSession,
        part_number: int,
        data: bytes,
    ) -> Result[CompletedPart, BucketMeshError]:
        """Upload one part under the part retry budget."""

        async def operation(client: RegionalClient) -> Result[CompletedPart, BucketMeshError]:
            return await client.upload_part(session, part_number, data)

        stats = RetryStats()
        result = await self._run(
            session.bucket, operation, self._part_policy, f"upload_part[{part_number}]",
            stats, StagingStrategy.MULTIPART,
        )
        if result.is_ok():
            return result

        error = result.error
        last = error.last_error if isinstance(error, ReliabilityError) else error
        logger.warning(
            "Part upload failed",
            bucket=session.bucket,
            key=session.key,
            part_number=part_number,
            attempts=stats.total_attempts,
        )
        return Err(UploadError.part_failed(
            session.bucket, session.key, part_number, stats.total_attempts, last
        ))

    async def abort_multipart(self, session: MultipartSession) -> Result[None, BucketMeshError]:
        """Release a server-side session. Failures are logged and returned."""

        async def operation(client: RegionalClient) -> Result[None, BucketMeshError]:
            return await client.abort_multipart_upload(session)

        result = await self._run(
            session.bucket, operation, self._policy, "abort_multipart_upload",
            RetryStats(), StagingStrategy.MULTIPART,
        )
        if result.is_ok():
            self._metrics.multipart_aborts.inc()
            logger.info("Multipart session aborted", bucket=session.bucket, key=session.key)
        else:
            logger.error(
                "Multipart abort failed; session may be orphaned",
                bucket=session.bucket,
                key=session.key,
                upload_id=session.upload_id,
                code=result.error.code.name,
            )
        return result

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------

    def _headers(self, staged: StagedContent) -> Result[ObjectHeaders, BucketMeshError]:
        context = ConversionContext(
            bucket=staged.bucket,
            key=staged.key,
            strategy=staged.strategy,
            size_bytes=staged.size_bytes,
            default_content_type=self._content_types.resolve(staged.key),
        )
        return self._mapper.create_context_headers(staged, context)

    async def _run(
        self,
        bucket: str,
        operation: Operation,
        policy: RetryPolicy,
        name: str,
        stats: RetryStats,
        strategy: StagingStrategy,
    ) -> Result[T, BucketMeshError]:
        label = strategy.value

        async def attempt() -> Result[T, BucketMeshError]:
            self._metrics.upload_attempts.inc(strategy=label)
            return await self._invoke(bucket, operation)

        def on_retry(attempt_number: int, error: BucketMeshError) -> None:
            self._metrics.upload_retries.inc(strategy=label)
            logger.warning(
                "Transient failure, retrying",
                operation=name,
                attempt=attempt_number,
                code=error.code.name,
            )

        return await retry_with_backoff(
            attempt, policy=policy, operation=name, stats=stats, on_retry=on_retry
        )

    def _upload_error(self, staged: StagedContent, error: BucketMeshError) -> UploadError:
        recovery_path = staged.path if staged.strategy is StagingStrategy.DISK else None
        if isinstance(error, UploadError):
            return error
        if error.code is ErrorCode.RELIABILITY_RETRY_EXHAUSTED:
            return UploadError.retry_exhausted(
                staged.bucket, staged.key, error.attempts, error.last_error, recovery_path
            )
        if error.code is ErrorCode.RELIABILITY_DEADLINE_EXCEEDED:
            failure = UploadError.deadline_exceeded(
                staged.bucket, staged.key, error.context.get("deadline_s", 0.0), recovery_path
            )
            return failure.with_context(attempts=error.attempts)
        return UploadError.rejected(staged.bucket, staged.key, error, recovery_path)

    async def _on_success(self, staged: StagedContent) -> None:
        if staged.strategy is StagingStrategy.DISK and staged.path:
            try:
                os.unlink(staged.path)
            except OSError as e:
                logger.warning("Cannot delete staging file", path=staged.path, reason=str(e))

    async def _on_failure(self, staged: StagedContent) -> None:
        # DISK keeps its file as the recovery artifact
        if staged.strategy is StagingStrategy.MULTIPART and staged.session is not None:
            await self.abort_multipart(staged.session)

    async def _discard(self, staged: StagedContent) -> None:
        await self._on_failure(staged)
        if staged.strategy is StagingStrategy.DISK and staged.path:
            try:
                os.unlink(staged.path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Cannot delete staging file", path=staged.path, reason=str(e))
