"""
Region-Aware Router: Bucket-Oblivious Facade

Exposes the operation surface of a single-region client while routing
every call to the region that hosts the bucket.

Per operation:
    1. resolve the bucket's region (RegionResolver)
    2. get or create that region's client (RegionalClientPool)
    3. run the operation
    4. on a region mismatch: report it, switch to the corrected region
       and run the operation exactly once more; a second mismatch is
       returned as RoutingError.repeated_mismatch and never retried

Degraded mode (routing.cross_region_enabled = False) sends everything
to the default-region client and skips steps 1 and 4.

Writes go through the upload pipeline:
    open_writer() → ContentStager → UploadCommitter → execute()
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import (
    Any, AsyncIterator, Awaitable, Callable, Mapping, Optional, Tuple, Type, TypeVar,
)

from bucketmesh.codec.content_type import ContentTypeResolver
from bucketmesh.codec.headers import ContextAwareHeaderMapper
from bucketmesh.codec.serialization import JsonCodec
from bucketmesh.core import constants as C
from bucketmesh.core.config import BucketMeshConfig
from bucketmesh.core.errors import BucketMeshError, ErrorCode, RoutingError
from bucketmesh.core.types import (
    Err,
    ObjectInfo,
    ObjectPage,
    Ok,
    Result,
    StagingStrategy,
    UploadReceipt,
)
from bucketmesh.observability.metrics import MetricsRegistry
from bucketmesh.routing.pool import RegionalClientPool
from bucketmesh.routing.resolver import RegionResolver
from bucketmesh.staging.factory import create_stager
from bucketmesh.storage.protocols import RegionalClient, RegionalClientFactory
from bucketmesh.upload.committer import UploadCommitter
from bucketmesh.upload.writer import ObjectWriter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RegionAwareRouter:
    """
    Top-level entry point.

    Example:
        >>> async with RegionAwareRouter(config) as router:
        ...     await router.put_object("photos", "cat.jpg", data)
        ...     data, info = (await router.get_object("photos", "cat.jpg")).unwrap()
    """

    def __init__(
        self,
        config: Optional[BucketMeshConfig] = None,
        client_factory: Optional[RegionalClientFactory] = None,
        *,
        metrics: Optional[MetricsRegistry] = None,
        header_mapper: Optional[ContextAwareHeaderMapper] = None,
        content_types: Optional[ContentTypeResolver] = None,
        codec: Optional[JsonCodec] = None,
    ) -> None:
        self._config = config or BucketMeshConfig()
        if client_factory is None:
            from bucketmesh.storage.s3_store import S3ClientFactory
            client_factory = S3ClientFactory(self._config.s3)

        self._metrics = metrics or MetricsRegistry()
        self._codec = codec or JsonCodec()
        self._pool = RegionalClientPool(client_factory, self._metrics)
        self._resolver = RegionResolver(
            self._pool, self._config.routing.default_region, self._metrics
        )
        self._committer = UploadCommitter(
            self.execute,
            self._config.reliability,
            header_mapper=header_mapper,
            content_types=content_types,
            metrics=self._metrics,
        )

    # -------------------------------------------------------------------------
    # COMPONENTS
    # -------------------------------------------------------------------------

    @property
    def config(self) -> BucketMeshConfig:
        return self._config

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    @property
    def resolver(self) -> RegionResolver:
        return self._resolver

    @property
    def pool(self) -> RegionalClientPool:
        return self._pool

    @property
    def committer(self) -> UploadCommitter:
        return self._committer

    @property
    def cross_region_enabled(self) -> bool:
        return self._config.routing.cross_region_enabled

    # -------------------------------------------------------------------------
    # ROUTED EXECUTION
    # -------------------------------------------------------------------------

    async def resolve_region(self, bucket: str) -> Result[str, BucketMeshError]:
        """Region operations on the bucket are sent to."""
        if not self.cross_region_enabled:
            return Ok(self._config.routing.default_region)
        return await self._resolver.resolve(bucket)

    async def execute(
        self,
        bucket: str,
        operation: Callable[[RegionalClient], Awaitable[Result[T, BucketMeshError]]],
    ) -> Result[T, BucketMeshError]:
        """Run operation against the client of the bucket's region."""
        if not self.cross_region_enabled:
            return await self._run(self._config.routing.default_region, operation)

        resolved = await self._resolver.resolve(bucket)
        if resolved.is_err():
            return resolved
        first_region = resolved.value

        result = await self._run(first_region, operation)
        if result.is_ok():
            return result

        error = result.error
        if error.code is ErrorCode.REQUEST_NO_SUCH_BUCKET:
            self._resolver.forget(bucket)
            return result
        if error.code is not ErrorCode.ROUTING_REGION_MISMATCH:
            return result

        signaled = error.signaled_region if isinstance(error, RoutingError) else None
        if signaled:
            corrected = self._resolver.report_mismatch(bucket, signaled)
        else:
            refreshed = await self._resolver.refresh(bucket)
            if refreshed.is_err():
                return refreshed
            corrected = refreshed.value

        logger.info(
            "Re-routing %s from %s to %s", bucket, first_region, corrected,
            extra={"bucket": bucket, "region": corrected},
        )

        retried = await self._run(corrected, operation)
        if retried.is_err() and retried.error.code is ErrorCode.ROUTING_REGION_MISMATCH:
            second = retried.error
            logger.error(
                "Corrected region %s rejected bucket %s", corrected, bucket,
                extra={"bucket": bucket, "region": corrected},
            )
            return Err(RoutingError.repeated_mismatch(
                bucket=bucket,
                first_region=first_region,
                second_region=corrected,
                signaled_region=second.signaled_region if isinstance(second, RoutingError) else None,
            ))
        return retried

    async def _run(
        self,
        region: str,
        operation: Callable[[RegionalClient], Awaitable[Result[T, BucketMeshError]]],
    ) -> Result[T, BucketMeshError]:
        client = await self._pool.get(region)
        if client.is_err():
            return client
        return await operation(client.value)

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    async def get_object(
        self,
        bucket: str,
        key: str,
    ) -> Result[Tuple[bytes, ObjectInfo], BucketMeshError]:
        return await self.execute(bucket, lambda client: client.get_object(bucket, key))

    async def head_object(self, bucket: str, key: str) -> Result[ObjectInfo, BucketMeshError]:
        return await self.execute(bucket, lambda client: client.head_object(bucket, key))

    async def object_exists(self, bucket: str, key: str) -> Result[bool, BucketMeshError]:
        result = await self.head_object(bucket, key)
        if result.is_ok():
            return Ok(True)
        if result.error.code is ErrorCode.REQUEST_NOT_FOUND:
            return Ok(False)
        return result

    async def list_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        limit: int = C.DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Result[ObjectPage, BucketMeshError]:
        return await self.execute(
            bucket, lambda client: client.list_objects(bucket, prefix, limit, cursor)
        )

    async def iter_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        page_size: int = C.DEFAULT_PAGE_SIZE,
    ) -> AsyncIterator[ObjectInfo]:
        """
        Iterate every object under prefix, fetching pages on demand.

        Raises:
            BucketMeshError: A page could not be fetched.
        """
        cursor: Optional[str] = None
        while True:
            result = await self.list_objects(bucket, prefix, page_size, cursor)
            if result.is_err():
                raise result.error

            page = result.value
            for obj in page.objects:
                yield obj

            if page.next_cursor is None:
                break
            cursor = page.next_cursor

    # -------------------------------------------------------------------------
    # WRITES
    # -------------------------------------------------------------------------

    def open_writer(
        self,
        bucket: str,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        strategy: Optional[StagingStrategy] = None,
    ) -> ObjectWriter:
        """Writer with a fresh stager of the configured (or given) strategy."""
        stager = create_stager(
            self._config.staging,
            bucket,
            key,
            self._committer,
            strategy=strategy,
            content_type=content_type,
            metadata=metadata,
            metrics=self._metrics,
        )
        return ObjectWriter(stager, self._committer)

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        strategy: Optional[StagingStrategy] = None,
    ) -> Result[UploadReceipt, BucketMeshError]:
        """Upload bytes through the staging pipeline."""
        writer = self.open_writer(bucket, key, content_type, metadata, strategy)
        try:
            written = await writer.write(data)
            if written.is_err():
                await writer.abort()
                return written
            return await writer.close()
        except BaseException as exc:
            await writer.abort(f"{type(exc).__name__} raised while writing")
            raise

    async def delete_object(self, bucket: str, key: str) -> Result[bool, BucketMeshError]:
        return await self.execute(bucket, lambda client: client.delete_object(bucket, key))

    # -------------------------------------------------------------------------
    # CODEC CONVENIENCE
    # -------------------------------------------------------------------------

    async def put_value(
        self,
        bucket: str,
        key: str,
        value: Any,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> Result[UploadReceipt, BucketMeshError]:
        """Encode value as JSON and upload it."""
        encoded = self._codec.encode(value)
        if encoded.is_err():
            return encoded
        return await self.put_object(
            bucket, key, encoded.value,
            content_type=self._codec.content_type,
            metadata=metadata,
        )

    async def get_value(
        self,
        bucket: str,
        key: str,
        type_: Type[T] = Any,
    ) -> Result[T, BucketMeshError]:
        """Download and decode a JSON value."""
        fetched = await self.get_object(bucket, key)
        if fetched.is_err():
            return fetched
        data, _ = fetched.value
        return self._codec.decode(data, type_)

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close every regional client. The router cannot be used afterwards."""
        await self._pool.close()
        logger.info("Router closed")

    async def __aenter__(self) -> RegionAwareRouter:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()
