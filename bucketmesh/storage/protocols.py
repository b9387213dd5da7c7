"""
Regional Client Protocol
========================

Contract of a client bound to exactly one region of the object storage
service. The router never talks to the service directly: it obtains a
RegionalClient from the pool and invokes one of these coroutines.

Every method returns a Result. Implementations translate service
responses into the error taxonomy of core.errors; in particular a
"wrong endpoint" redirect becomes RoutingError.region_mismatch carrying
the region hint, which is what lets the router correct itself.

Method Summary:
---------------
| Method                    | Remote call                  |
|---------------------------|------------------------------|
| head_bucket               | HeadBucket (region probe)    |
| get_object                | GetObject                    |
| head_object               | HeadObject                   |
| put_object                | PutObject (bytes or file)    |
| delete_object             | DeleteObject                 |
| list_objects              | ListObjectsV2                |
| create_multipart_upload   | CreateMultipartUpload        |
| upload_part               | UploadPart                   |
| complete_multipart_upload | CompleteMultipartUpload      |
| abort_multipart_upload    | AbortMultipartUpload         |
"""

from __future__ import annotations

from typing import (
    Any, BinaryIO, Dict, Optional, Protocol, Sequence, Tuple, Union,
    runtime_checkable,
)

from bucketmesh.core.errors import BucketMeshError
from bucketmesh.core.types import (
    CompletedPart,
    MultipartSession,
    ObjectInfo,
    ObjectPage,
    Result,
)

Body = Union[bytes, BinaryIO]


@runtime_checkable
class RegionalClient(Protocol):
    """
    Client bound to one region for its whole lifetime.

    Request headers (content type, user metadata, cache control, ...)
    arrive as the keyword dict produced by
    codec.headers.ObjectHeaders.to_request_kwargs().
    """

    @property
    def region(self) -> str:
        """Region this client addresses."""
        ...

    async def head_bucket(self, bucket: str) -> Result[str, BucketMeshError]:
        """
        Discover the region hosting a bucket.

        Returns the region the service reports for the bucket, whether
        the bucket answered directly or through a redirect.
        """
        ...

    async def get_object(
        self,
        bucket: str,
        key: str,
    ) -> Result[Tuple[bytes, ObjectInfo], BucketMeshError]:
        ...

    async def head_object(
        self,
        bucket: str,
        key: str,
    ) -> Result[ObjectInfo, BucketMeshError]:
        ...

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: Body,
        headers: Dict[str, Any],
    ) -> Result[ObjectInfo, BucketMeshError]:
        ...

    async def delete_object(
        self,
        bucket: str,
        key: str,
    ) -> Result[bool, BucketMeshError]:
        ...

    async def list_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        limit: int = 1000,
        cursor: Optional[str] = None,
    ) -> Result[ObjectPage, BucketMeshError]:
        ...

    async def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        headers: Dict[str, Any],
    ) -> Result[MultipartSession, BucketMeshError]:
        ...

    async def upload_part(
        self,
        session: MultipartSession,
        part_number: int,
        data: bytes,
    ) -> Result[CompletedPart, BucketMeshError]:
        ...

    async def complete_multipart_upload(
        self,
        session: MultipartSession,
        parts: Sequence[CompletedPart],
    ) -> Result[ObjectInfo, BucketMeshError]:
        ...

    async def abort_multipart_upload(
        self,
        session: MultipartSession,
    ) -> Result[None, BucketMeshError]:
        ...

    async def close(self) -> None:
        """Release connections. Safe to call multiple times."""
        ...


class RegionalClientFactory(Protocol):
    """Creates a connected client for a region. Used by the client pool."""

    async def __call__(self, region: str) -> Result[RegionalClient, BucketMeshError]:
        ...
