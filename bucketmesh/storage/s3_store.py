"""
S3 Regional Client
==================

aioboto3 implementation of storage.protocols.RegionalClient, bound to a
single region for its lifetime. Works against AWS S3 and S3-compatible
services (MinIO, R2) through S3Config.endpoint_url.

Design Principles:
------------------
1. **One region per client**: region fixed at construction, the pool
   guarantees one instance per region
2. **Result Monad**: botocore exceptions are translated into the
   error taxonomy and returned as Err, never raised
3. **No hidden retries**: botocore's retry handler is disabled; the
   committer owns retries and the router owns region correction

Error Translation:
------------------
| Service response                                   | Error                          |
|----------------------------------------------------|--------------------------------|
| 301 / 307 / PermanentRedirect / AuthHeaderMalformed| RoutingError.region_mismatch   |
| SlowDown / Throttling / 503                        | TransportError.throttled       |
| 500 / 502 / 504 / connection errors                | TransportError.unavailable     |
| read / connect timeouts                            | TransportError.timeout         |
| 403 / AccessDenied                                 | RequestError.permission_denied |
| NoSuchKey / 404 on an object                       | RequestError.not_found         |
| NoSuchBucket                                       | RequestError.no_such_bucket    |
| other 4xx, ParamValidationError                    | RequestError.invalid           |
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple, TYPE_CHECKING

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ParamValidationError,
    ReadTimeoutError,
)

from bucketmesh.core import constants as C
from bucketmesh.core.errors import (
    BucketMeshError,
    RequestError,
    RoutingError,
    TransportError,
    internal_error,
)
from bucketmesh.core.types import (
    CompletedPart,
    Err,
    MultipartSession,
    ObjectInfo,
    ObjectPage,
    Ok,
    Result,
)
from bucketmesh.storage.config import S3Config
from bucketmesh.storage.protocols import Body, RegionalClient

if TYPE_CHECKING:
    from types_aiobotocore_s3 import S3Client


# =============================================================================
# ERROR TRANSLATION
# =============================================================================

MISMATCH_CODES = frozenset({
    "PermanentRedirect",
    "TemporaryRedirect",
    "AuthorizationHeaderMalformed",
    "IllegalLocationConstraintException",
    "301",
    "307",
})

THROTTLE_CODES = frozenset({
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "503",
})

TRANSIENT_CODES = frozenset({
    "InternalError",
    "ServiceUnavailable",
    "RequestTimeout",
    "500",
    "502",
    "504",
})


def region_hint(response: Dict[str, Any]) -> Optional[str]:
    """Region named by a redirect or error response, if any."""
    headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {}) or {}
    region = headers.get(C.REGION_HINT_HEADER)
    if region:
        return region
    return response.get("Error", {}).get("Region") or None


def translate_error(
    exc: BaseException,
    operation: str,
    region: str,
    bucket: str,
    key: Optional[str] = None,
) -> BucketMeshError:
    """Map a botocore/aiobotocore exception onto the error taxonomy."""
    if isinstance(exc, ClientError):
        response = exc.response
        code = str(response.get("Error", {}).get("Code", ""))
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)

        if code in MISMATCH_CODES or status in (301, 307):
            return RoutingError.region_mismatch(
                bucket=bucket,
                addressed_region=region,
                signaled_region=region_hint(response),
                cause=exc,
            )
        if code in THROTTLE_CODES or status in (429, 503):
            return TransportError.throttled(operation, cause=exc)
        if code in TRANSIENT_CODES or status >= 500:
            return TransportError.unavailable(operation, f"{status} {code}", cause=exc)
        if code == "NoSuchBucket":
            return RequestError.no_such_bucket(bucket, cause=exc)
        if code in ("AccessDenied", "403") or status == 403:
            resource = f"{bucket}/{key}" if key else bucket
            return RequestError.permission_denied(operation, resource, cause=exc)
        if code in ("NoSuchKey", "NotFound", "404") or status == 404:
            if key is None:
                return RequestError.no_such_bucket(bucket, cause=exc)
            return RequestError.not_found(bucket, key, cause=exc)
        return RequestError.invalid(operation, f"{status} {code}".strip(), cause=exc)

    if isinstance(exc, (ConnectTimeoutError, ReadTimeoutError, asyncio.TimeoutError)):
        return TransportError.timeout(operation, cause=exc)
    if isinstance(exc, ParamValidationError):
        return RequestError.invalid(operation, str(exc), cause=exc)
    if isinstance(exc, (EndpointConnectionError, BotoCoreError, ConnectionError)):
        return TransportError.unavailable(operation, str(exc), cause=exc)
    return internal_error(f"Unexpected failure in '{operation}': {exc}", cause=exc)


def _strip_etag(value: Optional[str]) -> str:
    return (value or "").strip('"')


# =============================================================================
# S3 REGIONAL CLIENT
# =============================================================================

class S3RegionalClient:
    """
    aioboto3-backed client for one region.

    Created by S3ClientFactory; callers never construct it directly.

    Example:
        >>> factory = S3ClientFactory(S3Config())
        >>> client = (await factory("eu-west-1")).unwrap()
        >>> result = await client.head_object("photos", "cat.jpg")
        >>> await client.close()
    """

    __slots__ = ("_region", "_client", "_closed")

    def __init__(self, region: str, client: "S3Client") -> None:
        self._region = region
        self._client = client
        self._closed = False

    @property
    def region(self) -> str:
        return self._region

    async def close(self) -> None:
        """Close the underlying aiobotocore client. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        await self._client.__aexit__(None, None, None)

    # -------------------------------------------------------------------------
    # REGION DISCOVERY
    # -------------------------------------------------------------------------

    async def head_bucket(self, bucket: str) -> Result[str, BucketMeshError]:
        """
        Probe the bucket and read its region.

        HeadBucket answers with x-amz-bucket-region on success and on
        301/400/403 redirects. GetBucketLocation is the fallback when no
        header is present (some S3-compatible services omit it).
        """
        try:
            response = await self._client.head_bucket(Bucket=bucket)
            hint = region_hint(response)
            if hint:
                return Ok(hint)
        except ClientError as e:
            hint = region_hint(e.response)
            if hint:
                return Ok(hint)
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
            if status == 404:
                return Err(RequestError.no_such_bucket(bucket, cause=e))
            if status != 403:
                return Err(translate_error(e, "head_bucket", self._region, bucket))
        except Exception as e:
            return Err(translate_error(e, "head_bucket", self._region, bucket))

        try:
            location = await self._client.get_bucket_location(Bucket=bucket)
        except Exception as e:
            return Err(translate_error(e, "get_bucket_location", self._region, bucket))

        constraint = location.get("LocationConstraint")
        if not constraint:
            return Ok(C.DEFAULT_REGION)
        if constraint == C.LEGACY_EU_LOCATION:
            return Ok("eu-west-1")
        return Ok(constraint)

    # -------------------------------------------------------------------------
    # OBJECT OPERATIONS
    # -------------------------------------------------------------------------

    async def get_object(
        self,
        bucket: str,
        key: str,
    ) -> Result[Tuple[bytes, ObjectInfo], BucketMeshError]:
        """Download object into memory."""
        try:
            response = await self._client.get_object(Bucket=bucket, Key=key)
            async with response["Body"] as stream:
                data = await stream.read()
        except Exception as e:
            return Err(translate_error(e, "get_object", self._region, bucket, key))

        return Ok((data, self._object_info(bucket, key, response, len(data))))

    async def head_object(
        self,
        bucket: str,
        key: str,
    ) -> Result[ObjectInfo, BucketMeshError]:
        """Object metadata without content."""
        try:
            response = await self._client.head_object(Bucket=bucket, Key=key)
        except Exception as e:
            return Err(translate_error(e, "head_object", self._region, bucket, key))
        return Ok(self._object_info(bucket, key, response, response.get("ContentLength", 0)))

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: Body,
        headers: Dict[str, Any],
    ) -> Result[ObjectInfo, BucketMeshError]:
        """Single-request upload of bytes or an open binary file."""
        size = len(body) if isinstance(body, (bytes, bytearray)) else None
        try:
            response = await self._client.put_object(
                Bucket=bucket, Key=key, Body=body, **headers
            )
        except Exception as e:
            return Err(translate_error(e, "put_object", self._region, bucket, key))

        if size is None:
            size = body.tell() if hasattr(body, "tell") else 0
        return Ok(ObjectInfo(
            bucket=bucket,
            key=key,
            size_bytes=size,
            content_type=headers.get("ContentType", C.DEFAULT_CONTENT_TYPE),
            etag=_strip_etag(response.get("ETag")),
            metadata=dict(headers.get("Metadata", {})),
            version_id=response.get("VersionId"),
            region=self._region,
        ))

    async def delete_object(
        self,
        bucket: str,
        key: str,
    ) -> Result[bool, BucketMeshError]:
        """Delete object. Deleting a missing key succeeds."""
        try:
            await self._client.delete_object(Bucket=bucket, Key=key)
        except Exception as e:
            return Err(translate_error(e, "delete_object", self._region, bucket, key))
        return Ok(True)

    async def list_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        limit: int = C.DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Result[ObjectPage, BucketMeshError]:
        """One ListObjectsV2 page."""
        kwargs: Dict[str, Any] = {"Bucket": bucket, "MaxKeys": limit}
        if prefix:
            kwargs["Prefix"] = prefix
        if cursor:
            kwargs["ContinuationToken"] = cursor

        try:
            response = await self._client.list_objects_v2(**kwargs)
        except Exception as e:
            return Err(translate_error(e, "list_objects", self._region, bucket))

        objects = tuple(
            ObjectInfo(
                bucket=bucket,
                key=obj["Key"],
                size_bytes=obj.get("Size", 0),
                etag=_strip_etag(obj.get("ETag")),
                last_modified=obj.get("LastModified", datetime.now(timezone.utc)),
                region=self._region,
            )
            for obj in response.get("Contents", [])
        )
        next_cursor = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return Ok(ObjectPage(objects=objects, next_cursor=next_cursor))

    # -------------------------------------------------------------------------
    # MULTIPART SESSIONS
    # -------------------------------------------------------------------------

    async def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        headers: Dict[str, Any],
    ) -> Result[MultipartSession, BucketMeshError]:
        try:
            response = await self._client.create_multipart_upload(
                Bucket=bucket, Key=key, **headers
            )
        except Exception as e:
            return Err(translate_error(e, "create_multipart_upload", self._region, bucket, key))
        return Ok(MultipartSession(bucket=bucket, key=key, upload_id=response["UploadId"]))

    async def upload_part(
        self,
        session: MultipartSession,
        part_number: int,
        data: bytes,
    ) -> Result[CompletedPart, BucketMeshError]:
        try:
            response = await self._client.upload_part(
                Bucket=session.bucket,
                Key=session.key,
                UploadId=session.upload_id,
                PartNumber=part_number,
                Body=data,
            )
        except Exception as e:
            return Err(translate_error(
                e, "upload_part", self._region, session.bucket, session.key
            ))
        return Ok(CompletedPart(
            part_number=part_number,
            etag=response["ETag"],
            size_bytes=len(data),
        ))

    async def complete_multipart_upload(
        self,
        session: MultipartSession,
        parts: Sequence[CompletedPart],
    ) -> Result[ObjectInfo, BucketMeshError]:
        ordered = sorted(parts)
        try:
            response = await self._client.complete_multipart_upload(
                Bucket=session.bucket,
                Key=session.key,
                UploadId=session.upload_id,
                MultipartUpload={"Parts": [p.to_request() for p in ordered]},
            )
        except Exception as e:
            return Err(translate_error(
                e, "complete_multipart_upload", self._region, session.bucket, session.key
            ))
        return Ok(ObjectInfo(
            bucket=session.bucket,
            key=session.key,
            size_bytes=sum(p.size_bytes for p in ordered),
            etag=_strip_etag(response.get("ETag")),
            version_id=response.get("VersionId"),
            region=self._region,
        ))

    async def abort_multipart_upload(
        self,
        session: MultipartSession,
    ) -> Result[None, BucketMeshError]:
        try:
            await self._client.abort_multipart_upload(
                Bucket=session.bucket,
                Key=session.key,
                UploadId=session.upload_id,
            )
        except Exception as e:
            return Err(translate_error(
                e, "abort_multipart_upload", self._region, session.bucket, session.key
            ))
        return Ok(None)

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------

    def _object_info(
        self,
        bucket: str,
        key: str,
        response: Dict[str, Any],
        size: int,
    ) -> ObjectInfo:
        return ObjectInfo(
            bucket=bucket,
            key=key,
            size_bytes=response.get("ContentLength", size),
            content_type=response.get("ContentType", C.DEFAULT_CONTENT_TYPE),
            etag=_strip_etag(response.get("ETag")),
            last_modified=response.get("LastModified", datetime.now(timezone.utc)),
            metadata=dict(response.get("Metadata", {})),
            version_id=response.get("VersionId"),
            region=self._region,
        )


# =============================================================================
# FACTORY
# =============================================================================

class S3ClientFactory:
    """
    Creates connected S3RegionalClient instances, one call per region.

    Holds a single aioboto3 session; each call opens a new aiobotocore
    client bound to the requested region.
    """

    __slots__ = ("_config", "_session")

    def __init__(self, config: Optional[S3Config] = None) -> None:
        self._config = config or S3Config()
        self._session: Any = None

    async def __call__(self, region: str) -> Result[RegionalClient, BucketMeshError]:
        try:
            import aioboto3
        except ImportError as e:
            return Err(internal_error("aioboto3 package not installed: pip install aioboto3", e))

        try:
            if self._session is None:
                self._session = aioboto3.Session(**self._config.session_kwargs())
            client = await self._session.client(
                "s3", **self._config.client_kwargs(region)
            ).__aenter__()
        except Exception as e:
            return Err(TransportError.unavailable(
                "create_client", f"region {region}: {e}", cause=e
            ))
        return Ok(S3RegionalClient(region, client))
