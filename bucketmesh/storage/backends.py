"""
In-Memory Regional Service: Development and Testing Implementation

Region-partitioned simulation of the object storage service:
- Every bucket lives in exactly one region
- A client addressing the wrong region receives a region mismatch
  carrying the correct region as hint, like a 301 redirect
- Multipart sessions are tracked server-side and stay observable until
  completed or aborted
- Fault rules inject transient or permanent failures per operation,
  per bucket, per region or per part number

Design Principles:
    - Full RegionalClient compliance for seamless swap with S3RegionalClient
    - State shared by all regional clients of one service instance
    - Thread-safe mutations via asyncio locks

Example:
    service = InMemoryObjectService()
    service.create_bucket("photos", "eu-west-1")
    service.fail("put_object", times=2)

    router = RegionAwareRouter(config, InMemoryClientFactory(service))

License: MIT
"""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple
from uuid import uuid4

from bucketmesh.core import constants as C
from bucketmesh.core.errors import (
    BucketMeshError,
    RequestError,
    RoutingError,
    TransportError,
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
from bucketmesh.storage.protocols import Body, RegionalClient

# Marks a bucket without a redirect hint override
_NO_OVERRIDE = object()


# =============================================================================
# FAULT INJECTION
# =============================================================================
@dataclass
class FaultRule:
    """
    Failure injected into matching calls.

    remaining=None fails every matching call; otherwise the rule fires
    that many times and then stops matching.
    """
    operation: str
    error: Callable[[], BucketMeshError]
    remaining: Optional[int] = None
    bucket: Optional[str] = None
    region: Optional[str] = None
    part_number: Optional[int] = None
    hits: int = 0

    def matches(
        self,
        operation: str,
        region: str,
        bucket: str,
        part_number: Optional[int],
    ) -> bool:
        if self.remaining is not None and self.remaining <= 0:
            return False
        if self.operation != operation:
            return False
        if self.bucket is not None and self.bucket != bucket:
            return False
        if self.region is not None and self.region != region:
            return False
        if self.part_number is not None and self.part_number != part_number:
            return False
        return True

    def fire(self) -> BucketMeshError:
        self.hits += 1
        if self.remaining is not None:
            self.remaining -= 1
        return self.error()


# =============================================================================
# SERVER-SIDE STATE
# =============================================================================
@dataclass
class _StoredObject:
    data: bytes
    info: ObjectInfo


@dataclass
class _OpenUpload:
    session: MultipartSession
    region: str
    headers: Dict[str, Any]
    parts: Dict[int, bytes] = field(default_factory=dict)


def _etag(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class InMemoryObjectService:
    """
    Shared state of the simulated service.

    Also records every call as (region, operation, bucket) in `calls`,
    which tests use to count discovery probes.
    """

    def __init__(self) -> None:
        self._bucket_regions: Dict[str, str] = {}
        self._objects: Dict[Tuple[str, str], _StoredObject] = {}
        self._uploads: Dict[str, _OpenUpload] = {}
        self._aborted: Set[str] = set()
        self._redirect_hints: Dict[str, Optional[str]] = {}
        self._faults: List[FaultRule] = []
        self._lock = asyncio.Lock()
        self.calls: List[Tuple[str, str, str]] = []

    # -------------------------------------------------------------------------
    # SETUP
    # -------------------------------------------------------------------------

    def create_bucket(self, bucket: str, region: str) -> None:
        self._bucket_regions[bucket] = region

    def set_redirect_hint(self, bucket: str, region: Optional[str]) -> None:
        """
        Override the region named in mismatch responses for a bucket.

        None makes the service answer mismatches without any hint.
        """
        self._redirect_hints[bucket] = region

    def fail(
        self,
        operation: str,
        *,
        times: Optional[int] = None,
        bucket: Optional[str] = None,
        region: Optional[str] = None,
        part_number: Optional[int] = None,
        error: Optional[Callable[[], BucketMeshError]] = None,
    ) -> FaultRule:
        """
        Inject a failure into an operation.

        Defaults to a transient TransportError on every matching call.
        """
        rule = FaultRule(
            operation=operation,
            error=error or (lambda: TransportError.unavailable(operation, "injected fault")),
            remaining=times,
            bucket=bucket,
            region=region,
            part_number=part_number,
        )
        self._faults.append(rule)
        return rule

    def clear_faults(self) -> None:
        self._faults.clear()

    # -------------------------------------------------------------------------
    # INSPECTION
    # -------------------------------------------------------------------------

    def bucket_region(self, bucket: str) -> Optional[str]:
        return self._bucket_regions.get(bucket)

    def object_data(self, bucket: str, key: str) -> Optional[bytes]:
        stored = self._objects.get((bucket, key))
        return stored.data if stored else None

    def keys(self, bucket: str) -> List[str]:
        return sorted(k for b, k in self._objects if b == bucket)

    def open_sessions(self, bucket: Optional[str] = None) -> List[MultipartSession]:
        """Multipart sessions neither completed nor aborted."""
        return [
            u.session for u in self._uploads.values()
            if bucket is None or u.session.bucket == bucket
        ]

    def aborted_upload_ids(self) -> Set[str]:
        return set(self._aborted)

    def count_calls(self, operation: str, bucket: Optional[str] = None) -> int:
        return sum(
            1 for _, op, b in self.calls
            if op == operation and (bucket is None or b == bucket)
        )

    # -------------------------------------------------------------------------
    # REQUEST CHECKS
    # -------------------------------------------------------------------------

    def _admit(
        self,
        region: str,
        operation: str,
        bucket: str,
        part_number: Optional[int] = None,
        check_region: bool = True,
    ) -> Optional[BucketMeshError]:
        """Record the call; return the error it must fail with, if any."""
        self.calls.append((region, operation, bucket))

        for rule in self._faults:
            if rule.matches(operation, region, bucket, part_number):
                return rule.fire()

        actual = self._bucket_regions.get(bucket)
        if actual is None:
            return RequestError.no_such_bucket(bucket)
        if check_region and actual != region:
            hint = self._redirect_hints.get(bucket, _NO_OVERRIDE)
            return RoutingError.region_mismatch(
                bucket=bucket,
                addressed_region=region,
                signaled_region=actual if hint is _NO_OVERRIDE else hint,
            )
        return None

    # -------------------------------------------------------------------------
    # OPERATIONS (called by InMemoryRegionalClient)
    # -------------------------------------------------------------------------

    async def head_bucket(self, region: str, bucket: str) -> Result[str, BucketMeshError]:
        async with self._lock:
            error = self._admit(region, "head_bucket", bucket, check_region=False)
            if error:
                return Err(error)
            return Ok(self._bucket_regions[bucket])

    async def put(
        self,
        region: str,
        bucket: str,
        key: str,
        data: bytes,
        headers: Dict[str, Any],
    ) -> Result[ObjectInfo, BucketMeshError]:
        async with self._lock:
            error = self._admit(region, "put_object", bucket)
            if error:
                return Err(error)
            return Ok(self._store(region, bucket, key, data, headers, _etag(data)))

    async def get(
        self,
        region: str,
        bucket: str,
        key: str,
        operation: str,
    ) -> Result[_StoredObject, BucketMeshError]:
        async with self._lock:
            error = self._admit(region, operation, bucket)
            if error:
                return Err(error)
            stored = self._objects.get((bucket, key))
            if stored is None:
                return Err(RequestError.not_found(bucket, key))
            return Ok(stored)

    async def delete(self, region: str, bucket: str, key: str) -> Result[bool, BucketMeshError]:
        async with self._lock:
            error = self._admit(region, "delete_object", bucket)
            if error:
                return Err(error)
            self._objects.pop((bucket, key), None)
            return Ok(True)

    async def list_page(
        self,
        region: str,
        bucket: str,
        prefix: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> Result[ObjectPage, BucketMeshError]:
        async with self._lock:
            error = self._admit(region, "list_objects", bucket)
            if error:
                return Err(error)

            keys = [k for k in self.keys(bucket) if k.startswith(prefix or "")]
            start = 0
            if cursor:
                try:
                    start = int(cursor)
                except ValueError:
                    return Err(RequestError.invalid("list_objects", f"bad cursor {cursor!r}"))
            end = start + limit
            objects = tuple(self._objects[(bucket, k)].info for k in keys[start:end])
            return Ok(ObjectPage(
                objects=objects,
                next_cursor=str(end) if end < len(keys) else None,
            ))

    async def create_upload(
        self,
        region: str,
        bucket: str,
        key: str,
        headers: Dict[str, Any],
    ) -> Result[MultipartSession, BucketMeshError]:
        async with self._lock:
            error = self._admit(region, "create_multipart_upload", bucket)
            if error:
                return Err(error)
            session = MultipartSession(bucket=bucket, key=key, upload_id=uuid4().hex)
            self._uploads[session.upload_id] = _OpenUpload(
                session=session, region=region, headers=dict(headers)
            )
            return Ok(session)

    async def upload_part(
        self,
        region: str,
        session: MultipartSession,
        part_number: int,
        data: bytes,
    ) -> Result[CompletedPart, BucketMeshError]:
        async with self._lock:
            error = self._admit(region, "upload_part", session.bucket, part_number)
            if error:
                return Err(error)
            upload = self._uploads.get(session.upload_id)
            if upload is None:
                return Err(RequestError.invalid("upload_part", "NoSuchUpload"))
            upload.parts[part_number] = bytes(data)
            return Ok(CompletedPart(
                part_number=part_number,
                etag=_etag(data),
                size_bytes=len(data),
            ))

    async def complete_upload(
        self,
        region: str,
        session: MultipartSession,
        parts: Sequence[CompletedPart],
    ) -> Result[ObjectInfo, BucketMeshError]:
        async with self._lock:
            error = self._admit(region, "complete_multipart_upload", session.bucket)
            if error:
                return Err(error)
            upload = self._uploads.get(session.upload_id)
            if upload is None:
                return Err(RequestError.invalid("complete_multipart_upload", "NoSuchUpload"))

            chunks = []
            digests = b""
            for part in sorted(parts):
                data = upload.parts.get(part.part_number)
                if data is None or _etag(data) != part.etag:
                    return Err(RequestError.invalid(
                        "complete_multipart_upload", f"InvalidPart {part.part_number}"
                    ))
                chunks.append(data)
                digests += hashlib.md5(data).digest()

            del self._uploads[session.upload_id]
            etag = f"{hashlib.md5(digests).hexdigest()}-{len(chunks)}"
            return Ok(self._store(
                region, session.bucket, session.key, b"".join(chunks), upload.headers, etag
            ))

    async def abort_upload(
        self,
        region: str,
        session: MultipartSession,
    ) -> Result[None, BucketMeshError]:
        async with self._lock:
            error = self._admit(region, "abort_multipart_upload", session.bucket)
            if error:
                return Err(error)
            if self._uploads.pop(session.upload_id, None) is None:
                return Err(RequestError.invalid("abort_multipart_upload", "NoSuchUpload"))
            self._aborted.add(session.upload_id)
            return Ok(None)

    def _store(
        self,
        region: str,
        bucket: str,
        key: str,
        data: bytes,
        headers: Dict[str, Any],
        etag: str,
    ) -> ObjectInfo:
        info = ObjectInfo(
            bucket=bucket,
            key=key,
            size_bytes=len(data),
            content_type=headers.get("ContentType", C.DEFAULT_CONTENT_TYPE),
            etag=etag,
            last_modified=datetime.now(timezone.utc),
            metadata=dict(headers.get("Metadata", {})),
            region=region,
        )
        self._objects[(bucket, key)] = _StoredObject(data=data, info=info)
        return info


# =============================================================================
# REGIONAL CLIENT
# =============================================================================
class InMemoryRegionalClient:
    """RegionalClient bound to one region of an InMemoryObjectService."""

    __slots__ = ("_service", "_region", "_latency_s", "closed")

    def __init__(
        self,
        service: InMemoryObjectService,
        region: str,
        latency_s: float = 0.0,
    ) -> None:
        self._service = service
        self._region = region
        self._latency_s = latency_s
        self.closed = False

    @property
    def region(self) -> str:
        return self._region

    async def _delay(self) -> None:
        if self._latency_s:
            await asyncio.sleep(self._latency_s)

    async def head_bucket(self, bucket: str) -> Result[str, BucketMeshError]:
        await self._delay()
        return await self._service.head_bucket(self._region, bucket)

    async def get_object(
        self,
        bucket: str,
        key: str,
    ) -> Result[Tuple[bytes, ObjectInfo], BucketMeshError]:
        await self._delay()
        result = await self._service.get(self._region, bucket, key, "get_object")
        return result.map(lambda stored: (stored.data, stored.info))

    async def head_object(self, bucket: str, key: str) -> Result[ObjectInfo, BucketMeshError]:
        await self._delay()
        result = await self._service.get(self._region, bucket, key, "head_object")
        return result.map(lambda stored: stored.info)

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: Body,
        headers: Dict[str, Any],
    ) -> Result[ObjectInfo, BucketMeshError]:
        await self._delay()
        data = bytes(body) if isinstance(body, (bytes, bytearray, memoryview)) else body.read()
        return await self._service.put(self._region, bucket, key, data, headers)

    async def delete_object(self, bucket: str, key: str) -> Result[bool, BucketMeshError]:
        await self._delay()
        return await self._service.delete(self._region, bucket, key)

    async def list_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        limit: int = C.DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Result[ObjectPage, BucketMeshError]:
        await self._delay()
        return await self._service.list_page(self._region, bucket, prefix, limit, cursor)

    async def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        headers: Dict[str, Any],
    ) -> Result[MultipartSession, BucketMeshError]:
        await self._delay()
        return await self._service.create_upload(self._region, bucket, key, headers)

    async def upload_part(
        self,
        session: MultipartSession,
        part_number: int,
        data: bytes,
    ) -> Result[CompletedPart, BucketMeshError]:
        await self._delay()
        return await self._service.upload_part(self._region, session, part_number, data)

    async def complete_multipart_upload(
        self,
        session: MultipartSession,
        parts: Sequence[CompletedPart],
    ) -> Result[ObjectInfo, BucketMeshError]:
        await self._delay()
        return await self._service.complete_upload(self._region, session, parts)

    async def abort_multipart_upload(
        self,
        session: MultipartSession,
    ) -> Result[None, BucketMeshError]:
        await self._delay()
        return await self._service.abort_upload(self._region, session)

    async def close(self) -> None:
        self.closed = True


class InMemoryClientFactory:
    """
    RegionalClientFactory over one InMemoryObjectService.

    `created` lists every client ever handed out, so tests can assert
    how many clients exist per region. `creation_delay_s` widens the
    window in which concurrent first users of a region could race.
    """

    def __init__(
        self,
        service: InMemoryObjectService,
        latency_s: float = 0.0,
        creation_delay_s: float = 0.0,
    ) -> None:
        self.service = service
        self.created: List[InMemoryRegionalClient] = []
        self._latency_s = latency_s
        self._creation_delay_s = creation_delay_s

    async def __call__(self, region: str) -> Result[RegionalClient, BucketMeshError]:
        if self._creation_delay_s:
            await asyncio.sleep(self._creation_delay_s)
        client = InMemoryRegionalClient(self.service, region, self._latency_s)
        self.created.append(client)
        return Ok(client)

    def created_for(self, region: str) -> List[InMemoryRegionalClient]:
        return [c for c in self.created if c.region == region]
