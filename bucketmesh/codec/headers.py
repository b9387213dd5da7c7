"""
Header Mapping: Staged Content → Request Headers

A header mapper is a pure function of (source, context): it receives the
value being uploaded together with an explicit ConversionContext and
derives the ObjectHeaders sent with the remote write. No per-call state
is read from anywhere else.

Validation failures are returned as RequestError.invalid, which the
committer treats as fatal (never retried).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Any, Dict, Generic, Mapping, Optional, Protocol, TypeVar, runtime_checkable,
)

from bucketmesh.core import constants as C
from bucketmesh.core.errors import BucketMeshError, RequestError
from bucketmesh.core.types import Err, Ok, Result, StagingStrategy

S = TypeVar("S", contravariant=True)

_KEY_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_.")

STORAGE_CLASSES = frozenset({
    "STANDARD",
    "REDUCED_REDUNDANCY",
    "STANDARD_IA",
    "ONEZONE_IA",
    "INTELLIGENT_TIERING",
    "GLACIER",
    "DEEP_ARCHIVE",
    "GLACIER_IR",
})


@dataclass(frozen=True, slots=True)
class ConversionContext:
    """
    Everything a mapper may depend on besides the source itself.

    Attributes:
        bucket: Destination bucket.
        key: Destination key.
        strategy: Staging strategy the bytes went through.
        size_bytes: Staged size, None while a multipart stream is open.
        default_content_type: Type resolved from the key name.
    """
    bucket: str
    key: str
    strategy: StagingStrategy
    size_bytes: Optional[int] = None
    default_content_type: str = C.DEFAULT_CONTENT_TYPE


@dataclass(frozen=True, slots=True)
class ObjectHeaders:
    """Headers attached to PutObject / CreateMultipartUpload."""
    content_type: str
    metadata: Dict[str, str] = field(default_factory=dict)
    cache_control: Optional[str] = None
    content_disposition: Optional[str] = None
    storage_class: Optional[str] = None

    def to_request_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments in botocore request shape."""
        kwargs: Dict[str, Any] = {"ContentType": self.content_type}
        if self.metadata:
            kwargs["Metadata"] = dict(self.metadata)
        if self.cache_control:
            kwargs["CacheControl"] = self.cache_control
        if self.content_disposition:
            kwargs["ContentDisposition"] = self.content_disposition
        if self.storage_class:
            kwargs["StorageClass"] = self.storage_class
        return kwargs


class HeaderSource(Protocol):
    """What the default mapper reads from a source value."""

    @property
    def content_type(self) -> Optional[str]: ...

    @property
    def metadata(self) -> Mapping[str, str]: ...


@runtime_checkable
class HeaderMapper(Protocol[S]):
    """Context-free mapping."""

    def to_headers(self, source: S) -> Result[ObjectHeaders, BucketMeshError]:
        ...


@runtime_checkable
class ContextAwareHeaderMapper(HeaderMapper[S], Protocol[S]):
    """Mapping that also receives an explicit ConversionContext."""

    def create_context_headers(
        self,
        source: S,
        context: ConversionContext,
    ) -> Result[ObjectHeaders, BucketMeshError]:
        ...


def validate_metadata(metadata: Mapping[str, str]) -> Result[Dict[str, str], BucketMeshError]:
    """
    Check user metadata against service limits.

    Keys: non-empty, letters/digits/'-'/'_'/'.' only, compared
    case-insensitively. Values: printable ASCII. Keys plus values must
    fit in MAX_USER_METADATA_BYTES.
    """
    seen = set()
    total = 0
    cleaned: Dict[str, str] = {}
    for key, value in metadata.items():
        if not isinstance(key, str) or not key:
            return Err(RequestError.invalid("metadata", "empty metadata key"))
        if not set(key) <= _KEY_CHARS:
            return Err(RequestError.invalid("metadata", f"illegal character in key {key!r}"))
        if key.lower() in seen:
            return Err(RequestError.invalid("metadata", f"duplicate key {key!r}"))
        if not isinstance(value, str):
            return Err(RequestError.invalid("metadata", f"value of {key!r} is not a string"))
        if any(ord(ch) < 0x20 or ord(ch) > 0x7E for ch in value):
            return Err(RequestError.invalid(
                "metadata", f"value of {key!r} must be printable ASCII"
            ))
        seen.add(key.lower())
        total += len(key) + len(value)
        cleaned[key] = value

    if total > C.MAX_USER_METADATA_BYTES:
        return Err(RequestError.invalid(
            "metadata",
            f"{total}B of user metadata exceeds {C.MAX_USER_METADATA_BYTES}B limit",
        ))
    return Ok(cleaned)


class DefaultHeaderMapper(Generic[S]):
    """
    Content type from the source, falling back to the type resolved from
    the key; metadata validated; fixed cache/disposition/storage class.
    """

    __slots__ = ("_cache_control", "_content_disposition", "_storage_class")

    def __init__(
        self,
        cache_control: Optional[str] = None,
        content_disposition: Optional[str] = None,
        storage_class: Optional[str] = None,
    ) -> None:
        self._cache_control = cache_control
        self._content_disposition = content_disposition
        self._storage_class = storage_class

    def to_headers(self, source: HeaderSource) -> Result[ObjectHeaders, BucketMeshError]:
        return self._build(source, source.content_type or C.DEFAULT_CONTENT_TYPE)

    def create_context_headers(
        self,
        source: HeaderSource,
        context: ConversionContext,
    ) -> Result[ObjectHeaders, BucketMeshError]:
        return self._build(source, source.content_type or context.default_content_type)

    def _build(
        self,
        source: HeaderSource,
        content_type: str,
    ) -> Result[ObjectHeaders, BucketMeshError]:
        if "/" not in content_type:
            return Err(RequestError.invalid(
                "headers", f"malformed content type {content_type!r}"
            ))
        if self._storage_class and self._storage_class not in STORAGE_CLASSES:
            return Err(RequestError.invalid(
                "headers", f"unknown storage class {self._storage_class!r}"
            ))

        metadata = validate_metadata(source.metadata)
        if metadata.is_err():
            return metadata

        return Ok(ObjectHeaders(
            content_type=content_type,
            metadata=metadata.value,
            cache_control=self._cache_control,
            content_disposition=self._content_disposition,
            storage_class=self._storage_class,
        ))
