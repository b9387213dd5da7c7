"""
Core Type Definitions for the Region-Aware Object Storage Layer

Result/Either monad for zero-exception control flow plus the immutable
value types that cross module boundaries (object descriptions, multipart
bookkeeping, upload receipts).

Design Principles:
- Every remote or staging operation returns a Result
- Value types are frozen; only stagers and pools hold mutable state
- Region and bucket identifiers stay opaque strings

Complexity: O(1) for all type operations
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Literal,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result.

    Wraps the value produced by a completed operation (a receipt,
    an object body, a resolved region).
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract the value. Safe to call after is_ok()."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to the success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chain a fallible operation."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result.

    Carries the typed error (see core.errors) so callers can branch on
    error code or on the presence of a recovery artifact without
    exception handling.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Unwrapping an error is a programming error.

        Raises:
            RuntimeError: Always, with the error attached as context.
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """Errors propagate unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# STAGING STRATEGY
# =============================================================================
class StagingStrategy(Enum):
    """
    Buffering strategy used to stage object bytes before the remote write.

    Selected by configuration (or per writer), never inferred at runtime.
    """

    MEMORY = "memory"        # Bounded in-memory buffer
    DISK = "disk"            # Uniquely named temporary file
    MULTIPART = "multipart"  # Streamed parts via a server-side session

    @classmethod
    def parse(cls, value: str) -> Result[StagingStrategy, str]:
        """Parse a configuration string (case-insensitive)."""
        try:
            return Ok(cls(value.strip().lower()))
        except ValueError:
            choices = ", ".join(s.value for s in cls)
            return Err(f"Unknown staging strategy '{value}' (expected one of: {choices})")


# =============================================================================
# OBJECT DESCRIPTIONS
# =============================================================================
@dataclass(frozen=True, slots=True)
class ObjectInfo:
    """
    Immutable description of a stored object.

    Attributes:
        bucket: Bucket holding the object.
        key: Object key (path in bucket).
        size_bytes: Object size in bytes.
        content_type: MIME content type.
        etag: Entity tag with surrounding quotes stripped.
        last_modified: Last modification timestamp.
        metadata: User-defined key-value properties.
        version_id: Version ID for versioned buckets.
        region: Region of the endpoint that served the call.
    """
    bucket: str
    key: str
    size_bytes: int
    content_type: str = "application/octet-stream"
    etag: str = ""
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, str] = field(default_factory=dict)
    version_id: Optional[str] = None
    region: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ObjectPage:
    """One page of a listing. next_cursor is None when listing is complete."""
    objects: Tuple[ObjectInfo, ...]
    next_cursor: Optional[str] = None

    def __len__(self) -> int:
        return len(self.objects)


# =============================================================================
# MULTIPART BOOKKEEPING
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class CompletedPart:
    """A part accepted by the remote service. Ordered by part number."""
    part_number: int
    etag: str = field(compare=False)
    size_bytes: int = field(default=0, compare=False)

    def to_request(self) -> Dict[str, Any]:
        """Shape expected by CompleteMultipartUpload."""
        return {"PartNumber": self.part_number, "ETag": self.etag}


@dataclass(frozen=True, slots=True)
class MultipartSession:
    """Server-tracked upload-in-progress."""
    bucket: str
    key: str
    upload_id: str


# =============================================================================
# UPLOAD RECEIPT
# =============================================================================
@dataclass(frozen=True, slots=True)
class UploadReceipt:
    """
    Confirmation of a committed upload.

    Attributes:
        bucket: Destination bucket.
        key: Destination key.
        etag: ETag reported by the service.
        size_bytes: Number of bytes committed.
        content_type: Content type sent with the upload.
        strategy: Strategy the bytes were staged through.
        attempts: Remote write attempts used by the final commit step.
        version_id: Version ID when the bucket is versioned.
        parts: Number of parts (multipart only, else 0).
    """
    bucket: str
    key: str
    etag: str
    size_bytes: int
    content_type: str
    strategy: StagingStrategy
    attempts: int = 1
    version_id: Optional[str] = None
    parts: int = 0
