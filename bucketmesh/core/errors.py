"""
Error Taxonomy for the Region-Aware Object Storage Layer

Design Principles:
- Failures travel as values inside Err, never as control-flow exceptions
- Every error carries a code that decides how it is handled:
  transient transport errors are retried, a region mismatch triggers one
  corrective re-route, everything else is surfaced immediately
- Upload failures carry an optional recovery_path: the local file that
  still holds the staged bytes when the disk strategy could not commit

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause chain for root cause analysis
- Context dictionary with structured fields

Usage:
    result = await router.put_object("photos", "cat.jpg", data)
    match result:
        case Ok(receipt):
            print(receipt.etag)
        case Err(error) if error.recovery_path:
            recover_from(error.recovery_path)
        case Err(error):
            log(error.code)
"""

from __future__ import annotations

import dataclasses
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Transport errors (transient)
    - 2xxx: Routing errors
    - 3xxx: Request errors (validation, permission, absence)
    - 4xxx: Upload errors
    - 5xxx: Staging errors
    - 6xxx: Reliability bookkeeping
    - 9xxx: Internal/configuration errors
    """

    # Transport errors (1xxx)
    TRANSPORT_UNAVAILABLE = 1001
    TRANSPORT_THROTTLED = 1002
    TRANSPORT_TIMEOUT = 1003

    # Routing errors (2xxx)
    ROUTING_REGION_MISMATCH = 2001
    ROUTING_REPEATED_MISMATCH = 2002
    ROUTING_DISCOVERY_FAILED = 2003

    # Request errors (3xxx)
    REQUEST_INVALID = 3001
    REQUEST_PERMISSION_DENIED = 3002
    REQUEST_NOT_FOUND = 3003
    REQUEST_NO_SUCH_BUCKET = 3004

    # Upload errors (4xxx)
    UPLOAD_RETRY_EXHAUSTED = 4001
    UPLOAD_PART_FAILED = 4002
    UPLOAD_DEADLINE_EXCEEDED = 4003
    UPLOAD_ABORTED = 4004
    UPLOAD_REJECTED = 4005

    # Staging errors (5xxx)
    STAGING_SIZE_EXCEEDED = 5001
    STAGING_CLOSED = 5002
    STAGING_IO_FAILED = 5003

    # Reliability errors (6xxx)
    RELIABILITY_RETRY_EXHAUSTED = 6001
    RELIABILITY_DEADLINE_EXCEEDED = 6002

    # Internal errors (9xxx)
    INTERNAL_ERROR = 9001
    CONFIG_INVALID = 9002


# Codes the retry policy is allowed to retry
TRANSIENT_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.TRANSPORT_UNAVAILABLE,
    ErrorCode.TRANSPORT_THROTTLED,
    ErrorCode.TRANSPORT_TIMEOUT,
})


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class BucketMeshError(Exception):
    """
    Base class for all errors produced by this library.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Cause chain for root cause analysis
    - Optional recovery_path naming a preserved local artifact
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp_ns: int = field(default_factory=time.time_ns)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)
    recovery_path: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def is_transient(self) -> bool:
        """True when a retry may succeed without any caller action."""
        return self.code in TRANSIENT_CODES

    @property
    def has_recovery_artifact(self) -> bool:
        return self.recovery_path is not None

    def with_context(self, **kwargs: Any) -> BucketMeshError:
        """Return a copy with additional context fields."""
        return dataclasses.replace(self, context={**self.context, **kwargs})

    def with_recovery_path(self, path: Optional[str]) -> BucketMeshError:
        """Return a copy carrying the failure artifact location."""
        return dataclasses.replace(self, recovery_path=path)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for logging.

        The cause is rendered as a string only.
        """
        data: dict[str, Any] = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_ns": self.timestamp_ns,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        if self.recovery_path is not None:
            data["recovery_path"] = self.recovery_path
        return data

    def __str__(self) -> str:
        text = f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"
        if self.recovery_path:
            text += f" [recoverable at {self.recovery_path}]"
        return text

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# TRANSPORT ERRORS (TRANSIENT)
# =============================================================================
@dataclass
class TransportError(BucketMeshError):
    """
    Network failures, throttling, and server-side 5xx responses.

    The only family the retry policy retries.
    """

    @classmethod
    def unavailable(
        cls,
        operation: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> TransportError:
        """Endpoint unreachable or answered with a server error."""
        return cls(
            code=ErrorCode.TRANSPORT_UNAVAILABLE,
            message=f"'{operation}' failed: {reason}",
            cause=cause,
            context={"operation": operation, "reason": reason},
        )

    @classmethod
    def throttled(
        cls,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> TransportError:
        """Service asked the client to slow down."""
        return cls(
            code=ErrorCode.TRANSPORT_THROTTLED,
            message=f"'{operation}' throttled by service",
            cause=cause,
            context={"operation": operation},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> TransportError:
        """Network call timed out in the transport layer."""
        return cls(
            code=ErrorCode.TRANSPORT_TIMEOUT,
            message=f"'{operation}' timed out",
            cause=cause,
            context={"operation": operation},
        )


# =============================================================================
# ROUTING ERRORS
# =============================================================================
@dataclass
class RoutingError(BucketMeshError):
    """
    Errors from bucket-to-region routing.

    A region mismatch carries the region hint from the redirect response
    in context["signaled_region"].
    """

    @property
    def signaled_region(self) -> Optional[str]:
        return self.context.get("signaled_region")

    @classmethod
    def region_mismatch(
        cls,
        bucket: str,
        addressed_region: str,
        signaled_region: Optional[str],
        cause: Optional[BaseException] = None,
    ) -> RoutingError:
        """Service reports the bucket lives in another region."""
        return cls(
            code=ErrorCode.ROUTING_REGION_MISMATCH,
            message=(
                f"Bucket '{bucket}' is not served by region '{addressed_region}'"
                + (f"; use region '{signaled_region}'" if signaled_region else "")
            ),
            cause=cause,
            context={
                "bucket": bucket,
                "addressed_region": addressed_region,
                "signaled_region": signaled_region,
            },
        )

    @classmethod
    def repeated_mismatch(
        cls,
        bucket: str,
        first_region: str,
        second_region: str,
        signaled_region: Optional[str],
    ) -> RoutingError:
        """The corrected region was rejected too. Never retried."""
        return cls(
            code=ErrorCode.ROUTING_REPEATED_MISMATCH,
            message=(
                f"Bucket '{bucket}' rejected by '{first_region}' and by "
                f"corrected region '{second_region}'"
            ),
            context={
                "bucket": bucket,
                "first_region": first_region,
                "second_region": second_region,
                "signaled_region": signaled_region,
            },
        )

    @classmethod
    def discovery_failed(
        cls,
        bucket: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> RoutingError:
        """Region probe produced no usable region."""
        return cls(
            code=ErrorCode.ROUTING_DISCOVERY_FAILED,
            message=f"Cannot discover region of bucket '{bucket}': {reason}",
            cause=cause,
            context={"bucket": bucket, "reason": reason},
        )


# =============================================================================
# REQUEST ERRORS (FATAL)
# =============================================================================
@dataclass
class RequestError(BucketMeshError):
    """
    Malformed requests, permission problems, and missing resources.

    Surfaced immediately and never retried.
    """

    @classmethod
    def invalid(
        cls,
        operation: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> RequestError:
        """Request or metadata rejected as malformed."""
        return cls(
            code=ErrorCode.REQUEST_INVALID,
            message=f"Invalid '{operation}' request: {reason}",
            cause=cause,
            context={"operation": operation, "reason": reason},
        )

    @classmethod
    def permission_denied(
        cls,
        operation: str,
        resource: str,
        cause: Optional[BaseException] = None,
    ) -> RequestError:
        """Credentials lack permission on the resource."""
        return cls(
            code=ErrorCode.REQUEST_PERMISSION_DENIED,
            message=f"Permission denied: cannot {operation} on {resource}",
            cause=cause,
            context={"operation": operation, "resource": resource},
        )

    @classmethod
    def not_found(
        cls,
        bucket: str,
        key: str,
        cause: Optional[BaseException] = None,
    ) -> RequestError:
        """Object does not exist."""
        return cls(
            code=ErrorCode.REQUEST_NOT_FOUND,
            message=f"Object '{bucket}/{key}' not found",
            cause=cause,
            context={"bucket": bucket, "key": key},
        )

    @classmethod
    def no_such_bucket(
        cls,
        bucket: str,
        cause: Optional[BaseException] = None,
    ) -> RequestError:
        """Bucket does not exist in any region."""
        return cls(
            code=ErrorCode.REQUEST_NO_SUCH_BUCKET,
            message=f"Bucket '{bucket}' does not exist",
            cause=cause,
            context={"bucket": bucket},
        )


# =============================================================================
# UPLOAD ERRORS
# =============================================================================
@dataclass
class UploadError(BucketMeshError):
    """
    Failures of the commit step.

    recovery_path is set only when the staged bytes survive on disk.
    """

    @classmethod
    def retry_exhausted(
        cls,
        bucket: str,
        key: str,
        attempts: int,
        last_error: Optional[BucketMeshError],
        recovery_path: Optional[str] = None,
    ) -> UploadError:
        """Every commit attempt failed with a transient error."""
        return cls(
            code=ErrorCode.UPLOAD_RETRY_EXHAUSTED,
            message=(
                f"Upload of '{bucket}/{key}' failed after {attempts} attempts"
                + (f": {last_error.message}" if last_error else "")
            ),
            cause=last_error,
            context={"bucket": bucket, "key": key, "attempts": attempts},
            recovery_path=recovery_path,
        )

    @classmethod
    def part_failed(
        cls,
        bucket: str,
        key: str,
        part_number: int,
        attempts: int,
        last_error: Optional[BucketMeshError],
    ) -> UploadError:
        """A multipart part exhausted its own retry budget."""
        return cls(
            code=ErrorCode.UPLOAD_PART_FAILED,
            message=(
                f"Part {part_number} of '{bucket}/{key}' failed after {attempts} attempts"
                + (f": {last_error.message}" if last_error else "")
            ),
            cause=last_error,
            context={
                "bucket": bucket,
                "key": key,
                "part_number": part_number,
                "attempts": attempts,
            },
        )

    @classmethod
    def deadline_exceeded(
        cls,
        bucket: str,
        key: str,
        deadline_s: float,
        recovery_path: Optional[str] = None,
    ) -> UploadError:
        """Overall caller deadline passed before the commit finished."""
        return cls(
            code=ErrorCode.UPLOAD_DEADLINE_EXCEEDED,
            message=f"Upload of '{bucket}/{key}' exceeded deadline of {deadline_s}s",
            context={"bucket": bucket, "key": key, "deadline_s": deadline_s},
            recovery_path=recovery_path,
        )

    @classmethod
    def rejected(
        cls,
        bucket: str,
        key: str,
        error: BucketMeshError,
        recovery_path: Optional[str] = None,
    ) -> UploadError:
        """Fatal, non-retryable failure (validation, permission, routing)."""
        return cls(
            code=ErrorCode.UPLOAD_REJECTED,
            message=f"Upload of '{bucket}/{key}' rejected: {error.message}",
            cause=error,
            context={"bucket": bucket, "key": key, "reason_code": error.code.name},
            recovery_path=recovery_path,
        )

    @classmethod
    def aborted(cls, bucket: str, key: str, reason: str) -> UploadError:
        """Writer abandoned before commit."""
        return cls(
            code=ErrorCode.UPLOAD_ABORTED,
            message=f"Upload of '{bucket}/{key}' aborted: {reason}",
            context={"bucket": bucket, "key": key, "reason": reason},
        )

    @property
    def root_cause(self) -> Optional[BaseException]:
        """Innermost cause in the chain."""
        cause = self.cause
        while isinstance(cause, BucketMeshError) and cause.cause is not None:
            cause = cause.cause
        return cause


# =============================================================================
# STAGING ERRORS
# =============================================================================
@dataclass
class StagingError(BucketMeshError):
    """Client-side staging failures. Never retried."""

    @classmethod
    def size_exceeded(cls, key: str, threshold_bytes: int, attempted_bytes: int) -> StagingError:
        """In-memory threshold exceeded without disk fallback."""
        return cls(
            code=ErrorCode.STAGING_SIZE_EXCEEDED,
            message=(
                f"Staged content for '{key}' would reach {attempted_bytes}B, "
                f"exceeding in-memory threshold {threshold_bytes}B"
            ),
            context={
                "key": key,
                "threshold_bytes": threshold_bytes,
                "attempted_bytes": attempted_bytes,
            },
        )

    @classmethod
    def closed(cls, key: str, state: str) -> StagingError:
        """Write or close on a stager that is no longer open."""
        return cls(
            code=ErrorCode.STAGING_CLOSED,
            message=f"Stager for '{key}' is {state}",
            context={"key": key, "state": state},
        )

    @classmethod
    def io_failed(
        cls,
        key: str,
        path: str,
        cause: Optional[BaseException] = None,
    ) -> StagingError:
        """Local staging file could not be written or read."""
        return cls(
            code=ErrorCode.STAGING_IO_FAILED,
            message=f"Staging I/O failed for '{key}' at {path}: {cause}",
            cause=cause,
            context={"key": key, "path": path},
        )


# =============================================================================
# RELIABILITY ERRORS
# =============================================================================
@dataclass
class ReliabilityError(BucketMeshError):
    """Outcome of the retry loop itself."""

    @classmethod
    def retry_exhausted(
        cls,
        operation: str,
        attempts: int,
        last_error: Optional[BucketMeshError],
    ) -> ReliabilityError:
        """All retry attempts exhausted."""
        return cls(
            code=ErrorCode.RELIABILITY_RETRY_EXHAUSTED,
            message=(
                f"'{operation}' exhausted after {attempts} attempts"
                + (f": {last_error.message}" if last_error else "")
            ),
            cause=last_error,
            context={"operation": operation, "attempts": attempts},
        )

    @classmethod
    def deadline_exceeded(
        cls,
        operation: str,
        attempts: int,
        deadline_s: float,
        last_error: Optional[BucketMeshError] = None,
    ) -> ReliabilityError:
        """Overall deadline passed between attempts."""
        return cls(
            code=ErrorCode.RELIABILITY_DEADLINE_EXCEEDED,
            message=f"'{operation}' exceeded deadline of {deadline_s}s after {attempts} attempts",
            cause=last_error,
            context={"operation": operation, "attempts": attempts, "deadline_s": deadline_s},
        )

    @property
    def attempts(self) -> int:
        return int(self.context.get("attempts", 0))

    @property
    def last_error(self) -> Optional[BucketMeshError]:
        return self.cause if isinstance(self.cause, BucketMeshError) else None


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigError(BucketMeshError):
    """Invalid configuration value."""

    @classmethod
    def invalid(cls, option: str, reason: str) -> ConfigError:
        return cls(
            code=ErrorCode.CONFIG_INVALID,
            message=f"Invalid configuration '{option}': {reason}",
            context={"option": option, "reason": reason},
        )


def internal_error(reason: str, cause: Optional[BaseException] = None) -> BucketMeshError:
    """Unexpected failure outside the taxonomy."""
    return BucketMeshError(
        code=ErrorCode.INTERNAL_ERROR,
        message=reason,
        cause=cause,
    )
