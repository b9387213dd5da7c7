"""
Configuration Management for the Region-Aware Object Storage Layer

Provides validated configuration with sensible defaults.
Supports environment variable overrides (prefix BUCKETMESH_).

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, TypeVar

from bucketmesh.core.types import Result, Ok, Err, StagingStrategy
from bucketmesh.core.errors import ConfigError
from bucketmesh.core import constants as C
from bucketmesh.storage.config import S3Config

V = TypeVar("V")


@dataclass(frozen=True)
class StagingConfig:
    """
    How object bytes are buffered before the remote write.

    Attributes:
        strategy: Default strategy for new writers.
        memory_threshold_bytes: Upper bound of the in-memory buffer.
        spill_to_disk: Continue in a temp file instead of failing when the
            in-memory threshold is crossed.
        temp_dir: Directory for staging files (None = system temp dir).
        part_size_bytes: Multipart part size (>= 5 MiB, the service minimum).
        max_inflight_parts: Parts uploaded concurrently per writer.
    """

    strategy: StagingStrategy = StagingStrategy.MEMORY
    memory_threshold_bytes: int = C.DEFAULT_MEMORY_THRESHOLD_BYTES
    spill_to_disk: bool = False
    temp_dir: Optional[Path] = None
    part_size_bytes: int = C.DEFAULT_PART_SIZE_BYTES
    max_inflight_parts: int = C.DEFAULT_MAX_INFLIGHT_PARTS


@dataclass(frozen=True)
class ReliabilityConfig:
    """
    Retry budget of the upload committer.

    max_attempts counts every attempt including the first one.
    deadline_s bounds a whole commit (None = attempt-count budget only).
    """

    max_attempts: int = C.RETRY_MAX_ATTEMPTS
    base_delay_ms: int = C.RETRY_BASE_MS
    max_delay_ms: int = C.RETRY_MAX_DELAY_MS
    exponential_base: float = C.RETRY_EXPONENTIAL_BASE
    jitter: bool = True
    part_max_attempts: int = C.PART_MAX_ATTEMPTS
    deadline_s: Optional[float] = None


@dataclass(frozen=True)
class RoutingConfig:
    """
    Bucket-to-region routing.

    With cross_region_enabled=False the router talks to a single client
    bound to default_region and never probes or re-routes.
    """

    cross_region_enabled: bool = True
    default_region: str = C.DEFAULT_REGION


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class BucketMeshConfig:
    """Root configuration."""

    staging: StagingConfig = field(default_factory=StagingConfig)
    reliability: ReliabilityConfig = field(default_factory=ReliabilityConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    s3: S3Config = field(default_factory=S3Config)

    @classmethod
    def from_env(cls) -> Result[BucketMeshConfig, ConfigError]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with BUCKETMESH_.
        Example: BUCKETMESH_STAGING_STRATEGY=disk, BUCKETMESH_MAX_ATTEMPTS=5
        S3 connection settings are read by S3Config.from_env().
        """
        env = os.environ

        def _parse(name: str, default: V, convert: Callable[[str], V]) -> V:
            raw = env.get(f"BUCKETMESH_{name}")
            if raw is None or raw == "":
                return default
            return convert(raw)

        def _bool(raw: str) -> bool:
            value = raw.strip().lower()
            if value in ("true", "1", "yes", "on"):
                return True
            if value in ("false", "0", "no", "off"):
                return False
            raise ValueError(f"not a boolean: {raw!r}")

        strategy = StagingStrategy.MEMORY
        raw_strategy = env.get("BUCKETMESH_STAGING_STRATEGY")
        if raw_strategy:
            parsed = StagingStrategy.parse(raw_strategy)
            if parsed.is_err():
                return Err(ConfigError.invalid("BUCKETMESH_STAGING_STRATEGY", parsed.error))
            strategy = parsed.unwrap()

        try:
            staging = StagingConfig(
                strategy=strategy,
                memory_threshold_bytes=_parse(
                    "MEMORY_THRESHOLD_BYTES", C.DEFAULT_MEMORY_THRESHOLD_BYTES, int
                ),
                spill_to_disk=_parse("SPILL_TO_DISK", False, _bool),
                temp_dir=_parse("TEMP_DIR", None, Path),
                part_size_bytes=_parse("PART_SIZE_BYTES", C.DEFAULT_PART_SIZE_BYTES, int),
                max_inflight_parts=_parse(
                    "MAX_INFLIGHT_PARTS", C.DEFAULT_MAX_INFLIGHT_PARTS, int
                ),
            )

            reliability = ReliabilityConfig(
                max_attempts=_parse("MAX_ATTEMPTS", C.RETRY_MAX_ATTEMPTS, int),
                base_delay_ms=_parse("BASE_DELAY_MS", C.RETRY_BASE_MS, int),
                max_delay_ms=_parse("MAX_DELAY_MS", C.RETRY_MAX_DELAY_MS, int),
                jitter=_parse("RETRY_JITTER", True, _bool),
                part_max_attempts=_parse("PART_MAX_ATTEMPTS", C.PART_MAX_ATTEMPTS, int),
                deadline_s=_parse("DEADLINE_S", None, float),
            )

            routing = RoutingConfig(
                cross_region_enabled=_parse("CROSS_REGION", True, _bool),
                default_region=_parse("DEFAULT_REGION", C.DEFAULT_REGION, str),
            )

            observability = ObservabilityConfig(
                log_level=_parse("LOG_LEVEL", "INFO", str).upper(),
                log_json=_parse("LOG_JSON", True, _bool),
            )

            s3 = S3Config.from_env()
        except (ValueError, TypeError) as e:
            return Err(ConfigError.invalid("environment", str(e)))

        config = cls(
            staging=staging,
            reliability=reliability,
            routing=routing,
            observability=observability,
            s3=s3,
        )
        validation = config.validate()
        if validation.is_err():
            return validation
        return Ok(config)

    def validate(self) -> Result[None, ConfigError]:
        """Validate configuration invariants."""
        staging = self.staging
        if staging.memory_threshold_bytes <= 0:
            return Err(ConfigError.invalid(
                "memory_threshold_bytes", "must be > 0"
            ))
        if staging.part_size_bytes < C.MIN_PART_SIZE_BYTES:
            return Err(ConfigError.invalid(
                "part_size_bytes", f"must be >= {C.MIN_PART_SIZE_BYTES}"
            ))
        if staging.max_inflight_parts < 1:
            return Err(ConfigError.invalid("max_inflight_parts", "must be >= 1"))
        if staging.temp_dir is not None and not staging.temp_dir.is_dir():
            return Err(ConfigError.invalid(
                "temp_dir", f"{staging.temp_dir} is not a directory"
            ))

        reliability = self.reliability
        if reliability.max_attempts < 1:
            return Err(ConfigError.invalid("max_attempts", "must be >= 1"))
        if reliability.part_max_attempts < 1:
            return Err(ConfigError.invalid("part_max_attempts", "must be >= 1"))
        if reliability.base_delay_ms < 0 or reliability.max_delay_ms < reliability.base_delay_ms:
            return Err(ConfigError.invalid(
                "base_delay_ms", "must satisfy 0 <= base_delay_ms <= max_delay_ms"
            ))
        if reliability.deadline_s is not None and reliability.deadline_s <= 0:
            return Err(ConfigError.invalid("deadline_s", "must be > 0"))

        if not self.routing.default_region:
            return Err(ConfigError.invalid("default_region", "must not be empty"))
        return Ok(None)
