"""
S3 Connection Configuration
===========================

Immutable connection settings shared by every regional client. The
region itself is not part of this configuration: the client pool binds
one client per region and passes the region in at construction time.

Design Principles:
------------------
1. **Immutability**: Frozen dataclass, safe to share between clients
2. **Validation**: Pre-conditions checked at construction time
3. **Environment**: Supports loading from S3_* environment variables
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True, slots=True)
class S3Config:
    """
    S3-compatible service connection configuration.

    Supports AWS S3, MinIO, Cloudflare R2, and other S3-compatible stores.

    Attributes:
        endpoint_url: Custom endpoint for MinIO/R2 (None for AWS, where the
            endpoint is derived from the client's region).
        access_key_id: Access key (None for IAM role / default chain).
        secret_access_key: Secret key (None for IAM role / default chain).
        session_token: Temporary session token for STS.
        max_pool_connections: HTTP connection pool size per regional client.
        connect_timeout_seconds: TCP connect timeout.
        read_timeout_seconds: Read operation timeout.
        addressing_style: "virtual", "path" or "auto".
        use_ssl: Use HTTPS for connections.
        verify_ssl: Verify SSL certificates (disable for self-signed).
    """
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None

    max_pool_connections: int = 10
    connect_timeout_seconds: int = 5
    read_timeout_seconds: int = 60
    addressing_style: str = "auto"

    use_ssl: bool = True
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """
        Validate configuration invariants.

        Raises:
            ValueError: If any invariant is violated.
        """
        if self.max_pool_connections <= 0:
            raise ValueError(
                f"max_pool_connections must be > 0, got {self.max_pool_connections}"
            )
        if self.connect_timeout_seconds <= 0:
            raise ValueError("connect_timeout_seconds must be > 0")
        if self.read_timeout_seconds <= 0:
            raise ValueError("read_timeout_seconds must be > 0")
        if self.addressing_style not in ("virtual", "path", "auto"):
            raise ValueError(
                f"addressing_style must be virtual, path or auto, got {self.addressing_style!r}"
            )

    @classmethod
    def from_env(cls, prefix: str = "S3") -> "S3Config":
        """
        Construct configuration from environment variables.

        Environment Variables:
        - {prefix}_ENDPOINT_URL: Custom endpoint URL
        - {prefix}_ACCESS_KEY_ID: Access key ID (falls back to AWS_ACCESS_KEY_ID)
        - {prefix}_SECRET_ACCESS_KEY: Secret key (falls back to AWS_SECRET_ACCESS_KEY)
        - AWS_SESSION_TOKEN: STS session token
        - {prefix}_MAX_POOL_CONNECTIONS: Pool size (default: 10)
        - {prefix}_CONNECT_TIMEOUT / {prefix}_READ_TIMEOUT: Seconds
        - {prefix}_ADDRESSING_STYLE: virtual|path|auto
        - {prefix}_USE_SSL / {prefix}_VERIFY_SSL: true|false
        """
        def _get(key: str, default: str = "") -> str:
            return os.environ.get(f"{prefix}_{key}", default)

        def _get_int(key: str, default: int) -> int:
            val = _get(key)
            return int(val) if val else default

        def _get_bool(key: str, default: bool) -> bool:
            val = _get(key).lower()
            if val in ("true", "1", "yes"):
                return True
            if val in ("false", "0", "no"):
                return False
            return default

        return cls(
            endpoint_url=_get("ENDPOINT_URL") or None,
            access_key_id=_get("ACCESS_KEY_ID") or os.environ.get("AWS_ACCESS_KEY_ID"),
            secret_access_key=(
                _get("SECRET_ACCESS_KEY") or os.environ.get("AWS_SECRET_ACCESS_KEY")
            ),
            session_token=os.environ.get("AWS_SESSION_TOKEN"),
            max_pool_connections=_get_int("MAX_POOL_CONNECTIONS", 10),
            connect_timeout_seconds=_get_int("CONNECT_TIMEOUT", 5),
            read_timeout_seconds=_get_int("READ_TIMEOUT", 60),
            addressing_style=_get("ADDRESSING_STYLE", "auto"),
            use_ssl=_get_bool("USE_SSL", True),
            verify_ssl=_get_bool("VERIFY_SSL", True),
        )

    def session_kwargs(self) -> Dict[str, Any]:
        """Credentials for aioboto3.Session()."""
        kwargs: Dict[str, Any] = {}
        if self.access_key_id and self.secret_access_key:
            kwargs["aws_access_key_id"] = self.access_key_id
            kwargs["aws_secret_access_key"] = self.secret_access_key
        if self.session_token:
            kwargs["aws_session_token"] = self.session_token
        return kwargs

    def client_kwargs(self, region: str) -> Dict[str, Any]:
        """
        Keyword arguments for session.client("s3", ...) bound to one region.

        Botocore's own retries are disabled: the upload committer owns the
        retry budget and the router owns region correction.
        """
        from botocore.config import Config

        kwargs: Dict[str, Any] = {
            "region_name": region,
            "use_ssl": self.use_ssl,
            "config": Config(
                region_name=region,
                max_pool_connections=self.max_pool_connections,
                connect_timeout=self.connect_timeout_seconds,
                read_timeout=self.read_timeout_seconds,
                retries={"max_attempts": 0, "mode": "standard"},
                s3={"addressing_style": self.addressing_style},
            ),
        }
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if not self.verify_ssl:
            kwargs["verify"] = False
        return kwargs
