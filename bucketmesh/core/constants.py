"""
Library-Wide Constants

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE UNITS
# =============================================================================
KB: Final[int] = 1024
MB: Final[int] = 1024 * KB
GB: Final[int] = 1024 * MB

NS_PER_MS: Final[int] = 1_000_000

# =============================================================================
# REGIONS
# =============================================================================
DEFAULT_REGION: Final[str] = "us-east-1"

# Legacy location constraint returned by GetBucketLocation for eu-west-1
LEGACY_EU_LOCATION: Final[str] = "EU"

# Header carrying the region hint on redirect responses
REGION_HINT_HEADER: Final[str] = "x-amz-bucket-region"

# =============================================================================
# STAGING
# =============================================================================
DEFAULT_MEMORY_THRESHOLD_BYTES: Final[int] = 8 * MB
DEFAULT_PART_SIZE_BYTES: Final[int] = 8 * MB
MIN_PART_SIZE_BYTES: Final[int] = 5 * MB
MAX_PART_COUNT: Final[int] = 10_000
DEFAULT_MAX_INFLIGHT_PARTS: Final[int] = 4

TEMP_FILE_PREFIX: Final[str] = "bucketmesh-"
TEMP_FILE_SUFFIX: Final[str] = ".upload"

DEFAULT_CONTENT_TYPE: Final[str] = "application/octet-stream"

# =============================================================================
# RELIABILITY
# =============================================================================
RETRY_MAX_ATTEMPTS: Final[int] = 3
RETRY_BASE_MS: Final[int] = 100
RETRY_MAX_DELAY_MS: Final[int] = 10_000
RETRY_EXPONENTIAL_BASE: Final[float] = 2.0
PART_MAX_ATTEMPTS: Final[int] = 3

# =============================================================================
# METADATA LIMITS
# =============================================================================
# User-defined metadata is limited to 2 KB in the request headers
MAX_USER_METADATA_BYTES: Final[int] = 2 * KB

# =============================================================================
# PAGINATION
# =============================================================================
DEFAULT_PAGE_SIZE: Final[int] = 1000
