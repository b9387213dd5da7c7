"""
Content-Type Resolution by Key Name

Maps an object key to the MIME type sent as upload metadata.
"""

from __future__ import annotations

import mimetypes
from typing import Dict, Mapping, Optional

from bucketmesh.core import constants as C

# Extensions the platform mimetypes table gets wrong or lacks
DEFAULT_OVERRIDES: Dict[str, str] = {
    ".json": "application/json",
    ".jsonl": "application/x-ndjson",
    ".parquet": "application/vnd.apache.parquet",
    ".md": "text/markdown",
    ".yaml": "application/yaml",
    ".yml": "application/yaml",
    ".wasm": "application/wasm",
}


class ContentTypeResolver:
    """
    resolve(key) -> MIME type.

    Lookup order: explicit overrides (longest matching suffix first),
    the mimetypes table, then application/octet-stream.

    Example:
        >>> ContentTypeResolver().resolve("reports/2024.csv")
        'text/csv'
    """

    __slots__ = ("_overrides", "_fallback")

    def __init__(
        self,
        overrides: Optional[Mapping[str, str]] = None,
        fallback: str = C.DEFAULT_CONTENT_TYPE,
    ) -> None:
        merged = dict(DEFAULT_OVERRIDES)
        merged.update({k.lower(): v for k, v in (overrides or {}).items()})
        self._overrides = merged
        self._fallback = fallback

    def resolve(self, key: str) -> str:
        name = key.rsplit("/", 1)[-1].lower()
        for suffix in sorted(self._overrides, key=len, reverse=True):
            if name.endswith(suffix):
                return self._overrides[suffix]

        content_type, _ = mimetypes.guess_type(name, strict=False)
        return content_type or self._fallback
