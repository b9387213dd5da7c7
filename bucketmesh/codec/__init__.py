"""
Codec module: content types, value serialization, and header mapping.
"""

from bucketmesh.codec.content_type import ContentTypeResolver
from bucketmesh.codec.serialization import JsonCodec
from bucketmesh.codec.headers import (
    ContextAwareHeaderMapper,
    ConversionContext,
    DefaultHeaderMapper,
    HeaderMapper,
    ObjectHeaders,
    validate_metadata,
)

__all__ = [
    "ContentTypeResolver",
    "JsonCodec",
    "ContextAwareHeaderMapper",
    "ConversionContext",
    "DefaultHeaderMapper",
    "HeaderMapper",
    "ObjectHeaders",
    "validate_metadata",
]
