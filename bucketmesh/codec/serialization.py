"""
Object (De)serialization: Typed Values ↔ JSON Bytes

encode(value) produces the bytes staged for upload; decode(data, type_)
rebuilds a typed value from downloaded bytes. Supported values:
dataclasses (nested included), mappings, lists/tuples, and JSON scalars.
Datetimes, UUIDs, enums and paths are encoded as strings.

Failures surface as RequestError.invalid, never as raised exceptions.
"""

from __future__ import annotations

import dataclasses
import json
import typing
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Any, Optional, Type, TypeVar
from uuid import UUID

from bucketmesh.core.errors import BucketMeshError, RequestError
from bucketmesh.core.types import Err, Ok, Result

T = TypeVar("T")

JSON_CONTENT_TYPE = "application/json"


def _default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, PurePath)):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _build(type_: Any, raw: Any) -> Any:
    """Rebuild a value of type_ from decoded JSON."""
    if type_ is Any or type_ is None or raw is None:
        return raw

    origin = typing.get_origin(type_)
    args = typing.get_args(type_)

    if origin is typing.Union:
        for candidate in args:
            if candidate is type(None):
                continue
            try:
                return _build(candidate, raw)
            except (TypeError, ValueError):
                continue
        return raw
    if origin in (list, tuple, set, frozenset):
        item_type = args[0] if args else Any
        items = [_build(item_type, item) for item in raw]
        return origin(items) if origin is not list else items
    if origin is dict:
        value_type = args[1] if len(args) == 2 else Any
        return {k: _build(value_type, v) for k, v in raw.items()}

    if dataclasses.is_dataclass(type_):
        if not isinstance(raw, dict):
            raise TypeError(f"expected an object for {type_.__name__}, got {type(raw).__name__}")
        hints = typing.get_type_hints(type_)
        kwargs = {
            f.name: _build(hints.get(f.name, Any), raw[f.name])
            for f in dataclasses.fields(type_)
            if f.init and f.name in raw
        }
        return type_(**kwargs)

    if isinstance(type_, type):
        if issubclass(type_, Enum):
            return type_(raw)
        if issubclass(type_, datetime):
            return datetime.fromisoformat(raw)
        if issubclass(type_, UUID):
            return UUID(raw)
        if type_ is float and isinstance(raw, int):
            return float(raw)
        if not isinstance(raw, type_):
            raise TypeError(f"expected {type_.__name__}, got {type(raw).__name__}")
    return raw


class JsonCodec:
    """
    UTF-8 JSON codec.

    Example:
        >>> codec = JsonCodec()
        >>> data = codec.encode(Report(name="q1", rows=3)).unwrap()
        >>> codec.decode(data, Report).unwrap()
        Report(name='q1', rows=3)
    """

    content_type = JSON_CONTENT_TYPE

    __slots__ = ("_indent", "_sort_keys")

    def __init__(self, indent: Optional[int] = None, sort_keys: bool = False) -> None:
        self._indent = indent
        self._sort_keys = sort_keys

    def encode(self, value: Any) -> Result[bytes, BucketMeshError]:
        try:
            text = json.dumps(
                value,
                default=_default,
                indent=self._indent,
                sort_keys=self._sort_keys,
                ensure_ascii=False,
            )
        except (TypeError, ValueError) as e:
            return Err(RequestError.invalid("encode", str(e), cause=e))
        return Ok(text.encode("utf-8"))

    def decode(self, data: bytes, type_: Type[T] = Any) -> Result[T, BucketMeshError]:
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return Err(RequestError.invalid("decode", f"malformed JSON: {e}", cause=e))

        try:
            return Ok(_build(type_, raw))
        except (TypeError, ValueError, KeyError) as e:
            name = getattr(type_, "__name__", str(type_))
            return Err(RequestError.invalid("decode", f"cannot build {name}: {e}", cause=e))

