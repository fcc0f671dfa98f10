"""Schema-free JSON values with a canonical serializer.

The structured payload of a result event has a caller-defined shape, so it is
captured as a generic JSON value and re-encoded deterministically before it is
handed to the caller's decoder.
"""

from __future__ import annotations

import json
import math
from typing import TYPE_CHECKING, NoReturn

from pydantic import JsonValue, TypeAdapter

if TYPE_CHECKING:
    from collections.abc import Mapping

type JSONValue = dict[str, JSONValue] | list[JSONValue] | str | int | float | bool | None

_MAX_EXACT_FLOAT_INT = 2**53
_json_value_adapter: TypeAdapter[JsonValue] = TypeAdapter(JsonValue)


def _reject_constant(name: str) -> NoReturn:
    raise ValueError(f"Non-standard JSON constant: {name}")


def decode_value(text: str | bytes | bytearray) -> JSONValue:
    """Decode one JSON document without a predeclared schema.

    Raises:
        ValueError: If *text* is not a single strict JSON document.
    """
    return json.loads(text, parse_constant=_reject_constant)


def _normalize(value: object) -> JSONValue:
    if value is None or isinstance(value, bool | str):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise TypeError(f"Non-finite number is not representable in JSON: {value!r}")
        # Integral floats collapse to integers; 2.0 and 2 encode identically.
        if value.is_integer() and abs(value) <= _MAX_EXACT_FLOAT_INT:
            return int(value)
        return value
    if isinstance(value, list | tuple):
        return [_normalize(item) for item in value]
    if isinstance(value, dict):
        normalized: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"JSON object keys must be strings, got {type(key).__name__}")
            normalized[key] = _normalize(item)
        return normalized
    raise TypeError(f"Object of type {type(value).__name__} is not a JSON value")


def encode_value(value: JSONValue) -> str:
    """Serialize *value* canonically.

    Keys are sorted, separators are compact and non-ASCII text is kept as is,
    so equal values always produce identical strings.

    Raises:
        TypeError: If *value* contains something JSON cannot represent.
    """
    return json.dumps(
        _normalize(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def canonicalize(text: str | bytes | bytearray) -> str:
    """Decode *text* and return its canonical serialization."""
    return encode_value(decode_value(text))


def to_value(obj: object) -> JSONValue:
    """Validate an arbitrary Python object as a JSON value.

    Raises:
        ValueError: If *obj* does not have a JSON shape (pydantic ``ValidationError``).
        TypeError: If *obj* holds a non-finite float.
    """
    return _normalize(_json_value_adapter.validate_python(obj))


def _mapping_equal(a: Mapping[str, JSONValue], b: Mapping[str, JSONValue]) -> bool:
    if a.keys() != b.keys():
        return False
    return all(values_equal(a[key], b[key]) for key in a)


def values_equal(a: JSONValue, b: JSONValue) -> bool:
    """Structural equality: key order is ignored and ``1 == 1.0``."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if isinstance(a, int | float) and isinstance(b, int | float):
        return a == b
    if isinstance(a, dict) and isinstance(b, dict):
        return _mapping_equal(a, b)
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b, strict=True))
    return type(a) is type(b) and a == b


__all__ = [
    "JSONValue",
    "canonicalize",
    "decode_value",
    "encode_value",
    "to_value",
    "values_equal",
]
