"""Values stored in the database and their wire form.

A database value is one of ``None``, ``bool``, ``str``, ``bytes``,
a ``list`` of values, or a ``dict`` mapping ``str`` keys to values.
"""

from __future__ import annotations

from typing import Any

import msgpack


def format_value(value: Any) -> str:
    """Render a database value for logs and command descriptions."""
    if value is None:
        return "DBValue::None"
    if isinstance(value, bool):
        return f"DBValue::Boolean({'true' if value else 'false'})"
    if isinstance(value, str):
        return f"DBValue::String({value})"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"DBValue::Bytes({len(bytes(value))} bytes)"
    if isinstance(value, (list, tuple)):
        return "DBValue::List(" + ",".join(format_value(v) for v in value) + ")"
    if isinstance(value, dict):
        entries = ",".join(f"{k}={format_value(v)}" for k, v in value.items())
        return "DBValue::Hash(\n" + entries + ")"
    raise TypeError(f"unsupported database value: {type(value).__name__}")


def _normalize(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"hash keys must be str, got {type(key).__name__}")
            result[key] = _normalize(item)
        return result
    raise TypeError(f"unsupported database value: {type(value).__name__}")


def _validate(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str, bytes)):
        return value
    if isinstance(value, list):
        return [_validate(v) for v in value]
    if isinstance(value, dict):
        for key in value:
            if not isinstance(key, str):
                raise ValueError("hash keys must be strings")
        return {k: _validate(v) for k, v in value.items()}
    raise ValueError(f"unexpected value in wire data: {type(value).__name__}")


def to_wire(value: Any) -> bytes:
    """Serialize a database value."""
    return msgpack.packb(_normalize(value), use_bin_type=True)


def from_wire(data: bytes) -> Any:
    """Deserialize a database value; empty data stands for no value."""
    data = bytes(data)
    if not data:
        return None
    try:
        decoded = msgpack.unpackb(data, raw=False, strict_map_key=True)
    except (ValueError, TypeError, msgpack.UnpackException) as err:
        raise ValueError(f"malformed value data: {err}") from err
    return _validate(decoded)