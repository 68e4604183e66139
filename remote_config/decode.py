"""
Decoding of untyped snapshot values into caller-chosen shapes.

`decode` handles anything pydantic can validate (scalars, sequences,
mappings, dataclasses, models). The `expect_*` helpers are the strict
checks behind the typed accessors: no coercion, `bool` is not an `int`.
"""
import json
from datetime import date, datetime, time
from functools import lru_cache
from typing import Any, NamedTuple

from pydantic import PydanticUserError, TypeAdapter, ValidationError

from .errors import DecodeError, RemoteConfigError, TypeMismatchError

class Lookup(NamedTuple):
    """Tagged lookup result: `value` is the caller default whenever `error` is set."""
    value: Any
    error: RemoteConfigError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value

@lru_cache(maxsize=256)
def _adapter(shape: Any) -> TypeAdapter:
    return TypeAdapter(shape)

def _get_adapter(shape: Any) -> TypeAdapter:
    try:
        hash(shape)
    except TypeError:
        return TypeAdapter(shape)
    return _adapter(shape)

def _encode_default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} has no JSON form")

def decode(value: Any, shape: Any = Any) -> Any:
    """
    Re-encode `value` and validate it against `shape` in strict mode: a bool
    never becomes an int and a string never becomes a number. Ints are
    still accepted where a float is expected.
    """
    if shape is Any or shape is object:
        return value
    try:
        adapter = _get_adapter(shape)
    except PydanticUserError as e:
        raise DecodeError(f"unsupported shape {_shape_name(shape)}") from e
    try:
        encoded = json.dumps(value, default=_encode_default)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"cannot decode value into {_shape_name(shape)}: {e}") from e
    try:
        # JSON input lets records (dataclasses, models) come from mappings under strict rules
        return adapter.validate_json(encoded, strict=True)
    except ValidationError as e:
        raise DecodeError(f"cannot decode value into {_shape_name(shape)}: {e.error_count()} error(s)") from e

def _shape_name(shape: Any) -> str:
    return getattr(shape, "__name__", None) or repr(shape)

def expect_string(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise TypeMismatchError(name, "a string")
    return value

def expect_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeMismatchError(name, "an int")
    return value

def expect_float(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeMismatchError(name, "a float")
    return float(value)

def expect_strings(name: str, value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise TypeMismatchError(name, "an array of strings")
    return list(value)
