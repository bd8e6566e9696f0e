"""
Cache key construction and value (de)serialization.

Values are stored as compact JSON strings. The empty string is reserved as a
tombstone meaning "confirmed not found"; no encoded value is ever empty, since
even an empty string encodes to '""'.
"""
import json
import types
from dataclasses import asdict, fields, is_dataclass
from typing import Any, Optional, Type, Union, get_args, get_origin, get_type_hints

from .entry import LogicalEnvelope
from .errors import DecodeError

TOMBSTONE = ""
LOCK_PREFIX = "lock:"

# Optional[X] and, from Python 3.10, X | None
_UNION_ORIGINS = (Union, getattr(types, "UnionType", Union))


def build_key(prefix: str, id: Any) -> str:
    """Cache key for an id under a prefix, e.g. ('cache:shop:', 100) -> 'cache:shop:100'."""
    return f"{prefix}{id}"


def lock_key(prefix: str, id: Any) -> str:
    """Lock key guarding the fill/rebuild of build_key(prefix, id)."""
    return f"{LOCK_PREFIX}{prefix}{id}"


def is_tombstone(raw: Optional[str]) -> bool:
    return raw is not None and raw == TOMBSTONE


def to_plain(value: Any) -> Any:
    """Turn a domain value into JSON-compatible data."""
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    to_dict = getattr(value, 'to_dict', None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    return value


def from_plain(data: Any, type_: Optional[Type] = None) -> Any:
    """
    Rebuild a domain value of type_ from JSON-compatible data.

    Dataclass fields and the elements of List[...], Dict[str, ...] and
    Optional[...] targets are rebuilt recursively from their type hints.

    Args:
        data: Parsed JSON data
        type_: Target type; None returns the data unchanged

    Returns:
        The domain value

    Raises:
        DecodeError: If the data does not fit type_
    """
    if type_ is None or type_ is object or type_ is Any:
        return data

    origin = get_origin(type_)
    if origin in _UNION_ORIGINS:
        return _from_union(data, type_)
    if origin is not None:
        return _from_generic(data, type_, origin)

    if is_dataclass(type_):
        return _from_dataclass(data, type_)

    from_dict = getattr(type_, 'from_dict', None)
    if callable(from_dict):
        try:
            return from_dict(data)
        except (TypeError, ValueError, KeyError) as e:
            raise DecodeError(f"Cannot build {type_.__name__}: {e}") from e

    if not isinstance(type_, type):
        raise DecodeError(f"Unsupported target type {type_!r}")
    # JSON has a single number type
    if type_ is float and isinstance(data, int) and not isinstance(data, bool):
        return float(data)
    if not isinstance(data, type_) or (type_ is int and isinstance(data, bool)):
        raise DecodeError(f"Expected {type_.__name__}, got {type(data).__name__}")
    return data


def _from_union(data: Any, type_: Any) -> Any:
    args = get_args(type_)
    if data is None:
        if type(None) in args:
            return None
        raise DecodeError(f"Expected {type_!r}, got null")
    for arg in args:
        if arg is type(None):
            continue
        try:
            return from_plain(data, arg)
        except DecodeError:
            continue
    raise DecodeError(f"Expected {type_!r}, got {type(data).__name__}")


def _from_generic(data: Any, type_: Any, origin: Any) -> Any:
    args = get_args(type_)
    if origin is list:
        if not isinstance(data, list):
            raise DecodeError(f"Expected a list for {type_!r}, got {type(data).__name__}")
        item_type = args[0] if args else None
        return [from_plain(item, item_type) for item in data]
    if origin is dict:
        if not isinstance(data, dict):
            raise DecodeError(f"Expected an object for {type_!r}, got {type(data).__name__}")
        # JSON object keys are always strings
        value_type = args[1] if len(args) == 2 else None
        return {key: from_plain(value, value_type) for key, value in data.items()}
    if isinstance(origin, type) and isinstance(data, origin):
        return data
    raise DecodeError(f"Unsupported target type {type_!r}")


def _from_dataclass(data: Any, type_: Type) -> Any:
    if not isinstance(data, dict):
        raise DecodeError(f"Expected an object for {type_.__name__}, got {type(data).__name__}")
    try:
        hints = get_type_hints(type_)
    except (NameError, TypeError):
        hints = {}
    declared = fields(type_)
    unknown = set(data) - {f.name for f in declared}
    if unknown:
        raise DecodeError(f"Cannot build {type_.__name__}: unexpected fields {sorted(unknown)}")
    kwargs = {
        f.name: from_plain(data[f.name], hints.get(f.name))
        for f in declared if f.init and f.name in data
    }
    try:
        return type_(**kwargs)
    except TypeError as e:
        raise DecodeError(f"Cannot build {type_.__name__}: {e}") from e


def _dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(',', ':'))


def _loads(raw: str) -> Any:
    if raw is None or raw == TOMBSTONE:
        raise DecodeError("Nothing to decode")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Malformed payload: {e}") from e


def encode(value: Any) -> str:
    """Serialize a value for the store; None encodes to the tombstone."""
    if value is None:
        return TOMBSTONE
    return _dumps(to_plain(value))


def decode(raw: str, type_: Optional[Type] = None) -> Any:
    """
    Deserialize a stored string into a value of type_.

    Raises:
        DecodeError: If raw is not valid JSON or does not fit type_
    """
    return from_plain(_loads(raw), type_)


def encode_envelope(envelope: LogicalEnvelope) -> str:
    return _dumps({"data": to_plain(envelope.data), "expire_at": envelope.expire_at})


def decode_envelope(raw: str) -> LogicalEnvelope:
    """
    Parse a logical-expiry envelope. The payload is left as plain data.

    Raises:
        DecodeError: If raw is not a well-formed envelope
    """
    data = _loads(raw)
    if not isinstance(data, dict) or "data" not in data or "expire_at" not in data:
        raise DecodeError("Not a logical-expiry envelope")
    expire_at = data["expire_at"]
    if isinstance(expire_at, bool) or not isinstance(expire_at, (int, float)):
        raise DecodeError(f"Invalid expire_at: {expire_at!r}")
    return LogicalEnvelope(data=data["data"], expire_at=float(expire_at))
