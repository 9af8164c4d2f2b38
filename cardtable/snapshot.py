from __future__ import annotations

import dataclasses
import typing
from enum import Enum
from typing import Any, Dict, Union

from .cards import Card, parse_label
from .errors import SnapshotError

# Engine state is held as dataclasses; every snapshot that leaves an engine
# is materialized into fresh JSON-ready primitives (cards become labels).

_HINTS: Dict[type, Dict[str, Any]] = {}


def to_primitive(value: Any) -> Any:
    if isinstance(value, Card):
        return value.label
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {field.name: to_primitive(getattr(value, field.name)) for field in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(key): to_primitive(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_primitive(item) for item in value]
    return value


def from_primitive(tp: Any, data: Any, path: str = "state") -> Any:
    """Rebuild a value of type `tp` from primitives, failing fast on bad shape."""
    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if tp is Any:
        return data
    if origin is Union:
        options = [arg for arg in args if arg is not type(None)]
        if data is None:
            if len(options) < len(args):
                return None
            raise SnapshotError(f"{path}: null not allowed")
        return from_primitive(options[0], data, path)
    if origin is list:
        if not isinstance(data, list):
            raise SnapshotError(f"{path}: expected list, got {type(data).__name__}")
        return [from_primitive(args[0], item, f"{path}[{idx}]") for idx, item in enumerate(data)]
    if origin is dict:
        if not isinstance(data, dict):
            raise SnapshotError(f"{path}: expected object, got {type(data).__name__}")
        return {
            from_primitive(args[0], key, f"{path}<key>"): from_primitive(args[1], item, f"{path}.{key}")
            for key, item in data.items()
        }
    if tp is Card:
        try:
            return parse_label(data)
        except ValueError as exc:
            raise SnapshotError(f"{path}: {exc}") from exc
    if isinstance(tp, type) and issubclass(tp, Enum):
        try:
            return tp(data)
        except ValueError as exc:
            raise SnapshotError(f"{path}: {exc}") from exc
    if dataclasses.is_dataclass(tp):
        return _load_dataclass(tp, data, path)
    if tp is float:
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            raise SnapshotError(f"{path}: expected number, got {data!r}")
        return data
    if tp in (int, str, bool):
        if type(data) is not tp:
            raise SnapshotError(f"{path}: expected {tp.__name__}, got {data!r}")
        return data
    raise SnapshotError(f"{path}: unsupported type {tp!r}")


def _load_dataclass(cls: type, data: Any, path: str) -> Any:
    if not isinstance(data, dict):
        raise SnapshotError(f"{path}: expected object, got {type(data).__name__}")
    hints = _hints_for(cls)
    fields = [field for field in dataclasses.fields(cls) if field.init]
    unknown = set(data) - {field.name for field in fields}
    if unknown:
        raise SnapshotError(f"{path}: unknown fields {sorted(unknown)}")

    kwargs: Dict[str, Any] = {}
    for field in fields:
        if field.name not in data:
            if field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING:
                raise SnapshotError(f"{path}: missing field {field.name!r}")
            continue
        kwargs[field.name] = from_primitive(hints[field.name], data[field.name], f"{path}.{field.name}")
    return cls(**kwargs)


def _hints_for(cls: type) -> Dict[str, Any]:
    hints = _HINTS.get(cls)
    if hints is None:
        hints = typing.get_type_hints(cls)
        _HINTS[cls] = hints
    return hints
