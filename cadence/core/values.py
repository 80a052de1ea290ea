"""
Parameter values carried by intent decisions and execution results.

A ParameterValue is a tagged union over the JSON value space. Handlers read
parameters through the typed accessors at the bottom of this module (or by
checking the ``tag``) instead of casting raw dict entries.

Usage:
    from cadence.core.values import ParameterValue, require_str

    params = ParameterValue.decode_mapping({"state": "on"})
    state = require_str(params, "state")
"""
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from cadence.core.errors import MissingParameter


class ParameterValue:
    """Base of the tagged union. Subclasses are frozen dataclasses."""

    tag: str = ""

    def to_json(self) -> Any:
        raise NotImplementedError

    @staticmethod
    def from_json(obj: Any) -> "ParameterValue":
        """
        Build a ParameterValue from a decoded JSON object.

        bool is checked before int because bool is an int subclass.

        Raises:
            TypeError: If obj is not representable as JSON
        """
        if obj is None:
            return NullValue()
        if isinstance(obj, bool):
            return BoolValue(obj)
        if isinstance(obj, int):
            return IntValue(obj)
        if isinstance(obj, float):
            return FloatValue(obj)
        if isinstance(obj, str):
            return StringValue(obj)
        if isinstance(obj, (list, tuple)):
            return ListValue(tuple(ParameterValue.from_json(item) for item in obj))
        if isinstance(obj, dict):
            entries = {}
            for key, value in obj.items():
                if not isinstance(key, str):
                    raise TypeError(f"Parameter keys must be strings, got {type(key).__name__}")
                entries[key] = ParameterValue.from_json(value)
            return MapValue(entries)
        raise TypeError(f"Unsupported parameter type: {type(obj).__name__}")

    @staticmethod
    def decode_mapping(obj: Mapping[str, Any]) -> Dict[str, "ParameterValue"]:
        """Decode a plain JSON object into a name -> ParameterValue mapping."""
        return dict(ParameterValue.from_json(dict(obj)).entries)

    @staticmethod
    def decode_json_text(text: str) -> "ParameterValue":
        return ParameterValue.from_json(json.loads(text))

    def encode_json_text(self) -> str:
        return json.dumps(self.to_json())


@dataclass(frozen=True)
class NullValue(ParameterValue):
    tag = "null"

    def to_json(self) -> Any:
        return None


@dataclass(frozen=True)
class BoolValue(ParameterValue):
    value: bool
    tag = "bool"

    def to_json(self) -> Any:
        return self.value


@dataclass(frozen=True)
class IntValue(ParameterValue):
    value: int
    tag = "int"

    def to_json(self) -> Any:
        return self.value


@dataclass(frozen=True)
class FloatValue(ParameterValue):
    value: float
    tag = "float"

    def to_json(self) -> Any:
        return self.value


@dataclass(frozen=True)
class StringValue(ParameterValue):
    value: str
    tag = "string"

    def to_json(self) -> Any:
        return self.value


@dataclass(frozen=True)
class ListValue(ParameterValue):
    items: Tuple[ParameterValue, ...] = ()
    tag = "list"

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    def to_json(self) -> Any:
        return [item.to_json() for item in self.items]


@dataclass(frozen=True)
class MapValue(ParameterValue):
    entries: Mapping[str, ParameterValue] = field(default_factory=dict)
    tag = "map"

    def __post_init__(self):
        # Read-only view over a private copy
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    def to_json(self) -> Any:
        return {key: value.to_json() for key, value in self.entries.items()}


Parameters = Mapping[str, ParameterValue]


def encode_parameters(params: Mapping[str, ParameterValue]) -> Dict[str, Any]:
    """Encode a parameter mapping back to plain JSON-compatible data."""
    return {key: value.to_json() for key, value in params.items()}


# ============================================================================
# TYPED ACCESSORS
# ============================================================================
# Absent, null, or wrongly-tagged required values all raise MissingParameter,
# matching how handlers report an unusable parameter.

def _present(params: Mapping[str, ParameterValue], name: str) -> Optional[ParameterValue]:
    value = params.get(name)
    if value is None or isinstance(value, NullValue):
        return None
    return value


def require_str(params: Mapping[str, ParameterValue], name: str) -> str:
    value = _present(params, name)
    if not isinstance(value, StringValue):
        raise MissingParameter(name)
    return value.value


def optional_str(params: Mapping[str, ParameterValue], name: str) -> Optional[str]:
    value = _present(params, name)
    return value.value if isinstance(value, StringValue) else None


def optional_int(params: Mapping[str, ParameterValue], name: str) -> Optional[int]:
    value = _present(params, name)
    if isinstance(value, IntValue):
        return value.value
    if isinstance(value, FloatValue) and value.value.is_integer():
        return int(value.value)
    return None


def require_int(params: Mapping[str, ParameterValue], name: str) -> int:
    value = optional_int(params, name)
    if value is None:
        raise MissingParameter(name)
    return value


def optional_bool(params: Mapping[str, ParameterValue], name: str) -> Optional[bool]:
    value = _present(params, name)
    return value.value if isinstance(value, BoolValue) else None


def require_number(params: Mapping[str, ParameterValue], name: str) -> float:
    value = _present(params, name)
    if isinstance(value, (IntValue, FloatValue)):
        return float(value.value)
    raise MissingParameter(name)


def number_or_str(value: Union[int, float]) -> str:
    """Render a number without a trailing .0 for integral floats."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
