"""
Intent kinds, per-kind parameter schemas, and the intent decision record.
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from cadence.core.values import (
    BoolValue,
    FloatValue,
    IntValue,
    NullValue,
    ParameterValue,
    Parameters,
    StringValue,
    encode_parameters,
)


class IntentKind(Enum):
    """Closed set of actions the assistant can take. Values are wire strings."""
    SCHEDULE_EVENT = "schedule-event"
    CREATE_REMINDER = "create-reminder"
    START_TIMER = "start-timer"
    CREATE_NOTE = "create-note"
    SET_ALARM = "set-alarm"
    SEND_MESSAGE = "send-message"
    COMPOSE_EMAIL = "compose-email"
    PLACE_CALL = "place-call"
    SET_FLASHLIGHT = "set-flashlight"
    OPEN_CAMERA = "open-camera"
    SET_VOLUME = "set-volume"
    SET_BRIGHTNESS = "set-brightness"
    SET_WIFI = "set-wifi"
    SET_BLUETOOTH = "set-bluetooth"
    CALCULATE = "calculate"
    GET_WEATHER = "get-weather"
    GET_DATETIME = "get-datetime"
    CONVERT_UNITS = "convert-units"
    UNKNOWN = "unknown"


# ============================================================================
# KIND ALIAS NORMALIZATION
# ============================================================================
# Short kind names older model prompts produced. Only exact matches are
# rewritten; anything else stays unrecognized.

KIND_ALIAS_MAP: Dict[str, IntentKind] = {
    "calendar": IntentKind.SCHEDULE_EVENT,
    "reminder": IntentKind.CREATE_REMINDER,
    "timer": IntentKind.START_TIMER,
    "note": IntentKind.CREATE_NOTE,
    "alarm": IntentKind.SET_ALARM,
    "message": IntentKind.SEND_MESSAGE,
    "email": IntentKind.COMPOSE_EMAIL,
    "call": IntentKind.PLACE_CALL,
    "flashlight": IntentKind.SET_FLASHLIGHT,
    "camera": IntentKind.OPEN_CAMERA,
    "volume": IntentKind.SET_VOLUME,
    "brightness": IntentKind.SET_BRIGHTNESS,
    "wifi": IntentKind.SET_WIFI,
    "bluetooth": IntentKind.SET_BLUETOOTH,
    "calculation": IntentKind.CALCULATE,
    "weather": IntentKind.GET_WEATHER,
    "dateTime": IntentKind.GET_DATETIME,
    "unitConversion": IntentKind.CONVERT_UNITS,
}


def kind_from_wire(raw: str) -> Optional[IntentKind]:
    """
    Resolve a wire string (or legacy alias) to an IntentKind.

    Returns:
        The kind, or None if the string is not recognized
    """
    try:
        return IntentKind(raw)
    except ValueError:
        return KIND_ALIAS_MAP.get(raw)


# ============================================================================
# PARAMETER SCHEMAS
# ============================================================================

@dataclass(frozen=True)
class ParamSpec:
    """Expected shape of one parameter."""
    name: str
    shape: str  # "string", "int", "number", "bool", "iso8601"
    required: bool = False
    choices: Tuple[str, ...] = ()
    min_value: Optional[int] = None
    max_value: Optional[int] = None


def _req(name: str, shape: str, **kwargs) -> ParamSpec:
    return ParamSpec(name, shape, required=True, **kwargs)


def _opt(name: str, shape: str, **kwargs) -> ParamSpec:
    return ParamSpec(name, shape, required=False, **kwargs)


_UP_DOWN = ("up", "down")

INTENT_SCHEMAS: Dict[IntentKind, Tuple[ParamSpec, ...]] = {
    IntentKind.SCHEDULE_EVENT: (
        _req("title", "string"),
        _opt("date", "iso8601"),
        _opt("duration", "int"),
        _opt("location", "string"),
    ),
    IntentKind.CREATE_REMINDER: (
        _req("title", "string"),
        _opt("date", "iso8601"),
        _opt("priority", "string", choices=("low", "medium", "high")),
    ),
    IntentKind.START_TIMER: (
        _req("duration", "int"),
        _opt("label", "string"),
    ),
    IntentKind.CREATE_NOTE: (
        _req("title", "string"),
        _opt("content", "string"),
    ),
    IntentKind.SET_ALARM: (
        _req("time", "string"),
        _opt("label", "string"),
        _opt("recurring", "bool"),
    ),
    IntentKind.SEND_MESSAGE: (
        _req("recipient", "string"),
        _req("body", "string"),
    ),
    IntentKind.COMPOSE_EMAIL: (
        _req("recipient", "string"),
        _opt("subject", "string"),
        _opt("body", "string"),
    ),
    IntentKind.PLACE_CALL: (
        _req("recipient", "string"),
        _opt("video", "bool"),
    ),
    IntentKind.SET_FLASHLIGHT: (
        _req("state", "string", choices=("on", "off", "toggle")),
    ),
    IntentKind.OPEN_CAMERA: (
        _req("action", "string", choices=("open", "photo", "video")),
    ),
    IntentKind.SET_VOLUME: (
        _opt("level", "int", min_value=0, max_value=100),
        _opt("change", "string", choices=_UP_DOWN),
    ),
    IntentKind.SET_BRIGHTNESS: (
        _opt("level", "int", min_value=0, max_value=100),
        _opt("change", "string", choices=_UP_DOWN),
    ),
    IntentKind.SET_WIFI: (
        _req("state", "string"),
    ),
    IntentKind.SET_BLUETOOTH: (
        _req("state", "string"),
    ),
    IntentKind.CALCULATE: (
        _req("expression", "string"),
    ),
    IntentKind.GET_WEATHER: (
        _opt("location", "string"),
        _opt("when", "string"),
    ),
    IntentKind.GET_DATETIME: (
        _req("query", "string", choices=("date", "time", "day", "timezone")),
    ),
    IntentKind.CONVERT_UNITS: (
        _req("value", "number"),
        _req("from", "string"),
        _req("to", "string"),
    ),
}


def _shape_matches(spec: ParamSpec, value: ParameterValue) -> bool:
    if spec.shape in ("string", "iso8601"):
        return isinstance(value, StringValue)
    if spec.shape == "int":
        return isinstance(value, IntValue)
    if spec.shape == "number":
        return isinstance(value, (IntValue, FloatValue))
    if spec.shape == "bool":
        return isinstance(value, BoolValue)
    return True


def validate_parameters(kind: IntentKind, params: Mapping[str, ParameterValue]) -> List[str]:
    """
    Check a parameter mapping against the kind's schema.

    Advisory only: the result is logged by the runtime, handlers still do
    their own checks and may raise MissingParameter.

    Args:
        kind: Intent kind being validated
        params: Decoded parameters

    Returns:
        List of human-readable issues (empty if the parameters look valid)
    """
    issues: List[str] = []
    for spec in INTENT_SCHEMAS.get(kind, ()):
        value = params.get(spec.name)
        if value is None or isinstance(value, NullValue):
            if spec.required:
                issues.append(f"missing required parameter '{spec.name}'")
            continue
        if not _shape_matches(spec, value):
            issues.append(f"parameter '{spec.name}' should be {spec.shape}, got {value.tag}")
            continue
        if spec.choices and value.value not in spec.choices:
            issues.append(
                f"parameter '{spec.name}' must be one of {', '.join(spec.choices)}, got '{value.value}'"
            )
        if spec.min_value is not None and value.value < spec.min_value:
            issues.append(f"parameter '{spec.name}' below {spec.min_value}")
        if spec.max_value is not None and value.value > spec.max_value:
            issues.append(f"parameter '{spec.name}' above {spec.max_value}")
    return issues


# ============================================================================
# DECISION
# ============================================================================

@dataclass(frozen=True)
class IntentDecision:
    """Structured interpretation of one user turn. Immutable once built."""
    kind: IntentKind
    parameters: Parameters = field(default_factory=dict)
    confidence: float = 0.0
    needs_confirmation: bool = False
    natural_language_response: str = ""

    def __post_init__(self):
        # Held decisions must not change between approval and execution
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def to_wire(self) -> Dict[str, object]:
        """Encode in the generator output schema."""
        return {
            "intent": self.kind.value,
            "parameters": encode_parameters(self.parameters),
            "confidence": self.confidence,
            "needsConfirmation": self.needs_confirmation,
            "naturalLanguageResponse": self.natural_language_response,
        }

    @classmethod
    def unknown(cls, message: str = "") -> "IntentDecision":
        return cls(kind=IntentKind.UNKNOWN, confidence=0.0, natural_language_response=message)
