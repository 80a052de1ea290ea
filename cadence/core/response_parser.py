"""
Decode generator output into an IntentDecision.

The generator may wrap its JSON in commentary ("Sure! {...} Anything else?").
extract_json() keeps the span from the first '{' to the last '}'. This is a
heuristic, not a tokenizer: with no such pair the whole text is passed through
and json decoding fails cleanly.

Only shape-level checks happen here. Business validation of parameters is
advisory (see cadence.core.intents.validate_parameters).
"""
import json
from typing import Any, Dict

from cadence.core.errors import ParseError
from cadence.core.intents import IntentDecision, kind_from_wire
from cadence.core.logger import get_logger
from cadence.core.values import ParameterValue

REQUIRED_FIELDS = (
    "intent",
    "parameters",
    "confidence",
    "needsConfirmation",
    "naturalLanguageResponse",
)


def extract_json(text: str) -> str:
    """
    Return the candidate JSON payload in text.

    Args:
        text: Raw generator output

    Returns:
        Substring from the first '{' to the last '}' inclusive, or the
        original text if no such pair exists
    """
    if not text:
        return ""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return text
    return text[start:end + 1]


def _require(payload: Dict[str, Any], name: str, expected: tuple, label: str) -> Any:
    value = payload[name]
    # bool is an int subclass; reject it where a number is expected
    if isinstance(value, bool) and bool not in expected:
        raise ParseError(f"Field '{name}' must be {label}, got bool")
    if not isinstance(value, expected):
        raise ParseError(f"Field '{name}' must be {label}, got {type(value).__name__}")
    return value


def parse_decision(text: str) -> IntentDecision:
    """
    Parse raw generator text into an IntentDecision.

    Unknown top-level fields are ignored.

    Args:
        text: Full text produced by the generator for one turn

    Returns:
        Decoded IntentDecision

    Raises:
        ParseError: If no valid JSON object is found, a required field is
            missing or mistyped, or the intent kind is not recognized
            (ParseError.raw_kind is set in that last case)
    """
    logger = get_logger()
    candidate = extract_json(text)

    try:
        payload = json.loads(candidate)
    except (json.JSONDecodeError, TypeError) as e:
        logger.debug(f"[PARSE] invalid JSON: {candidate[:80]!r}")
        raise ParseError(f"Response is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ParseError(f"Response JSON must be an object, got {type(payload).__name__}")

    missing = [name for name in REQUIRED_FIELDS if name not in payload]
    if missing:
        raise ParseError(f"Response is missing required fields: {', '.join(missing)}")

    raw_kind = _require(payload, "intent", (str,), "a string")
    raw_params = _require(payload, "parameters", (dict,), "an object")
    confidence = float(_require(payload, "confidence", (int, float), "a number"))
    needs_confirmation = _require(payload, "needsConfirmation", (bool,), "a bool")
    response_text = _require(payload, "naturalLanguageResponse", (str,), "a string")

    try:
        parameters = ParameterValue.decode_mapping(raw_params)
    except TypeError as e:
        raise ParseError(f"Invalid parameters: {e}") from e

    kind = kind_from_wire(raw_kind)
    if kind is None:
        logger.debug(f"[PARSE] unrecognized intent kind: {raw_kind!r}")
        raise ParseError(
            f"Unrecognized intent kind: {raw_kind}",
            raw_kind=raw_kind,
            response_text=response_text,
        )

    if not 0.0 <= confidence <= 1.0:
        logger.debug(f"[PARSE] confidence {confidence} clamped to [0, 1]")
        confidence = min(1.0, max(0.0, confidence))

    return IntentDecision(
        kind=kind,
        parameters=parameters,
        confidence=confidence,
        needs_confirmation=needs_confirmation,
        natural_language_response=response_text,
    )
