"""
Unit conversion capability - length, mass and temperature.
"""
from typing import Dict, Optional, Tuple

from cadence.core.errors import ExecutionFailed
from cadence.core.intents import IntentKind
from cadence.core.values import Parameters, number_or_str, require_number, require_str
from cadence.tools.tool_base import Capability, ExecutionResult

# unit -> (dimension, factor to the dimension's base unit)
# Base units: meters for length, grams for mass.
_LINEAR_UNITS: Dict[str, Tuple[str, float]] = {
    "kilometers": ("length", 1000.0),
    "meters": ("length", 1.0),
    "centimeters": ("length", 0.01),
    "millimeters": ("length", 0.001),
    "miles": ("length", 1609.344),
    "yards": ("length", 0.9144),
    "feet": ("length", 0.3048),
    "inches": ("length", 0.0254),
    "kilograms": ("mass", 1000.0),
    "grams": ("mass", 1.0),
    "pounds": ("mass", 453.59237),
    "ounces": ("mass", 28.349523125),
}

_TEMPERATURE_UNITS = ("celsius", "fahrenheit", "kelvin")

_UNIT_ALIASES: Dict[str, str] = {
    "km": "kilometers", "kilometer": "kilometers", "kilometres": "kilometers", "kilometre": "kilometers",
    "m": "meters", "meter": "meters", "metres": "meters", "metre": "meters",
    "cm": "centimeters", "centimeter": "centimeters",
    "mm": "millimeters", "millimeter": "millimeters",
    "mi": "miles", "mile": "miles",
    "yd": "yards", "yard": "yards",
    "ft": "feet", "foot": "feet",
    "in": "inches", "inch": "inches",
    "kg": "kilograms", "kilogram": "kilograms", "kilos": "kilograms", "kilo": "kilograms",
    "g": "grams", "gram": "grams",
    "lb": "pounds", "lbs": "pounds", "pound": "pounds",
    "oz": "ounces", "ounce": "ounces",
    "c": "celsius", "°c": "celsius",
    "f": "fahrenheit", "°f": "fahrenheit",
    "k": "kelvin",
}


def canonical_unit(unit: str) -> str:
    key = unit.strip().lower()
    return _UNIT_ALIASES.get(key, key)


def _to_celsius(value: float, unit: str) -> float:
    if unit == "fahrenheit":
        return (value - 32) * 5 / 9
    if unit == "kelvin":
        return value - 273.15
    return value


def _from_celsius(value: float, unit: str) -> float:
    if unit == "fahrenheit":
        return value * 9 / 5 + 32
    if unit == "kelvin":
        return value + 273.15
    return value


def convert_value(value: float, from_unit: str, to_unit: str) -> Optional[float]:
    """
    Convert value between units.

    Returns:
        Converted value, or None if the units are unknown or incompatible
    """
    src = canonical_unit(from_unit)
    dst = canonical_unit(to_unit)
    if src == dst:
        return value
    if src in _TEMPERATURE_UNITS and dst in _TEMPERATURE_UNITS:
        return _from_celsius(_to_celsius(value, src), dst)
    if src in _LINEAR_UNITS and dst in _LINEAR_UNITS:
        src_dim, src_factor = _LINEAR_UNITS[src]
        dst_dim, dst_factor = _LINEAR_UNITS[dst]
        if src_dim != dst_dim:
            return None
        return value * src_factor / dst_factor
    return None


class UnitConversionCapability(Capability):
    """Handler for the convert-units intent."""

    kind = IntentKind.CONVERT_UNITS
    description = "Convert a value between length, mass or temperature units"

    def handle(self, parameters: Parameters) -> ExecutionResult:
        value = require_number(parameters, "value")
        from_unit = require_str(parameters, "from")
        to_unit = require_str(parameters, "to")

        result = convert_value(value, from_unit, to_unit)
        if result is None:
            raise ExecutionFailed(f"Could not convert from {from_unit} to {to_unit}")
        return ExecutionResult.ok(
            f"{number_or_str(value)} {from_unit} = {result:.2f} {to_unit}",
            {"result": result},
        )
