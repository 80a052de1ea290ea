"""
Capability handlers and the registry that routes intents to them.
"""
from cadence.tools.calculator import CalculatorCapability
from cadence.tools.datetime_tool import DateTimeCapability
from cadence.tools.registry import CapabilityRegistry
from cadence.tools.tool_base import Capability, ExecutionResult
from cadence.tools.unit_convert import UnitConversionCapability


def build_default_registry() -> CapabilityRegistry:
    """Registry with the built-in, device-independent capabilities."""
    registry = CapabilityRegistry()
    registry.register_capability(CalculatorCapability())
    registry.register_capability(DateTimeCapability())
    registry.register_capability(UnitConversionCapability())
    return registry


__all__ = [
    "Capability",
    "CapabilityRegistry",
    "ExecutionResult",
    "build_default_registry",
]
