"""
Base class and result type for capability handlers.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Mapping, Optional, Union

from cadence.core.intents import IntentKind
from cadence.core.values import ParameterValue, Parameters


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one capability invocation."""
    success: bool
    message: str
    data: Optional[Parameters] = None

    @classmethod
    def ok(cls, message: str, data: Optional[Mapping[str, Any]] = None) -> "ExecutionResult":
        """Successful result; plain JSON-like data is converted to ParameterValues."""
        return cls(True, message, ParameterValue.decode_mapping(data) if data is not None else None)

    @classmethod
    def failed(cls, message: str) -> "ExecutionResult":
        return cls(False, message)


class Capability(ABC):
    """
    A handler for one intent kind.

    Subclasses set ``kind`` and ``description`` and implement ``handle``.
    ``handle`` may be a plain method or a coroutine; it reports unusable
    input by raising MissingParameter, PermissionDenied or ExecutionFailed.
    """

    kind: IntentKind = IntentKind.UNKNOWN
    description: str = ""

    @abstractmethod
    def handle(self, parameters: Parameters) -> Union[ExecutionResult, Awaitable[ExecutionResult]]:
        """Perform the capability's effect for the given parameters."""

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "description": self.description}

    def __call__(self, parameters: Parameters) -> Union[ExecutionResult, Awaitable[ExecutionResult]]:
        return self.handle(parameters)
