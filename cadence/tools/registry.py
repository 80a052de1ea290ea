"""
Capability registry: maps intent kinds to handlers.

New capabilities plug in with register(); the dispatch runtime never switches
on the kind itself.
"""
import inspect
from typing import Awaitable, Callable, Dict, List, Union

from cadence.core.errors import ExecutionFailed
from cadence.core.intents import IntentKind
from cadence.core.logger import get_logger
from cadence.core.values import Parameters
from cadence.tools.tool_base import Capability, ExecutionResult

Handler = Callable[[Parameters], Union[ExecutionResult, Awaitable[ExecutionResult]]]

UNKNOWN_INTENT_MESSAGE = "I'm not sure how to help with that. Could you rephrase?"


class CapabilityRegistry:
    """Registry of capability handlers keyed by IntentKind."""

    def __init__(self):
        self._handlers: Dict[IntentKind, Handler] = {}
        self.logger = get_logger()

    def register(self, kind: IntentKind, handler: Handler) -> None:
        """
        Register (or replace) the handler for a kind.

        Raises:
            ValueError: If kind is UNKNOWN, which has a built-in handler
        """
        if kind is IntentKind.UNKNOWN:
            raise ValueError("The unknown intent has a built-in handler and cannot be registered")
        if kind in self._handlers:
            self.logger.debug(f"[TOOLS] replacing handler for {kind.value}")
        self._handlers[kind] = handler

    def register_capability(self, capability: Capability) -> None:
        self.register(capability.kind, capability)

    def unregister(self, kind: IntentKind) -> bool:
        return self._handlers.pop(kind, None) is not None

    def has(self, kind: IntentKind) -> bool:
        return kind is IntentKind.UNKNOWN or kind in self._handlers

    def kinds(self) -> List[IntentKind]:
        return list(self._handlers)

    async def invoke(self, kind: IntentKind, parameters: Parameters) -> ExecutionResult:
        """
        Run the handler for kind with the given parameters.

        The unknown kind never reaches a registered handler.

        Raises:
            MissingParameter, PermissionDenied, ExecutionFailed: From the handler,
                or ExecutionFailed if no handler is registered for kind
        """
        if kind is IntentKind.UNKNOWN:
            return ExecutionResult.failed(UNKNOWN_INTENT_MESSAGE)

        handler = self._handlers.get(kind)
        if handler is None:
            raise ExecutionFailed(f"No capability is available for {kind.value}")

        self.logger.debug(f"[TOOLS] invoking {kind.value} params={sorted(parameters)}")
        result = handler(parameters)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, ExecutionResult):
            raise ExecutionFailed(f"Capability for {kind.value} returned no result")
        return result
