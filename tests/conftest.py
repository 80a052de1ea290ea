"""
Shared fixtures for the Cadence test suite.
"""
import asyncio
from typing import List, Optional, Sequence

import pytest

from cadence.brain.generator import CancellationToken, TextGenerator
from cadence.brain.prompt import GenerationRequest
from cadence.core.values import Parameters
from cadence.tools.tool_base import ExecutionResult


class ScriptedGenerator(TextGenerator):
    """Generator that yields a fixed list of fragments, optionally slowly."""

    name = "scripted"

    def __init__(self, fragments: Sequence[str], delay: float = 0.0):
        self.fragments = list(fragments)
        self.delay = delay
        self.requests: List[GenerationRequest] = []
        self.closed = False

    async def stream(self, request: GenerationRequest, cancel: CancellationToken):
        self.requests.append(request)
        try:
            for fragment in self.fragments:
                await asyncio.sleep(self.delay)
                yield fragment
        finally:
            self.closed = True


class RecordingHandler:
    """Capability handler that records every call."""

    def __init__(self, message: str = "Done.", error: Optional[Exception] = None):
        self.message = message
        self.error = error
        self.calls: List[Parameters] = []

    def __call__(self, parameters: Parameters) -> ExecutionResult:
        self.calls.append(parameters)
        if self.error is not None:
            raise self.error
        return ExecutionResult.ok(self.message)


@pytest.fixture
def recording_handler():
    return RecordingHandler()
