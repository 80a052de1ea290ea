"""
Exception taxonomy for the command pipeline.

Generation and parse failures are raised by the brain/parser layers and caught
at the runtime boundary. Capability errors are raised by handlers; each carries
the text shown to the user in the transcript.
"""
from typing import Optional


class GenerationError(Exception):
    """Text generator backend unavailable, failed, or timed out."""


class GenerationCancelled(Exception):
    """Generation was cancelled through its cancellation token."""


class ParseError(Exception):
    """Generator output could not be decoded into an intent decision."""

    def __init__(
        self,
        message: str,
        raw_kind: Optional[str] = None,
        response_text: str = "",
    ):
        super().__init__(message)
        # Set only when the payload decoded but named an unrecognized kind
        self.raw_kind = raw_kind
        self.response_text = response_text

    @property
    def unrecognized_kind(self) -> bool:
        return self.raw_kind is not None


class CapabilityError(Exception):
    """Base class for failures raised by capability handlers."""

    @property
    def user_message(self) -> str:
        return str(self)


class MissingParameter(CapabilityError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    @property
    def user_message(self) -> str:
        return f"Missing required parameter: {self.name}"


class PermissionDenied(CapabilityError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ExecutionFailed(CapabilityError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
