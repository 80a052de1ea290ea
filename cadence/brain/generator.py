"""
Text generator contract.

A generator turns a GenerationRequest into an async stream of text fragments.
Backends implement ``stream()``; callers use ``generate()``, which enforces the
shared rules for every backend:

- at most ``max_fragments`` fragments are consumed
- output ends at the first end-of-output marker
- the cancellation token is checked before each fragment is accepted, and a
  cancelled generation raises GenerationCancelled instead of returning text
- the backend stream is always closed, even on cancel or error

Timing telemetry is logged and never changes control flow.
"""
import threading
import time
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, List, Optional

from cadence.brain.messages import END_MARKER
from cadence.brain.prompt import GenerationRequest
from cadence.core.config import Config
from cadence.core.errors import GenerationCancelled, GenerationError
from cadence.core.logger import get_logger

END_OF_OUTPUT_MARKERS = (END_MARKER, "<|endoftext|>")


class CancellationToken:
    """
    Thread-safe, one-shot cancellation flag.

    Callbacks registered with on_cancel() run once, on the thread that calls
    cancel(). A callback registered after cancellation runs immediately.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """
        Request cancellation.

        Returns:
            True if this call cancelled the token, False if it was already cancelled
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                get_logger().error(f"[GEN] cancel callback error: {e}")
        return True

    def on_cancel(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelled("Generation cancelled")


def _split_at_marker(fragment: str) -> tuple[str, bool]:
    """Return (text before any end marker, whether a marker was found)."""
    cut = -1
    for marker in END_OF_OUTPUT_MARKERS:
        idx = fragment.find(marker)
        if idx != -1 and (cut == -1 or idx < cut):
            cut = idx
    if cut == -1:
        return fragment, False
    return fragment[:cut], True


class TextGenerator(ABC):
    """Interchangeable text generation backend."""

    name: str = "generator"

    @abstractmethod
    def stream(
        self,
        request: GenerationRequest,
        cancel: CancellationToken,
    ) -> AsyncIterator[str]:
        """
        Yield raw text fragments for the request.

        Implementations raise GenerationError for backend failures. They may
        stop early when the token is cancelled; they need not enforce the
        fragment limit or end markers.
        """

    async def generate(
        self,
        request: GenerationRequest,
        cancel: Optional[CancellationToken] = None,
        max_fragments: Optional[int] = None,
    ) -> str:
        """
        Run the backend stream to completion and return the joined text.

        Args:
            request: Prompt for this turn
            cancel: Token checked before each fragment is accepted
            max_fragments: Fragment limit (default Config.MAX_FRAGMENTS)

        Returns:
            Concatenated output, stripped of surrounding whitespace

        Raises:
            GenerationCancelled: If the token is cancelled before completion
            GenerationError: If the backend fails
        """
        logger = get_logger()
        if cancel is None:
            cancel = CancellationToken()
        if max_fragments is None:
            max_fragments = Config.MAX_FRAGMENTS

        start_time = time.time()
        first_fragment_ms = None
        fragments: List[str] = []
        received = 0

        cancel.raise_if_cancelled()
        stream = self.stream(request, cancel)
        try:
            async for fragment in stream:
                cancel.raise_if_cancelled()
                received += 1
                if first_fragment_ms is None:
                    first_fragment_ms = int((time.time() - start_time) * 1000)
                text, ended = _split_at_marker(fragment)
                if text:
                    fragments.append(text)
                if ended:
                    logger.debug(f"[GEN] end marker after {len(fragments)} fragments")
                    break
                if received >= max_fragments:
                    logger.debug(f"[GEN] fragment limit {max_fragments} reached")
                    break
        except (GenerationCancelled, GenerationError):
            raise
        except Exception as e:
            raise GenerationError(f"{self.name} generation failed: {e}") from e
        finally:
            await stream.aclose()

        cancel.raise_if_cancelled()

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            f"[GEN] backend={self.name} fragments={received} "
            f"first_fragment_ms={first_fragment_ms} elapsed_ms={elapsed_ms}"
        )
        return "".join(fragments).strip()
