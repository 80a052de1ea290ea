"""
Streaming model backend.

OllamaClient streams over blocking urllib I/O. OllamaGenerator pumps that
stream on a worker thread into an asyncio queue so the event loop stays free
and cancellation is observed between fragments. The worker stops reading (and
closes the HTTP response) as soon as the turn is cancelled or the consumer
stops early.
"""
import asyncio
import threading
from typing import Any, AsyncIterator, Dict, Optional

from cadence.brain.generator import CancellationToken, TextGenerator
from cadence.brain.ollama_client import OllamaClient
from cadence.brain.prompt import GenerationRequest
from cadence.core.config import Config
from cadence.core.errors import GenerationError
from cadence.core.logger import get_logger

_DONE = object()


class OllamaGenerator(TextGenerator):
    """Text generator backed by a local Ollama server."""

    name = "ollama"

    def __init__(
        self,
        client: Optional[OllamaClient] = None,
        model: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        stream: Optional[bool] = None,
        max_prompt_chars: Optional[int] = None,
    ):
        self.logger = get_logger()
        self.client = client or OllamaClient(
            base_url=Config.OLLAMA_BASE_URL,
            timeout=Config.LLM_TIMEOUT,
        )
        self.model = model or Config.OLLAMA_MODEL
        self.options = options if options is not None else {
            "temperature": Config.OLLAMA_TEMPERATURE,
            "top_p": Config.OLLAMA_TOP_P,
            "repeat_penalty": Config.OLLAMA_REPEAT_PENALTY,
            "num_predict": Config.OLLAMA_NUM_PREDICT,
            "stop": ["<|end|>", "<|endoftext|>"],
        }
        self.use_stream = Config.OLLAMA_STREAM if stream is None else stream
        self.max_prompt_chars = (
            Config.LLM_MAX_PROMPT_CHARS if max_prompt_chars is None else max_prompt_chars
        )

    def check_available(self) -> bool:
        """Ping the server; logs a warning when it is unreachable."""
        if self.client.ping():
            self.logger.info(f"Model backend ready: {self.model} @ {self.client.base_url}")
            return True
        self.logger.warning(f"Ollama not reachable at {self.client.base_url}; will retry on first request")
        return False

    async def stream(
        self,
        request: GenerationRequest,
        cancel: CancellationToken,
    ) -> AsyncIterator[str]:
        prompt = request.render(max_chars=self.max_prompt_chars)
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        stop = threading.Event()

        def should_stop() -> bool:
            return stop.is_set() or cancel.cancelled

        def deliver(item: Any) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, item)

        def pump() -> None:
            try:
                if self.use_stream:
                    for chunk in self.client.generate_stream(
                        prompt, self.model, self.options, cancel_check=should_stop
                    ):
                        if should_stop():
                            break
                        deliver(chunk)
                else:
                    deliver(self.client.generate(prompt, self.model, self.options))
                deliver(_DONE)
            except Exception as e:
                deliver(e)

        # Unblock the consumer on cancel without waiting for the next line
        cancel.on_cancel(lambda: deliver(_DONE))

        worker = threading.Thread(target=pump, name="OllamaStream", daemon=True)
        worker.start()
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    return
                if isinstance(item, (ConnectionError, ValueError)):
                    raise GenerationError(str(item)) from item
                if isinstance(item, Exception):
                    raise GenerationError(f"Model backend failed: {item}") from item
                yield item
        finally:
            stop.set()
