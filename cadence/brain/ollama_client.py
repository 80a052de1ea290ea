"""
HTTP client for the Ollama API with connection reuse and streaming support.
Handles all communication with a local Ollama instance.
"""
import json
import time
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, Iterator, Optional

from cadence.core.logger import get_logger


class OllamaClient:
    """Client for the Ollama generate API."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:11434",
        timeout: int = 30
    ):
        """
        Args:
            base_url: Ollama API base URL (e.g., http://127.0.0.1:11434)
            timeout: Socket timeout for requests in seconds
        """
        self.logger = get_logger()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.opener = urllib.request.build_opener(
            urllib.request.HTTPHandler(debuglevel=0),
            urllib.request.HTTPSHandler(debuglevel=0)
        )

    def ping(self) -> bool:
        """
        Check if the Ollama server is running and accessible.

        Returns:
            True if Ollama is reachable, False otherwise
        """
        try:
            start_time = time.time()
            req = urllib.request.Request(f"{self.base_url}/api/tags", method="GET")
            with self.opener.open(req, timeout=5) as response:
                data = json.loads(response.read().decode("utf-8"))
            models = [m.get("name", "") for m in data.get("models", [])]
            elapsed_ms = int((time.time() - start_time) * 1000)
            self.logger.debug(f"[OLLAMA] ping ok ({elapsed_ms}ms) models={models}")
            return True
        except (urllib.error.URLError, OSError, ValueError) as e:
            self.logger.debug(f"[OLLAMA] ping failed: {e}")
            return False

    def _build_request(self, prompt: str, model: str, options: Dict[str, Any], stream: bool) -> urllib.request.Request:
        payload = {
            "model": model,
            "prompt": prompt,
            "raw": True,
            "stream": stream,
            "options": options,
        }
        return urllib.request.Request(
            f"{self.base_url}/api/generate",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Connection": "keep-alive",
            },
            method="POST"
        )

    def _translate_error(self, e: Exception, model: str, start_time: float) -> Exception:
        """Map urllib failures to ConnectionError / ValueError."""
        elapsed_ms = int((time.time() - start_time) * 1000)
        if isinstance(e, urllib.error.HTTPError):
            error_body = ""
            try:
                error_body = e.read().decode("utf-8")
            except OSError:
                pass
            self.logger.error(f"HTTP {e.code} from Ollama after {elapsed_ms}ms: {error_body}")
            if e.code == 404 or "model" in error_body.lower():
                return ValueError(f"Model '{model}' not found. Try: ollama pull {model}")
            return ConnectionError(f"Ollama HTTP error: {e.code}")
        self.logger.error(f"Connection error after {elapsed_ms}ms: {e}")
        if "Connection refused" in str(e):
            return ConnectionError(f"Cannot reach Ollama at {self.base_url}. Try: ollama serve")
        return ConnectionError(f"Network error: {e}")

    def generate(
        self,
        prompt: str,
        model: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Generate text from Ollama (non-streaming).

        Raises:
            ConnectionError: If Ollama cannot be reached
            ValueError: If the model is missing or the response is invalid
        """
        start_time = time.time()
        req = self._build_request(prompt, model, options or {}, stream=False)
        self.logger.debug(f"[OLLAMA] generating (non-stream) with {model}")

        try:
            with self.opener.open(req, timeout=self.timeout) as response:
                response_data = json.loads(response.read().decode("utf-8"))
        except (urllib.error.URLError, OSError) as e:
            raise self._translate_error(e, model, start_time) from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        self.logger.debug(
            f"[OLLAMA] completed in {elapsed_ms}ms "
            f"(prompt_tokens={response_data.get('prompt_eval_count', 0)}, "
            f"eval_tokens={response_data.get('eval_count', 0)})"
        )
        return response_data.get("response", "").strip()

    def generate_stream(
        self,
        prompt: str,
        model: str,
        options: Optional[Dict[str, Any]] = None,
        cancel_check: Optional[Callable[[], bool]] = None,
    ) -> Iterator[str]:
        """
        Generate text from Ollama with streaming.
        Yields text deltas as they arrive (NDJSON, one object per line).

        Args:
            prompt: Input prompt text
            model: Model name to use
            options: Generation options
            cancel_check: Optional callable returning True to stop reading;
                the HTTP response is closed on stop

        Raises:
            ConnectionError: If Ollama cannot be reached
            ValueError: If the model is missing or a stream line is not JSON
        """
        start_time = time.time()
        first_token_time = None
        req = self._build_request(prompt, model, options or {}, stream=True)
        self.logger.debug(f"[OLLAMA] generating (stream) with {model}")

        try:
            response = self.opener.open(req, timeout=self.timeout)
        except (urllib.error.URLError, OSError) as e:
            raise self._translate_error(e, model, start_time) from e

        with response:
            for raw_line in response:
                if cancel_check and cancel_check():
                    self.logger.debug("[OLLAMA] stream cancelled")
                    return

                line = raw_line.decode("utf-8").strip()
                if not line:
                    continue

                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    self.logger.warning(f"Failed to parse stream line: {line[:100]}")
                    raise ValueError(f"Invalid JSON in stream: {e}") from e

                if "error" in data:
                    raise ValueError(f"Ollama error: {data['error']}")

                if first_token_time is None:
                    first_token_time = time.time()
                    self.logger.debug(f"[OLLAMA] first token in {int((first_token_time - start_time) * 1000)}ms")

                response_text = data.get("response", "")
                if response_text:
                    yield response_text

                if data.get("done", False):
                    elapsed_ms = int((time.time() - start_time) * 1000)
                    self.logger.debug(
                        f"[OLLAMA] stream completed in {elapsed_ms}ms "
                        f"(prompt_tokens={data.get('prompt_eval_count', 0)}, "
                        f"eval_tokens={data.get('eval_count', 0)})"
                    )
                    break
