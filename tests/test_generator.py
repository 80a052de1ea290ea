"""
Tests for the text generator contract shared by every backend.

Run with: python -m pytest tests/test_generator.py -v
"""
import asyncio
import threading

import pytest

from cadence.brain.generator import CancellationToken, TextGenerator
from cadence.brain.ollama_generator import OllamaGenerator
from cadence.brain.prompt import build_request
from cadence.core.errors import GenerationCancelled, GenerationError

from conftest import ScriptedGenerator


@pytest.fixture
def request_():
    return build_request("turn on the flashlight")


# ============================================================================
# CANCELLATION TOKEN
# ============================================================================

class TestCancellationToken:
    """Tests for the one-shot cancellation flag."""

    def test_starts_uncancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_once(self):
        token = CancellationToken()
        assert token.cancel() is True
        assert token.cancel() is False
        assert token.cancelled

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(GenerationCancelled):
            token.raise_if_cancelled()

    def test_callbacks_run_once(self):
        token = CancellationToken()
        calls = []
        token.on_cancel(lambda: calls.append("a"))
        token.cancel()
        token.cancel()
        assert calls == ["a"]

    def test_late_callback_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.on_cancel(lambda: calls.append("late"))
        assert calls == ["late"]

    def test_failing_callback_does_not_block_others(self):
        token = CancellationToken()
        calls = []

        def boom():
            raise RuntimeError("boom")

        token.on_cancel(boom)
        token.on_cancel(lambda: calls.append("ok"))
        token.cancel()
        assert calls == ["ok"]

    def test_cancel_from_other_thread(self):
        token = CancellationToken()
        worker = threading.Thread(target=token.cancel)
        worker.start()
        worker.join()
        assert token.cancelled


# ============================================================================
# GENERATE
# ============================================================================

class TestGenerate:
    """Tests for fragment limits, end markers and cancellation."""

    @pytest.mark.asyncio
    async def test_joins_and_strips(self, request_):
        generator = ScriptedGenerator(["  {", '"a"', ": 1}  "])
        assert await generator.generate(request_) == '{"a": 1}'
        assert generator.closed

    @pytest.mark.asyncio
    async def test_stops_at_end_marker(self, request_):
        generator = ScriptedGenerator(["{}", " tail<|end|>ignored", "never"])
        assert await generator.generate(request_) == "{} tail"
        assert generator.closed

    @pytest.mark.asyncio
    async def test_stops_at_endoftext_marker(self, request_):
        generator = ScriptedGenerator(["ok<|endoftext|>", "more"])
        assert await generator.generate(request_) == "ok"

    @pytest.mark.asyncio
    async def test_fragment_limit(self, request_):
        generator = ScriptedGenerator(["a", "b", "c", "d"])
        assert await generator.generate(request_, max_fragments=2) == "ab"
        assert generator.closed

    @pytest.mark.asyncio
    async def test_empty_fragments_count_toward_limit(self, request_):
        generator = ScriptedGenerator(["a", "", "", "b"])
        assert await generator.generate(request_, max_fragments=3) == "a"
        assert generator.closed

    @pytest.mark.asyncio
    async def test_pre_cancelled_token(self, request_):
        generator = ScriptedGenerator(["a"])
        token = CancellationToken()
        token.cancel()
        with pytest.raises(GenerationCancelled):
            await generator.generate(request_, token)
        assert generator.requests == []

    @pytest.mark.asyncio
    async def test_cancel_mid_stream_closes_backend(self, request_):
        generator = ScriptedGenerator(["a", "b", "c"], delay=0.05)
        token = CancellationToken()

        async def cancel_soon():
            await asyncio.sleep(0.07)
            token.cancel()

        canceller = asyncio.ensure_future(cancel_soon())
        with pytest.raises(GenerationCancelled):
            await generator.generate(request_, token)
        await canceller
        assert generator.closed

    @pytest.mark.asyncio
    async def test_backend_exception_wrapped(self, request_):
        class Broken(TextGenerator):
            name = "broken"

            async def stream(self, request, cancel):
                yield "{"
                raise RuntimeError("socket closed")

        with pytest.raises(GenerationError) as exc:
            await Broken().generate(request_)
        assert "socket closed" in str(exc.value)

    @pytest.mark.asyncio
    async def test_generation_error_passes_through(self, request_):
        class Offline(TextGenerator):
            async def stream(self, request, cancel):
                raise GenerationError("backend offline")
                yield ""

        with pytest.raises(GenerationError, match="backend offline"):
            await Offline().generate(request_)


# ============================================================================
# OLLAMA GENERATOR (fake client, no network)
# ============================================================================

class FakeClient:
    base_url = "http://fake:11434"

    def __init__(self, chunks=(), error=None, block=None):
        self.chunks = list(chunks)
        self.error = error
        self.block = block
        self.prompts = []
        self.stopped_early = False

    def ping(self):
        return True

    def generate(self, prompt, model, options=None):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return "".join(self.chunks)

    def generate_stream(self, prompt, model, options=None, cancel_check=None):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        for chunk in self.chunks:
            if cancel_check and cancel_check():
                self.stopped_early = True
                return
            yield chunk
        if self.block is not None:
            # Simulates a stalled stream; wait until the consumer stops us
            while not (cancel_check and cancel_check()):
                self.block.wait(0.01)
            self.stopped_early = True


class TestOllamaGenerator:
    """Tests for the worker-thread adapter over the blocking client."""

    @pytest.mark.asyncio
    async def test_streams_chunks(self, request_):
        client = FakeClient(['{"intent":', ' "unknown"}'])
        generator = OllamaGenerator(client=client, model="test", stream=True)

        assert await generator.generate(request_) == '{"intent": "unknown"}'
        assert client.prompts[0].endswith("<|assistant|>\n")

    @pytest.mark.asyncio
    async def test_non_streaming_mode(self, request_):
        client = FakeClient(["{}"])
        generator = OllamaGenerator(client=client, model="test", stream=False)

        assert await generator.generate(request_) == "{}"

    @pytest.mark.asyncio
    async def test_connection_error_becomes_generation_error(self, request_):
        client = FakeClient(error=ConnectionError("Cannot reach Ollama"))
        generator = OllamaGenerator(client=client, model="test")

        with pytest.raises(GenerationError, match="Cannot reach Ollama"):
            await generator.generate(request_)

    @pytest.mark.asyncio
    async def test_model_missing_becomes_generation_error(self, request_):
        client = FakeClient(error=ValueError("Model 'x' not found"))
        generator = OllamaGenerator(client=client, model="x")

        with pytest.raises(GenerationError, match="not found"):
            await generator.generate(request_)

    @pytest.mark.asyncio
    async def test_cancel_unblocks_stalled_stream(self, request_):
        client = FakeClient(["{"], block=threading.Event())
        generator = OllamaGenerator(client=client, model="test", stream=True)
        token = CancellationToken()

        async def cancel_soon():
            await asyncio.sleep(0.05)
            token.cancel()

        canceller = asyncio.ensure_future(cancel_soon())
        with pytest.raises(GenerationCancelled):
            await asyncio.wait_for(generator.generate(request_, token), timeout=2)
        await canceller

        for _ in range(100):
            if client.stopped_early:
                break
            await asyncio.sleep(0.01)
        assert client.stopped_early

    @pytest.mark.asyncio
    async def test_fragment_limit_stops_worker(self, request_):
        client = FakeClient(["x"] * 10, block=threading.Event())
        generator = OllamaGenerator(client=client, model="test", stream=True)

        assert await generator.generate(request_, max_fragments=3) == "xxx"
