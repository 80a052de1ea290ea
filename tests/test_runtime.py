"""
Tests for the dispatch runtime.

Covers the full turn (generate -> parse -> gate -> dispatch -> transcript),
the confirmation control surface, superseding input, cancellation of an
in-flight generation, error rendering and observer notifications.

Run with: python -m pytest tests/test_runtime.py -v
"""
import asyncio
import json

import pytest

from cadence.brain.rule_generator import UNKNOWN_REPLY, RuleBasedGenerator
from cadence.core.errors import ExecutionFailed, GenerationError, MissingParameter, PermissionDenied
from cadence.core.intents import IntentKind
from cadence.core.runtime import (
    CANCELLED_MESSAGE,
    EXPIRED_MESSAGE,
    PARSE_FAILED_MESSAGE,
    SUPERSEDED_MESSAGE,
    DispatchRuntime,
)
from cadence.core.state import RuntimePhase
from cadence.core.values import StringValue
from cadence.policy.confirmation import PROCEED_PROMPT, ConfirmationGate
from cadence.tools import build_default_registry

from conftest import RecordingHandler, ScriptedGenerator


def decision_json(intent, parameters=None, confidence=0.95, needs_confirmation=False, reply="OK."):
    return json.dumps({
        "intent": intent,
        "parameters": parameters or {},
        "confidence": confidence,
        "needsConfirmation": needs_confirmation,
        "naturalLanguageResponse": reply,
    })


def texts(runtime):
    return [entry.text for entry in runtime.transcript]


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def flashlight():
    return RecordingHandler("Flashlight is on.")


@pytest.fixture
def messenger():
    return RecordingHandler("Message sent to mom.")


@pytest.fixture
def runtime(flashlight, messenger):
    registry = build_default_registry()
    registry.register(IntentKind.SET_FLASHLIGHT, flashlight)
    registry.register(IntentKind.SEND_MESSAGE, messenger)
    return DispatchRuntime(
        RuleBasedGenerator(),
        registry,
        ConfirmationGate(threshold=0.7, timeout_sec=0),
        history_turns=5,
        max_fragments=512,
        confirm_by_voice=False,
    )


def scripted_runtime(output, handler=None, kind=IntentKind.SET_FLASHLIGHT, **kwargs):
    registry = build_default_registry()
    if handler is not None:
        registry.register(kind, handler)
    return DispatchRuntime(
        ScriptedGenerator([output]),
        registry,
        ConfirmationGate(threshold=0.7, timeout_sec=0),
        **kwargs,
    )


# ============================================================================
# IMMEDIATE EXECUTION
# ============================================================================

class TestImmediateExecution:
    """High-confidence decisions without confirmation run at once."""

    @pytest.mark.asyncio
    async def test_flashlight_turn(self, runtime, flashlight):
        await runtime.submit_input("turn on the flashlight")

        assert len(flashlight.calls) == 1
        assert texts(runtime) == ["turn on the flashlight", "Flashlight is on."]
        user, reply = runtime.transcript
        assert user.is_from_user and user.associated_kind is None
        assert not reply.is_from_user
        assert reply.associated_kind is IntentKind.SET_FLASHLIGHT
        assert runtime.pending is None

    @pytest.mark.asyncio
    async def test_builtin_calculator(self, runtime):
        await runtime.submit_input("what is 2 plus 2")
        assert texts(runtime)[-1] == "2 + 2 = 4"

    @pytest.mark.asyncio
    async def test_builtin_unit_conversion(self, runtime):
        await runtime.submit_input("convert 100 miles to kilometers")
        assert texts(runtime)[-1] == "100 miles = 160.93 kilometers"

    @pytest.mark.asyncio
    async def test_blank_input_ignored(self, runtime):
        await runtime.submit_input("   ")
        assert runtime.transcript == ()

    @pytest.mark.asyncio
    async def test_history_is_sent_to_generator(self, flashlight):
        runtime = scripted_runtime(decision_json("set-flashlight", {"state": "on"}), flashlight)
        await runtime.submit_input("first")
        await runtime.submit_input("second")

        second_request = runtime.generator.requests[1]
        contents = [m["content"] for m in second_request.messages[1:]]
        assert contents == ["first", "Flashlight is on.", "second"]


# ============================================================================
# LOW CONFIDENCE / UNKNOWN
# ============================================================================

class TestClarification:
    """Low-confidence and unknown decisions never reach a handler."""

    @pytest.mark.asyncio
    async def test_low_confidence_appends_clarification_only(self, flashlight):
        output = decision_json("set-flashlight", {"state": "on"}, confidence=0.4, reply="Did you mean the flashlight?")
        runtime = scripted_runtime(output, flashlight)

        await runtime.submit_input("flash thing")

        assert flashlight.calls == []
        assert texts(runtime) == ["flash thing", "Did you mean the flashlight?"]
        assert runtime.pending is None

    @pytest.mark.asyncio
    async def test_low_confidence_with_confirmation_is_not_held(self, messenger):
        output = decision_json("send-message", {"recipient": "mom"}, confidence=0.3,
                               needs_confirmation=True, reply="Who?")
        runtime = scripted_runtime(output, messenger, kind=IntentKind.SEND_MESSAGE)

        await runtime.submit_input("message")
        await runtime.confirm_pending()

        assert messenger.calls == []
        assert runtime.pending is None

    @pytest.mark.asyncio
    async def test_rule_generator_unknown(self, runtime):
        await runtime.submit_input("sing me a song about whales")
        assert texts(runtime)[-1] == UNKNOWN_REPLY

    @pytest.mark.asyncio
    async def test_unrecognized_kind_is_unknown_with_zero_confidence(self, flashlight):
        output = decision_json("launch-rocket", confidence=0.99, reply="Which rocket?")
        runtime = scripted_runtime(output, flashlight)

        await runtime.submit_input("launch")

        assert texts(runtime) == ["launch", "Which rocket?"]
        assert flashlight.calls == []

    @pytest.mark.asyncio
    async def test_confident_unknown_uses_builtin_handler(self):
        runtime = scripted_runtime(decision_json("unknown", confidence=0.9, reply="Hmm."))
        await runtime.submit_input("???")
        last = runtime.transcript[-1]
        assert last.text == "I'm not sure how to help with that. Could you rephrase?"
        assert last.associated_kind is IntentKind.UNKNOWN


# ============================================================================
# CONFIRMATION
# ============================================================================

class TestConfirmation:
    """Decisions needing confirmation run only after confirm_pending()."""

    @pytest.mark.asyncio
    async def test_pending_then_confirm(self, runtime, messenger):
        await runtime.submit_input("text mom saying hello")

        assert messenger.calls == []
        assert runtime.pending is not None
        assert runtime.get_pending().kind is IntentKind.SEND_MESSAGE
        prompt = runtime.transcript[-1]
        assert prompt.text == f"I'll send that message to mom. {PROCEED_PROMPT}"
        assert prompt.requires_confirmation
        assert prompt.associated_kind is IntentKind.SEND_MESSAGE
        assert runtime.state.phase is RuntimePhase.AWAITING_CONFIRMATION

        await runtime.confirm_pending()

        assert len(messenger.calls) == 1
        assert texts(runtime)[-1] == "Message sent to mom."
        assert runtime.pending is None
        assert runtime.state.phase is RuntimePhase.IDLE

    @pytest.mark.asyncio
    async def test_double_confirm_runs_once(self, runtime, messenger):
        await runtime.submit_input("text mom saying hello")
        await runtime.confirm_pending()
        await runtime.confirm_pending()

        assert len(messenger.calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_confirms_run_once(self, runtime, messenger):
        await runtime.submit_input("text mom saying hello")
        await asyncio.gather(runtime.confirm_pending(), runtime.confirm_pending())

        assert len(messenger.calls) == 1

    @pytest.mark.asyncio
    async def test_held_decision_cannot_be_rewritten(self, runtime, messenger):
        await runtime.submit_input("text mom saying hello")

        with pytest.raises(TypeError):
            runtime.get_pending().parameters["recipient"] = StringValue("boss")
        await runtime.confirm_pending()

        assert messenger.calls[0]["recipient"] == StringValue("mom")

    @pytest.mark.asyncio
    async def test_cancel(self, runtime, messenger):
        await runtime.submit_input("text mom saying hello")
        runtime.cancel_pending()
        await runtime.confirm_pending()

        assert messenger.calls == []
        assert texts(runtime)[-1] == CANCELLED_MESSAGE
        assert runtime.pending is None

    @pytest.mark.asyncio
    async def test_cancel_with_nothing_pending_is_silent(self, runtime):
        runtime.cancel_pending()
        assert runtime.transcript == ()

    @pytest.mark.asyncio
    async def test_confirm_with_nothing_pending_is_noop(self, runtime):
        await runtime.confirm_pending()
        assert runtime.transcript == ()

    @pytest.mark.asyncio
    async def test_new_input_supersedes_pending(self, runtime, messenger, flashlight):
        await runtime.submit_input("text mom saying hello")
        await runtime.submit_input("turn on the flashlight")
        await runtime.confirm_pending()

        assert messenger.calls == []
        assert len(flashlight.calls) == 1
        assert texts(runtime)[2:] == [SUPERSEDED_MESSAGE, "turn on the flashlight", "Flashlight is on."]

    @pytest.mark.asyncio
    async def test_yes_is_ordinary_input_by_default(self, runtime, messenger):
        await runtime.submit_input("text mom saying hello")
        await runtime.submit_input("yes")

        assert messenger.calls == []
        assert SUPERSEDED_MESSAGE in texts(runtime)

    @pytest.mark.asyncio
    async def test_confirm_by_voice_yes(self, runtime, messenger):
        runtime.confirm_by_voice = True
        await runtime.submit_input("text mom saying hello")
        await runtime.submit_input("yes, send it")

        assert len(messenger.calls) == 1
        assert texts(runtime)[-2:] == ["yes, send it", "Message sent to mom."]

    @pytest.mark.asyncio
    async def test_confirm_by_voice_no(self, runtime, messenger):
        runtime.confirm_by_voice = True
        await runtime.submit_input("text mom saying hello")
        await runtime.submit_input("no")

        assert messenger.calls == []
        assert texts(runtime)[-2:] == ["no", CANCELLED_MESSAGE]

    @pytest.mark.asyncio
    async def test_expired_pending_cannot_be_confirmed(self, messenger):
        now = [1000.0]
        output = decision_json("send-message", {"recipient": "mom", "body": "hi"},
                               needs_confirmation=True, reply="Send it?")
        runtime = DispatchRuntime(
            ScriptedGenerator([output]),
            gate=ConfirmationGate(threshold=0.7, timeout_sec=30, clock=lambda: now[0]),
        )
        runtime.registry.register(IntentKind.SEND_MESSAGE, messenger)

        await runtime.submit_input("message mom")
        now[0] += 31
        await runtime.confirm_pending()

        assert messenger.calls == []
        assert texts(runtime)[-1] == EXPIRED_MESSAGE
        assert runtime.pending is None


# ============================================================================
# ERRORS
# ============================================================================

class TestErrors:
    """Every failure ends as an "Error: " entry and the runtime stays usable."""

    @pytest.mark.asyncio
    async def test_malformed_output(self, flashlight):
        runtime = scripted_runtime("I am not JSON at all", flashlight)
        await runtime.submit_input("turn on the flashlight")

        assert flashlight.calls == []
        assert texts(runtime) == ["turn on the flashlight", PARSE_FAILED_MESSAGE]
        assert runtime.state.phase is RuntimePhase.IDLE

    @pytest.mark.asyncio
    async def test_generation_failure(self, flashlight):
        class Offline(ScriptedGenerator):
            async def stream(self, request, cancel):
                raise GenerationError("Cannot reach Ollama")
                yield ""

        runtime = DispatchRuntime(Offline([]))
        await runtime.submit_input("hello")

        last = runtime.transcript[-1].text
        assert last.startswith("Error: Failed to generate response.")
        assert "Cannot reach Ollama" in last
        assert runtime.state.phase is RuntimePhase.IDLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,message", [
        (MissingParameter("state"), "Error: Missing required parameter: state"),
        (PermissionDenied("Camera access denied"), "Error: Camera access denied"),
        (ExecutionFailed("Torch unavailable"), "Error: Torch unavailable"),
        (RuntimeError("driver crashed"), "Error: Execution failed: driver crashed"),
    ])
    async def test_handler_failures(self, error, message):
        handler = RecordingHandler(error=error)
        runtime = scripted_runtime(decision_json("set-flashlight", {"state": "on"}), handler)

        await runtime.submit_input("turn on the flashlight")

        assert len(handler.calls) == 1
        entry = runtime.transcript[-1]
        assert entry.text == message
        assert entry.associated_kind is IntentKind.SET_FLASHLIGHT
        assert runtime.state.phase is RuntimePhase.IDLE

    @pytest.mark.asyncio
    async def test_missing_handler(self):
        runtime = scripted_runtime(decision_json("set-wifi", {"state": "on"}))
        await runtime.submit_input("wifi on")
        assert runtime.transcript[-1].text == "Error: No capability is available for set-wifi"

    @pytest.mark.asyncio
    async def test_failure_is_not_retried(self):
        handler = RecordingHandler(error=ExecutionFailed("busy"))
        runtime = scripted_runtime(decision_json("set-flashlight", {"state": "on"}), handler)
        await runtime.submit_input("turn on the flashlight")
        assert len(handler.calls) == 1


# ============================================================================
# CANCELLATION
# ============================================================================

class TestCancellation:
    """A cancelled generation never appends to the transcript."""

    @pytest.mark.asyncio
    async def test_cancel_in_flight_generation(self, flashlight):
        output = decision_json("set-flashlight", {"state": "on"})
        generator = ScriptedGenerator(list(output), delay=0.01)
        runtime = DispatchRuntime(generator)
        runtime.registry.register(IntentKind.SET_FLASHLIGHT, flashlight)

        turn = asyncio.ensure_future(runtime.submit_input("turn on the flashlight"))
        await asyncio.sleep(0.05)
        assert runtime.generation_in_flight
        assert runtime.state.phase is RuntimePhase.THINKING

        assert runtime.cancel_generation()
        await turn

        assert texts(runtime) == ["turn on the flashlight"]
        assert flashlight.calls == []
        assert generator.closed
        assert runtime.state.phase is RuntimePhase.IDLE
        assert not runtime.generation_in_flight

    @pytest.mark.asyncio
    async def test_cancel_without_generation(self, runtime):
        assert runtime.cancel_generation() is False

    @pytest.mark.asyncio
    async def test_new_input_cancels_prior_generation(self, flashlight):
        runtime = DispatchRuntime(RuleBasedGenerator(fragment_delay=0.01))
        runtime.registry.register(IntentKind.SET_FLASHLIGHT, flashlight)

        first = asyncio.ensure_future(runtime.submit_input("turn on the flashlight"))
        await asyncio.sleep(0.03)
        await runtime.submit_input("turn off the flashlight")
        await first

        assert len(flashlight.calls) == 1
        assert texts(runtime) == [
            "turn on the flashlight",
            "turn off the flashlight",
            "Flashlight is on.",
        ]
        assert flashlight.calls[0]["state"].value == "off"

    @pytest.mark.asyncio
    async def test_queued_turn_superseded_by_newer_input(self, flashlight):
        wifi = RecordingHandler("Wifi on.")
        bluetooth = RecordingHandler("Bluetooth on.")
        runtime = DispatchRuntime(RuleBasedGenerator(fragment_delay=0.01))
        runtime.registry.register(IntentKind.SET_FLASHLIGHT, flashlight)
        runtime.registry.register(IntentKind.SET_WIFI, wifi)
        runtime.registry.register(IntentKind.SET_BLUETOOTH, bluetooth)

        first = asyncio.ensure_future(runtime.submit_input("turn on the flashlight"))
        await asyncio.sleep(0.03)
        second = asyncio.ensure_future(runtime.submit_input("turn on wifi"))
        third = asyncio.ensure_future(runtime.submit_input("turn on bluetooth"))
        await asyncio.gather(first, second, third)

        assert (len(flashlight.calls), len(wifi.calls), len(bluetooth.calls)) == (0, 0, 1)
        assert texts(runtime) == ["turn on the flashlight", "turn on bluetooth", "Bluetooth on."]
        assert runtime.state.phase is RuntimePhase.IDLE


# ============================================================================
# TRANSCRIPT AND OBSERVERS
# ============================================================================

class TestObservers:
    """State publication to external presentation layers."""

    @pytest.mark.asyncio
    async def test_events(self, runtime):
        events = []
        runtime.subscribe(lambda event, payload: events.append((event, payload)))

        await runtime.submit_input("turn on the flashlight")

        names = [event for event, _ in events]
        assert names.count("transcript") == 2
        phases = [payload["phase"] for event, payload in events if event == "state"]
        assert phases == ["THINKING", "EXECUTING", "IDLE"]

    @pytest.mark.asyncio
    async def test_pending_events(self, runtime):
        pending = []
        runtime.subscribe(lambda event, payload: pending.append(payload) if event == "pending" else None)

        await runtime.submit_input("text mom saying hello")
        runtime.cancel_pending()

        assert pending[0].kind is IntentKind.SEND_MESSAGE
        assert pending[-1] is None

    @pytest.mark.asyncio
    async def test_unsubscribe(self, runtime):
        events = []
        unsubscribe = runtime.subscribe(lambda event, payload: events.append(event))
        unsubscribe()
        unsubscribe()

        await runtime.submit_input("turn on the flashlight")
        assert events == []

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_turn(self, runtime, flashlight):
        def broken(event, payload):
            raise RuntimeError("ui gone")

        runtime.subscribe(broken)
        await runtime.submit_input("turn on the flashlight")

        assert len(flashlight.calls) == 1
        assert texts(runtime)[-1] == "Flashlight is on."

    @pytest.mark.asyncio
    async def test_clear_transcript(self, runtime):
        events = []
        runtime.subscribe(lambda event, payload: events.append((event, payload)))
        await runtime.submit_input("turn on the flashlight")

        runtime.clear_transcript()

        assert runtime.get_transcript() == ()
        assert events[-1] == ("transcript", None)

    @pytest.mark.asyncio
    async def test_transcript_snapshot_is_immutable(self, runtime):
        await runtime.submit_input("turn on the flashlight")
        snapshot = runtime.transcript
        await runtime.submit_input("what is 2 plus 2")

        assert len(snapshot) == 2
        assert len(runtime.transcript) == 4
