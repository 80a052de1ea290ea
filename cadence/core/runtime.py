"""
Dispatch runtime: orchestrates one command turn end to end.

Flow per turn:
    input -> transcript -> text generator (cancellable) -> response parser
          -> confirmation gate -> capability registry -> transcript

HARD RULES:
- Only the runtime appends to the transcript and writes the gate's pending slot
- New input cancels any in-flight generation before its own generation starts
  and supersedes turns still queued behind it; a cancelled or superseded turn
  never appends an assistant entry
- Generation, parse and capability failures end as an "Error: " transcript
  entry; nothing is retried and the runtime always returns to IDLE
- Capability handlers run one at a time

Usage:
    from cadence.brain.rule_generator import RuleBasedGenerator
    from cadence.core.runtime import DispatchRuntime
    from cadence.tools import build_default_registry

    runtime = DispatchRuntime(RuleBasedGenerator(), build_default_registry())
    await runtime.submit_input("what is 2 plus 2")
    print(runtime.transcript[-1].text)
"""
import asyncio
from typing import Any, Callable, List, Optional, Tuple

from cadence.brain.generator import CancellationToken, TextGenerator
from cadence.brain.prompt import build_request
from cadence.core.config import Config
from cadence.core.errors import (
    CapabilityError,
    GenerationCancelled,
    GenerationError,
    ParseError,
)
from cadence.core.intents import IntentDecision, IntentKind, validate_parameters
from cadence.core.logger import get_logger
from cadence.core.response_parser import parse_decision
from cadence.core.state import RuntimePhase, RuntimeState
from cadence.core.transcript import Transcript, TranscriptEntry
from cadence.policy.confirmation import ConfirmationGate, GateOutcome, is_no, is_yes
from cadence.tools.registry import UNKNOWN_INTENT_MESSAGE, CapabilityRegistry

Observer = Callable[[str, Any], None]

CANCELLED_MESSAGE = "Action cancelled."
SUPERSEDED_MESSAGE = "Previous request discarded."
EXPIRED_MESSAGE = "The pending request expired."
GENERATION_FAILED_MESSAGE = "Error: Failed to generate response."
PARSE_FAILED_MESSAGE = "Error: Failed to parse model response."


class DispatchRuntime:
    """
    Root of the command pipeline.

    Args:
        generator: Text generator backend (rule-based or streaming model)
        registry: Capability handlers; an empty registry if omitted
        gate: Confirmation gate; built from Config if omitted
        history_turns: Transcript entries included in the prompt
        max_fragments: Fragment limit per generation
        confirm_by_voice: Treat yes/no input as confirm/cancel while a
            decision is pending
    """

    def __init__(
        self,
        generator: TextGenerator,
        registry: Optional[CapabilityRegistry] = None,
        gate: Optional[ConfirmationGate] = None,
        *,
        history_turns: Optional[int] = None,
        max_fragments: Optional[int] = None,
        confirm_by_voice: Optional[bool] = None,
    ):
        self.logger = get_logger()
        self.generator = generator
        self.registry = registry if registry is not None else CapabilityRegistry()
        self.gate = gate if gate is not None else ConfirmationGate()
        self.history_turns = Config.HISTORY_TURNS if history_turns is None else history_turns
        self.max_fragments = Config.MAX_FRAGMENTS if max_fragments is None else max_fragments
        self.confirm_by_voice = Config.CONFIRM_BY_VOICE if confirm_by_voice is None else confirm_by_voice

        self.state = RuntimeState()
        self._transcript = Transcript()
        self._observers: List[Observer] = []

        # Serializes turns and handler execution
        self._lock = asyncio.Lock()
        self._generation_token: Optional[CancellationToken] = None
        self._generation_task: Optional[asyncio.Task] = None
        # Latest submitted turn; queued older turns are superseded
        self._turn_seq = 0

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def transcript(self) -> Tuple[TranscriptEntry, ...]:
        return self._transcript.entries()

    def get_transcript(self) -> Tuple[TranscriptEntry, ...]:
        return self._transcript.entries()

    @property
    def pending(self) -> Optional[IntentDecision]:
        return self.gate.pending

    def get_pending(self) -> Optional[IntentDecision]:
        return self.gate.pending

    @property
    def generation_in_flight(self) -> bool:
        return self._generation_task is not None and not self._generation_task.done()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register an observer called with (event, payload).

        Events:
            "transcript": the appended TranscriptEntry, or None when cleared
            "state": RuntimeState.snapshot() dict
            "pending": the pending IntentDecision, or None

        Returns:
            Callable that removes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, event: str, payload: Any) -> None:
        for observer in list(self._observers):
            try:
                observer(event, payload)
            except Exception as e:
                self.logger.error(f"[DISPATCH] observer failed on {event}: {e}")

    def _set_phase(self, phase: RuntimePhase, kind: Optional[IntentKind] = None) -> None:
        self.state.transition_to(phase, kind)
        self.logger.debug(f"[STATE] -> {phase.value}")
        self._notify("state", self.state.snapshot())

    def _settle_phase(self) -> None:
        """Return to IDLE, or to AWAITING_CONFIRMATION if a decision is held."""
        pending = self.gate.pending
        if pending is not None:
            self._set_phase(RuntimePhase.AWAITING_CONFIRMATION, pending.kind)
        else:
            self._set_phase(RuntimePhase.IDLE)

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    def _append(
        self,
        text: str,
        is_from_user: bool = False,
        kind: Optional[IntentKind] = None,
        requires_confirmation: bool = False,
    ) -> TranscriptEntry:
        entry = self._transcript.append(TranscriptEntry(
            text=text,
            is_from_user=is_from_user,
            associated_kind=kind,
            requires_confirmation=requires_confirmation,
        ))
        self._notify("transcript", entry)
        return entry

    def clear_transcript(self) -> None:
        self._transcript.clear()
        self.logger.debug("[DISPATCH] transcript cleared")
        self._notify("transcript", None)

    def _expire_stale_pending(self) -> None:
        if self.gate.expire_if_stale():
            self._append(EXPIRED_MESSAGE)
            self._notify("pending", None)
            self._settle_phase()

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel_generation(self) -> bool:
        """
        Cancel the in-flight generation, if any. Safe to call at any time.

        Returns:
            True if a running generation was cancelled
        """
        token, task = self._generation_token, self._generation_task
        if token is None or task is None or task.done():
            return False
        token.cancel()
        task.cancel()
        self.logger.info("[DISPATCH] in-flight generation cancelled")
        return True

    async def _generate(self, user_text: str, history: Tuple[TranscriptEntry, ...]) -> Optional[str]:
        """
        Run one generation as a task so it can be cancelled from outside.

        Returns:
            Generated text, or None if the generation was cancelled

        Raises:
            GenerationError: If the backend failed
        """
        request = build_request(user_text, history, history_turns=self.history_turns)
        token = CancellationToken()
        task = asyncio.ensure_future(
            self.generator.generate(request, token, max_fragments=self.max_fragments)
        )
        self._generation_token, self._generation_task = token, task

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            token.cancel()
            task.cancel()
            raise
        finally:
            if self._generation_task is task:
                self._generation_token, self._generation_task = None, None

        if token.cancelled or task.cancelled():
            return None
        try:
            return task.result()
        except GenerationCancelled:
            return None

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def submit_input(self, text: str) -> None:
        """
        Process one user turn.

        Returns when the turn settles, or early when newer input supersedes
        its generation.
        """
        text = (text or "").strip()
        if not text:
            return

        self._turn_seq += 1
        seq = self._turn_seq
        self.cancel_generation()
        self._expire_stale_pending()

        if self.confirm_by_voice and self.gate.pending is not None:
            if is_yes(text):
                self._append(text, is_from_user=True)
                await self.confirm_pending()
                return
            if is_no(text):
                self._append(text, is_from_user=True)
                self.cancel_pending()
                return

        async with self._lock:
            if seq != self._turn_seq:
                self.logger.debug("[DISPATCH] queued turn superseded; nothing appended")
                return

            if self.gate.discard() is not None:
                self._append(SUPERSEDED_MESSAGE)
                self._notify("pending", None)

            history = self._transcript.entries()
            self._append(text, is_from_user=True)
            self._set_phase(RuntimePhase.THINKING)
            try:
                await self._run_turn(text, history, seq)
            finally:
                self._settle_phase()

    async def _run_turn(self, text: str, history: Tuple[TranscriptEntry, ...], seq: int) -> None:
        try:
            output = await self._generate(text, history)
        except GenerationError as e:
            self.logger.error(f"[DISPATCH] generation failed: {e}")
            self._append(f"{GENERATION_FAILED_MESSAGE} {e}")
            return

        if output is None or seq != self._turn_seq:
            self.logger.debug("[DISPATCH] turn superseded; nothing appended")
            return

        decision = self._decode(output)
        if decision is None:
            self._append(PARSE_FAILED_MESSAGE)
            return

        issues = validate_parameters(decision.kind, decision.parameters)
        if issues:
            self.logger.warning(f"[DISPATCH] {decision.kind.value} parameters: {'; '.join(issues)}")

        result = self.gate.evaluate(decision)
        if result.outcome is GateOutcome.CLARIFY:
            self._append(result.message)
        elif result.outcome is GateOutcome.AWAIT_CONFIRMATION:
            self._append(result.message, kind=decision.kind, requires_confirmation=True)
            self._notify("pending", decision)
        else:
            await self._execute(decision)

    def _decode(self, output: str) -> Optional[IntentDecision]:
        """Parse generator output; an unrecognized kind becomes unknown at confidence 0."""
        try:
            decision = parse_decision(output)
        except ParseError as e:
            if e.unrecognized_kind:
                self.logger.warning(f"[DISPATCH] unrecognized intent {e.raw_kind!r} -> unknown")
                return IntentDecision.unknown(e.response_text or UNKNOWN_INTENT_MESSAGE)
            self.logger.error(f"[DISPATCH] parse failed: {e}")
            return None
        self.logger.info(
            f"[DISPATCH] decision kind={decision.kind.value} "
            f"confidence={decision.confidence:.2f} confirm={decision.needs_confirmation}"
        )
        return decision

    async def _execute(self, decision: IntentDecision) -> None:
        """Invoke the capability for a decision and record the outcome. No retries."""
        self._set_phase(RuntimePhase.EXECUTING, decision.kind)
        try:
            result = await self.registry.invoke(decision.kind, decision.parameters)
        except CapabilityError as e:
            self.logger.warning(f"[DISPATCH] {decision.kind.value} failed: {e.user_message}")
            self._append(f"Error: {e.user_message}", kind=decision.kind)
            return
        except Exception as e:
            self.logger.error(f"[DISPATCH] {decision.kind.value} raised: {e}")
            self._append(f"Error: Execution failed: {e}", kind=decision.kind)
            return

        if not result.success:
            self.logger.info(f"[DISPATCH] {decision.kind.value} unsuccessful: {result.message}")
        self._append(result.message, kind=decision.kind)

    async def confirm_pending(self) -> None:
        """Execute the pending decision. A no-op when nothing is pending."""
        self._expire_stale_pending()
        decision = self.gate.confirm()
        if decision is None:
            return
        self._notify("pending", None)
        async with self._lock:
            try:
                await self._execute(decision)
            finally:
                self._settle_phase()

    def cancel_pending(self) -> None:
        """Discard the pending decision and note it in the transcript."""
        self._expire_stale_pending()
        decision = self.gate.cancel()
        if decision is None:
            return
        self._append(CANCELLED_MESSAGE, kind=decision.kind)
        self._notify("pending", None)
        self._settle_phase()
