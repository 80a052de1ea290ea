"""
Confirmation gate for interpreted decisions.

Decides whether a decision executes now, waits for the user's approval, or is
answered with a clarification. Holds at most one pending decision.

HARD RULES:
- Low-confidence decisions are never stored and never executed
- The pending slot is cleared BEFORE the held decision is handed out for
  execution, so a second confirm finds nothing (no double-run)
- Yes/no detection for spoken or typed replies is regex only, never the model

States:
    IDLE --(conf >= threshold, no confirmation)--> execute, stay IDLE
    IDLE --(conf <  threshold)-------------------> clarify, stay IDLE
    IDLE --(conf >= threshold, needs confirm)----> AWAITING_CONFIRMATION
    AWAITING_CONFIRMATION --confirm--> execute held decision, IDLE
    AWAITING_CONFIRMATION --cancel---> discard, IDLE
"""

import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from cadence.core.config import Config
from cadence.core.intents import IntentDecision
from cadence.core.logger import get_logger

# ============================================================================
# YES/NO PATTERNS (compiled regexes)
# ============================================================================
# Match if the reply STARTS with a confirmation word, so "Yes, do it" and
# "No, don't" both resolve.

YES_PATTERN = re.compile(
    r"^(?:yes|yeah|yep|yup|do\s+it|proceed|confirm|go\s+ahead|sure|ok|okay|absolutely|affirmative)(?:\b|$|[.,!?\s])",
    re.IGNORECASE
)

NO_PATTERN = re.compile(
    r"^(?:no|nope|nah|cancel|stop|don'?t|do\s+not|nevermind|never\s+mind|abort|negative)(?:\b|$|[.,!?\s])",
    re.IGNORECASE
)

PROCEED_PROMPT = "Would you like me to proceed?"


def normalize(text: str) -> str:
    """Lowercase, strip, and collapse whitespace."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.lower().strip())


def is_yes(text: str) -> bool:
    return bool(YES_PATTERN.match(normalize(text)))


def is_no(text: str) -> bool:
    return bool(NO_PATTERN.match(normalize(text)))


class GateState(Enum):
    IDLE = "IDLE"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"


class GateOutcome(Enum):
    EXECUTE = "execute"
    CLARIFY = "clarify"
    AWAIT_CONFIRMATION = "await_confirmation"


@dataclass(frozen=True)
class GateResult:
    """What the runtime should do with an evaluated decision."""
    outcome: GateOutcome
    decision: IntentDecision
    message: str = ""


class ConfirmationGate:
    """
    Single-slot confirmation state machine.

    Args:
        threshold: Minimum confidence for execution or confirmation
        timeout_sec: Seconds a pending decision stays valid; 0 disables expiry
        clock: Time source (overridable for tests)
    """

    def __init__(
        self,
        threshold: Optional[float] = None,
        timeout_sec: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.threshold = Config.CONFIDENCE_THRESHOLD if threshold is None else threshold
        self.timeout_sec = Config.CONFIRMATION_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        self._clock = clock
        self._pending: Optional[IntentDecision] = None
        self._pending_since = 0.0
        self.logger = get_logger()

    @property
    def state(self) -> GateState:
        if self._pending is None:
            return GateState.IDLE
        return GateState.AWAITING_CONFIRMATION

    @property
    def pending(self) -> Optional[IntentDecision]:
        return self._pending

    def is_expired(self) -> bool:
        if self._pending is None or self.timeout_sec <= 0:
            return False
        return self._clock() - self._pending_since > self.timeout_sec

    def expire_if_stale(self) -> bool:
        """
        Drop the pending decision if its confirmation window has passed.

        Returns:
            True if a decision was expired and cleared
        """
        if not self.is_expired():
            return False
        self.logger.info(f"[CONFIRM] expired -> cleared kind={self._pending.kind.value}")
        self._pending = None
        return True

    def evaluate(self, decision: IntentDecision) -> GateResult:
        """
        Route a freshly decoded decision.

        Must be called from IDLE; the runtime discards any pending decision
        first.

        Raises:
            RuntimeError: If a decision is already pending
        """
        if self._pending is not None:
            raise RuntimeError("A decision is already awaiting confirmation")

        if decision.confidence < self.threshold:
            self.logger.info(
                f"[CONFIRM] low confidence {decision.confidence:.2f} < {self.threshold:.2f} -> clarify"
            )
            return GateResult(GateOutcome.CLARIFY, decision, decision.natural_language_response)

        if decision.needs_confirmation:
            self._pending = decision
            self._pending_since = self._clock()
            self.logger.info(f"[CONFIRM] pending set kind={decision.kind.value}")
            message = f"{decision.natural_language_response} {PROCEED_PROMPT}".strip()
            return GateResult(GateOutcome.AWAIT_CONFIRMATION, decision, message)

        return GateResult(GateOutcome.EXECUTE, decision, decision.natural_language_response)

    def confirm(self) -> Optional[IntentDecision]:
        """
        Take the pending decision for execution, clearing the slot first.

        Returns:
            The held decision, or None if nothing is pending (or it expired)
        """
        if self.expire_if_stale() or self._pending is None:
            return None
        decision, self._pending = self._pending, None
        self.logger.info(f"[CONFIRM] confirmed -> executing kind={decision.kind.value}")
        return decision

    def cancel(self) -> Optional[IntentDecision]:
        """Discard the pending decision. Returns it, or None if nothing was pending."""
        if self._pending is None:
            return None
        decision, self._pending = self._pending, None
        self.logger.info(f"[CONFIRM] cancelled kind={decision.kind.value}")
        return decision

    def discard(self) -> Optional[IntentDecision]:
        """Drop the pending decision because newer input superseded it."""
        if self._pending is None:
            return None
        decision, self._pending = self._pending, None
        self.logger.info(f"[CONFIRM] superseded kind={decision.kind.value}")
        return decision
