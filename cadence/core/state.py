"""
State management for the dispatch runtime.
Defines the runtime phases and the observable state record.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from cadence.core.intents import IntentKind


class RuntimePhase(Enum):
    """Runtime phases"""
    IDLE = "IDLE"
    THINKING = "THINKING"
    EXECUTING = "EXECUTING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"


@dataclass
class RuntimeState:
    """Runtime state tracking, published to observers"""
    phase: RuntimePhase = RuntimePhase.IDLE
    current_kind: Optional[IntentKind] = None
    last_phase_change: float = field(default_factory=time.time)

    @property
    def is_processing(self) -> bool:
        return self.phase in (RuntimePhase.THINKING, RuntimePhase.EXECUTING)

    def transition_to(self, new_phase: RuntimePhase, kind: Optional[IntentKind] = None) -> None:
        """Transition to a new phase"""
        self.phase = new_phase
        self.last_phase_change = time.time()
        # Only EXECUTING and AWAITING_CONFIRMATION are tied to a decision
        if new_phase in (RuntimePhase.IDLE, RuntimePhase.THINKING):
            self.current_kind = None
        else:
            self.current_kind = kind

    def is_in_phase(self, phase: RuntimePhase) -> bool:
        return self.phase == phase

    def get_time_in_current_phase(self) -> float:
        """Seconds spent in the current phase"""
        return time.time() - self.last_phase_change

    def snapshot(self) -> dict:
        return {
            "phase": self.phase.value,
            "current_kind": self.current_kind.value if self.current_kind else None,
            "is_processing": self.is_processing,
        }
