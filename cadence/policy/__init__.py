"""cadence.policy

Confirmation policy for decoded intent decisions.

HARD RULES:
- All decisions are deterministic (no model involvement)
- At most one decision is pending at a time
"""
from cadence.policy.confirmation import (
    ConfirmationGate,
    GateOutcome,
    GateResult,
    GateState,
    is_no,
    is_yes,
)

__all__ = [
    "ConfirmationGate",
    "GateOutcome",
    "GateResult",
    "GateState",
    "is_no",
    "is_yes",
]
