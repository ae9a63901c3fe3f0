"""
Stock Transfers - Transfer Order State Machine.

============================================================
PURPOSE
============================================================
Transfer order lifecycle with strict state transitions.

STATE MACHINE:

    PROPOSED ──► APPROVED ──► COMMITTED ──► IN_TRANSIT ──► RECEIVED
       │            │             │              │
       └────────────┴─────────────┴──────────────┴──► CANCELLED

INVARIANTS:
- RECEIVED and CANCELLED are terminal
- Same-state transition is a no-op
- All transitions are logged

============================================================
"""

from typing import Dict, Set, Tuple
import logging

from core.exceptions import InvalidTransitionError

from .types import TransferStatus


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[TransferStatus, Set[TransferStatus]] = {
    TransferStatus.PROPOSED: {
        TransferStatus.APPROVED,
        TransferStatus.CANCELLED,
    },
    TransferStatus.APPROVED: {
        TransferStatus.COMMITTED,
        TransferStatus.CANCELLED,
    },
    TransferStatus.COMMITTED: {
        TransferStatus.IN_TRANSIT,
        TransferStatus.CANCELLED,
    },
    TransferStatus.IN_TRANSIT: {
        TransferStatus.RECEIVED,
        TransferStatus.CANCELLED,
    },
    # Terminal states - no transitions out
    TransferStatus.RECEIVED: set(),
    TransferStatus.CANCELLED: set(),
}


# ============================================================
# STATE TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """
    Guard for state transitions.

    Ensures transitions are valid and provides reason for denial.
    """

    @staticmethod
    def can_transition(
        from_state: TransferStatus,
        to_state: TransferStatus,
    ) -> Tuple[bool, str]:
        """
        Check if transition is allowed.

        Returns:
            Tuple of (allowed, reason)
        """
        if from_state == to_state:
            return True, "Same state"

        if to_state in VALID_TRANSITIONS.get(from_state, set()):
            return True, "Valid transition"

        if from_state.is_terminal():
            return False, f"Cannot transition from terminal state {from_state.value}"

        return False, f"Invalid transition: {from_state.value} -> {to_state.value}"

    @classmethod
    def require(cls, from_state: TransferStatus, to_state: TransferStatus) -> None:
        """
        Raise unless the transition is allowed.

        Raises:
            InvalidTransitionError
        """
        allowed, reason = cls.can_transition(from_state, to_state)
        if not allowed:
            logger.warning(f"Rejected transfer transition: {reason}")
            raise InvalidTransitionError(reason, from_state=from_state.value, to_state=to_state.value)

        if from_state != to_state:
            logger.info(f"Transfer transition: {from_state.value} -> {to_state.value}")
