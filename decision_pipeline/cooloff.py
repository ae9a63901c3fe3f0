"""
Decision Pipeline - Cooloff Tracker.

============================================================
PURPOSE
============================================================
Enforce a minimum interval between two auto-applied actions
on the same (subject, action_type).

A subject is "in window" when any record for it has
applied_at within the last ``hours``. Windows expire
logically at query time; nothing is deleted.

try_acquire() is the gate used for auto-apply: the check and
the record happen in one store transaction, so at most one of
several concurrent callers wins a given window. A window of
zero hours or less disables the gate.

============================================================
"""

from typing import Optional
import logging

from .repository import DecisionStore


logger = logging.getLogger(__name__)


class CooloffTracker:
    """Cooloff window view over a DecisionStore."""

    def __init__(self, store: DecisionStore, default_hours: int = 24):
        self._store = store
        self.default_hours = default_hours

    def _hours(self, hours: Optional[int]) -> int:
        return self.default_hours if hours is None else hours

    def in_window(self, subject: str, action_type: str, hours: Optional[int] = None) -> bool:
        """True if the subject was applied within the window."""
        return self._store.cooloff_in_window(subject, action_type, self._hours(hours))

    def record(self, proposal_id: Optional[int], subject: str, action_type: str) -> None:
        """Append an apply record without checking the window first."""
        self._store.cooloff_record(proposal_id, subject, action_type)
        logger.info(f"Cooloff started for {action_type}:{subject} (proposal {proposal_id})")

    def try_acquire(
        self,
        proposal_id: Optional[int],
        subject: str,
        action_type: str,
        hours: Optional[int] = None,
    ) -> bool:
        """
        Atomically check the window and record an apply.

        Returns:
            True if this caller acquired the window, False if the
            subject is already cooling off
        """
        acquired = self._store.cooloff_try_acquire(proposal_id, subject, action_type, self._hours(hours))
        if acquired:
            logger.info(f"Cooloff acquired for {action_type}:{subject} (proposal {proposal_id})")
        else:
            logger.info(f"Cooloff active for {action_type}:{subject}, auto-apply skipped")
        return acquired
