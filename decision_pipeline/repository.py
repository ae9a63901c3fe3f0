"""
Decision Pipeline - Repository.

============================================================
PURPOSE
============================================================
Persistence boundary of the decision pipeline.

DecisionStore          abstract contract used by the pipeline
SqlDecisionRepository  SQLAlchemy implementation

============================================================
TRANSACTIONS
============================================================
Every call runs in its own transaction unless it is made
inside ``atomic()``, in which case all calls share one session
and commit (or roll back) together.

    with store.atomic():
        proposal_id = store.insert_proposal(...)
        store.insert_guardrail_trace_batch(proposal_id, run_id, entries)

Database failures surface as PersistenceError.

============================================================
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Generator, Iterable, List, Mapping, Optional
import logging
import threading

from sqlalchemy import select, update, and_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from core.clock import ClockProtocol, get_clock
from database.engine import transaction_scope

from .models import (
    ActionAuditRecord,
    CooloffRecordRow,
    DriftMetricRecord,
    GuardrailTraceRecord,
    ProposalRecord,
)
from .types import GuardrailTraceEntry


logger = logging.getLogger(__name__)


# ============================================================
# CONTRACT
# ============================================================

class DecisionStore(ABC):
    """Storage contract consumed by the orchestrator, cooloff tracker and drift monitor."""

    @abstractmethod
    def insert_proposal(
        self,
        type: str,
        band: str,
        score: Optional[float],
        features: Mapping[str, float],
        blocked_by: Optional[str],
        context_hash: str,
        run_id: str,
        sku: str,
    ) -> int:
        """Insert a proposal and return its id."""

    @abstractmethod
    def insert_guardrail_trace_batch(
        self,
        proposal_id: Optional[int],
        run_id: str,
        entries: Iterable[GuardrailTraceEntry],
    ) -> int:
        """Insert trace rows in sequence order. Returns the row count."""

    @abstractmethod
    def cooloff_in_window(self, subject: str, action_type: str, hours: int) -> bool:
        """True if the subject was applied within the last ``hours``."""

    @abstractmethod
    def cooloff_record(self, proposal_id: Optional[int], subject: str, action_type: str) -> int:
        """Append an apply record unconditionally. Returns the row id."""

    @abstractmethod
    def cooloff_try_acquire(self, proposal_id: Optional[int], subject: str, action_type: str, hours: int) -> bool:
        """Check-and-record in one transaction. True only for the winner.

        hours <= 0 disables the window: the apply is recorded and True returned.
        """

    @abstractmethod
    def audit_record(
        self,
        proposal_id: Optional[int],
        subject: str,
        action_type: str,
        effect: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Append an audit row and return its id."""

    @abstractmethod
    def drift_metrics_insert(self, feature_set: str, psi: float, status: str, buckets: List[Dict[str, Any]]) -> int:
        """Insert a drift measurement and return its id."""

    @abstractmethod
    def mark_proposal_status(self, proposal_id: int, status: str) -> bool:
        """Update the downstream status field of a proposal."""

    @contextmanager
    def atomic(self) -> Generator[None, None, None]:
        """Group calls into one transaction. Default: no grouping."""
        yield


# ============================================================
# SQLALCHEMY IMPLEMENTATION
# ============================================================

def _text(value: Any) -> str:
    """Plain string for enum members and strings alike."""
    return str(getattr(value, "value", value))


def window_bucket(epoch_seconds: float, hours: int) -> int:
    """Index of the cooloff window containing ``epoch_seconds``."""
    window_seconds = max(int(hours) * 3600, 1)
    return int(epoch_seconds // window_seconds)


class SqlDecisionRepository(DecisionStore):
    """
    DecisionStore backed by SQLAlchemy.

    Args:
        session_factory: sessionmaker bound to the target engine
        clock: time source for created_at / applied_at and windows
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None, clock: Optional[ClockProtocol] = None):
        self._session_factory = session_factory
        self._clock = clock or get_clock()
        self._local = threading.local()

    # ------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Generator[None, None, None]:
        active = getattr(self._local, "session", None)
        if active is not None:
            yield
            return

        with transaction_scope(self._session_factory) as session:
            self._local.session = session
            try:
                yield
            finally:
                self._local.session = None

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        active = getattr(self._local, "session", None)
        if active is not None:
            yield active
            return
        with transaction_scope(self._session_factory) as session:
            yield session

    def _now(self):
        return self._clock.storage_now()

    # ------------------------------------------------------------
    # Proposals and traces
    # ------------------------------------------------------------

    def insert_proposal(
        self,
        type: str,
        band: str,
        score: Optional[float],
        features: Mapping[str, float],
        blocked_by: Optional[str],
        context_hash: str,
        run_id: str,
        sku: str,
    ) -> int:
        with self._session() as session:
            record = ProposalRecord(
                type=_text(type),
                band=_text(band),
                score=score,
                feature_json=dict(features),
                blocked_by=blocked_by,
                context_hash=context_hash,
                run_id=run_id,
                sku=sku,
                status="pending",
                created_at=self._now(),
            )
            session.add(record)
            session.flush()
            proposal_id = record.id

        logger.debug(f"Inserted proposal {proposal_id} sku={sku} band={_text(band)}")
        return proposal_id

    def insert_guardrail_trace_batch(
        self,
        proposal_id: Optional[int],
        run_id: str,
        entries: Iterable[GuardrailTraceEntry],
    ) -> int:
        now = self._now()
        rows = [
            GuardrailTraceRecord(
                proposal_id=proposal_id,
                run_id=run_id,
                sequence_no=sequence_no,
                rule_code=entry.rule_code,
                status=entry.status.value,
                message=entry.message,
                meta=dict(entry.metadata),
                created_at=now,
            )
            for sequence_no, entry in enumerate(entries, start=1)
        ]
        if not rows:
            return 0

        with self._session() as session:
            session.add_all(rows)
            session.flush()

        logger.debug(f"Inserted {len(rows)} guardrail trace rows for proposal {proposal_id}")
        return len(rows)

    def mark_proposal_status(self, proposal_id: int, status: str) -> bool:
        with self._session() as session:
            result = session.execute(
                update(ProposalRecord)
                .where(ProposalRecord.id == proposal_id)
                .values(status=_text(status))
            )
            return result.rowcount > 0

    def get_proposal(self, proposal_id: int) -> Optional[ProposalRecord]:
        with self._session() as session:
            return session.get(ProposalRecord, proposal_id)

    def get_trace(self, proposal_id: int) -> List[GuardrailTraceRecord]:
        """Trace rows for a proposal, in sequence order."""
        with self._session() as session:
            stmt = (
                select(GuardrailTraceRecord)
                .where(GuardrailTraceRecord.proposal_id == proposal_id)
                .order_by(GuardrailTraceRecord.sequence_no)
            )
            return list(session.execute(stmt).scalars().all())

    # ------------------------------------------------------------
    # Cooloff
    # ------------------------------------------------------------

    def _in_window(self, session: Session, subject: str, action_type: str, hours: int) -> bool:
        if hours <= 0:
            return False
        cutoff = self._now() - timedelta(hours=hours)
        stmt = (
            select(CooloffRecordRow.id)
            .where(
                and_(
                    CooloffRecordRow.subject_sku == subject,
                    CooloffRecordRow.action_type == action_type,
                    CooloffRecordRow.applied_at >= cutoff,
                )
            )
            .limit(1)
        )
        return session.execute(stmt).first() is not None

    def _cooloff_row(
        self,
        proposal_id: Optional[int],
        subject: str,
        action_type: str,
        hours: Optional[int] = None,
    ) -> CooloffRecordRow:
        bucket = None
        if hours is not None and hours > 0:
            bucket = window_bucket(self._clock.now().timestamp(), hours)
        return CooloffRecordRow(
            proposal_id=proposal_id,
            subject_sku=subject,
            action_type=action_type,
            window_bucket=bucket,
            applied_at=self._clock.storage_now(),
        )

    def cooloff_in_window(self, subject: str, action_type: str, hours: int) -> bool:
        with self._session() as session:
            return self._in_window(session, subject, action_type, hours)

    def cooloff_record(self, proposal_id: Optional[int], subject: str, action_type: str) -> int:
        with self._session() as session:
            row = self._cooloff_row(proposal_id, subject, action_type)
            session.add(row)
            session.flush()
            return row.id

    def cooloff_try_acquire(self, proposal_id: Optional[int], subject: str, action_type: str, hours: int) -> bool:
        if hours <= 0:
            self.cooloff_record(proposal_id, subject, action_type)
            return True

        with transaction_scope(self._session_factory) as session:
            if self._in_window(session, subject, action_type, hours):
                return False
            session.add(self._cooloff_row(proposal_id, subject, action_type, hours))
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                logger.info(f"Lost cooloff race for {action_type}:{subject}")
                return False
        return True

    # ------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------

    def audit_record(
        self,
        proposal_id: Optional[int],
        subject: str,
        action_type: str,
        effect: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> int:
        with self._session() as session:
            record = ActionAuditRecord(
                proposal_id=proposal_id,
                subject_sku=subject,
                action_type=action_type,
                effect=_text(effect),
                meta=dict(metadata) if metadata else None,
                applied_at=self._now(),
            )
            session.add(record)
            session.flush()
            return record.id

    def recent_applied(self, hours: int, action_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Audit rows with effect=applied in the last ``hours``, newest first."""
        cutoff = self._now() - timedelta(hours=hours)
        conditions = [
            ActionAuditRecord.effect == "applied",
            ActionAuditRecord.applied_at >= cutoff,
        ]
        if action_type:
            conditions.append(ActionAuditRecord.action_type == action_type)

        with self._session() as session:
            stmt = (
                select(ActionAuditRecord)
                .where(and_(*conditions))
                .order_by(desc(ActionAuditRecord.applied_at), desc(ActionAuditRecord.id))
            )
            return [
                {
                    "proposal_id": r.proposal_id,
                    "sku": r.subject_sku,
                    "type": r.action_type,
                    "metadata": r.meta or {},
                    "applied_at": r.applied_at,
                }
                for r in session.execute(stmt).scalars().all()
            ]

    # ------------------------------------------------------------
    # Drift
    # ------------------------------------------------------------

    def drift_metrics_insert(self, feature_set: str, psi: float, status: str, buckets: List[Dict[str, Any]]) -> int:
        with self._session() as session:
            record = DriftMetricRecord(
                feature_set=feature_set,
                psi=psi,
                status=_text(status),
                buckets=list(buckets),
                created_at=self._now(),
            )
            session.add(record)
            session.flush()
            return record.id

    def latest_drift(self, feature_set: str) -> Optional[DriftMetricRecord]:
        with self._session() as session:
            stmt = (
                select(DriftMetricRecord)
                .where(DriftMetricRecord.feature_set == feature_set)
                .order_by(desc(DriftMetricRecord.created_at), desc(DriftMetricRecord.id))
                .limit(1)
            )
            return session.execute(stmt).scalars().first()
