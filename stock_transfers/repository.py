"""
Stock Transfers - Repository.

============================================================
PURPOSE
============================================================
Database operations for transfer orders.

Provides:
- Idempotent order creation (same idempotency key = same order)
- Lookup by transfer id or idempotency key
- Filtered listing
- Guarded status updates with audit history

============================================================
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy import select, and_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from core.clock import ClockProtocol, as_naive_utc, get_clock
from core.exceptions import PersistenceError
from database.engine import transaction_scope

from .models import TransferAuditRecord, TransferLineRecord, TransferOrderRecord
from .types import TransferOrder, normalise_lines


logger = logging.getLogger(__name__)


MAX_LIST_LIMIT = 500


class TransferOrderRepository:
    """
    Repository for transfer order persistence.

    All database operations go through this class.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None, clock: Optional[ClockProtocol] = None):
        """
        Initialize repository.

        Args:
            session_factory: sessionmaker bound to the target engine
            clock: time source for audit timestamps
        """
        self._session_factory = session_factory
        self._clock = clock or get_clock()

    # ============================================================
    # CREATE
    # ============================================================

    def create(self, order: TransferOrder) -> TransferOrder:
        """
        Persist a new transfer order.

        If an order with the same idempotency key exists, that order
        is returned and nothing is written.

        Returns:
            The stored order
        """
        if order.idempotency_key:
            existing = self.get_by_idempotency_key(order.idempotency_key)
            if existing is not None:
                logger.info(
                    f"Duplicate transfer request, returning {existing.transfer_id} "
                    f"(key {order.idempotency_key[:12]})"
                )
                return existing

        try:
            with transaction_scope(self._session_factory) as session:
                session.add(TransferOrderRecord(
                    transfer_id=order.transfer_id,
                    idempotency_key=order.idempotency_key,
                    source_hub=order.source_hub,
                    dest_store=order.dest_store,
                    status=order.status.value,
                    priority=order.priority.value,
                    reason=order.reason,
                    confidence=order.confidence,
                    requested_by=order.requested_by,
                    created_at=as_naive_utc(order.created_at),
                    updated_at=as_naive_utc(order.updated_at),
                ))
                self._insert_lines(session, order.transfer_id, order.lines)
                self._append_audit(
                    session,
                    order.transfer_id,
                    "created",
                    status_to=order.status.value,
                    actor=order.requested_by,
                    payload={"priority": order.priority.value, "confidence": order.confidence},
                )
                session.flush()
        except PersistenceError as e:
            if not (isinstance(e.cause, IntegrityError) and order.idempotency_key):
                raise
            # Lost a race on the idempotency key
            existing = self.get_by_idempotency_key(order.idempotency_key)
            if existing is None:
                raise
            return existing

        logger.info(
            f"Created transfer {order.transfer_id}: {order.source_hub} -> {order.dest_store} "
            f"status={order.status.value} priority={order.priority.value} lines={len(order.lines)}"
        )
        return order

    def add_lines(self, transfer_id: str, lines: Iterable[Any]) -> int:
        """Append lines to an existing order. Returns the count added."""
        lines = normalise_lines(lines)
        if not lines:
            return 0
        with transaction_scope(self._session_factory) as session:
            self._insert_lines(session, transfer_id, lines)
        logger.info(f"Added {len(lines)} lines to transfer {transfer_id}")
        return len(lines)

    # ============================================================
    # QUERIES
    # ============================================================

    def get_by_transfer_id(self, transfer_id: str) -> Optional[TransferOrder]:
        with transaction_scope(self._session_factory) as session:
            record = session.execute(
                select(TransferOrderRecord).where(TransferOrderRecord.transfer_id == transfer_id)
            ).scalars().first()
            return self._to_order(session, record) if record else None

    def get_by_idempotency_key(self, key: str) -> Optional[TransferOrder]:
        with transaction_scope(self._session_factory) as session:
            record = session.execute(
                select(TransferOrderRecord).where(TransferOrderRecord.idempotency_key == str(key))
            ).scalars().first()
            return self._to_order(session, record) if record else None

    def list(
        self,
        status: Optional[str] = None,
        dest_store: Optional[str] = None,
        priority: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[TransferOrder]:
        """
        List orders, newest first.

        Args:
            limit: clamped to [1, 500]
            offset: clamped to >= 0
        """
        conditions = []
        if status:
            conditions.append(TransferOrderRecord.status == str(getattr(status, "value", status)))
        if dest_store:
            conditions.append(TransferOrderRecord.dest_store == dest_store)
        if priority:
            conditions.append(TransferOrderRecord.priority == str(getattr(priority, "value", priority)))
        if since:
            conditions.append(TransferOrderRecord.created_at >= as_naive_utc(since))
        if until:
            conditions.append(TransferOrderRecord.created_at <= as_naive_utc(until))

        stmt = select(TransferOrderRecord)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        stmt = (
            stmt.order_by(desc(TransferOrderRecord.created_at), desc(TransferOrderRecord.id))
            .limit(max(1, min(int(limit), MAX_LIST_LIMIT)))
            .offset(max(0, int(offset)))
        )

        with transaction_scope(self._session_factory) as session:
            return [self._to_order(session, r) for r in session.execute(stmt).scalars().all()]

    def history(self, transfer_id: str) -> List[Dict[str, Any]]:
        """Audit events for an order, oldest first."""
        with transaction_scope(self._session_factory) as session:
            stmt = (
                select(TransferAuditRecord)
                .where(TransferAuditRecord.transfer_id == transfer_id)
                .order_by(TransferAuditRecord.id)
            )
            return [
                {
                    "event_type": r.event_type,
                    "status_from": r.status_from,
                    "status_to": r.status_to,
                    "actor": r.actor,
                    "note": r.note,
                    "payload": r.payload,
                    "created_at": r.created_at,
                }
                for r in session.execute(stmt).scalars().all()
            ]

    # ============================================================
    # STATUS
    # ============================================================

    def update_status(
        self,
        transfer_id: str,
        new_status: Any,
        actor: Optional[str] = None,
        note: Optional[str] = None,
    ) -> bool:
        """
        Move an order to a new status.

        Returns:
            False if the order does not exist

        Raises:
            TransferValidationError: unknown status
            InvalidTransitionError: transition not allowed
        """
        with transaction_scope(self._session_factory) as session:
            record = session.execute(
                select(TransferOrderRecord).where(TransferOrderRecord.transfer_id == transfer_id)
            ).scalars().first()
            if record is None:
                return False

            current = self._to_order(session, record)
            now = self._clock.now()
            updated = current.with_status(new_status, at=now)
            if updated.status == current.status:
                return True

            record.status = updated.status.value
            record.updated_at = as_naive_utc(now)
            self._append_audit(
                session,
                transfer_id,
                "status_changed",
                status_from=current.status.value,
                status_to=updated.status.value,
                actor=actor,
                note=note,
            )

        logger.info(
            f"Transfer {transfer_id} status {current.status.value} -> {updated.status.value} "
            f"(actor={actor})"
        )
        return True

    # ============================================================
    # HELPERS
    # ============================================================

    @staticmethod
    def _insert_lines(session: Session, transfer_id: str, lines) -> None:
        session.add_all([
            TransferLineRecord(
                transfer_id=transfer_id,
                sku=line.sku,
                qty=line.qty,
                uom=line.uom,
                rationale=dict(line.rationale) if line.rationale is not None else None,
            )
            for line in lines
        ])

    def _append_audit(
        self,
        session: Session,
        transfer_id: str,
        event_type: str,
        status_from: Optional[str] = None,
        status_to: Optional[str] = None,
        actor: Optional[str] = None,
        note: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        session.add(TransferAuditRecord(
            transfer_id=transfer_id,
            event_type=event_type,
            status_from=status_from,
            status_to=status_to,
            actor=actor,
            note=note,
            payload=payload,
            created_at=self._clock.storage_now(),
        ))

    @staticmethod
    def _to_order(session: Session, record: TransferOrderRecord) -> TransferOrder:
        lines = session.execute(
            select(TransferLineRecord)
            .where(TransferLineRecord.transfer_id == record.transfer_id)
            .order_by(TransferLineRecord.id)
        ).scalars().all()

        return TransferOrder.from_payload({
            "transfer_id": record.transfer_id,
            "source_hub": record.source_hub,
            "dest_store": record.dest_store,
            "status": record.status,
            "priority": record.priority,
            "reason": record.reason,
            "confidence": record.confidence,
            "requested_by": record.requested_by,
            "idempotency_key": record.idempotency_key,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "lines": [
                {"sku": l.sku, "qty": l.qty, "uom": l.uom, "rationale": l.rationale}
                for l in lines
            ],
        })
