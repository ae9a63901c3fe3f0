"""
Decision Pipeline - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy models for everything the pipeline persists:

- proposals           one row per scored candidate
- guardrail_traces    one row per rule evaluation
- cooloff_records     auto-apply cooloff windows
- action_audit        proposed / applied / rejected effects
- drift_metrics       PSI measurements

Timestamps are stored as naive UTC.

============================================================
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    Float,
    DateTime,
    Text,
    JSON,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base


# ============================================================
# PROPOSALS
# ============================================================

class ProposalRecord(Base):
    """
    Scored decision candidate.

    Written once; only ``status`` changes afterwards.
    """

    __tablename__ = "proposals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    """transfer or pricing"""

    band: Mapped[str] = mapped_column(String(16), nullable=False)
    """discard, propose or auto"""

    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    """Null for guardrail-blocked candidates"""

    feature_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    blocked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    context_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    """SHA-256 fingerprint of the candidate context"""

    run_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    sku: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_proposals_sku_created", "sku", "created_at"),
    )


# ============================================================
# GUARDRAIL TRACES
# ============================================================

class GuardrailTraceRecord(Base):
    """One guardrail rule result, in evaluation order."""

    __tablename__ = "guardrail_traces"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    proposal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sequence_no: Mapped[int] = mapped_column(Integer, nullable=False)
    rule_code: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(8), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ============================================================
# COOLOFF WINDOWS
# ============================================================

class CooloffRecordRow(Base):
    """
    Auto-apply marker for a subject.

    ``window_bucket`` is floor(epoch_seconds / window_seconds) at
    acquisition time. The unique constraint makes two concurrent
    acquisitions in the same bucket collide. Plain records leave it
    NULL and never collide.
    """

    __tablename__ = "cooloff_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    proposal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    subject_sku: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    window_bucket: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("subject_sku", "action_type", "window_bucket", name="uq_cooloff_window"),
        Index("ix_cooloff_subject_applied", "subject_sku", "action_type", "applied_at"),
    )


# ============================================================
# ACTION AUDIT
# ============================================================

class ActionAuditRecord(Base):
    """Append-only audit of proposal effects."""

    __tablename__ = "action_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    proposal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    subject_sku: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    effect: Mapped[str] = mapped_column(String(16), nullable=False)
    """proposed, applied or rejected"""

    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_action_audit_type_effect", "action_type", "effect", "applied_at"),
    )


# ============================================================
# DRIFT METRICS
# ============================================================

class DriftMetricRecord(Base):
    """PSI measurement for one feature set."""

    __tablename__ = "drift_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feature_set: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    psi: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    buckets: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
