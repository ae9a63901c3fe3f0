"""
Stock Transfers - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy models for transfer orders:

- transfer_orders       order header
- transfer_lines        one row per SKU
- transfer_order_audit  creation and status changes

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
)
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base


class TransferOrderRecord(Base):
    """Transfer order header."""

    __tablename__ = "transfer_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    transfer_id: Mapped[str] = mapped_column(String(96), unique=True, nullable=False, index=True)

    idempotency_key: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    """SHA-256 key; duplicates resolve to the existing order"""

    source_hub: Mapped[str] = mapped_column(String(64), nullable=False)
    dest_store: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    requested_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_transfer_orders_status_created", "status", "created_at"),
    )


class TransferLineRecord(Base):
    """One SKU line of a transfer order."""

    __tablename__ = "transfer_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transfer_id: Mapped[str] = mapped_column(String(96), nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    uom: Mapped[str] = mapped_column(String(8), nullable=False, default="ea")
    rationale: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


class TransferAuditRecord(Base):
    """Append-only transfer order history."""

    __tablename__ = "transfer_order_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transfer_id: Mapped[str] = mapped_column(String(96), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    """created or status_changed"""

    status_from: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    status_to: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    actor: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
