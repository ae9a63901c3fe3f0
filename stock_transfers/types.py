"""
Stock Transfers - Type Definitions.

============================================================
PURPOSE
============================================================
Value objects for hub-to-store stock movement:

- TransferOrder / TransferLine   proposed or in-flight transfer
- ProductStock / Outlet          allocator inputs
- AllocationRow                  allocator output

Construction validates against closed enumerations. Out of
range values raise; nothing is clamped.

============================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from core.exceptions import TransferValidationError
from decision_pipeline.types import CandidateContext, DecisionType


# ============================================================
# ENUMERATIONS
# ============================================================

class TransferStatus(str, Enum):
    """Transfer order lifecycle state."""

    PROPOSED = "proposed"
    APPROVED = "approved"
    COMMITTED = "committed"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (TransferStatus.RECEIVED, TransferStatus.CANCELLED)


class TransferPriority(str, Enum):
    """Transfer urgency."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


def _coerce_status(value: Any) -> TransferStatus:
    try:
        return TransferStatus(value)
    except ValueError:
        raise TransferValidationError(f"Invalid transfer status {value!r}", field="status", value=value) from None


def _coerce_priority(value: Any) -> TransferPriority:
    try:
        return TransferPriority(value)
    except ValueError:
        raise TransferValidationError(f"Invalid priority {value!r}", field="priority", value=value) from None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# TRANSFER ORDER
# ============================================================

@dataclass(frozen=True)
class TransferLine:
    """One SKU on a transfer order."""

    sku: str
    qty: int
    uom: str = "ea"
    rationale: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sku", str(self.sku))
        object.__setattr__(self, "qty", int(self.qty))
        if self.qty < 0:
            raise TransferValidationError("Line quantity must be >= 0", field="qty", value=self.qty)
        if self.rationale is not None:
            object.__setattr__(self, "rationale", dict(self.rationale))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TransferLine":
        return cls(
            sku=data.get("sku", ""),
            qty=data.get("qty", 0) or 0,
            uom=str(data.get("uom") or "ea"),
            rationale=data.get("rationale"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "qty": self.qty,
            "uom": self.uom,
            "rationale": dict(self.rationale) if self.rationale is not None else None,
        }


def normalise_lines(lines: Iterable[Any]) -> Tuple[TransferLine, ...]:
    """Accept TransferLine objects or loose dicts."""
    return tuple(
        line if isinstance(line, TransferLine) else TransferLine.from_dict(line)
        for line in lines
    )


@dataclass(frozen=True)
class TransferOrder:
    """
    Proposed or in-flight transfer from a hub to a store.

    Status changes go through with_status(), which enforces the
    lifecycle defined in state_machine.VALID_TRANSITIONS.
    """

    transfer_id: str
    source_hub: str
    dest_store: str
    status: TransferStatus = TransferStatus.PROPOSED
    priority: TransferPriority = TransferPriority.NORMAL
    lines: Tuple[TransferLine, ...] = ()
    confidence: float = 0.0
    reason: Optional[Mapping[str, Any]] = None
    requested_by: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", _coerce_status(self.status))
        object.__setattr__(self, "priority", _coerce_priority(self.priority))

        if isinstance(self.confidence, bool):
            raise TransferValidationError("Confidence must be numeric", field="confidence", value=self.confidence)
        confidence = float(self.confidence)
        if not 0.0 <= confidence <= 1.0:
            raise TransferValidationError(
                "Confidence must be between 0.0 and 1.0",
                field="confidence",
                value=confidence,
            )
        object.__setattr__(self, "confidence", confidence)

        object.__setattr__(self, "lines", normalise_lines(self.lines))
        if self.reason is not None:
            object.__setattr__(self, "reason", dict(self.reason))
        if self.updated_at is None:
            object.__setattr__(self, "updated_at", self.created_at)

    # ------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TransferOrder":
        """
        Build from a loose dict (API payload or DB row).

        Missing status/priority default to proposed/normal.
        Unparseable timestamps fall back to now.
        """
        created = _parse_datetime(payload.get("created_at"))
        updated = _parse_datetime(payload.get("updated_at")) or created
        created = created or _utcnow()

        confidence = payload.get("confidence")
        reason = payload.get("reason")
        requested_by = payload.get("requested_by")

        return cls(
            transfer_id=str(payload.get("transfer_id") or payload.get("id") or ""),
            source_hub=str(payload.get("source_hub") or ""),
            dest_store=str(payload.get("dest_store") or ""),
            status=payload.get("status") or TransferStatus.PROPOSED,
            priority=payload.get("priority") or TransferPriority.NORMAL,
            lines=normalise_lines(payload.get("lines") or ()),
            confidence=float(confidence) if confidence is not None else 0.0,
            reason=dict(reason) if reason is not None else None,
            requested_by=str(requested_by) if requested_by is not None else None,
            idempotency_key=payload.get("idempotency_key"),
            created_at=created,
            updated_at=updated or created,
        )

    # ------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------

    def with_status(self, status: Any, at: Optional[datetime] = None) -> "TransferOrder":
        """
        Return a copy in a new status.

        Raises:
            TransferValidationError: unknown status
            InvalidTransitionError: transition not allowed
        """
        from .state_machine import TransitionGuard

        target = _coerce_status(status)
        TransitionGuard.require(self.status, target)
        return replace(self, status=target, updated_at=at or _utcnow())

    def with_lines(self, lines: Iterable[Any]) -> "TransferOrder":
        """Return a copy with replaced lines."""
        return replace(self, lines=normalise_lines(lines))

    @property
    def total_qty(self) -> int:
        return sum(line.qty for line in self.lines)

    def to_candidate_context(self, line_index: int = 0, run_id: Optional[str] = None) -> CandidateContext:
        """
        Candidate context for one line, ready for the orchestrator.

        Raises:
            TransferValidationError: if the order has no such line
        """
        if not 0 <= line_index < len(self.lines):
            raise TransferValidationError(
                f"Transfer {self.transfer_id} has no line {line_index}",
                field="lines",
                value=len(self.lines),
            )
        line = self.lines[line_index]
        return CandidateContext(
            type=DecisionType.TRANSFER,
            sku=line.sku,
            store_id=self.dest_store,
            hub_id=self.source_hub,
            signals={
                "transfer_id": self.transfer_id,
                "qty": line.qty,
                "confidence": self.confidence,
                "priority": self.priority.value,
                "idempotency_key": self.idempotency_key,
            },
            run_id=run_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "transfer_id": self.transfer_id,
            "source_hub": self.source_hub,
            "dest_store": self.dest_store,
            "status": self.status.value,
            "priority": self.priority.value,
            "reason": dict(self.reason) if self.reason is not None else None,
            "confidence": self.confidence,
            "requested_by": self.requested_by,
            "idempotency_key": self.idempotency_key,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "lines": [line.to_dict() for line in self.lines],
        }


# ============================================================
# ALLOCATOR TYPES
# ============================================================

@dataclass(frozen=True)
class Outlet:
    """Destination store."""

    outlet_id: str
    name: str = ""
    store_code: Optional[str] = None
    turnover_rate: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Outlet":
        turnover = data.get("turnover_rate")
        return cls(
            outlet_id=str(data["outlet_id"]),
            name=str(data.get("name") or ""),
            store_code=data.get("store_code"),
            turnover_rate=float(turnover) if turnover is not None else None,
        )


@dataclass(frozen=True)
class ProductStock:
    """Warehouse and per-outlet stock for one product."""

    product_id: str
    warehouse_stock: int
    outlet_stocks: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "outlet_stocks", dict(self.outlet_stocks))

    def stock_at(self, outlet_id: str) -> int:
        """Outlet stock, treating missing or negative as zero."""
        return max(0, int(self.outlet_stocks.get(outlet_id, 0) or 0))


@dataclass(frozen=True)
class AllocationRow:
    """Units of one product sent to one outlet."""

    outlet_id: str
    product_id: str
    quantity: int
    capped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outlet_id": self.outlet_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "capped": self.capped,
        }
