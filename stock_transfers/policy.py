"""
Stock Transfers - Transfer Policy Service.

============================================================
PURPOSE
============================================================
Convert demand signals into proposed transfer orders.

============================================================
MATH
============================================================
    lead      = max(1, lead_time_days)               (4 if absent)
    horizon   = max(lead, forecast_horizon_days)     (14 if absent)
    daily     = weekly / 7
    safety    = ceil(daily * safety_stock_days)
    required  = max(0, safety + ceil(weekly) - on_hand)
    qty       = clamp(required, 1, max_move_qty)

    confidence = prediction_confidence
               * clamp(14 / horizon, 0.5, 1)
               * clamp((safety_days + 7) / (lead + safety_days), 0.5, 1)

No order when required == 0, or when confidence is below the
threshold and auto_create is off.

============================================================
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import logging
import math
import secrets

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from core.exceptions import TransferValidationError
from decision_pipeline.config import TransferPolicyConfig
from decision_pipeline.idempotency import IdempotencyKey

from .repository import TransferOrderRepository
from .types import AllocationRow, TransferOrder, TransferPriority, TransferStatus


logger = logging.getLogger(__name__)


DEFAULT_LEAD_TIME_DAYS = 4
DEFAULT_HORIZON_DAYS = 14
DEFAULT_PREDICTION_CONFIDENCE = 0.5
DEFAULT_REQUESTED_BY = "transfer_policy"
ALLOCATOR_REQUESTED_BY = "balanced_allocator"


# =============================================================
# INBOUND SIGNAL
# =============================================================

class TransferSignal(BaseModel):
    """Demand signal for one store/SKU pair."""
    store_id: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    predicted_weekly_demand: float = Field(..., ge=0, allow_inf_nan=False)
    current_on_hand: int
    reserved: int = 0
    lead_time_days: Optional[int] = None
    prediction_confidence: Optional[float] = Field(default=None, allow_inf_nan=False)
    forecast_horizon_days: Optional[int] = None
    source_hub: Optional[str] = None
    requested_by: Optional[str] = None
    uom: str = "ea"


def _round_half_up(value: float, places: int = 0) -> Union[int, float]:
    """Round ties away from zero. Integer result when places is 0."""
    rounded = Decimal(str(value)).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    return float(rounded) if places else int(rounded)


def _transfer_id(store_id: str, sku: str) -> str:
    return f"TR_{store_id}_{sku}_{secrets.token_hex(3).upper()}"


# =============================================================
# SERVICE
# =============================================================

class TransferPolicyService:
    """
    Demand-driven replenishment proposals.

    Args:
        orders: repository used when persisting (optional for dry runs)
        config: transfer policy settings
    """

    def __init__(
        self,
        orders: Optional[TransferOrderRepository] = None,
        config: Optional[TransferPolicyConfig] = None,
    ):
        self._orders = orders
        self.config = config or TransferPolicyConfig()

    def propose(
        self,
        signal: Union[TransferSignal, Mapping[str, Any]],
        persist: bool = True,
    ) -> Optional[TransferOrder]:
        """
        Turn a demand signal into a proposed transfer order.

        Args:
            signal: TransferSignal or equivalent dict
            persist: store the order through the repository

        Returns:
            TransferOrder, or None when no transfer is warranted

        Raises:
            TransferValidationError: malformed signal
        """
        signal = self._parse_signal(signal)
        cfg = self.config

        safety_days = cfg.safety_stock_days
        lead_in = signal.lead_time_days
        lead_time = max(1, DEFAULT_LEAD_TIME_DAYS if lead_in is None else lead_in)
        horizon_in = signal.forecast_horizon_days
        horizon = max(lead_time, DEFAULT_HORIZON_DAYS if horizon_in is None else horizon_in)
        prediction = signal.prediction_confidence
        if prediction is None:
            prediction = DEFAULT_PREDICTION_CONFIDENCE
        prediction = max(0.0, min(1.0, prediction))

        weekly = signal.predicted_weekly_demand
        on_hand = signal.current_on_hand
        safety_units = math.ceil(weekly / 7.0 * safety_days)
        required = max(0, safety_units + math.ceil(weekly) - on_hand)

        if required <= 0:
            logger.debug(
                f"No transfer needed for {signal.store_id}/{signal.sku}: "
                f"on_hand={on_hand} weekly={weekly} safety_units={safety_units}"
            )
            return None

        quantity = max(1, min(required, cfg.max_move_qty))
        confidence = self.calculate_confidence(prediction, horizon, lead_time, safety_days)

        if confidence < cfg.confidence_threshold and not cfg.auto_create:
            logger.info(
                f"Transfer skipped for {signal.store_id}/{signal.sku}: "
                f"confidence {confidence} below {cfg.confidence_threshold}"
            )
            return None

        priority = self.determine_priority(quantity, cfg.max_move_qty, confidence, on_hand)
        source_hub = signal.source_hub or cfg.default_source_hub

        key = IdempotencyKey.from_signal(
            signal.store_id, signal.sku, quantity, horizon, safety_days, source_hub
        )

        order = TransferOrder(
            transfer_id=_transfer_id(signal.store_id, signal.sku),
            source_hub=source_hub,
            dest_store=signal.store_id,
            status=TransferStatus.PROPOSED,
            priority=priority,
            confidence=confidence,
            requested_by=signal.requested_by or DEFAULT_REQUESTED_BY,
            idempotency_key=key.value,
            reason={
                "type": "forecast_replenishment",
                "window_days": horizon,
                "safety_stock_days": safety_days,
                "lead_time_days": lead_time,
                "required_units": required,
                "trigger": {
                    "predicted_weekly_demand": weekly,
                    "current_on_hand": on_hand,
                    "reserved": signal.reserved,
                },
            },
            lines=[{
                "sku": signal.sku,
                "qty": quantity,
                "uom": signal.uom,
                "rationale": {
                    "safety_stock_breach": True,
                    "forecast_weekly": weekly,
                    "safety_stock_units": safety_units,
                    "lead_time_days": lead_time,
                    "computed_confidence": confidence,
                },
            }],
        )

        if persist and self._orders is not None:
            order = self._orders.create(order)
            logger.info(
                f"Transfer proposed {order.transfer_id}: {signal.store_id}/{signal.sku} "
                f"qty={quantity} priority={priority.value} confidence={confidence}"
            )

        return order

    # ============================================================
    # MATH
    # ============================================================

    @staticmethod
    def calculate_confidence(
        prediction_confidence: float,
        horizon_days: int,
        lead_time_days: int,
        safety_stock_days: int,
    ) -> float:
        horizon_factor = max(0.5, min(1.0, 14 / max(1, horizon_days)))
        lead_penalty = max(0.5, min(1.0, (safety_stock_days + 7) / max(1, lead_time_days + safety_stock_days)))
        return _round_half_up(min(1.0, prediction_confidence * horizon_factor * lead_penalty), 3)

    @staticmethod
    def determine_priority(quantity: int, max_move_qty: int, confidence: float, on_hand: int) -> TransferPriority:
        if quantity >= max(1, _round_half_up(max_move_qty * 0.9)):
            return TransferPriority.CRITICAL
        if confidence >= 0.9 or on_hand <= 2:
            return TransferPriority.HIGH
        if quantity >= max(1, _round_half_up(max_move_qty * 0.5)):
            return TransferPriority.HIGH
        return TransferPriority.NORMAL if confidence >= 0.75 else TransferPriority.LOW

    @staticmethod
    def _parse_signal(signal: Union[TransferSignal, Mapping[str, Any]]) -> TransferSignal:
        if isinstance(signal, TransferSignal):
            return signal
        try:
            return TransferSignal(**dict(signal))
        except PydanticValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise TransferValidationError(
                f"Invalid transfer signal: {', '.join(fields)}",
                field=fields[0] if fields else None,
                cause=e,
            ) from e


# =============================================================
# ALLOCATOR BRIDGE
# =============================================================

def orders_from_allocation(
    rows: Iterable[AllocationRow],
    source_hub: str,
    requested_by: str = ALLOCATOR_REQUESTED_BY,
) -> List[TransferOrder]:
    """
    One proposed transfer order per allocation row.

    The idempotency key uses purpose "transfer.allocate" so an
    identical allocation run maps to the same keys.
    """
    orders = []
    for row in rows:
        key = IdempotencyKey.from_signal(
            row.outlet_id, row.product_id, row.quantity, 0, 0, source_hub, purpose="transfer.allocate"
        )
        reason: Dict[str, Any] = {"type": "balanced_allocation", "capped": row.capped}
        orders.append(TransferOrder(
            transfer_id=_transfer_id(row.outlet_id, row.product_id),
            source_hub=source_hub,
            dest_store=row.outlet_id,
            status=TransferStatus.PROPOSED,
            priority=TransferPriority.NORMAL,
            confidence=1.0,
            reason=reason,
            requested_by=requested_by,
            idempotency_key=key.value,
            lines=[{"sku": row.product_id, "qty": row.quantity}],
        ))
    return orders
