"""
Tests for the Transfer Policy Service.

============================================================
TEST SCENARIOS
============================================================
1. Quantity math and max_move_qty clamp
2. Confidence formula and threshold gate
3. Priority tiers
4. Idempotency keys on proposals
5. Signal validation
6. Allocation rows -> orders

============================================================
"""

import pytest
from unittest.mock import MagicMock

from core.exceptions import TransferValidationError
from decision_pipeline.config import TransferPolicyConfig
from decision_pipeline.idempotency import IdempotencyKey
from stock_transfers import (
    AllocationRow,
    TransferPolicyService,
    TransferPriority,
    TransferStatus,
    orders_from_allocation,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def service():
    """Dry-run service with default policy."""
    return TransferPolicyService()


@pytest.fixture
def signal():
    return {
        "store_id": "STORE-1",
        "sku": "SKU-1",
        "predicted_weekly_demand": 70,
        "current_on_hand": 0,
        "prediction_confidence": 0.8,
    }


# ============================================================
# TEST: QUANTITY
# ============================================================

class TestQuantity:
    """Tests for the replenishment quantity."""

    def test_required_units(self, service, signal):
        """safety 70 + weekly 70 - on_hand 0."""
        order = service.propose(signal)

        assert order.total_qty == 140
        assert order.reason["required_units"] == 140
        assert order.lines[0].rationale["safety_stock_units"] == 70

    def test_clamped_to_max_move_qty(self, service, signal):
        order = service.propose(dict(signal, predicted_weekly_demand=400))

        assert order.total_qty == 200
        assert order.priority == TransferPriority.CRITICAL

    def test_no_order_when_stock_covers_demand(self, service, signal):
        assert service.propose(dict(signal, current_on_hand=500)) is None

    def test_no_order_for_zero_demand(self, service, signal):
        assert service.propose(dict(signal, predicted_weekly_demand=0)) is None

    def test_negative_on_hand_raises_requirement(self, service, signal):
        order = service.propose(dict(
            signal,
            current_on_hand=-10,
            lead_time_days=0,
            forecast_horizon_days=0,
            prediction_confidence=10,
        ))

        assert order.total_qty == 150
        assert order.confidence == 1.0
        assert order.priority == TransferPriority.HIGH
        assert order.reason["lead_time_days"] == 1
        assert order.reason["window_days"] == 1


# ============================================================
# TEST: CONFIDENCE
# ============================================================

class TestConfidence:
    """Tests for the confidence formula and gate."""

    def test_calculate_confidence(self):
        assert TransferPolicyService.calculate_confidence(1.0, 14, 10, 7) == 0.824

    def test_long_horizon_halves_confidence(self):
        assert TransferPolicyService.calculate_confidence(1.0, 28, 4, 7) == 0.5

    def test_ties_round_half_up(self):
        """0.0625 rounds up to 0.063, not to the even 0.062."""
        assert TransferPolicyService.calculate_confidence(0.0625, 14, 4, 7) == 0.063

    def test_below_threshold_skipped(self, service, signal):
        assert service.propose(dict(signal, prediction_confidence=1.0, forecast_horizon_days=28)) is None

    def test_auto_create_ignores_threshold(self, signal):
        service = TransferPolicyService(config=TransferPolicyConfig(auto_create=True))

        order = service.propose({
            "store_id": "STORE-1",
            "sku": "SKU-1",
            "predicted_weekly_demand": 14,
            "current_on_hand": 5,
        })

        assert order.total_qty == 23
        assert order.confidence == 0.5
        assert order.priority == TransferPriority.LOW

    def test_confidence_in_unit_interval(self, service, signal):
        order = service.propose(dict(signal, prediction_confidence=-3, current_on_hand=0))

        assert order is None or 0.0 <= order.confidence <= 1.0


# ============================================================
# TEST: PRIORITY
# ============================================================

class TestPriority:
    """Tests for priority tiers."""

    @pytest.mark.parametrize("qty,confidence,on_hand,priority", [
        (180, 0.5, 50, TransferPriority.CRITICAL),
        (10, 0.95, 50, TransferPriority.HIGH),
        (10, 0.5, 2, TransferPriority.HIGH),
        (100, 0.5, 50, TransferPriority.HIGH),
        (10, 0.8, 50, TransferPriority.NORMAL),
        (10, 0.5, 50, TransferPriority.LOW),
    ])
    def test_determine_priority(self, qty, confidence, on_hand, priority):
        assert TransferPolicyService.determine_priority(qty, 200, confidence, on_hand) == priority

    def test_high_for_empty_store(self, service, signal):
        assert service.propose(signal).priority == TransferPriority.HIGH


# ============================================================
# TEST: ORDERS
# ============================================================

class TestProposedOrder:
    """Tests for the produced order."""

    def test_order_fields(self, service, signal):
        order = service.propose(signal)

        assert order.status == TransferStatus.PROPOSED
        assert order.source_hub == "HUB_MAIN"
        assert order.dest_store == "STORE-1"
        assert order.requested_by == "transfer_policy"
        assert order.transfer_id.startswith("TR_STORE-1_SKU-1_")

    def test_idempotency_key_is_stable(self, service, signal):
        first = service.propose(signal)
        second = service.propose(signal)

        assert first.transfer_id != second.transfer_id
        assert first.idempotency_key == second.idempotency_key
        assert first.idempotency_key == IdempotencyKey.from_signal(
            "STORE-1", "SKU-1", 140, 14, 7, "HUB_MAIN"
        ).value

    def test_persist_goes_through_repository(self, signal):
        orders = MagicMock()
        orders.create.side_effect = lambda order: order
        service = TransferPolicyService(orders=orders)

        service.propose(signal)
        service.propose(signal, persist=False)

        orders.create.assert_called_once()

    def test_source_hub_override(self, service, signal):
        assert service.propose(dict(signal, source_hub="HUB_EAST")).source_hub == "HUB_EAST"


# ============================================================
# TEST: VALIDATION
# ============================================================

class TestSignalValidation:
    """Tests for rejected signals."""

    @pytest.mark.parametrize("override", [
        {"predicted_weekly_demand": -1},
        {"predicted_weekly_demand": float("inf")},
        {"predicted_weekly_demand": float("nan")},
        {"sku": ""},
        {"current_on_hand": "many"},
    ])
    def test_invalid_signal(self, service, signal, override):
        with pytest.raises(TransferValidationError):
            service.propose(dict(signal, **override))

    def test_missing_field(self, service, signal):
        del signal["store_id"]

        with pytest.raises(TransferValidationError) as exc_info:
            service.propose(signal)

        assert "store_id" in exc_info.value.message


# ============================================================
# TEST: ALLOCATION BRIDGE
# ============================================================

class TestOrdersFromAllocation:
    """Tests for converting allocator rows to orders."""

    def test_one_order_per_row(self):
        rows = [
            AllocationRow("A", "P1", 10),
            AllocationRow("B", "P1", 40, capped=True),
        ]

        orders = orders_from_allocation(rows, "HUB_MAIN")

        assert [o.dest_store for o in orders] == ["A", "B"]
        assert [o.total_qty for o in orders] == [10, 40]
        assert orders[1].reason == {"type": "balanced_allocation", "capped": True}
        assert all(o.requested_by == "balanced_allocator" for o in orders)
        assert all(o.confidence == 1.0 for o in orders)

    def test_keys_are_reproducible(self):
        rows = [AllocationRow("A", "P1", 10)]

        first = orders_from_allocation(rows, "HUB_MAIN")[0]
        second = orders_from_allocation(rows, "HUB_MAIN")[0]

        assert first.idempotency_key == second.idempotency_key
        assert first.idempotency_key != IdempotencyKey.from_signal("A", "P1", 10, 0, 0, "HUB_MAIN").value
