"""
Tests for the Transfer Order Repository.

============================================================
TEST SCENARIOS
============================================================
1. Create and fetch round trip
2. Idempotent create (pre-check and lost race)
3. Filtered listing
4. Guarded status updates with audit history

============================================================
"""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import MagicMock
from sqlalchemy.orm import sessionmaker

from core.clock import MockClock
from core.exceptions import InvalidTransitionError, PersistenceError, TransferValidationError
from database.engine import create_all_tables, create_database_engine
from stock_transfers import (
    TransferOrder,
    TransferOrderRepository,
    TransferPolicyService,
    TransferPriority,
    TransferStatus,
)


BASE_TIME = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    return MockClock(BASE_TIME)


@pytest.fixture
def repo(clock):
    engine = create_database_engine("sqlite://")
    create_all_tables(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield TransferOrderRepository(factory, clock=clock)
    engine.dispose()


def make_order(transfer_id="T1", dest_store="STORE-1", key=None, minutes=0, **kwargs):
    return TransferOrder(
        transfer_id=transfer_id,
        source_hub="HUB_MAIN",
        dest_store=dest_store,
        confidence=0.8,
        idempotency_key=key,
        requested_by="planner",
        reason={"type": "manual"},
        lines=[{"sku": "SKU-1", "qty": 12, "rationale": {"note": "restock"}}],
        created_at=BASE_TIME + timedelta(minutes=minutes),
        **kwargs,
    )


# ============================================================
# TEST: CREATE
# ============================================================

class TestCreate:
    """Tests for order creation."""

    def test_round_trip(self, repo):
        order = make_order(key="b" * 64)

        stored = repo.create(order)

        assert stored == order
        assert repo.get_by_transfer_id("T1") == order
        assert repo.get_by_idempotency_key("b" * 64) == order

    def test_missing_order(self, repo):
        assert repo.get_by_transfer_id("nope") is None

    def test_duplicate_key_returns_existing(self, repo):
        first = repo.create(make_order("T1", key="c" * 64))

        second = repo.create(make_order("T2", key="c" * 64))

        assert second.transfer_id == first.transfer_id
        assert repo.get_by_transfer_id("T2") is None

    def test_lost_race_returns_winner(self, repo, monkeypatch):
        """Pre-check misses, unique constraint catches the duplicate."""
        winner = repo.create(make_order("T1", key="d" * 64))
        lookup = MagicMock(side_effect=[None, winner])
        monkeypatch.setattr(repo, "get_by_idempotency_key", lookup)

        result = repo.create(make_order("T2", key="d" * 64))

        assert result.transfer_id == "T1"
        assert lookup.call_count == 2

    def test_duplicate_transfer_id_without_key_raises(self, repo):
        repo.create(make_order("T1"))

        with pytest.raises(PersistenceError):
            repo.create(make_order("T1"))

    def test_policy_proposals_are_deduplicated(self, repo):
        service = TransferPolicyService(orders=repo)
        signal = {
            "store_id": "STORE-1",
            "sku": "SKU-1",
            "predicted_weekly_demand": 70,
            "current_on_hand": 0,
            "prediction_confidence": 0.8,
        }

        first = service.propose(signal)
        second = service.propose(signal)

        assert second.transfer_id == first.transfer_id
        assert len(repo.list()) == 1

    def test_add_lines(self, repo):
        repo.create(make_order("T1"))

        added = repo.add_lines("T1", [{"sku": "SKU-2", "qty": 3}])

        assert added == 1
        assert [l.sku for l in repo.get_by_transfer_id("T1").lines] == ["SKU-1", "SKU-2"]
        assert repo.add_lines("T1", []) == 0


# ============================================================
# TEST: LIST
# ============================================================

class TestList:
    """Tests for filtered listing."""

    @pytest.fixture
    def seeded(self, repo):
        repo.create(make_order("T1", dest_store="STORE-1", minutes=0))
        repo.create(make_order("T2", dest_store="STORE-2", minutes=10, priority=TransferPriority.HIGH))
        repo.create(make_order("T3", dest_store="STORE-1", minutes=20, status=TransferStatus.APPROVED))
        return repo

    def test_newest_first(self, seeded):
        assert [o.transfer_id for o in seeded.list()] == ["T3", "T2", "T1"]

    def test_filters(self, seeded):
        assert [o.transfer_id for o in seeded.list(dest_store="STORE-1")] == ["T3", "T1"]
        assert [o.transfer_id for o in seeded.list(status="approved")] == ["T3"]
        assert [o.transfer_id for o in seeded.list(priority=TransferPriority.HIGH)] == ["T2"]

    def test_time_range(self, seeded):
        since = BASE_TIME + timedelta(minutes=5)
        until = BASE_TIME + timedelta(minutes=15)

        assert [o.transfer_id for o in seeded.list(since=since, until=until)] == ["T2"]

    def test_limit_and_offset(self, seeded):
        assert [o.transfer_id for o in seeded.list(limit=1, offset=1)] == ["T2"]
        assert len(seeded.list(limit=0)) == 1
        assert len(seeded.list(offset=-3)) == 3


# ============================================================
# TEST: STATUS
# ============================================================

class TestStatusUpdates:
    """Tests for guarded transitions and history."""

    def test_valid_transition(self, repo, clock):
        repo.create(make_order("T1"))
        clock.advance(hours=1)

        assert repo.update_status("T1", "approved", actor="manager", note="ok") is True

        order = repo.get_by_transfer_id("T1")
        assert order.status == TransferStatus.APPROVED
        assert order.updated_at == BASE_TIME + timedelta(hours=1)

    def test_history_records_events(self, repo):
        repo.create(make_order("T1"))
        repo.update_status("T1", TransferStatus.APPROVED, actor="manager")
        repo.update_status("T1", TransferStatus.CANCELLED, actor="manager", note="store closed")

        history = repo.history("T1")

        assert [h["event_type"] for h in history] == ["created", "status_changed", "status_changed"]
        assert history[0]["actor"] == "planner"
        assert (history[2]["status_from"], history[2]["status_to"]) == ("approved", "cancelled")
        assert history[2]["note"] == "store closed"

    def test_invalid_transition_rejected(self, repo):
        repo.create(make_order("T1"))

        with pytest.raises(InvalidTransitionError):
            repo.update_status("T1", TransferStatus.RECEIVED)

        assert repo.get_by_transfer_id("T1").status == TransferStatus.PROPOSED
        assert len(repo.history("T1")) == 1

    def test_unknown_status_rejected(self, repo):
        repo.create(make_order("T1"))

        with pytest.raises(TransferValidationError):
            repo.update_status("T1", "shipped")

    def test_missing_order_returns_false(self, repo):
        assert repo.update_status("nope", "approved") is False

    def test_same_status_is_noop(self, repo):
        repo.create(make_order("T1"))

        assert repo.update_status("T1", "proposed") is True
        assert len(repo.history("T1")) == 1
