"""
Tests for candidate contexts, configuration loading and schemas.

============================================================
TEST SCENARIOS
============================================================
1. CandidateContext validation and fingerprint
2. Config presets and dict loading
3. Environment loading
4. Pydantic payload conversion
5. Structured exception log lines

============================================================
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import ContextValidationError, DecisionPipelineError, InvalidConfigError, PersistenceError
from decision_pipeline.config import (
    get_default_config,
    get_pilot_config,
    load_config_from_dict,
    load_config_from_env,
)
from decision_pipeline.schemas import CandidatePayload, ProposalResponse
from decision_pipeline.types import CandidateContext, DecisionType


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def context():
    return CandidateContext(
        type="transfer",
        sku="SKU-1",
        store_id="STORE-1",
        hub_id="HUB_MAIN",
        signals={"qty": 10, "confidence": 0.8},
        run_id="run-a",
    )


# ============================================================
# TEST: CANDIDATE CONTEXT
# ============================================================

class TestCandidateContext:
    """Tests for the candidate value object."""

    def test_type_is_coerced(self, context):
        assert context.type is DecisionType.TRANSFER

    def test_unknown_type_rejected(self):
        with pytest.raises(ContextValidationError):
            CandidateContext(type="markdown", sku="SKU-1")

    @pytest.mark.parametrize("sku", ["", "   ", None])
    def test_sku_required(self, sku):
        with pytest.raises(ContextValidationError):
            CandidateContext(type="pricing", sku=sku)

    def test_signals_must_be_mapping(self):
        with pytest.raises(ContextValidationError):
            CandidateContext(type="pricing", sku="SKU-1", signals=[("a", 1)])

    def test_fingerprint_ignores_run_id(self, context):
        other = CandidateContext.from_dict(dict(context.to_dict(), run_id="run-b"))

        assert other.fingerprint() == context.fingerprint()
        assert len(context.fingerprint()) == 64

    def test_fingerprint_tracks_signals(self, context):
        other = CandidateContext.from_dict(dict(context.to_dict(), signals={"qty": 11, "confidence": 0.8}))

        assert other.fingerprint() != context.fingerprint()

    def test_signals_are_copied(self):
        signals = {"margin_pct": 20}
        ctx = CandidateContext(type="pricing", sku="SKU-1", signals=signals)
        signals["margin_pct"] = 1

        assert ctx.signal("margin_pct") == 20
        assert ctx.signal("missing", "dflt") == "dflt"


# ============================================================
# TEST: CONFIG
# ============================================================

class TestConfig:
    """Tests for configuration presets and loaders."""

    def test_default_config_disables_auto_apply(self):
        config = get_default_config()

        assert config.policy.auto_apply_pricing is False
        assert config.policy.cooloff_hours == 24
        assert config.scoring.auto_apply_min == 0.65
        assert config.scoring.propose_min == 0.15

    def test_pilot_config_enables_pricing(self):
        assert get_pilot_config().policy.auto_apply_pricing is True

    def test_load_from_dict_merges_sections(self):
        config = load_config_from_dict({
            "scoring": {"auto_apply_min": 0.8},
            "allocator": {"max_per_store": 25},
        })

        assert config.scoring.auto_apply_min == 0.8
        assert config.scoring.propose_min == 0.15
        assert config.allocator.max_per_store == 25
        assert config.allocator.seed_qty_zero == 3

    def test_unknown_section_rejected(self):
        with pytest.raises(InvalidConfigError):
            load_config_from_dict({"pricing": {}})

    def test_unknown_key_rejected(self):
        with pytest.raises(InvalidConfigError):
            load_config_from_dict({"policy": {"cooloff": 12}})

    def test_invalid_value_rejected(self):
        with pytest.raises(InvalidConfigError):
            load_config_from_dict({"allocator": {"max_per_store": 0}})

    def test_to_dict_round_trips(self):
        config = get_pilot_config()

        assert load_config_from_dict(config.to_dict()) == config

    def test_load_from_env_mapping(self):
        config = load_config_from_env({
            "DECISION_AUTO_APPLY_PRICING": "true",
            "DECISION_COOLOFF_HOURS": "6",
            "ALLOCATOR_MAX_PER_STORE": "30",
            "TRANSFER_DEFAULT_SOURCE_HUB": "HUB_WEST",
            "UNRELATED": "x",
        })

        assert config.policy.auto_apply_pricing is True
        assert config.policy.cooloff_hours == 6
        assert config.allocator.max_per_store == 30
        assert config.transfers.default_source_hub == "HUB_WEST"

    def test_load_from_env_bad_number(self):
        with pytest.raises(InvalidConfigError):
            load_config_from_env({"DECISION_COOLOFF_HOURS": "soon"})


# ============================================================
# TEST: SCHEMAS
# ============================================================

class TestSchemas:
    """Tests for pydantic boundary schemas."""

    def test_payload_to_context(self):
        payload = CandidatePayload(
            type="pricing",
            sku="SKU-9",
            store_id="STORE-2",
            signals={"margin_pct": 30},
            features={"margin_uplift": 0.4},
        )

        ctx = payload.to_context()

        assert ctx.type is DecisionType.PRICING
        assert ctx.signal("margin_pct") == 30

    def test_payload_rejects_unknown_type(self):
        with pytest.raises(PydanticValidationError):
            CandidatePayload(type="markdown", sku="SKU-9")

    def test_proposal_response_from_attributes(self):
        row = SimpleNamespace(
            id=1,
            type="pricing",
            band="propose",
            score=0.6,
            feature_json={"a": 0.2},
            blocked_by=None,
            context_hash="f" * 64,
            run_id="run-1",
            sku="SKU-1",
            status="pending",
            created_at=datetime(2025, 1, 15, tzinfo=timezone.utc),
        )

        response = ProposalResponse.model_validate(row)

        assert response.id == 1
        assert response.trace == []


# ============================================================
# TEST: EXCEPTIONS
# ============================================================

class TestExceptions:
    """Tests for structured exception output."""

    def test_log_format_includes_context(self):
        error = PersistenceError("write failed", operation="insert_proposal", table="proposals")

        assert error.to_log_format() == (
            "[HIGH] PersistenceError: write failed | operation=insert_proposal, table=proposals"
        )

    def test_log_format_without_context(self):
        assert DecisionPipelineError("plain").to_log_format() == "[MEDIUM] DecisionPipelineError: plain"
