"""
Tests for the Guardrail Chain.

============================================================
TEST SCENARIOS
============================================================
1. Rules run in registration order, all of them
2. blocked_by = first BLOCK by sequence
3. WARN alone does not block
4. Duplicate codes rejected at registration
5. Rule exceptions propagate
6. Sample rules

============================================================
"""

import pytest
from unittest.mock import MagicMock

from core.exceptions import ConfigurationError
from decision_pipeline.guardrails import (
    CooloffRule,
    FunctionRule,
    GuardrailChain,
    MarginFloorRule,
    PriceDeltaCapRule,
    RequiredSignalsRule,
)
from decision_pipeline.types import CandidateContext, GuardrailStatus, RuleResult


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def pricing_context():
    """Pricing candidate with healthy signals."""
    return CandidateContext(
        type="pricing",
        sku="SKU-100",
        store_id="STORE-1",
        signals={"margin_pct": 24.0, "current_price": 10.0, "proposed_price": 10.5},
    )


def status_rule(code, status, calls=None):
    """FunctionRule returning a fixed status and recording its call."""
    def fn(context):
        if calls is not None:
            calls.append(code)
        return {"status": status, "message": f"{code} says {status}"}
    return FunctionRule(code, fn)


# ============================================================
# TEST: CHAIN EVALUATION
# ============================================================

class TestGuardrailChain:
    """Tests for ordered, non-short-circuit evaluation."""

    def test_all_rules_run_in_registration_order(self, pricing_context):
        """A BLOCK early in the chain does not stop later rules."""
        calls = []
        chain = GuardrailChain([
            status_rule("a", "ALLOW", calls),
            status_rule("b", "BLOCK", calls),
            status_rule("c", "WARN", calls),
            status_rule("d", "ALLOW", calls),
        ])

        outcome = chain.evaluate(pricing_context)

        assert calls == ["a", "b", "c", "d"]
        assert [r.rule_code for r in outcome.results] == ["a", "b", "c", "d"]
        assert [r.sequence_no for r in outcome.results] == [1, 2, 3, 4]

    def test_blocked_by_is_first_blocking_rule(self, pricing_context):
        """blocked_by names the first BLOCK entry by sequence."""
        chain = GuardrailChain([
            status_rule("warn_first", "WARN"),
            status_rule("block_one", "BLOCK"),
            status_rule("block_two", "BLOCK"),
        ])

        outcome = chain.evaluate(pricing_context)

        assert outcome.final_status == GuardrailStatus.BLOCK
        assert outcome.is_blocked is True
        assert outcome.blocked_by == "block_one"
        first_block = next(r for r in outcome.results if r.status == GuardrailStatus.BLOCK)
        assert first_block.rule_code == outcome.blocked_by

    @pytest.mark.parametrize("order", [
        ["x", "y", "z"],
        ["z", "y", "x"],
        ["y", "z", "x"],
    ])
    def test_blocked_by_follows_ordering(self, pricing_context, order):
        """For any ordering, blocked_by is the earliest blocking code."""
        statuses = {"x": "BLOCK", "y": "ALLOW", "z": "BLOCK"}
        chain = GuardrailChain([status_rule(code, statuses[code]) for code in order])

        outcome = chain.evaluate(pricing_context)

        expected = next(code for code in order if statuses[code] == "BLOCK")
        assert outcome.blocked_by == expected

    def test_warnings_do_not_block(self, pricing_context):
        """WARN-only chains finish ALLOW and expose the warnings."""
        chain = GuardrailChain([
            status_rule("ok", "ALLOW"),
            status_rule("soft", "WARN"),
        ])

        outcome = chain.evaluate(pricing_context)

        assert outcome.final_status == GuardrailStatus.ALLOW
        assert outcome.blocked_by is None
        assert [w.rule_code for w in outcome.warnings] == ["soft"]

    def test_empty_chain_allows(self, pricing_context):
        """No rules means nothing blocks."""
        outcome = GuardrailChain().evaluate(pricing_context)

        assert outcome.final_status == GuardrailStatus.ALLOW
        assert outcome.results == ()

    def test_duplicate_code_rejected(self):
        """Two rules with one code cannot be registered."""
        chain = GuardrailChain([status_rule("dup", "ALLOW")])

        with pytest.raises(ConfigurationError):
            chain.register(status_rule("dup", "BLOCK"))

        assert len(chain) == 1

    def test_rule_exception_propagates(self, pricing_context):
        """A failing rule is a defect, not a BLOCK."""
        def broken(context):
            raise ZeroDivisionError("bad rule")

        chain = GuardrailChain([status_rule("ok", "ALLOW"), FunctionRule("broken", broken)])

        with pytest.raises(ZeroDivisionError):
            chain.evaluate(pricing_context)

    def test_outcome_serializes(self, pricing_context):
        """to_dict carries statuses as plain strings."""
        chain = GuardrailChain([status_rule("a", "WARN")])

        data = chain.evaluate(pricing_context).to_dict()

        assert data["final_status"] == "ALLOW"
        assert data["results"][0]["status"] == "WARN"
        assert data["results"][0]["sequence_no"] == 1


# ============================================================
# TEST: FUNCTION RULE ADAPTER
# ============================================================

class TestFunctionRule:
    """Tests for the callable adapter."""

    def test_rule_result_code_is_overridden(self, pricing_context):
        """The adapter's code wins over the callable's."""
        rule = FunctionRule("outer", lambda ctx: RuleResult.block("inner", "nope", limit=3))

        result = rule.evaluate(pricing_context)

        assert result.code == "outer"
        assert result.status == GuardrailStatus.BLOCK
        assert result.meta == {"limit": 3}

    def test_dict_result_defaults_to_allow(self, pricing_context):
        """A dict without status is ALLOW."""
        rule = FunctionRule("loose", lambda ctx: {"message": "fine"})

        result = rule.evaluate(pricing_context)

        assert result.status == GuardrailStatus.ALLOW
        assert result.message == "fine"

    def test_unknown_status_raises(self, pricing_context):
        """Statuses outside ALLOW/WARN/BLOCK are rejected."""
        rule = FunctionRule("odd", lambda ctx: {"status": "MAYBE"})

        with pytest.raises(ValueError):
            rule.evaluate(pricing_context)


# ============================================================
# TEST: SAMPLE RULES
# ============================================================

class TestSampleRules:
    """Tests for the bundled rule building blocks."""

    def test_required_signals_block_when_missing(self, pricing_context):
        rule = RequiredSignalsRule(["margin_pct", "elasticity"])

        result = rule.evaluate(pricing_context)

        assert result.status == GuardrailStatus.BLOCK
        assert result.meta["missing"] == ["elasticity"]

    def test_required_signals_allow_when_present(self, pricing_context):
        rule = RequiredSignalsRule(["margin_pct", "current_price"])

        assert rule.evaluate(pricing_context).status == GuardrailStatus.ALLOW

    def test_required_signals_need_names(self):
        with pytest.raises(ConfigurationError):
            RequiredSignalsRule([])

    def test_margin_floor(self, pricing_context):
        assert MarginFloorRule(20.0).evaluate(pricing_context).status == GuardrailStatus.ALLOW
        assert MarginFloorRule(30.0).evaluate(pricing_context).status == GuardrailStatus.BLOCK

    def test_margin_floor_warns_without_signal(self):
        context = CandidateContext(type="pricing", sku="SKU-1")

        assert MarginFloorRule(10.0).evaluate(context).status == GuardrailStatus.WARN

    def test_price_delta_cap(self, pricing_context):
        """10 -> 10.5 is a 5% change."""
        assert PriceDeltaCapRule(max_pct=15.0).evaluate(pricing_context).status == GuardrailStatus.ALLOW
        assert PriceDeltaCapRule(max_pct=4.0).evaluate(pricing_context).status == GuardrailStatus.BLOCK
        assert PriceDeltaCapRule(max_pct=15.0, warn_pct=2.0).evaluate(pricing_context).status == GuardrailStatus.WARN

    def test_price_delta_cap_ignores_transfers(self):
        context = CandidateContext(type="transfer", sku="SKU-1")

        assert PriceDeltaCapRule().evaluate(context).status == GuardrailStatus.ALLOW

    def test_price_delta_cap_blocks_missing_prices(self):
        context = CandidateContext(type="pricing", sku="SKU-1", signals={"current_price": 0})

        assert PriceDeltaCapRule().evaluate(context).status == GuardrailStatus.BLOCK

    def test_cooloff_rule_reads_lookup(self, pricing_context):
        """The rule only queries the lookup."""
        lookup = MagicMock()
        lookup.in_window.return_value = True

        result = CooloffRule(lookup, hours=12).evaluate(pricing_context)

        assert result.status == GuardrailStatus.BLOCK
        lookup.in_window.assert_called_once_with("SKU-100", "pricing", 12)
        assert not lookup.record.called
        assert not lookup.try_acquire.called

    def test_cooloff_rule_can_warn(self, pricing_context):
        lookup = MagicMock()
        lookup.in_window.return_value = True

        result = CooloffRule(lookup, blocking=False).evaluate(pricing_context)

        assert result.status == GuardrailStatus.WARN

    def test_cooloff_rule_allows_outside_window(self, pricing_context):
        lookup = MagicMock()
        lookup.in_window.return_value = False

        assert CooloffRule(lookup).evaluate(pricing_context).status == GuardrailStatus.ALLOW
