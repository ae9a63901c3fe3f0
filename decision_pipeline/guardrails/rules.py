"""
Guardrails - Sample Rules.

============================================================
PURPOSE
============================================================
Reusable building blocks for assembling a guardrail chain.

RequiredSignalsRule  - required signals must be present
MarginFloorRule      - projected margin must stay above a floor
PriceDeltaCapRule    - price change must stay within a cap
CooloffRule          - subject must not be inside a cooloff window

============================================================
"""

from typing import Any, Iterable, Optional, Protocol

from core.exceptions import ConfigurationError

from ..types import CandidateContext, DecisionType, RuleResult
from .base import GuardrailRule


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ============================================================
# REQUIRED SIGNALS
# ============================================================

class RequiredSignalsRule(GuardrailRule):
    """BLOCK when any of the named signals is missing or empty."""

    code = "required_signals"
    description = "Required signals must be present"

    def __init__(self, required: Iterable[str], code: Optional[str] = None):
        self.required = tuple(required)
        if not self.required:
            raise ConfigurationError("RequiredSignalsRule needs at least one signal name")
        if code:
            self.code = code

    def evaluate(self, context: CandidateContext) -> RuleResult:
        missing = [
            name for name in self.required
            if context.signal(name) is None or context.signal(name) == ""
        ]
        if missing:
            return self.block(
                f"Missing required signals: {', '.join(missing)}",
                missing=missing,
            )
        return self.allow("All required signals present")


# ============================================================
# MARGIN FLOOR
# ============================================================

class MarginFloorRule(GuardrailRule):
    """
    BLOCK when the projected margin falls below a floor.

    Reads ``margin_pct`` from the signals. WARN when the signal
    is absent, since the rule cannot judge it.
    """

    code = "margin_floor"
    description = "Projected margin must stay above the floor"

    def __init__(self, min_margin_pct: float, signal_name: str = "margin_pct"):
        self.min_margin_pct = float(min_margin_pct)
        self.signal_name = signal_name

    def evaluate(self, context: CandidateContext) -> RuleResult:
        margin = _as_float(context.signal(self.signal_name))
        if margin is None:
            return self.warn(f"Signal {self.signal_name} unavailable", signal=self.signal_name)

        if margin < self.min_margin_pct:
            return self.block(
                f"Margin {margin:.2f}% below floor {self.min_margin_pct:.2f}%",
                margin_pct=margin,
                min_margin_pct=self.min_margin_pct,
            )
        return self.allow(margin_pct=margin)


# ============================================================
# PRICE DELTA CAP
# ============================================================

class PriceDeltaCapRule(GuardrailRule):
    """
    Cap the relative price change of a pricing decision.

    Reads ``current_price`` and ``proposed_price``. Changes above
    ``warn_pct`` WARN, above ``max_pct`` BLOCK. Transfers pass.
    """

    code = "price_delta_cap"
    description = "Relative price change must stay within the cap"

    def __init__(self, max_pct: float = 15.0, warn_pct: Optional[float] = None):
        if max_pct <= 0:
            raise ConfigurationError("max_pct must be positive", config_key="max_pct", actual_value=max_pct)
        self.max_pct = float(max_pct)
        self.warn_pct = float(warn_pct) if warn_pct is not None else None

    def evaluate(self, context: CandidateContext) -> RuleResult:
        if context.type != DecisionType.PRICING:
            return self.allow("Not a pricing decision")

        current = _as_float(context.signal("current_price"))
        proposed = _as_float(context.signal("proposed_price"))
        if current is None or proposed is None or current <= 0:
            return self.block("Price signals missing or invalid")

        delta_pct = abs(proposed - current) / current * 100.0
        meta = {"delta_pct": round(delta_pct, 4), "max_pct": self.max_pct}

        if delta_pct > self.max_pct:
            return self.block(f"Price change {delta_pct:.2f}% exceeds cap {self.max_pct:.2f}%", **meta)
        if self.warn_pct is not None and delta_pct > self.warn_pct:
            return self.warn(f"Price change {delta_pct:.2f}% above {self.warn_pct:.2f}%", **meta)
        return self.allow(**meta)


# ============================================================
# COOLOFF
# ============================================================

class CooloffLookup(Protocol):
    """Read-only cooloff view (CooloffTracker satisfies it)."""

    def in_window(self, subject: str, action_type: str, hours: int) -> bool:
        ...


class CooloffRule(GuardrailRule):
    """
    Flag subjects that were auto-applied inside the cooloff window.

    The rule only reads; acquiring the window stays with the
    orchestrator.
    """

    code = "cooloff"
    description = "Subject must not be inside a cooloff window"

    def __init__(self, lookup: CooloffLookup, hours: int = 24, blocking: bool = True):
        self.lookup = lookup
        self.hours = hours
        self.blocking = blocking

    def evaluate(self, context: CandidateContext) -> RuleResult:
        action_type = context.type.value
        if not self.lookup.in_window(context.sku, action_type, self.hours):
            return self.allow()

        message = f"{context.sku} applied within the last {self.hours}h"
        if self.blocking:
            return self.block(message, hours=self.hours)
        return self.warn(message, hours=self.hours)
