"""
Guardrails Package.

Ordered rule evaluation producing a per-rule trace.
"""

from .base import GuardrailRule, FunctionRule
from .chain import GuardrailChain
from .rules import (
    RequiredSignalsRule,
    MarginFloorRule,
    PriceDeltaCapRule,
    CooloffRule,
)

__all__ = [
    "GuardrailRule",
    "FunctionRule",
    "GuardrailChain",
    "RequiredSignalsRule",
    "MarginFloorRule",
    "PriceDeltaCapRule",
    "CooloffRule",
]
