"""
Guardrails - Base Rule.

============================================================
PURPOSE
============================================================
Single capability every guardrail implements:

    evaluate(context) -> RuleResult

Rules are:
- Pure (read the context and injected read-only lookups only)
- Deterministic (same input = same output)
- Not wrapped: a rule that raises is a defect and the error
  propagates to the caller

============================================================
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Union

from ..types import CandidateContext, GuardrailStatus, RuleResult


class GuardrailRule(ABC):
    """
    Abstract base class for guardrail rules.

    Subclasses set a stable ``code`` and implement ``evaluate``.
    """

    code: str = ""
    """Stable rule identifier written to the guardrail trace."""

    description: str = ""
    """What this rule checks."""

    @abstractmethod
    def evaluate(self, context: CandidateContext) -> RuleResult:
        """
        Evaluate the rule against a candidate context.

        Args:
            context: Candidate decision

        Returns:
            RuleResult with this rule's code
        """
        pass

    def allow(self, message: str = "", **meta: Any) -> RuleResult:
        return RuleResult.allow(self.code, message, **meta)

    def warn(self, message: str, **meta: Any) -> RuleResult:
        return RuleResult.warn(self.code, message, **meta)

    def block(self, message: str, **meta: Any) -> RuleResult:
        return RuleResult.block(self.code, message, **meta)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code!r}>"


RuleFunction = Callable[[CandidateContext], Union[RuleResult, Mapping[str, Any]]]


class FunctionRule(GuardrailRule):
    """
    Adapts a plain callable into a GuardrailRule.

    The callable may return a RuleResult or a dict of the form
    ``{"status": "ALLOW|WARN|BLOCK", "message": ..., "meta": {...}}``.
    The rule code always comes from the adapter.
    """

    def __init__(self, code: str, fn: RuleFunction, description: str = ""):
        self.code = code
        self.description = description
        self._fn = fn

    def evaluate(self, context: CandidateContext) -> RuleResult:
        raw = self._fn(context)
        if isinstance(raw, RuleResult):
            if raw.code == self.code:
                return raw
            return RuleResult(code=self.code, status=raw.status, message=raw.message, meta=raw.meta)
        return RuleResult(
            code=self.code,
            status=GuardrailStatus(raw.get("status", GuardrailStatus.ALLOW.value)),
            message=str(raw.get("message", "")),
            meta=raw.get("meta") or {},
        )
