"""
Guardrails - Chain.

============================================================
PURPOSE
============================================================
Evaluates an ordered list of guardrail rules against one
candidate context.

============================================================
CRITICAL BEHAVIOR
============================================================
1. REGISTRATION ORDER
   - Rules run strictly in the order they were registered

2. NO SHORT-CIRCUIT
   - Every rule runs so the trace is complete

3. AGGREGATION
   - final_status = BLOCK if any rule blocks, else ALLOW
   - blocked_by = code of the first blocking rule

4. NO SIDE EFFECTS
   - The chain writes nothing; persistence is the
     orchestrator's job

============================================================
"""

from typing import Iterable, List, Optional
import logging

from core.exceptions import ConfigurationError

from ..types import (
    CandidateContext,
    GuardrailOutcome,
    GuardrailStatus,
    GuardrailTraceEntry,
)
from .base import GuardrailRule


logger = logging.getLogger(__name__)


class GuardrailChain:
    """
    Ordered guardrail evaluator.

    Usage:
        chain = GuardrailChain([RequiredSignalsRule(["margin_pct"])])
        chain.register(MarginFloorRule(min_margin_pct=5.0))
        outcome = chain.evaluate(context)
        if outcome.is_blocked:
            ...
    """

    def __init__(self, rules: Optional[Iterable[GuardrailRule]] = None):
        self._rules: List[GuardrailRule] = []
        for rule in rules or ():
            self.register(rule)

    def register(self, rule: GuardrailRule) -> "GuardrailChain":
        """
        Append a rule to the chain.

        Raises:
            ConfigurationError: if the rule has no code or the code
                is already registered
        """
        if not isinstance(rule, GuardrailRule):
            raise ConfigurationError(f"Not a guardrail rule: {rule!r}")
        if not rule.code:
            raise ConfigurationError(f"Guardrail rule {type(rule).__name__} has no code")
        if any(existing.code == rule.code for existing in self._rules):
            raise ConfigurationError(
                f"Duplicate guardrail code: {rule.code}",
                config_key="code",
                actual_value=rule.code,
            )
        self._rules.append(rule)
        return self

    @property
    def rules(self) -> List[GuardrailRule]:
        """Registered rules, in evaluation order."""
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def evaluate(self, context: CandidateContext) -> GuardrailOutcome:
        """
        Run every rule and aggregate the results.

        Args:
            context: Candidate decision

        Returns:
            GuardrailOutcome with the full trace
        """
        entries: List[GuardrailTraceEntry] = []
        blocked_by: Optional[str] = None

        for sequence_no, rule in enumerate(self._rules, start=1):
            result = rule.evaluate(context)
            entry = GuardrailTraceEntry(
                sequence_no=sequence_no,
                rule_code=rule.code,
                status=result.status,
                message=result.message,
                metadata=dict(result.meta),
            )
            entries.append(entry)

            if entry.is_blocking and blocked_by is None:
                blocked_by = rule.code
                logger.warning(
                    f"Guardrail {rule.code} blocked sku={context.sku}: {result.message}"
                )

        final_status = GuardrailStatus.BLOCK if blocked_by else GuardrailStatus.ALLOW

        logger.info(
            f"Guardrail chain result: final_status={final_status.value} "
            f"blocked_by={blocked_by} rules={len(entries)}"
        )

        return GuardrailOutcome(
            final_status=final_status,
            blocked_by=blocked_by,
            results=tuple(entries),
        )
