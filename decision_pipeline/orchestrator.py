"""
Decision Pipeline - Policy Orchestrator.

============================================================
PURPOSE
============================================================
Pipeline controller for one candidate decision.

    evaluating_guardrails
        -> blocked                      (terminal)
        -> scoring -> persisted
            -> auto_apply_attempted     (pricing + auto band)
            -> complete

============================================================
FAILURE SEMANTICS
============================================================
- Guardrail BLOCK is a result (status="blocked"), not an error
- Proposal and guardrail trace are written in one transaction;
  persistence failures raise PersistenceError
- Audit writes are best-effort: logged, never raised
- Rule and scoring errors are defects and propagate

============================================================
"""

from typing import Any, Dict, Mapping, Optional, Tuple
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import PersistenceError

from .config import PolicyConfig
from .cooloff import CooloffTracker
from .guardrails.chain import GuardrailChain
from .repository import DecisionStore
from .scoring import ScoringEngine
from .types import (
    AuditEffect,
    Band,
    BLOCKED_STATUS,
    CandidateContext,
    DecisionType,
    FeatureVector,
    GuardrailOutcome,
    OrchestratorResult,
)


logger = logging.getLogger(__name__)


AUTO_REASON_APPLIED = "pilot_auto_band"
AUTO_REASON_DISABLED = "auto_apply_disabled"
AUTO_REASON_COOLOFF = "cooloff_active"

PROPOSAL_STATUS_APPLIED = "applied"


class PolicyOrchestrator:
    """
    Sequences guardrails, scoring, persistence and the
    pricing auto-apply pilot.

    Usage:
        orchestrator = PolicyOrchestrator(chain, ScoringEngine(), store)
        result = orchestrator.process(context, {"margin_uplift": 0.4})
        if result.is_blocked:
            ...
    """

    def __init__(
        self,
        chain: GuardrailChain,
        scoring: ScoringEngine,
        store: DecisionStore,
        config: Optional[PolicyConfig] = None,
        cooloff: Optional[CooloffTracker] = None,
    ):
        self.chain = chain
        self.scoring = scoring
        self.store = store
        self.config = config or PolicyConfig()
        self.cooloff = cooloff or CooloffTracker(store, self.config.cooloff_hours)

    # ============================================================
    # PUBLIC API
    # ============================================================

    def process(self, context: CandidateContext, features: FeatureVector) -> OrchestratorResult:
        """
        Run the pipeline for one candidate.

        Args:
            context: Candidate decision
            features: Feature contributions for scoring

        Returns:
            OrchestratorResult

        Raises:
            PersistenceError: if the proposal or its trace cannot be stored
        """
        run_id = context.run_id or uuid.uuid4().hex

        outcome = self.chain.evaluate(context)
        if outcome.is_blocked:
            return self._handle_blocked(context, features, outcome, run_id)

        score = self.scoring.score(features)

        proposal_id = self._persist_proposal(
            context,
            band=score.band,
            score=score.score,
            features=score.features,
            outcome=outcome,
            run_id=run_id,
        )

        self._audit(
            proposal_id,
            context,
            AuditEffect.PROPOSED,
            {"run_id": run_id, "band": score.band.value, "score": score.score},
        )

        auto_applied, auto_reason = self._attempt_auto_apply(context, score.band, proposal_id, run_id)

        logger.info(
            f"Decision {context.type.value} sku={context.sku}: band={score.band.value} "
            f"score={score.score:.4f} proposal={proposal_id} auto_applied={auto_applied}"
        )

        return OrchestratorResult(
            status=score.band.value,
            guardrail=outcome,
            run_id=run_id,
            score=score,
            proposal_id=proposal_id,
            auto_applied=auto_applied,
            auto_reason=auto_reason,
        )

    # ============================================================
    # STAGES
    # ============================================================

    def _handle_blocked(
        self,
        context: CandidateContext,
        features: FeatureVector,
        outcome: GuardrailOutcome,
        run_id: str,
    ) -> OrchestratorResult:
        logger.info(f"Decision {context.type.value} sku={context.sku} blocked by {outcome.blocked_by}")

        proposal_id = None
        if self.config.persist_blocked:
            proposal_id = self._persist_proposal(
                context,
                band=Band.DISCARD,
                score=None,
                features=dict(features or {}),
                outcome=outcome,
                run_id=run_id,
            )
            self._audit(
                proposal_id,
                context,
                AuditEffect.REJECTED,
                {"run_id": run_id, "blocked_by": outcome.blocked_by},
            )

        return OrchestratorResult(
            status=BLOCKED_STATUS,
            guardrail=outcome,
            run_id=run_id,
            proposal_id=proposal_id,
        )

    def _persist_proposal(
        self,
        context: CandidateContext,
        band: Band,
        score: Optional[float],
        features: Mapping[str, Any],
        outcome: GuardrailOutcome,
        run_id: str,
    ) -> int:
        try:
            with self.store.atomic():
                proposal_id = self.store.insert_proposal(
                    type=context.type.value,
                    band=band.value,
                    score=score,
                    features=features,
                    blocked_by=outcome.blocked_by,
                    context_hash=context.fingerprint(),
                    run_id=run_id,
                    sku=context.sku,
                )
                self.store.insert_guardrail_trace_batch(proposal_id, run_id, outcome.results)
        except PersistenceError as e:
            logger.error(f"Failed to persist proposal for sku={context.sku}: {e.to_log_format()}")
            raise
        except SQLAlchemyError as e:
            error = PersistenceError(
                f"Proposal write failed: {e}",
                operation="insert_proposal",
                table="proposals",
                cause=e,
            )
            logger.error(f"Failed to persist proposal for sku={context.sku}: {error.to_log_format()}")
            raise error from e

        return proposal_id

    def _attempt_auto_apply(
        self,
        context: CandidateContext,
        band: Band,
        proposal_id: int,
        run_id: str,
    ) -> Tuple[bool, Optional[str]]:
        if context.type != DecisionType.PRICING or band != Band.AUTO:
            return False, None

        if not self.config.auto_apply_pricing:
            return False, AUTO_REASON_DISABLED

        action_type = context.type.value
        if not self.cooloff.try_acquire(proposal_id, context.sku, action_type, self.config.cooloff_hours):
            return False, AUTO_REASON_COOLOFF

        self.store.mark_proposal_status(proposal_id, PROPOSAL_STATUS_APPLIED)
        self._audit(
            proposal_id,
            context,
            AuditEffect.APPLIED,
            {"run_id": run_id, "auto_reason": AUTO_REASON_APPLIED},
        )

        logger.info(f"Auto-applied {action_type} proposal {proposal_id} for sku={context.sku}")
        return True, AUTO_REASON_APPLIED

    def _audit(
        self,
        proposal_id: Optional[int],
        context: CandidateContext,
        effect: AuditEffect,
        metadata: Dict[str, Any],
    ) -> None:
        try:
            self.store.audit_record(proposal_id, context.sku, context.type.value, effect.value, metadata)
        except (PersistenceError, SQLAlchemyError) as e:
            logger.warning(f"Audit write failed for proposal {proposal_id} ({effect.value}): {e}")
