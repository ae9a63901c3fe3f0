"""
Decision Pipeline Package.

============================================================
PURPOSE
============================================================
Guardrail evaluation, feature scoring and banding, cooloff
gated auto-apply, audit and drift persistence for retail
transfer and pricing decisions.

============================================================
USAGE
============================================================
    from decision_pipeline import (
        CandidateContext, GuardrailChain, RequiredSignalsRule,
        ScoringEngine, SqlDecisionRepository, PolicyOrchestrator,
    )

    store = SqlDecisionRepository(session_factory)
    chain = GuardrailChain([RequiredSignalsRule(["margin_pct"])])
    orchestrator = PolicyOrchestrator(chain, ScoringEngine(), store)

    result = orchestrator.process(
        CandidateContext(type="pricing", sku="SKU-1", signals={"margin_pct": 22.0}),
        {"margin_uplift": 0.6, "risk_penalty": -0.1},
    )

============================================================
"""

from .types import (
    DecisionType,
    Band,
    GuardrailStatus,
    AuditEffect,
    DriftStatus,
    FeatureVector,
    CandidateContext,
    RuleResult,
    GuardrailTraceEntry,
    GuardrailOutcome,
    ScoreResult,
    PsiBucket,
    PsiResult,
    BLOCKED_STATUS,
    OrchestratorResult,
)
from .config import (
    ScoringThresholds,
    PolicyConfig,
    DriftConfig,
    AllocatorConfig,
    TransferPolicyConfig,
    PipelineConfig,
    get_default_config,
    get_pilot_config,
    load_config_from_dict,
    load_config_from_env,
)
from .guardrails import (
    GuardrailRule,
    FunctionRule,
    GuardrailChain,
    RequiredSignalsRule,
    MarginFloorRule,
    PriceDeltaCapRule,
    CooloffRule,
)
from .scoring import ScoringEngine
from .idempotency import IdempotencyKey
from .repository import DecisionStore, SqlDecisionRepository
from .cooloff import CooloffTracker
from .drift import PsiCalculator, DriftMonitor
from .orchestrator import PolicyOrchestrator


__all__ = [
    # Types
    "DecisionType",
    "Band",
    "GuardrailStatus",
    "AuditEffect",
    "DriftStatus",
    "FeatureVector",
    "CandidateContext",
    "RuleResult",
    "GuardrailTraceEntry",
    "GuardrailOutcome",
    "ScoreResult",
    "PsiBucket",
    "PsiResult",
    "BLOCKED_STATUS",
    "OrchestratorResult",
    # Config
    "ScoringThresholds",
    "PolicyConfig",
    "DriftConfig",
    "AllocatorConfig",
    "TransferPolicyConfig",
    "PipelineConfig",
    "get_default_config",
    "get_pilot_config",
    "load_config_from_dict",
    "load_config_from_env",
    # Guardrails
    "GuardrailRule",
    "FunctionRule",
    "GuardrailChain",
    "RequiredSignalsRule",
    "MarginFloorRule",
    "PriceDeltaCapRule",
    "CooloffRule",
    # Components
    "ScoringEngine",
    "IdempotencyKey",
    "DecisionStore",
    "SqlDecisionRepository",
    "CooloffTracker",
    "PsiCalculator",
    "DriftMonitor",
    "PolicyOrchestrator",
]
