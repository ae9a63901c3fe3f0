"""
Decision Pipeline - Type Definitions.

============================================================
PURPOSE
============================================================
Value objects shared by the guardrail chain, the scoring
engine, the drift monitor and the policy orchestrator.

============================================================
DESIGN PRINCIPLES
============================================================
1. Results are immutable once produced
2. Construction validates; nothing is silently corrected
3. Every output type has a JSON-serializable to_dict()

============================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
import hashlib
import json

from core.exceptions import ContextValidationError


# ============================================================
# ENUMERATIONS
# ============================================================

class DecisionType(str, Enum):
    """Kind of operational decision being evaluated."""

    TRANSFER = "transfer"
    PRICING = "pricing"


class Band(str, Enum):
    """Decision band derived from a normalized score."""

    DISCARD = "discard"
    PROPOSE = "propose"
    AUTO = "auto"


class GuardrailStatus(str, Enum):
    """Outcome of a single guardrail rule."""

    ALLOW = "ALLOW"
    WARN = "WARN"
    BLOCK = "BLOCK"


class AuditEffect(str, Enum):
    """State transition recorded in the action audit log."""

    PROPOSED = "proposed"
    APPLIED = "applied"
    REJECTED = "rejected"


class DriftStatus(str, Enum):
    """PSI classification."""

    NORMAL = "normal"
    WARN = "warn"
    CRITICAL = "critical"


FeatureVector = Mapping[str, float]
"""Named signed contributions consumed by the scoring engine."""


# ============================================================
# INPUT TYPES
# ============================================================

@dataclass(frozen=True)
class CandidateContext:
    """
    Candidate decision handed to the orchestrator.

    Ephemeral: never persisted verbatim, only its fingerprint.
    """

    type: DecisionType
    """transfer or pricing."""

    sku: str
    """Subject SKU. Also the cooloff subject."""

    store_id: Optional[str] = None
    """Destination / priced store."""

    hub_id: Optional[str] = None
    """Source hub for transfers."""

    signals: Mapping[str, Any] = field(default_factory=dict)
    """Raw signal values read by guardrail rules."""

    run_id: Optional[str] = None
    """Batch correlation id; generated by the orchestrator if absent."""

    def __post_init__(self) -> None:
        try:
            decision_type = DecisionType(self.type)
        except ValueError:
            raise ContextValidationError(
                f"Unknown decision type: {self.type!r}",
                field="type",
                value=self.type,
            ) from None
        object.__setattr__(self, "type", decision_type)

        if not isinstance(self.sku, str) or not self.sku.strip():
            raise ContextValidationError("Candidate context requires a sku", field="sku", value=self.sku)
        object.__setattr__(self, "sku", self.sku.strip())

        if not isinstance(self.signals, Mapping):
            raise ContextValidationError(
                "signals must be a mapping",
                field="signals",
                value=type(self.signals).__name__,
            )
        object.__setattr__(self, "signals", dict(self.signals))

    def signal(self, name: str, default: Any = None) -> Any:
        """Read a raw signal value."""
        return self.signals.get(name, default)

    def fingerprint(self) -> str:
        """SHA-256 of the decision-relevant fields (run_id excluded)."""
        canonical = json.dumps(
            {
                "type": self.type.value,
                "sku": self.sku,
                "store_id": self.store_id,
                "hub_id": self.hub_id,
                "signals": self.signals,
            },
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CandidateContext":
        """Build from a loose dict payload."""
        return cls(
            type=payload.get("type", DecisionType.PRICING.value),
            sku=payload.get("sku", ""),
            store_id=payload.get("store_id"),
            hub_id=payload.get("hub_id"),
            signals=payload.get("signals") or {},
            run_id=payload.get("run_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "sku": self.sku,
            "store_id": self.store_id,
            "hub_id": self.hub_id,
            "signals": dict(self.signals),
            "run_id": self.run_id,
        }


# ============================================================
# GUARDRAIL TYPES
# ============================================================

@dataclass(frozen=True)
class RuleResult:
    """Result of evaluating one guardrail rule."""

    code: str
    status: GuardrailStatus
    message: str = ""
    meta: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", GuardrailStatus(self.status))
        object.__setattr__(self, "meta", dict(self.meta or {}))

    @classmethod
    def allow(cls, code: str, message: str = "", **meta: Any) -> "RuleResult":
        return cls(code=code, status=GuardrailStatus.ALLOW, message=message, meta=meta)

    @classmethod
    def warn(cls, code: str, message: str, **meta: Any) -> "RuleResult":
        return cls(code=code, status=GuardrailStatus.WARN, message=message, meta=meta)

    @classmethod
    def block(cls, code: str, message: str, **meta: Any) -> "RuleResult":
        return cls(code=code, status=GuardrailStatus.BLOCK, message=message, meta=meta)


@dataclass(frozen=True)
class GuardrailTraceEntry:
    """One row of a guardrail trace."""

    sequence_no: int
    rule_code: str
    status: GuardrailStatus
    message: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_blocking(self) -> bool:
        return self.status == GuardrailStatus.BLOCK

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "sequence_no": self.sequence_no,
            "rule_code": self.rule_code,
            "status": self.status.value,
            "message": self.message,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class GuardrailOutcome:
    """Aggregate result of a full chain evaluation."""

    final_status: GuardrailStatus
    blocked_by: Optional[str]
    results: Tuple[GuardrailTraceEntry, ...] = ()

    @property
    def is_blocked(self) -> bool:
        return self.final_status == GuardrailStatus.BLOCK

    @property
    def warnings(self) -> Tuple[GuardrailTraceEntry, ...]:
        return tuple(r for r in self.results if r.status == GuardrailStatus.WARN)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "final_status": self.final_status.value,
            "blocked_by": self.blocked_by,
            "results": [r.to_dict() for r in self.results],
        }


# ============================================================
# SCORING TYPES
# ============================================================

@dataclass(frozen=True)
class ScoreResult:
    """Normalized score plus the band it falls in."""

    score: float
    band: Band
    auto_apply_min: float
    propose_min: float
    features: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "features", dict(self.features))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "score": self.score,
            "band": self.band.value,
            "auto_apply_min": self.auto_apply_min,
            "propose_min": self.propose_min,
            "features": dict(self.features),
        }


# ============================================================
# DRIFT TYPES
# ============================================================

@dataclass(frozen=True)
class PsiBucket:
    """Per-bucket PSI contribution."""

    bucket: str
    expected: float
    observed: float
    contribution: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket": self.bucket,
            "expected": self.expected,
            "observed": self.observed,
            "contribution": self.contribution,
        }


@dataclass(frozen=True)
class PsiResult:
    """Population Stability Index over a bucketed distribution."""

    psi: float
    buckets: Tuple[PsiBucket, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "psi": self.psi,
            "buckets": [b.to_dict() for b in self.buckets],
        }


# ============================================================
# ORCHESTRATOR OUTPUT
# ============================================================

BLOCKED_STATUS = "blocked"


@dataclass(frozen=True)
class OrchestratorResult:
    """
    Structured result of one orchestrator run.

    status is "blocked" or the band value.
    """

    status: str
    guardrail: GuardrailOutcome
    run_id: str
    score: Optional[ScoreResult] = None
    proposal_id: Optional[int] = None
    auto_applied: bool = False
    auto_reason: Optional[str] = None

    @property
    def is_blocked(self) -> bool:
        return self.status == BLOCKED_STATUS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status,
            "guardrail": self.guardrail.to_dict(),
            "score": self.score.to_dict() if self.score else None,
            "run_id": self.run_id,
            "proposal_id": self.proposal_id,
            "auto_applied": self.auto_applied,
            "auto_reason": self.auto_reason,
        }
