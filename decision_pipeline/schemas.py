"""
Pydantic Schemas for the Decision Pipeline.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .types import CandidateContext, DecisionType


# =============================================================
# INBOUND
# =============================================================

class CandidatePayload(BaseModel):
    """Candidate decision as supplied by a feature/candidate source."""
    type: DecisionType
    sku: str = Field(..., min_length=1, max_length=64)
    store_id: Optional[str] = None
    hub_id: Optional[str] = None
    signals: Dict[str, Any] = Field(default_factory=dict)
    features: Dict[str, float] = Field(default_factory=dict)
    run_id: Optional[str] = Field(default=None, max_length=64)

    def to_context(self) -> CandidateContext:
        return CandidateContext(
            type=self.type,
            sku=self.sku,
            store_id=self.store_id,
            hub_id=self.hub_id,
            signals=self.signals,
            run_id=self.run_id,
        )


class DriftSample(BaseModel):
    """Bucketed distributions for one PSI check."""
    feature_set: str = Field(..., min_length=1, max_length=64)
    expected: Dict[str, float]
    observed: Dict[str, float]


# =============================================================
# OUTBOUND
# =============================================================

class GuardrailTraceResponse(BaseModel):
    """Stored guardrail trace row."""
    sequence_no: int
    rule_code: str
    status: str
    message: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProposalResponse(BaseModel):
    """Stored proposal."""
    id: int
    type: str
    band: str
    score: Optional[float] = None
    feature_json: Dict[str, Any] = Field(default_factory=dict)
    blocked_by: Optional[str] = None
    context_hash: str
    run_id: str
    sku: str
    status: str
    created_at: datetime
    trace: List[GuardrailTraceResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True
