"""
Decision Pipeline - Scoring Engine.

============================================================
PURPOSE
============================================================
Collapse a feature vector of signed contributions into a
normalized score in [0, 1] and a decision band.

============================================================
FORMULA
============================================================
    total    = sum(v)
    abs_sum  = sum(|v|)
    norm     = clamp(total / max(abs_sum, 1), -1, 1)
    score    = (norm + 1) / 2

    band = auto    if score >= auto_apply_min
           propose if score >= propose_min
           discard otherwise

An empty vector scores 0.5 (neutral).

============================================================
"""

from typing import Dict, Optional
import logging
import math
import numbers

from core.exceptions import ContextValidationError

from .config import ScoringThresholds
from .types import Band, FeatureVector, ScoreResult


logger = logging.getLogger(__name__)


class ScoringEngine:
    """
    Deterministic feature scorer.

    Thresholds are fixed at construction.
    """

    def __init__(self, thresholds: Optional[ScoringThresholds] = None):
        self.thresholds = thresholds or ScoringThresholds()

    def score(self, features: FeatureVector) -> ScoreResult:
        """
        Score a feature vector.

        Args:
            features: Named signed contributions

        Returns:
            ScoreResult with score, band and the thresholds used

        Raises:
            ContextValidationError: if a value is not a finite number
        """
        values = self._validate(features)

        total = sum(values.values())
        abs_sum = sum(abs(v) for v in values.values())
        norm = max(-1.0, min(1.0, total / max(abs_sum, 1.0)))
        score = (norm + 1.0) / 2.0

        band = self.band_for(score)

        logger.debug(f"Scored {len(values)} features: score={score:.4f} band={band.value}")

        return ScoreResult(
            score=score,
            band=band,
            auto_apply_min=self.thresholds.auto_apply_min,
            propose_min=self.thresholds.propose_min,
            features=values,
        )

    def band_for(self, score: float) -> Band:
        """Map a normalized score to its band."""
        if score >= self.thresholds.auto_apply_min:
            return Band.AUTO
        if score >= self.thresholds.propose_min:
            return Band.PROPOSE
        return Band.DISCARD

    @staticmethod
    def _validate(features: FeatureVector) -> Dict[str, float]:
        values: Dict[str, float] = {}
        for name, value in features.items():
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise ContextValidationError(
                    f"Feature {name!r} is not numeric",
                    field=name,
                    value=value,
                )
            value = float(value)
            if not math.isfinite(value):
                raise ContextValidationError(f"Feature {name!r} is not finite", field=name, value=value)
            values[str(name)] = value
        return values
