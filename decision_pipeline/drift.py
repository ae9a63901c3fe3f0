"""
Decision Pipeline - Drift Monitor.

============================================================
PURPOSE
============================================================
Population Stability Index between an expected and an
observed bucketed distribution:

    psi = sum over buckets of (o - e) * ln(o / e)

Each fraction is floored at epsilon so empty buckets neither
divide by zero nor take log(0).

Monitoring only. A drift status never blocks a decision by
itself; callers wire it into their own alerting.

============================================================
"""

from typing import Mapping, Optional, Tuple
import logging
import math

from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import PersistenceError

from .config import DriftConfig
from .repository import DecisionStore
from .schemas import DriftSample
from .types import DriftStatus, PsiBucket, PsiResult


logger = logging.getLogger(__name__)


class PsiCalculator:
    """Pure PSI computation."""

    def __init__(self, epsilon: float = 1e-9):
        self.epsilon = epsilon

    def compute(self, expected: Mapping[str, float], observed: Mapping[str, float]) -> PsiResult:
        """
        Compute PSI over the sorted union of bucket keys.

        Args:
            expected: bucket -> fraction (baseline)
            observed: bucket -> fraction (current)

        Returns:
            PsiResult with per-bucket contributions
        """
        buckets = []
        total = 0.0
        for key in sorted(set(expected) | set(observed), key=str):
            e = max(float(expected.get(key, 0.0)), self.epsilon)
            o = max(float(observed.get(key, 0.0)), self.epsilon)
            contribution = (o - e) * math.log(o / e)
            total += contribution
            buckets.append(PsiBucket(bucket=str(key), expected=e, observed=o, contribution=contribution))

        return PsiResult(psi=total, buckets=tuple(buckets))


class DriftMonitor:
    """
    Computes, classifies and records PSI per feature set.

    Writes are best-effort: a failed insert is logged and the
    computed result is still returned.
    """

    def __init__(self, store: Optional[DecisionStore] = None, config: Optional[DriftConfig] = None):
        self._store = store
        self.config = config or DriftConfig()
        self.calculator = PsiCalculator(self.config.epsilon)

    def classify(self, psi: float) -> DriftStatus:
        if psi >= self.config.psi_critical:
            return DriftStatus.CRITICAL
        if psi >= self.config.psi_warn:
            return DriftStatus.WARN
        return DriftStatus.NORMAL

    def evaluate(
        self,
        feature_set: str,
        expected: Mapping[str, float],
        observed: Mapping[str, float],
    ) -> Tuple[PsiResult, DriftStatus]:
        """
        Compute PSI for a feature set and record it.

        Returns:
            (PsiResult, DriftStatus)
        """
        result = self.calculator.compute(expected, observed)
        status = self.classify(result.psi)

        if status != DriftStatus.NORMAL:
            logger.warning(f"Drift {status.value} for {feature_set}: psi={result.psi:.4f}")
        else:
            logger.info(f"Drift check {feature_set}: psi={result.psi:.4f}")

        if self._store is not None:
            try:
                self._store.drift_metrics_insert(
                    feature_set,
                    result.psi,
                    status.value,
                    [b.to_dict() for b in result.buckets],
                )
            except (PersistenceError, SQLAlchemyError) as e:
                logger.warning(f"Failed to record drift metric for {feature_set}: {e}")

        return result, status

    def evaluate_sample(self, sample: DriftSample) -> Tuple[PsiResult, DriftStatus]:
        """Evaluate a validated DriftSample payload."""
        return self.evaluate(sample.feature_set, sample.expected, sample.observed)
