"""
Risk Engine - Risk Factor Decomposer.

============================================================
PURPOSE
============================================================
Identifies which sub-scores breached their individual
thresholds and turns each breach into a RiskFactor with its
contribution, severity and trend.

============================================================
DECOMPOSITION LOGIC
============================================================
For each factor with sub_score < threshold:

    contribution = weight * (threshold - sub_score) / 100

    severity:
        sub_score < 0.50 * threshold -> CRITICAL
        sub_score < 0.75 * threshold -> HIGH
        otherwise                    -> MEDIUM

    trend (delta = sub_score - previous sub_score):
        delta < -15 -> CRITICAL_DECLINE
        delta < -5  -> DECLINING
        delta > +5  -> IMPROVING
        otherwise   -> STABLE
        no previous assessment -> STABLE

Factors are returned largest contribution first. Ties keep the
evaluation order (engagement, academic, attendance, sentiment).

Because the threshold never exceeds 100, each contribution is
bounded by that factor's deficit term, so the factors never
explain more than the composite score.

============================================================
"""

from typing import List, Optional

from .config import FactorThresholds, ModelWeights
from .types import FactorType, RiskFactor, Severity, SubScores, Trend


class RiskFactorDecomposer:
    """Deterministic decomposition of an assessment into risk factors."""

    def __init__(
        self,
        weights: Optional[ModelWeights] = None,
        thresholds: Optional[FactorThresholds] = None,
    ):
        self.weights = weights or ModelWeights()
        self.thresholds = thresholds or FactorThresholds()

    def severity(self, value: float, threshold: float) -> Severity:
        if value < threshold * self.thresholds.critical_ratio:
            return Severity.CRITICAL
        if value < threshold * self.thresholds.high_ratio:
            return Severity.HIGH
        return Severity.MEDIUM

    def trend(self, value: float, previous: Optional[float]) -> Trend:
        if previous is None:
            return Trend.STABLE

        delta = value - previous
        if delta < -self.thresholds.critical_decline_points:
            return Trend.CRITICAL_DECLINE
        if delta < -self.thresholds.trend_change_points:
            return Trend.DECLINING
        if delta > self.thresholds.trend_change_points:
            return Trend.IMPROVING
        return Trend.STABLE

    def contribution(self, factor_type: FactorType, value: float) -> float:
        threshold = min(self.thresholds.threshold_for(factor_type), 100.0)
        weight = self.weights.weight_for(factor_type)
        return max(0.0, weight * (threshold - value) / 100.0)

    def decompose(
        self,
        scores: SubScores,
        previous: Optional[SubScores] = None,
    ) -> List[RiskFactor]:
        """
        Build the ranked factor list for one assessment.

        Args:
            scores: Current sub-scores
            previous: Sub-scores of the same student's immediately
                      preceding assessment, if any

        Returns:
            RiskFactor list ordered by descending contribution
        """
        factors: List[RiskFactor] = []

        for factor_type in FactorType.all_factors():
            value = scores.value_for(factor_type)
            threshold = self.thresholds.threshold_for(factor_type)

            if not value < threshold:
                continue

            previous_value = previous.value_for(factor_type) if previous is not None else None

            factors.append(RiskFactor(
                factor_type=factor_type,
                weight=self.weights.weight_for(factor_type),
                current_value=value,
                threshold_value=threshold,
                contribution=self.contribution(factor_type, value),
                severity=self.severity(value, threshold),
                trend=self.trend(value, previous_value),
                previous_value=previous_value,
            ))

        # sorted() is stable, so ties keep evaluation order
        return sorted(factors, key=lambda f: -f.contribution)
