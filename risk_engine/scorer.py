"""
Risk Engine - Risk Scorer.

============================================================
PURPOSE
============================================================
Combines the four sub-scores into a dropout probability and a
confidence value using a fixed, linear weighted-deficit model.

============================================================
MODEL
============================================================
    deficit_i = weight_i * (100 - sub_score_i) / 100
    D         = sum(deficit_i)
    P         = clamp(D, 0, 1)

Sentiment enters as (polarity + 1) * 50.

The linear model keeps the decomposition exact: every factor's
share of the composite is its own deficit term.

============================================================
CONFIDENCE
============================================================
    confidence = max(floor, initial - penalty * fallbacks)

============================================================
"""

import math
from typing import Dict, Iterable, Optional

from .config import ConfidenceConfig, ModelWeights
from .types import FactorType, ScoreResult, SubScores


class RiskScorer:
    """
    Pure, deterministic scorer.

    Holds no state besides its configuration: identical inputs
    always yield identical outputs.
    """

    def __init__(
        self,
        weights: Optional[ModelWeights] = None,
        confidence_config: Optional[ConfidenceConfig] = None,
    ):
        self.weights = weights or ModelWeights()
        self.confidence_config = confidence_config or ConfidenceConfig()

    def deficits(self, scores: SubScores) -> Dict[FactorType, float]:
        """Per-factor weighted shortfall from 100, on the 0-1 scale."""
        return {
            factor: self.weights.weight_for(factor) * (100.0 - scores.value_for(factor)) / 100.0
            for factor in FactorType.all_factors()
        }

    def composite_deficit(self, scores: SubScores) -> float:
        return math.fsum(self.deficits(scores).values())

    def dropout_probability(self, scores: SubScores) -> float:
        return max(0.0, min(1.0, self.composite_deficit(scores)))

    def confidence(self, fallbacks: Iterable[FactorType] = ()) -> float:
        cfg = self.confidence_config
        penalty = cfg.fallback_penalty * len(set(fallbacks))
        return max(cfg.floor, cfg.initial - penalty)

    def score(self, scores: SubScores, fallbacks: Iterable[FactorType] = ()) -> ScoreResult:
        deficits = self.deficits(scores)
        composite = math.fsum(deficits.values())
        return ScoreResult(
            dropout_probability=max(0.0, min(1.0, composite)),
            composite_deficit=composite,
            confidence=self.confidence(fallbacks),
            deficits=deficits,
        )
