"""
Risk Engine - Risk Level Classifier.

Maps a dropout probability to an ordinal risk level. Bands are
inclusive on their lower bound:

    P >= 0.75        -> CRITICAL
    0.50 <= P < 0.75 -> HIGH
    0.25 <= P < 0.50 -> MEDIUM
    P < 0.25         -> LOW
"""

from typing import Tuple

from .types import RiskLevel


# Descending lower bounds; first match wins.
RISK_LEVEL_BANDS: Tuple[Tuple[float, RiskLevel], ...] = (
    (0.75, RiskLevel.CRITICAL),
    (0.50, RiskLevel.HIGH),
    (0.25, RiskLevel.MEDIUM),
)


def classify_risk_level(dropout_probability: float) -> RiskLevel:
    """
    Classify a dropout probability.

    Args:
        dropout_probability: Probability in [0, 1]

    Returns:
        RiskLevel for the band containing the probability
    """
    for lower_bound, level in RISK_LEVEL_BANDS:
        if dropout_probability >= lower_bound:
            return level
    return RiskLevel.LOW
