"""
Tests for the Risk Scorer and Risk Level Classifier.

Tests cover:
- Weighted-deficit formula
- Determinism and monotonicity
- Confidence penalties
- Classification band boundaries
"""

import pytest

from risk_engine.classifier import classify_risk_level
from risk_engine.scorer import RiskScorer
from risk_engine.types import FactorType, RiskLevel, SubScores, rescale_sentiment


@pytest.fixture
def scorer():
    return RiskScorer()


class TestRescale:

    def test_rescale_endpoints(self):
        assert rescale_sentiment(-1.0) == 0.0
        assert rescale_sentiment(0.0) == 50.0
        assert rescale_sentiment(1.0) == 100.0
        assert rescale_sentiment(-0.8) == pytest.approx(10.0)


class TestRiskScorer:

    def test_healthy_student(self, scorer, healthy_scores):
        # 0.35*0.20 + 0.28*0.15 + 0.22*0.10 + 0.15*0.25
        result = scorer.score(healthy_scores)
        assert result.dropout_probability == pytest.approx(0.1715)
        assert classify_risk_level(result.dropout_probability) == RiskLevel.LOW

    def test_struggling_student(self, scorer, struggling_scores):
        # 0.35*0.8 + 0.28*0.7 + 0.22*0.6 + 0.15*0.9
        result = scorer.score(struggling_scores)
        assert result.dropout_probability == pytest.approx(0.743)
        assert classify_risk_level(result.dropout_probability) == RiskLevel.HIGH

    def test_worst_case_is_one(self, scorer):
        scores = SubScores(engagement=0, performance=0, attendance=0, sentiment=-1.0)
        assert scorer.dropout_probability(scores) == pytest.approx(1.0)
        assert classify_risk_level(scorer.dropout_probability(scores)) == RiskLevel.CRITICAL

    def test_best_case_is_zero(self, scorer):
        scores = SubScores(engagement=100, performance=100, attendance=100, sentiment=1.0)
        assert scorer.dropout_probability(scores) == 0.0

    def test_deficits_sum_to_composite(self, scorer, struggling_scores):
        result = scorer.score(struggling_scores)
        assert sum(result.deficits.values()) == pytest.approx(result.composite_deficit)
        assert result.deficits[FactorType.ENGAGEMENT] == pytest.approx(0.28)

    def test_deterministic(self, scorer, struggling_scores):
        first = scorer.score(struggling_scores, [FactorType.SENTIMENT])
        second = scorer.score(struggling_scores, [FactorType.SENTIMENT])
        assert first == second

    @pytest.mark.parametrize("field", ["engagement", "performance", "attendance"])
    def test_monotonic_in_sub_scores(self, scorer, field):
        previous = None
        for value in range(100, -1, -10):
            values = dict(engagement=70.0, performance=70.0, attendance=70.0, sentiment=0.0)
            values[field] = float(value)
            p = scorer.dropout_probability(SubScores(**values))
            if previous is not None:
                assert p >= previous
            previous = p

    def test_monotonic_in_sentiment(self, scorer):
        previous = None
        for step in range(10, -11, -1):
            p = scorer.dropout_probability(
                SubScores(engagement=70, performance=70, attendance=70, sentiment=step / 10)
            )
            if previous is not None:
                assert p >= previous
            previous = p


class TestConfidence:

    def test_no_fallbacks_full_confidence(self, scorer):
        assert scorer.confidence([]) == 100.0

    def test_one_fallback_penalized(self, scorer):
        assert scorer.confidence([FactorType.SENTIMENT]) == 85.0

    def test_duplicate_fallbacks_count_once(self, scorer):
        assert scorer.confidence([FactorType.SENTIMENT, FactorType.SENTIMENT]) == 85.0

    def test_floor_applies(self, scorer):
        assert scorer.confidence(FactorType.all_factors()) == 50.0


class TestClassifier:

    @pytest.mark.parametrize(
        "probability, expected",
        [
            (1.0, RiskLevel.CRITICAL),
            (0.75, RiskLevel.CRITICAL),
            (0.749999, RiskLevel.HIGH),
            (0.50, RiskLevel.HIGH),
            (0.4999, RiskLevel.MEDIUM),
            (0.25, RiskLevel.MEDIUM),
            (0.2499, RiskLevel.LOW),
            (0.0, RiskLevel.LOW),
        ],
    )
    def test_band_boundaries(self, probability, expected):
        assert classify_risk_level(probability) == expected

    @pytest.mark.parametrize("level", list(RiskLevel))
    def test_alert_only_for_high_and_critical(self, level):
        assert level.triggers_alert == (level in (RiskLevel.HIGH, RiskLevel.CRITICAL))
