"""
Tests for the Feature Normalizer.

Tests cover:
- Sub-score mapping and clipping
- Missing-signal and unknown-marker policy
- Input validation
- Sentiment fallback behavior
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from risk_engine.config import SentimentConfig
from risk_engine.normalizer import FeatureNormalizer, validate_signals
from risk_engine.sentiment import SentimentAdapter, SentimentResult
from risk_engine.types import (
    AttendanceInputs,
    EngagementInputs,
    FactorType,
    MissingSignalError,
    PerformanceInputs,
    StudentSignals,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)


class SlowAdapter(SentimentAdapter):
    """Adapter that never answers in time."""

    async def analyze(self, text):
        await asyncio.sleep(10)
        return SentimentResult(polarity=1.0)


@pytest.fixture
def normalizer():
    return FeatureNormalizer()


# =============================================================
# TEST: Engagement
# =============================================================

class TestEngagementScore:

    def test_all_targets_met_is_full_score(self, normalizer):
        score, fallback = normalizer.engagement_score(EngagementInputs(
            login_frequency_per_week=5,
            time_on_platform_hours_per_week=10,
            submission_rate_pct=100,
        ))
        assert score == pytest.approx(100.0)
        assert fallback is False

    def test_components_capped_at_target(self, normalizer):
        score, _ = normalizer.engagement_score(EngagementInputs(
            login_frequency_per_week=50,
            time_on_platform_hours_per_week=80,
            submission_rate_pct=100,
        ))
        assert score == pytest.approx(100.0)

    def test_weighted_mix(self, normalizer):
        # logins 50, hours 50, submissions 50
        score, _ = normalizer.engagement_score(EngagementInputs(
            login_frequency_per_week=2.5,
            time_on_platform_hours_per_week=5,
            submission_rate_pct=50,
        ))
        assert score == pytest.approx(50.0)

    def test_partial_inputs_renormalize(self, normalizer):
        score, fallback = normalizer.engagement_score(EngagementInputs(submission_rate_pct=42))
        assert score == pytest.approx(42.0)
        assert fallback is False

    def test_monotonic_in_each_input(self, normalizer):
        base = dict(login_frequency_per_week=2, time_on_platform_hours_per_week=4, submission_rate_pct=40)
        base_score, _ = normalizer.engagement_score(EngagementInputs(**base))

        for key, bump in (
            ("login_frequency_per_week", 1),
            ("time_on_platform_hours_per_week", 2),
            ("submission_rate_pct", 10),
        ):
            raised = dict(base)
            raised[key] += bump
            score, _ = normalizer.engagement_score(EngagementInputs(**raised))
            assert score >= base_score

    def test_missing_engagement_raises(self, normalizer):
        with pytest.raises(MissingSignalError) as exc_info:
            normalizer.engagement_score(EngagementInputs())
        assert exc_info.value.sub_score == "engagement"

    def test_unknown_engagement_uses_neutral(self, normalizer):
        score, fallback = normalizer.engagement_score(EngagementInputs(unknown=True))
        assert score == 50.0
        assert fallback is True


# =============================================================
# TEST: Performance and attendance
# =============================================================

class TestPerformanceAndAttendance:

    def test_grade_is_clipped(self, normalizer):
        assert normalizer.performance_score(PerformanceInputs(average_grade_pct=112))[0] == 100.0
        assert normalizer.performance_score(PerformanceInputs(average_grade_pct=72.5))[0] == 72.5

    def test_attendance_is_clipped(self, normalizer):
        assert normalizer.attendance_score(AttendanceInputs(attendance_rate_pct=130))[0] == 100.0

    def test_missing_performance_raises(self, normalizer):
        with pytest.raises(MissingSignalError) as exc_info:
            normalizer.performance_score(PerformanceInputs())
        assert exc_info.value.sub_score == "performance"

    def test_missing_attendance_raises(self, normalizer):
        with pytest.raises(MissingSignalError) as exc_info:
            normalizer.attendance_score(AttendanceInputs())
        assert exc_info.value.sub_score == "attendance"

    def test_unknown_attendance_uses_neutral(self, normalizer):
        assert normalizer.attendance_score(AttendanceInputs(unknown=True)) == (50.0, True)


# =============================================================
# TEST: Validation
# =============================================================

class TestValidation:

    def test_blank_student_id_rejected(self, make_signals):
        with pytest.raises(ValidationError):
            validate_signals(make_signals(student_id="  "))

    def test_blank_student_name_rejected(self, make_signals):
        with pytest.raises(ValidationError):
            validate_signals(make_signals(student_name=""))

    def test_negative_metric_rejected(self, make_signals):
        with pytest.raises(ValidationError):
            validate_signals(make_signals(performance=-5))

    def test_impossible_hours_rejected(self):
        signals = StudentSignals(
            student_id="S-1",
            student_name="A",
            engagement=EngagementInputs(time_on_platform_hours_per_week=200),
            performance=PerformanceInputs(average_grade_pct=70),
            attendance=AttendanceInputs(attendance_rate_pct=70),
        )
        with pytest.raises(ValidationError):
            validate_signals(signals)

    def test_nan_metric_rejected(self, make_signals):
        with pytest.raises(ValidationError):
            validate_signals(make_signals(attendance=float("nan")))

    def test_polarity_out_of_range_rejected(self, make_signals):
        with pytest.raises(ValidationError):
            validate_signals(make_signals(polarity=1.5))


# =============================================================
# TEST: Sentiment
# =============================================================

class TestSentimentScore:

    @pytest.mark.asyncio
    async def test_measured_polarity_wins(self):
        adapter = AsyncMock(spec=SentimentAdapter)
        normalizer = FeatureNormalizer(sentiment_adapter=adapter)

        polarity, fallback, _ = await normalizer.sentiment_score(-0.3, "some text")

        assert polarity == -0.3
        assert fallback is False
        adapter.analyze.assert_not_called()

    @pytest.mark.asyncio
    async def test_text_goes_through_adapter(self):
        adapter = AsyncMock(spec=SentimentAdapter)
        adapter.analyze.return_value = SentimentResult(polarity=-0.6, confidence=0.9)
        normalizer = FeatureNormalizer(sentiment_adapter=adapter)

        polarity, fallback, note = await normalizer.sentiment_score(None, "I want to quit")

        assert polarity == -0.6
        assert fallback is False
        assert note is None
        adapter.analyze.assert_awaited_once_with("I want to quit")

    @pytest.mark.asyncio
    async def test_absent_text_is_neutral_fallback(self, normalizer):
        polarity, fallback, _ = await normalizer.sentiment_score(None, None)
        assert polarity == 0.0
        assert fallback is True

    @pytest.mark.asyncio
    async def test_no_adapter_is_neutral_fallback(self, normalizer):
        polarity, fallback, note = await normalizer.sentiment_score(None, "hello")
        assert polarity == 0.0
        assert fallback is True
        assert "adapter" in note

    @pytest.mark.asyncio
    async def test_adapter_timeout_is_neutral_fallback(self):
        adapter = AsyncMock(spec=SentimentAdapter)
        adapter.analyze.side_effect = UpstreamTimeoutError("timed out")
        normalizer = FeatureNormalizer(sentiment_adapter=adapter)

        polarity, fallback, note = await normalizer.sentiment_score(None, "text")

        assert polarity == 0.0
        assert fallback is True
        assert "timed out" in note

    @pytest.mark.asyncio
    async def test_adapter_failure_is_neutral_fallback(self):
        adapter = AsyncMock(spec=SentimentAdapter)
        adapter.analyze.side_effect = UpstreamError("boom")
        normalizer = FeatureNormalizer(sentiment_adapter=adapter)

        polarity, fallback, _ = await normalizer.sentiment_score(None, "text")

        assert polarity == 0.0
        assert fallback is True

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_is_neutral_fallback(self):
        adapter = AsyncMock(spec=SentimentAdapter)
        adapter.analyze.side_effect = RuntimeError("model crashed")
        normalizer = FeatureNormalizer(sentiment_adapter=adapter)

        polarity, fallback, note = await normalizer.sentiment_score(None, "I feel lost")

        assert polarity == 0.0
        assert fallback is True
        assert note == "sentiment service failed"

    @pytest.mark.asyncio
    async def test_non_numeric_adapter_polarity_is_neutral_fallback(self):
        adapter = AsyncMock(spec=SentimentAdapter)
        adapter.analyze.return_value = SentimentResult(polarity="very sad")
        normalizer = FeatureNormalizer(sentiment_adapter=adapter)

        polarity, fallback, _ = await normalizer.sentiment_score(None, "text")

        assert polarity == 0.0
        assert fallback is True

    @pytest.mark.asyncio
    async def test_slow_adapter_is_time_boxed(self):
        normalizer = FeatureNormalizer(
            sentiment_config=SentimentConfig(timeout_seconds=0.05, max_retries=0),
            sentiment_adapter=SlowAdapter(),
        )

        polarity, fallback, _ = await normalizer.sentiment_score(None, "text")

        assert polarity == 0.0
        assert fallback is True


# =============================================================
# TEST: Full normalization
# =============================================================

class TestNormalize:

    @pytest.mark.asyncio
    async def test_normalize_measured_signals(self, normalizer, make_signals):
        result = await normalizer.normalize(make_signals())

        assert result.scores.engagement == 80.0
        assert result.scores.performance == 85.0
        assert result.scores.attendance == 90.0
        assert result.scores.sentiment == 0.5
        assert result.fallbacks == ()

    @pytest.mark.asyncio
    async def test_normalize_records_fallbacks(self, normalizer):
        signals = StudentSignals(
            student_id="S-2",
            student_name="B",
            engagement=EngagementInputs(unknown=True),
            performance=PerformanceInputs(average_grade_pct=70),
            attendance=AttendanceInputs(attendance_rate_pct=80),
        )

        result = await normalizer.normalize(signals)

        assert result.fallbacks == (FactorType.ENGAGEMENT, FactorType.SENTIMENT)

    @pytest.mark.asyncio
    async def test_validation_happens_before_adapter_call(self, make_signals):
        adapter = AsyncMock(spec=SentimentAdapter)
        normalizer = FeatureNormalizer(sentiment_adapter=adapter)

        with pytest.raises(ValidationError):
            await normalizer.normalize(make_signals(student_id="", polarity=None, sentiment_text="x"))

        adapter.analyze.assert_not_called()
