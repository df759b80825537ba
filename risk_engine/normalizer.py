"""
Risk Engine - Feature Normalizer.

============================================================
PURPOSE
============================================================
Converts heterogeneous raw signals into the four bounded
sub-scores consumed by the Risk Scorer.

============================================================
NORMALIZATION RULES
============================================================
- engagement:  weighted mean of login, time and submission
               components, each mapped to 0-100 (monotonic)
- performance: average grade, clipped to 0-100
- attendance:  attendance rate, clipped to 0-100
- sentiment:   measured polarity, or the sentiment adapter's
               polarity for free text, or the neutral 0.0

============================================================
MISSING DATA POLICY
============================================================
- Every input of a sub-score absent -> MissingSignalError
- Sub-score explicitly declared unknown -> neutral default,
  recorded as a fallback (costs confidence)
- Sentiment adapter timeout/failure -> neutral 0.0, recorded
  as a fallback
- Nothing is ever synthesized from random values

============================================================
"""

import asyncio
import logging
import math
from typing import List, Optional, Tuple

from .config import ConfidenceConfig, EngagementNormalizationConfig, SentimentConfig
from .sentiment import SentimentAdapter
from .types import (
    AttendanceInputs,
    EngagementInputs,
    FactorType,
    MissingSignalError,
    NormalizationResult,
    PerformanceInputs,
    StudentSignals,
    SubScores,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)


logger = logging.getLogger(__name__)


def clip(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    return max(lower, min(upper, value))


def _check_metric(name: str, value: Optional[float], upper: Optional[float] = None) -> None:
    """Reject non-finite, negative or impossible raw metrics."""
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number", details={"field": name})
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite", details={"field": name, "value": str(value)})
    if value < 0:
        raise ValidationError(f"{name} cannot be negative", details={"field": name, "value": value})
    if upper is not None and value > upper:
        raise ValidationError(
            f"{name} cannot exceed {upper}",
            details={"field": name, "value": value, "max": upper},
        )


def validate_signals(signals: StudentSignals, engagement_config: Optional[EngagementNormalizationConfig] = None) -> None:
    """
    Validate identity and raw metric ranges before any scoring.

    Percentages above 100 are allowed and clipped later; values
    that cannot describe a real week are rejected.

    Raises:
        ValidationError
    """
    engagement_config = engagement_config or EngagementNormalizationConfig()

    if not isinstance(signals.student_id, str) or not signals.student_id.strip():
        raise ValidationError("student_id is required", details={"field": "student_id"})
    if not isinstance(signals.student_name, str) or not signals.student_name.strip():
        raise ValidationError("student_name is required", details={"field": "student_name"})

    e = signals.engagement
    _check_metric("login_frequency_per_week", e.login_frequency_per_week)
    _check_metric(
        "time_on_platform_hours_per_week",
        e.time_on_platform_hours_per_week,
        upper=engagement_config.max_hours_per_week,
    )
    _check_metric("submission_rate_pct", e.submission_rate_pct)
    _check_metric("average_grade_pct", signals.performance.average_grade_pct)
    _check_metric("attendance_rate_pct", signals.attendance.attendance_rate_pct)

    polarity = signals.sentiment_polarity
    if polarity is not None:
        if isinstance(polarity, bool) or not isinstance(polarity, (int, float)) or not math.isfinite(polarity):
            raise ValidationError("sentiment_polarity must be a finite number", details={"field": "sentiment_polarity"})
        if polarity < -1.0 or polarity > 1.0:
            raise ValidationError(
                "sentiment_polarity must be within [-1, 1]",
                details={"field": "sentiment_polarity", "value": polarity},
            )


class FeatureNormalizer:
    """
    Maps raw student signals into SubScores.

    The sentiment adapter is optional. Calls to it are time-boxed
    with asyncio.wait_for on top of whatever timeout the adapter
    applies itself.
    """

    def __init__(
        self,
        engagement_config: Optional[EngagementNormalizationConfig] = None,
        confidence_config: Optional[ConfidenceConfig] = None,
        sentiment_config: Optional[SentimentConfig] = None,
        sentiment_adapter: Optional[SentimentAdapter] = None,
    ):
        self.engagement_config = engagement_config or EngagementNormalizationConfig()
        self.confidence_config = confidence_config or ConfidenceConfig()
        self.sentiment_config = sentiment_config or SentimentConfig()
        self.sentiment_adapter = sentiment_adapter

    # --------------------------------------------------------
    # SYNCHRONOUS SUB-SCORES
    # --------------------------------------------------------

    def engagement_score(self, data: EngagementInputs) -> Tuple[float, bool]:
        """
        Returns (score, used_fallback).

        Each component is monotonically increasing in its input,
        so the combined score is too.
        """
        if not data.has_any_signal:
            if data.unknown:
                return self.confidence_config.neutral_score, True
            raise MissingSignalError("engagement")

        cfg = self.engagement_config
        components: List[Tuple[float, float]] = []

        if data.login_frequency_per_week is not None:
            logins = min(data.login_frequency_per_week / cfg.target_logins_per_week, 1.0) * 100.0
            components.append((logins, cfg.login_weight))

        if data.time_on_platform_hours_per_week is not None:
            hours = min(data.time_on_platform_hours_per_week / cfg.target_hours_per_week, 1.0) * 100.0
            components.append((hours, cfg.time_weight))

        if data.submission_rate_pct is not None:
            components.append((clip(data.submission_rate_pct), cfg.submission_weight))

        total_weight = sum(w for _, w in components)
        score = sum(value * w for value, w in components) / total_weight
        return clip(score), False

    def performance_score(self, data: PerformanceInputs) -> Tuple[float, bool]:
        if data.average_grade_pct is None:
            if data.unknown:
                return self.confidence_config.neutral_score, True
            raise MissingSignalError("performance")
        return clip(float(data.average_grade_pct)), False

    def attendance_score(self, data: AttendanceInputs) -> Tuple[float, bool]:
        if data.attendance_rate_pct is None:
            if data.unknown:
                return self.confidence_config.neutral_score, True
            raise MissingSignalError("attendance")
        return clip(float(data.attendance_rate_pct)), False

    # --------------------------------------------------------
    # SENTIMENT
    # --------------------------------------------------------

    async def sentiment_score(
        self,
        polarity: Optional[float],
        text: Optional[str],
    ) -> Tuple[float, bool, Optional[str]]:
        """
        Returns (polarity, used_fallback, note).

        A measured polarity wins over text. Text goes through the
        adapter; on timeout or failure the neutral polarity is used.
        """
        neutral = self.confidence_config.neutral_polarity

        if polarity is not None:
            return clip(float(polarity), -1.0, 1.0), False, None

        if text is None or not text.strip():
            return neutral, True, "no sentiment sample supplied"

        if self.sentiment_adapter is None:
            logger.warning("Sentiment text supplied but no sentiment adapter configured, using neutral polarity")
            return neutral, True, "no sentiment adapter configured"

        try:
            result = await asyncio.wait_for(
                self.sentiment_adapter.analyze(text),
                timeout=self._time_box(),
            )
            measured = clip(float(result.polarity), -1.0, 1.0)
        except (UpstreamTimeoutError, asyncio.TimeoutError) as e:
            logger.warning(f"Sentiment adapter timed out, using neutral polarity: {e}")
            return neutral, True, "sentiment service timed out"
        except UpstreamError as e:
            logger.warning(f"Sentiment adapter failed, using neutral polarity: {e}")
            return neutral, True, "sentiment service failed"
        except Exception as e:
            logger.warning(
                f"Sentiment adapter raised {type(e).__name__}, using neutral polarity: {e}"
            )
            return neutral, True, "sentiment service failed"

        return measured, False, None

    def _time_box(self) -> float:
        """Outer bound covering every attempt the adapter may make."""
        cfg = self.sentiment_config
        return cfg.timeout_seconds * (cfg.max_retries + 1) + 0.5

    # --------------------------------------------------------
    # FULL NORMALIZATION
    # --------------------------------------------------------

    async def normalize(self, signals: StudentSignals) -> NormalizationResult:
        """
        Normalize every sub-score for one student.

        Validation and missing-signal errors are raised before the
        sentiment adapter is ever called.

        Raises:
            ValidationError, MissingSignalError
        """
        validate_signals(signals, self.engagement_config)

        engagement, engagement_fallback = self.engagement_score(signals.engagement)
        performance, performance_fallback = self.performance_score(signals.performance)
        attendance, attendance_fallback = self.attendance_score(signals.attendance)
        sentiment, sentiment_fallback, note = await self.sentiment_score(
            signals.sentiment_polarity,
            signals.sentiment_text,
        )

        fallbacks = tuple(
            factor
            for factor, used in (
                (FactorType.ENGAGEMENT, engagement_fallback),
                (FactorType.ACADEMIC, performance_fallback),
                (FactorType.ATTENDANCE, attendance_fallback),
                (FactorType.SENTIMENT, sentiment_fallback),
            )
            if used
        )

        return NormalizationResult(
            scores=SubScores(
                engagement=engagement,
                performance=performance,
                attendance=attendance,
                sentiment=sentiment,
            ),
            fallbacks=fallbacks,
            notes=(note,) if note else (),
        )
