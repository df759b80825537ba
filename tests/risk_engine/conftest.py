"""Shared fixtures for risk engine tests."""

from typing import Optional

import pytest

from risk_engine.types import (
    AttendanceInputs,
    EngagementInputs,
    PerformanceInputs,
    StudentSignals,
    SubScores,
)


def build_signals(
    engagement: Optional[float] = 80.0,
    performance: Optional[float] = 85.0,
    attendance: Optional[float] = 90.0,
    polarity: Optional[float] = 0.5,
    student_id: str = "S-1001",
    student_name: str = "Jane Doe",
    sentiment_text: Optional[str] = None,
) -> StudentSignals:
    """
    Signals whose normalized sub-scores equal the given values.

    With only a submission rate present, the engagement score is
    the submission rate itself.
    """
    return StudentSignals(
        student_id=student_id,
        student_name=student_name,
        engagement=EngagementInputs(submission_rate_pct=engagement),
        performance=PerformanceInputs(average_grade_pct=performance),
        attendance=AttendanceInputs(attendance_rate_pct=attendance),
        sentiment_text=sentiment_text,
        sentiment_polarity=polarity,
    )


@pytest.fixture
def make_signals():
    return build_signals


@pytest.fixture
def healthy_scores():
    return SubScores(engagement=80.0, performance=85.0, attendance=90.0, sentiment=0.5)


@pytest.fixture
def struggling_scores():
    return SubScores(engagement=20.0, performance=30.0, attendance=40.0, sentiment=-0.8)
