"""
Risk Engine - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the dropout-risk scoring engine.

This module defines the enums, input bundles, immutable
output snapshots and the error hierarchy shared by every
component of the engine.

============================================================
DESIGN PRINCIPLES
============================================================
- Assessment outputs are frozen dataclasses
- Enums for every discrete value
- Clear separation between raw inputs and normalized scores
- Missing data is explicit, never synthesized

============================================================
FOUR SUB-SCORES
============================================================
1. ENGAGEMENT - logins, time on platform, submissions (0-100)
2. ACADEMIC   - average grade (0-100)
3. ATTENDANCE - attendance rate (0-100)
4. SENTIMENT  - polarity of student text (-1..1, rescaled to 0-100)

============================================================
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ============================================================
# ENUMS
# ============================================================


class FactorType(str, Enum):
    """
    The four contributing factor types.

    ACADEMIC is the factor backed by the performance sub-score.
    """

    ENGAGEMENT = "engagement"
    ACADEMIC = "academic"
    ATTENDANCE = "attendance"
    SENTIMENT = "sentiment"

    @classmethod
    def all_factors(cls) -> List["FactorType"]:
        """Return all factor types in evaluation order."""
        return [cls.ENGAGEMENT, cls.ACADEMIC, cls.ATTENDANCE, cls.SENTIMENT]

    @property
    def display_name(self) -> str:
        return _FACTOR_NAMES[self]


_FACTOR_NAMES = {
    FactorType.ENGAGEMENT: "Low Engagement",
    FactorType.ACADEMIC: "Poor Academic Performance",
    FactorType.ATTENDANCE: "Poor Attendance",
    FactorType.SENTIMENT: "Negative Sentiment",
}


class RiskLevel(str, Enum):
    """
    Overall risk level classification based on dropout probability.

    Probability bands (lower bound inclusive):
    - LOW:      [0.00, 0.25)
    - MEDIUM:   [0.25, 0.50)
    - HIGH:     [0.50, 0.75)
    - CRITICAL: [0.75, 1.00]
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def severity_order(self) -> int:
        """Numeric ordering for severity comparison."""
        return {"low": 0, "medium": 1, "high": 2, "critical": 3}[self.value]

    @property
    def triggers_alert(self) -> bool:
        return self in (RiskLevel.HIGH, RiskLevel.CRITICAL)


class Severity(str, Enum):
    """Severity of a single risk factor."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def severity_order(self) -> int:
        return {"low": 0, "medium": 1, "high": 2, "critical": 3}[self.value]


class Trend(str, Enum):
    """Direction of a sub-score relative to the previous assessment."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    CRITICAL_DECLINE = "critical_decline"


class AlertState(str, Enum):
    """
    Alert lifecycle attached to one assessment.

    NONE -> TRIGGERED -> ACKNOWLEDGED -> RESOLVED
    """

    NONE = "none"
    TRIGGERED = "triggered"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class InterventionStatus(str, Enum):
    PROPOSED = "proposed"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (InterventionStatus.COMPLETED, InterventionStatus.CANCELLED)


class InterventionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_severity(cls, severity: Severity) -> "InterventionPriority":
        """Map factor severity to action priority."""
        return {
            Severity.LOW: cls.LOW,
            Severity.MEDIUM: cls.MEDIUM,
            Severity.HIGH: cls.HIGH,
            Severity.CRITICAL: cls.URGENT,
        }[severity]


class InterventionSource(str, Enum):
    RECOMMENDER = "recommender"
    MANUAL = "manual"


class AssessmentStatus(str, Enum):
    """Whether an assessment is the current one for its student."""

    ACTIVE = "active"
    SUPERSEDED = "superseded"


# ============================================================
# INPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class EngagementInputs:
    """
    Raw engagement signals.

    Set `unknown=True` to declare that engagement could not be
    measured; the neutral default is then applied and confidence
    is penalised. Leaving every field None without declaring it
    unknown is a MissingSignalError.
    """

    login_frequency_per_week: Optional[float] = None
    time_on_platform_hours_per_week: Optional[float] = None
    submission_rate_pct: Optional[float] = None
    unknown: bool = False

    @property
    def has_any_signal(self) -> bool:
        return any(
            v is not None
            for v in (
                self.login_frequency_per_week,
                self.time_on_platform_hours_per_week,
                self.submission_rate_pct,
            )
        )


@dataclass(frozen=True)
class PerformanceInputs:
    """Raw academic performance signals."""

    average_grade_pct: Optional[float] = None
    unknown: bool = False

    @property
    def has_any_signal(self) -> bool:
        return self.average_grade_pct is not None


@dataclass(frozen=True)
class AttendanceInputs:
    """Raw attendance signals."""

    attendance_rate_pct: Optional[float] = None
    unknown: bool = False

    @property
    def has_any_signal(self) -> bool:
        return self.attendance_rate_pct is not None


@dataclass(frozen=True)
class StudentSignals:
    """
    Complete input bundle for scoring one student.

    Sentiment comes either from free text (delegated to the
    sentiment adapter) or from an already measured polarity.
    When both are absent the neutral default applies.
    """

    student_id: str
    student_name: str
    engagement: EngagementInputs = field(default_factory=EngagementInputs)
    performance: PerformanceInputs = field(default_factory=PerformanceInputs)
    attendance: AttendanceInputs = field(default_factory=AttendanceInputs)
    sentiment_text: Optional[str] = None
    sentiment_polarity: Optional[float] = None


# ============================================================
# NORMALIZED SCORES
# ============================================================


@dataclass(frozen=True)
class SubScores:
    """
    The four normalized sub-scores fed into the scorer.

    engagement/performance/attendance are on 0-100,
    sentiment is a polarity on -1..1.
    """

    engagement: float
    performance: float
    attendance: float
    sentiment: float

    @property
    def sentiment_rescaled(self) -> float:
        """Sentiment polarity mapped onto 0-100 via (s + 1) * 50."""
        return rescale_sentiment(self.sentiment)

    def value_for(self, factor_type: FactorType) -> float:
        """Sub-score on the common 0-100 scale for a factor type."""
        return {
            FactorType.ENGAGEMENT: self.engagement,
            FactorType.ACADEMIC: self.performance,
            FactorType.ATTENDANCE: self.attendance,
            FactorType.SENTIMENT: self.sentiment_rescaled,
        }[factor_type]

    def to_dict(self) -> Dict[str, float]:
        return {
            "engagement_score": self.engagement,
            "performance_score": self.performance,
            "attendance_score": self.attendance,
            "sentiment_score": self.sentiment,
        }


def rescale_sentiment(polarity: float) -> float:
    """Map a [-1, 1] polarity onto the 0-100 sub-score scale."""
    return (polarity + 1.0) * 50.0


@dataclass(frozen=True)
class NormalizationResult:
    """
    Normalizer output.

    fallbacks lists every sub-score that used a default rather
    than a measured value; each one costs confidence.
    """

    scores: SubScores
    fallbacks: Tuple[FactorType, ...] = ()
    notes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoreResult:
    """Risk scorer output."""

    dropout_probability: float
    composite_deficit: float
    confidence: float
    deficits: Dict[FactorType, float] = field(default_factory=dict)


# ============================================================
# OUTPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class RiskFactor:
    """
    One contributing factor of an assessment.

    Only created when current_value breaches threshold_value in
    the unfavourable direction. contribution is on the same 0-1
    scale as dropout_probability; contribution_pct expresses it
    in percentage points.
    """

    factor_type: FactorType
    weight: float
    current_value: float
    threshold_value: float
    contribution: float
    severity: Severity
    trend: Trend
    factor_number: str = ""
    previous_value: Optional[float] = None

    @property
    def factor_name(self) -> str:
        return self.factor_type.display_name

    @property
    def threshold_exceeded(self) -> bool:
        return self.current_value < self.threshold_value

    @property
    def contribution_pct(self) -> float:
        return self.contribution * 100.0

    @property
    def description(self) -> str:
        value = f"{self.current_value:.1f}"
        if self.factor_type == FactorType.ENGAGEMENT:
            return f"Student engagement score is {value}%, indicating reduced platform activity."
        if self.factor_type == FactorType.ACADEMIC:
            return f"Academic performance score is {value}%, below expected standards."
        if self.factor_type == FactorType.ATTENDANCE:
            return f"Attendance rate is {value}%, below minimum requirement."
        return f"Sentiment score is {value} on a 0-100 scale, indicating negative sentiment in student communications."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor_number": self.factor_number,
            "factor_type": self.factor_type.value,
            "factor_name": self.factor_name,
            "description": self.description,
            "weight": self.weight,
            "current_value": self.current_value,
            "threshold_value": self.threshold_value,
            "threshold_exceeded": self.threshold_exceeded,
            "contribution": self.contribution,
            "severity": self.severity.value,
            "trend": self.trend.value,
            "previous_value": self.previous_value,
        }


@dataclass(frozen=True)
class AlertStatus:
    """Alert state owned by exactly one assessment."""

    state: AlertState = AlertState.NONE
    triggered_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_note: Optional[str] = None

    @property
    def is_triggered(self) -> bool:
        return self.state != AlertState.NONE

    @property
    def is_acknowledged(self) -> bool:
        return self.state in (AlertState.ACKNOWLEDGED, AlertState.RESOLVED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "triggered_at": self.triggered_at.isoformat() if self.triggered_at else None,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "acknowledged_by": self.acknowledged_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "resolution_note": self.resolution_note,
        }


@dataclass(frozen=True)
class RiskAssessment:
    """
    One scoring run for one student at one point in time.

    ============================================================
    OUTPUT GUARANTEES
    ============================================================
    - dropout_probability: always 0-1
    - risk_level: pure function of dropout_probability
    - alert_triggered == risk_level in {HIGH, CRITICAL}
    - factors ordered by descending contribution
    - sum(factor.contribution) <= dropout_probability

    ============================================================
    IMMUTABILITY
    ============================================================
    Re-scoring creates a new assessment. Only the alert status
    moves afterwards, and it does so by replacing the snapshot
    through the alert manager.

    ============================================================
    """

    assessment_id: str
    assessment_number: str
    student_id: str
    student_name: str

    scores: SubScores
    dropout_probability: float
    risk_level: RiskLevel
    confidence: float

    factors: Tuple[RiskFactor, ...] = ()
    alert: AlertStatus = field(default_factory=AlertStatus)

    fallbacks: Tuple[FactorType, ...] = ()
    model_version: str = "weighted_deficit_v1"
    weights: Dict[str, float] = field(default_factory=dict)
    assessed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def engagement_score(self) -> float:
        return self.scores.engagement

    @property
    def performance_score(self) -> float:
        return self.scores.performance

    @property
    def attendance_score(self) -> float:
        return self.scores.attendance

    @property
    def sentiment_score(self) -> float:
        return self.scores.sentiment

    @property
    def risk_score(self) -> int:
        return int(math.floor(self.dropout_probability * 100))

    @property
    def alert_triggered(self) -> bool:
        return self.alert.is_triggered

    @property
    def alert_acknowledged(self) -> bool:
        return self.alert.is_acknowledged

    @property
    def total_contribution(self) -> float:
        return sum(f.contribution for f in self.factors)

    def get_factor(self, factor_type: FactorType) -> Optional[RiskFactor]:
        for factor in self.factors:
            if factor.factor_type == factor_type:
                return factor
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "assessment_id": self.assessment_id,
            "assessment_number": self.assessment_number,
            "student_id": self.student_id,
            "student_name": self.student_name,
            **self.scores.to_dict(),
            "dropout_probability": self.dropout_probability,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "confidence": self.confidence,
            "alert_triggered": self.alert_triggered,
            "alert_acknowledged": self.alert_acknowledged,
            "alert": self.alert.to_dict(),
            "factors": [f.to_dict() for f in self.factors],
            "fallbacks": [f.value for f in self.fallbacks],
            "model_version": self.model_version,
            "weights": dict(self.weights),
            "assessed_at": self.assessed_at.isoformat(),
        }


@dataclass(frozen=True)
class InterventionAction:
    """
    A proposed or recorded follow-up action for an assessment.

    Proposals from the recommender have no action_id until a
    human accepts them and they are stored.
    """

    assessment_id: str
    student_id: str
    action_type: str
    description: str
    priority: InterventionPriority
    status: InterventionStatus = InterventionStatus.PROPOSED
    factor_type: Optional[FactorType] = None
    suggested_within_days: Optional[int] = None
    scheduled_date: Optional[date] = None
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None
    source: InterventionSource = InterventionSource.RECOMMENDER
    action_id: Optional[str] = None
    action_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_id": self.action_id,
            "action_number": self.action_number,
            "assessment_id": self.assessment_id,
            "student_id": self.student_id,
            "factor_type": self.factor_type.value if self.factor_type else None,
            "action_type": self.action_type,
            "description": self.description,
            "priority": self.priority.value,
            "status": self.status.value,
            "suggested_within_days": self.suggested_within_days,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "assigned_to": self.assigned_to,
            "assigned_to_name": self.assigned_to_name,
            "source": self.source.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class AssessmentStatistics:
    """Counts over the current assessment of every student."""

    total_assessments: int = 0
    students: int = 0
    critical_risk: int = 0
    high_risk: int = 0
    active_alerts: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_assessments": self.total_assessments,
            "students": self.students,
            "critical_risk": self.critical_risk,
            "high_risk": self.high_risk,
            "active_alerts": self.active_alerts,
        }


# ============================================================
# ERROR TYPES
# ============================================================


class RiskEngineError(Exception):
    """Base exception for risk engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(RiskEngineError):
    """Missing or malformed student identity, or an out-of-range raw metric."""
    pass


class MissingSignalError(RiskEngineError):
    """
    Raised when every input for a sub-score is absent.

    The caller must supply a value or declare the sub-score unknown.
    """

    def __init__(self, sub_score: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"No signal supplied for sub-score '{sub_score}'",
            details={"sub_score": sub_score},
        )
        self.sub_score = sub_score


class UpstreamError(RiskEngineError):
    """The sentiment service failed."""
    pass


class UpstreamTimeoutError(UpstreamError):
    """The sentiment service did not answer within its time box."""
    pass


class NotFoundError(RiskEngineError):
    """Unknown assessment or intervention id."""
    pass


class AlertTransitionError(RiskEngineError):
    """Requested alert transition is not allowed from the current state."""
    pass


class InterventionTransitionError(RiskEngineError):
    """Requested intervention status change is not allowed."""
    pass


class ConfigurationError(RiskEngineError):
    """Invalid engine configuration."""
    pass


class PersistenceError(RiskEngineError):
    """The assessment store failed to write or read."""
    pass
