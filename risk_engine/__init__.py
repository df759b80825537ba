"""
Risk Engine - Package.

============================================================
PURPOSE
============================================================
The Risk Engine turns raw student engagement, performance,
attendance and sentiment signals into a dropout probability,
a discrete risk level, a ranked list of contributing factors
and an alert / intervention workflow.

============================================================
WHAT IT IS
============================================================
- Deterministic, linear weighted-deficit scoring
- Explainable: every factor's share is its own deficit term
- Append-only: every scoring run is a new immutable snapshot
- Advisory: interventions are proposals for a human to accept

============================================================
FOUR SUB-SCORES
============================================================
1. ENGAGEMENT (0.35): Logins, time on platform, submissions
2. ACADEMIC (0.28): Average grade
3. ATTENDANCE (0.22): Attendance rate
4. SENTIMENT (0.15): Polarity of student communications

============================================================
CLASSIFICATION
============================================================
- LOW (P < 0.25)
- MEDIUM (0.25 <= P < 0.50)
- HIGH (0.50 <= P < 0.75): alert triggered
- CRITICAL (P >= 0.75): alert triggered

============================================================
USAGE
============================================================
    from risk_engine import (
        RiskEngine,
        StudentSignals,
        EngagementInputs,
        PerformanceInputs,
        AttendanceInputs,
    )

    engine = RiskEngine()

    assessment = await engine.assess(StudentSignals(
        student_id="S-1001",
        student_name="Jane Doe",
        engagement=EngagementInputs(
            login_frequency_per_week=1,
            time_on_platform_hours_per_week=2.5,
            submission_rate_pct=40,
        ),
        performance=PerformanceInputs(average_grade_pct=52),
        attendance=AttendanceInputs(attendance_rate_pct=61),
        sentiment_text="I am falling behind and feel lost",
    ))

    print(f"Level: {assessment.risk_level.value}")
    for factor in assessment.factors:
        print(f"  {factor.factor_name}: {factor.severity.value}")

============================================================
"""

from .types import (
    # Enums
    FactorType,
    RiskLevel,
    Severity,
    Trend,
    AlertState,
    InterventionStatus,
    InterventionPriority,
    InterventionSource,
    AssessmentStatus,
    # Inputs
    EngagementInputs,
    PerformanceInputs,
    AttendanceInputs,
    StudentSignals,
    # Scores
    SubScores,
    NormalizationResult,
    ScoreResult,
    rescale_sentiment,
    # Outputs
    RiskFactor,
    AlertStatus,
    RiskAssessment,
    InterventionAction,
    AssessmentStatistics,
    # Errors
    RiskEngineError,
    ValidationError,
    MissingSignalError,
    UpstreamError,
    UpstreamTimeoutError,
    NotFoundError,
    AlertTransitionError,
    InterventionTransitionError,
    ConfigurationError,
    PersistenceError,
)

from .config import (
    ModelWeights,
    FactorThresholds,
    EngagementNormalizationConfig,
    ConfidenceConfig,
    SentimentConfig,
    AlertingConfig,
    ConcurrencyConfig,
    RiskEngineConfig,
    get_default_config,
    get_conservative_config,
    load_config_from_env,
)

from .sentiment import SentimentAdapter, SentimentResult, HttpSentimentAdapter
from .normalizer import FeatureNormalizer, validate_signals
from .scorer import RiskScorer
from .classifier import classify_risk_level
from .decomposer import RiskFactorDecomposer
from .alerting import (
    AlertManager,
    RiskAlert,
    RiskAlertingService,
    LoggingAlertSender,
    TelegramAlertSender,
    create_alerting_service,
)
from .interventions import InterventionRecommender
from .store import AssessmentStore, InMemoryAssessmentStore, IdentityGenerator
from .engine import RiskEngine, BatchItemResult, create_risk_engine


__all__ = [
    # Enums
    "FactorType",
    "RiskLevel",
    "Severity",
    "Trend",
    "AlertState",
    "InterventionStatus",
    "InterventionPriority",
    "InterventionSource",
    "AssessmentStatus",
    # Inputs
    "EngagementInputs",
    "PerformanceInputs",
    "AttendanceInputs",
    "StudentSignals",
    # Scores
    "SubScores",
    "NormalizationResult",
    "ScoreResult",
    "rescale_sentiment",
    # Outputs
    "RiskFactor",
    "AlertStatus",
    "RiskAssessment",
    "InterventionAction",
    "AssessmentStatistics",
    # Errors
    "RiskEngineError",
    "ValidationError",
    "MissingSignalError",
    "UpstreamError",
    "UpstreamTimeoutError",
    "NotFoundError",
    "AlertTransitionError",
    "InterventionTransitionError",
    "ConfigurationError",
    "PersistenceError",
    # Config
    "ModelWeights",
    "FactorThresholds",
    "EngagementNormalizationConfig",
    "ConfidenceConfig",
    "SentimentConfig",
    "AlertingConfig",
    "ConcurrencyConfig",
    "RiskEngineConfig",
    "get_default_config",
    "get_conservative_config",
    "load_config_from_env",
    # Components
    "SentimentAdapter",
    "SentimentResult",
    "HttpSentimentAdapter",
    "FeatureNormalizer",
    "validate_signals",
    "RiskScorer",
    "classify_risk_level",
    "RiskFactorDecomposer",
    "AlertManager",
    "RiskAlert",
    "RiskAlertingService",
    "LoggingAlertSender",
    "TelegramAlertSender",
    "create_alerting_service",
    "InterventionRecommender",
    "AssessmentStore",
    "InMemoryAssessmentStore",
    "IdentityGenerator",
    # Engine
    "RiskEngine",
    "BatchItemResult",
    "create_risk_engine",
]

__version__ = "1.0.0"
