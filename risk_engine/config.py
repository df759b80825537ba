"""
Risk Engine - Configuration.

============================================================
PURPOSE
============================================================
Defines the configuration dataclasses, weights and threshold
values for the dropout-risk engine.

The configuration is an explicit, versioned value object passed
into the scorer. Assessments record the model version and the
weights that produced them, so a weight change never rewrites
the meaning of historical assessments.

============================================================
DESIGN PRINCIPLES
============================================================
- Immutable configurations
- Weights always sum to 1.0
- Thresholds are on the common 0-100 sub-score scale
- Sentiment threshold applies to the rescaled polarity

============================================================
THRESHOLD PHILOSOPHY
============================================================
One threshold per factor. A sub-score strictly below its
threshold becomes a risk factor:
- below half the threshold          -> CRITICAL
- below three quarters of threshold -> HIGH
- otherwise                          -> MEDIUM

============================================================
"""

import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .types import ConfigurationError, FactorType


logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-9


# ============================================================
# MODEL WEIGHTS
# ============================================================


@dataclass(frozen=True)
class ModelWeights:
    """
    Weights of the linear weighted-deficit model.

    ============================================================
    DEFAULTS
    ============================================================
    engagement 0.35, academic 0.28, attendance 0.22,
    sentiment 0.15

    ============================================================
    """

    engagement: float = 0.35
    academic: float = 0.28
    attendance: float = 0.22
    sentiment: float = 0.15

    def __post_init__(self) -> None:
        values = self.as_tuple()
        if any(w < 0 or not math.isfinite(w) for w in values):
            raise ConfigurationError(
                "Model weights must be finite and non-negative",
                details=self.to_dict(),
            )
        total = math.fsum(values)
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ConfigurationError(
                f"Model weights must sum to 1.0, got {total:.12f}",
                details=self.to_dict(),
            )

    def as_tuple(self) -> tuple:
        return (self.engagement, self.academic, self.attendance, self.sentiment)

    def weight_for(self, factor_type: FactorType) -> float:
        return {
            FactorType.ENGAGEMENT: self.engagement,
            FactorType.ACADEMIC: self.academic,
            FactorType.ATTENDANCE: self.attendance,
            FactorType.SENTIMENT: self.sentiment,
        }[factor_type]

    def to_dict(self) -> Dict[str, float]:
        return {
            "engagement": self.engagement,
            "academic": self.academic,
            "attendance": self.attendance,
            "sentiment": self.sentiment,
        }


# ============================================================
# FACTOR THRESHOLDS
# ============================================================


@dataclass(frozen=True)
class FactorThresholds:
    """
    Per-factor breach thresholds and severity/trend cut-offs.

    ============================================================
    THRESHOLD RATIONALE
    ============================================================
    - engagement 60: sustained activity below 60% precedes withdrawal
    - academic 65: below a passing-with-margin grade
    - attendance 75: minimum attendance requirement
    - sentiment 50: neutral polarity on the rescaled 0-100 scale

    ============================================================
    """

    engagement: float = 60.0
    academic: float = 65.0
    attendance: float = 75.0
    sentiment: float = 50.0

    # Severity cut-offs as fractions of the threshold
    critical_ratio: float = 0.5
    high_ratio: float = 0.75

    # Trend cut-offs in sub-score points
    trend_change_points: float = 5.0
    critical_decline_points: float = 15.0

    def threshold_for(self, factor_type: FactorType) -> float:
        return {
            FactorType.ENGAGEMENT: self.engagement,
            FactorType.ACADEMIC: self.academic,
            FactorType.ATTENDANCE: self.attendance,
            FactorType.SENTIMENT: self.sentiment,
        }[factor_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engagement": self.engagement,
            "academic": self.academic,
            "attendance": self.attendance,
            "sentiment": self.sentiment,
            "critical_ratio": self.critical_ratio,
            "high_ratio": self.high_ratio,
            "trend_change_points": self.trend_change_points,
            "critical_decline_points": self.critical_decline_points,
        }


# ============================================================
# NORMALIZATION CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class EngagementNormalizationConfig:
    """
    How raw engagement signals become one 0-100 sub-score.

    Each present signal is mapped to 0-100 and the results are
    combined with the component weights, renormalised over the
    signals actually supplied.
    """

    target_logins_per_week: float = 5.0
    target_hours_per_week: float = 10.0
    max_hours_per_week: float = 168.0

    login_weight: float = 0.3
    time_weight: float = 0.3
    submission_weight: float = 0.4

    def __post_init__(self) -> None:
        values = (
            self.target_logins_per_week,
            self.target_hours_per_week,
            self.max_hours_per_week,
            self.login_weight,
            self.time_weight,
            self.submission_weight,
        )
        if any(not math.isfinite(v) or v <= 0 for v in values):
            raise ConfigurationError(
                "Engagement targets and component weights must be finite and positive",
                details=self.to_dict(),
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_logins_per_week": self.target_logins_per_week,
            "target_hours_per_week": self.target_hours_per_week,
            "max_hours_per_week": self.max_hours_per_week,
            "login_weight": self.login_weight,
            "time_weight": self.time_weight,
            "submission_weight": self.submission_weight,
        }


@dataclass(frozen=True)
class ConfidenceConfig:
    """Confidence starts at 100 and loses a fixed penalty per fallback."""

    initial: float = 100.0
    fallback_penalty: float = 15.0
    floor: float = 50.0

    # Neutral values applied for declared-unknown sub-scores
    neutral_score: float = 50.0
    neutral_polarity: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial": self.initial,
            "fallback_penalty": self.fallback_penalty,
            "floor": self.floor,
            "neutral_score": self.neutral_score,
            "neutral_polarity": self.neutral_polarity,
        }


# ============================================================
# SENTIMENT SERVICE CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class SentimentConfig:
    """Outbound sentiment service settings."""

    service_url: Optional[str] = None
    timeout_seconds: float = 2.0
    max_retries: int = 1
    max_concurrent_requests: int = 4

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_url": self.service_url,
            "timeout_seconds": self.timeout_seconds,
            "max_retries": self.max_retries,
            "max_concurrent_requests": self.max_concurrent_requests,
        }


# ============================================================
# ALERTING CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class AlertingConfig:
    """
    Configuration for alert notifications.

    The alert state machine itself is not configurable: HIGH and
    CRITICAL always trigger. These settings only govern the
    outbound notifications.
    """

    notifications_enabled: bool = True
    min_seconds_between_alerts: float = 3600.0   # per student, non-critical

    telegram_enabled: bool = False
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    telegram_include_details: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notifications_enabled": self.notifications_enabled,
            "min_seconds_between_alerts": self.min_seconds_between_alerts,
            "telegram_enabled": self.telegram_enabled,
            "telegram_include_details": self.telegram_include_details,
        }


# ============================================================
# CONCURRENCY CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class ConcurrencyConfig:
    max_concurrent_assessments: int = 8

    def to_dict(self) -> Dict[str, Any]:
        return {"max_concurrent_assessments": self.max_concurrent_assessments}


# ============================================================
# MASTER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class RiskEngineConfig:
    """
    Master configuration for the Risk Engine.

    Aggregates the model, normalization and service settings.
    """

    weights: ModelWeights = field(default_factory=ModelWeights)
    thresholds: FactorThresholds = field(default_factory=FactorThresholds)
    engagement: EngagementNormalizationConfig = field(default_factory=EngagementNormalizationConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    sentiment: SentimentConfig = field(default_factory=SentimentConfig)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)

    model_version: str = "weighted_deficit_v1"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": self.weights.to_dict(),
            "thresholds": self.thresholds.to_dict(),
            "engagement": self.engagement.to_dict(),
            "confidence": self.confidence.to_dict(),
            "sentiment": self.sentiment.to_dict(),
            "alerting": self.alerting.to_dict(),
            "concurrency": self.concurrency.to_dict(),
            "model_version": self.model_version,
        }


# ============================================================
# DEFAULT CONFIGURATION
# ============================================================


def get_default_config() -> RiskEngineConfig:
    """Return the default Risk Engine configuration."""
    return RiskEngineConfig()


def get_conservative_config() -> RiskEngineConfig:
    """
    Return a more conservative configuration.

    Higher thresholds = earlier factors = earlier interventions.
    """
    return RiskEngineConfig(
        thresholds=FactorThresholds(
            engagement=70.0,
            academic=70.0,
            attendance=85.0,
            sentiment=55.0,
        ),
        model_version="weighted_deficit_v1-conservative",
    )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env() -> RiskEngineConfig:
    """
    Build a configuration from environment variables.

    Reads a .env file first if one is present. Unset variables keep
    their defaults.

    Variables:
        RISK_ENGINE_WEIGHT_ENGAGEMENT / _ACADEMIC / _ATTENDANCE / _SENTIMENT
        RISK_ENGINE_MODEL_VERSION
        RISK_ENGINE_MAX_CONCURRENCY
        SENTIMENT_SERVICE_URL, SENTIMENT_TIMEOUT_SECONDS,
        SENTIMENT_MAX_RETRIES, SENTIMENT_MAX_CONCURRENCY
        TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID
        RISK_ALERT_MIN_INTERVAL_SECONDS
    """
    load_dotenv()

    defaults = ModelWeights()
    weights = ModelWeights(
        engagement=_env_float("RISK_ENGINE_WEIGHT_ENGAGEMENT", defaults.engagement),
        academic=_env_float("RISK_ENGINE_WEIGHT_ACADEMIC", defaults.academic),
        attendance=_env_float("RISK_ENGINE_WEIGHT_ATTENDANCE", defaults.attendance),
        sentiment=_env_float("RISK_ENGINE_WEIGHT_SENTIMENT", defaults.sentiment),
    )

    sentiment = SentimentConfig(
        service_url=os.getenv("SENTIMENT_SERVICE_URL") or None,
        timeout_seconds=_env_float("SENTIMENT_TIMEOUT_SECONDS", 2.0),
        max_retries=_env_int("SENTIMENT_MAX_RETRIES", 1),
        max_concurrent_requests=_env_int("SENTIMENT_MAX_CONCURRENCY", 4),
    )

    bot_token = os.getenv("TELEGRAM_BOT_TOKEN") or None
    chat_id = os.getenv("TELEGRAM_CHAT_ID") or None
    alerting = AlertingConfig(
        notifications_enabled=_env_bool("RISK_ALERT_NOTIFICATIONS", True),
        min_seconds_between_alerts=_env_float("RISK_ALERT_MIN_INTERVAL_SECONDS", 3600.0),
        telegram_enabled=bool(bot_token and chat_id),
        telegram_bot_token=bot_token,
        telegram_chat_id=chat_id,
    )

    config = RiskEngineConfig(
        weights=weights,
        sentiment=sentiment,
        alerting=alerting,
        concurrency=ConcurrencyConfig(
            max_concurrent_assessments=_env_int("RISK_ENGINE_MAX_CONCURRENCY", 8),
        ),
        model_version=os.getenv("RISK_ENGINE_MODEL_VERSION", "weighted_deficit_v1"),
    )

    if sentiment.service_url is None:
        logger.warning("SENTIMENT_SERVICE_URL not set, free-text sentiment will use the neutral fallback")

    return config
