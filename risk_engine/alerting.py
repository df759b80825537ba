"""
Risk Engine - Alerting.

============================================================
PURPOSE
============================================================
Alert lifecycle for assessments plus outbound notifications.

Provides:
- The per-assessment alert state machine
- Alert formatting with context
- Telegram and logging senders
- Rate limiting of repeat notifications per student

============================================================
STATE MACHINE
============================================================

    NONE                 (risk level LOW / MEDIUM)

    TRIGGERED            (risk level HIGH / CRITICAL, set
        │                 atomically at assessment creation)
        ▼
    ACKNOWLEDGED         (explicit operator action, idempotent)
        │
        ▼
    RESOLVED             (explicit operator action, idempotent)

INVARIANTS:
- Each assessment owns its own alert state
- A new assessment never alters a prior assessment's alert
- Notifications never change the state machine

============================================================
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol, Set

from .config import AlertingConfig
from .types import (
    AlertState,
    AlertStatus,
    AlertTransitionError,
    RiskAssessment,
    RiskLevel,
)


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[AlertState, Set[AlertState]] = {
    AlertState.NONE: set(),
    AlertState.TRIGGERED: {AlertState.ACKNOWLEDGED},
    AlertState.ACKNOWLEDGED: {AlertState.RESOLVED},
    AlertState.RESOLVED: set(),
}

# Target state -> states from which the request is a no-op
IDEMPOTENT_FROM: Dict[AlertState, Set[AlertState]] = {
    AlertState.ACKNOWLEDGED: {AlertState.ACKNOWLEDGED, AlertState.RESOLVED},
    AlertState.RESOLVED: {AlertState.RESOLVED},
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertManager:
    """
    Decides whether an assessment triggers an alert and applies
    operator transitions.

    All methods are pure: they return new AlertStatus / assessment
    snapshots and leave persistence to the caller.
    """

    @staticmethod
    def should_trigger(risk_level: RiskLevel) -> bool:
        return risk_level.triggers_alert

    def initial_status(self, risk_level: RiskLevel, at: Optional[datetime] = None) -> AlertStatus:
        """Alert status assigned when an assessment is created."""
        if self.should_trigger(risk_level):
            return AlertStatus(state=AlertState.TRIGGERED, triggered_at=at or _utcnow())
        return AlertStatus(state=AlertState.NONE)

    @staticmethod
    def can_transition(from_state: AlertState, to_state: AlertState) -> bool:
        return to_state in VALID_TRANSITIONS.get(from_state, set())

    def acknowledge(
        self,
        assessment: RiskAssessment,
        acknowledged_by: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> RiskAssessment:
        """
        TRIGGERED -> ACKNOWLEDGED.

        Acknowledging an acknowledged or resolved alert returns the
        assessment unchanged.

        Raises:
            AlertTransitionError: If no alert was triggered
        """
        current = assessment.alert
        if current.state in IDEMPOTENT_FROM[AlertState.ACKNOWLEDGED]:
            return assessment

        self._guard(assessment, AlertState.ACKNOWLEDGED)

        status = replace(
            current,
            state=AlertState.ACKNOWLEDGED,
            acknowledged_at=at or _utcnow(),
            acknowledged_by=acknowledged_by,
        )
        logger.info(
            f"Alert acknowledged: assessment={assessment.assessment_id} "
            f"student={assessment.student_id} by={acknowledged_by or 'unknown'}"
        )
        return replace(assessment, alert=status)

    def resolve(
        self,
        assessment: RiskAssessment,
        resolved_by: Optional[str] = None,
        note: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> RiskAssessment:
        """
        ACKNOWLEDGED -> RESOLVED.

        Raises:
            AlertTransitionError: If the alert is not acknowledged yet
        """
        current = assessment.alert
        if current.state in IDEMPOTENT_FROM[AlertState.RESOLVED]:
            return assessment

        self._guard(assessment, AlertState.RESOLVED)

        status = replace(
            current,
            state=AlertState.RESOLVED,
            resolved_at=at or _utcnow(),
            resolved_by=resolved_by,
            resolution_note=note,
        )
        logger.info(
            f"Alert resolved: assessment={assessment.assessment_id} "
            f"student={assessment.student_id} by={resolved_by or 'unknown'}"
        )
        return replace(assessment, alert=status)

    def _guard(self, assessment: RiskAssessment, to_state: AlertState) -> None:
        from_state = assessment.alert.state
        if not self.can_transition(from_state, to_state):
            raise AlertTransitionError(
                f"Cannot move alert from {from_state.value} to {to_state.value}",
                details={
                    "assessment_id": assessment.assessment_id,
                    "from_state": from_state.value,
                    "to_state": to_state.value,
                },
            )


# ============================================================
# ALERT MESSAGE DATACLASS
# ============================================================


@dataclass(frozen=True)
class RiskAlert:
    """
    Structured notification for a triggered assessment.

    ============================================================
    FIELDS
    ============================================================
    - severity: HIGH, CRITICAL
    - title: Short title
    - message: Detailed message (top factors)
    - context: Additional structured data

    ============================================================
    """

    assessment_id: str
    student_id: str
    student_name: str
    severity: str
    title: str
    message: str
    timestamp: datetime
    risk_level: RiskLevel
    dropout_probability: float
    top_factors: List[str] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)

    def to_telegram_message(self, include_details: bool = True) -> str:
        """Format alert for Telegram markdown."""
        emoji = "🔴" if self.severity == "CRITICAL" else "🟠"

        lines = [
            f"{emoji} *DROPOUT RISK ALERT*",
            "",
            f"*Student:* {self.student_name} ({self.student_id})",
            f"*Level:* {self.risk_level.name}",
            f"*Probability:* {self.dropout_probability:.0%}",
            f"*Time:* {self.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        ]

        if include_details and self.top_factors:
            lines.append("")
            lines.append("*Factors:*")
            for factor in self.top_factors:
                lines.append(f"  • {factor}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assessment_id": self.assessment_id,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "risk_level": self.risk_level.value,
            "dropout_probability": self.dropout_probability,
            "top_factors": list(self.top_factors),
            "context": self.context,
        }


# ============================================================
# ALERT SENDERS
# ============================================================


class AlertSender(Protocol):
    """Protocol for alert destinations (Telegram, logs, webhooks)."""

    async def send(self, alert: RiskAlert) -> bool:
        ...


class TelegramAlertSender:
    """Send risk alerts via the Telegram bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        include_details: bool = True,
        timeout_seconds: float = 10.0,
    ):
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._include_details = include_details
        self._timeout = timeout_seconds

    async def send(self, alert: RiskAlert) -> bool:
        import httpx

        message = alert.to_telegram_message(include_details=self._include_details)
        url = f"https://api.telegram.org/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": message,
            "parse_mode": "Markdown",
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.error(f"Telegram alert failed for assessment {alert.assessment_id}: {e}")
            return False

        if response.status_code != 200:
            logger.error(
                f"Telegram alert rejected for assessment {alert.assessment_id}: "
                f"status={response.status_code}"
            )
            return False
        return True


class LoggingAlertSender:
    """Write alerts to the application log."""

    def __init__(self, logger_name: str = "risk_engine.alerts"):
        self._logger = logging.getLogger(logger_name)

    async def send(self, alert: RiskAlert) -> bool:
        level = logging.CRITICAL if alert.severity == "CRITICAL" else logging.WARNING
        self._logger.log(
            level,
            f"{alert.title} | student={alert.student_id} "
            f"probability={alert.dropout_probability:.3f} | {alert.message}",
        )
        return True


# ============================================================
# RATE LIMITER
# ============================================================


class AlertRateLimiter:
    """
    Rate limits notifications per student.

    ============================================================
    LOGIC
    ============================================================
    - Track last notification time per student
    - Enforce minimum interval between notifications
    - Always allow CRITICAL notifications

    ============================================================
    """

    def __init__(self, min_interval_seconds: float = 3600.0):
        self._min_interval = timedelta(seconds=min_interval_seconds)
        self._last_alerts: Dict[str, datetime] = {}

    def should_send(self, student_id: str, severity: str, now: Optional[datetime] = None) -> bool:
        now = now or _utcnow()

        if severity == "CRITICAL":
            return True

        last_alert = self._last_alerts.get(student_id)
        if last_alert is None:
            return True

        return (now - last_alert) >= self._min_interval

    def record_sent(self, student_id: str, now: Optional[datetime] = None) -> None:
        self._last_alerts[student_id] = now or _utcnow()

    def reset(self) -> None:
        self._last_alerts.clear()


# ============================================================
# RISK ALERTING SERVICE
# ============================================================


class RiskAlertingService:
    """
    Builds and dispatches notifications for triggered assessments.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    1. Skip assessments without a triggered alert
    2. Build alert messages
    3. Rate limit per student
    4. Send via configured senders, logging failures

    ============================================================
    """

    def __init__(
        self,
        config: Optional[AlertingConfig] = None,
        senders: Optional[List[AlertSender]] = None,
    ):
        self._config = config or AlertingConfig()
        self._senders: List[AlertSender] = list(senders or [])
        self._rate_limiter = AlertRateLimiter(
            min_interval_seconds=self._config.min_seconds_between_alerts
        )

    def add_sender(self, sender: AlertSender) -> None:
        self._senders.append(sender)

    def build_alert(self, assessment: RiskAssessment) -> RiskAlert:
        severity = "CRITICAL" if assessment.risk_level == RiskLevel.CRITICAL else "HIGH"

        top_factors = [
            f"{f.factor_name}: {f.current_value:.1f} (threshold {f.threshold_value:.0f}, "
            f"{f.severity.value}, {f.trend.value})"
            for f in assessment.factors[:3]
        ]
        if top_factors:
            message = f"Largest driver: {assessment.factors[0].factor_name}"
        else:
            message = f"Risk level at {assessment.risk_level.name}"

        return RiskAlert(
            assessment_id=assessment.assessment_id,
            student_id=assessment.student_id,
            student_name=assessment.student_name,
            severity=severity,
            title=f"Dropout risk {assessment.risk_level.name}: {assessment.student_name}",
            message=message,
            timestamp=assessment.assessed_at,
            risk_level=assessment.risk_level,
            dropout_probability=assessment.dropout_probability,
            top_factors=top_factors,
            context={
                "assessment_number": assessment.assessment_number,
                "confidence": assessment.confidence,
                "model_version": assessment.model_version,
            },
        )

    async def process_assessment(self, assessment: RiskAssessment) -> Optional[RiskAlert]:
        """
        Send a notification for a triggered assessment.

        Returns:
            RiskAlert if at least one sender succeeded, None otherwise
        """
        if not self._config.notifications_enabled or not assessment.alert_triggered:
            return None

        alert = self.build_alert(assessment)

        if not self._rate_limiter.should_send(assessment.student_id, alert.severity):
            logger.debug(f"Alert for student {assessment.student_id} rate limited")
            return None

        sent = False
        for sender in self._senders:
            try:
                if await sender.send(alert):
                    sent = True
            except Exception as e:
                logger.error(f"Alert sender {type(sender).__name__} raised: {e}")

        if sent:
            self._rate_limiter.record_sent(assessment.student_id)
            return alert

        return None


# ============================================================
# FACTORY FUNCTIONS
# ============================================================


def create_alerting_service(config: Optional[AlertingConfig] = None) -> RiskAlertingService:
    """
    Create an alerting service from configuration.

    Always logs; adds Telegram when a bot token and chat id are set.
    """
    config = config or AlertingConfig()
    service = RiskAlertingService(config=config)
    service.add_sender(LoggingAlertSender())

    if config.telegram_enabled and config.telegram_bot_token and config.telegram_chat_id:
        service.add_sender(TelegramAlertSender(
            bot_token=config.telegram_bot_token,
            chat_id=config.telegram_chat_id,
            include_details=config.telegram_include_details,
        ))

    return service
