"""
Tests for the Alert Manager and notifications.

Tests cover:
- Initial alert state by risk level
- Idempotent acknowledge, resolve transitions
- Invalid transitions
- Rate limiting and sender dispatch
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from risk_engine.alerting import (
    AlertManager,
    AlertRateLimiter,
    LoggingAlertSender,
    RiskAlertingService,
    TelegramAlertSender,
    create_alerting_service,
)
from risk_engine.config import AlertingConfig
from risk_engine.types import (
    AlertState,
    AlertTransitionError,
    FactorType,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    Severity,
    SubScores,
    Trend,
)


NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def make_assessment(risk_level: RiskLevel, student_id: str = "S-1") -> RiskAssessment:
    manager = AlertManager()
    return RiskAssessment(
        assessment_id="00000000000000000001",
        assessment_number="RISK-20260302-000001",
        student_id=student_id,
        student_name="Jane Doe",
        scores=SubScores(engagement=20, performance=30, attendance=40, sentiment=-0.8),
        dropout_probability=0.743,
        risk_level=risk_level,
        confidence=100.0,
        factors=(
            RiskFactor(
                factor_type=FactorType.ENGAGEMENT,
                weight=0.35,
                current_value=20.0,
                threshold_value=60.0,
                contribution=0.14,
                severity=Severity.CRITICAL,
                trend=Trend.STABLE,
            ),
        ),
        alert=manager.initial_status(risk_level, NOW),
        assessed_at=NOW,
    )


@pytest.fixture
def manager():
    return AlertManager()


# =============================================================
# TEST: State machine
# =============================================================

class TestInitialStatus:

    @pytest.mark.parametrize("level", [RiskLevel.HIGH, RiskLevel.CRITICAL])
    def test_high_levels_trigger(self, manager, level):
        status = manager.initial_status(level, NOW)
        assert status.state == AlertState.TRIGGERED
        assert status.triggered_at == NOW

    @pytest.mark.parametrize("level", [RiskLevel.LOW, RiskLevel.MEDIUM])
    def test_low_levels_do_not_trigger(self, manager, level):
        status = manager.initial_status(level, NOW)
        assert status.state == AlertState.NONE
        assert status.is_triggered is False


class TestTransitions:

    def test_acknowledge_triggered(self, manager):
        assessment = make_assessment(RiskLevel.HIGH)

        updated = manager.acknowledge(assessment, "advisor-7", at=NOW)

        assert updated.alert.state == AlertState.ACKNOWLEDGED
        assert updated.alert.acknowledged_by == "advisor-7"
        assert updated.alert_acknowledged is True
        assert updated.alert_triggered is True
        # original snapshot untouched
        assert assessment.alert.state == AlertState.TRIGGERED

    def test_acknowledge_twice_is_noop(self, manager):
        once = manager.acknowledge(make_assessment(RiskLevel.HIGH), "a", at=NOW)
        twice = manager.acknowledge(once, "b", at=NOW + timedelta(minutes=5))

        assert twice is once
        assert twice.alert.acknowledged_by == "a"

    def test_acknowledge_without_alert_fails(self, manager):
        with pytest.raises(AlertTransitionError):
            manager.acknowledge(make_assessment(RiskLevel.LOW))

    def test_resolve_after_acknowledge(self, manager):
        acknowledged = manager.acknowledge(make_assessment(RiskLevel.CRITICAL))

        resolved = manager.resolve(acknowledged, "advisor-7", note="Back on track")

        assert resolved.alert.state == AlertState.RESOLVED
        assert resolved.alert.resolution_note == "Back on track"
        assert resolved.alert_acknowledged is True

    def test_resolve_requires_acknowledge(self, manager):
        with pytest.raises(AlertTransitionError):
            manager.resolve(make_assessment(RiskLevel.HIGH))

    def test_resolve_twice_is_noop(self, manager):
        resolved = manager.resolve(manager.acknowledge(make_assessment(RiskLevel.HIGH)))
        assert manager.resolve(resolved) is resolved

    def test_acknowledge_resolved_is_noop(self, manager):
        resolved = manager.resolve(manager.acknowledge(make_assessment(RiskLevel.HIGH)))
        assert manager.acknowledge(resolved) is resolved


# =============================================================
# TEST: Notifications
# =============================================================

class TestRateLimiter:

    def test_first_alert_allowed(self):
        limiter = AlertRateLimiter(min_interval_seconds=60)
        assert limiter.should_send("S-1", "HIGH", NOW) is True

    def test_repeat_alert_suppressed(self):
        limiter = AlertRateLimiter(min_interval_seconds=60)
        limiter.record_sent("S-1", NOW)

        assert limiter.should_send("S-1", "HIGH", NOW + timedelta(seconds=30)) is False
        assert limiter.should_send("S-1", "HIGH", NOW + timedelta(seconds=61)) is True

    def test_other_students_unaffected(self):
        limiter = AlertRateLimiter(min_interval_seconds=60)
        limiter.record_sent("S-1", NOW)
        assert limiter.should_send("S-2", "HIGH", NOW) is True

    def test_critical_always_allowed(self):
        limiter = AlertRateLimiter(min_interval_seconds=3600)
        limiter.record_sent("S-1", NOW)
        assert limiter.should_send("S-1", "CRITICAL", NOW) is True


class TestAlertingService:

    @pytest.mark.asyncio
    async def test_sends_triggered_assessment(self):
        sender = AsyncMock()
        sender.send.return_value = True
        service = RiskAlertingService(senders=[sender])

        alert = await service.process_assessment(make_assessment(RiskLevel.HIGH))

        assert alert is not None
        assert alert.severity == "HIGH"
        assert alert.top_factors
        sender.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_skips_untriggered_assessment(self):
        sender = AsyncMock()
        service = RiskAlertingService(senders=[sender])

        assert await service.process_assessment(make_assessment(RiskLevel.MEDIUM)) is None
        sender.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_repeat_high_alert_rate_limited(self):
        sender = AsyncMock()
        sender.send.return_value = True
        service = RiskAlertingService(senders=[sender])

        await service.process_assessment(make_assessment(RiskLevel.HIGH))
        second = await service.process_assessment(make_assessment(RiskLevel.HIGH))

        assert second is None
        assert sender.send.await_count == 1

    @pytest.mark.asyncio
    async def test_sender_failure_does_not_raise(self):
        failing = AsyncMock()
        failing.send.side_effect = RuntimeError("network down")
        service = RiskAlertingService(senders=[failing])

        assert await service.process_assessment(make_assessment(RiskLevel.CRITICAL)) is None

    @pytest.mark.asyncio
    async def test_disabled_notifications(self):
        sender = AsyncMock()
        service = RiskAlertingService(config=AlertingConfig(notifications_enabled=False), senders=[sender])

        assert await service.process_assessment(make_assessment(RiskLevel.CRITICAL)) is None
        sender.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_logging_sender(self):
        alert = RiskAlertingService().build_alert(make_assessment(RiskLevel.CRITICAL))
        assert await LoggingAlertSender().send(alert) is True

    def test_telegram_message_format(self):
        alert = RiskAlertingService().build_alert(make_assessment(RiskLevel.CRITICAL))

        message = alert.to_telegram_message()

        assert "DROPOUT RISK ALERT" in message
        assert "Jane Doe" in message
        assert "CRITICAL" in message
        assert "Engagement" in message


class TestTelegramSender:

    @pytest.mark.asyncio
    async def test_posts_to_bot_api(self):
        alert = RiskAlertingService().build_alert(make_assessment(RiskLevel.CRITICAL))
        response = MagicMock(status_code=200)
        client = AsyncMock()
        client.post.return_value = response
        client.__aenter__.return_value = client

        with patch("httpx.AsyncClient", return_value=client):
            ok = await TelegramAlertSender(bot_token="abc", chat_id="42").send(alert)

        assert ok is True
        url = client.post.call_args.args[0]
        assert url == "https://api.telegram.org/botabc/sendMessage"
        assert client.post.call_args.kwargs["json"]["chat_id"] == "42"

    @pytest.mark.asyncio
    async def test_rejected_request_returns_false(self):
        alert = RiskAlertingService().build_alert(make_assessment(RiskLevel.CRITICAL))
        client = AsyncMock()
        client.post.return_value = MagicMock(status_code=401)
        client.__aenter__.return_value = client

        with patch("httpx.AsyncClient", return_value=client):
            ok = await TelegramAlertSender(bot_token="abc", chat_id="42").send(alert)

        assert ok is False


class TestFactory:

    def test_logging_only_by_default(self):
        service = create_alerting_service(AlertingConfig())
        assert len(service._senders) == 1

    def test_telegram_added_when_configured(self):
        service = create_alerting_service(AlertingConfig(
            telegram_enabled=True,
            telegram_bot_token="abc",
            telegram_chat_id="42",
        ))
        assert any(isinstance(s, TelegramAlertSender) for s in service._senders)
