"""
Tests for the Intervention Recommender and status workflow.
"""

from datetime import date

import pytest

from risk_engine.interventions import (
    INTERVENTION_CATALOG,
    InterventionRecommender,
    apply_transition,
    can_transition,
)
from risk_engine.types import (
    FactorType,
    InterventionAction,
    InterventionPriority,
    InterventionStatus,
    InterventionTransitionError,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    Severity,
    SubScores,
    Trend,
)


def factor(factor_type: FactorType, severity: Severity, contribution: float = 0.1) -> RiskFactor:
    return RiskFactor(
        factor_type=factor_type,
        weight=0.25,
        current_value=20.0,
        threshold_value=60.0,
        contribution=contribution,
        severity=severity,
        trend=Trend.STABLE,
    )


def assessment_with(*factors: RiskFactor) -> RiskAssessment:
    return RiskAssessment(
        assessment_id="00000000000000000042",
        assessment_number="RISK-20260302-000042",
        student_id="S-42",
        student_name="Sam Lee",
        scores=SubScores(engagement=20, performance=30, attendance=40, sentiment=-0.8),
        dropout_probability=0.7,
        risk_level=RiskLevel.HIGH,
        confidence=100.0,
        factors=tuple(factors),
    )


@pytest.fixture
def recommender():
    return InterventionRecommender()


class TestCatalog:

    def test_every_factor_and_actionable_severity_covered(self):
        for factor_type in FactorType.all_factors():
            for severity in (Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL):
                assert INTERVENTION_CATALOG.get((factor_type, severity)), (factor_type, severity)

    def test_known_templates(self, recommender):
        engagement = recommender.templates_for(FactorType.ENGAGEMENT, Severity.CRITICAL)
        attendance = recommender.templates_for(FactorType.ATTENDANCE, Severity.HIGH)

        assert engagement[0].description == "Schedule direct check-in within 48 hours"
        assert attendance[0].description == "Contact student regarding absence pattern"


class TestRecommend:

    def test_no_factors_no_proposals(self, recommender):
        assert recommender.recommend(assessment_with()) == []

    def test_priority_from_severity(self, recommender):
        proposals = recommender.recommend(assessment_with(
            factor(FactorType.ENGAGEMENT, Severity.CRITICAL, 0.2),
            factor(FactorType.ATTENDANCE, Severity.HIGH, 0.1),
            factor(FactorType.ACADEMIC, Severity.MEDIUM, 0.05),
        ))

        by_factor = {}
        for p in proposals:
            by_factor.setdefault(p.factor_type, set()).add(p.priority)

        assert by_factor[FactorType.ENGAGEMENT] == {InterventionPriority.URGENT}
        assert by_factor[FactorType.ATTENDANCE] == {InterventionPriority.HIGH}
        assert by_factor[FactorType.ACADEMIC] == {InterventionPriority.MEDIUM}

    def test_proposals_follow_factor_order(self, recommender):
        proposals = recommender.recommend(assessment_with(
            factor(FactorType.ATTENDANCE, Severity.HIGH, 0.2),
            factor(FactorType.SENTIMENT, Severity.CRITICAL, 0.1),
        ))
        assert proposals[0].factor_type == FactorType.ATTENDANCE
        assert proposals[-1].factor_type == FactorType.SENTIMENT

    def test_proposals_are_advisory(self, recommender):
        proposals = recommender.recommend(assessment_with(factor(FactorType.ENGAGEMENT, Severity.CRITICAL)))

        for p in proposals:
            assert p.status == InterventionStatus.PROPOSED
            assert p.scheduled_date is None
            assert p.assigned_to is None
            assert p.action_id is None
            assert p.suggested_within_days is not None
            assert p.assessment_id == "00000000000000000042"


class TestStatusWorkflow:

    @pytest.fixture
    def proposed(self):
        return InterventionAction(
            assessment_id="a",
            student_id="s",
            action_type="check_in",
            description="Check in",
            priority=InterventionPriority.URGENT,
            action_id="i-1",
        )

    def test_allowed_transitions(self):
        assert can_transition(InterventionStatus.PROPOSED, InterventionStatus.SCHEDULED)
        assert can_transition(InterventionStatus.PROPOSED, InterventionStatus.CANCELLED)
        assert can_transition(InterventionStatus.SCHEDULED, InterventionStatus.COMPLETED)
        assert can_transition(InterventionStatus.SCHEDULED, InterventionStatus.CANCELLED)

    def test_terminal_states(self):
        for terminal in (InterventionStatus.COMPLETED, InterventionStatus.CANCELLED):
            assert terminal.is_terminal
            for target in InterventionStatus:
                assert not can_transition(terminal, target)

    def test_schedule_requires_date(self, proposed):
        with pytest.raises(InterventionTransitionError):
            apply_transition(proposed, InterventionStatus.SCHEDULED)

    def test_schedule_then_complete(self, proposed):
        scheduled = apply_transition(
            proposed,
            InterventionStatus.SCHEDULED,
            scheduled_date=date(2026, 3, 5),
            assigned_to="advisor-7",
        )
        completed = apply_transition(scheduled, InterventionStatus.COMPLETED)

        assert scheduled.status == InterventionStatus.SCHEDULED
        assert completed.status == InterventionStatus.COMPLETED
        assert completed.scheduled_date == date(2026, 3, 5)
        assert completed.assigned_to == "advisor-7"

    def test_cannot_complete_unscheduled(self, proposed):
        with pytest.raises(InterventionTransitionError):
            apply_transition(proposed, InterventionStatus.COMPLETED)
