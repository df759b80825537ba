"""
Risk Engine - Intervention Recommender.

============================================================
PURPOSE
============================================================
Maps each risk factor to suggested follow-up actions and
guards the status workflow of recorded interventions.

The recommender is advisory: proposals carry a priority and a
suggested time window, never a scheduled date or an assignee.

============================================================
STATUS WORKFLOW
============================================================

    PROPOSED ──► SCHEDULED ──► COMPLETED
        │            │
        └────────────┴───────► CANCELLED

COMPLETED and CANCELLED are terminal. Transitions are driven
by the external workflow, not by the engine.

============================================================
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

from .types import (
    FactorType,
    InterventionAction,
    InterventionPriority,
    InterventionSource,
    InterventionStatus,
    InterventionTransitionError,
    RiskAssessment,
    RiskFactor,
    Severity,
)


@dataclass(frozen=True)
class ActionTemplate:
    action_type: str
    description: str
    suggested_within_days: int


# ============================================================
# ACTION CATALOG
# ============================================================

INTERVENTION_CATALOG: Dict[Tuple[FactorType, Severity], Tuple[ActionTemplate, ...]] = {
    # Engagement
    (FactorType.ENGAGEMENT, Severity.CRITICAL): (
        ActionTemplate("check_in", "Schedule direct check-in within 48 hours", 2),
        ActionTemplate("mentor_assignment", "Assign a peer mentor for weekly contact", 7),
    ),
    (FactorType.ENGAGEMENT, Severity.HIGH): (
        ActionTemplate("outreach", "Send personal outreach message from advisor", 3),
    ),
    (FactorType.ENGAGEMENT, Severity.MEDIUM): (
        ActionTemplate("reminder", "Send platform activity reminder", 7),
    ),
    # Academic
    (FactorType.ACADEMIC, Severity.CRITICAL): (
        ActionTemplate("academic_review", "Arrange academic review meeting with instructor", 3),
        ActionTemplate("tutoring", "Enroll student in tutoring support", 7),
    ),
    (FactorType.ACADEMIC, Severity.HIGH): (
        ActionTemplate("tutoring", "Offer tutoring sessions for weakest subjects", 7),
    ),
    (FactorType.ACADEMIC, Severity.MEDIUM): (
        ActionTemplate("study_plan", "Share study plan and learning resources", 14),
    ),
    # Attendance
    (FactorType.ATTENDANCE, Severity.CRITICAL): (
        ActionTemplate("guardian_contact", "Contact student and guardian about absences", 2),
        ActionTemplate("attendance_plan", "Agree an attendance recovery plan", 7),
    ),
    (FactorType.ATTENDANCE, Severity.HIGH): (
        ActionTemplate("absence_follow_up", "Contact student regarding absence pattern", 3),
    ),
    (FactorType.ATTENDANCE, Severity.MEDIUM): (
        ActionTemplate("attendance_monitoring", "Monitor attendance for the next two weeks", 14),
    ),
    # Sentiment
    (FactorType.SENTIMENT, Severity.CRITICAL): (
        ActionTemplate("counseling_referral", "Refer student to counseling services", 2),
    ),
    (FactorType.SENTIMENT, Severity.HIGH): (
        ActionTemplate("wellbeing_check", "Schedule wellbeing conversation with advisor", 5),
    ),
    (FactorType.SENTIMENT, Severity.MEDIUM): (
        ActionTemplate("wellbeing_resources", "Share wellbeing and support resources", 14),
    ),
}


# ============================================================
# STATUS TRANSITIONS
# ============================================================

VALID_TRANSITIONS: Dict[InterventionStatus, Set[InterventionStatus]] = {
    InterventionStatus.PROPOSED: {InterventionStatus.SCHEDULED, InterventionStatus.CANCELLED},
    InterventionStatus.SCHEDULED: {InterventionStatus.COMPLETED, InterventionStatus.CANCELLED},
    InterventionStatus.COMPLETED: set(),
    InterventionStatus.CANCELLED: set(),
}


def can_transition(from_status: InterventionStatus, to_status: InterventionStatus) -> bool:
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def apply_transition(
    action: InterventionAction,
    to_status: InterventionStatus,
    scheduled_date: Optional[date] = None,
    assigned_to: Optional[str] = None,
    assigned_to_name: Optional[str] = None,
    at: Optional[datetime] = None,
) -> InterventionAction:
    """
    Move an intervention to a new status.

    Raises:
        InterventionTransitionError: If the transition is not allowed
            or scheduling lacks a date
    """
    if not can_transition(action.status, to_status):
        raise InterventionTransitionError(
            f"Cannot move intervention from {action.status.value} to {to_status.value}",
            details={
                "action_id": action.action_id,
                "from_status": action.status.value,
                "to_status": to_status.value,
            },
        )

    new_date = scheduled_date or action.scheduled_date
    if to_status == InterventionStatus.SCHEDULED and new_date is None:
        raise InterventionTransitionError(
            "Scheduling an intervention requires a scheduled_date",
            details={"action_id": action.action_id},
        )

    return replace(
        action,
        status=to_status,
        scheduled_date=new_date,
        assigned_to=assigned_to or action.assigned_to,
        assigned_to_name=assigned_to_name or action.assigned_to_name,
        updated_at=at or datetime.now(timezone.utc),
    )


# ============================================================
# RECOMMENDER
# ============================================================


class InterventionRecommender:
    """Pure mapping from risk factors to intervention proposals."""

    def __init__(self, catalog: Optional[Dict[Tuple[FactorType, Severity], Tuple[ActionTemplate, ...]]] = None):
        self.catalog = catalog if catalog is not None else INTERVENTION_CATALOG

    def templates_for(self, factor_type: FactorType, severity: Severity) -> Tuple[ActionTemplate, ...]:
        return self.catalog.get((factor_type, severity), ())

    def recommend_for_factor(self, assessment: RiskAssessment, factor: RiskFactor) -> List[InterventionAction]:
        priority = InterventionPriority.from_severity(factor.severity)
        return [
            InterventionAction(
                assessment_id=assessment.assessment_id,
                student_id=assessment.student_id,
                action_type=template.action_type,
                description=template.description,
                priority=priority,
                factor_type=factor.factor_type,
                suggested_within_days=template.suggested_within_days,
                source=InterventionSource.RECOMMENDER,
            )
            for template in self.templates_for(factor.factor_type, factor.severity)
        ]

    def recommend(self, assessment: RiskAssessment) -> List[InterventionAction]:
        """
        Proposals for every factor, in factor order (largest driver
        first). An assessment without factors gets none.
        """
        proposals: List[InterventionAction] = []
        for factor in assessment.factors:
            proposals.extend(self.recommend_for_factor(assessment, factor))
        return proposals
