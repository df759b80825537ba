"""
Risk Engine - Repository.

============================================================
PURPOSE
============================================================
SQLAlchemy implementation of the AssessmentStore protocol.

Provides clean interface for:
- Saving assessments with their factors in one transaction
- Reading the latest assessment per student
- Filtered, newest-first listing
- Alert and intervention workflow updates

============================================================
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from database.engine import DatabasePersistenceError, transaction_scope

from .models import InterventionActionRecord, RiskAssessmentRecord, RiskFactorRecord
from .types import (
    AlertState,
    AlertStatus,
    AssessmentStatistics,
    FactorType,
    InterventionAction,
    InterventionPriority,
    InterventionSource,
    InterventionStatus,
    NotFoundError,
    PersistenceError,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    Severity,
    SubScores,
    Trend,
)


logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """Some backends (SQLite) drop tzinfo; stored values are UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ============================================================
# MAPPING
# ============================================================


def assessment_to_record(assessment: RiskAssessment) -> RiskAssessmentRecord:
    alert = assessment.alert
    record = RiskAssessmentRecord(
        id=assessment.assessment_id,
        assessment_number=assessment.assessment_number,
        student_id=assessment.student_id,
        student_name=assessment.student_name,
        engagement_score=assessment.scores.engagement,
        performance_score=assessment.scores.performance,
        attendance_score=assessment.scores.attendance,
        sentiment_score=assessment.scores.sentiment,
        dropout_probability=assessment.dropout_probability,
        risk_score=assessment.risk_score,
        risk_level=assessment.risk_level.value,
        confidence=assessment.confidence,
        alert_state=alert.state.value,
        alert_triggered_at=alert.triggered_at,
        acknowledged_at=alert.acknowledged_at,
        acknowledged_by=alert.acknowledged_by,
        resolved_at=alert.resolved_at,
        resolved_by=alert.resolved_by,
        resolution_note=alert.resolution_note,
        fallbacks=[f.value for f in assessment.fallbacks],
        model_version=assessment.model_version,
        weights=dict(assessment.weights),
        created_at=assessment.assessed_at,
    )
    record.factors = [
        RiskFactorRecord(
            factor_type=factor.factor_type.value,
            factor_number=factor.factor_number,
            rank=rank,
            weight=factor.weight,
            current_value=factor.current_value,
            threshold_value=factor.threshold_value,
            contribution=factor.contribution,
            severity=factor.severity.value,
            trend=factor.trend.value,
            previous_value=factor.previous_value,
        )
        for rank, factor in enumerate(assessment.factors)
    ]
    return record


def record_to_assessment(record: RiskAssessmentRecord) -> RiskAssessment:
    factors = tuple(
        RiskFactor(
            factor_type=FactorType(f.factor_type),
            weight=f.weight,
            current_value=f.current_value,
            threshold_value=f.threshold_value,
            contribution=f.contribution,
            severity=Severity(f.severity),
            trend=Trend(f.trend),
            factor_number=f.factor_number,
            previous_value=f.previous_value,
        )
        for f in sorted(record.factors, key=lambda f: f.rank)
    )

    return RiskAssessment(
        assessment_id=record.id,
        assessment_number=record.assessment_number,
        student_id=record.student_id,
        student_name=record.student_name,
        scores=SubScores(
            engagement=record.engagement_score,
            performance=record.performance_score,
            attendance=record.attendance_score,
            sentiment=record.sentiment_score,
        ),
        dropout_probability=record.dropout_probability,
        risk_level=RiskLevel(record.risk_level),
        confidence=record.confidence,
        factors=factors,
        alert=AlertStatus(
            state=AlertState(record.alert_state),
            triggered_at=_aware(record.alert_triggered_at),
            acknowledged_at=_aware(record.acknowledged_at),
            acknowledged_by=record.acknowledged_by,
            resolved_at=_aware(record.resolved_at),
            resolved_by=record.resolved_by,
            resolution_note=record.resolution_note,
        ),
        fallbacks=tuple(FactorType(f) for f in (record.fallbacks or [])),
        model_version=record.model_version,
        weights=dict(record.weights or {}),
        assessed_at=_aware(record.created_at),
    )


def intervention_to_record(action: InterventionAction) -> InterventionActionRecord:
    return InterventionActionRecord(
        id=action.action_id,
        action_number=action.action_number,
        assessment_id=action.assessment_id,
        student_id=action.student_id,
        factor_type=action.factor_type.value if action.factor_type else None,
        action_type=action.action_type,
        description=action.description,
        priority=action.priority.value,
        status=action.status.value,
        suggested_within_days=action.suggested_within_days,
        scheduled_date=action.scheduled_date,
        assigned_to=action.assigned_to,
        assigned_to_name=action.assigned_to_name,
        source=action.source.value,
        created_at=action.created_at or datetime.now(timezone.utc),
        updated_at=action.updated_at,
    )


def record_to_intervention(record: InterventionActionRecord) -> InterventionAction:
    return InterventionAction(
        assessment_id=record.assessment_id,
        student_id=record.student_id,
        action_type=record.action_type,
        description=record.description,
        priority=InterventionPriority(record.priority),
        status=InterventionStatus(record.status),
        factor_type=FactorType(record.factor_type) if record.factor_type else None,
        suggested_within_days=record.suggested_within_days,
        scheduled_date=record.scheduled_date,
        assigned_to=record.assigned_to,
        assigned_to_name=record.assigned_to_name,
        source=InterventionSource(record.source),
        action_id=record.id,
        action_number=record.action_number,
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


# ============================================================
# REPOSITORY
# ============================================================


class SqlAlchemyAssessmentStore:
    """
    AssessmentStore backed by a relational database.

    ============================================================
    METHODS
    ============================================================
    - add: Persist an assessment and its factors atomically
    - latest_for_student: Previous assessment for trends
    - list_assessments: Filtered, newest-first history
    - update_alert: Replace the alert status of one assessment
    - *_intervention: Intervention workflow records
    - statistics: Counts over current assessments

    ============================================================
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _scope(self):
        return transaction_scope(self._session_factory)

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    def add(self, assessment: RiskAssessment) -> RiskAssessment:
        try:
            with self._scope() as session:
                session.add(assessment_to_record(assessment))
        except DatabasePersistenceError as e:
            logger.error(f"Failed to persist assessment {assessment.assessment_id}: {e}")
            raise PersistenceError(
                "Failed to persist assessment",
                details={"assessment_id": assessment.assessment_id},
            ) from e

        logger.debug(
            f"Persisted assessment {assessment.assessment_id} "
            f"with {len(assessment.factors)} factors"
        )
        return assessment

    def update_alert(self, assessment_id: str, alert: AlertStatus) -> RiskAssessment:
        try:
            with self._scope() as session:
                record = session.get(RiskAssessmentRecord, assessment_id)
                if record is None:
                    raise NotFoundError(
                        f"Assessment {assessment_id} not found",
                        details={"assessment_id": assessment_id},
                    )
                record.alert_state = alert.state.value
                record.alert_triggered_at = alert.triggered_at
                record.acknowledged_at = alert.acknowledged_at
                record.acknowledged_by = alert.acknowledged_by
                record.resolved_at = alert.resolved_at
                record.resolved_by = alert.resolved_by
                record.resolution_note = alert.resolution_note
                session.flush()
                return record_to_assessment(record)
        except DatabasePersistenceError as e:
            logger.error(f"Failed to update alert for assessment {assessment_id}: {e}")
            raise PersistenceError(
                "Failed to update alert",
                details={"assessment_id": assessment_id},
            ) from e

    def add_intervention(self, action: InterventionAction) -> InterventionAction:
        if action.action_id is None:
            raise PersistenceError("Intervention must have an action_id before storing")
        try:
            with self._scope() as session:
                if session.get(RiskAssessmentRecord, action.assessment_id) is None:
                    raise NotFoundError(
                        f"Assessment {action.assessment_id} not found",
                        details={"assessment_id": action.assessment_id},
                    )
                session.add(intervention_to_record(action))
        except DatabasePersistenceError as e:
            logger.error(f"Failed to persist intervention {action.action_id}: {e}")
            raise PersistenceError(
                "Failed to persist intervention",
                details={"action_id": action.action_id},
            ) from e
        return action

    def update_intervention(self, action: InterventionAction) -> InterventionAction:
        try:
            with self._scope() as session:
                record = session.get(InterventionActionRecord, action.action_id)
                if record is None:
                    raise NotFoundError(
                        f"Intervention {action.action_id} not found",
                        details={"action_id": action.action_id},
                    )
                record.status = action.status.value
                record.scheduled_date = action.scheduled_date
                record.assigned_to = action.assigned_to
                record.assigned_to_name = action.assigned_to_name
                record.updated_at = action.updated_at
        except DatabasePersistenceError as e:
            logger.error(f"Failed to update intervention {action.action_id}: {e}")
            raise PersistenceError(
                "Failed to update intervention",
                details={"action_id": action.action_id},
            ) from e
        return action

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    def get(self, assessment_id: str) -> Optional[RiskAssessment]:
        with self._scope() as session:
            record = session.get(RiskAssessmentRecord, assessment_id)
            return record_to_assessment(record) if record else None

    def latest_for_student(self, student_id: str) -> Optional[RiskAssessment]:
        stmt = (
            select(RiskAssessmentRecord)
            .where(RiskAssessmentRecord.student_id == student_id)
            .order_by(RiskAssessmentRecord.id.desc())
            .limit(1)
        )
        with self._scope() as session:
            record = session.execute(stmt).scalar_one_or_none()
            return record_to_assessment(record) if record else None

    def list_assessments(
        self,
        student_id: Optional[str] = None,
        risk_level: Optional[RiskLevel] = None,
        alert_triggered: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> List[RiskAssessment]:
        stmt = select(RiskAssessmentRecord)

        if student_id is not None:
            stmt = stmt.where(RiskAssessmentRecord.student_id == student_id)
        if risk_level is not None:
            stmt = stmt.where(RiskAssessmentRecord.risk_level == risk_level.value)
        if alert_triggered is True:
            stmt = stmt.where(RiskAssessmentRecord.alert_state != AlertState.NONE.value)
        elif alert_triggered is False:
            stmt = stmt.where(RiskAssessmentRecord.alert_state == AlertState.NONE.value)

        stmt = stmt.order_by(RiskAssessmentRecord.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._scope() as session:
            return [record_to_assessment(r) for r in session.execute(stmt).scalars()]

    def get_intervention(self, action_id: str) -> Optional[InterventionAction]:
        with self._scope() as session:
            record = session.get(InterventionActionRecord, action_id)
            return record_to_intervention(record) if record else None

    def list_interventions(self, assessment_id: str) -> List[InterventionAction]:
        stmt = (
            select(InterventionActionRecord)
            .where(InterventionActionRecord.assessment_id == assessment_id)
            .order_by(InterventionActionRecord.id)
        )
        with self._scope() as session:
            return [record_to_intervention(r) for r in session.execute(stmt).scalars()]

    def statistics(self) -> AssessmentStatistics:
        latest_ids = (
            select(func.max(RiskAssessmentRecord.id))
            .group_by(RiskAssessmentRecord.student_id)
        )
        current_stmt = (
            select(RiskAssessmentRecord.risk_level, RiskAssessmentRecord.alert_state)
            .where(RiskAssessmentRecord.id.in_(latest_ids))
        )

        with self._scope() as session:
            total = session.execute(select(func.count(RiskAssessmentRecord.id))).scalar_one()
            current = session.execute(current_stmt).all()

        return AssessmentStatistics(
            total_assessments=total,
            students=len(current),
            critical_risk=sum(1 for level, _ in current if level == RiskLevel.CRITICAL.value),
            high_risk=sum(1 for level, _ in current if level == RiskLevel.HIGH.value),
            active_alerts=sum(1 for _, state in current if state == AlertState.TRIGGERED.value),
        )
