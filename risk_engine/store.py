"""
Risk Engine - Assessment Store.

============================================================
PURPOSE
============================================================
Storage contract for assessments, their factors and recorded
interventions, plus the in-memory implementation used by
tests and single-process deployments.

============================================================
CONTRACT
============================================================
- add() is all-or-nothing: the assessment and its factors
  are stored together or not at all
- Assessments are append-only; only the alert status of a
  stored assessment may be replaced
- Listings are newest-first (ids are monotonically ordered)
- latest_for_student() returns the immediately preceding
  assessment used for trend computation

============================================================
"""

import threading
import time
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Protocol, Tuple

from .types import (
    AlertState,
    AlertStatus,
    AssessmentStatistics,
    InterventionAction,
    NotFoundError,
    PersistenceError,
    RiskAssessment,
    RiskLevel,
)


# ============================================================
# IDENTITY
# ============================================================


class IdentityGenerator:
    """
    Opaque ids and human display numbers.

    Ids are zero-padded nanosecond timestamps, bumped when the
    clock does not advance, so string order equals creation order.
    Display numbers use a per-prefix daily sequence:
    PREFIX-YYYYMMDD-NNNNNN.
    """

    ID_WIDTH = 20

    def __init__(self):
        self._lock = threading.Lock()
        self._last_ns = 0
        self._sequences: Dict[Tuple[str, date], int] = {}

    def next_id(self) -> str:
        with self._lock:
            now = time.time_ns()
            if now <= self._last_ns:
                now = self._last_ns + 1
            self._last_ns = now
            return str(now).zfill(self.ID_WIDTH)

    def next_number(self, prefix: str, at: Optional[datetime] = None) -> str:
        day = (at or datetime.now(timezone.utc)).date()
        with self._lock:
            seq = self._sequences.get((prefix, day), 0) + 1
            self._sequences[(prefix, day)] = seq
        return f"{prefix}-{day.strftime('%Y%m%d')}-{seq:06d}"


# ============================================================
# STORE PROTOCOL
# ============================================================


class AssessmentStore(Protocol):
    """Persistence boundary used by the RiskEngine."""

    def add(self, assessment: RiskAssessment) -> RiskAssessment:
        ...

    def get(self, assessment_id: str) -> Optional[RiskAssessment]:
        ...

    def latest_for_student(self, student_id: str) -> Optional[RiskAssessment]:
        ...

    def list_assessments(
        self,
        student_id: Optional[str] = None,
        risk_level: Optional[RiskLevel] = None,
        alert_triggered: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> List[RiskAssessment]:
        ...

    def update_alert(self, assessment_id: str, alert: AlertStatus) -> RiskAssessment:
        ...

    def add_intervention(self, action: InterventionAction) -> InterventionAction:
        ...

    def get_intervention(self, action_id: str) -> Optional[InterventionAction]:
        ...

    def update_intervention(self, action: InterventionAction) -> InterventionAction:
        ...

    def list_interventions(self, assessment_id: str) -> List[InterventionAction]:
        ...

    def statistics(self) -> AssessmentStatistics:
        ...


def compute_statistics(all_assessments: List[RiskAssessment]) -> AssessmentStatistics:
    """
    Counts over the current (latest) assessment of each student.

    Active alerts are triggered and not yet acknowledged.
    """
    current: Dict[str, RiskAssessment] = {}
    for assessment in all_assessments:
        existing = current.get(assessment.student_id)
        if existing is None or assessment.assessment_id > existing.assessment_id:
            current[assessment.student_id] = assessment

    latest = list(current.values())
    return AssessmentStatistics(
        total_assessments=len(all_assessments),
        students=len(latest),
        critical_risk=sum(1 for a in latest if a.risk_level == RiskLevel.CRITICAL),
        high_risk=sum(1 for a in latest if a.risk_level == RiskLevel.HIGH),
        active_alerts=sum(1 for a in latest if a.alert.state == AlertState.TRIGGERED),
    )


# ============================================================
# IN-MEMORY STORE
# ============================================================


class InMemoryAssessmentStore:
    """Thread-safe, process-local AssessmentStore."""

    def __init__(self):
        self._lock = threading.Lock()
        self._assessments: Dict[str, RiskAssessment] = {}
        self._by_student: Dict[str, List[str]] = {}
        self._interventions: Dict[str, InterventionAction] = {}

    def add(self, assessment: RiskAssessment) -> RiskAssessment:
        with self._lock:
            if assessment.assessment_id in self._assessments:
                raise PersistenceError(
                    f"Assessment {assessment.assessment_id} already exists",
                    details={"assessment_id": assessment.assessment_id},
                )
            self._assessments[assessment.assessment_id] = assessment
            self._by_student.setdefault(assessment.student_id, []).append(assessment.assessment_id)
        return assessment

    def get(self, assessment_id: str) -> Optional[RiskAssessment]:
        return self._assessments.get(assessment_id)

    def latest_for_student(self, student_id: str) -> Optional[RiskAssessment]:
        with self._lock:
            ids = self._by_student.get(student_id)
            if not ids:
                return None
            return self._assessments[max(ids)]

    def list_assessments(
        self,
        student_id: Optional[str] = None,
        risk_level: Optional[RiskLevel] = None,
        alert_triggered: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> List[RiskAssessment]:
        with self._lock:
            if student_id is not None:
                candidates = [self._assessments[i] for i in self._by_student.get(student_id, [])]
            else:
                candidates = list(self._assessments.values())

        results = [
            a for a in candidates
            if (risk_level is None or a.risk_level == risk_level)
            and (alert_triggered is None or a.alert_triggered == alert_triggered)
        ]
        results.sort(key=lambda a: a.assessment_id, reverse=True)
        return results[:limit] if limit is not None else results

    def update_alert(self, assessment_id: str, alert: AlertStatus) -> RiskAssessment:
        with self._lock:
            current = self._assessments.get(assessment_id)
            if current is None:
                raise NotFoundError(
                    f"Assessment {assessment_id} not found",
                    details={"assessment_id": assessment_id},
                )
            updated = replace(current, alert=alert)
            self._assessments[assessment_id] = updated
        return updated

    def add_intervention(self, action: InterventionAction) -> InterventionAction:
        if action.action_id is None:
            raise PersistenceError("Intervention must have an action_id before storing")
        with self._lock:
            if action.assessment_id not in self._assessments:
                raise NotFoundError(
                    f"Assessment {action.assessment_id} not found",
                    details={"assessment_id": action.assessment_id},
                )
            self._interventions[action.action_id] = action
        return action

    def get_intervention(self, action_id: str) -> Optional[InterventionAction]:
        return self._interventions.get(action_id)

    def update_intervention(self, action: InterventionAction) -> InterventionAction:
        with self._lock:
            if action.action_id not in self._interventions:
                raise NotFoundError(
                    f"Intervention {action.action_id} not found",
                    details={"action_id": action.action_id},
                )
            self._interventions[action.action_id] = action
        return action

    def list_interventions(self, assessment_id: str) -> List[InterventionAction]:
        with self._lock:
            actions = [a for a in self._interventions.values() if a.assessment_id == assessment_id]
        return sorted(actions, key=lambda a: a.action_id or "")

    def statistics(self) -> AssessmentStatistics:
        with self._lock:
            snapshot = list(self._assessments.values())
        return compute_statistics(snapshot)
