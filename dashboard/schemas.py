"""
Pydantic Schemas for the Risk Assessment API.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from risk_engine.types import (
    AttendanceInputs,
    EngagementInputs,
    PerformanceInputs,
    StudentSignals,
)


# =============================================================
# ENUMS
# =============================================================

class RiskLevelEnum(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AssessmentStatusEnum(str, Enum):
    ACTIVE = "active"
    SUPERSEDED = "superseded"


class PriorityEnum(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class InterventionStatusEnum(str, Enum):
    PROPOSED = "proposed"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# =============================================================
# REQUEST SCHEMAS
# =============================================================

class EngagementInputsSchema(BaseModel):
    """Raw engagement metrics. Set unknown=true to accept the neutral default."""
    login_frequency_per_week: Optional[float] = None
    time_on_platform_hours_per_week: Optional[float] = None
    submission_rate_pct: Optional[float] = None
    unknown: bool = False


class PerformanceInputsSchema(BaseModel):
    average_grade_pct: Optional[float] = None
    unknown: bool = False


class AttendanceInputsSchema(BaseModel):
    attendance_rate_pct: Optional[float] = None
    unknown: bool = False


class RiskAssessmentCreate(BaseModel):
    """Request body for scoring one student."""
    student_id: str
    student_name: str
    engagement_inputs: EngagementInputsSchema = Field(default_factory=EngagementInputsSchema)
    performance_inputs: PerformanceInputsSchema = Field(default_factory=PerformanceInputsSchema)
    attendance_inputs: AttendanceInputsSchema = Field(default_factory=AttendanceInputsSchema)
    sentiment_text: Optional[str] = None
    sentiment_polarity: Optional[float] = None

    def to_signals(self) -> StudentSignals:
        return StudentSignals(
            student_id=self.student_id,
            student_name=self.student_name,
            engagement=EngagementInputs(**self.engagement_inputs.model_dump()),
            performance=PerformanceInputs(**self.performance_inputs.model_dump()),
            attendance=AttendanceInputs(**self.attendance_inputs.model_dump()),
            sentiment_text=self.sentiment_text,
            sentiment_polarity=self.sentiment_polarity,
        )


class BatchAssessmentCreate(BaseModel):
    students: List[RiskAssessmentCreate] = Field(..., min_length=1)


class AcknowledgeRequest(BaseModel):
    acknowledged_by: Optional[str] = None


class ResolveRequest(BaseModel):
    resolved_by: Optional[str] = None
    note: Optional[str] = None


class InterventionCreate(BaseModel):
    """
    Either accept a recommender proposal by index, or describe a
    manual action.
    """
    from_recommendation: Optional[int] = Field(None, ge=0)
    action_type: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[PriorityEnum] = None
    scheduled_date: Optional[date] = None
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None


class InterventionUpdate(BaseModel):
    status: InterventionStatusEnum
    scheduled_date: Optional[date] = None
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None


# =============================================================
# RESPONSE SCHEMAS
# =============================================================

class RiskFactorResponse(BaseModel):
    factor_number: str
    factor_type: str
    factor_name: str
    description: str
    weight: float
    current_value: float
    threshold_value: float
    threshold_exceeded: bool
    contribution: float
    severity: str
    trend: str
    previous_value: Optional[float] = None


class AlertStatusResponse(BaseModel):
    state: str
    triggered_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_note: Optional[str] = None


class RiskAssessmentResponse(BaseModel):
    assessment_id: str
    assessment_number: str
    student_id: str
    student_name: str
    engagement_score: float
    performance_score: float
    attendance_score: float
    sentiment_score: float
    dropout_probability: float
    risk_score: int
    risk_level: RiskLevelEnum
    confidence: float
    alert_triggered: bool
    alert_acknowledged: bool
    alert: AlertStatusResponse
    factors: List[RiskFactorResponse]
    fallbacks: List[str]
    model_version: str
    weights: Dict[str, float]
    assessed_at: datetime
    status: Optional[AssessmentStatusEnum] = None


class InterventionResponse(BaseModel):
    action_id: Optional[str] = None
    action_number: Optional[str] = None
    assessment_id: str
    student_id: str
    factor_type: Optional[str] = None
    action_type: str
    description: str
    priority: PriorityEnum
    status: InterventionStatusEnum
    suggested_within_days: Optional[int] = None
    scheduled_date: Optional[date] = None
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None
    source: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class BatchItemResponse(BaseModel):
    student_id: str
    success: bool
    assessment: Optional[RiskAssessmentResponse] = None
    error: Optional[ErrorResponse] = None


class BatchAssessmentResponse(BaseModel):
    results: List[BatchItemResponse]
    succeeded: int
    failed: int


class StatisticsResponse(BaseModel):
    total_assessments: int
    students: int
    critical_risk: int
    high_risk: int
    active_alerts: int
