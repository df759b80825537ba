"""
Risk Engine - Persistence Models.

============================================================
PURPOSE
============================================================
ORM models for persisting risk assessments.

Enables:
- Append-only audit trail of every scoring run
- Trend computation from the previous assessment
- Alert and intervention workflow tracking

============================================================
MODELS
============================================================
1. RiskAssessmentRecord: One scoring run for one student
2. RiskFactorRecord: Breached factor (child of assessment)
3. InterventionActionRecord: Follow-up action (child of assessment)

============================================================
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database.engine import Base


# ============================================================
# RISK ASSESSMENT MODEL
# ============================================================


class RiskAssessmentRecord(Base):
    """
    Immutable scoring snapshot.

    ============================================================
    WHAT IT STORES
    ============================================================
    - The four sub-scores used as inputs
    - Probability, level, confidence
    - Alert state (the only mutable part)
    - Model version and weights for auditability

    ============================================================
    """

    __tablename__ = "risk_assessments"

    # Monotonic opaque id
    id: Mapped[str] = mapped_column(String(32), primary_key=True)

    assessment_number: Mapped[str] = mapped_column(String(32), nullable=False)

    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Sub-scores
    engagement_score: Mapped[float] = mapped_column(Float, nullable=False)
    performance_score: Mapped[float] = mapped_column(Float, nullable=False)
    attendance_score: Mapped[float] = mapped_column(Float, nullable=False)
    sentiment_score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Polarity in [-1, 1]",
    )

    # Outputs
    dropout_probability: Mapped[float] = mapped_column(Float, nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_level: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="low, medium, high, critical",
    )
    confidence: Mapped[float] = mapped_column(Float, nullable=False)

    # Alert lifecycle
    alert_state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="none",
        comment="none, triggered, acknowledged, resolved",
    )
    alert_triggered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Audit
    fallbacks: Mapped[Optional[List[str]]] = mapped_column(
        JSON,
        nullable=True,
        comment="Sub-scores that used a neutral default",
    )
    model_version: Mapped[str] = mapped_column(String(64), nullable=False)
    weights: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    factors: Mapped[List["RiskFactorRecord"]] = relationship(
        "RiskFactorRecord",
        back_populates="assessment",
        cascade="all, delete-orphan",
        order_by="RiskFactorRecord.rank",
        lazy="selectin",
    )
    interventions: Mapped[List["InterventionActionRecord"]] = relationship(
        "InterventionActionRecord",
        back_populates="assessment",
        cascade="all, delete-orphan",
    )

    # Indexes
    __table_args__ = (
        Index("ix_risk_assessments_student_created", "student_id", "created_at"),
        Index("ix_risk_assessments_risk_level", "risk_level"),
    )

    def __repr__(self) -> str:
        return (
            f"RiskAssessmentRecord("
            f"id={self.id}, "
            f"student={self.student_id}, "
            f"level={self.risk_level})"
        )


# ============================================================
# RISK FACTOR MODEL
# ============================================================


class RiskFactorRecord(Base):
    """Breached factor, keyed by (assessment_id, factor_type)."""

    __tablename__ = "risk_factors"

    assessment_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("risk_assessments.id", ondelete="CASCADE"),
        primary_key=True,
    )
    factor_type: Mapped[str] = mapped_column(
        String(20),
        primary_key=True,
        comment="engagement, academic, attendance, sentiment",
    )

    factor_number: Mapped[str] = mapped_column(String(32), nullable=False)

    # Position in the contribution ranking
    rank: Mapped[int] = mapped_column(Integer, nullable=False)

    weight: Mapped[float] = mapped_column(Float, nullable=False)
    current_value: Mapped[float] = mapped_column(Float, nullable=False)
    threshold_value: Mapped[float] = mapped_column(Float, nullable=False)
    contribution: Mapped[float] = mapped_column(Float, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    trend: Mapped[str] = mapped_column(String(20), nullable=False)
    previous_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    assessment: Mapped["RiskAssessmentRecord"] = relationship(
        "RiskAssessmentRecord",
        back_populates="factors",
    )

    def __repr__(self) -> str:
        return (
            f"RiskFactorRecord("
            f"assessment={self.assessment_id}, "
            f"type={self.factor_type}, "
            f"severity={self.severity})"
        )


# ============================================================
# INTERVENTION ACTION MODEL
# ============================================================


class InterventionActionRecord(Base):
    """Recorded follow-up action for an assessment."""

    __tablename__ = "intervention_actions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    action_number: Mapped[str] = mapped_column(String(32), nullable=False)

    assessment_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("risk_assessments.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    factor_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="low, medium, high, urgent",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="proposed, scheduled, completed, cancelled",
    )
    suggested_within_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    assigned_to_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    assessment: Mapped["RiskAssessmentRecord"] = relationship(
        "RiskAssessmentRecord",
        back_populates="interventions",
    )

    __table_args__ = (
        Index("ix_intervention_actions_assessment_id", "assessment_id"),
        Index("ix_intervention_actions_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"InterventionActionRecord("
            f"id={self.id}, "
            f"type={self.action_type}, "
            f"status={self.status})"
        )
