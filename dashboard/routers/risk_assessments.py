"""
FastAPI Router for Risk Assessment Endpoints.

Provides REST API for the dropout risk workflow:
- Score students (single and batch)
- Browse assessment history
- Acknowledge and resolve alerts
- Review recommendations and record interventions

Engine errors propagate to the application's exception
handlers, which map them onto HTTP status codes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from dashboard.schemas import (
    AcknowledgeRequest,
    AssessmentStatusEnum,
    BatchAssessmentCreate,
    BatchAssessmentResponse,
    BatchItemResponse,
    ErrorResponse,
    InterventionCreate,
    InterventionResponse,
    InterventionUpdate,
    ResolveRequest,
    RiskAssessmentCreate,
    RiskAssessmentResponse,
    RiskLevelEnum,
    StatisticsResponse,
)
from risk_engine.engine import RiskEngine
from risk_engine.types import (
    AssessmentStatus,
    InterventionAction,
    InterventionPriority,
    InterventionStatus,
    RiskAssessment,
    RiskLevel,
)

router = APIRouter(prefix="/risk-assessments", tags=["Risk Assessments"])
interventions_router = APIRouter(prefix="/interventions", tags=["Interventions"])


# =============================================================
# HELPER: Engine dependency
# =============================================================

def get_risk_engine(request: Request) -> RiskEngine:
    return request.app.state.risk_engine


def _assessment_response(
    engine: RiskEngine,
    assessment: RiskAssessment,
    with_status: bool = True,
) -> RiskAssessmentResponse:
    data = assessment.to_dict()
    if with_status:
        data["status"] = engine.assessment_status(assessment).value
    return RiskAssessmentResponse.model_validate(data)


def _intervention_response(action: InterventionAction) -> InterventionResponse:
    return InterventionResponse.model_validate(action.to_dict())


# =============================================================
# SCORING ENDPOINTS
# =============================================================

@router.post("", response_model=RiskAssessmentResponse, status_code=status.HTTP_201_CREATED)
async def create_risk_assessment(
    body: RiskAssessmentCreate,
    engine: RiskEngine = Depends(get_risk_engine),
):
    """
    Score one student and persist the assessment.

    Returns the assessment with its factors, largest driver first.
    """
    assessment = await engine.assess(body.to_signals())
    return _assessment_response(engine, assessment)


@router.post("/batch", response_model=BatchAssessmentResponse)
async def create_risk_assessments_batch(
    body: BatchAssessmentCreate,
    engine: RiskEngine = Depends(get_risk_engine),
):
    """Score a cohort. Per-student failures are reported, not raised."""
    results = await engine.assess_batch([s.to_signals() for s in body.students])

    items = [
        BatchItemResponse(
            student_id=r.student_id,
            success=r.ok,
            assessment=_assessment_response(engine, r.assessment, with_status=False) if r.ok else None,
            error=ErrorResponse.model_validate(r.error.to_dict()) if r.error else None,
        )
        for r in results
    ]
    succeeded = sum(1 for i in items if i.success)
    return BatchAssessmentResponse(results=items, succeeded=succeeded, failed=len(items) - succeeded)


# =============================================================
# QUERY ENDPOINTS
# =============================================================

@router.get("", response_model=List[RiskAssessmentResponse])
def list_risk_assessments(
    student_id: Optional[str] = Query(None, description="Filter by student"),
    risk_level: Optional[RiskLevelEnum] = Query(None, description="Filter by risk level"),
    alert_triggered: Optional[bool] = Query(None, description="Filter by alert flag"),
    status_filter: Optional[AssessmentStatusEnum] = Query(None, alias="status", description="active or superseded"),
    limit: int = Query(100, ge=1, le=1000),
    engine: RiskEngine = Depends(get_risk_engine),
):
    """List assessments, newest first."""
    assessments = engine.list_assessments(
        student_id=student_id,
        risk_level=RiskLevel(risk_level.value) if risk_level else None,
        alert_triggered=alert_triggered,
        status=AssessmentStatus(status_filter.value) if status_filter else None,
        limit=limit,
    )
    return [_assessment_response(engine, a) for a in assessments]


@router.get("/statistics", response_model=StatisticsResponse)
def get_statistics(engine: RiskEngine = Depends(get_risk_engine)):
    """Counts over each student's current assessment."""
    return StatisticsResponse.model_validate(engine.statistics().to_dict())


@router.get("/{assessment_id}", response_model=RiskAssessmentResponse)
def get_risk_assessment(
    assessment_id: str,
    engine: RiskEngine = Depends(get_risk_engine),
):
    return _assessment_response(engine, engine.get_assessment(assessment_id))


# =============================================================
# ALERT ENDPOINTS
# =============================================================

@router.post("/{assessment_id}/acknowledge", response_model=RiskAssessmentResponse)
def acknowledge_alert(
    assessment_id: str,
    body: Optional[AcknowledgeRequest] = None,
    engine: RiskEngine = Depends(get_risk_engine),
):
    """Acknowledge a triggered alert. Repeating the call is a no-op."""
    acknowledged_by = body.acknowledged_by if body else None
    assessment = engine.acknowledge(assessment_id, acknowledged_by=acknowledged_by)
    return _assessment_response(engine, assessment)


@router.post("/{assessment_id}/resolve", response_model=RiskAssessmentResponse)
def resolve_alert(
    assessment_id: str,
    body: Optional[ResolveRequest] = None,
    engine: RiskEngine = Depends(get_risk_engine),
):
    """Resolve an acknowledged alert."""
    assessment = engine.resolve(
        assessment_id,
        resolved_by=body.resolved_by if body else None,
        note=body.note if body else None,
    )
    return _assessment_response(engine, assessment)


# =============================================================
# INTERVENTION ENDPOINTS
# =============================================================

@router.get("/{assessment_id}/recommendations", response_model=List[InterventionResponse])
def get_recommendations(
    assessment_id: str,
    engine: RiskEngine = Depends(get_risk_engine),
):
    """Advisory proposals, indexed for POST .../interventions."""
    return [_intervention_response(p) for p in engine.recommend_interventions(assessment_id)]


@router.get("/{assessment_id}/interventions", response_model=List[InterventionResponse])
def list_interventions(
    assessment_id: str,
    engine: RiskEngine = Depends(get_risk_engine),
):
    return [_intervention_response(a) for a in engine.list_interventions(assessment_id)]


@router.post(
    "/{assessment_id}/interventions",
    response_model=InterventionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_intervention(
    assessment_id: str,
    body: InterventionCreate,
    engine: RiskEngine = Depends(get_risk_engine),
):
    """Record an intervention from a recommendation or manual entry."""
    action = engine.create_intervention(
        assessment_id,
        from_recommendation=body.from_recommendation,
        action_type=body.action_type,
        description=body.description,
        priority=InterventionPriority(body.priority.value) if body.priority else None,
        scheduled_date=body.scheduled_date,
        assigned_to=body.assigned_to,
        assigned_to_name=body.assigned_to_name,
    )
    return _intervention_response(action)


@interventions_router.patch("/{action_id}", response_model=InterventionResponse)
def update_intervention(
    action_id: str,
    body: InterventionUpdate,
    engine: RiskEngine = Depends(get_risk_engine),
):
    """Record an externally driven status change."""
    action = engine.update_intervention(
        action_id,
        InterventionStatus(body.status.value),
        scheduled_date=body.scheduled_date,
        assigned_to=body.assigned_to,
        assigned_to_name=body.assigned_to_name,
    )
    return _intervention_response(action)
