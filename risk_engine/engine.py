"""
Risk Engine - Main Engine.

============================================================
PURPOSE
============================================================
Orchestrates one scoring run per student and the operator
workflow around stored assessments.

============================================================
FLOW
============================================================
1. Validate and normalize raw signals (sentiment time-boxed)
2. Read the student's immediately preceding assessment
3. Score, classify, decompose
4. Attach the initial alert status
5. Persist atomically
6. Dispatch notifications (failures never fail the run)

Scoring for one student is serialized with a per-student
lock so trend computation never races. Batch scoring fans
out under a semaphore. Store calls run in worker threads so
a blocking SQL store does not stall the event loop.

============================================================
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Sequence

from .alerting import AlertManager, RiskAlertingService, create_alerting_service
from .classifier import classify_risk_level
from .config import RiskEngineConfig, get_default_config, load_config_from_env
from .decomposer import RiskFactorDecomposer
from .interventions import InterventionRecommender, apply_transition
from .normalizer import FeatureNormalizer
from .scorer import RiskScorer
from .sentiment import HttpSentimentAdapter, SentimentAdapter
from .store import AssessmentStore, IdentityGenerator, InMemoryAssessmentStore
from .types import (
    AssessmentStatistics,
    AssessmentStatus,
    InterventionAction,
    InterventionPriority,
    InterventionSource,
    InterventionStatus,
    NotFoundError,
    RiskAssessment,
    RiskEngineError,
    RiskLevel,
    StudentSignals,
    ValidationError,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome of scoring one student within a batch."""

    student_id: str
    assessment: Optional[RiskAssessment] = None
    error: Optional[RiskEngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RiskEngine:
    """
    Dropout risk engine.

    ============================================================
    USAGE
    ============================================================
    ```python
    engine = RiskEngine()
    assessment = await engine.assess(signals)

    if assessment.alert_triggered:
        proposals = engine.recommend_interventions(assessment.assessment_id)
    ```
    ============================================================
    """

    def __init__(
        self,
        config: Optional[RiskEngineConfig] = None,
        store: Optional[AssessmentStore] = None,
        sentiment_adapter: Optional[SentimentAdapter] = None,
        alerting_service: Optional[RiskAlertingService] = None,
        identity: Optional[IdentityGenerator] = None,
    ):
        self.config = config or get_default_config()
        self.store: AssessmentStore = store if store is not None else InMemoryAssessmentStore()
        self.sentiment_adapter = sentiment_adapter
        self.alerting_service = alerting_service
        self.identity = identity or IdentityGenerator()

        self.normalizer = FeatureNormalizer(
            engagement_config=self.config.engagement,
            confidence_config=self.config.confidence,
            sentiment_config=self.config.sentiment,
            sentiment_adapter=sentiment_adapter,
        )
        self.scorer = RiskScorer(self.config.weights, self.config.confidence)
        self.decomposer = RiskFactorDecomposer(self.config.weights, self.config.thresholds)
        self.alert_manager = AlertManager()
        self.recommender = InterventionRecommender()

        self._student_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _student_lock(self, student_id: str) -> AsyncIterator[None]:
        """
        Serialize runs for one student.

        The lock entry is dropped once no run holds or awaits it.
        """
        lock = self._student_locks.get(student_id)
        if lock is None:
            lock = self._student_locks[student_id] = asyncio.Lock()
        self._lock_users[student_id] = self._lock_users.get(student_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[student_id] - 1
            if remaining:
                self._lock_users[student_id] = remaining
            else:
                del self._lock_users[student_id]
                del self._student_locks[student_id]

    # --------------------------------------------------------
    # SCORING
    # --------------------------------------------------------

    async def assess(self, signals: StudentSignals) -> RiskAssessment:
        """
        Score one student and persist the assessment.

        Raises:
            ValidationError: Malformed identity or raw metric
            MissingSignalError: A sub-score has no inputs at all
            PersistenceError: The store rejected the assessment
        """
        async with self._student_lock(signals.student_id):
            normalized = await self.normalizer.normalize(signals)
            previous = await asyncio.to_thread(self.store.latest_for_student, signals.student_id)

            result = self.scorer.score(normalized.scores, normalized.fallbacks)
            risk_level = classify_risk_level(result.dropout_probability)
            factors = self.decomposer.decompose(
                normalized.scores,
                previous.scores if previous is not None else None,
            )

            now = datetime.now(timezone.utc)
            assessment = RiskAssessment(
                assessment_id=self.identity.next_id(),
                assessment_number=self.identity.next_number("RISK", now),
                student_id=signals.student_id,
                student_name=signals.student_name,
                scores=normalized.scores,
                dropout_probability=result.dropout_probability,
                risk_level=risk_level,
                confidence=result.confidence,
                factors=tuple(
                    replace(f, factor_number=self.identity.next_number("RF", now))
                    for f in factors
                ),
                alert=self.alert_manager.initial_status(risk_level, now),
                fallbacks=normalized.fallbacks,
                model_version=self.config.model_version,
                weights=self.config.weights.to_dict(),
                assessed_at=now,
            )

            await asyncio.to_thread(self.store.add, assessment)

        log = logger.warning if assessment.alert_triggered else logger.info
        log(
            f"Assessment {assessment.assessment_number} for student {assessment.student_id}: "
            f"P={assessment.dropout_probability:.3f} level={risk_level.value} "
            f"confidence={assessment.confidence:.0f} factors={len(assessment.factors)}"
        )

        await self._notify(assessment)
        return assessment

    async def _notify(self, assessment: RiskAssessment) -> None:
        if self.alerting_service is None or not assessment.alert_triggered:
            return
        try:
            await self.alerting_service.process_assessment(assessment)
        except Exception as e:
            logger.error(f"Alert notification failed for {assessment.assessment_id}: {e}")

    async def assess_batch(self, cohort: Sequence[StudentSignals]) -> List[BatchItemResult]:
        """
        Score a cohort with bounded concurrency.

        Per-student engine errors are returned alongside the
        successful assessments, in input order.
        """
        semaphore = asyncio.Semaphore(self.config.concurrency.max_concurrent_assessments)

        async def bounded(signals: StudentSignals) -> RiskAssessment:
            async with semaphore:
                return await self.assess(signals)

        outcomes = await asyncio.gather(
            *(bounded(s) for s in cohort),
            return_exceptions=True,
        )

        results: List[BatchItemResult] = []
        for signals, outcome in zip(cohort, outcomes):
            if isinstance(outcome, RiskEngineError):
                logger.warning(f"Batch scoring failed for student {signals.student_id}: {outcome}")
                results.append(BatchItemResult(student_id=signals.student_id, error=outcome))
            elif isinstance(outcome, Exception):
                logger.error(
                    f"Batch scoring crashed for student {signals.student_id}: "
                    f"{type(outcome).__name__}: {outcome}"
                )
                error = RiskEngineError(
                    str(outcome) or type(outcome).__name__,
                    details={"error_type": type(outcome).__name__},
                )
                results.append(BatchItemResult(student_id=signals.student_id, error=error))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(BatchItemResult(student_id=signals.student_id, assessment=outcome))

        failed = sum(1 for r in results if not r.ok)
        logger.info(f"Batch scored {len(results) - failed}/{len(results)} students")
        return results

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def get_assessment(self, assessment_id: str) -> RiskAssessment:
        assessment = self.store.get(assessment_id)
        if assessment is None:
            raise NotFoundError(
                f"Assessment {assessment_id} not found",
                details={"assessment_id": assessment_id},
            )
        return assessment

    def assessment_status(self, assessment: RiskAssessment) -> AssessmentStatus:
        """ACTIVE for the student's latest assessment, SUPERSEDED otherwise."""
        latest = self.store.latest_for_student(assessment.student_id)
        if latest is not None and latest.assessment_id == assessment.assessment_id:
            return AssessmentStatus.ACTIVE
        return AssessmentStatus.SUPERSEDED

    def list_assessments(
        self,
        student_id: Optional[str] = None,
        risk_level: Optional[RiskLevel] = None,
        alert_triggered: Optional[bool] = None,
        status: Optional[AssessmentStatus] = None,
        limit: Optional[int] = None,
    ) -> List[RiskAssessment]:
        """Filtered assessments, newest first."""
        if status is None:
            return self.store.list_assessments(
                student_id=student_id,
                risk_level=risk_level,
                alert_triggered=alert_triggered,
                limit=limit,
            )

        matches = [
            a for a in self.store.list_assessments(
                student_id=student_id,
                risk_level=risk_level,
                alert_triggered=alert_triggered,
            )
            if self.assessment_status(a) == status
        ]
        return matches[:limit] if limit is not None else matches

    def statistics(self) -> AssessmentStatistics:
        return self.store.statistics()

    # --------------------------------------------------------
    # ALERT WORKFLOW
    # --------------------------------------------------------

    def acknowledge(self, assessment_id: str, acknowledged_by: Optional[str] = None) -> RiskAssessment:
        """
        Acknowledge a triggered alert. Idempotent.

        Raises:
            NotFoundError: Unknown assessment
            AlertTransitionError: The assessment never triggered an alert
        """
        assessment = self.get_assessment(assessment_id)
        updated = self.alert_manager.acknowledge(assessment, acknowledged_by)
        if updated is assessment:
            return assessment
        return self.store.update_alert(assessment_id, updated.alert)

    def resolve(
        self,
        assessment_id: str,
        resolved_by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> RiskAssessment:
        """
        Resolve an acknowledged alert. Idempotent.

        Raises:
            NotFoundError: Unknown assessment
            AlertTransitionError: The alert is not acknowledged
        """
        assessment = self.get_assessment(assessment_id)
        updated = self.alert_manager.resolve(assessment, resolved_by, note)
        if updated is assessment:
            return assessment
        return self.store.update_alert(assessment_id, updated.alert)

    # --------------------------------------------------------
    # INTERVENTIONS
    # --------------------------------------------------------

    def recommend_interventions(self, assessment_id: str) -> List[InterventionAction]:
        return self.recommender.recommend(self.get_assessment(assessment_id))

    def list_interventions(self, assessment_id: str) -> List[InterventionAction]:
        self.get_assessment(assessment_id)
        return self.store.list_interventions(assessment_id)

    def create_intervention(
        self,
        assessment_id: str,
        from_recommendation: Optional[int] = None,
        action_type: Optional[str] = None,
        description: Optional[str] = None,
        priority: Optional[InterventionPriority] = None,
        scheduled_date: Optional[date] = None,
        assigned_to: Optional[str] = None,
        assigned_to_name: Optional[str] = None,
    ) -> InterventionAction:
        """
        Record an intervention for an assessment.

        Either accepts recommender proposal number
        `from_recommendation` or records a manual action. A manual
        action with a scheduled_date starts as SCHEDULED.

        Raises:
            NotFoundError: Unknown assessment
            ValidationError: Bad proposal index or incomplete manual entry
        """
        assessment = self.get_assessment(assessment_id)
        now = datetime.now(timezone.utc)

        if from_recommendation is not None:
            proposals = self.recommender.recommend(assessment)
            if not 0 <= from_recommendation < len(proposals):
                raise ValidationError(
                    f"No recommendation at index {from_recommendation}",
                    details={"from_recommendation": from_recommendation, "available": len(proposals)},
                )
            action = replace(
                proposals[from_recommendation],
                assigned_to=assigned_to,
                assigned_to_name=assigned_to_name,
            )
        else:
            if not action_type or not description:
                raise ValidationError(
                    "Manual interventions require action_type and description",
                    details={"fields": ["action_type", "description"]},
                )
            action = InterventionAction(
                assessment_id=assessment.assessment_id,
                student_id=assessment.student_id,
                action_type=action_type,
                description=description,
                priority=priority or InterventionPriority.MEDIUM,
                status=InterventionStatus.SCHEDULED if scheduled_date else InterventionStatus.PROPOSED,
                scheduled_date=scheduled_date,
                assigned_to=assigned_to,
                assigned_to_name=assigned_to_name,
                source=InterventionSource.MANUAL,
            )

        action = replace(
            action,
            action_id=self.identity.next_id(),
            action_number=self.identity.next_number("INT", now),
            created_at=now,
            updated_at=now,
        )
        self.store.add_intervention(action)

        logger.info(
            f"Intervention {action.action_number} ({action.action_type}, {action.priority.value}) "
            f"recorded for assessment {assessment.assessment_number}"
        )
        return action

    def update_intervention(
        self,
        action_id: str,
        status: InterventionStatus,
        scheduled_date: Optional[date] = None,
        assigned_to: Optional[str] = None,
        assigned_to_name: Optional[str] = None,
    ) -> InterventionAction:
        """
        Record an externally driven status change.

        Raises:
            NotFoundError: Unknown intervention
            InterventionTransitionError: Transition not allowed
        """
        action = self.store.get_intervention(action_id)
        if action is None:
            raise NotFoundError(
                f"Intervention {action_id} not found",
                details={"action_id": action_id},
            )

        updated = apply_transition(
            action,
            status,
            scheduled_date=scheduled_date,
            assigned_to=assigned_to,
            assigned_to_name=assigned_to_name,
        )
        self.store.update_intervention(updated)

        logger.info(f"Intervention {action.action_number}: {action.status.value} -> {status.value}")
        return updated

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def close(self) -> None:
        if self.sentiment_adapter is not None:
            await self.sentiment_adapter.close()


# ============================================================
# FACTORY FUNCTIONS
# ============================================================


def create_risk_engine(
    config: Optional[RiskEngineConfig] = None,
    database_url: Optional[str] = None,
) -> RiskEngine:
    """
    Build an engine from configuration.

    Uses the SQL store when a database URL is given or set in the
    environment, the in-memory store otherwise. The HTTP sentiment
    adapter is attached only when a service URL is configured.
    """
    config = config or load_config_from_env()

    adapter: Optional[SentimentAdapter] = None
    if config.sentiment.service_url:
        adapter = HttpSentimentAdapter.from_config(config.sentiment)

    url = database_url or os.getenv("RISK_ENGINE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if url:
        from database.engine import create_all_tables, create_database_engine, create_session_factory
        from .repository import SqlAlchemyAssessmentStore

        db_engine = create_database_engine(url)
        create_all_tables(db_engine)
        store: AssessmentStore = SqlAlchemyAssessmentStore(create_session_factory(db_engine))
    else:
        logger.info("No database URL configured, using in-memory assessment store")
        store = InMemoryAssessmentStore()

    return RiskEngine(
        config=config,
        store=store,
        sentiment_adapter=adapter,
        alerting_service=create_alerting_service(config.alerting),
    )
