"""Candidate placement, stage transitions, rejections and field updates."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from gentepro.core.exceptions import (
    BusinessRuleError,
    ConcurrentModificationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from gentepro.pipeline.enums import AssignmentStatus
from gentepro.pipeline.models import (
    AutomationExecution,
    CandidateStageAssignment,
    PipelineModel,
    RejectionRecord,
    StageMovement,
)
from gentepro.pipeline.repository import PipelineRepository
from gentepro.pipeline.services.automation_engine import AutomationEngine
from gentepro.pipeline.services.transitions import leave_stage, move_to_stage

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    assignment: CandidateStageAssignment
    executions: List[AutomationExecution] = field(default_factory=list)
    resolved_alerts: int = 0
    cancelled_executions: int = 0


@dataclass
class AssignmentHistory:
    assignment: CandidateStageAssignment
    movements: List[StageMovement]
    rejections: List[RejectionRecord]


class AssignmentService:
    """Moves candidates through job pipelines and fires stage automations.

    Executions fired here are queued on the engine; the caller dispatches them
    with ``engine.dispatch_pending()`` after committing.
    """

    def __init__(self, repository: PipelineRepository, engine: AutomationEngine):
        self.repository = repository
        self.engine = engine

    async def _job_pipeline(self, company_id: UUID, job_id: UUID) -> PipelineModel:
        model = await self.repository.find_job_pipeline_model(company_id, job_id)
        if model is None:
            model = await self.repository.get_default_pipeline_model(company_id)
        if model is None:
            raise NotFoundError(f"No pipeline configured for job {job_id}")
        return model

    async def _get_company_assignment(
        self, company_id: UUID, assignment_id: UUID
    ) -> CandidateStageAssignment:
        assignment = await self.repository.get_assignment(assignment_id)
        if assignment is None or assignment.company_id != company_id:
            raise NotFoundError(f"Assignment {assignment_id} not found")
        return assignment

    @staticmethod
    def _check_version(assignment: CandidateStageAssignment, expected_version: int) -> None:
        if assignment.version != expected_version:
            raise ConcurrentModificationError(
                f"Assignment {assignment.id} is at version {assignment.version}, not {expected_version}",
                details={"assignment_id": str(assignment.id), "current_version": assignment.version},
            )

    async def add_to_pipeline(
        self,
        company_id: UUID,
        job_id: UUID,
        candidate_id: UUID,
        stage_id: Optional[UUID] = None,
        fields_filled: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """Place a candidate on the job pipeline, at its first stage unless one is given."""
        now = now or datetime.now(timezone.utc)
        model = await self._job_pipeline(company_id, job_id)
        stages = await self.repository.list_stages(model.id)
        if not stages:
            raise BusinessRuleError(f"Pipeline model {model.id} has no stages")

        if stage_id is None:
            stage = stages[0]
        else:
            stage = next((s for s in stages if s.id == stage_id), None)
            if stage is None:
                raise ValidationError(f"Stage {stage_id} is not part of the job pipeline")

        if await self.repository.find_assignment(candidate_id, job_id) is not None:
            raise ConflictError(
                f"Candidate {candidate_id} is already in the pipeline of job {job_id}",
                details={"candidate_id": str(candidate_id), "job_id": str(job_id)},
            )

        async with self.repository.transaction():
            assignment = await self.repository.add(
                CandidateStageAssignment(
                    company_id=company_id,
                    candidate_id=candidate_id,
                    job_id=job_id,
                    current_stage_id=stage.id,
                    entered_at=now,
                    fields_filled=dict(fields_filled or {}),
                    status=AssignmentStatus.ACTIVE.value,
                    version=1,
                )
            )
            executions = await self.engine.on_stage_entry(assignment, now)

        logger.info(f"Candidate {candidate_id} added to job {job_id} at stage '{stage.name}'")
        return TransitionResult(assignment, executions)

    async def move(
        self,
        company_id: UUID,
        assignment_id: UUID,
        target_stage_id: UUID,
        expected_version: int,
        moved_by: Optional[UUID] = None,
        note: Optional[str] = None,
        score: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """
        Move an assignment to another stage of its pipeline.

        The client passes the version it read; a stale version raises
        ConcurrentModificationError. Leaving a stage resolves its open alerts
        and cancels pending automation executions.
        """
        now = now or datetime.now(timezone.utc)
        assignment = await self._get_company_assignment(company_id, assignment_id)
        self._check_version(assignment, expected_version)

        target = await self.repository.get_stage(target_stage_id)
        if target is None:
            raise NotFoundError(f"Stage {target_stage_id} not found")

        async with self.repository.transaction():
            outcome = await move_to_stage(
                self.repository,
                assignment,
                target,
                expected_version,
                now,
                moved_by=moved_by,
                note=note,
                score=score,
            )
            executions = await self.engine.on_stage_entry(outcome.assignment, now)

        return TransitionResult(
            outcome.assignment, executions, outcome.resolved_alerts, outcome.cancelled_executions
        )

    async def reject(
        self,
        company_id: UUID,
        assignment_id: UUID,
        reason_id: UUID,
        note: Optional[str],
        expected_version: int,
        rejected_by: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """
        Reject a candidate at their current stage.

        Only stages flagged ``can_reject`` accept a manual rejection, and the
        reason must be one of the company's rejection reasons. The assignment
        leaves the stage with status reprovado.
        """
        now = now or datetime.now(timezone.utc)
        assignment = await self._get_company_assignment(company_id, assignment_id)
        self._check_version(assignment, expected_version)
        if assignment.status != AssignmentStatus.ACTIVE.value:
            raise BusinessRuleError(f"Assignment {assignment_id} is {assignment.status}")

        stage = await self.repository.get_stage(assignment.current_stage_id)
        if stage is None or not stage.can_reject:
            raise BusinessRuleError(
                f"Stage '{stage.name if stage else assignment.current_stage_id}' does not allow rejection"
            )

        reason = await self.repository.get_rejection_reason(reason_id)
        if reason is None or reason.company_id != company_id:
            raise NotFoundError(f"Rejection reason {reason_id} not found")

        async with self.repository.transaction():
            await self.repository.add(
                RejectionRecord(
                    assignment_id=assignment.id,
                    reason_id=reason.id,
                    reason=reason.name,
                    stage_id=stage.id,
                    note=note,
                    rejected_by=rejected_by,
                )
            )
            outcome = await leave_stage(
                self.repository,
                assignment,
                expected_version,
                now,
                status=AssignmentStatus.REJECTED.value,
            )

        logger.info(f"Assignment {assignment_id} rejected at stage '{stage.name}': {reason.name}")
        return TransitionResult(
            outcome.assignment, [], outcome.resolved_alerts, outcome.cancelled_executions
        )

    async def history(self, company_id: UUID, assignment_id: UUID) -> AssignmentHistory:
        assignment = await self._get_company_assignment(company_id, assignment_id)
        return AssignmentHistory(
            assignment,
            await self.repository.list_stage_movements(assignment.id),
            await self.repository.list_rejection_records(assignment.id),
        )

    async def update_fields(
        self,
        company_id: UUID,
        assignment_id: UUID,
        fields: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """Merge filled fields into the assignment and fire rules that now match."""
        now = now or datetime.now(timezone.utc)
        assignment = await self._get_company_assignment(company_id, assignment_id)
        if assignment.status != AssignmentStatus.ACTIVE.value:
            raise BusinessRuleError(f"Assignment {assignment_id} is {assignment.status}")

        merged = {**(assignment.fields_filled or {}), **fields}
        async with self.repository.transaction():
            updated = await self.repository.update_assignment_versioned(
                assignment.id, assignment.version, fields_filled=merged
            )
            if updated is None:
                raise ConcurrentModificationError(f"Assignment {assignment_id} was modified concurrently")
            executions = await self.engine.on_fields_updated(updated, fields, now)

        return TransitionResult(updated, executions)
