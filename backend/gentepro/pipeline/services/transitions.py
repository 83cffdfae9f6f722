"""Version-checked stage transitions shared by manual moves and automations."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from gentepro.core.exceptions import BusinessRuleError, ConcurrentModificationError, ValidationError
from gentepro.pipeline.enums import AssignmentStatus, ExecutionStatus
from gentepro.pipeline.models import CandidateStageAssignment, PipelineStage, StageMovement
from gentepro.pipeline.repository import PipelineRepository
from gentepro.pipeline.services.sla_evaluator import SlaEvaluator, as_aware

logger = logging.getLogger(__name__)


def days_between(start: Optional[datetime], end: datetime) -> int:
    """Whole days elapsed, 0 when the start is unknown."""
    start = as_aware(start)
    if start is None:
        return 0
    return max((end - start).days, 0)


@dataclass
class LeaveStageOutcome:
    assignment: CandidateStageAssignment
    resolved_alerts: int = 0
    cancelled_executions: int = 0


async def cancel_pending_executions(
    repository: PipelineRepository,
    assignment_id: UUID,
    now: datetime,
    reason: str,
    keep_execution_id: Optional[UUID] = None,
) -> int:
    """Cancel scheduled or retrying executions of an assignment."""
    cancelled = 0
    for execution in await repository.list_pending_executions(assignment_id):
        if execution.id == keep_execution_id:
            continue
        await repository.save(
            execution,
            status=ExecutionStatus.CANCELLED.value,
            last_error=reason,
            finished_at=now,
        )
        cancelled += 1
    return cancelled


async def leave_stage(
    repository: PipelineRepository,
    assignment: CandidateStageAssignment,
    expected_version: int,
    now: datetime,
    keep_execution_id: Optional[UUID] = None,
    **values,
) -> LeaveStageOutcome:
    """
    Apply a version-checked update that ends the assignment's current stage.

    Open alerts of the old stage are resolved and its pending automation
    executions are cancelled. Raises ConcurrentModificationError when another
    writer got there first.
    """
    updated = await repository.update_assignment_versioned(assignment.id, expected_version, **values)
    if updated is None:
        raise ConcurrentModificationError(
            f"Assignment {assignment.id} was modified concurrently",
            details={"assignment_id": str(assignment.id), "expected_version": expected_version},
        )

    resolved = await SlaEvaluator(repository).resolve_assignment_alerts(updated, now)
    cancelled = await cancel_pending_executions(
        repository, updated.id, now, "Assignment left the stage", keep_execution_id
    )
    return LeaveStageOutcome(updated, resolved, cancelled)


async def move_to_stage(
    repository: PipelineRepository,
    assignment: CandidateStageAssignment,
    target: PipelineStage,
    expected_version: int,
    now: datetime,
    keep_execution_id: Optional[UUID] = None,
    moved_by: Optional[UUID] = None,
    note: Optional[str] = None,
    score: Optional[int] = None,
) -> LeaveStageOutcome:
    """
    Move an active assignment to another stage of the same pipeline and reset enteredAt.

    A StageMovement row records the change. ``moved_by`` is the acting user;
    moves made by an automation pass ``keep_execution_id`` and no user.
    """
    if assignment.status != AssignmentStatus.ACTIVE.value:
        raise BusinessRuleError(f"Assignment {assignment.id} is {assignment.status}")
    if target.id == assignment.current_stage_id:
        raise ValidationError(f"Assignment is already in stage '{target.name}'")

    current = await repository.get_stage(assignment.current_stage_id)
    if current is None or current.model_id != target.model_id:
        raise ValidationError("Target stage belongs to a different pipeline")

    entered_at = assignment.entered_at
    outcome = await leave_stage(
        repository,
        assignment,
        expected_version,
        now,
        keep_execution_id,
        current_stage_id=target.id,
        entered_at=now,
    )
    await repository.add(
        StageMovement(
            assignment_id=assignment.id,
            from_stage_id=current.id,
            to_stage_id=target.id,
            moved_by=moved_by,
            execution_id=keep_execution_id,
            days_in_stage=days_between(entered_at, now),
            score=score,
            note=note,
            moved_at=now,
        )
    )
    logger.info(f"Assignment {assignment.id} moved from '{current.name}' to '{target.name}'")
    return outcome
