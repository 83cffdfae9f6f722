"""Candidate stage assignments router - placement, stage moves, rejections,
field updates and movement history.

Automation executions fired by a request are handed to the job queue only
after the request's unit of work has been committed.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from gentepro.core.exceptions import GenteProException
from gentepro.core.permissions import Permission, require_permission
from gentepro.core.security import TokenData
from gentepro.pipeline.repository import PipelineRepository
from gentepro.pipeline.routers.deps import get_automation_engine, get_repository, to_http_exception
from gentepro.pipeline.schemas import (
    AssignmentCreate,
    AssignmentHistoryResponse,
    AssignmentResponse,
    FieldsUpdate,
    RejectionRecordResponse,
    StageMove,
    StageMovementResponse,
    StageReject,
    TransitionResponse,
)
from gentepro.pipeline.services.assignment_service import AssignmentService, TransitionResult
from gentepro.pipeline.services.automation_engine import AutomationEngine

router = APIRouter()


async def _commit_and_dispatch(
    repository: PipelineRepository, engine: AutomationEngine, result: TransitionResult
) -> TransitionResponse:
    response = TransitionResponse(
        assignment=AssignmentResponse.model_validate(result.assignment),
        scheduled_executions=len(result.executions),
        resolved_alerts=result.resolved_alerts,
        cancelled_executions=result.cancelled_executions,
    )
    await repository.commit()
    await engine.dispatch_pending()
    return response


@router.post(
    "/vagas/{job_id}/candidatos",
    response_model=TransitionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_candidate_to_pipeline(
    job_id: UUID,
    data: AssignmentCreate,
    repository: PipelineRepository = Depends(get_repository),
    engine: AutomationEngine = Depends(get_automation_engine),
    current_user: TokenData = Depends(require_permission(Permission.CANDIDATES_ADD)),
):
    """Place a candidate on the job pipeline, at the first stage unless one is given."""
    try:
        result = await AssignmentService(repository, engine).add_to_pipeline(
            current_user.company_id,
            job_id,
            data.candidate_id,
            stage_id=data.stage_id,
            fields_filled=data.fields_filled,
        )
    except GenteProException as e:
        raise to_http_exception(e)

    return await _commit_and_dispatch(repository, engine, result)


@router.get("/candidatos-etapas/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(
    assignment_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """Get an assignment with its current version."""
    assignment = await repository.get_assignment(assignment_id)
    if not assignment or assignment.company_id != current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found",
        )
    return AssignmentResponse.model_validate(assignment)


@router.post("/candidatos-etapas/{assignment_id}/mover", response_model=TransitionResponse)
async def move_candidate(
    assignment_id: UUID,
    data: StageMove,
    repository: PipelineRepository = Depends(get_repository),
    engine: AutomationEngine = Depends(get_automation_engine),
    current_user: TokenData = Depends(require_permission(Permission.CANDIDATES_MOVE_STAGE)),
):
    """Move a candidate to another stage. A stale expected_version returns 409."""
    try:
        result = await AssignmentService(repository, engine).move(
            current_user.company_id,
            assignment_id,
            data.target_stage_id,
            data.expected_version,
            moved_by=current_user.user_id,
            note=data.note,
            score=data.score,
        )
    except GenteProException as e:
        raise to_http_exception(e)

    return await _commit_and_dispatch(repository, engine, result)


@router.post("/candidatos-etapas/{assignment_id}/reprovar", response_model=TransitionResponse)
async def reject_candidate(
    assignment_id: UUID,
    data: StageReject,
    repository: PipelineRepository = Depends(get_repository),
    engine: AutomationEngine = Depends(get_automation_engine),
    current_user: TokenData = Depends(require_permission(Permission.CANDIDATES_REJECT)),
):
    """Reject a candidate at a stage that allows rejection, with one of the company's reasons."""
    try:
        result = await AssignmentService(repository, engine).reject(
            current_user.company_id,
            assignment_id,
            data.reason_id,
            data.note,
            data.expected_version,
            rejected_by=current_user.user_id,
        )
    except GenteProException as e:
        raise to_http_exception(e)

    return await _commit_and_dispatch(repository, engine, result)


@router.get("/candidatos-etapas/{assignment_id}/historico", response_model=AssignmentHistoryResponse)
async def get_assignment_history(
    assignment_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    engine: AutomationEngine = Depends(get_automation_engine),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """Stage movements and rejections of a candidate, oldest first."""
    try:
        history = await AssignmentService(repository, engine).history(current_user.company_id, assignment_id)
    except GenteProException as e:
        raise to_http_exception(e)

    return AssignmentHistoryResponse(
        assignment=AssignmentResponse.model_validate(history.assignment),
        movements=[StageMovementResponse.model_validate(m) for m in history.movements],
        rejections=[RejectionRecordResponse.model_validate(r) for r in history.rejections],
    )


@router.patch("/candidatos-etapas/{assignment_id}/campos", response_model=TransitionResponse)
async def update_candidate_fields(
    assignment_id: UUID,
    data: FieldsUpdate,
    repository: PipelineRepository = Depends(get_repository),
    engine: AutomationEngine = Depends(get_automation_engine),
    current_user: TokenData = Depends(require_permission(Permission.CANDIDATES_EDIT_FIELDS)),
):
    """Record filled fields and fire the stage automations whose conditions now hold."""
    try:
        result = await AssignmentService(repository, engine).update_fields(
            current_user.company_id, assignment_id, data.fields
        )
    except GenteProException as e:
        raise to_http_exception(e)

    return await _commit_and_dispatch(repository, engine, result)
