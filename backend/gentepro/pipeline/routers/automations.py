"""Automation executions router."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from gentepro.core.permissions import Permission, require_permission
from gentepro.core.security import TokenData
from gentepro.pipeline.enums import ExecutionStatus
from gentepro.pipeline.repository import PipelineRepository
from gentepro.pipeline.routers.deps import get_repository
from gentepro.pipeline.schemas import AutomationExecutionResponse

router = APIRouter()


@router.get("/automatizacoes/execucoes", response_model=List[AutomationExecutionResponse])
async def list_automation_executions(
    status_filter: Optional[ExecutionStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.AUTOMATIONS_VIEW)),
):
    """List the company's automation executions, newest first."""
    executions = await repository.list_executions(
        current_user.company_id,
        status=status_filter.value if status_filter else None,
        limit=limit,
        offset=offset,
    )
    return [AutomationExecutionResponse.model_validate(e) for e in executions]


@router.get("/automatizacoes/execucoes/falhas", response_model=List[AutomationExecutionResponse])
async def list_failed_automation_executions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.AUTOMATIONS_VIEW)),
):
    """List executions that failed for good, with their last error."""
    executions = await repository.list_executions(
        current_user.company_id,
        status=ExecutionStatus.FAILED.value,
        limit=limit,
        offset=offset,
    )
    return [AutomationExecutionResponse.model_validate(e) for e in executions]
