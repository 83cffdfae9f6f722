"""SLA alerts router."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from gentepro.core.exceptions import GenteProException
from gentepro.core.permissions import Permission, require_permission
from gentepro.core.security import TokenData
from gentepro.pipeline.enums import AlertStatus, UrgencyLevel
from gentepro.pipeline.repository import PipelineRepository
from gentepro.pipeline.routers.deps import get_repository, to_http_exception
from gentepro.pipeline.schemas import SlaAlertResponse
from gentepro.pipeline.services.alert_service import AlertService
from gentepro.services.job_queue import JobQueue

router = APIRouter()


@router.get("/alertas-sla", response_model=List[SlaAlertResponse])
async def list_sla_alerts(
    status_filter: Optional[AlertStatus] = Query(None, alias="status"),
    nivel_urgencia: Optional[UrgencyLevel] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.SLA_ALERTS_VIEW)),
):
    """List the company's SLA alerts, newest first."""
    alerts = await AlertService(repository).list_alerts(
        current_user.company_id,
        status=status_filter.value if status_filter else None,
        urgency_level=nivel_urgencia.value if nivel_urgencia else None,
        limit=limit,
        offset=offset,
    )
    return [SlaAlertResponse.model_validate(a) for a in alerts]


@router.post("/alertas-sla/verificar", status_code=status.HTTP_202_ACCEPTED)
async def trigger_sla_check(
    _: TokenData = Depends(require_permission(Permission.SLA_ALERTS_MANAGE)),
):
    """Queue an SLA check now instead of waiting for the hourly run."""
    job_id = await JobQueue.enqueue_sla_check()
    if not job_id:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job queue unavailable",
        )
    return {"job_id": job_id}


@router.post("/alertas-sla/{alert_id}/reconhecer", response_model=SlaAlertResponse)
async def acknowledge_sla_alert(
    alert_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.SLA_ALERTS_MANAGE)),
):
    """Acknowledge an alert. It reopens if its classification changes later."""
    try:
        alert = await AlertService(repository).acknowledge(
            current_user.company_id, alert_id, current_user.user_id
        )
    except GenteProException as e:
        raise to_http_exception(e)

    response = SlaAlertResponse.model_validate(alert)
    await repository.commit()
    return response


@router.post("/alertas-sla/{alert_id}/resolver", response_model=SlaAlertResponse)
async def resolve_sla_alert(
    alert_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.SLA_ALERTS_MANAGE)),
):
    """Resolve an alert manually."""
    try:
        alert = await AlertService(repository).resolve(current_user.company_id, alert_id)
    except GenteProException as e:
        raise to_http_exception(e)

    response = SlaAlertResponse.model_validate(alert)
    await repository.commit()
    return response
