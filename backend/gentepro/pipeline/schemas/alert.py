"""SLA alert and automation execution schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel


class SlaAlertResponse(BaseModel):
    """Response schema for an SLA alert."""

    id: UUID
    company_id: UUID
    sla_id: UUID
    assignment_id: UUID
    kind: str
    status: str
    urgency_level: str
    title: str
    message: Optional[str]
    remaining_hours: float
    escalated: bool
    targets: List[str]
    sent_at: Optional[datetime]
    acknowledged_at: Optional[datetime]
    acknowledged_by: Optional[UUID]
    resolved_at: Optional[datetime]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AutomationExecutionResponse(BaseModel):
    """Response schema for an automation execution record."""

    id: UUID
    company_id: UUID
    rule_id: UUID
    assignment_id: UUID
    stage_id: UUID
    status: str
    run_at: datetime
    attempts: int
    completed_actions: int
    event_facts: Dict[str, Any]
    last_error: Optional[str]
    job_id: Optional[str]
    finished_at: Optional[datetime]
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
