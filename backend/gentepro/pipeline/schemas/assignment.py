"""Candidate stage assignment schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AssignmentCreate(BaseModel):
    """Schema for adding a candidate to a job pipeline."""

    candidate_id: UUID
    stage_id: Optional[UUID] = Field(None, description="Defaults to the first stage of the job pipeline")
    fields_filled: Dict[str, Any] = Field(default_factory=dict)


class StageMove(BaseModel):
    """Schema for moving a candidate to another stage."""

    target_stage_id: UUID
    expected_version: int = Field(..., ge=1, description="Version read by the client")
    note: Optional[str] = Field(None, max_length=2000)
    score: Optional[int] = Field(None, ge=0, le=10, description="Evaluation given when moving, 0 to 10")


class StageReject(BaseModel):
    """Schema for rejecting a candidate at the current stage."""

    reason_id: UUID
    note: Optional[str] = Field(None, max_length=2000)
    expected_version: int = Field(..., ge=1, description="Version read by the client")


class FieldsUpdate(BaseModel):
    """Schema for a field-update event on an assignment."""

    fields: Dict[str, Any] = Field(..., min_length=1)


class AssignmentResponse(BaseModel):
    """Response schema for a candidate stage assignment."""

    id: UUID
    company_id: UUID
    candidate_id: UUID
    job_id: UUID
    current_stage_id: UUID
    entered_at: Optional[datetime]
    fields_filled: Dict[str, Any]
    status: str
    version: int

    model_config = {"from_attributes": True}


class TransitionResponse(BaseModel):
    """Result of a stage transition or field update."""

    assignment: AssignmentResponse
    scheduled_executions: int = 0
    resolved_alerts: int = 0
    cancelled_executions: int = 0


class StageMovementResponse(BaseModel):
    id: UUID
    from_stage_id: UUID
    to_stage_id: UUID
    moved_by: Optional[UUID]
    execution_id: Optional[UUID]
    days_in_stage: int
    score: Optional[int]
    note: Optional[str]
    moved_at: datetime

    model_config = {"from_attributes": True}


class RejectionRecordResponse(BaseModel):
    id: UUID
    reason_id: Optional[UUID]
    reason: Optional[str]
    stage_id: UUID
    note: Optional[str]
    rejected_by: Optional[UUID]
    created_at: datetime

    model_config = {"from_attributes": True}


class AssignmentHistoryResponse(BaseModel):
    """Stage movements and rejections of an assignment, oldest first.

    Movements without ``moved_by`` were made by the automation run in ``execution_id``.
    """

    assignment: AssignmentResponse
    movements: List[StageMovementResponse]
    rejections: List[RejectionRecordResponse]
