"""Pipeline model, stage and stage-template schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from gentepro.pipeline.enums import ContractType, RejectionCategory, StageCategory, StageType


class PipelineModelFromTemplate(BaseModel):
    """Schema for instantiating a pipeline model from the stage catalog."""

    name: str = Field(..., min_length=1, max_length=255)
    contract_type: ContractType = Field(ContractType.CLT, description="clt, estagio, freelancer or pj")
    with_stage_defaults: bool = Field(
        False, description="Also seed SLA, automation and checklist templates per stage"
    )


class StageConfig(BaseModel):
    """One stage of a custom job stage configuration."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: StageType = StageType.INTERMEDIATE
    category: Optional[StageCategory] = None
    color: str = Field("#6B7280", pattern=r"^#[0-9A-Fa-f]{6}$")
    order: Optional[int] = Field(None, ge=1, description="Used for sorting only; stages are renumbered 1..N")
    required: bool = True
    can_reject: bool = False
    sla_days: Optional[int] = Field(None, ge=0)
    auto_actions: List[str] = Field(default_factory=list)
    required_fields: List[str] = Field(default_factory=list)
    responsible_roles: List[str] = Field(default_factory=list)


class JobStagesConfigure(BaseModel):
    """Schema for persisting a job's custom stage configuration."""

    stages: List[StageConfig] = Field(..., min_length=1)


class StageResponse(BaseModel):
    """Response schema for a pipeline stage."""

    id: UUID
    model_id: UUID
    name: str
    description: Optional[str]
    type: str
    category: Optional[str]
    color: str
    order: int
    required: bool
    can_reject: bool
    sla_days: Optional[int]
    auto_actions: List[str]
    required_fields: List[str]
    responsible_roles: List[Any]

    model_config = {"from_attributes": True}


class PipelineModelResponse(BaseModel):
    """Response schema for a pipeline model."""

    id: UUID
    company_id: UUID
    name: str
    description: Optional[str]
    contract_type: Optional[str]
    job_id: Optional[UUID]
    is_default: bool
    active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PipelineModelWithStages(PipelineModelResponse):
    stages: List[StageResponse] = []


class SlaDefinitionResponse(BaseModel):
    id: UUID
    stage_id: UUID
    name: str
    description: Optional[str]
    deadline_hours: int
    deadline_days: int
    deadline_unit: str
    alert_before: int
    alert_after: int
    auto_actions: List[Dict[str, Any]]
    notifications: Dict[str, Any]
    active: bool

    model_config = {"from_attributes": True}


class ChecklistItemResponse(BaseModel):
    id: UUID
    stage_id: UUID
    name: str
    description: Optional[str]
    type: str
    required: bool
    order: int
    auto_validation: bool
    validation_criteria: Optional[Dict[str, Any]]

    model_config = {"from_attributes": True}


class RejectionReasonSeed(BaseModel):
    """Schema for seeding rejection reasons from the catalog."""

    category: Optional[RejectionCategory] = Field(None, description="Seed one category; all when omitted")


class RejectionReasonResponse(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    description: Optional[str]
    category: str
    required: bool
    order: int
    active: bool

    model_config = {"from_attributes": True}


class InstantiatedTemplatesResponse(BaseModel):
    """Records created by applying a template category to a stage."""

    kind: str
    category: str
    created: int
    items: List[Dict[str, Any]]
