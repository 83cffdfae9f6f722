"""Templates router - catalog browsing and per-stage template instantiation."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from gentepro.core.exceptions import GenteProException
from gentepro.core.permissions import Permission, require_permission
from gentepro.core.security import TokenData
from gentepro.pipeline import templates
from gentepro.pipeline.enums import ContractType, TemplateKind
from gentepro.pipeline.models import PipelineStage
from gentepro.pipeline.repository import PipelineRepository
from gentepro.pipeline.routers.deps import get_repository, to_http_exception
from gentepro.pipeline.schemas import (
    AutomationRuleCreate,
    AutomationRuleResponse,
    ChecklistItemResponse,
    InstantiatedTemplatesResponse,
    SlaDefinitionResponse,
)
from gentepro.pipeline.services.template_service import TemplateService

router = APIRouter()

RESPONSE_SCHEMAS = {
    TemplateKind.SLA: SlaDefinitionResponse,
    TemplateKind.AUTOMATION: AutomationRuleResponse,
    TemplateKind.CHECKLIST: ChecklistItemResponse,
}


async def _get_company_stage(
    repository: PipelineRepository, stage_id: UUID, current_user: TokenData
) -> PipelineStage:
    stage = await repository.get_stage(stage_id)
    model = await repository.get_pipeline_model(stage.model_id) if stage else None
    if not model or model.company_id != current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Stage not found",
        )
    return stage


# ============================================================================
# CATALOG BROWSING
# ============================================================================

@router.get("/templates/etapas")
async def list_stage_templates(
    tipo_contrato: Optional[ContractType] = Query(None, description="Filter stages for a contract type"),
    _: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """List the stage catalog, optionally filtered for a contract type."""
    stages = templates.stage_templates(tipo_contrato)
    return {"items": [s.model_dump(mode="json") for s in stages], "total": len(stages)}


@router.get("/templates/{kind}")
async def list_template_categories(
    kind: TemplateKind,
    _: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """List the categories available for a template kind."""
    return {"kind": kind.value, "categories": templates.categories(kind)}


@router.get("/templates/{kind}/{category}")
async def list_category_templates(
    kind: TemplateKind,
    category: str,
    _: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """List the templates of one category; empty for unknown categories."""
    entries = templates.list_templates(kind, category)
    return {
        "kind": kind.value,
        "category": category,
        "items": [e.model_dump(mode="json") for e in entries],
    }


# ============================================================================
# STAGE INSTANTIATION
# ============================================================================

@router.post(
    "/etapas/{stage_id}/templates/{kind}/{category}",
    response_model=InstantiatedTemplatesResponse,
    status_code=status.HTTP_201_CREATED,
)
async def apply_stage_templates(
    stage_id: UUID,
    kind: TemplateKind,
    category: str,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.TEMPLATES_APPLY)),
):
    """Create one record per template of the category on the stage."""
    await _get_company_stage(repository, stage_id, current_user)

    try:
        created = await TemplateService(repository).instantiate_for_stage(stage_id, kind, category)
    except GenteProException as e:
        raise to_http_exception(e)

    schema = RESPONSE_SCHEMAS[kind]
    items: List[Dict[str, Any]] = [schema.model_validate(obj).model_dump(mode="json") for obj in created]
    await repository.commit()
    return InstantiatedTemplatesResponse(kind=kind.value, category=category, created=len(items), items=items)


@router.get("/etapas/{stage_id}/slas", response_model=List[SlaDefinitionResponse])
async def list_stage_slas(
    stage_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """List every SLA of a stage."""
    await _get_company_stage(repository, stage_id, current_user)
    slas = await repository.list_slas(stage_id, active_only=False)
    return [SlaDefinitionResponse.model_validate(s) for s in slas]


@router.get("/etapas/{stage_id}/checklists", response_model=List[ChecklistItemResponse])
async def list_stage_checklist(
    stage_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """List the checklist items of a stage in order."""
    await _get_company_stage(repository, stage_id, current_user)
    items = await repository.list_checklist_items(stage_id)
    return [ChecklistItemResponse.model_validate(i) for i in items]


@router.get("/etapas/{stage_id}/automatizacoes", response_model=List[AutomationRuleResponse])
async def list_stage_automations(
    stage_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.AUTOMATIONS_VIEW)),
):
    """List the automation rules of a stage in evaluation order."""
    await _get_company_stage(repository, stage_id, current_user)
    rules = await repository.list_automation_rules(stage_id, active_only=False)
    return [AutomationRuleResponse.model_validate(r) for r in rules]


@router.post(
    "/etapas/{stage_id}/automatizacoes",
    response_model=AutomationRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_stage_automation(
    stage_id: UUID,
    data: AutomationRuleCreate,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_MANAGE)),
):
    """Attach a custom automation rule after the stage's existing rules."""
    await _get_company_stage(repository, stage_id, current_user)

    try:
        rule = await TemplateService(repository).add_automation_rule(stage_id, data)
    except GenteProException as e:
        raise to_http_exception(e)

    response = AutomationRuleResponse.model_validate(rule)
    await repository.commit()
    return response
