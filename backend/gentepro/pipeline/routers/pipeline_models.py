"""Pipeline models router - company pipeline models, job stages and rejection reasons."""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from gentepro.core.exceptions import GenteProException
from gentepro.core.permissions import Permission, require_permission
from gentepro.core.security import TokenData
from gentepro.pipeline.models import PipelineModel
from gentepro.pipeline.repository import PipelineRepository
from gentepro.pipeline.routers.deps import ensure_company_access, get_repository, to_http_exception
from gentepro.pipeline.schemas import (
    JobStagesConfigure,
    PipelineModelFromTemplate,
    PipelineModelResponse,
    PipelineModelWithStages,
    RejectionReasonResponse,
    RejectionReasonSeed,
    StageResponse,
)
from gentepro.pipeline.services.template_service import TemplateService

logger = logging.getLogger(__name__)

router = APIRouter()


async def _with_stages(repository: PipelineRepository, model: PipelineModel) -> PipelineModelWithStages:
    stages = await repository.list_stages(model.id)
    return PipelineModelWithStages(
        **PipelineModelResponse.model_validate(model).model_dump(),
        stages=[StageResponse.model_validate(s) for s in stages],
    )


async def _get_company_model(
    repository: PipelineRepository, model_id: UUID, current_user: TokenData
) -> PipelineModel:
    model = await repository.get_pipeline_model(model_id)
    if not model or model.company_id != current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pipeline model not found",
        )
    return model


# ============================================================================
# PIPELINE MODELS
# ============================================================================

@router.post(
    "/empresas/{company_id}/modelos-pipeline/template",
    response_model=PipelineModelWithStages,
    status_code=status.HTTP_201_CREATED,
)
async def create_pipeline_model_from_template(
    company_id: UUID,
    data: PipelineModelFromTemplate,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_MANAGE)),
):
    """Create the company's default pipeline model from the stage catalog."""
    ensure_company_access(company_id, current_user)

    try:
        model = await TemplateService(repository).instantiate_pipeline_model(
            company_id,
            data.name,
            contract_type=data.contract_type,
            with_stage_defaults=data.with_stage_defaults,
        )
    except GenteProException as e:
        raise to_http_exception(e)

    response = await _with_stages(repository, model)
    await repository.commit()
    return response


@router.get("/empresas/{company_id}/modelos-pipeline", response_model=List[PipelineModelResponse])
async def list_pipeline_models(
    company_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """List the company's pipeline models, default first."""
    ensure_company_access(company_id, current_user)
    models = await repository.list_pipeline_models(company_id)
    return [PipelineModelResponse.model_validate(m) for m in models]


@router.get("/modelos-pipeline/{model_id}/etapas", response_model=List[StageResponse])
async def list_pipeline_stages(
    model_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """List the stages of a pipeline model in order."""
    model = await _get_company_model(repository, model_id, current_user)
    stages = await repository.list_stages(model.id)
    return [StageResponse.model_validate(s) for s in stages]


@router.patch("/modelos-pipeline/{model_id}/padrao", response_model=PipelineModelResponse)
async def set_default_pipeline_model(
    model_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_MANAGE)),
):
    """Make a model the company default; the previous default is unset."""
    await _get_company_model(repository, model_id, current_user)

    try:
        model = await TemplateService(repository).set_default_model(current_user.company_id, model_id)
    except GenteProException as e:
        raise to_http_exception(e)

    response = PipelineModelResponse.model_validate(model)
    await repository.commit()
    return response


# ============================================================================
# JOB STAGES
# ============================================================================

@router.post(
    "/vagas/{job_id}/etapas",
    response_model=PipelineModelWithStages,
    status_code=status.HTTP_201_CREATED,
)
async def configure_job_stages(
    job_id: UUID,
    data: JobStagesConfigure,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_MANAGE)),
):
    """Persist a custom stage configuration for a job, replacing any previous one."""
    try:
        model = await TemplateService(repository).configure_job_stages(
            current_user.company_id, job_id, data.stages
        )
    except GenteProException as e:
        raise to_http_exception(e)

    response = await _with_stages(repository, model)
    await repository.commit()
    return response


# ============================================================================
# REJECTION REASONS
# ============================================================================

@router.post(
    "/empresas/{company_id}/motivos-reprovacao/template",
    response_model=List[RejectionReasonResponse],
    status_code=status.HTTP_201_CREATED,
)
async def seed_rejection_reasons(
    company_id: UUID,
    data: RejectionReasonSeed,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.REJECTION_REASONS_MANAGE)),
):
    """Create the catalog rejection reasons for the company. Existing names are skipped."""
    ensure_company_access(company_id, current_user)

    try:
        created = await TemplateService(repository).seed_rejection_reasons(company_id, data.category)
    except GenteProException as e:
        raise to_http_exception(e)

    response = [RejectionReasonResponse.model_validate(r) for r in created]
    await repository.commit()
    return response


@router.get("/empresas/{company_id}/motivos-reprovacao", response_model=List[RejectionReasonResponse])
async def list_rejection_reasons(
    company_id: UUID,
    repository: PipelineRepository = Depends(get_repository),
    current_user: TokenData = Depends(require_permission(Permission.PIPELINE_VIEW)),
):
    """List the company's rejection reasons in catalog order."""
    ensure_company_access(company_id, current_user)
    reasons = await repository.list_rejection_reasons(company_id)
    return [RejectionReasonResponse.model_validate(r) for r in reasons]
