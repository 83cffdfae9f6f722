"""Template instantiation for pipeline models and stages.

Every multi-record instantiation runs inside one repository transaction so a
failure leaves nothing half-created.
"""

import logging
from typing import Any, List, Optional, Sequence
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from gentepro.core.exceptions import ConflictError, NotFoundError, UnknownCategory, ValidationError
from gentepro.pipeline import templates
from gentepro.pipeline.enums import ContractType, RejectionCategory, TemplateKind
from gentepro.pipeline.models import (
    AutomationRule,
    ChecklistItem,
    PipelineModel,
    PipelineStage,
    RejectionReason,
    SlaDefinition,
)
from gentepro.pipeline.repository import PipelineRepository
from gentepro.pipeline.schemas.pipeline import StageConfig
from gentepro.pipeline.schemas.rules import AutomationRuleCreate
from gentepro.pipeline.schemas.templates import (
    AutomationTemplate,
    ChecklistTemplate,
    SlaTemplate,
    StageTemplate,
)

logger = logging.getLogger(__name__)

STAGE_KINDS = (TemplateKind.SLA, TemplateKind.AUTOMATION, TemplateKind.CHECKLIST)


def validate_rule(data: Any) -> AutomationRuleCreate:
    """Validate a rule payload, raising the application ValidationError."""
    try:
        if isinstance(data, AutomationRuleCreate):
            return data
        if isinstance(data, AutomationTemplate):
            data = data.model_dump()
        return AutomationRuleCreate.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid automation rule",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def sla_from_template(stage_id: UUID, template: SlaTemplate) -> SlaDefinition:
    return SlaDefinition(
        stage_id=stage_id,
        name=template.name,
        description=template.description,
        deadline_hours=template.deadline_hours,
        deadline_days=template.deadline_days,
        deadline_unit=template.deadline_unit.value,
        alert_before=template.alert_before,
        alert_after=template.alert_after,
        auto_actions=list(template.auto_actions),
        notifications=template.notifications.model_dump(),
        active=True,
    )


def rule_from_schema(stage_id: UUID, rule: AutomationRuleCreate, order: int) -> AutomationRule:
    return AutomationRule(
        stage_id=stage_id,
        name=rule.name,
        description=rule.description,
        type=rule.type.value,
        conditions=[c.model_dump(mode="json") for c in rule.conditions],
        actions=[a.model_dump(mode="json") for a in rule.actions],
        webhook_url=rule.webhook_url,
        webhook_method=rule.webhook_method,
        webhook_headers=[h.model_dump(mode="json") for h in rule.webhook_headers],
        delay_minutes=rule.delay_minutes,
        max_retries=rule.max_retries,
        order=order,
        active=rule.active,
    )


def checklist_from_template(stage_id: UUID, template: ChecklistTemplate, order: int) -> ChecklistItem:
    return ChecklistItem(
        stage_id=stage_id,
        name=template.name,
        description=template.description,
        type=template.type,
        required=template.required,
        order=order,
        auto_validation=template.auto_validation,
        validation_criteria=template.validation_criteria,
    )


def stage_from_template(model_id: UUID, template: Any, order: int) -> PipelineStage:
    """Copy a StageTemplate (or a custom StageConfig) into a stage row."""
    return PipelineStage(
        model_id=model_id,
        name=template.name,
        description=template.description,
        type=template.type.value,
        category=template.category.value if template.category else None,
        color=template.color,
        order=order,
        required=template.required,
        can_reject=template.can_reject,
        sla_days=template.sla_days,
        auto_actions=list(template.auto_actions),
        required_fields=list(template.required_fields),
        responsible_roles=list(template.responsible_roles),
    )


class TemplateService:
    """Creates company-owned records from the template catalogs."""

    def __init__(self, repository: PipelineRepository):
        self.repository = repository

    async def instantiate_for_stage(self, stage_id: UUID, kind: TemplateKind, category: str) -> List[Any]:
        """
        Persist one record per catalog template of (kind, category).

        Records are created in catalog order; checklists get order 1..N.
        Raises UnknownCategory when the catalog has no such category.
        """
        kind = TemplateKind(kind)
        if kind == TemplateKind.REJECTION_REASON:
            raise ValidationError("Rejection reasons belong to a company, not to a stage")

        stage = await self.repository.get_stage(stage_id)
        if stage is None:
            raise NotFoundError(f"Stage {stage_id} not found")

        catalog_category = category
        if kind == TemplateKind.CHECKLIST:
            catalog_category = templates.CHECKLIST_CATEGORY_FOR_STAGE.get(category, category)
        if not templates.has_category(kind, catalog_category):
            raise UnknownCategory(
                f"No {kind.value} templates for category '{category}'",
                details={"kind": kind.value, "category": category},
            )

        async with self.repository.transaction():
            created = await self._instantiate(stage_id, kind, catalog_category)

        logger.info(f"Created {len(created)} {kind.value} records for stage {stage_id} from '{category}'")
        return created

    async def _instantiate(self, stage_id: UUID, kind: TemplateKind, category: str) -> List[Any]:
        entries = templates.list_templates(kind, category)
        created: List[Any] = []

        if kind == TemplateKind.SLA:
            for entry in entries:
                created.append(await self.repository.add(sla_from_template(stage_id, entry)))

        elif kind == TemplateKind.AUTOMATION:
            start = len(await self.repository.list_automation_rules(stage_id, active_only=False))
            for index, entry in enumerate(entries, start=1):
                rule = validate_rule(entry)
                created.append(await self.repository.add(rule_from_schema(stage_id, rule, start + index)))

        elif kind == TemplateKind.CHECKLIST:
            for index, entry in enumerate(entries, start=1):
                created.append(await self.repository.add(checklist_from_template(stage_id, entry, index)))

        return created

    async def add_automation_rule(self, stage_id: UUID, data: Any) -> AutomationRule:
        """Validate and attach a custom automation rule after existing ones."""
        rule = validate_rule(data)
        stage = await self.repository.get_stage(stage_id)
        if stage is None:
            raise NotFoundError(f"Stage {stage_id} not found")
        existing = await self.repository.list_automation_rules(stage_id, active_only=False)
        return await self.repository.add(rule_from_schema(stage_id, rule, len(existing) + 1))

    async def instantiate_pipeline_model(
        self,
        company_id: UUID,
        name: str,
        contract_type: ContractType = ContractType.CLT,
        with_stage_defaults: bool = False,
    ) -> PipelineModel:
        """
        Create a default pipeline model from the stage catalog.

        Stages are filtered by contract type and numbered from 1 in catalog
        order. Any previous default model of the company is unset.
        """
        contract_type = ContractType(contract_type)
        stage_list: List[StageTemplate] = templates.stage_templates(contract_type)

        async with self.repository.transaction():
            await self.repository.unset_default_models(company_id)
            model = await self.repository.add(
                PipelineModel(
                    company_id=company_id,
                    name=name,
                    description=f"Modelo padrão para {contract_type.value}",
                    contract_type=contract_type.value,
                    is_default=True,
                    active=True,
                )
            )
            for order, template in enumerate(stage_list, start=1):
                stage = await self.repository.add(stage_from_template(model.id, template, order))
                if with_stage_defaults and stage.category:
                    await self._seed_stage_defaults(stage)

        logger.info(
            f"Created pipeline model {model.id} ({contract_type.value}) with {len(stage_list)} stages "
            f"for company {company_id}"
        )
        return model

    async def _seed_stage_defaults(self, stage: PipelineStage) -> None:
        for kind in STAGE_KINDS:
            category = stage.category
            if kind == TemplateKind.CHECKLIST:
                category = templates.CHECKLIST_CATEGORY_FOR_STAGE.get(category, category)
            if templates.has_category(kind, category):
                await self._instantiate(stage.id, kind, category)

    async def set_default_model(self, company_id: UUID, model_id: UUID) -> PipelineModel:
        """Mark one model as the company default, unsetting the others."""
        model = await self.repository.get_pipeline_model(model_id)
        if model is None or model.company_id != company_id:
            raise NotFoundError(f"Pipeline model {model_id} not found")

        async with self.repository.transaction():
            await self.repository.unset_default_models(company_id, keep_id=model.id)
            await self.repository.save(model, is_default=True)
        return model

    async def seed_rejection_reasons(
        self, company_id: UUID, category: Optional[RejectionCategory] = None
    ) -> List[RejectionReason]:
        """Create the catalog rejection reasons for a company, one category or all."""
        only: Optional[Sequence[str]] = None
        if category is not None:
            code = RejectionCategory(category).value
            if not templates.has_category(TemplateKind.REJECTION_REASON, code):
                raise UnknownCategory(f"No rejection reasons for category '{code}'")
            only = [code]

        existing = {r.name for r in await self.repository.list_rejection_reasons(company_id)}
        created: List[RejectionReason] = []
        async with self.repository.transaction():
            for code, entry in templates.all_rejection_reasons(only):
                if entry.name in existing:
                    continue
                created.append(
                    await self.repository.add(
                        RejectionReason(
                            company_id=company_id,
                            name=entry.name,
                            description=entry.description,
                            category=code,
                            required=entry.required,
                            order=entry.order,
                            active=True,
                        )
                    )
                )

        logger.info(f"Seeded {len(created)} rejection reasons for company {company_id}")
        return created

    async def configure_job_stages(
        self, company_id: UUID, job_id: UUID, stages: List[StageConfig]
    ) -> PipelineModel:
        """
        Persist a custom stage configuration for one job.

        Stages are sorted by their requested order and renumbered 1..N.
        Refused while candidates are assigned to the job.
        """
        if not stages:
            raise ValidationError("At least one stage is required")
        names = [s.name for s in stages]
        if len(set(names)) != len(names):
            raise ValidationError("Stage names must be unique within a pipeline")

        assigned = await self.repository.count_job_assignments(job_id)
        if assigned:
            raise ConflictError(
                f"Job {job_id} has {assigned} candidates in its pipeline",
                details={"job_id": str(job_id), "assignments": assigned},
            )

        ordered = sorted(
            enumerate(stages),
            key=lambda pair: (pair[1].order if pair[1].order is not None else pair[0] + 1, pair[0]),
        )

        async with self.repository.transaction():
            previous = await self.repository.find_job_pipeline_model(company_id, job_id)
            if previous is not None:
                await self.repository.delete_pipeline_model(previous.id)

            model = await self.repository.add(
                PipelineModel(
                    company_id=company_id,
                    job_id=job_id,
                    name=f"Etapas da vaga {job_id}",
                    is_default=False,
                    active=True,
                )
            )
            for order, (_, stage) in enumerate(ordered, start=1):
                await self.repository.add(stage_from_template(model.id, stage, order))

        logger.info(f"Configured {len(stages)} stages for job {job_id}")
        return model
