"""Template catalogs.

Stage, SLA, automation, checklist and rejection-reason templates are JSON data
tables shipped with the package. They are loaded and validated once, then
served read-only.
"""

import json
import logging
from functools import lru_cache
from importlib import resources
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, TypeAdapter

from gentepro.pipeline.enums import ContractType, StageCategory, TemplateKind
from gentepro.pipeline.schemas.templates import (
    AutomationTemplate,
    ChecklistTemplate,
    ContractStageFilter,
    RejectionReasonTemplate,
    SlaTemplate,
    StageTemplate,
)

logger = logging.getLogger(__name__)

CATALOG_FILES: Dict[TemplateKind, str] = {
    TemplateKind.SLA: "slas.json",
    TemplateKind.AUTOMATION: "automations.json",
    TemplateKind.CHECKLIST: "checklists.json",
    TemplateKind.REJECTION_REASON: "rejection_reasons.json",
}

ENTRY_TYPES = {
    TemplateKind.SLA: SlaTemplate,
    TemplateKind.AUTOMATION: AutomationTemplate,
    TemplateKind.CHECKLIST: ChecklistTemplate,
    TemplateKind.REJECTION_REASON: RejectionReasonTemplate,
}

# Checklist templates for a stage category that has no checklist of its own
CHECKLIST_CATEGORY_FOR_STAGE: Dict[str, str] = {
    StageCategory.ONBOARDING.value: StageCategory.ADMIN_TASKS.value,
}


def _read_catalog(filename: str) -> dict:
    source = resources.files("gentepro.pipeline.catalogs").joinpath(filename)
    with source.open("r", encoding="utf-8") as fh:
        return json.load(fh)


@lru_cache
def load_catalog(kind: TemplateKind) -> Dict[str, tuple]:
    """Load one template catalog keyed by category code."""
    kind = TemplateKind(kind)
    raw = _read_catalog(CATALOG_FILES[kind])
    adapter = TypeAdapter(List[ENTRY_TYPES[kind]])
    catalog = {category: tuple(adapter.validate_python(entries)) for category, entries in raw.items()}
    logger.info(f"Loaded {kind.value} catalog: {sum(len(v) for v in catalog.values())} templates")
    return catalog


@lru_cache
def _stage_catalog() -> tuple:
    raw = _read_catalog("stages.json")
    stages = tuple(TypeAdapter(List[StageTemplate]).validate_python(raw["stages"]))
    filters = {
        ContractType(code): ContractStageFilter.model_validate(rules)
        for code, rules in raw["contract_types"].items()
    }
    return stages, filters


def stage_templates(contract_type: Optional[ContractType] = None) -> List[StageTemplate]:
    """Stage templates in pipeline order, filtered for a contract type."""
    stages, filters = _stage_catalog()
    if contract_type is None:
        return list(stages)
    stage_filter = filters.get(ContractType(contract_type), ContractStageFilter())
    return stage_filter.apply(list(stages))


def categories(kind: TemplateKind) -> List[str]:
    return list(load_catalog(kind).keys())


def list_templates(kind: TemplateKind, category: str) -> List[BaseModel]:
    """Ordered templates of a kind for a category; unknown categories yield []."""
    return list(load_catalog(kind).get(category, ()))


def has_category(kind: TemplateKind, category: str) -> bool:
    return category in load_catalog(kind)


def all_rejection_reasons(only: Optional[Sequence[str]] = None) -> List[tuple]:
    """(category, template) pairs in catalog order."""
    catalog = load_catalog(TemplateKind.REJECTION_REASON)
    wanted = only or list(catalog.keys())
    return [(category, entry) for category in wanted for entry in catalog.get(category, ())]
