"""Catalog template schemas.

Catalog entries are immutable reference data; instantiation copies them into
company-owned rows.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from gentepro.pipeline.enums import AutomationType, DeadlineUnit, StageCategory, StageType


class CatalogEntry(BaseModel):
    """Frozen base for catalog rows."""

    model_config = ConfigDict(frozen=True)


class StageTemplate(CatalogEntry):
    name: str
    description: Optional[str] = None
    type: StageType
    category: Optional[StageCategory] = None
    color: str = Field("#6B7280", pattern=r"^#[0-9A-Fa-f]{6}$")
    required: bool = True
    can_reject: bool = False
    sla_days: Optional[int] = Field(None, ge=0)
    auto_actions: List[str] = Field(default_factory=list)
    required_fields: List[str] = Field(default_factory=list)
    responsible_roles: List[str] = Field(default_factory=list)


class ContractStageFilter(CatalogEntry):
    """Stage names kept (include) or dropped (exclude) for a contract type."""

    include: Optional[List[str]] = None
    exclude: List[str] = Field(default_factory=list)

    def apply(self, stages: List[StageTemplate]) -> List[StageTemplate]:
        if self.include is not None:
            kept = set(self.include)
            return [s for s in stages if s.name in kept]
        dropped = set(self.exclude)
        return [s for s in stages if s.name not in dropped]


class SlaNotificationSettings(CatalogEntry):
    email: bool = True
    push: bool = True
    sms: bool = False
    recipients: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("recipients", "destinatarios"),
    )


class SlaTemplate(CatalogEntry):
    name: str
    description: Optional[str] = None
    deadline_hours: int = Field(0, ge=0)
    deadline_days: int = Field(0, ge=0)
    deadline_unit: DeadlineUnit
    alert_before: int = Field(0, ge=0, description="Hours before the deadline")
    alert_after: int = Field(0, ge=0, description="Hours after the deadline")
    auto_actions: List[Dict[str, Any]] = Field(default_factory=list)
    notifications: SlaNotificationSettings = Field(default_factory=SlaNotificationSettings)


class AutomationTemplate(CatalogEntry):
    """Raw automation rule template.

    Conditions and actions are kept in their stored form and validated
    through AutomationRuleCreate when a rule is instantiated.
    """

    name: str
    description: Optional[str] = None
    type: AutomationType
    conditions: List[Dict[str, Any]] = Field(default_factory=list)
    actions: List[Dict[str, Any]]
    webhook_url: Optional[str] = None
    webhook_method: str = "POST"
    webhook_headers: Dict[str, str] = Field(default_factory=dict)
    delay_minutes: int = Field(0, ge=0)
    max_retries: int = Field(3, ge=1)


class ChecklistTemplate(CatalogEntry):
    name: str
    description: Optional[str] = None
    type: str = Field(..., pattern=r"^(documento|exame|tarefa|validacao)$")
    required: bool = True
    auto_validation: bool = False
    validation_criteria: Optional[Dict[str, Any]] = None


class RejectionReasonTemplate(CatalogEntry):
    name: str
    description: Optional[str] = None
    required: bool = False
    order: int = Field(..., ge=1)
