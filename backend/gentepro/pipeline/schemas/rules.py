"""Automation rule schemas.

Conditions and actions accept both the English field names used in storage
and the Portuguese keys of the template catalogs (campo, operador, valor,
tipo, etapaDestino, ...).
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, field_validator, model_validator

from gentepro.core.secrets import SECRET_PLACEHOLDER
from gentepro.pipeline.enums import ActionType, AutomationType, ConditionOperator, ValueType


class RuleCondition(BaseModel):
    """Single condition; a rule fires only when all of its conditions hold."""

    field: str = Field(..., min_length=1, validation_alias=AliasChoices("field", "campo"))
    operator: ConditionOperator = Field(..., validation_alias=AliasChoices("operator", "operador"))
    value: Any = Field(..., validation_alias=AliasChoices("value", "valor"))
    value_type: Optional[ValueType] = Field(None, validation_alias=AliasChoices("value_type", "tipo"))

    @model_validator(mode="after")
    def infer_value_type(self) -> "RuleCondition":
        if self.value_type is None:
            if isinstance(self.value, bool):
                self.value_type = ValueType.BOOLEAN
            elif isinstance(self.value, (int, float)):
                self.value_type = ValueType.NUMBER
            else:
                self.value_type = ValueType.STRING
        return self


class MoveStageAction(BaseModel):
    type: Literal["mover_etapa"] = "mover_etapa"
    target_stage: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("target_stage", "etapaDestino")
    )
    note: Optional[str] = Field(None, validation_alias=AliasChoices("note", "observacao"))


class SendNotificationAction(BaseModel):
    type: Literal["enviar_notificacao"] = "enviar_notificacao"
    recipient: str = Field(..., min_length=1, validation_alias=AliasChoices("recipient", "destinatario"))
    template: str = Field(..., min_length=1)
    data: List[str] = Field(default_factory=list, validation_alias=AliasChoices("data", "dados"))


class RunWebhookAction(BaseModel):
    type: Literal["executar_webhook"] = "executar_webhook"
    url: Optional[str] = None
    method: str = "POST"
    data: List[str] = Field(default_factory=list, validation_alias=AliasChoices("data", "dados"))


class RecordRejectionAction(BaseModel):
    type: Literal["registrar_reprovacao"] = "registrar_reprovacao"
    reason_id: Optional[UUID] = Field(None, validation_alias=AliasChoices("reason_id", "motivoId"))
    reason: Optional[str] = Field(None, validation_alias=AliasChoices("reason", "motivo"))
    note: Optional[str] = Field(None, validation_alias=AliasChoices("note", "observacao"))

    @model_validator(mode="after")
    def require_reason(self) -> "RecordRejectionAction":
        if self.reason_id is None and not self.reason:
            raise ValueError("registrar_reprovacao requires motivoId or motivo")
        return self


RuleAction = Annotated[
    Union[MoveStageAction, SendNotificationAction, RunWebhookAction, RecordRejectionAction],
    Field(discriminator="type"),
]

# Older rules spell the move action "move_etapa"
ACTION_TYPE_ALIASES = {"move_etapa": ActionType.MOVE_STAGE.value}


def normalize_action(raw: Any) -> Any:
    """Map the stored/catalog `tipo` key onto the `type` discriminator."""
    if not isinstance(raw, dict):
        return raw
    data = dict(raw)
    if "type" not in data and "tipo" in data:
        data["type"] = data.pop("tipo")
    data["type"] = ACTION_TYPE_ALIASES.get(data.get("type"), data.get("type"))
    return data


class WebhookHeader(BaseModel):
    """Outbound header whose secret part is a reference into the secret store."""

    name: str = Field(..., min_length=1)
    value: Optional[str] = None
    secret_ref: Optional[str] = Field(None, pattern=r"^[A-Z0-9_]+$")
    prefix: str = ""
    suffix: str = ""

    @model_validator(mode="after")
    def value_or_secret(self) -> "WebhookHeader":
        if (self.value is None) == (self.secret_ref is None):
            raise ValueError(f"Header '{self.name}' needs exactly one of value or secret_ref")
        return self

    @classmethod
    def from_template(cls, name: str, template: str) -> "WebhookHeader":
        """Convert a `Bearer ${API_KEY}` style header into a secret reference."""
        matches = list(SECRET_PLACEHOLDER.finditer(template))
        if not matches:
            return cls(name=name, value=template)
        if len(matches) > 1:
            raise ValueError(f"Header '{name}' references more than one secret")
        match = matches[0]
        return cls(
            name=name,
            secret_ref=match.group(1),
            prefix=template[: match.start()],
            suffix=template[match.end():],
        )


class AutomationRuleCreate(BaseModel):
    """Schema for creating an automation rule on a stage."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: AutomationType
    conditions: List[RuleCondition] = Field(default_factory=list)
    actions: List[RuleAction] = Field(..., min_length=1)
    webhook_url: Optional[str] = None
    webhook_method: str = "POST"
    webhook_headers: List[WebhookHeader] = Field(default_factory=list)
    delay_minutes: int = Field(0, ge=0)
    max_retries: int = Field(3, ge=1, le=10)
    active: bool = True

    @field_validator("actions", mode="before")
    @classmethod
    def normalize_actions(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [normalize_action(item) for item in value]
        return value

    @field_validator("webhook_headers", mode="before")
    @classmethod
    def convert_header_templates(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [WebhookHeader.from_template(name, str(template)) for name, template in value.items()]
        return value

    @model_validator(mode="after")
    def webhook_actions_have_url(self) -> "AutomationRuleCreate":
        for action in self.actions:
            if isinstance(action, RunWebhookAction) and not (action.url or self.webhook_url):
                raise ValueError("executar_webhook requires url or webhook_url")
        return self


class AutomationRuleResponse(BaseModel):
    """Response schema for an automation rule."""

    id: UUID
    stage_id: UUID
    name: str
    description: Optional[str]
    type: str
    conditions: List[Dict[str, Any]]
    actions: List[Dict[str, Any]]
    webhook_url: Optional[str]
    webhook_method: str
    webhook_headers: List[Dict[str, Any]]
    delay_minutes: int
    max_retries: int
    order: int
    active: bool

    model_config = {"from_attributes": True}


_ACTIONS_ADAPTER = TypeAdapter(List[RuleAction])


def parse_conditions(stored: List[Dict[str, Any]]) -> List[RuleCondition]:
    return [RuleCondition.model_validate(c) for c in stored]


def parse_actions(stored: List[Dict[str, Any]]) -> list:
    """Validate stored action dicts back into their typed variants."""
    return _ACTIONS_ADAPTER.validate_python([normalize_action(a) for a in stored])
