# Pipeline schemas
from gentepro.pipeline.schemas.pipeline import (
    PipelineModelFromTemplate,
    PipelineModelResponse,
    PipelineModelWithStages,
    StageConfig,
    JobStagesConfigure,
    StageResponse,
    SlaDefinitionResponse,
    ChecklistItemResponse,
    RejectionReasonSeed,
    RejectionReasonResponse,
    InstantiatedTemplatesResponse,
)
from gentepro.pipeline.schemas.rules import (
    RuleCondition,
    AutomationRuleCreate,
    AutomationRuleResponse,
    WebhookHeader,
)
from gentepro.pipeline.schemas.assignment import (
    AssignmentCreate,
    StageMove,
    StageReject,
    FieldsUpdate,
    AssignmentResponse,
    TransitionResponse,
    StageMovementResponse,
    RejectionRecordResponse,
    AssignmentHistoryResponse,
)
from gentepro.pipeline.schemas.alert import (
    SlaAlertResponse,
    AutomationExecutionResponse,
)
