"""Closed vocabularies for the pipeline engine."""

from enum import Enum


class StageType(str, Enum):
    INITIAL = "inicial"
    INTERMEDIATE = "intermediaria"
    DECISION = "decisao"
    FINAL = "final"
    POST_CONTRACT = "pos_contrato"


class StageCategory(str, Enum):
    """Stable codes linking stages to SLA/automation/checklist catalogs."""

    SCREENING = "triagem"
    INTERVIEW = "entrevista"
    DOCUMENTATION = "documentacao"
    EXAMS = "exames"
    ONBOARDING = "integracao"
    ADMIN_TASKS = "tarefas"
    VALIDATIONS = "validacoes"


class RejectionCategory(str, Enum):
    GENERAL = "geral"
    TECHNICAL = "tecnico"
    BEHAVIORAL = "comportamental"
    DOCUMENTAL = "documental"
    OTHER = "outros"


class ContractType(str, Enum):
    CLT = "clt"
    INTERNSHIP = "estagio"
    FREELANCER = "freelancer"
    PJ = "pj"


class TemplateKind(str, Enum):
    """Which catalog a template lookup targets."""

    SLA = "slas"
    AUTOMATION = "automatizacoes"
    CHECKLIST = "checklists"
    REJECTION_REASON = "motivos-reprovacao"


class DeadlineUnit(str, Enum):
    HOURS = "horas"
    DAYS = "dias"
    WEEKS = "semanas"


class AssignmentStatus(str, Enum):
    ACTIVE = "ativo"
    REJECTED = "reprovado"
    ARCHIVED = "arquivado"


class AlertKind(str, Enum):
    PRE_DEADLINE = "pre_vencimento"
    BREACHED = "vencido"


class AlertStatus(str, Enum):
    PENDING = "pendente"
    SENT = "enviado"
    ACKNOWLEDGED = "reconhecido"
    RESOLVED = "resolvido"


class UrgencyLevel(str, Enum):
    NORMAL = "normal"
    ATTENTION = "atencao"
    HIGH = "alto"
    CRITICAL = "critico"


class NotificationStatus(str, Enum):
    PENDING = "pendente"
    SENT = "enviado"
    FAILED = "falhou"


class AutomationType(str, Enum):
    MOVE = "movimento"
    NOTIFY = "notificacao"
    WEBHOOK = "webhook"
    CUSTOM = "acao_personalizada"


class ConditionOperator(str, Enum):
    EQ = "=="
    NEQ = "!="
    GTE = ">="
    LTE = "<="
    GT = ">"
    LT = "<"


class ValueType(str, Enum):
    NUMBER = "numero"
    STRING = "string"
    BOOLEAN = "boolean"


class ActionType(str, Enum):
    MOVE_STAGE = "mover_etapa"
    SEND_NOTIFICATION = "enviar_notificacao"
    RUN_WEBHOOK = "executar_webhook"
    RECORD_REJECTION = "registrar_reprovacao"


class ExecutionStatus(str, Enum):
    SCHEDULED = "agendada"
    RUNNING = "executando"
    RETRYING = "aguardando_retentativa"
    SUCCEEDED = "concluida"
    FAILED = "falhou"
    CANCELLED = "cancelada"


NEXT_STAGE = "próxima_etapa"
