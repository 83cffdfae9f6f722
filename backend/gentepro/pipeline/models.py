"""Pipeline, SLA and automation models.

Table and column names follow the Portuguese schema shared with the rest of
GentePRO; attribute names are English.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gentepro.core.database import Base
from gentepro.shared.models.base import CompanyScopedBase, TimestampMixin, UUIDPrimaryKeyMixin


class PipelineModel(CompanyScopedBase):
    """Company pipeline definition made of ordered stages."""

    __tablename__ = "modelos_pipeline"
    __table_args__ = (
        # At most one default model per company
        Index(
            "uq_modelos_pipeline_padrao",
            "empresa_id",
            unique=True,
            postgresql_where=text("padrao"),
        ),
    )

    name: Mapped[str] = mapped_column("nome", String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column("descricao", Text, nullable=True)
    contract_type: Mapped[Optional[str]] = mapped_column("tipo_contrato", String(30), nullable=True)
    job_id: Mapped[Optional[UUID]] = mapped_column(
        "vaga_id", PGUUID(as_uuid=True), nullable=True, index=True
    )
    is_default: Mapped[bool] = mapped_column("padrao", Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column("ativo", Boolean, default=True, nullable=False)

    stages: Mapped[List["PipelineStage"]] = relationship(
        "PipelineStage",
        back_populates="model",
        order_by="PipelineStage.order",
        cascade="all, delete-orphan",
    )


class PipelineStage(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Stage instance copied from a stage template into a pipeline model."""

    __tablename__ = "etapas_modelo_pipeline"
    __table_args__ = (UniqueConstraint("modelo_id", "ordem", name="uq_etapas_modelo_ordem"),)

    model_id: Mapped[UUID] = mapped_column(
        "modelo_id",
        PGUUID(as_uuid=True),
        ForeignKey("modelos_pipeline.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column("nome", String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column("descricao", Text, nullable=True)
    type: Mapped[str] = mapped_column("tipo", String(30), nullable=False)
    category: Mapped[Optional[str]] = mapped_column("categoria", String(30), nullable=True)
    color: Mapped[str] = mapped_column("cor", String(7), default="#6B7280", nullable=False)
    order: Mapped[int] = mapped_column("ordem", Integer, nullable=False)
    required: Mapped[bool] = mapped_column("obrigatoria", Boolean, default=True, nullable=False)
    can_reject: Mapped[bool] = mapped_column("pode_reprovar", Boolean, default=False, nullable=False)
    sla_days: Mapped[Optional[int]] = mapped_column("sla_dias", Integer, nullable=True)
    auto_actions: Mapped[list] = mapped_column("acoes_automaticas", JSONB, default=list, nullable=False)
    required_fields: Mapped[list] = mapped_column("campos_obrigatorios", JSONB, default=list, nullable=False)
    responsible_roles: Mapped[list] = mapped_column("responsaveis", JSONB, default=list, nullable=False)

    model: Mapped["PipelineModel"] = relationship("PipelineModel", back_populates="stages")


class SlaDefinition(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Deadline attached to a stage, tracked per candidate."""

    __tablename__ = "slas_etapas"

    stage_id: Mapped[UUID] = mapped_column(
        "etapa_id",
        PGUUID(as_uuid=True),
        ForeignKey("etapas_modelo_pipeline.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column("nome", String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column("descricao", Text, nullable=True)
    deadline_hours: Mapped[int] = mapped_column("prazo_horas", Integer, default=0, nullable=False)
    deadline_days: Mapped[int] = mapped_column("prazo_dias", Integer, default=0, nullable=False)
    deadline_unit: Mapped[str] = mapped_column("tipo_prazo", String(10), default="dias", nullable=False)
    alert_before: Mapped[int] = mapped_column("alerta_antes", Integer, default=0, nullable=False)
    alert_after: Mapped[int] = mapped_column("alerta_apos", Integer, default=0, nullable=False)
    auto_actions: Mapped[list] = mapped_column("acoes_automaticas", JSONB, default=list, nullable=False)
    notifications: Mapped[dict] = mapped_column("notificacoes", JSONB, default=dict, nullable=False)
    active: Mapped[bool] = mapped_column("ativo", Boolean, default=True, nullable=False)


class AutomationRule(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Condition to action binding evaluated on stage events."""

    __tablename__ = "automatizacoes_etapa"

    stage_id: Mapped[UUID] = mapped_column(
        "etapa_id",
        PGUUID(as_uuid=True),
        ForeignKey("etapas_modelo_pipeline.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column("nome", String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column("descricao", Text, nullable=True)
    type: Mapped[str] = mapped_column("tipo", String(30), nullable=False)
    conditions: Mapped[list] = mapped_column("condicoes", JSONB, default=list, nullable=False)
    actions: Mapped[list] = mapped_column("acoes", JSONB, default=list, nullable=False)
    webhook_url: Mapped[Optional[str]] = mapped_column("webhook_url", Text, nullable=True)
    webhook_method: Mapped[str] = mapped_column("webhook_method", String(10), default="POST", nullable=False)
    # Structured header list; secrets are stored by reference only
    webhook_headers: Mapped[list] = mapped_column("webhook_headers", JSONB, default=list, nullable=False)
    delay_minutes: Mapped[int] = mapped_column("delay_execucao", Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column("max_tentativas", Integer, default=3, nullable=False)
    order: Mapped[int] = mapped_column("ordem", Integer, default=1, nullable=False)
    active: Mapped[bool] = mapped_column("ativo", Boolean, default=True, nullable=False)


class ChecklistItem(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Document, exam, task or validation item required in a stage."""

    __tablename__ = "checklists_etapa"

    stage_id: Mapped[UUID] = mapped_column(
        "etapa_id",
        PGUUID(as_uuid=True),
        ForeignKey("etapas_modelo_pipeline.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column("nome", String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column("descricao", Text, nullable=True)
    type: Mapped[str] = mapped_column("tipo", String(20), nullable=False)
    required: Mapped[bool] = mapped_column("obrigatorio", Boolean, default=True, nullable=False)
    order: Mapped[int] = mapped_column("ordem", Integer, nullable=False)
    auto_validation: Mapped[bool] = mapped_column("validacao_automatica", Boolean, default=False, nullable=False)
    validation_criteria: Mapped[Optional[dict]] = mapped_column("criterios_validacao", JSONB, nullable=True)


class RejectionReason(CompanyScopedBase):
    """Company-level rejection reason."""

    __tablename__ = "motivos_reprovacao"

    name: Mapped[str] = mapped_column("nome", String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column("descricao", Text, nullable=True)
    category: Mapped[str] = mapped_column("categoria", String(30), nullable=False)
    required: Mapped[bool] = mapped_column("obrigatorio", Boolean, default=False, nullable=False)
    order: Mapped[int] = mapped_column("ordem", Integer, nullable=False)
    active: Mapped[bool] = mapped_column("ativo", Boolean, default=True, nullable=False)


class CandidateStageAssignment(CompanyScopedBase):
    """A candidate's current stage within a job pipeline."""

    __tablename__ = "candidatos_etapas"
    __table_args__ = (UniqueConstraint("candidato_id", "vaga_id", name="uq_candidatos_etapas_candidato_vaga"),)

    candidate_id: Mapped[UUID] = mapped_column("candidato_id", PGUUID(as_uuid=True), nullable=False)
    job_id: Mapped[UUID] = mapped_column("vaga_id", PGUUID(as_uuid=True), nullable=False, index=True)
    current_stage_id: Mapped[UUID] = mapped_column(
        "etapa_id",
        PGUUID(as_uuid=True),
        ForeignKey("etapas_modelo_pipeline.id"),
        nullable=False,
        index=True,
    )
    entered_at: Mapped[Optional[datetime]] = mapped_column("entrou_em", DateTime(timezone=True), nullable=True)
    fields_filled: Mapped[dict] = mapped_column("campos_preenchidos", JSONB, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="ativo", nullable=False, index=True)
    version: Mapped[int] = mapped_column("versao", Integer, default=1, nullable=False)


class SlaAlert(CompanyScopedBase):
    """Pre-deadline or breached alert for one (SLA, assignment) pair."""

    __tablename__ = "alertas_sla"
    __table_args__ = (
        # One unresolved alert per (sla, assignment)
        Index(
            "uq_alertas_sla_aberto",
            "sla_id",
            "candidato_etapa_id",
            unique=True,
            postgresql_where=text("status <> 'resolvido'"),
        ),
    )

    sla_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("slas_etapas.id", ondelete="CASCADE"),
        nullable=False,
    )
    assignment_id: Mapped[UUID] = mapped_column(
        "candidato_etapa_id",
        PGUUID(as_uuid=True),
        ForeignKey("candidatos_etapas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column("tipo", String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pendente", nullable=False)
    urgency_level: Mapped[str] = mapped_column("nivel_urgencia", String(20), nullable=False)
    title: Mapped[str] = mapped_column("titulo", String(255), nullable=False)
    message: Mapped[Optional[str]] = mapped_column("mensagem", Text, nullable=True)
    remaining_hours: Mapped[float] = mapped_column("horas_restantes", Float, nullable=False)
    escalated: Mapped[bool] = mapped_column("escalado", Boolean, default=False, nullable=False)
    targets: Mapped[list] = mapped_column("destinatarios", JSONB, default=list, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column("enviado_em", DateTime(timezone=True), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        "reconhecido_em", DateTime(timezone=True), nullable=True
    )
    acknowledged_by: Mapped[Optional[UUID]] = mapped_column(
        "reconhecido_por", PGUUID(as_uuid=True), nullable=True
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column("resolvido_em", DateTime(timezone=True), nullable=True)


class SlaNotification(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Delivery record of one alert to one target role."""

    __tablename__ = "notificacoes_sla"

    alert_id: Mapped[UUID] = mapped_column(
        "alerta_id",
        PGUUID(as_uuid=True),
        ForeignKey("alertas_sla.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target: Mapped[str] = mapped_column("destinatario", String(50), nullable=False)
    channel: Mapped[str] = mapped_column("canal", String(20), default="email", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pendente", nullable=False)
    title: Mapped[str] = mapped_column("titulo", String(255), nullable=False)
    message: Mapped[Optional[str]] = mapped_column("mensagem", Text, nullable=True)
    attempts: Mapped[int] = mapped_column("tentativas", Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column("erro", Text, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column("enviado_em", DateTime(timezone=True), nullable=True)


class AutomationExecution(CompanyScopedBase):
    """Tracked run of one fired automation rule for one assignment."""

    __tablename__ = "execucoes_automatizacao"

    rule_id: Mapped[UUID] = mapped_column(
        "automatizacao_id",
        PGUUID(as_uuid=True),
        ForeignKey("automatizacoes_etapa.id", ondelete="CASCADE"),
        nullable=False,
    )
    assignment_id: Mapped[UUID] = mapped_column(
        "candidato_etapa_id",
        PGUUID(as_uuid=True),
        ForeignKey("candidatos_etapas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage_id: Mapped[UUID] = mapped_column("etapa_id", PGUUID(as_uuid=True), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="agendada", nullable=False, index=True)
    run_at: Mapped[datetime] = mapped_column("executar_em", DateTime(timezone=True), nullable=False)
    attempts: Mapped[int] = mapped_column("tentativas", Integer, default=0, nullable=False)
    completed_actions: Mapped[int] = mapped_column("acoes_concluidas", Integer, default=0, nullable=False)
    event_facts: Mapped[dict] = mapped_column("contexto", JSONB, default=dict, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column("ultimo_erro", Text, nullable=True)
    job_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column("concluida_em", DateTime(timezone=True), nullable=True)


class RejectionRecord(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """History entry written when a candidate is rejected."""

    __tablename__ = "historico_reprovacoes"

    assignment_id: Mapped[UUID] = mapped_column(
        "candidato_etapa_id",
        PGUUID(as_uuid=True),
        ForeignKey("candidatos_etapas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reason_id: Mapped[Optional[UUID]] = mapped_column(
        "motivo_id",
        PGUUID(as_uuid=True),
        ForeignKey("motivos_reprovacao.id"),
        nullable=True,
    )
    reason: Mapped[Optional[str]] = mapped_column("motivo", String(255), nullable=True)
    stage_id: Mapped[UUID] = mapped_column("etapa_id", PGUUID(as_uuid=True), nullable=False)
    note: Mapped[Optional[str]] = mapped_column("observacao", Text, nullable=True)
    rejected_by: Mapped[Optional[UUID]] = mapped_column("responsavel_id", PGUUID(as_uuid=True), nullable=True)


class StageMovement(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """History entry written on every stage change of an assignment.

    ``moved_by`` is the user who moved the candidate; it is empty when an
    automation did, in which case ``execution_id`` points at that run.
    """

    __tablename__ = "historico_movimentacoes"

    assignment_id: Mapped[UUID] = mapped_column(
        "candidato_etapa_id",
        PGUUID(as_uuid=True),
        ForeignKey("candidatos_etapas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_stage_id: Mapped[UUID] = mapped_column("etapa_anterior_id", PGUUID(as_uuid=True), nullable=False)
    to_stage_id: Mapped[UUID] = mapped_column("etapa_nova_id", PGUUID(as_uuid=True), nullable=False)
    moved_by: Mapped[Optional[UUID]] = mapped_column("responsavel_id", PGUUID(as_uuid=True), nullable=True)
    execution_id: Mapped[Optional[UUID]] = mapped_column(
        "execucao_id", PGUUID(as_uuid=True), nullable=True
    )
    days_in_stage: Mapped[int] = mapped_column("tempo_na_etapa", Integer, default=0, nullable=False)
    score: Mapped[Optional[int]] = mapped_column("nota", Integer, nullable=True)
    note: Mapped[Optional[str]] = mapped_column("comentarios", Text, nullable=True)
    moved_at: Mapped[datetime] = mapped_column("data_movimentacao", DateTime(timezone=True), nullable=False)
