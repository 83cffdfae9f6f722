"""Storage interface for the pipeline engine.

Services receive a PipelineRepository explicitly; the SQLAlchemy
implementation is bound to one AsyncSession (one unit of work).
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional, TypeVar
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gentepro.pipeline.enums import AlertStatus, AssignmentStatus, ExecutionStatus
from gentepro.pipeline.models import (
    AutomationExecution,
    AutomationRule,
    CandidateStageAssignment,
    ChecklistItem,
    PipelineModel,
    PipelineStage,
    RejectionReason,
    RejectionRecord,
    SlaAlert,
    SlaDefinition,
    SlaNotification,
    StageMovement,
)

T = TypeVar("T")

PENDING_EXECUTION_STATUSES = (ExecutionStatus.SCHEDULED.value, ExecutionStatus.RETRYING.value)


class PipelineRepository(ABC):
    """Persistence operations used by the pipeline services."""

    @abstractmethod
    def transaction(self) -> Any:
        """Async context manager; everything inside commits or rolls back together."""

    @abstractmethod
    async def commit(self) -> None:
        """End the unit of work. Only routers and worker tasks call this."""

    @abstractmethod
    async def add(self, obj: T) -> T:
        """Persist a new row and assign its id."""

    @abstractmethod
    async def save(self, obj: T, **changes: Any) -> T:
        """Apply attribute changes to a loaded row."""

    # Pipeline models and stages

    @abstractmethod
    async def get_pipeline_model(self, model_id: UUID) -> Optional[PipelineModel]: ...

    @abstractmethod
    async def list_pipeline_models(self, company_id: UUID) -> List[PipelineModel]: ...

    @abstractmethod
    async def get_default_pipeline_model(self, company_id: UUID) -> Optional[PipelineModel]: ...

    @abstractmethod
    async def find_job_pipeline_model(self, company_id: UUID, job_id: UUID) -> Optional[PipelineModel]: ...

    @abstractmethod
    async def unset_default_models(self, company_id: UUID, keep_id: Optional[UUID] = None) -> int: ...

    @abstractmethod
    async def delete_pipeline_model(self, model_id: UUID) -> None: ...

    @abstractmethod
    async def get_stage(self, stage_id: UUID) -> Optional[PipelineStage]: ...

    @abstractmethod
    async def list_stages(self, model_id: UUID) -> List[PipelineStage]:
        """Stages ordered by their order index."""

    # Stage-scoped templates

    @abstractmethod
    async def list_slas(self, stage_id: UUID, active_only: bool = True) -> List[SlaDefinition]: ...

    @abstractmethod
    async def list_automation_rules(self, stage_id: UUID, active_only: bool = True) -> List[AutomationRule]: ...

    @abstractmethod
    async def get_automation_rule(self, rule_id: UUID) -> Optional[AutomationRule]: ...

    @abstractmethod
    async def list_checklist_items(self, stage_id: UUID) -> List[ChecklistItem]: ...

    @abstractmethod
    async def list_rejection_reasons(self, company_id: UUID) -> List[RejectionReason]: ...

    @abstractmethod
    async def get_rejection_reason(self, reason_id: UUID) -> Optional[RejectionReason]: ...

    # Assignments

    @abstractmethod
    async def get_assignment(self, assignment_id: UUID, for_update: bool = False) -> Optional[CandidateStageAssignment]:
        """Load an assignment, optionally under a row lock."""

    @abstractmethod
    async def find_assignment(self, candidate_id: UUID, job_id: UUID) -> Optional[CandidateStageAssignment]: ...

    @abstractmethod
    async def count_job_assignments(self, job_id: UUID) -> int: ...

    @abstractmethod
    async def list_active_assignment_ids(self) -> List[UUID]: ...

    @abstractmethod
    async def update_assignment_versioned(
        self, assignment_id: UUID, expected_version: int, **values: Any
    ) -> Optional[CandidateStageAssignment]:
        """Compare-and-set on version; returns None when the version moved on."""

    # Alerts and notifications

    @abstractmethod
    async def get_alert(self, alert_id: UUID) -> Optional[SlaAlert]: ...

    @abstractmethod
    async def list_open_alerts(self, assignment_id: UUID) -> List[SlaAlert]: ...

    @abstractmethod
    async def list_alerts(
        self,
        company_id: UUID,
        status: Optional[str] = None,
        urgency_level: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[SlaAlert]: ...

    @abstractmethod
    async def get_notification(self, notification_id: UUID) -> Optional[SlaNotification]: ...

    # Automation executions

    @abstractmethod
    async def get_execution(self, execution_id: UUID, for_update: bool = False) -> Optional[AutomationExecution]: ...

    @abstractmethod
    async def list_pending_executions(self, assignment_id: UUID) -> List[AutomationExecution]: ...

    @abstractmethod
    async def list_assignment_executions(self, assignment_id: UUID) -> List[AutomationExecution]: ...

    @abstractmethod
    async def list_overdue_executions(self, before: datetime) -> List[AutomationExecution]:
        """Scheduled or retrying executions whose run time passed before the given instant."""

    @abstractmethod
    async def list_executions(
        self, company_id: UUID, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[AutomationExecution]: ...

    @abstractmethod
    async def list_rejection_records(self, assignment_id: UUID) -> List[RejectionRecord]: ...

    @abstractmethod
    async def list_stage_movements(self, assignment_id: UUID) -> List[StageMovement]:
        """Movement history of an assignment, oldest first."""


class SqlAlchemyPipelineRepository(PipelineRepository):
    """PipelineRepository over an AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with self.session.begin_nested():
            yield

    async def commit(self) -> None:
        await self.session.commit()

    async def add(self, obj: T) -> T:
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def save(self, obj: T, **changes: Any) -> T:
        for key, value in changes.items():
            setattr(obj, key, value)
        await self.session.flush()
        return obj

    async def _all(self, query) -> list:
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _one(self, query):
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    # Pipeline models and stages

    async def get_pipeline_model(self, model_id: UUID) -> Optional[PipelineModel]:
        return await self.session.get(PipelineModel, model_id)

    async def list_pipeline_models(self, company_id: UUID) -> List[PipelineModel]:
        return await self._all(
            select(PipelineModel)
            .where(PipelineModel.company_id == company_id)
            .order_by(PipelineModel.is_default.desc(), PipelineModel.name)
        )

    async def get_default_pipeline_model(self, company_id: UUID) -> Optional[PipelineModel]:
        return await self._one(
            select(PipelineModel).where(
                PipelineModel.company_id == company_id,
                PipelineModel.is_default.is_(True),
            )
        )

    async def find_job_pipeline_model(self, company_id: UUID, job_id: UUID) -> Optional[PipelineModel]:
        return await self._one(
            select(PipelineModel).where(
                PipelineModel.company_id == company_id,
                PipelineModel.job_id == job_id,
            )
        )

    async def unset_default_models(self, company_id: UUID, keep_id: Optional[UUID] = None) -> int:
        query = update(PipelineModel).where(
            PipelineModel.company_id == company_id,
            PipelineModel.is_default.is_(True),
        )
        if keep_id is not None:
            query = query.where(PipelineModel.id != keep_id)
        result = await self.session.execute(
            query.values(is_default=False).execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def delete_pipeline_model(self, model_id: UUID) -> None:
        await self.session.execute(
            delete(PipelineModel)
            .where(PipelineModel.id == model_id)
            .execution_options(synchronize_session="fetch")
        )

    async def get_stage(self, stage_id: UUID) -> Optional[PipelineStage]:
        return await self.session.get(PipelineStage, stage_id)

    async def list_stages(self, model_id: UUID) -> List[PipelineStage]:
        return await self._all(
            select(PipelineStage).where(PipelineStage.model_id == model_id).order_by(PipelineStage.order)
        )

    # Stage-scoped templates

    async def list_slas(self, stage_id: UUID, active_only: bool = True) -> List[SlaDefinition]:
        query = select(SlaDefinition).where(SlaDefinition.stage_id == stage_id)
        if active_only:
            query = query.where(SlaDefinition.active.is_(True))
        return await self._all(query.order_by(SlaDefinition.created_at, SlaDefinition.name))

    async def list_automation_rules(self, stage_id: UUID, active_only: bool = True) -> List[AutomationRule]:
        query = select(AutomationRule).where(AutomationRule.stage_id == stage_id)
        if active_only:
            query = query.where(AutomationRule.active.is_(True))
        return await self._all(query.order_by(AutomationRule.order))

    async def get_automation_rule(self, rule_id: UUID) -> Optional[AutomationRule]:
        return await self.session.get(AutomationRule, rule_id)

    async def list_checklist_items(self, stage_id: UUID) -> List[ChecklistItem]:
        return await self._all(
            select(ChecklistItem).where(ChecklistItem.stage_id == stage_id).order_by(ChecklistItem.order)
        )

    async def list_rejection_reasons(self, company_id: UUID) -> List[RejectionReason]:
        return await self._all(
            select(RejectionReason)
            .where(RejectionReason.company_id == company_id)
            .order_by(RejectionReason.order)
        )

    async def get_rejection_reason(self, reason_id: UUID) -> Optional[RejectionReason]:
        return await self.session.get(RejectionReason, reason_id)

    # Assignments

    async def get_assignment(self, assignment_id: UUID, for_update: bool = False) -> Optional[CandidateStageAssignment]:
        query = (
            select(CandidateStageAssignment)
            .where(CandidateStageAssignment.id == assignment_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        return await self._one(query)

    async def find_assignment(self, candidate_id: UUID, job_id: UUID) -> Optional[CandidateStageAssignment]:
        return await self._one(
            select(CandidateStageAssignment).where(
                CandidateStageAssignment.candidate_id == candidate_id,
                CandidateStageAssignment.job_id == job_id,
            )
        )

    async def count_job_assignments(self, job_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(CandidateStageAssignment).where(
                CandidateStageAssignment.job_id == job_id
            )
        )
        return result.scalar() or 0

    async def list_active_assignment_ids(self) -> List[UUID]:
        result = await self.session.execute(
            select(CandidateStageAssignment.id).where(
                CandidateStageAssignment.status == AssignmentStatus.ACTIVE.value
            )
        )
        return list(result.scalars().all())

    async def update_assignment_versioned(
        self, assignment_id: UUID, expected_version: int, **values: Any
    ) -> Optional[CandidateStageAssignment]:
        result = await self.session.execute(
            update(CandidateStageAssignment)
            .where(
                CandidateStageAssignment.id == assignment_id,
                CandidateStageAssignment.version == expected_version,
            )
            .values(version=CandidateStageAssignment.version + 1, **values)
            .returning(CandidateStageAssignment.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            return None
        return await self.get_assignment(assignment_id)

    # Alerts and notifications

    async def get_alert(self, alert_id: UUID) -> Optional[SlaAlert]:
        return await self.session.get(SlaAlert, alert_id)

    async def list_open_alerts(self, assignment_id: UUID) -> List[SlaAlert]:
        return await self._all(
            select(SlaAlert).where(
                SlaAlert.assignment_id == assignment_id,
                SlaAlert.status != AlertStatus.RESOLVED.value,
            )
        )

    async def list_alerts(
        self,
        company_id: UUID,
        status: Optional[str] = None,
        urgency_level: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[SlaAlert]:
        query = select(SlaAlert).where(SlaAlert.company_id == company_id)
        if status:
            query = query.where(SlaAlert.status == status)
        if urgency_level:
            query = query.where(SlaAlert.urgency_level == urgency_level)
        return await self._all(query.order_by(SlaAlert.created_at.desc()).offset(offset).limit(limit))

    async def get_notification(self, notification_id: UUID) -> Optional[SlaNotification]:
        return await self.session.get(SlaNotification, notification_id)

    # Automation executions

    async def get_execution(self, execution_id: UUID, for_update: bool = False) -> Optional[AutomationExecution]:
        query = (
            select(AutomationExecution)
            .where(AutomationExecution.id == execution_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        return await self._one(query)

    async def list_pending_executions(self, assignment_id: UUID) -> List[AutomationExecution]:
        return await self._all(
            select(AutomationExecution).where(
                AutomationExecution.assignment_id == assignment_id,
                AutomationExecution.status.in_(PENDING_EXECUTION_STATUSES),
            )
        )

    async def list_assignment_executions(self, assignment_id: UUID) -> List[AutomationExecution]:
        return await self._all(
            select(AutomationExecution)
            .where(AutomationExecution.assignment_id == assignment_id)
            .order_by(AutomationExecution.run_at)
        )

    async def list_overdue_executions(self, before: datetime) -> List[AutomationExecution]:
        return await self._all(
            select(AutomationExecution)
            .where(
                AutomationExecution.status.in_(PENDING_EXECUTION_STATUSES),
                AutomationExecution.run_at < before,
            )
            .order_by(AutomationExecution.run_at)
        )

    async def list_executions(
        self, company_id: UUID, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[AutomationExecution]:
        query = select(AutomationExecution).where(AutomationExecution.company_id == company_id)
        if status:
            query = query.where(AutomationExecution.status == status)
        return await self._all(
            query.order_by(AutomationExecution.created_at.desc()).offset(offset).limit(limit)
        )

    async def list_rejection_records(self, assignment_id: UUID) -> List[RejectionRecord]:
        return await self._all(
            select(RejectionRecord)
            .where(RejectionRecord.assignment_id == assignment_id)
            .order_by(RejectionRecord.created_at)
        )

    async def list_stage_movements(self, assignment_id: UUID) -> List[StageMovement]:
        return await self._all(
            select(StageMovement)
            .where(StageMovement.assignment_id == assignment_id)
            .order_by(StageMovement.moved_at)
        )

