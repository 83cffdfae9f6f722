"""In-memory doubles for the repository, scheduler and notification gateway."""

import copy
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import inspect

from gentepro.core.exceptions import WebhookDeliveryError
from gentepro.pipeline.enums import AlertStatus, AssignmentStatus, StageType
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
from gentepro.pipeline.repository import PENDING_EXECUTION_STATUSES, PipelineRepository
from gentepro.pipeline.services.automation_engine import AutomationScheduler
from gentepro.services.notification_gateway import NotificationMessage


def _column_keys(obj) -> List[str]:
    return [attr.key for attr in inspect(type(obj)).column_attrs]


class InMemoryPipelineRepository(PipelineRepository):
    """PipelineRepository over plain dicts. Transactions roll back on error.

    Row locks the SQL implementation would take are appended to ``locks`` as
    ("assignment" | "execution", id) in acquisition order.
    """

    def __init__(self):
        self.rows: Dict[type, Dict[UUID, Any]] = {}
        self.commits = 0
        self.locks: List[Tuple[str, UUID]] = []

    # Unit of work

    @asynccontextmanager
    async def transaction(self):
        snapshot = {
            cls: {
                row_id: (obj, {key: copy.deepcopy(getattr(obj, key)) for key in _column_keys(obj)})
                for row_id, obj in table.items()
            }
            for cls, table in self.rows.items()
        }
        try:
            yield
        except BaseException:
            self.rows = {}
            for cls, table in snapshot.items():
                restored = self.rows.setdefault(cls, {})
                for row_id, (obj, values) in table.items():
                    for key, value in values.items():
                        setattr(obj, key, value)
                    restored[row_id] = obj
            raise

    async def commit(self) -> None:
        self.commits += 1

    async def add(self, obj):
        for attr in inspect(type(obj)).column_attrs:
            if getattr(obj, attr.key) is not None:
                continue
            default = attr.columns[0].default
            if default is None:
                continue
            if default.is_callable:
                setattr(obj, attr.key, default.arg(None))
            elif default.is_scalar:
                setattr(obj, attr.key, copy.deepcopy(default.arg))
        self.rows.setdefault(type(obj), {})[obj.id] = obj
        return obj

    async def save(self, obj, **changes):
        if isinstance(obj, AutomationExecution):
            self.locks.append(("execution", obj.id))
        for key, value in changes.items():
            setattr(obj, key, value)
        obj.updated_at = datetime.now(timezone.utc)
        return obj

    def all(self, cls) -> list:
        return list(self.rows.get(cls, {}).values())

    def _get(self, cls, row_id):
        return self.rows.get(cls, {}).get(row_id)

    # Pipeline models and stages

    async def get_pipeline_model(self, model_id):
        return self._get(PipelineModel, model_id)

    async def list_pipeline_models(self, company_id):
        models = [m for m in self.all(PipelineModel) if m.company_id == company_id]
        return sorted(models, key=lambda m: (not m.is_default, m.name))

    async def get_default_pipeline_model(self, company_id):
        return next(
            (m for m in self.all(PipelineModel) if m.company_id == company_id and m.is_default), None
        )

    async def find_job_pipeline_model(self, company_id, job_id):
        return next(
            (m for m in self.all(PipelineModel) if m.company_id == company_id and m.job_id == job_id), None
        )

    async def unset_default_models(self, company_id, keep_id=None):
        changed = 0
        for model in self.all(PipelineModel):
            if model.company_id == company_id and model.is_default and model.id != keep_id:
                model.is_default = False
                changed += 1
        return changed

    async def delete_pipeline_model(self, model_id):
        self.rows.get(PipelineModel, {}).pop(model_id, None)
        stages = self.rows.get(PipelineStage, {})
        for stage_id in [s.id for s in stages.values() if s.model_id == model_id]:
            del stages[stage_id]

    async def get_stage(self, stage_id):
        return self._get(PipelineStage, stage_id)

    async def list_stages(self, model_id):
        return sorted((s for s in self.all(PipelineStage) if s.model_id == model_id), key=lambda s: s.order)

    # Stage-scoped templates

    async def list_slas(self, stage_id, active_only=True):
        return [s for s in self.all(SlaDefinition) if s.stage_id == stage_id and (s.active or not active_only)]

    async def list_automation_rules(self, stage_id, active_only=True):
        rules = [r for r in self.all(AutomationRule) if r.stage_id == stage_id and (r.active or not active_only)]
        return sorted(rules, key=lambda r: r.order)

    async def get_automation_rule(self, rule_id):
        return self._get(AutomationRule, rule_id)

    async def list_checklist_items(self, stage_id):
        return sorted((i for i in self.all(ChecklistItem) if i.stage_id == stage_id), key=lambda i: i.order)

    async def list_rejection_reasons(self, company_id):
        reasons = [r for r in self.all(RejectionReason) if r.company_id == company_id]
        return sorted(reasons, key=lambda r: r.order)

    async def get_rejection_reason(self, reason_id):
        return self._get(RejectionReason, reason_id)

    # Assignments

    async def get_assignment(self, assignment_id, for_update=False):
        if for_update:
            self.locks.append(("assignment", assignment_id))
        return self._get(CandidateStageAssignment, assignment_id)

    async def find_assignment(self, candidate_id, job_id):
        return next(
            (
                a
                for a in self.all(CandidateStageAssignment)
                if a.candidate_id == candidate_id and a.job_id == job_id
            ),
            None,
        )

    async def count_job_assignments(self, job_id):
        return sum(1 for a in self.all(CandidateStageAssignment) if a.job_id == job_id)

    async def list_active_assignment_ids(self):
        return [a.id for a in self.all(CandidateStageAssignment) if a.status == AssignmentStatus.ACTIVE.value]

    async def update_assignment_versioned(self, assignment_id, expected_version, **values):
        self.locks.append(("assignment", assignment_id))
        assignment = self._get(CandidateStageAssignment, assignment_id)
        if assignment is None or assignment.version != expected_version:
            return None
        for key, value in values.items():
            setattr(assignment, key, value)
        assignment.version = expected_version + 1
        return assignment

    # Alerts and notifications

    async def get_alert(self, alert_id):
        return self._get(SlaAlert, alert_id)

    async def list_open_alerts(self, assignment_id):
        return [
            a
            for a in self.all(SlaAlert)
            if a.assignment_id == assignment_id and a.status != AlertStatus.RESOLVED.value
        ]

    async def list_alerts(self, company_id, status=None, urgency_level=None, limit=50, offset=0):
        alerts = [
            a
            for a in self.all(SlaAlert)
            if a.company_id == company_id
            and (status is None or a.status == status)
            and (urgency_level is None or a.urgency_level == urgency_level)
        ]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        return alerts[offset:offset + limit]

    async def get_notification(self, notification_id):
        return self._get(SlaNotification, notification_id)

    # Automation executions

    async def get_execution(self, execution_id, for_update=False):
        if for_update:
            self.locks.append(("execution", execution_id))
        return self._get(AutomationExecution, execution_id)

    async def list_pending_executions(self, assignment_id):
        return [
            e
            for e in self.all(AutomationExecution)
            if e.assignment_id == assignment_id and e.status in PENDING_EXECUTION_STATUSES
        ]

    async def list_assignment_executions(self, assignment_id):
        executions = [e for e in self.all(AutomationExecution) if e.assignment_id == assignment_id]
        return sorted(executions, key=lambda e: e.run_at)

    async def list_overdue_executions(self, before):
        return [
            e for e in self.all(AutomationExecution) if e.status in PENDING_EXECUTION_STATUSES and e.run_at < before
        ]

    async def list_executions(self, company_id, status=None, limit=50, offset=0):
        executions = [
            e
            for e in self.all(AutomationExecution)
            if e.company_id == company_id and (status is None or e.status == status)
        ]
        executions.sort(key=lambda e: e.created_at, reverse=True)
        return executions[offset:offset + limit]

    async def list_rejection_records(self, assignment_id):
        return [r for r in self.all(RejectionRecord) if r.assignment_id == assignment_id]

    async def list_stage_movements(self, assignment_id):
        movements = [m for m in self.all(StageMovement) if m.assignment_id == assignment_id]
        return sorted(movements, key=lambda m: m.moved_at)


class FakeScheduler(AutomationScheduler):
    """Records scheduled executions instead of queueing them."""

    def __init__(self):
        self.scheduled: List[Dict[str, Any]] = []

    async def schedule(self, execution, delay_seconds):
        self.scheduled.append({"execution_id": execution.id, "delay": delay_seconds, "job_id": execution.job_id})
        return execution.job_id


class FakeGateway:
    """Notification gateway double; raises the queued errors first, then succeeds."""

    def __init__(self, errors: Optional[List[Exception]] = None):
        self.errors = list(errors or [])
        self.sent: List[NotificationMessage] = []

    async def send(self, message: NotificationMessage) -> Dict[str, Any]:
        if self.errors:
            raise self.errors.pop(0)
        self.sent.append(message)
        return {"success": True}


def transient_error(message: str = "gateway unavailable") -> WebhookDeliveryError:
    return WebhookDeliveryError(message)


async def build_pipeline(
    repository: InMemoryPipelineRepository,
    company_id: UUID,
    stage_names: List[str],
    job_id: Optional[UUID] = None,
) -> List[PipelineStage]:
    """Create a default (or job) pipeline model with the named stages in order."""
    model = await repository.add(
        PipelineModel(
            id=uuid4(),
            company_id=company_id,
            name="Processo seletivo",
            job_id=job_id,
            is_default=job_id is None,
            active=True,
        )
    )
    stages = []
    for order, name in enumerate(stage_names, start=1):
        stages.append(
            await repository.add(
                PipelineStage(
                    id=uuid4(),
                    model_id=model.id,
                    name=name,
                    type=StageType.INTERMEDIATE.value,
                    order=order,
                )
            )
        )
    return stages


async def place_candidate(
    repository: InMemoryPipelineRepository,
    company_id: UUID,
    stage: PipelineStage,
    entered_at: Any,
    fields: Optional[Dict[str, Any]] = None,
) -> CandidateStageAssignment:
    return await repository.add(
        CandidateStageAssignment(
            id=uuid4(),
            company_id=company_id,
            candidate_id=uuid4(),
            job_id=uuid4(),
            current_stage_id=stage.id,
            entered_at=entered_at,
            fields_filled=dict(fields or {}),
            status=AssignmentStatus.ACTIVE.value,
            version=1,
        )
    )
