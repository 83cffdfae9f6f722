"""Stage automation engine.

Matching happens on stage entry and on field updates and never performs I/O:
each fired rule becomes an AutomationExecution row. Once the caller has
committed, ``dispatch_pending`` hands the new executions to the scheduler,
which runs them later through ``run_execution``.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from gentepro.config import get_settings
from gentepro.core.exceptions import (
    ConcurrentModificationError,
    GenteProException,
    NotFoundError,
    PermanentAutomationFailure,
    ValidationError,
    WebhookDeliveryError,
)
from gentepro.pipeline.enums import NEXT_STAGE, AssignmentStatus, ExecutionStatus
from gentepro.pipeline.models import (
    AutomationExecution,
    AutomationRule,
    CandidateStageAssignment,
    PipelineStage,
    RejectionRecord,
)
from gentepro.pipeline.repository import PipelineRepository
from gentepro.pipeline.schemas.rules import (
    MoveStageAction,
    RecordRejectionAction,
    RunWebhookAction,
    SendNotificationAction,
    WebhookHeader,
    parse_actions,
    parse_conditions,
)
from gentepro.pipeline.services.conditions import ConditionEvaluator, get_condition_evaluator
from gentepro.pipeline.services.sla_evaluator import as_aware
from gentepro.pipeline.services.transitions import leave_stage, move_to_stage
from gentepro.services.notification_gateway import (
    NotificationGateway,
    NotificationMessage,
    get_notification_gateway,
)
from gentepro.services.webhook_client import WebhookClient

logger = logging.getLogger(__name__)

WEBHOOK_PAYLOAD_VERSION = 1
WEBHOOK_EVENT = "automatizacao_etapa"

TERMINAL_STATUSES = {
    ExecutionStatus.SUCCEEDED.value,
    ExecutionStatus.FAILED.value,
    ExecutionStatus.CANCELLED.value,
}

# Executions in these states do not block a rule from firing again
INACTIVE_STATUSES = {ExecutionStatus.CANCELLED.value, ExecutionStatus.FAILED.value}


def exponential_backoff(attempt: int, base: int, cap: int) -> int:
    """Delay before retry number `attempt` (1-based): base * 2**(attempt-1), capped."""
    return min(base * 2 ** (attempt - 1), cap)


def execution_job_id(execution_id: UUID, attempt: int) -> str:
    """Queue job id for one attempt of an execution."""
    return f"automacao:{execution_id}:{attempt}"


class AutomationScheduler(ABC):
    """Hands executions to whatever runs them later."""

    @abstractmethod
    async def schedule(self, execution: AutomationExecution, delay_seconds: float) -> Optional[str]:
        """Schedule an execution; returns the queue job id, or None if it was already queued."""


class AutomationEngine:
    """Fires, schedules and runs stage automation rules."""

    def __init__(
        self,
        repository: PipelineRepository,
        scheduler: Optional[AutomationScheduler] = None,
        webhook_client: Optional[WebhookClient] = None,
        gateway: Optional[NotificationGateway] = None,
        evaluator: Optional[ConditionEvaluator] = None,
        backoff_base: Optional[int] = None,
        backoff_max: Optional[int] = None,
    ):
        settings = get_settings()
        self.repository = repository
        self.scheduler = scheduler
        self.webhook_client = webhook_client or WebhookClient()
        self.gateway = gateway or get_notification_gateway()
        self.evaluator = evaluator or get_condition_evaluator()
        self.backoff_base = backoff_base if backoff_base is not None else settings.webhook_backoff_base_seconds
        self.backoff_max = backoff_max if backoff_max is not None else settings.webhook_backoff_max_seconds
        self.pending_dispatch: List[AutomationExecution] = []

    # Facts and matching

    @staticmethod
    def build_facts(
        assignment: CandidateStageAssignment,
        stage: Optional[PipelineStage],
        now: datetime,
        event_facts: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        # Current field values win over the facts captured with the event
        facts: Dict[str, Any] = dict(event_facts or {})
        facts.update(assignment.fields_filled or {})

        entered_at = as_aware(assignment.entered_at)
        days = 0
        if entered_at is not None:
            days = max(0, int((now - entered_at).total_seconds() // 86400))
        facts["dias_na_etapa"] = days
        facts["etapa_atual"] = stage.name if stage else None
        facts["candidato_id"] = str(assignment.candidate_id)
        facts["vaga_id"] = str(assignment.job_id)
        return facts

    async def on_stage_entry(
        self,
        assignment: CandidateStageAssignment,
        now: Optional[datetime] = None,
        event_facts: Optional[Dict[str, Any]] = None,
    ) -> List[AutomationExecution]:
        """Fire the rules of the assignment's current stage after it entered it."""
        executions = await self._match(assignment, now or datetime.now(timezone.utc), event_facts)
        self.pending_dispatch.extend(executions)
        return executions

    async def on_fields_updated(
        self,
        assignment: CandidateStageAssignment,
        changed: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> List[AutomationExecution]:
        """Fire rules whose conditions now hold after a field update."""
        executions = await self._match(assignment, now or datetime.now(timezone.utc), changed)
        self.pending_dispatch.extend(executions)
        return executions

    async def _match(
        self,
        assignment: CandidateStageAssignment,
        now: datetime,
        event_facts: Optional[Dict[str, Any]],
    ) -> List[AutomationExecution]:
        if assignment.status != AssignmentStatus.ACTIVE.value:
            return []

        stage = await self.repository.get_stage(assignment.current_stage_id)
        rules = await self.repository.list_automation_rules(assignment.current_stage_id)
        if not rules:
            return []

        facts = self.build_facts(assignment, stage, now, event_facts)
        already_fired = await self._rules_fired_in_current_stay(assignment)

        created: List[AutomationExecution] = []
        for rule in rules:
            if rule.id in already_fired:
                continue
            try:
                conditions = parse_conditions(rule.conditions or [])
            except ValueError as e:
                logger.error(f"Automation rule {rule.id} has invalid conditions: {str(e)}")
                continue
            if not self.evaluator.evaluate_conditions(conditions, facts):
                continue

            execution_id = uuid4()
            execution = await self.repository.add(
                AutomationExecution(
                    id=execution_id,
                    company_id=assignment.company_id,
                    rule_id=rule.id,
                    assignment_id=assignment.id,
                    stage_id=assignment.current_stage_id,
                    status=ExecutionStatus.SCHEDULED.value,
                    run_at=now + timedelta(minutes=rule.delay_minutes or 0),
                    attempts=0,
                    completed_actions=0,
                    event_facts=dict(event_facts or {}),
                    job_id=execution_job_id(execution_id, 1),
                )
            )
            created.append(execution)
            logger.info(f"Automation '{rule.name}' fired for assignment {assignment.id}")

        return created

    async def _rules_fired_in_current_stay(self, assignment: CandidateStageAssignment) -> set:
        entered_at = as_aware(assignment.entered_at)
        fired = set()
        for execution in await self.repository.list_assignment_executions(assignment.id):
            if execution.stage_id != assignment.current_stage_id:
                continue
            if execution.status in INACTIVE_STATUSES:
                continue
            if entered_at is not None and as_aware(execution.run_at) < entered_at:
                continue
            fired.add(execution.rule_id)
        return fired

    # Scheduling

    async def dispatch_pending(self) -> List[str]:
        """Schedule executions created in this unit of work. Call after commit."""
        executions, self.pending_dispatch = self.pending_dispatch, []
        return await self.dispatch(executions)

    async def dispatch(self, executions: List[AutomationExecution]) -> List[str]:
        if self.scheduler is None:
            if executions:
                logger.warning(f"No automation scheduler configured; {len(executions)} executions left unscheduled")
            return []

        now = datetime.now(timezone.utc)
        job_ids = []
        for execution in executions:
            delay = max(0.0, (as_aware(execution.run_at) - now).total_seconds())
            job_id = await self.scheduler.schedule(execution, delay)
            if job_id:
                job_ids.append(job_id)
        return job_ids

    def backoff_seconds(self, attempt: int) -> int:
        return exponential_backoff(attempt, self.backoff_base, self.backoff_max)

    # Execution

    async def run_execution(self, execution_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run the remaining actions of an execution.

        Returns a result dict whose status is concluida, cancelada, or retry
        (with ``retry_in`` seconds). Raises PermanentAutomationFailure once
        the execution has failed for good.
        """
        now = now or datetime.now(timezone.utc)
        execution = await self.repository.get_execution(execution_id)
        if execution is None:
            raise NotFoundError(f"Automation execution {execution_id} not found")
        if execution.status in TERMINAL_STATUSES:
            return {"execution_id": str(execution_id), "status": execution.status, "skipped": True}

        # Lock order is assignment then execution, the same as stage transitions
        assignment = await self.repository.get_assignment(execution.assignment_id, for_update=True)
        execution = await self.repository.get_execution(execution_id, for_update=True)
        if execution is None:
            raise NotFoundError(f"Automation execution {execution_id} not found")
        if execution.status in TERMINAL_STATUSES:
            return {"execution_id": str(execution_id), "status": execution.status, "skipped": True}

        rule = await self.repository.get_automation_rule(execution.rule_id)
        await self.repository.save(
            execution, status=ExecutionStatus.RUNNING.value, attempts=execution.attempts + 1
        )

        if execution.completed_actions == 0:
            reason = await self._cancel_reason(rule, assignment, execution, now)
            if reason:
                await self.repository.save(
                    execution, status=ExecutionStatus.CANCELLED.value, last_error=reason, finished_at=now
                )
                logger.info(f"Automation execution {execution_id} cancelled: {reason}")
                return {"execution_id": str(execution_id), "status": ExecutionStatus.CANCELLED.value}

        try:
            actions = parse_actions(rule.actions)
        except ValueError as e:
            await self._fail(execution, f"Invalid actions: {str(e)}", now)
            raise PermanentAutomationFailure(
                f"Automation execution {execution_id} has invalid actions",
                details={"execution_id": str(execution_id)},
            ) from e

        stage = await self.repository.get_stage(execution.stage_id)
        facts = self.build_facts(assignment, stage, now, execution.event_facts)

        try:
            for index in range(execution.completed_actions, len(actions)):
                async with self.repository.transaction():
                    assignment, fired = await self._run_action(
                        actions[index], rule, execution, assignment, stage, facts, now
                    )
                    await self.repository.save(execution, completed_actions=index + 1)
                self.pending_dispatch.extend(fired)
        except (WebhookDeliveryError, ConcurrentModificationError) as e:
            return await self._retry_or_fail(execution, rule, e, now)
        except GenteProException as e:
            await self._fail(execution, e.message, now)
            raise PermanentAutomationFailure(
                f"Automation execution {execution_id} failed: {e.message}",
                details={"execution_id": str(execution_id), "rule_id": str(rule.id)},
            ) from e

        await self.repository.save(
            execution, status=ExecutionStatus.SUCCEEDED.value, last_error=None, finished_at=now
        )
        logger.info(f"Automation '{rule.name}' completed for assignment {execution.assignment_id}")
        return {
            "execution_id": str(execution_id),
            "status": ExecutionStatus.SUCCEEDED.value,
            "actions": len(actions),
        }

    async def _cancel_reason(
        self,
        rule: Optional[AutomationRule],
        assignment: Optional[CandidateStageAssignment],
        execution: AutomationExecution,
        now: datetime,
    ) -> Optional[str]:
        if assignment is None or assignment.status != AssignmentStatus.ACTIVE.value:
            return "Assignment is no longer active"
        if assignment.current_stage_id != execution.stage_id:
            return "Assignment left the stage"
        if rule is None or not rule.active:
            return "Rule is no longer active"

        try:
            conditions = parse_conditions(rule.conditions or [])
        except ValueError:
            return "Rule has invalid conditions"

        stage = await self.repository.get_stage(execution.stage_id)
        facts = self.build_facts(assignment, stage, now, execution.event_facts)
        if not self.evaluator.evaluate_conditions(conditions, facts):
            return "Conditions no longer hold"
        return None

    async def _retry_or_fail(
        self,
        execution: AutomationExecution,
        rule: AutomationRule,
        error: GenteProException,
        now: datetime,
    ) -> Dict[str, Any]:
        if execution.attempts >= rule.max_retries:
            await self._fail(execution, error.message, now)
            raise PermanentAutomationFailure(
                f"Automation execution {execution.id} failed after {execution.attempts} attempts: {error.message}",
                details={"execution_id": str(execution.id), "rule_id": str(rule.id), "attempts": execution.attempts},
            ) from error

        delay = self.backoff_seconds(execution.attempts)
        await self.repository.save(
            execution,
            status=ExecutionStatus.RETRYING.value,
            last_error=error.message,
            run_at=now + timedelta(seconds=delay),
            job_id=execution_job_id(execution.id, execution.attempts + 1),
        )
        self.pending_dispatch.append(execution)
        logger.warning(
            f"Automation execution {execution.id} attempt {execution.attempts} failed, "
            f"retrying in {delay}s: {error.message}"
        )
        return {"execution_id": str(execution.id), "status": "retry", "retry_in": delay}

    async def _fail(self, execution: AutomationExecution, message: str, now: datetime) -> None:
        await self.repository.save(
            execution, status=ExecutionStatus.FAILED.value, last_error=message, finished_at=now
        )

    # Actions

    async def _run_action(
        self,
        action: Any,
        rule: AutomationRule,
        execution: AutomationExecution,
        assignment: CandidateStageAssignment,
        stage: Optional[PipelineStage],
        facts: Dict[str, Any],
        now: datetime,
    ):
        """Run one action; returns the (possibly updated) assignment and any newly fired executions."""
        if isinstance(action, MoveStageAction):
            return await self._move_stage(action, execution, assignment, now)

        if isinstance(action, SendNotificationAction):
            await self.gateway.send(
                NotificationMessage(
                    destinatario=action.recipient,
                    titulo=rule.name,
                    mensagem=rule.description or "",
                    contexto={
                        "template": action.template,
                        "dados": {key: facts.get(key) for key in action.data},
                        "candidato_id": facts["candidato_id"],
                        "vaga_id": facts["vaga_id"],
                        "regra_id": str(rule.id),
                    },
                )
            )
            return assignment, []

        if isinstance(action, RunWebhookAction):
            await self.webhook_client.deliver(
                action.url or rule.webhook_url,
                action.method if action.url else rule.webhook_method,
                self.webhook_payload(rule, execution, facts, action.data),
                [WebhookHeader.model_validate(h) for h in rule.webhook_headers or []],
            )
            return assignment, []

        if isinstance(action, RecordRejectionAction):
            return await self._record_rejection(action, execution, assignment, stage, now), []

        raise ValidationError(f"Unsupported automation action: {type(action).__name__}")

    @staticmethod
    def webhook_payload(
        rule: AutomationRule,
        execution: AutomationExecution,
        facts: Dict[str, Any],
        fields: List[str],
    ) -> Dict[str, Any]:
        return {
            "versao": WEBHOOK_PAYLOAD_VERSION,
            "evento": WEBHOOK_EVENT,
            "regra_id": str(rule.id),
            "candidato_id": facts["candidato_id"],
            "vaga_id": facts["vaga_id"],
            "etapa_id": str(execution.stage_id),
            "dados": {key: facts.get(key) for key in fields},
        }

    async def _move_stage(
        self,
        action: MoveStageAction,
        execution: AutomationExecution,
        assignment: CandidateStageAssignment,
        now: datetime,
    ):
        current = await self.repository.get_stage(assignment.current_stage_id)
        stages = await self.repository.list_stages(current.model_id)

        if action.target_stage == NEXT_STAGE:
            target = next((s for s in stages if s.order > current.order), None)
            if target is None:
                raise ValidationError(f"Stage '{current.name}' is the last stage of its pipeline")
        else:
            target = next((s for s in stages if s.name == action.target_stage), None)
            if target is None:
                raise ValidationError(f"Stage '{action.target_stage}' not found in pipeline")

        outcome = await move_to_stage(
            self.repository, assignment, target, assignment.version, now, keep_execution_id=execution.id
        )
        fired = await self._match(outcome.assignment, now, None)
        return outcome.assignment, fired

    async def _record_rejection(
        self,
        action: RecordRejectionAction,
        execution: AutomationExecution,
        assignment: CandidateStageAssignment,
        stage: Optional[PipelineStage],
        now: datetime,
    ) -> CandidateStageAssignment:
        reason_text = action.reason
        if action.reason_id is not None:
            reason = await self.repository.get_rejection_reason(action.reason_id)
            if reason is None or reason.company_id != assignment.company_id:
                raise NotFoundError(f"Rejection reason {action.reason_id} not found")
            reason_text = reason.name

        await self.repository.add(
            RejectionRecord(
                assignment_id=assignment.id,
                reason_id=action.reason_id,
                reason=reason_text,
                stage_id=assignment.current_stage_id,
                note=action.note,
            )
        )
        outcome = await leave_stage(
            self.repository,
            assignment,
            assignment.version,
            now,
            keep_execution_id=execution.id,
            status=AssignmentStatus.REJECTED.value,
        )
        logger.info(
            f"Assignment {assignment.id} rejected at stage '{stage.name if stage else assignment.current_stage_id}'"
        )
        return outcome.assignment
