"""SLA evaluation for candidate stage assignments.

For each active assignment the evaluator compares time spent in the current
stage against every active SLA of that stage and keeps at most one unresolved
alert per (SLA, assignment):

- ``0 < remaining <= alert_before``: pre-deadline, urgency ``atencao``
  (``alto`` once half of the warning window is used);
- ``remaining <= 0``: breached, urgency ``alto``; once overdue by
  ``alert_after`` hours it escalates to ``critico`` and adds the escalation
  role to the targets;
- otherwise any open alert is resolved.

Re-running with no state change creates nothing. A classification change
updates the existing alert and puts it back to pending.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from gentepro.config import get_settings
from gentepro.pipeline.enums import (
    AlertKind,
    AlertStatus,
    AssignmentStatus,
    DeadlineUnit,
    NotificationStatus,
    UrgencyLevel,
)
from gentepro.pipeline.models import (
    CandidateStageAssignment,
    SlaAlert,
    SlaDefinition,
    SlaNotification,
)
from gentepro.pipeline.repository import PipelineRepository

logger = logging.getLogger(__name__)

HOURS_PER_UNIT = {
    DeadlineUnit.DAYS: 24,
    DeadlineUnit.WEEKS: 168,
}

DEFAULT_TARGETS = ["recrutador"]


@dataclass(frozen=True)
class SlaState:
    """Classification of one SLA for one assignment at one instant."""

    kind: AlertKind
    urgency: UrgencyLevel
    remaining_hours: float
    escalated: bool = False


def deadline_hours(sla: SlaDefinition) -> float:
    """Deadline in hours: hours as-is, days x 24, weeks x 168 (count held in prazo_dias)."""
    unit = DeadlineUnit(sla.deadline_unit)
    if unit == DeadlineUnit.HOURS:
        return float(sla.deadline_hours)
    return float(sla.deadline_days * HOURS_PER_UNIT[unit])


def classify(
    deadline: float, elapsed_hours: float, alert_before: float, alert_after: float
) -> Optional[SlaState]:
    """Classify an SLA; None when no alert is due."""
    remaining = deadline - elapsed_hours

    if remaining <= 0:
        overdue = -remaining
        if overdue >= alert_after:
            return SlaState(AlertKind.BREACHED, UrgencyLevel.CRITICAL, remaining, escalated=True)
        return SlaState(AlertKind.BREACHED, UrgencyLevel.HIGH, remaining)

    if remaining <= alert_before:
        urgency = UrgencyLevel.HIGH if remaining <= alert_before / 2 else UrgencyLevel.ATTENTION
        return SlaState(AlertKind.PRE_DEADLINE, urgency, remaining)

    return None


def as_aware(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def alert_title(sla: SlaDefinition, state: SlaState) -> str:
    if state.kind == AlertKind.BREACHED:
        return f"SLA '{sla.name}' vencido há {abs(state.remaining_hours):.0f}h"
    return f"SLA '{sla.name}' vence em {state.remaining_hours:.0f}h"


class SlaEvaluator:
    """Creates, updates and resolves SLA alerts."""

    def __init__(self, repository: PipelineRepository, escalation_role: Optional[str] = None):
        self.repository = repository
        self.escalation_role = escalation_role or get_settings().sla_escalation_role

    async def evaluate_all(
        self, now: Optional[datetime] = None, commit_every: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Evaluate every active assignment.

        Failures are logged per assignment and never stop the batch. With
        ``commit_every`` the unit of work is committed after that many
        assignments, so row locks are not held for the whole batch; the caller
        commits the remainder. Returns a summary including the ids of
        notifications created for delivery.
        """
        now = now or datetime.now(timezone.utc)
        results: Dict[str, Any] = {
            "checked_at": now.isoformat(),
            "assignments_checked": 0,
            "alerts_created": 0,
            "alerts_updated": 0,
            "alerts_resolved": 0,
            "escalations": 0,
            "skipped": 0,
            "notification_ids": [],
            "errors": [],
        }

        for index, assignment_id in enumerate(await self.repository.list_active_assignment_ids(), start=1):
            if commit_every and index > 1 and (index - 1) % commit_every == 0:
                await self.repository.commit()
            try:
                async with self.repository.transaction():
                    outcome = await self.evaluate_assignment(assignment_id, now)
            except Exception as e:
                logger.error(f"SLA evaluation failed for assignment {assignment_id}: {str(e)}")
                results["errors"].append({"assignment_id": str(assignment_id), "error": str(e)})
                continue

            if outcome is None:
                results["skipped"] += 1
                continue
            results["assignments_checked"] += 1
            for key in ("alerts_created", "alerts_updated", "alerts_resolved", "escalations"):
                results[key] += outcome[key]
            results["notification_ids"].extend(outcome["notification_ids"])

        logger.info(
            f"SLA check complete: {results['assignments_checked']} assignments, "
            f"{results['alerts_created']} created, {results['alerts_updated']} updated, "
            f"{results['alerts_resolved']} resolved, {len(results['errors'])} errors"
        )
        return results

    async def evaluate_assignment(self, assignment_id: UUID, now: datetime) -> Optional[Dict[str, Any]]:
        """Evaluate one assignment under a row lock; None when it was skipped."""
        assignment = await self.repository.get_assignment(assignment_id, for_update=True)
        if assignment is None or assignment.status != AssignmentStatus.ACTIVE.value:
            return None

        entered_at = as_aware(assignment.entered_at)
        if entered_at is None:
            logger.warning(f"Assignment {assignment_id} has no valid enteredAt; skipping SLA check")
            return None

        outcome: Dict[str, Any] = {
            "alerts_created": 0,
            "alerts_updated": 0,
            "alerts_resolved": 0,
            "escalations": 0,
            "notification_ids": [],
        }
        elapsed_hours = (now - entered_at).total_seconds() / 3600
        slas = await self.repository.list_slas(assignment.current_stage_id)
        open_alerts = {a.sla_id: a for a in await self.repository.list_open_alerts(assignment.id)}

        # Alerts of SLAs outside the current stage no longer apply
        current_sla_ids = {s.id for s in slas}
        for sla_id, alert in open_alerts.items():
            if sla_id not in current_sla_ids:
                await self._resolve(alert, now)
                outcome["alerts_resolved"] += 1

        for sla in slas:
            state = classify(deadline_hours(sla), elapsed_hours, sla.alert_before, sla.alert_after)
            existing = open_alerts.get(sla.id)

            if state is None:
                if existing is not None:
                    await self._resolve(existing, now)
                    outcome["alerts_resolved"] += 1
                continue

            targets = self._targets(sla, state)
            if existing is None:
                alert = await self.repository.add(
                    SlaAlert(
                        company_id=assignment.company_id,
                        sla_id=sla.id,
                        assignment_id=assignment.id,
                        kind=state.kind.value,
                        status=AlertStatus.PENDING.value,
                        urgency_level=state.urgency.value,
                        title=alert_title(sla, state),
                        message=sla.description,
                        remaining_hours=state.remaining_hours,
                        escalated=state.escalated,
                        targets=targets,
                    )
                )
                outcome["alerts_created"] += 1
            elif self._same_classification(existing, state):
                await self.repository.save(existing, remaining_hours=state.remaining_hours)
                continue
            else:
                alert = await self.repository.save(
                    existing,
                    kind=state.kind.value,
                    status=AlertStatus.PENDING.value,
                    urgency_level=state.urgency.value,
                    title=alert_title(sla, state),
                    remaining_hours=state.remaining_hours,
                    escalated=state.escalated,
                    targets=targets,
                    sent_at=None,
                    acknowledged_at=None,
                    acknowledged_by=None,
                )
                outcome["alerts_updated"] += 1

            if state.escalated:
                outcome["escalations"] += 1
            outcome["notification_ids"].extend(await self._queue_notifications(alert, sla))

        return outcome

    async def resolve_assignment_alerts(self, assignment: CandidateStageAssignment, now: Optional[datetime] = None) -> int:
        """Resolve every open alert of an assignment (used on stage transitions)."""
        now = now or datetime.now(timezone.utc)
        alerts = await self.repository.list_open_alerts(assignment.id)
        for alert in alerts:
            await self._resolve(alert, now)
        return len(alerts)

    def _targets(self, sla: SlaDefinition, state: SlaState) -> List[str]:
        settings_ = sla.notifications or {}
        targets = list(settings_.get("recipients") or settings_.get("destinatarios") or DEFAULT_TARGETS)
        if state.escalated and self.escalation_role not in targets:
            targets.append(self.escalation_role)
        return targets

    @staticmethod
    def _same_classification(alert: SlaAlert, state: SlaState) -> bool:
        return (
            alert.kind == state.kind.value
            and alert.urgency_level == state.urgency.value
            and bool(alert.escalated) == state.escalated
        )

    @staticmethod
    def _channel(sla: SlaDefinition) -> str:
        settings_ = sla.notifications or {}
        for channel in ("email", "push", "sms"):
            if settings_.get(channel):
                return channel
        return "email"

    async def _queue_notifications(self, alert: SlaAlert, sla: SlaDefinition) -> List[UUID]:
        channel = self._channel(sla)
        ids = []
        for target in alert.targets:
            notification = await self.repository.add(
                SlaNotification(
                    alert_id=alert.id,
                    target=target,
                    channel=channel,
                    status=NotificationStatus.PENDING.value,
                    title=alert.title,
                    message=alert.message,
                    attempts=0,
                )
            )
            ids.append(notification.id)
        return ids

    async def _resolve(self, alert: SlaAlert, now: datetime) -> None:
        await self.repository.save(alert, status=AlertStatus.RESOLVED.value, resolved_at=now)
