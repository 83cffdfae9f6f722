"""ARQ task tests with the session factory pointed at the in-memory repository."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from arq import Retry

from gentepro.config import get_settings
from gentepro.pipeline.enums import ExecutionStatus, NotificationStatus
from gentepro.pipeline.models import AutomationExecution, SlaDefinition, SlaNotification
from gentepro.pipeline.services.alert_service import AlertService
from gentepro.pipeline.services.automation_engine import execution_job_id
from gentepro.pipeline.services.template_service import TemplateService
from gentepro.services.job_queue import JobQueue
from tests.fakes import FakeGateway, build_pipeline, place_candidate, transient_error
from workers.tasks import automations, notifications, sla_alerts


pytestmark = pytest.mark.unit


class FakeSession:
    def __init__(self, repository):
        self.repository = repository

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def commit(self):
        await self.repository.commit()


@pytest.fixture(autouse=True)
def in_memory_sessions(monkeypatch, repository, scheduler):
    for module in (automations, notifications, sla_alerts):
        monkeypatch.setattr(module, "async_session_maker", lambda: FakeSession(repository))
        monkeypatch.setattr(module, "SqlAlchemyPipelineRepository", lambda session: session.repository)
    monkeypatch.setattr(automations, "ArqAutomationScheduler", lambda: scheduler)


@pytest.fixture
async def overdue_candidate(repository, company_id):
    stage = (await build_pipeline(repository, company_id, ["Triagem"]))[0]
    await repository.add(
        SlaDefinition(
            stage_id=stage.id,
            name="SLA Triagem Padrão",
            deadline_days=2,
            deadline_unit="dias",
            alert_before=4,
            alert_after=1,
        )
    )
    return await place_candidate(repository, company_id, stage, datetime.now(timezone.utc) - timedelta(hours=60))


async def test_sla_check_queues_notifications_after_commit(repository, overdue_candidate, monkeypatch):
    queued = []

    async def enqueue(notification_id):
        assert repository.commits == 1
        queued.append(notification_id)
        return f"sla_notification:{notification_id}"

    monkeypatch.setattr(JobQueue, "enqueue_sla_notification", staticmethod(enqueue))

    result = await sla_alerts.check_sla_alerts({})

    created = repository.all(SlaNotification)
    assert created
    assert result["alerts_created"] == 1
    assert result["notifications_queued"] == len(created)
    assert sorted(queued) == sorted(str(n.id) for n in created)


async def test_notification_task_delivers(repository, overdue_candidate, monkeypatch):
    monkeypatch.setattr(JobQueue, "enqueue_sla_notification", staticmethod(lambda notification_id: _none()))
    await sla_alerts.check_sla_alerts({})
    notification = repository.all(SlaNotification)[0]

    result = await notifications.send_sla_notification({"job_try": 1}, str(notification.id))

    assert result["status"] == NotificationStatus.SENT.value
    assert notification.status == NotificationStatus.SENT.value


async def test_notification_task_retries_transient_failures(repository, overdue_candidate, monkeypatch):
    monkeypatch.setattr(JobQueue, "enqueue_sla_notification", staticmethod(lambda notification_id: _none()))
    monkeypatch.setattr(
        notifications, "AlertService", lambda repo: AlertService(repo, FakeGateway(errors=[transient_error()]))
    )
    await sla_alerts.check_sla_alerts({})
    notification = repository.all(SlaNotification)[0]
    commits = repository.commits

    with pytest.raises(Retry):
        await notifications.send_sla_notification({"job_try": 2}, str(notification.id))

    assert repository.commits == commits + 1
    assert notification.attempts == 1
    assert notification.status == NotificationStatus.PENDING.value


async def test_notification_task_missing_notification():
    result = await notifications.send_sla_notification({"job_try": 1}, str(uuid4()))

    assert result["status"] == "missing"


async def _none():
    return None


async def _notification_execution(repository, company_id, run_at):
    stage = (await build_pipeline(repository, company_id, ["Triagem"]))[0]
    rule = await TemplateService(repository).add_automation_rule(
        stage.id,
        {
            "name": "Avisar RH",
            "type": "notificacao",
            "actions": [{"tipo": "enviar_notificacao", "destinatario": "rh", "template": "novo_candidato"}],
        },
    )
    assignment = await place_candidate(repository, company_id, stage, run_at)
    execution_id = uuid4()
    return await repository.add(
        AutomationExecution(
            id=execution_id,
            company_id=company_id,
            rule_id=rule.id,
            assignment_id=assignment.id,
            stage_id=stage.id,
            run_at=run_at,
            job_id=execution_job_id(execution_id, 1),
        )
    )


async def test_automation_task_runs_execution(repository, company_id):
    execution = await _notification_execution(repository, company_id, datetime.now(timezone.utc))

    result = await automations.run_automation_execution({}, str(execution.id))

    assert result["status"] == ExecutionStatus.SUCCEEDED.value
    assert execution.status == ExecutionStatus.SUCCEEDED.value
    assert repository.commits == 1


async def test_automation_task_missing_execution():
    result = await automations.run_automation_execution({}, str(uuid4()))

    assert result["status"] == "missing"


async def test_overdue_executions_are_requeued(repository, company_id, scheduler):
    execution = await _notification_execution(
        repository, company_id, datetime.now(timezone.utc) - timedelta(hours=1)
    )

    result = await automations.requeue_overdue_executions({})

    assert result == {"overdue": 1, "requeued": 1}
    assert scheduler.scheduled[0]["execution_id"] == execution.id


async def test_sla_check_commits_per_batch(repository, company_id, overdue_candidate, monkeypatch):
    stage = await repository.get_stage(overdue_candidate.current_stage_id)
    for _ in range(2):
        await place_candidate(repository, company_id, stage, datetime.now(timezone.utc) - timedelta(hours=60))
    monkeypatch.setattr(get_settings(), "sla_commit_batch_size", 1)
    monkeypatch.setattr(JobQueue, "enqueue_sla_notification", staticmethod(lambda notification_id: _none()))

    result = await sla_alerts.check_sla_alerts({})

    assert result["alerts_created"] == 3
    assert repository.commits == 3
