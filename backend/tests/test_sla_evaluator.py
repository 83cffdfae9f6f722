from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from gentepro.pipeline.enums import AlertKind, AlertStatus, AssignmentStatus, UrgencyLevel
from gentepro.pipeline.models import SlaAlert, SlaDefinition, SlaNotification
from gentepro.pipeline.services.sla_evaluator import SlaEvaluator, classify, deadline_hours
from tests.fakes import build_pipeline, place_candidate


pytestmark = pytest.mark.unit

ENTERED = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


async def add_sla(repository, stage, **overrides):
    values = dict(
        stage_id=stage.id,
        name="Prazo da triagem",
        description="Analisar o currículo",
        deadline_hours=0,
        deadline_days=2,
        deadline_unit="dias",
        alert_before=4,
        alert_after=1,
        notifications={"email": True, "recipients": ["recrutador"]},
        active=True,
    )
    values.update(overrides)
    return await repository.add(SlaDefinition(**values))


@pytest.fixture
async def screening(repository, company_id):
    stages = await build_pipeline(repository, company_id, ["Triagem", "Entrevista"])
    sla = await add_sla(repository, stages[0])
    assignment = await place_candidate(repository, company_id, stages[0], ENTERED)
    return stages, sla, assignment


def test_deadline_hours_by_unit():
    assert deadline_hours(SlaDefinition(deadline_hours=4, deadline_days=0, deadline_unit="horas")) == 4
    assert deadline_hours(SlaDefinition(deadline_hours=0, deadline_days=2, deadline_unit="dias")) == 48
    assert deadline_hours(SlaDefinition(deadline_hours=0, deadline_days=1, deadline_unit="semanas")) == 168


def test_classify_windows():
    assert classify(48, 40, 4, 1) is None

    attention = classify(48, 44.5, 4, 1)
    assert attention.kind == AlertKind.PRE_DEADLINE
    assert attention.urgency == UrgencyLevel.ATTENTION

    high = classify(48, 47, 4, 1)
    assert high.kind == AlertKind.PRE_DEADLINE
    assert high.urgency == UrgencyLevel.HIGH
    assert high.remaining_hours == 1

    breached = classify(48, 48.5, 4, 1)
    assert breached.kind == AlertKind.BREACHED
    assert breached.urgency == UrgencyLevel.HIGH
    assert not breached.escalated

    critical = classify(48, 50, 4, 1)
    assert critical.urgency == UrgencyLevel.CRITICAL
    assert critical.escalated
    assert critical.remaining_hours == -2


async def test_pre_deadline_alert_then_breach(repository, screening):
    _, sla, assignment = screening
    evaluator = SlaEvaluator(repository, escalation_role="gestor")

    first = await evaluator.evaluate_all(ENTERED + timedelta(hours=47))

    alerts = repository.all(SlaAlert)
    assert first["alerts_created"] == 1
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.kind == AlertKind.PRE_DEADLINE.value
    assert alert.sla_id == sla.id
    assert alert.assignment_id == assignment.id
    assert alert.remaining_hours == pytest.approx(1)
    assert alert.targets == ["recrutador"]

    second = await evaluator.evaluate_all(ENTERED + timedelta(hours=50))

    assert second["alerts_updated"] == 1
    assert second["escalations"] == 1
    assert repository.all(SlaAlert) == [alert]
    assert alert.kind == AlertKind.BREACHED.value
    assert alert.urgency_level == UrgencyLevel.CRITICAL.value
    assert alert.status == AlertStatus.PENDING.value
    assert alert.targets == ["recrutador", "gestor"]


async def test_rerun_without_change_creates_nothing(repository, screening):
    evaluator = SlaEvaluator(repository)
    now = ENTERED + timedelta(hours=47)

    first = await evaluator.evaluate_all(now)
    second = await evaluator.evaluate_all(now + timedelta(minutes=10))

    assert len(first["notification_ids"]) == 1
    assert second["alerts_created"] == 0
    assert second["alerts_updated"] == 0
    assert second["notification_ids"] == []
    assert len(repository.all(SlaAlert)) == 1
    assert len(repository.all(SlaNotification)) == 1


async def test_notification_per_target(repository, screening):
    _, sla, _ = screening
    sla.notifications = {"sms": True, "destinatarios": ["recrutador", "candidato"]}

    results = await SlaEvaluator(repository).evaluate_all(ENTERED + timedelta(hours=47))

    notifications = repository.all(SlaNotification)
    assert [n.target for n in notifications] == ["recrutador", "candidato"]
    assert {n.channel for n in notifications} == {"sms"}
    assert results["notification_ids"] == [n.id for n in notifications]


async def test_acknowledged_alert_reopens_on_classification_change(repository, screening):
    evaluator = SlaEvaluator(repository)
    await evaluator.evaluate_all(ENTERED + timedelta(hours=45))
    alert = repository.all(SlaAlert)[0]
    alert.status = AlertStatus.ACKNOWLEDGED.value
    alert.acknowledged_by = uuid4()

    await evaluator.evaluate_all(ENTERED + timedelta(hours=47))

    assert alert.urgency_level == UrgencyLevel.HIGH.value
    assert alert.status == AlertStatus.PENDING.value
    assert alert.acknowledged_by is None


async def test_alert_resolved_when_no_longer_due(repository, screening):
    _, sla, _ = screening
    evaluator = SlaEvaluator(repository)
    await evaluator.evaluate_all(ENTERED + timedelta(hours=47))

    # Deadline extended after the alert was raised
    sla.deadline_days = 5
    results = await evaluator.evaluate_all(ENTERED + timedelta(hours=48))

    assert results["alerts_resolved"] == 1
    assert repository.all(SlaAlert)[0].status == AlertStatus.RESOLVED.value


async def test_inactive_sla_and_other_stages_are_ignored(repository, company_id, screening):
    stages, sla, _ = screening
    sla.active = False
    await add_sla(repository, stages[1], deadline_days=0, deadline_hours=1, deadline_unit="horas")

    results = await SlaEvaluator(repository).evaluate_all(ENTERED + timedelta(days=10))

    assert results["alerts_created"] == 0
    assert repository.all(SlaAlert) == []


async def test_weeks_deadline(repository, company_id):
    stage = (await build_pipeline(repository, company_id, ["Experiência"]))[0]
    await add_sla(repository, stage, deadline_days=1, deadline_unit="semanas", alert_before=24)
    await place_candidate(repository, company_id, stage, ENTERED)

    evaluator = SlaEvaluator(repository)
    early = await evaluator.evaluate_all(ENTERED + timedelta(hours=100))
    late = await evaluator.evaluate_all(ENTERED + timedelta(hours=150))

    assert early["alerts_created"] == 0
    assert late["alerts_created"] == 1
    assert repository.all(SlaAlert)[0].remaining_hours == pytest.approx(18)


async def test_malformed_entered_at_is_skipped(repository, company_id, screening):
    stages, _, _ = screening
    await place_candidate(repository, company_id, stages[0], "ontem à tarde")
    await place_candidate(repository, company_id, stages[0], None)

    results = await SlaEvaluator(repository).evaluate_all(ENTERED + timedelta(hours=47))

    assert results["skipped"] == 2
    assert results["assignments_checked"] == 1
    assert results["errors"] == []


async def test_iso_string_entered_at_is_accepted(repository, company_id, screening):
    stages, _, assignment = screening
    assignment.entered_at = "2026-03-02T09:00:00Z"

    results = await SlaEvaluator(repository).evaluate_all(ENTERED + timedelta(hours=47))

    assert results["alerts_created"] == 1


async def test_rejected_assignments_are_not_evaluated(repository, screening):
    _, _, assignment = screening
    assignment.status = AssignmentStatus.REJECTED.value

    results = await SlaEvaluator(repository).evaluate_all(ENTERED + timedelta(hours=47))

    assert results["assignments_checked"] == 0
    assert repository.all(SlaAlert) == []


async def test_failure_in_one_assignment_does_not_stop_the_batch(repository, company_id, screening, monkeypatch):
    stages, _, broken = screening
    healthy = await place_candidate(repository, company_id, stages[0], ENTERED)
    evaluator = SlaEvaluator(repository)
    original = evaluator.evaluate_assignment

    async def evaluate(assignment_id, now):
        if assignment_id == broken.id:
            raise RuntimeError("lock timeout")
        return await original(assignment_id, now)

    monkeypatch.setattr(evaluator, "evaluate_assignment", evaluate)
    results = await evaluator.evaluate_all(ENTERED + timedelta(hours=47))

    assert results["errors"] == [{"assignment_id": str(broken.id), "error": "lock timeout"}]
    assert [a.assignment_id for a in repository.all(SlaAlert)] == [healthy.id]


async def test_alerts_of_a_left_stage_are_resolved(repository, screening):
    stages, _, assignment = screening
    evaluator = SlaEvaluator(repository)
    await evaluator.evaluate_all(ENTERED + timedelta(hours=47))

    assignment.current_stage_id = stages[1].id
    results = await evaluator.evaluate_all(ENTERED + timedelta(hours=48))

    assert results["alerts_resolved"] == 1
    assert repository.all(SlaAlert)[0].status == AlertStatus.RESOLVED.value


async def test_batch_commits_in_chunks_to_release_locks(repository, company_id, screening, monkeypatch):
    stages = screening[0]
    for _ in range(4):
        await place_candidate(repository, company_id, stages[0], ENTERED)
    evaluated = []
    committed_after = []
    evaluate_assignment = SlaEvaluator.evaluate_assignment

    async def counting(self, assignment_id, now):
        evaluated.append(assignment_id)
        return await evaluate_assignment(self, assignment_id, now)

    async def commit():
        committed_after.append(len(evaluated))

    monkeypatch.setattr(SlaEvaluator, "evaluate_assignment", counting)
    monkeypatch.setattr(repository, "commit", commit)

    result = await SlaEvaluator(repository).evaluate_all(ENTERED + timedelta(hours=50), commit_every=2)

    assert result["assignments_checked"] == 5
    assert committed_after == [2, 4]


async def test_batch_without_chunking_leaves_the_commit_to_the_caller(repository, screening):
    await SlaEvaluator(repository).evaluate_all(ENTERED + timedelta(hours=50))

    assert repository.commits == 0
