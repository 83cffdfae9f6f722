import json
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest

from gentepro.core.exceptions import BusinessRuleError, IntegrationError, NotFoundError, WebhookDeliveryError
from gentepro.pipeline.enums import AlertStatus, NotificationStatus
from gentepro.pipeline.models import SlaDefinition, SlaNotification
from gentepro.pipeline.services.alert_service import AlertService
from gentepro.pipeline.services.sla_evaluator import SlaEvaluator
from gentepro.services.notification_gateway import NotificationGateway, NotificationMessage
from tests.fakes import FakeGateway, build_pipeline, place_candidate


pytestmark = pytest.mark.unit

NOW = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def alert(repository, company_id):
    stage = (await build_pipeline(repository, company_id, ["Triagem"]))[0]
    await repository.add(
        SlaDefinition(
            stage_id=stage.id,
            name="SLA Triagem Rápida",
            description="Currículo aguardando análise",
            deadline_hours=4,
            deadline_days=0,
            deadline_unit="horas",
            alert_before=1,
            alert_after=1,
            notifications={"email": True, "destinatarios": ["recrutador"]},
        )
    )
    await place_candidate(repository, company_id, stage, NOW - timedelta(hours=3, minutes=30))
    await SlaEvaluator(repository).evaluate_all(NOW)
    return (await repository.list_alerts(company_id))[0]


def notification_of(repository, alert):
    return next(n for n in repository.all(SlaNotification) if n.alert_id == alert.id)


async def test_list_alerts_filters_by_status(repository, company_id, alert):
    service = AlertService(repository, FakeGateway())

    assert await service.list_alerts(company_id, status=AlertStatus.PENDING.value) == [alert]
    assert await service.list_alerts(company_id, status=AlertStatus.RESOLVED.value) == []
    assert await service.list_alerts(uuid4()) == []


async def test_acknowledge_records_user(repository, company_id, alert):
    user_id = uuid4()

    acknowledged = await AlertService(repository, FakeGateway()).acknowledge(company_id, alert.id, user_id)

    assert acknowledged.status == AlertStatus.ACKNOWLEDGED.value
    assert acknowledged.acknowledged_by == user_id
    assert acknowledged.acknowledged_at is not None


async def test_resolved_alert_cannot_be_acknowledged(repository, company_id, alert):
    service = AlertService(repository, FakeGateway())
    await service.resolve(company_id, alert.id)

    with pytest.raises(BusinessRuleError):
        await service.acknowledge(company_id, alert.id, uuid4())


async def test_resolve_is_idempotent(repository, company_id, alert):
    service = AlertService(repository, FakeGateway())

    first = await service.resolve(company_id, alert.id)
    resolved_at = first.resolved_at
    second = await service.resolve(company_id, alert.id)

    assert second.status == AlertStatus.RESOLVED.value
    assert second.resolved_at == resolved_at


async def test_alert_of_another_company_is_not_found(repository, alert):
    with pytest.raises(NotFoundError):
        await AlertService(repository, FakeGateway()).resolve(uuid4(), alert.id)


async def test_delivery_marks_notification_and_alert_sent(repository, alert):
    gateway = FakeGateway()
    notification = notification_of(repository, alert)

    result = await AlertService(repository, gateway).deliver_notification(notification.id)

    assert result["status"] == NotificationStatus.SENT.value
    assert notification.status == NotificationStatus.SENT.value
    assert notification.attempts == 1
    assert alert.status == AlertStatus.SENT.value
    message = gateway.sent[0]
    assert message.destinatario == "recrutador"
    assert message.canal == "email"
    assert message.contexto["alerta_id"] == str(alert.id)
    assert message.contexto["nivel_urgencia"] == alert.urgency_level


async def test_transient_failure_reraises_for_retry(repository, alert):
    gateway = FakeGateway(errors=[WebhookDeliveryError("timeout")])
    notification = notification_of(repository, alert)
    service = AlertService(repository, gateway)

    with pytest.raises(WebhookDeliveryError):
        await service.deliver_notification(notification.id)

    assert notification.status == NotificationStatus.PENDING.value
    assert notification.attempts == 1
    assert notification.last_error == "timeout"

    await service.deliver_notification(notification.id)
    assert notification.status == NotificationStatus.SENT.value
    assert notification.attempts == 2


async def test_final_attempt_marks_failed(repository, alert):
    gateway = FakeGateway(errors=[WebhookDeliveryError("timeout")])
    notification = notification_of(repository, alert)

    result = await AlertService(repository, gateway).deliver_notification(notification.id, final_attempt=True)

    assert result["status"] == NotificationStatus.FAILED.value
    assert notification.status == NotificationStatus.FAILED.value
    assert alert.status == AlertStatus.PENDING.value


async def test_rejected_notification_is_not_retried(repository, alert):
    gateway = FakeGateway(errors=[IntegrationError("Notification rejected by gateway: 400")])
    notification = notification_of(repository, alert)

    result = await AlertService(repository, gateway).deliver_notification(notification.id)

    assert result["status"] == NotificationStatus.FAILED.value
    assert notification.last_error.endswith("400")


async def test_notification_of_resolved_alert_is_dropped(repository, company_id, alert):
    gateway = FakeGateway()
    service = AlertService(repository, gateway)
    await service.resolve(company_id, alert.id)
    notification = notification_of(repository, alert)

    await service.deliver_notification(notification.id)

    assert notification.status == NotificationStatus.FAILED.value
    assert gateway.sent == []


async def test_already_sent_notification_is_skipped(repository, alert):
    gateway = FakeGateway()
    service = AlertService(repository, gateway)
    notification = notification_of(repository, alert)
    await service.deliver_notification(notification.id)

    result = await service.deliver_notification(notification.id)

    assert result["skipped"] is True
    assert len(gateway.sent) == 1


async def test_missing_notification(repository):
    with pytest.raises(NotFoundError):
        await AlertService(repository, FakeGateway()).deliver_notification(uuid4())


# Notification gateway HTTP contract


def gateway_answering(status_code, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json={})

    return NotificationGateway(url="https://notify.local/send", timeout=2, transport=httpx.MockTransport(handler))


async def test_gateway_posts_message():
    seen = []
    message = NotificationMessage(destinatario="gestor", canal="push", titulo="SLA vencido", mensagem="Ver candidato")

    result = await gateway_answering(202, seen).send(message)

    assert result == {"success": True, "status_code": 202}
    assert seen[0].method == "POST"
    assert json.loads(seen[0].content) == message.model_dump()


@pytest.mark.parametrize("status_code", [500, 503, 429, 408])
async def test_gateway_transient_statuses(status_code):
    with pytest.raises(WebhookDeliveryError):
        await gateway_answering(status_code).send(NotificationMessage(destinatario="rh", titulo="x"))


async def test_gateway_rejection_is_permanent():
    with pytest.raises(IntegrationError) as exc_info:
        await gateway_answering(400).send(NotificationMessage(destinatario="rh", titulo="x"))

    assert not isinstance(exc_info.value, WebhookDeliveryError)


async def test_unconfigured_gateway_simulates_delivery():
    result = await NotificationGateway(url="").send(NotificationMessage(destinatario="rh", titulo="x"))

    assert result == {"success": True, "simulated": True}
