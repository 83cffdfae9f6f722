"""SLA alert operations and notification delivery."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from gentepro.core.exceptions import BusinessRuleError, IntegrationError, NotFoundError, WebhookDeliveryError
from gentepro.pipeline.enums import AlertStatus, NotificationStatus
from gentepro.pipeline.models import SlaAlert
from gentepro.pipeline.repository import PipelineRepository
from gentepro.services.notification_gateway import (
    NotificationGateway,
    NotificationMessage,
    get_notification_gateway,
)

logger = logging.getLogger(__name__)


class AlertService:
    """List, acknowledge and resolve alerts; deliver their notifications."""

    def __init__(self, repository: PipelineRepository, gateway: Optional[NotificationGateway] = None):
        self.repository = repository
        self.gateway = gateway or get_notification_gateway()

    async def list_alerts(
        self,
        company_id: UUID,
        status: Optional[str] = None,
        urgency_level: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[SlaAlert]:
        return await self.repository.list_alerts(company_id, status, urgency_level, limit, offset)

    async def _get_company_alert(self, company_id: UUID, alert_id: UUID) -> SlaAlert:
        alert = await self.repository.get_alert(alert_id)
        if alert is None or alert.company_id != company_id:
            raise NotFoundError(f"Alert {alert_id} not found")
        return alert

    async def acknowledge(self, company_id: UUID, alert_id: UUID, user_id: UUID) -> SlaAlert:
        alert = await self._get_company_alert(company_id, alert_id)
        if alert.status == AlertStatus.RESOLVED.value:
            raise BusinessRuleError("Resolved alerts cannot be acknowledged")
        return await self.repository.save(
            alert,
            status=AlertStatus.ACKNOWLEDGED.value,
            acknowledged_at=datetime.now(timezone.utc),
            acknowledged_by=user_id,
        )

    async def resolve(self, company_id: UUID, alert_id: UUID) -> SlaAlert:
        alert = await self._get_company_alert(company_id, alert_id)
        if alert.status == AlertStatus.RESOLVED.value:
            return alert
        return await self.repository.save(
            alert,
            status=AlertStatus.RESOLVED.value,
            resolved_at=datetime.now(timezone.utc),
        )

    async def deliver_notification(self, notification_id: UUID, final_attempt: bool = False) -> Dict[str, Any]:
        """
        Send one SLA notification through the gateway.

        Transient failures bump the attempt counter and re-raise
        WebhookDeliveryError so the caller can retry, unless this is the final
        attempt, in which case the notification is marked failed.
        """
        notification = await self.repository.get_notification(notification_id)
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        if notification.status != NotificationStatus.PENDING.value:
            return {"notification_id": str(notification_id), "status": notification.status, "skipped": True}

        alert = await self.repository.get_alert(notification.alert_id)
        if alert is None or alert.status == AlertStatus.RESOLVED.value:
            await self.repository.save(notification, status=NotificationStatus.FAILED.value, last_error="Alert resolved")
            return {"notification_id": str(notification_id), "status": NotificationStatus.FAILED.value}

        message = NotificationMessage(
            destinatario=notification.target,
            canal=notification.channel,
            titulo=notification.title,
            mensagem=notification.message or "",
            contexto={
                "alerta_id": str(alert.id),
                "sla_id": str(alert.sla_id),
                "candidato_etapa_id": str(alert.assignment_id),
                "nivel_urgencia": alert.urgency_level,
                "tipo": alert.kind,
            },
        )

        attempts = notification.attempts + 1
        try:
            await self.gateway.send(message)
        except WebhookDeliveryError as e:
            if final_attempt:
                await self.repository.save(
                    notification, attempts=attempts, status=NotificationStatus.FAILED.value, last_error=e.message
                )
                logger.error(f"SLA notification {notification_id} failed after {attempts} attempts: {e.message}")
                return {"notification_id": str(notification_id), "status": NotificationStatus.FAILED.value}
            await self.repository.save(notification, attempts=attempts, last_error=e.message)
            raise
        except IntegrationError as e:
            await self.repository.save(
                notification, attempts=attempts, status=NotificationStatus.FAILED.value, last_error=e.message
            )
            logger.error(f"SLA notification {notification_id} rejected: {e.message}")
            return {"notification_id": str(notification_id), "status": NotificationStatus.FAILED.value}

        now = datetime.now(timezone.utc)
        await self.repository.save(
            notification, attempts=attempts, status=NotificationStatus.SENT.value, sent_at=now, last_error=None
        )
        if alert.status == AlertStatus.PENDING.value:
            await self.repository.save(alert, status=AlertStatus.SENT.value, sent_at=now)

        return {"notification_id": str(notification_id), "status": NotificationStatus.SENT.value}
