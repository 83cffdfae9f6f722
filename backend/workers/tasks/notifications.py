"""Notification Tasks - Background jobs for delivering SLA alert notifications."""

import logging
from typing import Any, Dict
from uuid import UUID

from arq import Retry

from gentepro.config import get_settings
from gentepro.core.database import async_session_maker
from gentepro.core.exceptions import NotFoundError, WebhookDeliveryError
from gentepro.pipeline.repository import SqlAlchemyPipelineRepository
from gentepro.pipeline.services.alert_service import AlertService
from gentepro.pipeline.services.automation_engine import exponential_backoff

logger = logging.getLogger(__name__)
settings = get_settings()


async def send_sla_notification(ctx: Dict[str, Any], notification_id: str) -> Dict[str, Any]:
    """
    Background task to deliver one SLA notification through the notification gateway.

    Args:
        ctx: ARQ context
        notification_id: UUID of the SLA notification

    Returns:
        Dict with delivery status
    """
    job_try = ctx.get("job_try", 1)
    logger.info(f"Sending SLA notification {notification_id} (try {job_try})")

    async with async_session_maker() as session:
        service = AlertService(SqlAlchemyPipelineRepository(session))
        try:
            result = await service.deliver_notification(
                UUID(notification_id),
                final_attempt=job_try >= settings.notification_max_tries,
            )
        except NotFoundError as e:
            logger.error(f"SLA notification {notification_id} not found: {e.message}")
            return {"notification_id": notification_id, "status": "missing"}
        except WebhookDeliveryError as e:
            await session.commit()
            defer = exponential_backoff(
                job_try, settings.webhook_backoff_base_seconds, settings.webhook_backoff_max_seconds
            )
            logger.warning(f"SLA notification {notification_id} failed, retrying in {defer}s: {e.message}")
            raise Retry(defer=defer) from e
        await session.commit()

    return result
