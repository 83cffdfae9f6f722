"""Notification gateway client.

Email, push and SMS providers live behind a single HTTP gateway; this module
only knows its request/response contract.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from gentepro.config import get_settings
from gentepro.core.exceptions import IntegrationError, WebhookDeliveryError

logger = logging.getLogger(__name__)
settings = get_settings()

RETRYABLE_STATUS_CODES = {408, 425, 429}


class NotificationMessage(BaseModel):
    """Payload accepted by the notification gateway."""

    destinatario: str = Field(..., description="Target role or user reference")
    canal: str = Field("email", description="email, push or sms")
    titulo: str
    mensagem: str = ""
    contexto: Dict[str, Any] = Field(default_factory=dict)


class NotificationGateway:
    """HTTP client for the notification gateway."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url if url is not None else settings.notification_gateway_url
        self.timeout = timeout if timeout is not None else settings.notification_timeout_seconds
        self.transport = transport

    def is_configured(self) -> bool:
        """Check if a gateway URL is set."""
        return bool(self.url)

    async def send(self, message: NotificationMessage) -> Dict[str, Any]:
        """
        Deliver one notification.

        Raises WebhookDeliveryError for transient failures (network, timeouts,
        5xx, 429) and IntegrationError for rejected requests.
        """
        if not self.is_configured():
            logger.warning(
                f"Notification gateway not configured. Simulating delivery to {message.destinatario}"
            )
            return {"success": True, "simulated": True}

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), transport=self.transport
            ) as client:
                response = await client.post(self.url, json=message.model_dump())
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(
                f"Notification gateway unreachable: {type(e).__name__}",
                details={"destinatario": message.destinatario},
            ) from e

        if response.status_code >= 500 or response.status_code in RETRYABLE_STATUS_CODES:
            raise WebhookDeliveryError(
                f"Notification gateway returned {response.status_code}",
                details={"status_code": response.status_code},
            )
        if response.status_code >= 400:
            raise IntegrationError(
                f"Notification rejected by gateway: {response.status_code}",
                details={"status_code": response.status_code},
            )

        logger.info(f"Notification sent to {message.destinatario} via {message.canal}")
        return {"success": True, "status_code": response.status_code}


# Singleton instance
_gateway: Optional[NotificationGateway] = None


def get_notification_gateway() -> NotificationGateway:
    """Get the notification gateway singleton."""
    global _gateway
    if _gateway is None:
        _gateway = NotificationGateway()
    return _gateway
