"""Outbound webhook delivery for stage automations."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from gentepro.config import get_settings
from gentepro.core.exceptions import IntegrationError, WebhookDeliveryError
from gentepro.core.secrets import SecretStore
from gentepro.pipeline.schemas.rules import WebhookHeader

logger = logging.getLogger(__name__)
settings = get_settings()

RETRYABLE_STATUS_CODES = {408, 425, 429}
ALLOWED_METHODS = {"POST", "PUT", "PATCH", "GET", "DELETE"}


class WebhookClient:
    """Calls automation webhooks with a bounded timeout.

    Header secrets are resolved from the secret store per call and are never
    logged or written back.
    """

    def __init__(
        self,
        secret_store: Optional[SecretStore] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_store = secret_store or SecretStore()
        self.timeout = timeout if timeout is not None else settings.webhook_timeout_seconds
        self.transport = transport

    def build_headers(self, headers: List[WebhookHeader]) -> Dict[str, str]:
        resolved: Dict[str, str] = {}
        for header in headers:
            if header.secret_ref:
                secret = self.secret_store.resolve(header.secret_ref)
                resolved[header.name] = f"{header.prefix}{secret}{header.suffix}"
            else:
                resolved[header.name] = header.value or ""
        resolved.setdefault("Content-Type", "application/json")
        return resolved

    async def deliver(
        self,
        url: str,
        method: str,
        payload: Dict[str, Any],
        headers: Optional[List[WebhookHeader]] = None,
    ) -> int:
        """Send the payload; returns the response status code on success."""
        method = (method or "POST").upper()
        if method not in ALLOWED_METHODS:
            raise IntegrationError(f"Unsupported webhook method: {method}")

        request_headers = self.build_headers(headers or [])
        logger.info(f"Calling webhook {method} {url}")

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), transport=self.transport
            ) as client:
                if method in ("GET", "DELETE"):
                    response = await client.request(method, url, headers=request_headers)
                else:
                    response = await client.request(method, url, headers=request_headers, json=payload)
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(
                f"Webhook {method} {url} failed: {type(e).__name__}",
                details={"url": url},
            ) from e

        if response.status_code >= 500 or response.status_code in RETRYABLE_STATUS_CODES:
            raise WebhookDeliveryError(
                f"Webhook {method} {url} returned {response.status_code}",
                details={"url": url, "status_code": response.status_code},
            )
        if response.status_code >= 400:
            raise IntegrationError(
                f"Webhook {method} {url} rejected with {response.status_code}",
                details={"url": url, "status_code": response.status_code},
            )

        logger.info(f"Webhook {method} {url} delivered ({response.status_code})")
        return response.status_code
