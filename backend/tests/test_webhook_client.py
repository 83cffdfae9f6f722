import logging

import httpx
import pytest

from gentepro.core.exceptions import IntegrationError, ValidationError, WebhookDeliveryError
from gentepro.core.secrets import SecretStore
from gentepro.pipeline.schemas.rules import WebhookHeader
from gentepro.services.webhook_client import WebhookClient


pytestmark = pytest.mark.unit

URL = "https://api.rh.com/admissao"


def client_with(handler, secrets=None):
    return WebhookClient(
        secret_store=SecretStore(secrets or {"RH_API_KEY": "rh-test-456"}),
        timeout=2,
        transport=httpx.MockTransport(handler),
    )


def test_header_template_conversion():
    header = WebhookHeader.from_template("Authorization", "Bearer ${API_KEY}")

    assert header.secret_ref == "API_KEY"
    assert header.prefix == "Bearer "
    assert header.suffix == ""

    plain = WebhookHeader.from_template("Content-Type", "application/json")
    assert plain.value == "application/json"
    assert plain.secret_ref is None


def test_header_with_two_secrets_is_rejected():
    with pytest.raises(ValueError):
        WebhookHeader.from_template("X-Auth", "${USER}:${PASSWORD}")


def test_header_needs_value_or_secret():
    with pytest.raises(ValueError):
        WebhookHeader(name="X-Empty")


def test_secret_store_resolves_and_rejects_missing_secret():
    store = SecretStore({"API_KEY": "abc"})

    assert store.resolve("API_KEY") == "abc"
    with pytest.raises(ValidationError):
        store.resolve("OTHER")


def test_secret_store_defaults_to_settings():
    assert SecretStore().resolve("API_KEY") == "sk-test-123"


async def test_secret_header_resolved_at_call_time_and_not_logged(caplog):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201)

    headers = [WebhookHeader.from_template("X-API-Key", "${RH_API_KEY}")]
    with caplog.at_level(logging.DEBUG):
        status = await client_with(handler).deliver(URL, "post", {"versao": 1}, headers)

    assert status == 201
    assert seen[0].headers["X-API-Key"] == "rh-test-456"
    assert seen[0].headers["Content-Type"] == "application/json"
    assert "rh-test-456" not in caplog.text
    assert URL in caplog.text


async def test_get_sends_no_body():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200)

    await client_with(handler).deliver(URL, "GET", {"versao": 1})

    assert seen[0].method == "GET"
    assert seen[0].content == b""


async def test_unsupported_method():
    with pytest.raises(IntegrationError):
        await client_with(lambda request: httpx.Response(200)).deliver(URL, "TRACE", {})


async def test_network_error_is_transient():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(WebhookDeliveryError) as exc_info:
        await client_with(handler).deliver(URL, "POST", {})

    assert exc_info.value.details == {"url": URL}


@pytest.mark.parametrize("status_code, transient", [(502, True), (429, True), (404, False), (422, False)])
async def test_status_code_classification(status_code, transient):
    with pytest.raises(IntegrationError) as exc_info:
        await client_with(lambda request: httpx.Response(status_code)).deliver(URL, "POST", {})

    assert isinstance(exc_info.value, WebhookDeliveryError) is transient
    assert exc_info.value.details["status_code"] == status_code
