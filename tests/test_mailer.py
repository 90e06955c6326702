"""Unit tests for the Resend email sender.

Run with: pytest tests/test_mailer.py -v
"""

import json

import httpx
import pytest

from storefront.errors import ConfigurationError, ProviderError
from storefront.mailer import RenderedEmail, ResendEmailSender

API_URL = "https://api.resend.test/emails"
MESSAGE = RenderedEmail(subject="Order confirmed", html="<p>Thanks</p>", text="Thanks")


def resend(handler, api_key="re_test_key") -> ResendEmailSender:
    return ResendEmailSender(
        api_key=api_key,
        sender="orders@example.com",
        api_url=API_URL,
        transport=httpx.MockTransport(handler),
    )


def test_posts_message_and_returns_id():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "email_123"})

    message_id = resend(handler).send("ada@example.com", MESSAGE, bcc=["hello@example.com"])

    assert message_id == "email_123"
    [request] = requests
    assert str(request.url) == API_URL
    assert request.headers["Authorization"] == "Bearer re_test_key"
    body = json.loads(request.content)
    assert body["from"] == "orders@example.com"
    assert body["to"] == ["ada@example.com"]
    assert body["bcc"] == ["hello@example.com"]
    assert body["text"] == "Thanks"


def test_no_bcc_field_without_recipients():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "email_124"})

    resend(handler).send("ada@example.com", MESSAGE)

    assert "bcc" not in bodies[0]


def test_server_error_becomes_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "internal"})

    with pytest.raises(ProviderError):
        resend(handler).send("ada@example.com", MESSAGE)


def test_network_error_becomes_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderError):
        resend(handler).send("ada@example.com", MESSAGE)


def test_missing_api_key():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(ConfigurationError):
        resend(handler, api_key=None).send("ada@example.com", MESSAGE)
