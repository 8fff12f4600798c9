"""Tests for SendGrid email sending."""

import json

import httpx

from registry.core.email import (
    send_claim_confirmation_email,
    send_email,
    send_verification_email,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSendEmail:
    """Tests for the SendGrid call."""

    async def test_posts_message(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202)

        result = await send_email(
            to_email="jane@example.com",
            subject="Hello",
            html_body="<p>Hi</p>",
            text_body="Hi",
            client=_client(handler),
        )

        assert result.success is True
        request = requests[0]
        assert str(request.url) == "https://api.sendgrid.com/v3/mail/send"
        body = json.loads(request.content)
        assert body["personalizations"] == [{"to": [{"email": "jane@example.com"}]}]
        assert body["subject"] == "Hello"
        assert [part["type"] for part in body["content"]] == ["text/plain", "text/html"]

    async def test_rejection_is_reported_not_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="unauthorized")

        result = await send_email(
            to_email="jane@example.com",
            subject="Hello",
            html_body="<p>Hi</p>",
            text_body="Hi",
            client=_client(handler),
        )

        assert result.success is False
        assert result.error == "unauthorized"

    async def test_network_failure_is_reported_not_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = await send_email(
            to_email="jane@example.com",
            subject="Hello",
            html_body="<p>Hi</p>",
            text_body="Hi",
            client=_client(handler),
        )

        assert result.success is False
        assert "refused" in result.error


class TestTemplates:
    """Tests for the verification and confirmation messages."""

    async def test_verification_email_contains_link(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(202)

        await send_verification_email(
            to_email="jane@example.com",
            item_name="Crib <Deluxe>",
            verification_link="https://registry.example/verify?token=abc",
            client=_client(handler),
        )

        body = bodies[0]
        assert body["subject"] == "Verify your baby registry claim"
        text, html = (part["value"] for part in body["content"])
        assert "https://registry.example/verify?token=abc" in text
        assert "24 hours" in text
        assert "Crib &lt;Deluxe&gt;" in html

    async def test_confirmation_email(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(202)

        result = await send_claim_confirmation_email(
            to_email="jane@example.com",
            item_name="Crib",
            client=_client(handler),
        )

        assert result.success is True
        assert bodies[0]["subject"] == "Your baby registry claim has been confirmed"
