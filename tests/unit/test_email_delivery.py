"""Email template and provider tests."""

import json

import httpx
import pytest

from habitz.email import service as email_service
from habitz.email.service import EmailService, LogProvider, ResendProvider, send_template_safely
from habitz.email.templates import challenge_invite, friend_request


class TestTemplates:
    """Templates return (subject, html, text)."""

    def test_friend_request(self):
        subject, html, text = friend_request("Alice", "https://app/confirm-friend?requestId=7")
        assert "Alice" in subject
        assert "requestId=7" in html
        assert "requestId=7" in text

    def test_challenge_invite_escapes_html(self):
        _, html, text = challenge_invite("<b>Bob</b>", "Run & Done", "https://app/challenges/1")
        assert "<b>Bob</b>" not in html
        assert "&lt;b&gt;Bob&lt;/b&gt;" in html
        assert "Run & Done" in text


class TestProviders:
    """Delivery providers."""

    @pytest.mark.asyncio
    async def test_resend_posts_message(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "msg_1"})

        provider = ResendProvider("re_key", "noreply@habitz.app", "Habitz", transport=httpx.MockTransport(handler))
        assert await provider.send("bob@example.com", "Hi", "<p>Hi</p>", "Hi") is True
        assert captured["auth"] == "Bearer re_key"
        assert captured["body"]["to"] == ["bob@example.com"]

    @pytest.mark.asyncio
    async def test_resend_failure_returns_false(self):
        provider = ResendProvider(
            "re_key", "noreply@habitz.app", "Habitz", transport=httpx.MockTransport(lambda r: httpx.Response(500))
        )
        assert await provider.send("bob@example.com", "Hi", "<p>Hi</p>", "Hi") is False

    @pytest.mark.asyncio
    async def test_unknown_template(self):
        service = EmailService(provider=LogProvider())
        with pytest.raises(ValueError):
            await service.send_template("bob@example.com", "birthday", {})


class TestSendTemplateSafely:
    """Best-effort delivery never raises."""

    @pytest.mark.asyncio
    async def test_missing_address(self):
        assert await send_template_safely(None, "friend_request", {}) is False

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self, monkeypatch):
        monkeypatch.setattr(email_service, "_email_service", EmailService(provider=LogProvider()))
        assert await send_template_safely("bob@example.com", "birthday", {}) is False
        assert await send_template_safely("bob@example.com", "friend_request", {"sender_name": "Al"}) is True
