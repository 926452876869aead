"""
Transactional email for social events (friend requests, challenge invites).

Delivery goes through a pluggable provider chosen by ``HABITZ_EMAIL_PROVIDER``:
``smtp``, ``resend`` or ``log`` (development and tests). Sending is always
best effort: a failed delivery is logged and reported as ``False``.
"""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from collections.abc import Callable
from email.message import EmailMessage

import aiosmtplib
import httpx
import structlog

from habitz.config import get_settings
from habitz.email.templates import challenge_invite, friend_request

logger = structlog.get_logger()

Rendered = tuple[str, str, str]

# name -> (render function, ordered (context key, default) pairs)
_TEMPLATES: dict[str, tuple[Callable[..., Rendered], tuple[tuple[str, str], ...]]] = {
    "friend_request": (friend_request, (("sender_name", "A friend"), ("confirm_url", ""))),
    "challenge_invite": (
        challenge_invite,
        (("creator_name", "A friend"), ("title", ""), ("challenge_url", "")),
    ),
}


class BaseEmailProvider(ABC):
    """A delivery channel. ``send`` returns True when the message was accepted."""

    name = "base"

    def __init__(self, from_address: str = "", from_name: str = "") -> None:
        self.from_address = from_address
        self.from_name = from_name

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_address}>"

    @abstractmethod
    async def deliver(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        """Hand the message to the channel; raise on failure."""

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        try:
            await self.deliver(to_email, subject, html_body, text_body)
        except Exception:
            logger.exception("email_send_failed", to=to_email, provider=self.name)
            return False
        logger.info("email_sent", to=to_email, subject=subject, provider=self.name)
        return True


class SMTPProvider(BaseEmailProvider):
    """Deliver over SMTP with aiosmtplib (STARTTLS unless disabled)."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        from_name: str,
        use_tls: bool = True,
    ) -> None:
        super().__init__(from_address, from_name)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls

    async def deliver(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")

        await aiosmtplib.send(
            message,
            hostname=self.host,
            port=self.port,
            username=self.username or None,
            password=self.password or None,
            start_tls=self.use_tls,
            tls_context=ssl.create_default_context() if self.use_tls else None,
        )


class ResendProvider(BaseEmailProvider):
    """Deliver through the Resend HTTP API."""

    name = "resend"
    API_URL = "https://api.resend.com/emails"

    def __init__(
        self,
        api_key: str,
        from_address: str,
        from_name: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(from_address, from_name)
        self.api_key = api_key
        self._transport = transport

    async def deliver(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        payload = {"from": self.sender, "to": [to_email], "subject": subject, "html": html_body, "text": text_body}
        async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
            response = await client.post(
                self.API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
            )
            response.raise_for_status()


class LogProvider(BaseEmailProvider):
    """Write the message to the log instead of sending it."""

    name = "log"

    async def deliver(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        logger.info("email_logged", to=to_email, subject=subject, body=text_body)


def _create_provider() -> BaseEmailProvider:
    settings = get_settings()
    provider_name = settings.email_provider.lower()

    if provider_name == "smtp":
        return SMTPProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
            use_tls=settings.smtp_use_tls,
        )
    if provider_name == "resend":
        return ResendProvider(
            api_key=settings.resend_api_key,
            from_address=settings.email_from_address,
            from_name=settings.email_from_name,
        )
    if provider_name == "log":
        return LogProvider(settings.email_from_address, settings.email_from_name)
    msg = f"Unsupported email provider: {provider_name}"
    raise ValueError(msg)


class EmailService:
    """Renders named templates and hands them to the configured provider."""

    def __init__(self, provider: BaseEmailProvider | None = None) -> None:
        self.provider = provider or _create_provider()

    async def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        return await self.provider.send(to, subject, html_body, text_body)

    async def send_template(self, to: str, template_name: str, context: dict[str, str]) -> bool:
        """
        Render ``template_name`` with ``context`` and send it to ``to``.

        Missing context keys fall back to the template's defaults.

        Raises:
            ValueError: If the template name is unknown.
        """
        entry = _TEMPLATES.get(template_name)
        if entry is None:
            msg = f"Unknown template: {template_name}"
            raise ValueError(msg)

        render, params = entry
        subject, html_body, text_body = render(*(context.get(key, default) for key, default in params))
        return await self.send_email(to, subject, html_body, text_body)


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get or create the email service singleton."""
    global _email_service  # noqa: PLW0603
    if _email_service is None:
        _email_service = EmailService()
    return _email_service


def reset_email_service() -> None:
    """Drop the singleton so the next call re-reads settings (tests)."""
    global _email_service  # noqa: PLW0603
    _email_service = None


async def send_template_safely(to: str | None, template_name: str, context: dict[str, str]) -> bool:
    """Best-effort send: a missing address or any failure returns False, never raises."""
    if not to:
        return False
    try:
        return await get_email_service().send_template(to, template_name, context)
    except Exception:
        logger.warning("email_dispatch_failed", to=to, template=template_name, exc_info=True)
        return False
