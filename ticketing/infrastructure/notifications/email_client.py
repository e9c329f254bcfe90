# ticketing/infrastructure/notifications/email_client.py

import logging
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Protocol

import aiosmtplib

from ticketing.config import Settings
from ticketing.domain.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailClient(Protocol):
    @property
    def configured(self) -> bool:
        ...

    async def verify(self) -> None:
        ...

    async def send(self, to: str, subject: str, html: str) -> str:
        ...


class SmtpEmailClient:
    """SMTP delivery over STARTTLS. One connection per message."""

    def __init__(
        self,
        hostname: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        timeout: float = 30.0,
    ):
        self.hostname = hostname
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpEmailClient":
        return cls(
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.mail_from,
            timeout=settings.smtp_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    async def verify(self) -> None:
        smtp = aiosmtplib.SMTP(
            hostname=self.hostname,
            port=self.port,
            start_tls=True,
            timeout=self.timeout,
        )
        try:
            async with smtp:
                await smtp.login(self.username, self.password)
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"Email transport verification failed: {exc}") from exc

    async def send(self, to: str, subject: str, html: str) -> str:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content("This message requires an HTML-capable email client.")
        message.add_alternative(html, subtype="html")

        try:
            await aiosmtplib.send(
                message,
                hostname=self.hostname,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=True,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"Could not deliver email to {to}: {exc}") from exc

        logger.debug("Email %s delivered to %s", message["Message-ID"], to)
        return message["Message-ID"]
