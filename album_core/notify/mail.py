from __future__ import annotations

import html
import threading
from dataclasses import dataclass
from typing import Protocol

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail, To

from album_core.config import Config
from album_core.errors import RecoverableError
from album_core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MailMessage:
    sender: str
    recipient: str
    subject: str
    html_body: str


class MailTransport(Protocol):
    def send(self, message: MailMessage) -> None:
        ...


class InMemoryMailTransport(MailTransport):
    """Outbox used by the local pipeline."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.outbox: list[MailMessage] = []

    def send(self, message: MailMessage) -> None:
        with self._lock:
            self.outbox.append(message)
        logger.info(
            "Mail captured",
            extra={"recipient": message.recipient, "status": "captured"},
        )


class SendGridMailTransport(MailTransport):
    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: SendGridAPIClient | None = None,
        sender_name: str | None = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise ValueError("SENDGRID_API_KEY is required for SendGrid mail")
            client = SendGridAPIClient(api_key=api_key)
        self.client = client
        self.sender_name = sender_name

    def send(self, message: MailMessage) -> None:
        mail = Mail(
            from_email=Email(message.sender, self.sender_name),
            to_emails=To(message.recipient),
            subject=message.subject,
            html_content=message.html_body,
        )
        try:
            response = self.client.send(mail)
        except Exception as exc:
            raise RecoverableError(f"Mail transport failed: {exc}") from exc
        status_code = getattr(response, "status_code", None)
        if status_code not in (200, 201, 202):
            raise RecoverableError(f"Mail transport returned status {status_code}")


def render_html(*, sender_name: str, sender_email: str, message: str) -> str:
    return (
        "<html>\n"
        "  <body>\n"
        "    <h2>Sent from: </h2>\n"
        "    <ul>\n"
        f'      <li style="font-size:18px"><b>{html.escape(sender_name)}</b></li>\n'
        f'      <li style="font-size:18px"><b>{html.escape(sender_email)}</b></li>\n'
        "    </ul>\n"
        f'    <p style="font-size:18px">{html.escape(message)}</p>\n'
        "  </body>\n"
        "</html>\n"
    )


def mail_transport_from_config(config: Config) -> SendGridMailTransport | None:
    if not config.sendgrid_api_key:
        return None
    return SendGridMailTransport(
        config.sendgrid_api_key,
        sender_name=config.mail_sender_name,
    )
