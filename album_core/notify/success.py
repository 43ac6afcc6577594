from __future__ import annotations

from album_core.catalog.types import ChangeKind, ChangeRecord
from album_core.logging import get_logger
from album_core.notify.mail import MailMessage, MailTransport, render_html

logger = get_logger(__name__)

SUCCESS_SUBJECT = "New image Upload"


class SuccessNotifier:
    """Emails a confirmation for every inserted or modified catalog entry.

    Change feeds deliver at least once, so the same record may be mailed
    twice. Transport errors are logged and dropped.
    """

    def __init__(
        self,
        transport: MailTransport,
        *,
        sender: str,
        recipient: str,
        bucket: str,
        sender_name: str = "The Photo Album",
    ) -> None:
        self.transport = transport
        self.sender = sender
        self.recipient = recipient
        self.bucket = bucket
        self.sender_name = sender_name

    def build_message(self, filename: str) -> MailMessage:
        text = f"We received your Image. Its URL is gs://{self.bucket}/{filename}"
        return MailMessage(
            sender=self.sender,
            recipient=self.recipient,
            subject=SUCCESS_SUBJECT,
            html_body=render_html(
                sender_name=self.sender_name,
                sender_email=self.sender,
                message=text,
            ),
        )

    def on_change(self, record: ChangeRecord) -> None:
        if record.event_kind == ChangeKind.REMOVE:
            return
        if not record.key:
            return
        try:
            self.transport.send(self.build_message(record.key))
        except Exception as exc:
            logger.exception(
                "Failed to send upload confirmation",
                extra={
                    "object_key": record.key,
                    "event_kind": record.event_kind.value,
                    "error_message": str(exc),
                },
            )
            return
        logger.info(
            "Upload confirmation sent",
            extra={
                "object_key": record.key,
                "event_kind": record.event_kind.value,
                "recipient": self.recipient,
            },
        )
