from __future__ import annotations

from typing import Any, Iterable

from album_core.catalog.recorder import DEFAULT_ALLOWED_EXTENSIONS
from album_core.ingestion.consumer import BatchResult, ItemOutcome
from album_core.ingestion.dlq import DlqPayload, is_dlq_payload
from album_core.logging import get_logger
from album_core.notify.mail import MailMessage, MailTransport, render_html
from album_core.queue.types import DeliveryEnvelope

logger = get_logger(__name__)

FAILURE_SUBJECT = "Image upload rejected"


def extract_filename(payload: Any) -> str | None:
    if is_dlq_payload(payload):
        payload = DlqPayload.from_dict(payload).event
    if isinstance(payload, dict):
        key = payload.get("objectKey") or payload.get("filename")
        if isinstance(key, str) and key:
            return key
    return None


def _describe_extensions(extensions: tuple[str, ...]) -> str:
    if len(extensions) == 1:
        return extensions[0]
    return ", ".join(extensions[:-1]) + f" and {extensions[-1]}"


class FailureNotifier:
    """Last stop for dead-lettered uploads. Never raises, never re-queues."""

    def __init__(
        self,
        transport: MailTransport | None = None,
        *,
        sender: str | None = None,
        recipient: str | None = None,
        sender_name: str = "The Photo Album",
        allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS,
    ) -> None:
        self.transport = transport
        self.sender = sender
        self.recipient = recipient
        self.sender_name = sender_name
        self.allowed_extensions = allowed_extensions

    def handle(self, envelope: DeliveryEnvelope) -> str | None:
        """Log and mail one dead-lettered message; returns its filename if known."""
        filename = None
        try:
            filename = extract_filename(envelope.payload)
            self._notify(envelope, filename)
        except Exception as exc:
            logger.exception(
                "Failure notifier error",
                extra={"message_id": envelope.message_id, "error_message": str(exc)},
            )
        return filename

    def _notify(self, envelope: DeliveryEnvelope, filename: str | None) -> None:
        error_code = None
        if is_dlq_payload(envelope.payload):
            error_code = DlqPayload.from_dict(envelope.payload).error_code
        logger.warning(
            "Upload dead-lettered",
            extra={
                "message_id": envelope.message_id,
                "object_key": filename,
                "error_code": error_code,
                "attempt_count": envelope.receive_count,
            },
        )
        if self.transport is None or not self.sender or not self.recipient:
            return
        text = f"We could not add {filename or 'your upload'} to the album."
        if error_code == "INVALID_FILE_TYPE" and self.allowed_extensions:
            allowed = _describe_extensions(self.allowed_extensions)
            text += f" Only {allowed} images are accepted."
        self.transport.send(
            MailMessage(
                sender=self.sender,
                recipient=self.recipient,
                subject=FAILURE_SUBJECT,
                html_body=render_html(
                    sender_name=self.sender_name,
                    sender_email=self.sender,
                    message=text,
                ),
            )
        )


class DeadLetterConsumer:
    """Batch adapter so the dead-letter queue can run on the consumer harness."""

    def __init__(self, notifier: FailureNotifier) -> None:
        self.notifier = notifier

    def process_batch(self, envelopes: Iterable[DeliveryEnvelope]) -> BatchResult:
        outcomes = []
        for envelope in envelopes:
            filename = self.notifier.handle(envelope)
            outcomes.append(
                ItemOutcome(
                    message_id=envelope.message_id,
                    status="ok",
                    object_key=filename,
                )
            )
        return BatchResult(outcomes=tuple(outcomes))
