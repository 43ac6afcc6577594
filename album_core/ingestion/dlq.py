from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from album_core.logging import get_logger
from album_core.queue.types import DeliveryEnvelope, QueuePublisher, encode_payload

logger = get_logger(__name__)


@dataclass(frozen=True)
class DlqPayload:
    error_code: str
    error_message: str
    attempt_count: int
    message_id: str
    event: Any
    received_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DlqPayload":
        return cls(
            error_code=str(data.get("error_code") or "UNKNOWN"),
            error_message=str(data.get("error_message") or ""),
            attempt_count=_as_int(data.get("attempt_count")),
            message_id=str(data.get("message_id") or ""),
            event=data.get("event"),
            received_at=str(data.get("received_at") or ""),
        )


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def is_dlq_payload(data: Any) -> bool:
    return isinstance(data, Mapping) and "error_code" in data and "event" in data


class DeadLetterPublisher:
    def __init__(self, publisher: QueuePublisher, topic: str) -> None:
        self.publisher = publisher
        self.topic = topic

    def publish(
        self,
        *,
        envelope: DeliveryEnvelope,
        error_code: str,
        error_message: str,
    ) -> str:
        payload = DlqPayload(
            error_code=error_code,
            error_message=error_message,
            attempt_count=envelope.receive_count,
            message_id=envelope.message_id,
            event=envelope.payload,
            received_at=datetime.now(timezone.utc).isoformat(),
        )
        message_id = self.publisher.publish(
            topic=self.topic,
            data=encode_payload(payload.to_dict()),
            attributes={"error_code": error_code},
        )
        logger.info(
            "Published DLQ message",
            extra={
                "message_id": envelope.message_id,
                "error_code": error_code,
                "attempt_count": envelope.receive_count,
            },
        )
        return message_id
