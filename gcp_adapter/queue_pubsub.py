from __future__ import annotations

import asyncio
import base64
import json
from dataclasses import dataclass
from typing import Any, Mapping

from google.api_core import exceptions as google_exceptions
from google.cloud import pubsub_v1

from album_core.errors import RecoverableError
from album_core.queue.types import (
    DeliveryEnvelope,
    MessageQueue,
    QueueMessage,
    QueuePublisher,
    decode_payload,
)


@dataclass(frozen=True)
class PubSubPushEnvelope:
    message: QueueMessage
    subscription: str | None
    delivery_attempt: int

    def to_delivery_envelope(self) -> DeliveryEnvelope:
        return DeliveryEnvelope(
            message_id=self.message.message_id or "",
            receive_count=self.delivery_attempt,
            payload=decode_payload(self.message.data),
            attributes=dict(self.message.attributes),
        )


class PubSubPublisher(QueuePublisher):
    def __init__(self, client: pubsub_v1.PublisherClient | None = None) -> None:
        self.client = client or pubsub_v1.PublisherClient()

    def publish(
        self,
        *,
        topic: str,
        data: bytes,
        attributes: Mapping[str, str] | None = None,
    ) -> str:
        try:
            future = self.client.publish(topic, data, **dict(attributes or {}))
            return future.result(timeout=30)
        except Exception as exc:
            raise RecoverableError(f"Pub/Sub publish failed: {exc}") from exc

    def publish_json(
        self,
        *,
        topic: str,
        payload: dict[str, Any],
        attributes: Mapping[str, str] | None = None,
    ) -> str:
        data = json.dumps(payload, ensure_ascii=True).encode("utf-8")
        return self.publish(topic=topic, data=data, attributes=attributes)


def parse_pubsub_push(body: dict[str, Any]) -> PubSubPushEnvelope:
    message = body.get("message")
    if not isinstance(message, dict):
        raise ValueError("Invalid Pub/Sub push payload: missing message")

    raw_data = message.get("data", "")
    if not isinstance(raw_data, str):
        raise ValueError("Invalid Pub/Sub push payload: data must be base64 string")
    try:
        decoded = base64.b64decode(raw_data, validate=True)
    except ValueError as exc:
        raise ValueError("Invalid Pub/Sub push payload: data not base64") from exc

    attributes = message.get("attributes") or {}
    if not isinstance(attributes, dict):
        raise ValueError("Invalid Pub/Sub push payload: attributes must be object")

    attempt = body.get("deliveryAttempt")
    try:
        delivery_attempt = max(1, int(attempt)) if attempt is not None else 1
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid Pub/Sub push payload: bad deliveryAttempt") from exc

    msg = QueueMessage(
        data=decoded,
        attributes={str(k): str(v) for k, v in attributes.items()},
        message_id=message.get("messageId") or message.get("message_id"),
    )
    return PubSubPushEnvelope(
        message=msg,
        subscription=body.get("subscription"),
        delivery_attempt=delivery_attempt,
    )


class PubSubPullQueue(MessageQueue):
    """Pull subscription exposed as a receive/ack/nack queue.

    ``delivery_attempt`` is only reported when the subscription carries a
    dead-letter policy; messages without it count as first deliveries.
    """

    def __init__(
        self,
        subscription: str,
        client: pubsub_v1.SubscriberClient | None = None,
    ) -> None:
        self.subscription = subscription
        self.client = client or pubsub_v1.SubscriberClient()

    async def receive(
        self,
        max_messages: int,
        wait_seconds: float = 0.0,
    ) -> list[DeliveryEnvelope]:
        return await asyncio.to_thread(self._pull, max_messages, wait_seconds)

    def _pull(self, max_messages: int, wait_seconds: float) -> list[DeliveryEnvelope]:
        try:
            response = self.client.pull(
                request={"subscription": self.subscription, "max_messages": max_messages},
                timeout=max(1.0, wait_seconds),
            )
        except google_exceptions.DeadlineExceeded:
            return []
        except google_exceptions.GoogleAPICallError as exc:
            raise RecoverableError(f"Pub/Sub pull failed: {exc}") from exc

        envelopes: list[DeliveryEnvelope] = []
        for received in response.received_messages:
            envelopes.append(
                DeliveryEnvelope(
                    message_id=received.message.message_id,
                    receive_count=max(1, int(received.delivery_attempt or 0)),
                    payload=decode_payload(received.message.data),
                    attributes=dict(received.message.attributes),
                    receipt=received.ack_id,
                )
            )
        return envelopes

    async def ack(self, envelope: DeliveryEnvelope) -> None:
        if envelope.receipt is None:
            return
        await asyncio.to_thread(
            self.client.acknowledge,
            request={"subscription": self.subscription, "ack_ids": [envelope.receipt]},
        )

    async def nack(self, envelope: DeliveryEnvelope) -> None:
        if envelope.receipt is None:
            return
        await asyncio.to_thread(
            self.client.modify_ack_deadline,
            request={
                "subscription": self.subscription,
                "ack_ids": [envelope.receipt],
                "ack_deadline_seconds": 0,
            },
        )
