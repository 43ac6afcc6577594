from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol


@dataclass(frozen=True)
class QueueMessage:
    data: bytes
    attributes: dict[str, str]
    message_id: str | None = None


@dataclass(frozen=True)
class DeliveryEnvelope:
    """A received message plus the number of times it has been delivered."""

    message_id: str
    receive_count: int
    payload: Any
    attributes: dict[str, str] = field(default_factory=dict)
    receipt: str | None = None


class QueuePublisher(Protocol):
    def publish(
        self,
        *,
        topic: str,
        data: bytes,
        attributes: Mapping[str, str] | None = None,
    ) -> str: ...


class MessageQueue(Protocol):
    async def receive(
        self,
        max_messages: int,
        wait_seconds: float = 0.0,
    ) -> list[DeliveryEnvelope]: ...

    async def ack(self, envelope: DeliveryEnvelope) -> None: ...

    async def nack(self, envelope: DeliveryEnvelope) -> None: ...


def decode_payload(data: bytes) -> Any:
    text = data.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def encode_payload(payload: Any) -> bytes:
    return json.dumps(payload, ensure_ascii=True).encode("utf-8")
