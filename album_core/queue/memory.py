from __future__ import annotations

import asyncio
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Mapping

from album_core.queue.types import DeliveryEnvelope, QueuePublisher, decode_payload


@dataclass
class _StoredMessage:
    message_id: str
    data: bytes
    attributes: dict[str, str]
    receive_count: int = 0


@dataclass
class InMemoryQueue:
    name: str
    poll_interval_s: float = 0.01
    _visible: deque[_StoredMessage] = field(default_factory=deque)
    _in_flight: dict[str, _StoredMessage] = field(default_factory=dict)

    def send(self, data: bytes, attributes: Mapping[str, str] | None = None) -> str:
        message_id = str(uuid.uuid4())
        self._visible.append(
            _StoredMessage(
                message_id=message_id,
                data=data,
                attributes=dict(attributes or {}),
            )
        )
        return message_id

    @property
    def visible_count(self) -> int:
        return len(self._visible)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def peek(self) -> list[DeliveryEnvelope]:
        return [
            DeliveryEnvelope(
                message_id=stored.message_id,
                receive_count=stored.receive_count,
                payload=decode_payload(stored.data),
                attributes=dict(stored.attributes),
            )
            for stored in self._visible
        ]

    async def receive(
        self,
        max_messages: int,
        wait_seconds: float = 0.0,
    ) -> list[DeliveryEnvelope]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(0.0, wait_seconds)
        while len(self._visible) < max_messages:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_interval_s, remaining))

        batch: list[DeliveryEnvelope] = []
        while self._visible and len(batch) < max_messages:
            stored = self._visible.popleft()
            stored.receive_count += 1
            receipt = str(uuid.uuid4())
            self._in_flight[receipt] = stored
            batch.append(
                DeliveryEnvelope(
                    message_id=stored.message_id,
                    receive_count=stored.receive_count,
                    payload=decode_payload(stored.data),
                    attributes=dict(stored.attributes),
                    receipt=receipt,
                )
            )
        return batch

    async def ack(self, envelope: DeliveryEnvelope) -> None:
        if envelope.receipt is not None:
            self._in_flight.pop(envelope.receipt, None)

    async def nack(self, envelope: DeliveryEnvelope) -> None:
        if envelope.receipt is None:
            return
        stored = self._in_flight.pop(envelope.receipt, None)
        if stored is not None:
            self._visible.append(stored)


class InMemoryPublisher(QueuePublisher):
    """Publishes to in-memory queues addressed by topic name."""

    def __init__(self, queues: Mapping[str, InMemoryQueue]) -> None:
        self.queues = dict(queues)

    def publish(
        self,
        *,
        topic: str,
        data: bytes,
        attributes: Mapping[str, str] | None = None,
    ) -> str:
        queue = self.queues.get(topic)
        if queue is None:
            raise KeyError(f"Unknown topic: {topic}")
        return queue.send(data, attributes)
