from album_core.queue.memory import InMemoryPublisher, InMemoryQueue
from album_core.queue.types import (
    DeliveryEnvelope,
    MessageQueue,
    QueueMessage,
    QueuePublisher,
    decode_payload,
    encode_payload,
)

__all__ = [
    "DeliveryEnvelope",
    "InMemoryPublisher",
    "InMemoryQueue",
    "MessageQueue",
    "QueueMessage",
    "QueuePublisher",
    "decode_payload",
    "encode_payload",
]
