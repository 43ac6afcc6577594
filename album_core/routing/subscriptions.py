from __future__ import annotations

from typing import Callable

from album_core.ingestion.storage_event import EventKind, UploadEvent
from album_core.queue.types import QueuePublisher, encode_payload
from album_core.routing.types import FilterPolicy, FilterScope, Subscription, TopicMessage

METADATA_TYPES = ("Caption", "Date", "Photographer")

INGEST_POLICY = FilterPolicy(
    fields={"eventName": (EventKind.CREATED.value, EventKind.REMOVED.value)},
    scope=FilterScope.BODY,
)

METADATA_POLICY = FilterPolicy(
    fields={"metadata_type": METADATA_TYPES},
    scope=FilterScope.ATTRIBUTES,
)


def upload_message(event: UploadEvent) -> TopicMessage:
    return TopicMessage(body=event.to_dict(), attributes={})


def queue_subscription(
    name: str,
    *,
    publisher: QueuePublisher,
    topic: str,
    policy: FilterPolicy | None,
) -> Subscription:
    """Subscription that forwards matching messages onto a queue topic."""

    def _deliver(message: TopicMessage) -> str:
        return publisher.publish(
            topic=topic,
            data=encode_payload(message.body),
            attributes=message.attributes,
        )

    return Subscription(name=name, deliver=_deliver, policy=policy)


def ingest_subscription(publisher: QueuePublisher, topic: str) -> Subscription:
    return queue_subscription(
        "ingest",
        publisher=publisher,
        topic=topic,
        policy=INGEST_POLICY,
    )


def metadata_subscription(handler: Callable[[TopicMessage], object]) -> Subscription:
    return Subscription(name="metadata", deliver=handler, policy=METADATA_POLICY)
