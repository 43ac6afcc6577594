from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping

from album_core.catalog.metadata import MetadataUpdater, metadata_message
from album_core.catalog.recorder import DEFAULT_ALLOWED_EXTENSIONS, CatalogRecorder
from album_core.catalog.store import InMemoryCatalogStore
from album_core.catalog.types import MetadataEvent
from album_core.config import Config
from album_core.ingestion.consumer import IngestConsumer
from album_core.ingestion.dlq import DeadLetterPublisher
from album_core.ingestion.harness import HarnessSettings, HarnessStats, QueueConsumerHarness
from album_core.ingestion.retry import RetryPolicy
from album_core.ingestion.storage_event import parse_storage_notification
from album_core.logging import get_logger
from album_core.notify.failure import DeadLetterConsumer, FailureNotifier
from album_core.notify.mail import InMemoryMailTransport
from album_core.notify.success import SuccessNotifier
from album_core.queue.memory import InMemoryPublisher, InMemoryQueue
from album_core.routing.router import TopicRouter
from album_core.routing.subscriptions import (
    ingest_subscription,
    metadata_subscription,
    upload_message,
)
from album_core.routing.types import DeliveryResult
from album_core.storage.object_store import FsspecObjectStore

logger = get_logger(__name__)

INGEST_TOPIC = "ingest"
DLQ_TOPIC = "ingest-dlq"

DEFAULT_SENDER = "album@example.com"
DEFAULT_RECIPIENT = "owner@example.com"


@dataclass
class LocalPipeline:
    """The whole event flow wired in-process with in-memory queues."""

    bucket: str
    objects: FsspecObjectStore
    catalog: InMemoryCatalogStore
    mail: InMemoryMailTransport
    ingest_queue: InMemoryQueue
    dlq_queue: InMemoryQueue
    router: TopicRouter
    recorder: CatalogRecorder
    updater: MetadataUpdater
    ingest_harness: QueueConsumerHarness
    dlq_harness: QueueConsumerHarness
    success_notifier: SuccessNotifier
    failure_notifier: FailureNotifier

    def publish_notification(
        self,
        payload: Any,
        attributes: Mapping[str, str] | None = None,
    ) -> list[DeliveryResult]:
        results: list[DeliveryResult] = []
        for event in parse_storage_notification(payload, attributes):
            results.extend(self.router.publish(upload_message(event)))
        return results

    def upload(self, key: str, data: bytes = b"") -> list[DeliveryResult]:
        self.objects.put(self.bucket, key, data)
        return self.publish_notification(
            _cloudevent("google.cloud.storage.object.v1.finalized", self.bucket, key)
        )

    def remove(self, key: str) -> list[DeliveryResult]:
        self.objects.delete(self.bucket, key)
        return self.publish_notification(
            _cloudevent("google.cloud.storage.object.v1.deleted", self.bucket, key)
        )

    def annotate(
        self,
        event: MetadataEvent,
        metadata_type: str = "Caption",
    ) -> list[DeliveryResult]:
        return self.router.publish(metadata_message(event, metadata_type))

    async def settle(self) -> HarnessStats:
        """Drain the ingest queue, then the dead-letter queue."""
        stats = await self.ingest_harness.drain()
        stats.merge(await self.dlq_harness.drain())
        return stats


def _cloudevent(event_type: str, bucket: str, key: str) -> dict[str, Any]:
    return {
        "specversion": "1.0",
        "id": str(uuid.uuid4()),
        "type": event_type,
        "source": f"//storage.googleapis.com/projects/_/buckets/{bucket}",
        "data": {"bucket": bucket, "name": key},
    }


def build_local_pipeline(
    *,
    bucket: str = "album-uploads",
    object_store_uri: str | None = None,
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS,
    max_receive_count: int = 1,
    settings: HarnessSettings | None = None,
    sender: str = DEFAULT_SENDER,
    recipient: str = DEFAULT_RECIPIENT,
    sender_name: str = "The Photo Album",
    failure_mail: bool = False,
    clock: Callable[[], datetime] | None = None,
) -> LocalPipeline:
    objects = FsspecObjectStore(object_store_uri or f"memory://album-{uuid.uuid4().hex}")
    catalog = InMemoryCatalogStore()
    mail = InMemoryMailTransport()

    success_notifier = SuccessNotifier(
        mail,
        sender=sender,
        recipient=recipient,
        bucket=bucket,
        sender_name=sender_name,
    )
    catalog.subscribe(success_notifier.on_change)
    failure_notifier = FailureNotifier(
        mail if failure_mail else None,
        sender=sender,
        recipient=recipient,
        sender_name=sender_name,
        allowed_extensions=allowed_extensions,
    )

    ingest_queue = InMemoryQueue(INGEST_TOPIC)
    dlq_queue = InMemoryQueue(DLQ_TOPIC)
    publisher = InMemoryPublisher({INGEST_TOPIC: ingest_queue, DLQ_TOPIC: dlq_queue})

    recorder = CatalogRecorder(catalog, objects, allowed_extensions)
    updater = MetadataUpdater(catalog, clock=clock) if clock else MetadataUpdater(catalog)
    router = TopicRouter(
        [
            ingest_subscription(publisher, INGEST_TOPIC),
            metadata_subscription(updater.handle_message),
        ]
    )

    harness_settings = settings or HarnessSettings(batch_window_s=0.0)
    ingest_harness = QueueConsumerHarness(
        queue=ingest_queue,
        consumer=IngestConsumer(recorder),
        policy=RetryPolicy(max_receive_count=max_receive_count),
        dead_letter=DeadLetterPublisher(publisher, DLQ_TOPIC),
        settings=harness_settings,
        name="ingest",
    )
    dlq_harness = QueueConsumerHarness(
        queue=dlq_queue,
        consumer=DeadLetterConsumer(failure_notifier),
        policy=RetryPolicy(max_receive_count=1),
        settings=harness_settings,
        name="dead-letter",
    )

    return LocalPipeline(
        bucket=bucket,
        objects=objects,
        catalog=catalog,
        mail=mail,
        ingest_queue=ingest_queue,
        dlq_queue=dlq_queue,
        router=router,
        recorder=recorder,
        updater=updater,
        ingest_harness=ingest_harness,
        dlq_harness=dlq_harness,
        success_notifier=success_notifier,
        failure_notifier=failure_notifier,
    )


def build_from_config(config: Config) -> LocalPipeline:
    return build_local_pipeline(
        bucket=config.raw_bucket,
        object_store_uri=config.object_store_uri,
        allowed_extensions=config.allowed_image_ext,
        max_receive_count=config.ingest_max_receive_count,
        settings=HarnessSettings(
            batch_size=config.ingest_batch_size,
            batch_window_s=0.0,
            max_concurrency=config.ingest_max_concurrency,
            timeout_s=config.ingest_timeout_seconds,
        ),
        sender=config.mail_from,
        recipient=config.mail_to,
        sender_name=config.mail_sender_name,
        failure_mail=config.failure_mail_enabled,
    )
