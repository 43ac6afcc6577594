from __future__ import annotations

import argparse
import asyncio
import os
import signal

from google.cloud import firestore, storage

from album_core.catalog.recorder import CatalogRecorder
from album_core.config import Config, get_config
from album_core.ingestion.consumer import IngestConsumer
from album_core.ingestion.dlq import DeadLetterPublisher
from album_core.ingestion.harness import HarnessSettings, QueueConsumerHarness
from album_core.ingestion.retry import RetryPolicy
from album_core.logging import configure_logging, get_logger
from gcp_adapter.firestore_catalog import FirestoreCatalogStore
from gcp_adapter.gcs_object_store import GcsObjectStore
from gcp_adapter.queue_pubsub import PubSubPublisher, PubSubPullQueue

SERVICE_NAME = "album-ingest-worker"

logger = get_logger(__name__)


def build_harness(config: Config) -> QueueConsumerHarness:
    if not config.ingest_subscription:
        raise ValueError("INGEST_SUBSCRIPTION is required for the ingest worker")
    catalog = FirestoreCatalogStore(
        firestore.Client(project=config.gcp_project),
        collection=config.catalog_collection,
    )
    recorder = CatalogRecorder(
        catalog,
        GcsObjectStore(storage.Client(project=config.gcp_project)),
        config.allowed_image_ext,
    )
    dead_letter = None
    if config.dlq_topic:
        dead_letter = DeadLetterPublisher(PubSubPublisher(), config.dlq_topic)
    return QueueConsumerHarness(
        queue=PubSubPullQueue(config.ingest_subscription),
        consumer=IngestConsumer(recorder),
        policy=RetryPolicy(max_receive_count=config.ingest_max_receive_count),
        dead_letter=dead_letter,
        settings=HarnessSettings.from_config(config),
        name="ingest",
    )


async def _run(harness: QueueConsumerHarness, once: bool) -> None:
    if once:
        stats = await harness.drain()
        logger.info(
            "Ingest drain complete",
            extra={"batch_size": stats.received, "status": "drained"},
        )
        return
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    await harness.run_forever(stop)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Pull-based ingest worker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Drain the subscription once and exit",
    )
    args = parser.parse_args(argv)

    config = get_config()
    configure_logging(service=SERVICE_NAME, env=config.env, version=os.getenv("ALBUM_VERSION"))
    asyncio.run(_run(build_harness(config), args.once))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
