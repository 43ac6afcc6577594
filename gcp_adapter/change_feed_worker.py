from __future__ import annotations

import os
import signal
import threading

from google.cloud import firestore

from album_core.config import Config, get_config
from album_core.errors import ConfigError
from album_core.logging import configure_logging, get_logger
from album_core.notify.mail import MailTransport, mail_transport_from_config
from album_core.notify.success import SuccessNotifier
from gcp_adapter.firestore_catalog import FirestoreChangeFeed

SERVICE_NAME = "album-change-feed"

logger = get_logger(__name__)


def build_change_feed(
    config: Config,
    *,
    client: firestore.Client | None = None,
    transport: MailTransport | None = None,
) -> FirestoreChangeFeed:
    transport = transport or mail_transport_from_config(config)
    if transport is None:
        raise ConfigError("SENDGRID_API_KEY is required for upload confirmations")
    notifier = SuccessNotifier(
        transport,
        sender=config.mail_from,
        recipient=config.mail_to,
        bucket=config.raw_bucket,
        sender_name=config.mail_sender_name,
    )
    return FirestoreChangeFeed(
        client or firestore.Client(project=config.gcp_project),
        collection=config.catalog_collection,
        listener=notifier.on_change,
    )


def main() -> int:
    config = get_config()
    configure_logging(service=SERVICE_NAME, env=config.env, version=os.getenv("ALBUM_VERSION"))
    feed = build_change_feed(config)
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    feed.start()
    logger.info("Change feed listening", extra={"status": "started"})
    try:
        stop.wait()
    finally:
        feed.stop()
        logger.info("Change feed stopped", extra={"status": "stopped"})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
