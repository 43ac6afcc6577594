from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from google.cloud import firestore, storage
from pydantic import BaseModel

from album_core.catalog.metadata import MetadataUpdater
from album_core.catalog.recorder import CatalogRecorder
from album_core.config import Config, get_config
from album_core.errors import ValidationError
from album_core.ingestion.consumer import IngestConsumer
from album_core.ingestion.dlq import DeadLetterPublisher
from album_core.ingestion.retry import RetryAction, RetryPolicy
from album_core.ingestion.storage_event import parse_storage_notification
from album_core.logging import configure_logging, get_logger
from album_core.notify.failure import FailureNotifier
from album_core.notify.mail import mail_transport_from_config
from album_core.queue.types import decode_payload
from album_core.routing.router import TopicRouter
from album_core.routing.subscriptions import (
    ingest_subscription,
    metadata_subscription,
    upload_message,
)
from album_core.routing.types import TopicMessage
from gcp_adapter.firestore_catalog import FirestoreCatalogStore
from gcp_adapter.gcs_object_store import GcsObjectStore
from gcp_adapter.queue_pubsub import PubSubPublisher, parse_pubsub_push

SERVICE_NAME = "album-pipeline"

configure_logging(
    service=SERVICE_NAME,
    env=os.getenv("ENV"),
    version=os.getenv("ALBUM_VERSION"),
)
logger = get_logger(__name__)

app = FastAPI()


@dataclass(frozen=True)
class ServiceComponents:
    router: TopicRouter
    consumer: IngestConsumer
    policy: RetryPolicy
    dead_letter: DeadLetterPublisher | None
    failure_notifier: FailureNotifier


def build_components(config: Config) -> ServiceComponents:
    if not config.ingest_topic:
        raise ValueError("INGEST_TOPIC is required for the pipeline service")
    firestore_client = firestore.Client(project=config.gcp_project)
    storage_client = storage.Client(project=config.gcp_project)
    publisher = PubSubPublisher()

    catalog = FirestoreCatalogStore(firestore_client, collection=config.catalog_collection)
    recorder = CatalogRecorder(
        catalog,
        GcsObjectStore(storage_client),
        config.allowed_image_ext,
    )
    updater = MetadataUpdater(catalog)
    router = TopicRouter(
        [
            ingest_subscription(publisher, config.ingest_topic),
            metadata_subscription(updater.handle_message),
        ]
    )
    dead_letter = (
        DeadLetterPublisher(publisher, config.dlq_topic) if config.dlq_topic else None
    )
    failure_transport = (
        mail_transport_from_config(config) if config.failure_mail_enabled else None
    )
    return ServiceComponents(
        router=router,
        consumer=IngestConsumer(recorder),
        policy=RetryPolicy(max_receive_count=config.ingest_max_receive_count),
        dead_letter=dead_letter,
        failure_notifier=FailureNotifier(
            failure_transport,
            sender=config.mail_from,
            recipient=config.mail_to,
            sender_name=config.mail_sender_name,
            allowed_extensions=config.allowed_image_ext,
        ),
    )


@lru_cache(maxsize=1)
def get_components() -> ServiceComponents:
    return build_components(get_config())


@app.on_event("startup")
async def _validate_config_on_startup() -> None:
    get_config()


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str


class DeliveryModel(BaseModel):
    subscription: str
    status: str
    error: str | None = None


class RouteResponse(BaseModel):
    status: str
    trace_id: str
    events: int
    deliveries: list[DeliveryModel] = []


class IngestResponse(BaseModel):
    status: str
    trace_id: str
    error_code: str | None = None


async def _push_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Push payload must be an object")
    return body


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        service=SERVICE_NAME,
        version=os.getenv("ALBUM_VERSION", "dev"),
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    )


@app.post("/events", response_model=RouteResponse)
async def route_event(
    request: Request,
    components: ServiceComponents = Depends(get_components),
) -> RouteResponse:
    trace_id = str(uuid.uuid4())
    body = await _push_body(request)
    try:
        push = parse_pubsub_push(body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    attributes = push.message.attributes
    if "metadata_type" in attributes:
        messages = [
            TopicMessage(body=decode_payload(push.message.data), attributes=attributes)
        ]
    else:
        try:
            events = parse_storage_notification(push.message.data, attributes)
        except ValidationError as exc:
            logger.warning(
                "Discarding unrecognized topic message",
                extra={
                    "request_id": trace_id,
                    "message_id": push.message.message_id,
                    "error_code": "VALIDATION",
                    "error_message": str(exc),
                },
            )
            return RouteResponse(status="ignored", trace_id=trace_id, events=0)
        messages = [upload_message(event) for event in events]

    deliveries: list[DeliveryModel] = []
    for message in messages:
        for result in components.router.publish(message):
            deliveries.append(
                DeliveryModel(
                    subscription=result.subscription,
                    status=result.status,
                    error=result.error,
                )
            )

    failed = [delivery for delivery in deliveries if delivery.status == "failed"]
    if failed:
        logger.error(
            "Routing incomplete, requesting redelivery",
            extra={
                "request_id": trace_id,
                "message_id": push.message.message_id,
                "subscription": ",".join(d.subscription for d in failed),
            },
        )
        raise HTTPException(status_code=500, detail="Delivery failed")

    return RouteResponse(
        status="routed",
        trace_id=trace_id,
        events=len(messages),
        deliveries=deliveries,
    )


@app.post("/ingest", response_model=IngestResponse)
async def ingest(
    request: Request,
    components: ServiceComponents = Depends(get_components),
) -> IngestResponse:
    trace_id = str(uuid.uuid4())
    body = await _push_body(request)
    try:
        push = parse_pubsub_push(body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    envelope = push.to_delivery_envelope()
    result = components.consumer.process_batch([envelope])
    outcome = result.outcomes[0]
    if outcome.ok:
        return IngestResponse(status=outcome.record_status or "ok", trace_id=trace_id)

    if components.policy.decide(envelope) == RetryAction.RETRY:
        raise HTTPException(status_code=500, detail=outcome.error_message or "Retry")

    if components.dead_letter is None:
        logger.error(
            "Dropping message: retries exhausted and no dead-letter topic",
            extra={
                "request_id": trace_id,
                "message_id": envelope.message_id,
                "attempt_count": envelope.receive_count,
                "error_code": outcome.error_code,
            },
        )
        return IngestResponse(status="dropped", trace_id=trace_id, error_code=outcome.error_code)

    try:
        components.dead_letter.publish(
            envelope=envelope,
            error_code=outcome.error_code or "UNKNOWN",
            error_message=outcome.error_message or "",
        )
    except Exception as exc:
        logger.exception(
            "Dead-letter publish failed",
            extra={"request_id": trace_id, "message_id": envelope.message_id},
        )
        raise HTTPException(status_code=500, detail="Dead-letter publish failed") from exc
    return IngestResponse(status="dlq", trace_id=trace_id, error_code=outcome.error_code)


@app.post("/dlq", response_model=IngestResponse)
async def dead_letter(
    request: Request,
    components: ServiceComponents = Depends(get_components),
) -> IngestResponse:
    trace_id = str(uuid.uuid4())
    body = await _push_body(request)
    try:
        push = parse_pubsub_push(body)
    except ValueError as exc:
        logger.warning(
            "Discarding malformed dead-letter push",
            extra={"request_id": trace_id, "error_message": str(exc)},
        )
        return IngestResponse(status="ignored", trace_id=trace_id)
    components.failure_notifier.handle(push.to_delivery_envelope())
    return IngestResponse(status="handled", trace_id=trace_id)
