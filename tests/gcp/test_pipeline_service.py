from __future__ import annotations

import base64
import json
import uuid

import pytest
from fastapi.testclient import TestClient

from album_core.catalog.metadata import MetadataUpdater
from album_core.catalog.recorder import CatalogRecorder
from album_core.catalog.store import InMemoryCatalogStore
from album_core.catalog.types import CatalogEntry
from album_core.ingestion.consumer import IngestConsumer
from album_core.ingestion.dlq import DeadLetterPublisher
from album_core.ingestion.retry import RetryPolicy
from album_core.notify.failure import FAILURE_SUBJECT, FailureNotifier
from album_core.notify.mail import InMemoryMailTransport
from album_core.queue.memory import InMemoryPublisher, InMemoryQueue
from album_core.routing.router import TopicRouter
from album_core.routing.subscriptions import ingest_subscription, metadata_subscription
from album_core.routing.types import Subscription
from album_core.storage.object_store import FsspecObjectStore
from gcp_adapter import pipeline_service


class _Harness:
    def __init__(self, *, dead_letter: bool = True, extra_subscriptions=()):
        self.objects = FsspecObjectStore(f"memory://{uuid.uuid4().hex}")
        self.catalog = InMemoryCatalogStore()
        self.mail = InMemoryMailTransport()
        self.ingest_queue = InMemoryQueue("ingest")
        self.dlq_queue = InMemoryQueue("dlq")
        publisher = InMemoryPublisher({"ingest": self.ingest_queue, "dlq": self.dlq_queue})
        updater = MetadataUpdater(self.catalog)
        self.components = pipeline_service.ServiceComponents(
            router=TopicRouter(
                [
                    ingest_subscription(publisher, "ingest"),
                    metadata_subscription(updater.handle_message),
                    *extra_subscriptions,
                ]
            ),
            consumer=IngestConsumer(CatalogRecorder(self.catalog, self.objects)),
            policy=RetryPolicy(max_receive_count=2),
            dead_letter=DeadLetterPublisher(publisher, "dlq") if dead_letter else None,
            failure_notifier=FailureNotifier(
                self.mail,
                sender="album@example.com",
                recipient="owner@example.com",
            ),
        )


def _push(payload, *, attributes=None, attempt=None, message_id="m-1") -> dict:
    data = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    body = {
        "message": {
            "data": base64.b64encode(data).decode("ascii"),
            "attributes": attributes or {},
            "messageId": message_id,
        },
        "subscription": "projects/test/subscriptions/push",
    }
    if attempt is not None:
        body["deliveryAttempt"] = attempt
    return body


def _created(key: str) -> dict:
    return {"eventName": "Created", "objectKey": key, "sourceLocation": "album"}


@pytest.fixture
def service():
    harness = _Harness()
    pipeline_service.app.dependency_overrides[pipeline_service.get_components] = (
        lambda: harness.components
    )
    yield harness, TestClient(pipeline_service.app)
    pipeline_service.app.dependency_overrides.clear()


def test_health(service):
    _harness, client = service
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["service"] == "album-pipeline"


def test_events_routes_storage_notification_to_ingest(service):
    harness, client = service
    cloudevent = {
        "specversion": "1.0",
        "type": "google.cloud.storage.object.v1.finalized",
        "data": {"bucket": "album", "name": "photo1.png"},
    }
    resp = client.post("/events", json=_push(cloudevent))
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "routed"
    assert body["events"] == 1
    statuses = {item["subscription"]: item["status"] for item in body["deliveries"]}
    assert statuses == {"ingest": "delivered", "metadata": "filtered"}
    assert harness.ingest_queue.peek()[0].payload == _created("photo1.png")


def test_events_applies_metadata_messages(service):
    harness, client = service
    harness.catalog.create(CatalogEntry(filename="photo1.png"))
    resp = client.post(
        "/events",
        json=_push(
            {"id": "photo1.png", "caption": "Snow", "photographer": "Jo"},
            attributes={"metadata_type": "Caption"},
        ),
    )
    assert resp.status_code == 200
    assert harness.catalog.get("photo1.png").caption == "Snow"
    assert harness.ingest_queue.visible_count == 0


def test_events_ignores_unrecognized_payload(service):
    _harness, client = service
    resp = client.post("/events", json=_push({"hello": "world"}))
    assert resp.status_code == 200
    assert resp.json()["status"] == "ignored"


def test_events_rejects_bad_push_body(service):
    _harness, client = service
    resp = client.post("/events", json={"message": {"data": "***"}})
    assert resp.status_code == 400


def test_events_requests_redelivery_when_a_subscription_fails():
    def _broken(_message):
        raise RuntimeError("queue down")

    harness = _Harness(extra_subscriptions=[Subscription(name="audit", deliver=_broken)])
    pipeline_service.app.dependency_overrides[pipeline_service.get_components] = (
        lambda: harness.components
    )
    try:
        client = TestClient(pipeline_service.app)
        resp = client.post(
            "/events",
            json=_push(
                {
                    "Records": [
                        {
                            "eventName": "ObjectCreated:Put",
                            "s3": {"bucket": {"name": "album"}, "object": {"key": "a.png"}},
                        }
                    ]
                }
            ),
        )
    finally:
        pipeline_service.app.dependency_overrides.clear()
    assert resp.status_code == 500


def test_ingest_records_valid_upload(service):
    harness, client = service
    harness.objects.put("album", "photo1.png", b"img")
    resp = client.post("/ingest", json=_push(_created("photo1.png")))
    assert resp.status_code == 200
    assert resp.json()["status"] == "created"
    assert harness.catalog.get("photo1.png") == CatalogEntry(filename="photo1.png")


def test_ingest_retries_then_dead_letters(service):
    harness, client = service
    first = client.post("/ingest", json=_push(_created("malware.exe"), attempt=1))
    assert first.status_code == 500
    assert harness.dlq_queue.visible_count == 0

    second = client.post("/ingest", json=_push(_created("malware.exe"), attempt=2))
    assert second.status_code == 200
    assert second.json() == {
        "status": "dlq",
        "trace_id": second.json()["trace_id"],
        "error_code": "INVALID_FILE_TYPE",
    }
    [dead] = harness.dlq_queue.peek()
    assert dead.payload["event"] == _created("malware.exe")
    assert dead.payload["attempt_count"] == 2
    assert harness.catalog.items() == []


def test_ingest_without_dead_letter_topic_drops():
    harness = _Harness(dead_letter=False)
    pipeline_service.app.dependency_overrides[pipeline_service.get_components] = (
        lambda: harness.components
    )
    try:
        client = TestClient(pipeline_service.app)
        resp = client.post("/ingest", json=_push(_created("malware.exe"), attempt=5))
    finally:
        pipeline_service.app.dependency_overrides.clear()
    assert resp.status_code == 200
    assert resp.json()["status"] == "dropped"


def test_dlq_endpoint_notifies(service):
    harness, client = service
    payload = {
        "error_code": "INVALID_FILE_TYPE",
        "error_message": "bad",
        "attempt_count": 1,
        "message_id": "m-1",
        "event": _created("malware.exe"),
        "received_at": "2024-01-01T00:00:00+00:00",
    }
    resp = client.post("/dlq", json=_push(payload))
    assert resp.status_code == 200
    assert resp.json()["status"] == "handled"
    [message] = harness.mail.outbox
    assert message.subject == FAILURE_SUBJECT


def test_dlq_endpoint_acks_malformed_push(service):
    _harness, client = service
    resp = client.post("/dlq", json={"unexpected": True})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ignored"
