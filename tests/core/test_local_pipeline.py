from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from album_core.catalog.types import CatalogEntry, ChangeKind, MetadataEvent
from album_core.ingestion.dlq import DlqPayload
from album_core.ingestion.harness import HarnessSettings
from album_core.notify.success import SUCCESS_SUBJECT
from local_adapter.pipeline import build_local_pipeline


def _settle(pipeline):
    return asyncio.run(pipeline.settle())


def _s3_notification(name: str, key: str, bucket: str = "test-raw") -> dict:
    return {
        "Records": [
            {
                "eventName": name,
                "s3": {"bucket": {"name": bucket}, "object": {"key": key}},
            }
        ]
    }


@pytest.mark.core
def test_valid_upload_is_catalogued_and_confirmed(pipeline):
    pipeline.upload("photo1.png", b"png-bytes")
    stats = _settle(pipeline)

    assert stats.acked == 1
    assert pipeline.catalog.items() == [CatalogEntry(filename="photo1.png")]
    [message] = pipeline.mail.outbox
    assert message.subject == SUCCESS_SUBJECT
    assert message.recipient == "owner@example.com"
    assert "gs://test-raw/photo1.png" in message.html_body


@pytest.mark.core
def test_invalid_upload_is_dead_lettered(pipeline, caplog):
    pipeline.upload("malware.exe", b"MZ")
    with caplog.at_level("WARNING"):
        stats = _settle(pipeline)

    assert stats.dead_lettered == 1
    assert pipeline.catalog.items() == []
    assert pipeline.mail.outbox == []
    assert pipeline.dlq_queue.visible_count == 0
    assert any(
        getattr(record, "object_key", None) == "malware.exe"
        and getattr(record, "error_code", None) == "INVALID_FILE_TYPE"
        for record in caplog.records
    )


@pytest.mark.core
def test_metadata_updates_existing_entry():
    pipeline = build_local_pipeline(
        bucket="test-raw",
        clock=lambda: datetime(2024, 3, 9, 10, 11, 12, tzinfo=timezone.utc),
    )
    pipeline.upload("photo1.png")
    _settle(pipeline)

    results = pipeline.annotate(
        MetadataEvent(id="photo1.png", caption="Lake", photographer="Kim"),
        "Photographer",
    )
    assert {result.subscription: result.status for result in results} == {
        "ingest": "filtered",
        "metadata": "delivered",
    }
    assert pipeline.catalog.get("photo1.png") == CatalogEntry(
        filename="photo1.png",
        caption="Lake",
        photographer="Kim",
        date="2024-03-09 10:11:12",
    )
    assert len(pipeline.mail.outbox) == 2
    assert pipeline.ingest_queue.visible_count == 0


@pytest.mark.core
def test_duplicate_created_notification_keeps_one_entry(pipeline):
    pipeline.objects.put("test-raw", "photo1.png", b"img")
    notification = _s3_notification("ObjectCreated:Put", "photo1.png")
    pipeline.publish_notification(notification)
    pipeline.publish_notification(notification)
    _settle(pipeline)

    assert [entry.filename for entry in pipeline.catalog.items()] == ["photo1.png"]
    assert [change.event_kind for change in pipeline.catalog.changes] == [ChangeKind.INSERT]
    assert len(pipeline.mail.outbox) == 1


@pytest.mark.core
def test_remove_of_unknown_key_is_a_noop(pipeline):
    pipeline.publish_notification(_s3_notification("ObjectRemoved:Delete", "never.png"))
    stats = _settle(pipeline)
    assert stats.acked == 1
    assert pipeline.catalog.items() == []
    assert pipeline.catalog.changes == []


@pytest.mark.core
def test_remove_deletes_entry_without_mail(pipeline):
    pipeline.upload("photo1.png")
    _settle(pipeline)
    pipeline.remove("photo1.png")
    _settle(pipeline)

    assert pipeline.catalog.items() == []
    assert pipeline.catalog.changes[-1].event_kind == ChangeKind.REMOVE
    assert len(pipeline.mail.outbox) == 1


@pytest.mark.core
def test_url_encoded_keys_are_normalized(pipeline):
    pipeline.objects.put("test-raw", "my photo.jpeg", b"img")
    pipeline.publish_notification(_s3_notification("ObjectCreated:Put", "my+photo.jpeg"))
    _settle(pipeline)
    assert pipeline.catalog.get("my photo.jpeg") is not None


@pytest.mark.core
def test_unsupported_notification_types_are_not_routed(pipeline):
    results = pipeline.publish_notification(
        _s3_notification("ObjectRestore:Completed", "photo1.png")
    )
    assert results == []
    assert pipeline.ingest_queue.visible_count == 0


@pytest.mark.core
def test_missing_object_retries_before_dead_letter():
    pipeline = build_local_pipeline(
        bucket="test-raw",
        max_receive_count=2,
        settings=HarnessSettings(batch_window_s=0.0, max_concurrency=1),
        failure_mail=True,
    )
    pipeline.publish_notification(_s3_notification("ObjectCreated:Put", "ghost.png"))

    ingest_stats = asyncio.run(pipeline.ingest_harness.drain())
    assert ingest_stats.retried == 1
    assert ingest_stats.dead_lettered == 1
    [dead] = pipeline.dlq_queue.peek()
    payload = DlqPayload.from_dict(dead.payload)
    assert payload.error_code == "OBJECT_NOT_FOUND"
    assert payload.attempt_count == 2

    asyncio.run(pipeline.dlq_harness.drain())
    [message] = pipeline.mail.outbox
    assert "ghost.png" in message.html_body


@pytest.mark.core
def test_failure_mail_names_configured_extensions():
    pipeline = build_local_pipeline(
        object_store_uri="memory://album-webp",
        allowed_extensions=(".webp",),
        failure_mail=True,
    )
    pipeline.publish_notification(_s3_notification("ObjectCreated:Put", "photo1.png"))
    _settle(pipeline)

    [message] = pipeline.mail.outbox
    assert "Only .webp images are accepted." in message.html_body
