from __future__ import annotations

import json

import pytest

from album_core.errors import ValidationError
from album_core.ingestion.storage_event import (
    EventKind,
    UploadEvent,
    event_kind_for,
    normalize_object_key,
    parse_storage_notification,
)


def _s3_records(*records: tuple[str, str]) -> dict:
    return {
        "Records": [
            {
                "eventName": name,
                "s3": {"bucket": {"name": "uploads"}, "object": {"key": key}},
            }
            for name, key in records
        ]
    }


@pytest.mark.core
def test_normalize_object_key_decodes_plus_and_percent():
    assert normalize_object_key("my+photo%281%29.png") == "my photo(1).png"
    assert normalize_object_key("plain.jpeg") == "plain.jpeg"


@pytest.mark.core
def test_records_payload_yields_created_and_removed_events():
    payload = _s3_records(
        ("ObjectCreated:Put", "summer+trip.png"),
        ("ObjectRemoved:Delete", "old.jpeg"),
    )
    events = parse_storage_notification(payload)
    assert events == [
        UploadEvent(EventKind.CREATED, "summer trip.png", "uploads"),
        UploadEvent(EventKind.REMOVED, "old.jpeg", "uploads"),
    ]


@pytest.mark.core
def test_records_payload_skips_other_event_types():
    payload = _s3_records(("ObjectRestore:Post", "photo.png"), ("ObjectCreated:Copy", "copy.png"))
    assert parse_storage_notification(payload) == []


@pytest.mark.core
def test_nested_topic_message_is_unwrapped():
    inner = _s3_records(("ObjectCreated:Put", "photo1.png"))
    wrapped = json.dumps({"Type": "Notification", "Message": json.dumps(inner)})
    events = parse_storage_notification(wrapped.encode("utf-8"))
    assert [event.object_key for event in events] == ["photo1.png"]


@pytest.mark.core
def test_cloudevent_finalized_and_deleted():
    created = parse_storage_notification(
        {
            "specversion": "1.0",
            "type": "google.cloud.storage.object.v1.finalized",
            "data": {"bucket": "album", "name": "dir/cat.jpeg"},
        }
    )
    assert created == [UploadEvent(EventKind.CREATED, "dir/cat.jpeg", "album")]

    removed = parse_storage_notification(
        {
            "specversion": "1.0",
            "type": "google.cloud.storage.object.v1.deleted",
            "data": {"bucket": "album", "name": "dir/cat.jpeg"},
        }
    )
    assert removed[0].event_kind == EventKind.REMOVED


@pytest.mark.core
def test_cloudevent_metadata_update_is_ignored():
    events = parse_storage_notification(
        {
            "specversion": "1.0",
            "type": "google.cloud.storage.object.v1.metadataUpdated",
            "data": {"bucket": "album", "name": "cat.jpeg"},
        }
    )
    assert events == []


@pytest.mark.core
def test_gcs_notification_reads_attributes():
    events = parse_storage_notification(
        {"name": "ignored.png", "bucket": "ignored"},
        {"eventType": "OBJECT_FINALIZE", "bucketId": "album", "objectId": "a b.png"},
    )
    assert events == [UploadEvent(EventKind.CREATED, "a b.png", "album")]


@pytest.mark.core
def test_malformed_notifications_raise_validation_error():
    with pytest.raises(ValidationError):
        parse_storage_notification(b"not json")
    with pytest.raises(ValidationError):
        parse_storage_notification({"hello": "world"})
    with pytest.raises(ValidationError):
        parse_storage_notification({"Records": [{"eventName": "ObjectCreated:Put"}]})


@pytest.mark.core
def test_event_kind_mapping():
    assert event_kind_for("ObjectCreated:Put") == EventKind.CREATED
    assert event_kind_for("ObjectCreated:CompleteMultipartUpload") is None
    assert event_kind_for("ObjectCreated:Copy") is None
    assert event_kind_for("ObjectRemoved:Delete") == EventKind.REMOVED
    assert event_kind_for("ObjectRemoved:DeleteMarkerCreated") is None
    assert event_kind_for(None) is None


@pytest.mark.core
def test_upload_event_extension_is_case_sensitive():
    assert UploadEvent(EventKind.CREATED, "photo.PNG", "b").extension == ".PNG"
    assert UploadEvent(EventKind.CREATED, "dir.v2/photo", "b").extension == ""
    assert UploadEvent(EventKind.CREATED, "a.tar.png", "b").extension == ".png"


@pytest.mark.core
def test_upload_event_dict_roundtrip_and_validation():
    event = UploadEvent(EventKind.REMOVED, "photo.png", "album")
    assert UploadEvent.from_dict(event.to_dict()) == event
    with pytest.raises(ValidationError):
        UploadEvent.from_dict({"eventName": "Renamed", "objectKey": "x", "sourceLocation": "b"})
    with pytest.raises(ValidationError):
        UploadEvent.from_dict({"eventName": "Created", "sourceLocation": "b"})
    with pytest.raises(ValidationError):
        UploadEvent.from_dict(["not", "a", "dict"])
