from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping
from urllib.parse import unquote

from album_core.errors import ValidationError
from album_core.logging import get_logger

logger = get_logger(__name__)


class EventKind(str, Enum):
    CREATED = "Created"
    REMOVED = "Removed"


_CREATED_NAMES = {
    "ObjectCreated:Put",
    "OBJECT_FINALIZE",
    "google.cloud.storage.object.v1.finalized",
}
_REMOVED_NAMES = {
    "ObjectRemoved:Delete",
    "OBJECT_DELETE",
    "google.cloud.storage.object.v1.deleted",
}


@dataclass(frozen=True)
class UploadEvent:
    event_kind: EventKind
    object_key: str
    source_location: str

    @property
    def extension(self) -> str:
        leaf = self.object_key.rsplit("/", 1)[-1]
        if "." not in leaf:
            return ""
        return f".{leaf.rsplit('.', 1)[-1]}"

    def to_dict(self) -> dict[str, str]:
        return {
            "eventName": self.event_kind.value,
            "objectKey": self.object_key,
            "sourceLocation": self.source_location,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "UploadEvent":
        if not isinstance(payload, Mapping):
            raise ValidationError("Upload event payload must be an object")
        name = payload.get("eventName")
        key = payload.get("objectKey")
        location = payload.get("sourceLocation")
        try:
            kind = EventKind(name)
        except ValueError as exc:
            raise ValidationError(f"Unsupported event kind: {name}") from exc
        if not isinstance(key, str) or not key:
            raise ValidationError("Upload event is missing objectKey")
        if not isinstance(location, str) or not location:
            raise ValidationError("Upload event is missing sourceLocation")
        return cls(event_kind=kind, object_key=key, source_location=location)


def normalize_object_key(raw_key: str) -> str:
    """URL-encoded notification keys use '+' for spaces."""
    return unquote(raw_key.replace("+", " "))


def event_kind_for(name: str | None) -> EventKind | None:
    if not name:
        return None
    if name in _CREATED_NAMES:
        return EventKind.CREATED
    if name in _REMOVED_NAMES:
        return EventKind.REMOVED
    return None


def parse_storage_notification(
    payload: Any,
    attributes: Mapping[str, str] | None = None,
) -> list[UploadEvent]:
    """Normalize a raw storage notification into canonical upload events.

    Understands GCS CloudEvents, GCS Pub/Sub notifications (event type in
    the message attributes), S3-style ``Records`` batches and topic messages
    wrapped inside queue messages (``{"Message": "<json>"}``). Notification
    types that are neither creations nor deletions yield no events.
    """
    attributes = attributes or {}
    payload = _decode_json(payload)

    if not isinstance(payload, dict):
        raise ValidationError("Storage notification must be a JSON object")

    if "Message" in payload and isinstance(payload["Message"], str):
        return parse_storage_notification(payload["Message"], attributes)

    if isinstance(payload.get("Records"), list):
        return _parse_records(payload["Records"])

    if "specversion" in payload:
        return _parse_cloudevent(payload)

    if attributes.get("eventType"):
        return _parse_gcs_notification(payload, attributes)

    raise ValidationError("Unrecognized storage notification shape")


def _decode_json(payload: Any) -> Any:
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValidationError("Storage notification is not valid JSON") from exc
    return payload


def _parse_records(records: list[Any]) -> list[UploadEvent]:
    events: list[UploadEvent] = []
    for record in records:
        if not isinstance(record, dict):
            raise ValidationError("Notification record must be an object")
        kind = event_kind_for(record.get("eventName"))
        if kind is None:
            logger.info(
                "Ignoring storage record",
                extra={"event_kind": record.get("eventName")},
            )
            continue
        s3 = record.get("s3") or {}
        bucket = (s3.get("bucket") or {}).get("name")
        key = (s3.get("object") or {}).get("key")
        if not bucket or not key:
            raise ValidationError("Notification record missing bucket or key")
        events.append(
            UploadEvent(
                event_kind=kind,
                object_key=normalize_object_key(key),
                source_location=bucket,
            )
        )
    return events


def _parse_cloudevent(payload: dict[str, Any]) -> list[UploadEvent]:
    kind = event_kind_for(payload.get("type"))
    if kind is None:
        logger.info("Ignoring CloudEvent", extra={"event_kind": payload.get("type")})
        return []
    data = payload.get("data")
    if not isinstance(data, dict):
        raise ValidationError("CloudEvent data is required")
    bucket = data.get("bucket")
    name = data.get("name")
    if not bucket or not name:
        raise ValidationError("CloudEvent data missing bucket or name")
    return [UploadEvent(event_kind=kind, object_key=name, source_location=bucket)]


def _parse_gcs_notification(
    payload: dict[str, Any],
    attributes: Mapping[str, str],
) -> list[UploadEvent]:
    kind = event_kind_for(attributes.get("eventType"))
    if kind is None:
        logger.info(
            "Ignoring storage notification",
            extra={"event_kind": attributes.get("eventType")},
        )
        return []
    bucket = attributes.get("bucketId") or payload.get("bucket")
    name = attributes.get("objectId") or payload.get("name")
    if not bucket or not name:
        raise ValidationError("Storage notification missing bucket or object id")
    return [UploadEvent(event_kind=kind, object_key=name, source_location=bucket)]
