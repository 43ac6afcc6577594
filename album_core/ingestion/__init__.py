from album_core.ingestion.storage_event import (
    EventKind,
    UploadEvent,
    normalize_object_key,
    parse_storage_notification,
)

__all__ = [
    "EventKind",
    "UploadEvent",
    "normalize_object_key",
    "parse_storage_notification",
]
