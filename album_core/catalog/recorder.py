from __future__ import annotations

from dataclasses import dataclass

from album_core.catalog.store import CatalogStore
from album_core.catalog.types import CatalogEntry
from album_core.errors import InvalidFileTypeError, ObjectNotFoundError
from album_core.ingestion.storage_event import EventKind, UploadEvent
from album_core.logging import get_logger
from album_core.storage.object_store import ObjectStore

logger = get_logger(__name__)

DEFAULT_ALLOWED_EXTENSIONS = (".jpeg", ".png")


@dataclass(frozen=True)
class RecordOutcome:
    status: str
    filename: str


class CatalogRecorder:
    """Keeps one catalog entry per uploaded image key."""

    def __init__(
        self,
        store: CatalogStore,
        objects: ObjectStore,
        allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS,
    ) -> None:
        self.store = store
        self.objects = objects
        self.allowed_extensions = allowed_extensions

    def validate(self, event: UploadEvent) -> None:
        if event.event_kind != EventKind.CREATED:
            return
        if event.extension not in self.allowed_extensions:
            logger.error(
                "Unsupported file type",
                extra={"object_key": event.object_key, "error_code": "INVALID_FILE_TYPE"},
            )
            allowed = ", ".join(self.allowed_extensions)
            raise InvalidFileTypeError(
                f"Invalid file type for {event.object_key}: only {allowed} files are allowed"
            )

    def record(self, event: UploadEvent) -> RecordOutcome:
        self.validate(event)
        if event.event_kind == EventKind.REMOVED:
            return self._remove(event)
        return self._create(event)

    def _remove(self, event: UploadEvent) -> RecordOutcome:
        removed = self.store.delete(event.object_key)
        status = "removed" if removed else "absent"
        logger.info(
            "Catalog entry deleted" if removed else "Catalog entry already absent",
            extra={"object_key": event.object_key, "status": status},
        )
        return RecordOutcome(status=status, filename=event.object_key)

    def _create(self, event: UploadEvent) -> RecordOutcome:
        if not self.objects.exists(event.source_location, event.object_key):
            raise ObjectNotFoundError(
                f"Object not found: {event.source_location}/{event.object_key}"
            )
        created = self.store.create(CatalogEntry(filename=event.object_key))
        status = "created" if created else "exists"
        logger.info(
            "Catalog entry recorded",
            extra={"object_key": event.object_key, "status": status},
        )
        return RecordOutcome(status=status, filename=event.object_key)
