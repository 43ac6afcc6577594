from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from album_core.catalog.store import CatalogStore
from album_core.catalog.types import MetadataEvent, UpdateOutcome
from album_core.errors import CatalogEntryNotFoundError, ValidationError
from album_core.logging import get_logger
from album_core.routing.types import TopicMessage

logger = get_logger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MetadataUpdater:
    """Applies caption/photographer updates to existing catalog entries.

    Updates never create entries: a missing filename yields a ``not_found``
    outcome. An event whose caption and photographer already match the
    stored entry is skipped, so re-delivery leaves the entry (date included)
    untouched.
    """

    def __init__(
        self,
        store: CatalogStore,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.clock = clock

    def apply_metadata(self, event: MetadataEvent) -> UpdateOutcome:
        fields = {
            "caption": event.caption,
            "photographer": event.photographer,
            "date": self.clock().strftime(DATE_FORMAT),
        }
        try:
            updated = self.store.update(
                event.id,
                fields,
                skip_if_equal=("caption", "photographer"),
            )
        except CatalogEntryNotFoundError:
            logger.warning(
                "Metadata update for unknown image",
                extra={"object_key": event.id, "status": "not_found"},
            )
            return UpdateOutcome(status="not_found", filename=event.id)

        if updated is None:
            logger.info(
                "Metadata already applied",
                extra={"object_key": event.id, "status": "unchanged"},
            )
            return UpdateOutcome(
                status="unchanged",
                filename=event.id,
                entry=self.store.get(event.id),
            )

        logger.info(
            "Metadata updated",
            extra={"object_key": event.id, "status": "updated"},
        )
        return UpdateOutcome(status="updated", filename=event.id, entry=updated)

    def handle_message(self, message: TopicMessage) -> UpdateOutcome:
        try:
            event = MetadataEvent.from_dict(message.body)
        except ValidationError as exc:
            logger.error(
                "Discarding malformed metadata message",
                extra={"error_code": "VALIDATION", "error_message": str(exc)},
            )
            return UpdateOutcome(status="invalid", filename="")
        return self.apply_metadata(event)


def metadata_message(event: MetadataEvent, metadata_type: str = "Caption") -> TopicMessage:
    return TopicMessage(
        body=event.to_dict(),
        attributes={"metadata_type": metadata_type},
    )
