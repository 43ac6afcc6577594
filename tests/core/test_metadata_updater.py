from __future__ import annotations

from datetime import datetime, timezone

import pytest

from album_core.catalog.metadata import MetadataUpdater, metadata_message
from album_core.catalog.store import InMemoryCatalogStore
from album_core.catalog.types import CatalogEntry, ChangeKind, MetadataEvent
from album_core.errors import ValidationError
from album_core.routing.types import TopicMessage


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _store_with(*filenames: str) -> InMemoryCatalogStore:
    store = InMemoryCatalogStore()
    for filename in filenames:
        store.create(CatalogEntry(filename=filename))
    return store


@pytest.mark.core
def test_metadata_sets_caption_photographer_and_date():
    store = _store_with("photo1.png")
    updater = MetadataUpdater(store, clock=_Clock())

    outcome = updater.apply_metadata(
        MetadataEvent(id="photo1.png", caption="Beach", photographer="Ana")
    )
    assert outcome.status == "updated"
    assert store.get("photo1.png") == CatalogEntry(
        filename="photo1.png",
        caption="Beach",
        photographer="Ana",
        date="2024-05-01 12:30:45",
    )
    assert store.changes[-1].event_kind == ChangeKind.MODIFY


@pytest.mark.core
def test_metadata_redelivery_keeps_original_date():
    store = _store_with("photo1.png")
    clock = _Clock()
    updater = MetadataUpdater(store, clock=clock)
    event = MetadataEvent(id="photo1.png", caption="Beach", photographer="Ana")
    updater.apply_metadata(event)

    clock.now = datetime(2024, 5, 2, 8, 0, 0, tzinfo=timezone.utc)
    outcome = updater.apply_metadata(event)
    assert outcome.status == "unchanged"
    assert outcome.entry.date == "2024-05-01 12:30:45"
    assert len(store.changes) == 2


@pytest.mark.core
def test_metadata_for_unknown_image_does_not_create_entry():
    store = InMemoryCatalogStore()
    outcome = MetadataUpdater(store).apply_metadata(
        MetadataEvent(id="ghost.png", caption="x", photographer="y")
    )
    assert outcome.status == "not_found"
    assert store.items() == []
    assert store.changes == []


@pytest.mark.core
def test_handle_message_discards_malformed_body():
    store = _store_with("photo1.png")
    updater = MetadataUpdater(store)
    outcome = updater.handle_message(
        TopicMessage(body={"id": "photo1.png", "caption": 3}, attributes={"metadata_type": "Caption"})
    )
    assert outcome.status == "invalid"
    assert store.get("photo1.png").caption is None


@pytest.mark.core
def test_metadata_message_carries_type_attribute():
    event = MetadataEvent(id="photo1.png", caption="c", photographer="p")
    message = metadata_message(event, "Date")
    assert message.attributes == {"metadata_type": "Date"}
    assert MetadataEvent.from_dict(message.body) == event


@pytest.mark.core
def test_metadata_event_requires_id():
    with pytest.raises(ValidationError):
        MetadataEvent.from_dict({"id": "", "caption": "c", "photographer": "p"})
    with pytest.raises(ValidationError):
        MetadataEvent.from_dict("photo1.png")
