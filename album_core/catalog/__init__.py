from album_core.catalog.store import CatalogStore, InMemoryCatalogStore
from album_core.catalog.types import (
    CatalogEntry,
    ChangeKind,
    ChangeRecord,
    MetadataEvent,
    UpdateOutcome,
)

__all__ = [
    "CatalogEntry",
    "CatalogStore",
    "ChangeKind",
    "ChangeRecord",
    "InMemoryCatalogStore",
    "MetadataEvent",
    "UpdateOutcome",
]
