from __future__ import annotations

import threading
from dataclasses import replace
from typing import Callable, Iterable, Mapping, Protocol

from album_core.catalog.types import CatalogEntry, ChangeKind, ChangeRecord
from album_core.errors import CatalogEntryNotFoundError

ChangeListener = Callable[[ChangeRecord], None]

_UPDATABLE_FIELDS = ("caption", "photographer", "date")


class CatalogStore(Protocol):
    def get(self, filename: str) -> CatalogEntry | None:
        ...

    def create(self, entry: CatalogEntry) -> bool:
        """Insert the entry unless one already exists. Returns True on insert."""
        ...

    def delete(self, filename: str) -> bool:
        """Delete the entry if present. Returns True when something was removed."""
        ...

    def update(
        self,
        filename: str,
        fields: Mapping[str, str],
        *,
        skip_if_equal: Iterable[str] = (),
    ) -> CatalogEntry | None:
        """Set fields on an existing entry.

        Returns the new entry, or None when every ``skip_if_equal`` field
        already holds the requested value. Raises CatalogEntryNotFoundError
        when there is no entry for ``filename``.
        """
        ...


def apply_fields(
    current: CatalogEntry,
    fields: Mapping[str, str],
    skip_if_equal: Iterable[str],
) -> CatalogEntry | None:
    unknown = set(fields) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unsupported catalog fields: {', '.join(sorted(unknown))}")
    guards = tuple(skip_if_equal)
    if guards and all(getattr(current, name) == fields.get(name) for name in guards):
        return None
    return replace(current, **dict(fields))


class InMemoryCatalogStore(CatalogStore):
    """Dict-backed catalog that emits an ordered change feed."""

    def __init__(self) -> None:
        self._items: dict[str, CatalogEntry] = {}
        self._changes: list[ChangeRecord] = []
        self._listeners: list[ChangeListener] = []
        self._lock = threading.RLock()

    def subscribe(self, listener: ChangeListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    @property
    def changes(self) -> list[ChangeRecord]:
        with self._lock:
            return list(self._changes)

    def items(self) -> list[CatalogEntry]:
        with self._lock:
            return [self._items[key] for key in sorted(self._items)]

    def get(self, filename: str) -> CatalogEntry | None:
        with self._lock:
            return self._items.get(filename)

    def create(self, entry: CatalogEntry) -> bool:
        with self._lock:
            if entry.filename in self._items:
                return False
            self._items[entry.filename] = entry
            self._emit(ChangeRecord(ChangeKind.INSERT, entry.filename, new_image=entry))
            return True

    def delete(self, filename: str) -> bool:
        with self._lock:
            existing = self._items.pop(filename, None)
            if existing is None:
                return False
            self._emit(ChangeRecord(ChangeKind.REMOVE, filename, old_image=existing))
            return True

    def update(
        self,
        filename: str,
        fields: Mapping[str, str],
        *,
        skip_if_equal: Iterable[str] = (),
    ) -> CatalogEntry | None:
        with self._lock:
            current = self._items.get(filename)
            if current is None:
                raise CatalogEntryNotFoundError(f"No catalog entry for {filename}")
            updated = apply_fields(current, fields, skip_if_equal)
            if updated is None:
                return None
            self._items[filename] = updated
            self._emit(
                ChangeRecord(
                    ChangeKind.MODIFY,
                    filename,
                    new_image=updated,
                    old_image=current,
                )
            )
            return updated

    def _emit(self, record: ChangeRecord) -> None:
        self._changes.append(record)
        for listener in list(self._listeners):
            listener(record)
