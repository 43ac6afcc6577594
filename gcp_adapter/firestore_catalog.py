from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping
from urllib.parse import quote

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from album_core.catalog.store import CatalogStore, apply_fields
from album_core.catalog.types import CatalogEntry, ChangeKind, ChangeRecord
from album_core.errors import AlbumError, CatalogEntryNotFoundError, RecoverableError
from album_core.logging import get_logger

logger = get_logger(__name__)


def doc_id_for(filename: str) -> str:
    """Document ids cannot contain '/', object keys can."""
    return quote(filename, safe="")


class FirestoreCatalogStore(CatalogStore):
    def __init__(
        self,
        client: firestore.Client | None = None,
        *,
        collection: str,
        project_id: str | None = None,
    ) -> None:
        self._client = client or firestore.Client(project=project_id)
        self.collection = collection

    def _doc(self, filename: str) -> firestore.DocumentReference:
        return self._client.collection(self.collection).document(doc_id_for(filename))

    def get(self, filename: str) -> CatalogEntry | None:
        try:
            snapshot = self._doc(filename).get()
        except Exception as exc:
            raise RecoverableError(f"Firestore read failed: {exc}") from exc
        if not snapshot.exists:
            return None
        return CatalogEntry.from_dict(snapshot.to_dict() or {"filename": filename})

    def create(self, entry: CatalogEntry) -> bool:
        try:
            self._doc(entry.filename).create(entry.to_dict())
        except google_exceptions.AlreadyExists:
            return False
        except Exception as exc:
            raise RecoverableError(f"Firestore create failed: {exc}") from exc
        return True

    def delete(self, filename: str) -> bool:
        doc_ref = self._doc(filename)

        @firestore.transactional
        def _txn(transaction: firestore.Transaction) -> bool:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                return False
            transaction.delete(doc_ref)
            return True

        try:
            return _txn(self._client.transaction())
        except Exception as exc:
            raise RecoverableError(f"Firestore delete failed: {exc}") from exc

    def update(
        self,
        filename: str,
        fields: Mapping[str, str],
        *,
        skip_if_equal: Iterable[str] = (),
    ) -> CatalogEntry | None:
        doc_ref = self._doc(filename)
        guards = tuple(skip_if_equal)

        @firestore.transactional
        def _txn(transaction: firestore.Transaction) -> CatalogEntry | None:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise CatalogEntryNotFoundError(f"No catalog entry for {filename}")
            current = CatalogEntry.from_dict(snapshot.to_dict() or {"filename": filename})
            updated = apply_fields(current, fields, guards)
            if updated is None:
                return None
            transaction.update(doc_ref, dict(fields))
            return updated

        try:
            return _txn(self._client.transaction())
        except AlbumError:
            raise
        except Exception as exc:
            raise RecoverableError(f"Firestore update failed: {exc}") from exc


_CHANGE_KINDS = {
    "ADDED": ChangeKind.INSERT,
    "MODIFIED": ChangeKind.MODIFY,
    "REMOVED": ChangeKind.REMOVE,
}


def change_record_from(change: Any) -> ChangeRecord | None:
    kind = _CHANGE_KINDS.get(getattr(change.type, "name", str(change.type)))
    if kind is None:
        return None
    data = change.document.to_dict() or {}
    filename = data.get("filename")
    if not filename:
        return None
    image = CatalogEntry.from_dict(data)
    if kind == ChangeKind.REMOVE:
        return ChangeRecord(kind, filename, old_image=image)
    return ChangeRecord(kind, filename, new_image=image)


class FirestoreChangeFeed:
    """Turns collection snapshot listener callbacks into change records.

    The first snapshot replays every existing document as ADDED; it is
    skipped so only mutations after start-up are delivered.
    """

    def __init__(
        self,
        client: firestore.Client,
        *,
        collection: str,
        listener: Callable[[ChangeRecord], None],
        skip_initial: bool = True,
    ) -> None:
        self._client = client
        self.collection = collection
        self.listener = listener
        self._skip_next = skip_initial
        self._watch: Any = None

    def start(self) -> None:
        self._watch = self._client.collection(self.collection).on_snapshot(
            self.on_snapshot
        )

    def stop(self) -> None:
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None

    def on_snapshot(self, _docs: Any, changes: Iterable[Any], _read_time: Any) -> None:
        if self._skip_next:
            self._skip_next = False
            return
        for change in changes:
            record = change_record_from(change)
            if record is None:
                continue
            try:
                self.listener(record)
            except Exception as exc:
                logger.exception(
                    "Change listener failed",
                    extra={"object_key": record.key, "error_message": str(exc)},
                )
