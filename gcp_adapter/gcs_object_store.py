from __future__ import annotations

from google.api_core import exceptions as google_exceptions
from google.cloud import storage

from album_core.errors import ObjectNotFoundError, RecoverableError
from album_core.storage.object_store import ObjectStore


class GcsObjectStore(ObjectStore):
    def __init__(
        self,
        client: storage.Client | None = None,
        *,
        project_id: str | None = None,
    ) -> None:
        self.client = client or storage.Client(project=project_id)

    def exists(self, bucket: str, key: str) -> bool:
        try:
            return bool(self.client.bucket(bucket).blob(key).exists())
        except google_exceptions.GoogleAPICallError as exc:
            raise RecoverableError(f"GCS lookup failed: {exc}") from exc

    def get(self, bucket: str, key: str) -> bytes:
        try:
            return self.client.bucket(bucket).blob(key).download_as_bytes()
        except google_exceptions.NotFound as exc:
            raise ObjectNotFoundError(f"Object not found: {bucket}/{key}") from exc
        except google_exceptions.GoogleAPICallError as exc:
            raise RecoverableError(f"GCS download failed: {exc}") from exc
