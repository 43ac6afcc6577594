from __future__ import annotations

import posixpath
from typing import Protocol

import fsspec

from album_core.errors import ObjectNotFoundError, RecoverableError


class ObjectStore(Protocol):
    def exists(self, bucket: str, key: str) -> bool:
        ...

    def get(self, bucket: str, key: str) -> bytes:
        ...


class FsspecObjectStore(ObjectStore):
    """Object store laid out as ``<base_uri>/<bucket>/<key>`` on any fsspec filesystem."""

    def __init__(self, base_uri: str) -> None:
        self.base_uri = base_uri
        self.fs, self.base_path = fsspec.core.url_to_fs(base_uri)

    def path_for(self, bucket: str, key: str) -> str:
        return posixpath.join(self.base_path.rstrip("/"), bucket.strip("/"), key)

    def exists(self, bucket: str, key: str) -> bool:
        try:
            return bool(self.fs.exists(self.path_for(bucket, key)))
        except OSError as exc:
            raise RecoverableError(f"Object store unavailable: {exc}") from exc

    def get(self, bucket: str, key: str) -> bytes:
        path = self.path_for(bucket, key)
        try:
            return self.fs.cat_file(path)
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"Object not found: {bucket}/{key}") from exc
        except OSError as exc:
            raise RecoverableError(f"Object store unavailable: {exc}") from exc

    def put(self, bucket: str, key: str, data: bytes) -> None:
        path = self.path_for(bucket, key)
        self.fs.makedirs(posixpath.dirname(path), exist_ok=True)
        self.fs.pipe_file(path, data)

    def delete(self, bucket: str, key: str) -> None:
        path = self.path_for(bucket, key)
        if self.fs.exists(path):
            self.fs.rm_file(path)
