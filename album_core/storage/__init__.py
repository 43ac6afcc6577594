from album_core.storage.object_store import FsspecObjectStore, ObjectStore

__all__ = ["FsspecObjectStore", "ObjectStore"]
