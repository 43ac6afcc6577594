class AlbumError(Exception):
    """Base error for the album pipeline."""


class RecoverableError(AlbumError):
    """Indicates the operation can be retried safely."""


class PermanentError(AlbumError):
    """Indicates the operation should not be retried."""


class ConfigError(AlbumError):
    """Required configuration is missing or malformed."""


class ValidationError(AlbumError):
    """Input validation failure."""


class InvalidFileTypeError(ValidationError):
    """Uploaded object key does not carry an allowed image extension."""


class NotFoundError(AlbumError):
    """A referenced object or record does not exist."""


class ObjectNotFoundError(NotFoundError):
    """Object is missing from the object store."""


class CatalogEntryNotFoundError(NotFoundError):
    """No catalog entry exists for the filename."""


def error_code_for(exc: BaseException) -> str:
    if isinstance(exc, InvalidFileTypeError):
        return "INVALID_FILE_TYPE"
    if isinstance(exc, ValidationError):
        return "VALIDATION"
    if isinstance(exc, ObjectNotFoundError):
        return "OBJECT_NOT_FOUND"
    if isinstance(exc, RecoverableError):
        return "RECOVERABLE"
    if isinstance(exc, PermanentError):
        return "PERMANENT"
    return "UNKNOWN"
