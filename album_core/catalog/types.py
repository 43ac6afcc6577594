from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping

from album_core.errors import ValidationError


@dataclass(frozen=True)
class CatalogEntry:
    filename: str
    caption: str | None = None
    photographer: str | None = None
    date: str | None = None

    def to_dict(self) -> dict[str, str]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CatalogEntry":
        return cls(
            filename=str(data["filename"]),
            caption=_optional_str(data.get("caption")),
            photographer=_optional_str(data.get("photographer")),
            date=_optional_str(data.get("date")),
        )


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


@dataclass(frozen=True)
class ChangeRecord:
    event_kind: ChangeKind
    key: str
    new_image: CatalogEntry | None = None
    old_image: CatalogEntry | None = None


@dataclass(frozen=True)
class MetadataEvent:
    id: str
    caption: str
    photographer: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "MetadataEvent":
        if not isinstance(data, Mapping):
            raise ValidationError("Metadata message must be a JSON object")
        values: dict[str, str] = {}
        for name in ("id", "caption", "photographer"):
            value = data.get(name)
            if not isinstance(value, str):
                raise ValidationError(f"Metadata message field {name} must be a string")
            values[name] = value
        if not values["id"]:
            raise ValidationError("Metadata message id is required")
        return cls(**values)


@dataclass(frozen=True)
class UpdateOutcome:
    status: str
    filename: str
    entry: CatalogEntry | None = None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
