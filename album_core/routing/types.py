from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping


class FilterScope(str, Enum):
    ATTRIBUTES = "attributes"
    BODY = "body"


@dataclass(frozen=True)
class FilterPolicy:
    """Conjunction of allowlist checks over message attributes or body paths.

    Body paths are dotted (``Records.eventName``); a path that walks through
    a list matches when any element matches.
    """

    fields: Mapping[str, tuple[str, ...]]
    scope: FilterScope = FilterScope.ATTRIBUTES


@dataclass(frozen=True)
class TopicMessage:
    body: Any
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Subscription:
    name: str
    deliver: Callable[[TopicMessage], object]
    policy: FilterPolicy | None = None


@dataclass(frozen=True)
class DeliveryResult:
    subscription: str
    status: str
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == "failed"
