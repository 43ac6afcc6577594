from __future__ import annotations

from typing import Any, Iterable

from album_core.logging import get_logger
from album_core.routing.types import (
    DeliveryResult,
    FilterPolicy,
    FilterScope,
    Subscription,
    TopicMessage,
)

logger = get_logger(__name__)


def policy_matches(policy: FilterPolicy | None, message: TopicMessage) -> bool:
    if policy is None:
        return True
    for path, allowlist in policy.fields.items():
        if policy.scope == FilterScope.ATTRIBUTES:
            value = message.attributes.get(path)
            candidates = [] if value is None else [value]
        else:
            candidates = _values_at(message.body, path.split("."))
        if not any(_as_text(value) in allowlist for value in candidates):
            return False
    return True


def match_subscriptions(
    message: TopicMessage,
    subscriptions: Iterable[Subscription],
) -> list[tuple[Subscription, bool]]:
    return [
        (subscription, policy_matches(subscription.policy, message))
        for subscription in subscriptions
    ]


class TopicRouter:
    def __init__(self, subscriptions: Iterable[Subscription]) -> None:
        self.subscriptions = tuple(subscriptions)
        names = [subscription.name for subscription in self.subscriptions]
        if len(set(names)) != len(names):
            raise ValueError("Subscription names must be unique")

    def route(self, message: TopicMessage) -> list[tuple[Subscription, bool]]:
        return match_subscriptions(message, self.subscriptions)

    def publish(self, message: TopicMessage) -> list[DeliveryResult]:
        results: list[DeliveryResult] = []
        for subscription, matched in self.route(message):
            if not matched:
                results.append(
                    DeliveryResult(subscription=subscription.name, status="filtered")
                )
                continue
            try:
                subscription.deliver(message)
            except Exception as exc:
                logger.exception(
                    "Subscription delivery failed",
                    extra={
                        "subscription": subscription.name,
                        "error_message": str(exc),
                    },
                )
                results.append(
                    DeliveryResult(
                        subscription=subscription.name,
                        status="failed",
                        error=str(exc),
                    )
                )
                continue
            results.append(
                DeliveryResult(subscription=subscription.name, status="delivered")
            )
        return results


def _values_at(node: Any, parts: list[str]) -> list[Any]:
    if isinstance(node, list):
        values: list[Any] = []
        for item in node:
            values.extend(_values_at(item, parts))
        return values
    if not parts:
        return [node]
    if not isinstance(node, dict) or parts[0] not in node:
        return []
    return _values_at(node[parts[0]], parts[1:])


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
