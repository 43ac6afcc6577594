from album_core.routing.router import TopicRouter, match_subscriptions, policy_matches
from album_core.routing.types import (
    DeliveryResult,
    FilterPolicy,
    FilterScope,
    Subscription,
    TopicMessage,
)

__all__ = [
    "DeliveryResult",
    "FilterPolicy",
    "FilterScope",
    "Subscription",
    "TopicMessage",
    "TopicRouter",
    "match_subscriptions",
    "policy_matches",
]
