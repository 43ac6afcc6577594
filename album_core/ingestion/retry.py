from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from album_core.queue.types import DeliveryEnvelope


class RetryAction(str, Enum):
    RETRY = "retry"
    DEAD_LETTER = "dead_letter"


@dataclass(frozen=True)
class RetryPolicy:
    """Decides what happens to an envelope whose processing failed.

    ``receive_count`` already includes the failed attempt, so with
    ``max_receive_count=1`` the first failure dead-letters the envelope.
    """

    max_receive_count: int = 1

    def __post_init__(self) -> None:
        if self.max_receive_count < 1:
            raise ValueError("max_receive_count must be at least 1")

    def decide(self, envelope: DeliveryEnvelope) -> RetryAction:
        return self.decide_for_count(envelope.receive_count)

    def decide_for_count(self, receive_count: int) -> RetryAction:
        if receive_count >= self.max_receive_count:
            return RetryAction.DEAD_LETTER
        return RetryAction.RETRY
