from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Iterable, Protocol

from album_core.config import Config
from album_core.ingestion.consumer import BatchResult, ItemOutcome
from album_core.ingestion.dlq import DeadLetterPublisher
from album_core.ingestion.retry import RetryAction, RetryPolicy
from album_core.logging import get_logger
from album_core.queue.types import DeliveryEnvelope, MessageQueue

logger = get_logger(__name__)


class BatchConsumer(Protocol):
    def process_batch(self, envelopes: Iterable[DeliveryEnvelope]) -> BatchResult: ...


@dataclass(frozen=True)
class HarnessSettings:
    batch_size: int = 5
    batch_window_s: float = 5.0
    max_concurrency: int = 2
    timeout_s: float = 10.0

    @classmethod
    def from_config(cls, config: Config) -> "HarnessSettings":
        return cls(
            batch_size=config.ingest_batch_size,
            batch_window_s=config.ingest_batch_window_seconds,
            max_concurrency=config.ingest_max_concurrency,
            timeout_s=config.ingest_timeout_seconds,
        )


@dataclass
class HarnessStats:
    batches: int = 0
    received: int = 0
    acked: int = 0
    retried: int = 0
    dead_lettered: int = 0
    timed_out: int = 0

    def merge(self, other: "HarnessStats") -> None:
        self.batches += other.batches
        self.received += other.received
        self.acked += other.acked
        self.retried += other.retried
        self.dead_lettered += other.dead_lettered
        self.timed_out += other.timed_out


def _fail_all(
    envelopes: Iterable[DeliveryEnvelope],
    error_code: str,
    error_message: str,
) -> BatchResult:
    return BatchResult(
        outcomes=tuple(
            ItemOutcome(
                message_id=envelope.message_id,
                status="failed",
                error_code=error_code,
                error_message=error_message,
            )
            for envelope in envelopes
        )
    )


class QueueConsumerHarness:
    """Receives batches from a queue and settles every envelope.

    Successful items are acked. Failed items are either nacked for
    redelivery or moved to the dead-letter publisher, as decided by the
    retry policy. A batch that exceeds ``timeout_s`` or whose consumer
    raises fails as a whole.
    """

    def __init__(
        self,
        *,
        queue: MessageQueue,
        consumer: BatchConsumer,
        policy: RetryPolicy,
        dead_letter: DeadLetterPublisher | None = None,
        settings: HarnessSettings | None = None,
        name: str = "ingest",
        idle_sleep_s: float = 0.1,
    ) -> None:
        self.idle_sleep_s = idle_sleep_s
        self.queue = queue
        self.consumer = consumer
        self.policy = policy
        self.dead_letter = dead_letter
        self.settings = settings or HarnessSettings()
        self.name = name

    async def run_batch(self) -> HarnessStats:
        stats = HarnessStats()
        envelopes = await self.queue.receive(
            self.settings.batch_size,
            self.settings.batch_window_s,
        )
        if not envelopes:
            return stats
        stats.batches = 1
        stats.received = len(envelopes)
        started = time.monotonic()

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self.consumer.process_batch, envelopes),
                timeout=self.settings.timeout_s,
            )
        except asyncio.TimeoutError:
            stats.timed_out = 1
            logger.error(
                "Batch timed out",
                extra={
                    "subscription": self.name,
                    "batch_size": len(envelopes),
                    "error_code": "TIMEOUT",
                },
            )
            result = _fail_all(envelopes, "TIMEOUT", "Batch invocation timed out")
        except Exception as exc:
            logger.exception(
                "Batch consumer failed",
                extra={
                    "subscription": self.name,
                    "batch_size": len(envelopes),
                    "error_code": "UNKNOWN",
                    "error_message": str(exc),
                },
            )
            result = _fail_all(envelopes, "UNKNOWN", str(exc))

        for envelope in envelopes:
            outcome = result.outcome_for(envelope.message_id)
            if outcome is not None and outcome.ok:
                await self.queue.ack(envelope)
                stats.acked += 1
                continue
            await self._settle_failure(envelope, outcome, stats)

        logger.info(
            "Batch settled",
            extra={
                "subscription": self.name,
                "batch_size": len(envelopes),
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return stats

    async def _settle_failure(
        self,
        envelope: DeliveryEnvelope,
        outcome: ItemOutcome | None,
        stats: HarnessStats,
    ) -> None:
        error_code = outcome.error_code if outcome and outcome.error_code else "UNKNOWN"
        error_message = outcome.error_message if outcome and outcome.error_message else ""

        if self.policy.decide(envelope) == RetryAction.RETRY:
            await self.queue.nack(envelope)
            stats.retried += 1
            return

        if self.dead_letter is None:
            logger.error(
                "Dropping message: retries exhausted and no dead-letter topic",
                extra={
                    "subscription": self.name,
                    "message_id": envelope.message_id,
                    "attempt_count": envelope.receive_count,
                    "error_code": error_code,
                },
            )
            await self.queue.ack(envelope)
            stats.dead_lettered += 1
            return

        try:
            await asyncio.to_thread(
                self.dead_letter.publish,
                envelope=envelope,
                error_code=error_code,
                error_message=error_message,
            )
        except Exception as exc:
            logger.exception(
                "Dead-letter publish failed",
                extra={
                    "subscription": self.name,
                    "message_id": envelope.message_id,
                    "error_message": str(exc),
                },
            )
            await self.queue.nack(envelope)
            stats.retried += 1
            return
        await self.queue.ack(envelope)
        stats.dead_lettered += 1

    async def _worker(self) -> HarnessStats:
        stats = HarnessStats()
        while True:
            batch_stats = await self.run_batch()
            if batch_stats.received == 0:
                return stats
            stats.merge(batch_stats)

    async def drain(self) -> HarnessStats:
        """Run ``max_concurrency`` workers until the queue yields an empty batch."""
        results = await asyncio.gather(
            *(self._worker() for _ in range(max(1, self.settings.max_concurrency)))
        )
        total = HarnessStats()
        for stats in results:
            total.merge(stats)
        return total

    async def run_forever(self, stop: asyncio.Event) -> HarnessStats:
        total = HarnessStats()

        async def _loop() -> None:
            while not stop.is_set():
                stats = await self.run_batch()
                total.merge(stats)
                if stats.received == 0:
                    await asyncio.sleep(self.idle_sleep_s)

        await asyncio.gather(
            *(_loop() for _ in range(max(1, self.settings.max_concurrency)))
        )
        return total
