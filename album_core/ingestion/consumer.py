from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable

from album_core.catalog.recorder import CatalogRecorder
from album_core.errors import AlbumError, error_code_for
from album_core.ingestion.storage_event import UploadEvent
from album_core.logging import get_logger
from album_core.queue.types import DeliveryEnvelope

logger = get_logger(__name__)


@dataclass(frozen=True)
class ItemOutcome:
    message_id: str
    status: str
    object_key: str | None = None
    record_status: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class BatchResult:
    outcomes: tuple[ItemOutcome, ...]

    @property
    def failures(self) -> list[ItemOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def failed_message_ids(self) -> list[str]:
        return [outcome.message_id for outcome in self.failures]

    def outcome_for(self, message_id: str) -> ItemOutcome | None:
        for outcome in self.outcomes:
            if outcome.message_id == message_id:
                return outcome
        return None


class IngestConsumer:
    """Drives the catalog recorder for a batch of upload envelopes.

    Every item is processed on its own: a failing item is reported in the
    batch result and never stops its siblings.
    """

    def __init__(self, recorder: CatalogRecorder) -> None:
        self.recorder = recorder

    def process_batch(self, envelopes: Iterable[DeliveryEnvelope]) -> BatchResult:
        return BatchResult(
            outcomes=tuple(self.process_item(envelope) for envelope in envelopes)
        )

    def process_item(self, envelope: DeliveryEnvelope) -> ItemOutcome:
        started = time.monotonic()
        object_key: str | None = None
        try:
            event = UploadEvent.from_dict(envelope.payload)
            object_key = event.object_key
            outcome = self.recorder.record(event)
        except AlbumError as exc:
            error_code = error_code_for(exc)
            logger.warning(
                "Ingest item failed",
                extra={
                    "message_id": envelope.message_id,
                    "object_key": object_key,
                    "attempt_count": envelope.receive_count,
                    "error_code": error_code,
                    "error_message": str(exc),
                },
            )
            return ItemOutcome(
                message_id=envelope.message_id,
                status="failed",
                object_key=object_key,
                error_code=error_code,
                error_message=str(exc),
            )
        except Exception as exc:
            logger.exception(
                "Ingest item failed (unexpected)",
                extra={
                    "message_id": envelope.message_id,
                    "object_key": object_key,
                    "attempt_count": envelope.receive_count,
                    "error_code": "UNKNOWN",
                    "error_message": str(exc),
                },
            )
            return ItemOutcome(
                message_id=envelope.message_id,
                status="failed",
                object_key=object_key,
                error_code="UNKNOWN",
                error_message=str(exc),
            )

        logger.info(
            "Ingest item processed",
            extra={
                "message_id": envelope.message_id,
                "object_key": object_key,
                "event_kind": event.event_kind.value,
                "attempt_count": envelope.receive_count,
                "status": outcome.status,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return ItemOutcome(
            message_id=envelope.message_id,
            status="ok",
            object_key=object_key,
            record_status=outcome.status,
        )
