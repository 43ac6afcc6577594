import os
import uuid

import pytest

from album_core.config import get_config
from local_adapter.pipeline import build_local_pipeline


@pytest.fixture(autouse=True)
def _default_env(monkeypatch: pytest.MonkeyPatch):
    def set_default(name: str, value: str) -> None:
        if not os.getenv(name):
            monkeypatch.setenv(name, value)

    set_default("ENV", "test")
    set_default("LOG_LEVEL", "INFO")
    set_default("CATALOG_COLLECTION", "album_test")
    set_default("MAIL_FROM", "album@example.com")
    set_default("MAIL_TO", "owner@example.com")
    set_default("RAW_BUCKET", "test-raw")
    set_default("INGEST_TOPIC", "projects/test/topics/ingest")
    set_default("DLQ_TOPIC", "projects/test/topics/ingest-dlq")
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def pipeline():
    return build_local_pipeline(bucket="test-raw", object_store_uri=f"memory://{uuid.uuid4().hex}")

