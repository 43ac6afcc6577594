import os
from dataclasses import dataclass
from functools import lru_cache

from album_core.errors import ConfigError


@dataclass(frozen=True)
class Config:
    env: str
    log_level: str
    catalog_collection: str
    mail_from: str
    mail_to: str
    gcp_project: str | None
    region: str | None
    raw_bucket: str
    object_store_uri: str | None
    allowed_image_ext: tuple[str, ...]
    ingest_topic: str | None
    ingest_subscription: str | None
    dlq_topic: str | None
    ingest_max_receive_count: int
    ingest_batch_size: int
    ingest_batch_window_seconds: float
    ingest_max_concurrency: int
    ingest_timeout_seconds: float
    sendgrid_api_key: str | None
    mail_sender_name: str
    failure_mail_enabled: bool
    version: str

    def object_uri(self, key: str, bucket: str | None = None) -> str:
        return f"gs://{bucket or self.raw_bucket}/{key}"

    @classmethod
    def from_env(cls) -> "Config":
        missing: list[str] = []

        def require(name: str) -> str:
            value = os.getenv(name)
            if value is None or value.strip() == "":
                missing.append(name)
                return ""
            return value.strip()

        env = require("ENV")
        log_level = require("LOG_LEVEL")
        catalog_collection = require("CATALOG_COLLECTION")
        mail_from = require("MAIL_FROM")
        mail_to = require("MAIL_TO")

        if missing:
            missing_str = ", ".join(missing)
            raise ConfigError(f"Missing required env vars: {missing_str}")

        max_receive_count = _parse_int("INGEST_MAX_RECEIVE_COUNT", "1")
        if max_receive_count < 1:
            raise ConfigError("INGEST_MAX_RECEIVE_COUNT must be at least 1")
        batch_size = _parse_int("INGEST_BATCH_SIZE", "5")
        if batch_size < 1:
            raise ConfigError("INGEST_BATCH_SIZE must be at least 1")
        max_concurrency = _parse_int("INGEST_MAX_CONCURRENCY", "2")
        if max_concurrency < 1:
            raise ConfigError("INGEST_MAX_CONCURRENCY must be at least 1")

        return cls(
            env=env,
            log_level=log_level,
            catalog_collection=catalog_collection,
            mail_from=mail_from,
            mail_to=mail_to,
            gcp_project=os.getenv("GCP_PROJECT") or None,
            region=os.getenv("REGION") or None,
            raw_bucket=os.getenv("RAW_BUCKET", "album-uploads"),
            object_store_uri=os.getenv("OBJECT_STORE_URI") or None,
            allowed_image_ext=_parse_ext_list(
                os.getenv("ALLOWED_IMAGE_EXT", ".jpeg,.png")
            ),
            ingest_topic=os.getenv("INGEST_TOPIC") or None,
            ingest_subscription=os.getenv("INGEST_SUBSCRIPTION") or None,
            dlq_topic=os.getenv("DLQ_TOPIC") or None,
            ingest_max_receive_count=max_receive_count,
            ingest_batch_size=batch_size,
            ingest_batch_window_seconds=_parse_float(
                os.getenv("INGEST_BATCH_WINDOW_SECONDS", "5")
            ),
            ingest_max_concurrency=max_concurrency,
            ingest_timeout_seconds=_parse_float(
                os.getenv("INGEST_TIMEOUT_SECONDS", "10")
            ),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY") or None,
            mail_sender_name=os.getenv("MAIL_SENDER_NAME", "The Photo Album"),
            failure_mail_enabled=_parse_bool(os.getenv("FAILURE_MAIL_ENABLED"), False),
            version=os.getenv("ALBUM_VERSION", "dev"),
        )


def _parse_ext_list(value: str) -> tuple[str, ...]:
    items = []
    for raw in value.split(","):
        cleaned = raw.strip()
        if not cleaned:
            continue
        if not cleaned.startswith("."):
            cleaned = f".{cleaned}"
        items.append(cleaned)
    return tuple(items)


def _parse_int(name: str, default: str) -> int:
    value = os.getenv(name, default)
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer") from exc


def _parse_float(value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid float value: {value}") from exc


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


@lru_cache(maxsize=1)
def get_config() -> Config:
    return Config.from_env()
