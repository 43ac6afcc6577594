from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from album_core.catalog.types import MetadataEvent
from album_core.config import Config
from album_core.errors import ConfigError
from album_core.ingestion.harness import HarnessStats
from local_adapter.pipeline import LocalPipeline, build_local_pipeline

DEFAULT_OBJECTS_URI = "file://./album_data/objects"


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _summary(pipeline: LocalPipeline, stats: HarnessStats) -> dict[str, Any]:
    return {
        "catalog": [entry.to_dict() for entry in pipeline.catalog.items()],
        "mail": [
            {"subject": message.subject, "recipient": message.recipient}
            for message in pipeline.mail.outbox
        ],
        "stats": asdict(stats),
    }


def _pipeline_from_args(args: argparse.Namespace) -> LocalPipeline:
    allowed = tuple(ext.strip() for ext in args.allowed_ext.split(",") if ext.strip())
    return build_local_pipeline(
        bucket=args.bucket,
        object_store_uri=args.objects,
        allowed_extensions=allowed,
        max_receive_count=args.max_receive_count,
        failure_mail=args.failure_mail,
    )


def _replay_line(pipeline: LocalPipeline, line: dict[str, Any]) -> None:
    if "metadata" in line:
        event = MetadataEvent.from_dict(line["metadata"])
        pipeline.annotate(event, line.get("metadata_type", "Caption"))
        return
    if "notification" in line:
        pipeline.publish_notification(line["notification"], line.get("attributes"))
        return
    pipeline.publish_notification(line)


def cmd_replay(args: argparse.Namespace) -> int:
    pipeline = _pipeline_from_args(args)
    stats = HarnessStats()
    path = Path(args.path)
    with path.open("r", encoding="utf-8") as handle:
        for number, raw in enumerate(handle, start=1):
            raw = raw.strip()
            if not raw:
                continue
            try:
                line = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{number}: invalid JSON") from exc
            _replay_line(pipeline, line)
            # Metadata lines must see the catalog state of earlier uploads.
            stats.merge(asyncio.run(pipeline.settle()))
    _print_json(_summary(pipeline, stats))
    return 0


def cmd_upload(args: argparse.Namespace) -> int:
    pipeline = _pipeline_from_args(args)
    stats = HarnessStats()
    for raw_path in args.files:
        path = Path(raw_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        pipeline.upload(path.name, path.read_bytes())
    stats.merge(asyncio.run(pipeline.settle()))
    if args.caption or args.photographer:
        for raw_path in args.files:
            pipeline.annotate(
                MetadataEvent(
                    id=Path(raw_path).name,
                    caption=args.caption or "",
                    photographer=args.photographer or "",
                )
            )
    _print_json(_summary(pipeline, stats))
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    try:
        config = Config.from_env()
    except ConfigError as exc:
        print(f"config: missing ({exc})")
        return 1
    checks = [
        ("config", True, config.env),
        ("SENDGRID_API_KEY", bool(config.sendgrid_api_key), "set" if config.sendgrid_api_key else "unset"),
        ("INGEST_TOPIC", bool(config.ingest_topic), config.ingest_topic or "unset"),
        ("INGEST_SUBSCRIPTION", bool(config.ingest_subscription), config.ingest_subscription or "unset"),
        ("DLQ_TOPIC", bool(config.dlq_topic), config.dlq_topic or "unset"),
    ]
    ok = True
    for name, passed, info in checks:
        status = "ok" if passed else "missing"
        if not passed:
            ok = False
        print(f"{name}: {status} ({info})")
    return 0 if ok else 1


def _add_pipeline_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--bucket", default=os.getenv("RAW_BUCKET", "album-uploads"))
    parser.add_argument(
        "--objects",
        default=os.getenv("OBJECT_STORE_URI", DEFAULT_OBJECTS_URI),
        help="fsspec URI holding <bucket>/<key> objects",
    )
    parser.add_argument(
        "--allowed-ext",
        default=os.getenv("ALLOWED_IMAGE_EXT", ".jpeg,.png"),
    )
    parser.add_argument(
        "--max-receive-count",
        type=int,
        default=int(os.getenv("INGEST_MAX_RECEIVE_COUNT", "1")),
    )
    parser.add_argument(
        "--failure-mail",
        action="store_true",
        help="Send rejection mail for dead-lettered uploads",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="album")
    subparsers = parser.add_subparsers(dest="command")

    replay_parser = subparsers.add_parser(
        "replay",
        help="Replay JSONL notifications through the local pipeline",
    )
    replay_parser.add_argument("path")
    _add_pipeline_args(replay_parser)
    replay_parser.set_defaults(func=cmd_replay)

    upload_parser = subparsers.add_parser(
        "upload",
        help="Upload local files through the local pipeline",
    )
    upload_parser.add_argument("files", nargs="+")
    upload_parser.add_argument("--caption")
    upload_parser.add_argument("--photographer")
    _add_pipeline_args(upload_parser)
    upload_parser.set_defaults(func=cmd_upload)

    doctor_parser = subparsers.add_parser("doctor", help="Check deployment configuration")
    doctor_parser.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "command", None):
        parser.print_help()
        return 2
    try:
        return args.func(args)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
