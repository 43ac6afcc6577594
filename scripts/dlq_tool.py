#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from typing import Iterable

from google.cloud import pubsub_v1

from album_core.ingestion.dlq import DlqPayload, is_dlq_payload
from album_core.notify.failure import extract_filename
from album_core.queue.types import decode_payload, encode_payload


def _subscription_path(
    client: pubsub_v1.SubscriberClient, project: str, sub: str
) -> str:
    if sub.startswith("projects/"):
        return sub
    return client.subscription_path(project, sub)


def _topic_path(client: pubsub_v1.PublisherClient, project: str, topic: str) -> str:
    if topic.startswith("projects/"):
        return topic
    return client.topic_path(project, topic)


def _release(
    subscriber: pubsub_v1.SubscriberClient, sub_path: str, ack_ids: list[str]
) -> None:
    subscriber.modify_ack_deadline(
        request={
            "subscription": sub_path,
            "ack_ids": ack_ids,
            "ack_deadline_seconds": 0,
        }
    )


def summarize(message_id: str, data: bytes) -> dict:
    payload = decode_payload(data)
    if not is_dlq_payload(payload):
        return {"message_id": message_id, "error_code": None, "object": None}
    dlq = DlqPayload.from_dict(payload)
    return {
        "message_id": message_id,
        "error_code": dlq.error_code,
        "attempt_count": dlq.attempt_count,
        "object": extract_filename(payload),
    }


def list_messages(project: str, subscription: str, limit: int) -> None:
    subscriber = pubsub_v1.SubscriberClient()
    sub_path = _subscription_path(subscriber, project, subscription)
    response = subscriber.pull(
        request={"subscription": sub_path, "max_messages": limit}
    )
    if not response.received_messages:
        print("No messages.")
        return
    ack_ids = []
    for received in response.received_messages:
        summary = summarize(received.message.message_id, received.message.data)
        print(json.dumps(summary, ensure_ascii=True))
        ack_ids.append(received.ack_id)
    _release(subscriber, sub_path, ack_ids)


def pull_messages(project: str, subscription: str, limit: int, ack: bool) -> None:
    subscriber = pubsub_v1.SubscriberClient()
    sub_path = _subscription_path(subscriber, project, subscription)
    response = subscriber.pull(
        request={"subscription": sub_path, "max_messages": limit}
    )
    if not response.received_messages:
        print("No messages.")
        return
    ack_ids = []
    for received in response.received_messages:
        payload = decode_payload(received.message.data)
        print(json.dumps(payload, indent=2, ensure_ascii=True))
        ack_ids.append(received.ack_id)
    if ack:
        subscriber.acknowledge(request={"subscription": sub_path, "ack_ids": ack_ids})
    else:
        _release(subscriber, sub_path, ack_ids)


def replay_messages(
    project: str,
    subscription: str,
    ingest_topic: str,
    limit: int,
    ack: bool,
) -> None:
    """Republish the original upload events onto the ingest topic."""
    subscriber = pubsub_v1.SubscriberClient()
    publisher = pubsub_v1.PublisherClient()
    sub_path = _subscription_path(subscriber, project, subscription)
    topic_path = _topic_path(publisher, project, ingest_topic)
    response = subscriber.pull(
        request={"subscription": sub_path, "max_messages": limit}
    )
    if not response.received_messages:
        print("No messages.")
        return
    ack_ids = []
    for received in response.received_messages:
        payload = decode_payload(received.message.data)
        if not is_dlq_payload(payload):
            print("Skipping message without dead-letter payload.")
            ack_ids.append(received.ack_id)
            continue
        dlq = DlqPayload.from_dict(payload)
        try:
            future = publisher.publish(topic_path, encode_payload(dlq.event))
            replay_id = future.result(timeout=30)
        except Exception as exc:
            print(f"Replay failed: {exc}")
            continue
        print(
            json.dumps(
                {
                    "message_id": received.message.message_id,
                    "replay_id": replay_id,
                    "object": extract_filename(payload),
                },
                ensure_ascii=True,
            )
        )
        ack_ids.append(received.ack_id)
    if ack and ack_ids:
        subscriber.acknowledge(request={"subscription": sub_path, "ack_ids": ack_ids})
    elif ack_ids:
        _release(subscriber, sub_path, ack_ids)


def main(argv: Iterable[str]) -> int:
    parser = argparse.ArgumentParser(description="Photo album DLQ helper")
    parser.add_argument("--project", required=True)
    parser.add_argument("--subscription", required=True)
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_cmd = subparsers.add_parser("list", help="List DLQ messages (peek)")
    list_cmd.add_argument("--limit", type=int, default=10)

    pull_cmd = subparsers.add_parser("pull", help="Pull DLQ messages")
    pull_cmd.add_argument("--limit", type=int, default=1)
    pull_cmd.add_argument("--ack", action="store_true")

    replay_cmd = subparsers.add_parser("replay", help="Replay DLQ messages")
    replay_cmd.add_argument("--limit", type=int, default=1)
    replay_cmd.add_argument("--ack", action="store_true")
    replay_cmd.add_argument("--ingest-topic", required=True)

    args = parser.parse_args(list(argv))
    if args.command == "list":
        list_messages(args.project, args.subscription, args.limit)
        return 0
    if args.command == "pull":
        pull_messages(args.project, args.subscription, args.limit, args.ack)
        return 0
    if args.command == "replay":
        replay_messages(
            args.project,
            args.subscription,
            args.ingest_topic,
            args.limit,
            args.ack,
        )
        return 0
    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
