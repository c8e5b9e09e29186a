"""
Canonical message schema shared by publishers and consumers.

Every message body is a JSON envelope:

    {"event_type": "order.created", "payload": {...}, "timestamp": "2026-01-01T10:00:00+00:00"}

Each message family has its own durable queue; the envelope still carries the
discriminator so consumers can route on it.
"""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import pika
from pika.adapters.blocking_connection import BlockingChannel

RETRY_HEADER = "x-retries"
DLQ_REASON_HEADER = "x-dlq-reason"
DLQ_SUFFIX = ".dlq"
RETRY_SUFFIX = ".retry"
TTL_HEADER = "x-ttl-ms"


class EventType(str, Enum):
    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    ORDER_DELETED = "order.deleted"
    CUSTOMER_CREATED = "customer.created"
    CUSTOMER_UPDATED = "customer.updated"
    CUSTOMER_DELETED = "customer.deleted"
    INVENTORY_UPDATED = "inventory.updated"
    NOTIFICATION = "notification"
    AUDIT = "audit"
    ORDER_FEEDBACK = "order.feedback"


class Queues:
    ORDERS_CREATED = "orders.created"
    ORDERS_UPDATED = "orders.updated"
    ORDERS_DELETED = "orders.deleted"
    CUSTOMERS = "customers.sync"
    INVENTORY = "inventory.update"
    NOTIFICATIONS = "notifications"
    AUDIT = "audit"
    FEEDBACK = "orders.feedback"


QUEUE_BY_EVENT = {
    EventType.ORDER_CREATED: Queues.ORDERS_CREATED,
    EventType.ORDER_UPDATED: Queues.ORDERS_UPDATED,
    EventType.ORDER_DELETED: Queues.ORDERS_DELETED,
    EventType.CUSTOMER_CREATED: Queues.CUSTOMERS,
    EventType.CUSTOMER_UPDATED: Queues.CUSTOMERS,
    EventType.CUSTOMER_DELETED: Queues.CUSTOMERS,
    EventType.INVENTORY_UPDATED: Queues.INVENTORY,
    EventType.NOTIFICATION: Queues.NOTIFICATIONS,
    EventType.AUDIT: Queues.AUDIT,
    EventType.ORDER_FEEDBACK: Queues.FEEDBACK,
}


def queue_for(event_type: EventType) -> str:
    return QUEUE_BY_EVENT[EventType(event_type)]


def dead_letter_queue(queue_name: str) -> str:
    return f"{queue_name}{DLQ_SUFFIX}"


def retry_queue(queue_name: str) -> str:
    return f"{queue_name}{RETRY_SUFFIX}"


class MalformedMessage(Exception):
    """Body cannot be turned into a domain object. Never worth retrying."""


def new_message_id() -> str:
    return str(uuid.uuid4())


def build_envelope(event_type: EventType, payload: Dict[str, Any], timestamp: datetime) -> bytes:
    envelope = {
        "event_type": EventType(event_type).value,
        "payload": payload,
        "timestamp": timestamp.astimezone(timezone.utc).isoformat(),
    }
    return json.dumps(envelope).encode("utf-8")


def read_envelope(body: bytes) -> Dict[str, Any]:
    try:
        envelope = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessage(f"Invalid JSON message: {e}") from e

    if not isinstance(envelope, dict) or not isinstance(envelope.get("payload"), dict):
        raise MalformedMessage("Envelope has no payload object")
    if "event_type" not in envelope:
        raise MalformedMessage("Envelope has no event_type")
    return envelope


def message_properties(
    event_type: EventType,
    message_id: str,
    timestamp: datetime,
    headers: Optional[Dict[str, Any]] = None,
) -> pika.BasicProperties:
    return pika.BasicProperties(
        content_type="application/json",
        delivery_mode=2,  # persistent
        message_id=message_id,
        timestamp=int(timestamp.timestamp()),
        type=EventType(event_type).value,
        headers={RETRY_HEADER: 0, **(headers or {})},
    )


def copy_properties(
    properties: pika.BasicProperties,
    headers: Dict[str, Any],
    expiration_ms: Optional[int] = None,
) -> pika.BasicProperties:
    """Same message identity, new headers. Always persistent."""
    # per-message TTL: expiration is a string in ms
    expiration = str(int(expiration_ms)) if expiration_ms is not None else None
    return pika.BasicProperties(
        content_type=properties.content_type or "application/json",
        delivery_mode=2,  # persistent
        message_id=properties.message_id,
        correlation_id=properties.correlation_id,
        timestamp=properties.timestamp,
        type=properties.type,
        headers=headers,
        expiration=expiration,
    )


def get_retry_count(properties: pika.BasicProperties) -> int:
    headers = properties.headers or {}
    try:
        return int(headers.get(RETRY_HEADER, 0))
    except (TypeError, ValueError):
        return 0


def declare_queue(channel: BlockingChannel, queue_name: str):
    # idempotent as long as the attributes match an existing declaration
    channel.queue_declare(queue=queue_name, durable=True, auto_delete=False)


def declare_retry_queue(channel: BlockingChannel, queue_name: str):
    """
    Parking queue for delayed retries of `queue_name`.

    No x-message-ttl on the queue: each message carries its own expiration and
    is dead-lettered back onto the main queue when it expires.
    """
    channel.queue_declare(
        queue=retry_queue(queue_name),
        durable=True,
        auto_delete=False,
        arguments={
            "x-dead-letter-exchange": "",
            "x-dead-letter-routing-key": queue_name,
        },
    )
