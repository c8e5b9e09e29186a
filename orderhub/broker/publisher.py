"""
RabbitMQ Publisher - publishes order / customer events onto durable queues

Fire-and-forget from the broker's routing perspective: no publisher confirms.
Durability comes from the durable queue plus persistent messages. Failures
surface as IntegrationError and are never retried here.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import pika

from orderhub.broker.connection import BrokerConnection
from orderhub.broker.messages import (
    EventType,
    build_envelope,
    declare_queue,
    message_properties,
    new_message_id,
    queue_for,
)
from orderhub.errors import IntegrationError
from orderhub.schemas import Customer, Order, TrackingRecord

logger = logging.getLogger(__name__)


class QueuePublisher:

    def __init__(
        self,
        broker: BrokerConnection,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.broker = broker
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._metrics_lock = threading.Lock()
        self.metrics = {
            'published': 0,
            'failed': 0,
        }

    def publish(self, queue_name: str, payload: Dict[str, Any], event_type: EventType) -> TrackingRecord:
        """
        Publish one message.

        Args:
            queue_name: target durable queue (declared if missing)
            payload: JSON-serializable domain payload
            event_type: envelope discriminator

        Returns:
            TrackingRecord whose message_id is the tracking id
        """
        message_id = new_message_id()
        now = self.clock()
        body = build_envelope(event_type, payload, now)

        try:
            with self.broker.channel() as channel:
                declare_queue(channel, queue_name)
                channel.basic_publish(
                    exchange="",
                    routing_key=queue_name,
                    body=body,
                    properties=message_properties(event_type, message_id, now),
                )
        except IntegrationError:
            self._count('failed')
            raise
        except (pika.exceptions.AMQPError, ConnectionError) as e:
            self._count('failed')
            logger.error(f"Failed to publish {event_type.value} to '{queue_name}': {e}")
            raise IntegrationError("Message broker unavailable") from e

        self._count('published')
        logger.info(
            f"Message published - Queue: {queue_name}, "
            f"Type: {event_type.value}, TrackingID: {message_id}"
        )
        return TrackingRecord(message_id=message_id, queue=queue_name, timestamp=now)

    def publish_event(self, event_type: EventType, payload: Dict[str, Any]) -> TrackingRecord:
        """Publish onto the queue owned by the event's family."""
        return self.publish(queue_for(event_type), payload, event_type)

    def publish_order_created(self, order: Order) -> TrackingRecord:
        return self.publish_event(EventType.ORDER_CREATED, order.model_dump(mode="json"))

    def publish_order_updated(self, order: Order) -> TrackingRecord:
        return self.publish_event(EventType.ORDER_UPDATED, order.model_dump(mode="json"))

    def publish_order_deleted(self, order_id: int, reason: str) -> TrackingRecord:
        return self.publish_event(
            EventType.ORDER_DELETED,
            {"order_id": order_id, "reason": reason},
        )

    def publish_customer(self, customer: Customer, event_type: EventType) -> TrackingRecord:
        if event_type not in (
            EventType.CUSTOMER_CREATED,
            EventType.CUSTOMER_UPDATED,
            EventType.CUSTOMER_DELETED,
        ):
            raise ValueError(f"Not a customer event: {event_type}")
        return self.publish_event(event_type, customer.model_dump(mode="json"))

    def _count(self, name: str):
        with self._metrics_lock:
            self.metrics[name] += 1

    def get_metrics(self) -> Dict[str, int]:
        with self._metrics_lock:
            return self.metrics.copy()
