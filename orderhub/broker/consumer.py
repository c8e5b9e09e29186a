"""
RabbitMQ Consumer - delivers queued orders to a downstream adapter (the CRM)

Per message:  Received -> Processing -> Acknowledged | Requeued | Dead-lettered

- prefetch 1: one message in flight per consumer
- manual acknowledgements only
- malformed messages go straight to the dead-letter queue
- adapter failures are retried; with a retry budget the message carries an
  x-retries counter, waits in <queue>.retry with an exponential per-message
  TTL, and is dead-lettered once the budget is spent
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import pika
from pika.adapters.blocking_connection import BlockingChannel
from pydantic import ValidationError as PydanticValidationError

from orderhub.broker.connection import BrokerConnection
from orderhub.broker.messages import (
    DLQ_REASON_HEADER,
    RETRY_HEADER,
    TTL_HEADER,
    EventType,
    MalformedMessage,
    Queues,
    build_envelope,
    copy_properties,
    dead_letter_queue,
    declare_queue,
    declare_retry_queue,
    get_retry_count,
    message_properties,
    new_message_id,
    read_envelope,
    retry_queue,
)
from orderhub.errors import IntegrationError
from orderhub.schemas import FeedbackEvent, Order

logger = logging.getLogger(__name__)

PREFETCH_COUNT = 1
BASE_RETRY_TTL_MS = 2000
MAX_RETRY_TTL_MS = 60000


class OrderAdapter(ABC):
    """Downstream system fed by a consumer"""

    name = "downstream"

    @abstractmethod
    def deliver(self, order: Order) -> bool:
        """
        Hand an order to the downstream system

        Returns:
            True if accepted, False if the message should be retried
        """


def retry_delay_ms(retry: int, base_ms: int = BASE_RETRY_TTL_MS, cap_ms: int = MAX_RETRY_TTL_MS) -> int:
    """Delay before the n-th retry (1-based): base, 2x base, 4x base, ... capped."""
    return min(cap_ms, base_ms * (2 ** (retry - 1)))


def decode_order(body: bytes) -> Order:
    envelope = read_envelope(body)
    try:
        return Order.model_validate(envelope["payload"])
    except PydanticValidationError as e:
        raise MalformedMessage(f"Payload is not a valid order: {e.error_count()} error(s)") from e


class QueueConsumer:
    """
    Consumes exactly one queue.

    max_retries=None keeps the plain at-least-once policy: every failure is
    nacked with requeue and there is no upper bound on redeliveries.
    """

    def __init__(
        self,
        queue_name: str,
        adapter: OrderAdapter,
        broker: BrokerConnection,
        max_retries: Optional[int] = 5,
        feedback_queue: Optional[str] = Queues.FEEDBACK,
        reconnect_delay: float = 2.0,
        base_retry_ttl_ms: int = BASE_RETRY_TTL_MS,
        max_retry_ttl_ms: int = MAX_RETRY_TTL_MS,
    ):
        self.queue_name = queue_name
        self.dlq_name = dead_letter_queue(queue_name)
        self.retry_name = retry_queue(queue_name)
        self.adapter = adapter
        self.broker = broker
        self.max_retries = max_retries
        self.feedback_queue = feedback_queue
        self.reconnect_delay = reconnect_delay
        self.base_retry_ttl_ms = base_retry_ttl_ms
        self.max_retry_ttl_ms = max_retry_ttl_ms

        self._stopping = threading.Event()
        self._channel: Optional[BlockingChannel] = None

        self._metrics_lock = threading.Lock()
        self.metrics = {
            'received': 0,
            'processed': 0,
            'requeued': 0,
            'dead_lettered': 0,
        }

    # ---------------- lifecycle ----------------

    def run(self):
        """Consume until stop() is called. Reconnects on broker failures."""
        self._stopping.clear()
        logger.info(f"Starting consumer for queue '{self.queue_name}'")

        while not self._stopping.is_set():
            try:
                with self.broker.channel() as channel:
                    self._declare(channel)
                    channel.basic_qos(prefetch_count=PREFETCH_COUNT)
                    channel.basic_consume(
                        queue=self.queue_name,
                        on_message_callback=self._on_message,
                        auto_ack=False,
                    )
                    self._channel = channel
                    if self._stopping.is_set():
                        break
                    logger.info(f"Consuming '{self.queue_name}' with prefetch={PREFETCH_COUNT}")
                    channel.start_consuming()
            except (IntegrationError, pika.exceptions.AMQPError, ConnectionError) as e:
                if self._stopping.is_set():
                    break
                logger.warning(
                    f"Consumer '{self.queue_name}' lost the broker ({e}), "
                    f"reconnecting in {self.reconnect_delay}s"
                )
                self._stopping.wait(self.reconnect_delay)
            finally:
                self._channel = None

        self.broker.close()
        logger.info(f"Consumer for '{self.queue_name}' stopped")

    def stop(self):
        """
        Stop accepting messages. Safe to call from any thread; a message
        already handed to the adapter finishes and is acknowledged first.
        """
        self._stopping.set()
        channel = self._channel
        if channel is not None and channel.is_open:
            try:
                channel.connection.add_callback_threadsafe(channel.stop_consuming)
            except pika.exceptions.AMQPError as e:
                logger.warning(f"Error while stopping consumer '{self.queue_name}': {e}")

    @property
    def running(self) -> bool:
        return self._channel is not None and not self._stopping.is_set()

    def _declare(self, channel: BlockingChannel):
        declare_queue(channel, self.queue_name)
        declare_queue(channel, self.dlq_name)
        declare_retry_queue(channel, self.queue_name)
        if self.feedback_queue:
            declare_queue(channel, self.feedback_queue)

    # ---------------- message handling ----------------

    def _on_message(self, channel: BlockingChannel, method, properties, body: bytes):
        delivery_tag = method.delivery_tag
        self._count('received')

        try:
            order = decode_order(body)
        except MalformedMessage as e:
            logger.error(f"Malformed message on '{self.queue_name}': {e}")
            self._dead_letter(channel, method, properties, body, str(e))
            return

        logger.info(f"Received order {order.id} from '{self.queue_name}'")

        try:
            delivered = self.adapter.deliver(order)
        except Exception as e:
            logger.exception(f"{self.adapter.name} adapter raised for order {order.id}")
            self._retry(channel, method, properties, body, order, str(e))
            return

        if not delivered:
            self._retry(channel, method, properties, body, order, f"{self.adapter.name} rejected the order")
            return

        channel.basic_ack(delivery_tag=delivery_tag)
        self._count('processed')
        logger.info(f"Order {order.id} delivered to {self.adapter.name}")

        self._send_feedback(
            channel,
            FeedbackEvent(
                order_reference=order.order_number,
                system=self.adapter.name,
                status="success",
                message=f"Order {order.order_number} processed in {self.adapter.name}",
            ),
        )

    def _retry(self, channel: BlockingChannel, method, properties, body: bytes, order: Order, reason: str):
        if self.max_retries is None:
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=True)
            self._count('requeued')
            logger.warning(f"Order {order.id} failed ({reason}), requeued")
            return

        retries = get_retry_count(properties)
        if retries >= self.max_retries:
            logger.error(f"Order {order.id} failed after {retries} retries, dead-lettering")
            if self._dead_letter(channel, method, properties, body, reason):
                self._send_feedback(
                    channel,
                    FeedbackEvent(
                        order_reference=order.order_number,
                        system=self.adapter.name,
                        status="failed",
                        message=f"Order {order.order_number} could not be processed in "
                                f"{self.adapter.name}: {reason}",
                    ),
                )
            return

        next_retry = retries + 1
        ttl_ms = retry_delay_ms(next_retry, self.base_retry_ttl_ms, self.max_retry_ttl_ms)
        headers: Dict = dict(properties.headers or {})
        headers[RETRY_HEADER] = next_retry
        headers[TTL_HEADER] = ttl_ms
        try:
            # parked until the TTL expires, then dead-lettered back onto the main queue
            channel.basic_publish(
                exchange="",
                routing_key=self.retry_name,
                body=body,
                properties=copy_properties(properties, headers, expiration_ms=ttl_ms),
            )
        except pika.exceptions.AMQPChannelError as e:
            logger.error(f"Could not republish order {order.id} ({e}), requeueing original")
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=True)
            self._count('requeued')
            return

        channel.basic_ack(delivery_tag=method.delivery_tag)
        self._count('requeued')
        logger.warning(
            f"Order {order.id} failed ({reason}), retry {next_retry}/{self.max_retries} in {ttl_ms}ms"
        )

    def _dead_letter(self, channel: BlockingChannel, method, properties, body: bytes, reason: str) -> bool:
        headers = dict(properties.headers or {})
        headers[DLQ_REASON_HEADER] = (reason or "")[:200]
        try:
            channel.basic_publish(
                exchange="",
                routing_key=self.dlq_name,
                body=body,
                properties=copy_properties(properties, headers),
            )
        except pika.exceptions.AMQPChannelError as e:
            logger.error(f"Could not dead-letter message ({e}), requeueing original")
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=True)
            self._count('requeued')
            return False

        channel.basic_ack(delivery_tag=method.delivery_tag)
        self._count('dead_lettered')
        logger.warning(f"Message moved to '{self.dlq_name}': {reason}")
        return True

    def _send_feedback(self, channel: BlockingChannel, event: FeedbackEvent):
        if not self.feedback_queue:
            return
        try:
            channel.basic_publish(
                exchange="",
                routing_key=self.feedback_queue,
                body=build_envelope(EventType.ORDER_FEEDBACK, event.model_dump(mode="json"), event.timestamp),
                properties=message_properties(EventType.ORDER_FEEDBACK, new_message_id(), event.timestamp),
            )
        except pika.exceptions.AMQPChannelError as e:
            # the delivery itself is already settled
            logger.warning(f"Feedback for {event.order_reference} not published: {e}")

    def _count(self, name: str):
        with self._metrics_lock:
            self.metrics[name] += 1

    def get_metrics(self) -> Dict[str, int]:
        with self._metrics_lock:
            return self.metrics.copy()
