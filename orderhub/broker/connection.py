"""
RabbitMQ connection handling

One lazily-opened BlockingConnection per BrokerConnection, reused across
operations. Each publish/consume borrows a channel through `channel()` and the
channel is always closed on the way out. pika connections are not thread-safe,
so acquisition is serialized with a lock; long-lived consumers own a separate
BrokerConnection.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import pika
from pika.adapters.blocking_connection import BlockingChannel

from orderhub.errors import IntegrationError

logger = logging.getLogger(__name__)

# errors after which the connection itself is unusable
CONNECTION_ERRORS = (
    pika.exceptions.AMQPConnectionError,
    pika.exceptions.ConnectionClosed,
    pika.exceptions.StreamLostError,
    ConnectionError,
)


class BrokerConnection:

    def __init__(
        self,
        url: str,
        heartbeat: int = 600,
        blocked_connection_timeout: int = 30,
        connection_factory=pika.BlockingConnection,
    ):
        self.url = url
        self.heartbeat = heartbeat
        self.blocked_connection_timeout = blocked_connection_timeout
        self._connection_factory = connection_factory
        self._connection: Optional[pika.BlockingConnection] = None
        self._lock = threading.RLock()

    def _connect(self) -> pika.BlockingConnection:
        params = pika.URLParameters(self.url)
        params.heartbeat = self.heartbeat
        params.blocked_connection_timeout = self.blocked_connection_timeout
        try:
            connection = self._connection_factory(params)
        except pika.exceptions.AMQPError as e:
            logger.error(f"Failed to connect to RabbitMQ: {e}")
            raise IntegrationError("Message broker unavailable") from e

        logger.info(f"Connected to RabbitMQ at {params.host}:{params.port}")
        return connection

    def _ensure_open(self) -> pika.BlockingConnection:
        if self._connection is None or self._connection.is_closed:
            self._connection = self._connect()
        return self._connection

    def _discard(self):
        connection, self._connection = self._connection, None
        if connection is not None and connection.is_open:
            try:
                connection.close()
            except pika.exceptions.AMQPError as e:
                logger.debug(f"Ignoring error while discarding connection: {e}")

    def _open_channel(self) -> BlockingChannel:
        # an idle connection may have been dropped by the broker without pika noticing
        for attempt in (1, 2):
            try:
                return self._ensure_open().channel()
            except (pika.exceptions.AMQPError, ConnectionError) as e:
                self._discard()
                if attempt == 2:
                    raise IntegrationError("Message broker unavailable") from e
                logger.warning(f"RabbitMQ connection is stale ({e!r}), reconnecting")

    @contextmanager
    def channel(self) -> Iterator[BlockingChannel]:
        with self._lock:
            ch = self._open_channel()

            try:
                yield ch
            except CONNECTION_ERRORS:
                logger.warning("RabbitMQ connection lost, will reconnect on next use")
                self._discard()
                raise
            finally:
                if ch.is_open:
                    try:
                        ch.close()
                    except pika.exceptions.AMQPError as e:
                        logger.debug(f"Ignoring error while closing channel: {e}")

    @property
    def is_open(self) -> bool:
        return self._connection is not None and self._connection.is_open

    def close(self):
        with self._lock:
            self._discard()
            logger.info("RabbitMQ connection closed")
