from orderhub.broker.connection import BrokerConnection
from orderhub.broker.consumer import OrderAdapter, QueueConsumer
from orderhub.broker.messages import EventType, Queues
from orderhub.broker.publisher import QueuePublisher

__all__ = [
    "BrokerConnection",
    "EventType",
    "OrderAdapter",
    "QueueConsumer",
    "QueuePublisher",
    "Queues",
]
