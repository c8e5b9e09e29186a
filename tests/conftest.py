# tests/conftest.py
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pika
import pytest

from orderhub.schemas import Order, OrderLine


class FakeBroker:
    """Stands in for BrokerConnection: hands out one MagicMock channel."""

    def __init__(self, failures=None):
        self.ch = MagicMock()
        self.ch.is_open = True
        self.failures = list(failures or [])
        self.acquired = 0
        self.closed = False

    @contextmanager
    def channel(self):
        self.acquired += 1
        if self.failures:
            raise self.failures.pop(0)
        yield self.ch

    def close(self):
        self.closed = True


def make_order(**overrides):
    data = {
        "id": 42,
        "customer_id": 7,
        "customer_name": "Jan Jansen",
        "order_date": datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc),
        "total": Decimal("20.00"),
        "lines": [
            OrderLine(product_id=101, product_title="Clean Code", quantity=1, unit_price=Decimal("10.00")),
            OrderLine(product_id=202, product_title="Refactoring", quantity=2, unit_price=Decimal("5.00")),
        ],
    }
    data.update(overrides)
    return Order(**data)


@pytest.fixture
def sample_order():
    """Two lines (1 x 10.00, 2 x 5.00), total 20.00, customer 7"""
    return make_order()


@pytest.fixture
def sample_order_payload():
    return {
        "id": 42,
        "customer_id": 7,
        "customer_name": "Jan Jansen",
        "order_date": "2026-03-14T09:30:00+00:00",
        "total": "20.00",
        "lines": [
            {"product_id": 101, "product_title": "Clean Code", "quantity": 1, "unit_price": "10.00"},
            {"product_id": 202, "product_title": "Refactoring", "quantity": 2, "unit_price": "5.00"},
        ],
    }


@pytest.fixture
def fake_broker():
    return FakeBroker()


@pytest.fixture
def fixed_clock():
    now = datetime(2026, 3, 14, 10, 0, 0, tzinfo=timezone.utc)
    return lambda: now


@pytest.fixture
def delivery():
    """(method, properties) pair as pika hands them to a consumer callback"""
    method = MagicMock()
    method.delivery_tag = 5
    properties = pika.BasicProperties(
        content_type="application/json",
        delivery_mode=2,
        message_id="msg-1",
        headers={"x-retries": 0},
    )
    return method, properties
