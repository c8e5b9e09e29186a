from decimal import Decimal

import pytest

from orderhub.schemas import Customer, OrderLine
from orderhub.validation import validate_customer, validate_order
from tests.conftest import make_order


def test_valid_order_passes(sample_order):
    assert validate_order(sample_order) == (True, "")


def test_mismatched_total_is_accepted(caplog):
    # only total > 0 is enforced; the mismatch is logged
    order = make_order(total=Decimal("999.99"))
    with caplog.at_level("WARNING"):
        assert validate_order(order) == (True, "")
    assert "differs from line total" in caplog.text


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"customer_id": 0}, "customer_id"),
        ({"total": Decimal("0")}, "total"),
        ({"total": Decimal("-1")}, "total"),
        ({"lines": []}, "at least one line"),
    ],
)
def test_order_level_violations(overrides, message):
    is_valid, error = validate_order(make_order(**overrides))
    assert is_valid is False
    assert message in error


@pytest.mark.parametrize(
    "line, message",
    [
        (OrderLine(product_id=0, quantity=1, unit_price=Decimal("1")), "product_id"),
        (OrderLine(product_id=1, quantity=0, unit_price=Decimal("1")), "quantity"),
        (OrderLine(product_id=1, quantity=1, unit_price=Decimal("0")), "unit_price"),
    ],
)
def test_line_violations_report_the_line(line, message):
    good = OrderLine(product_id=5, quantity=1, unit_price=Decimal("2.50"))
    is_valid, error = validate_order(make_order(lines=[good, line]))
    assert is_valid is False
    assert error.startswith("Line 2:")
    assert message in error


def test_first_violation_wins():
    bad = OrderLine(product_id=0, quantity=0, unit_price=Decimal("0"))
    is_valid, error = validate_order(make_order(lines=[bad]))
    assert is_valid is False
    assert "product_id" in error


def test_missing_order():
    assert validate_order(None) == (False, "Order is required")


def test_customer_validation():
    assert validate_customer(Customer(id=3, name="Acme")) == (True, "")
    assert validate_customer(Customer(id=0, name="Acme"))[0] is False
    assert validate_customer(Customer(id=3, name=" "))[0] is False
    assert validate_customer(Customer(id=3), require_name=False) == (True, "")
