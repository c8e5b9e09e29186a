import logging
from typing import Optional, Tuple

from orderhub.schemas import Customer, Order

logger = logging.getLogger(__name__)


def validate_order(order: Optional[Order]) -> Tuple[bool, str]:
    """
    Check the order invariants, line by line. The first violation wins.

    The total is only required to be positive; a mismatch with the sum of
    the lines is logged but accepted.
    """
    if order is None:
        return False, "Order is required"

    if order.customer_id <= 0:
        return False, "customer_id must be positive"

    if order.total <= 0:
        return False, "total must be positive"

    if not order.lines:
        return False, "Order must contain at least one line"

    for idx, line in enumerate(order.lines):
        if line.product_id <= 0:
            return False, f"Line {idx + 1}: product_id must be positive"
        if line.quantity <= 0:
            return False, f"Line {idx + 1}: quantity must be positive"
        if line.unit_price <= 0:
            return False, f"Line {idx + 1}: unit_price must be positive"

    expected = order.line_total()
    if expected != order.total:
        logger.warning(
            f"Order {order.id} total {order.total} differs from line total {expected}"
        )

    return True, ""


def validate_customer(customer: Optional[Customer], require_name: bool = True) -> Tuple[bool, str]:
    if customer is None:
        return False, "Customer is required"

    if customer.id <= 0:
        return False, "customer id must be positive"

    if require_name and not customer.name.strip():
        return False, "customer name is required"

    return True, ""
