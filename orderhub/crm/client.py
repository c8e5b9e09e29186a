import logging
from typing import Optional

import requests

from orderhub.broker.consumer import OrderAdapter
from orderhub.schemas import Order

logger = logging.getLogger(__name__)


class CRMClient(OrderAdapter):
    """
    Creates order records in the CRM.

    Without a CRM_URL the client runs dry: it logs the record it would have
    sent and reports success, so the queue pipeline can run locally.
    """

    name = "CRM"

    def __init__(
        self,
        url: Optional[str] = None,
        access_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        source_system: str = "OrderHub",
    ):
        self.url = url
        self.timeout = timeout
        self.source_system = source_system
        self.session = session or requests.Session()
        if access_token:
            self.session.headers["Authorization"] = f"Bearer {access_token}"

    def to_record(self, order: Order) -> dict:
        return {
            "order_number": order.order_number,
            "order_id": order.id,
            "customer_id": order.customer_id,
            "customer_name": order.customer_name or f"Customer-{order.customer_id}",
            "order_date": order.order_date.strftime("%Y-%m-%d"),
            "total": str(order.total),
            "items": [
                {
                    "product_id": line.product_id,
                    "product_title": line.product_title,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                }
                for line in order.lines
            ],
            "status": "New",
            "source_system": self.source_system,
        }

    def deliver(self, order: Order) -> bool:
        record = self.to_record(order)

        if not self.url:
            logger.warning(f"CRM_URL not set, dry run for order {record['order_number']}")
            return True

        try:
            r = self.session.post(self.url, json=record, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"CRM request failed for order {order.id}: {e}")
            return False

        if not r.ok:
            logger.error(f"CRM error for order {order.id}: HTTP {r.status_code}")
            return False

        logger.info(f"Order {record['order_number']} created in CRM")
        return True

    def close(self):
        self.session.close()
