"""
ERP document (iDoc) rendering

Renders an Order into an ORDERS05-style document:

    ORDERS05/IDOC
      EDI_DC40   control record
      E1EDK01    order header
      E1EDP01    one segment per order line, positions 000010, 000020, ...

The builder is a pure function of the order so a retried order always renders
to byte-identical XML.
"""

import xml.etree.ElementTree as ET
from decimal import ROUND_HALF_UP, Decimal
from typing import Tuple

from pydantic import BaseModel, ConfigDict

from orderhub.schemas import Order

IDOC_TYPE = "ORDERS05"
MESSAGE_TYPE = "ORDERS"
SENDER_PORT = "ORDERHUB"
SENDER_PARTNER_TYPE = "LS"
UNIT_OF_MEASURE = "ST"
PRICE_UNIT = "1"
POSITION_STEP = 10

CUSTOMER_REF_WIDTH = 10
DOCUMENT_REF_WIDTH = 10
MATERIAL_REF_WIDTH = 18
POSITION_WIDTH = 6

_CENTS = Decimal("0.01")


def format_price(value: Decimal) -> str:
    return str(Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP))


def pad(value: int, width: int) -> str:
    return str(value).zfill(width)


class DocumentHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_number: str
    currency: str
    customer_reference: str
    date: str  # yyyyMMdd


class LineSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: str
    quantity: int
    unit_of_measure: str
    net_price: str
    material_reference: str
    description: str


class ERPDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    header: DocumentHeader
    segments: Tuple[LineSegment, ...]

    def to_element(self) -> ET.Element:
        root = ET.Element(IDOC_TYPE)
        idoc = ET.SubElement(root, "IDOC", BEGIN="1")

        control = ET.SubElement(idoc, "EDI_DC40", SEGMENT="1")
        _field(control, "TABNAM", "EDI_DC40")
        _field(control, "DOCNUM", self.header.document_number)
        _field(control, "IDOCTYP", IDOC_TYPE)
        _field(control, "MESTYP", MESSAGE_TYPE)
        _field(control, "SNDPOR", SENDER_PORT)
        _field(control, "SNDPRT", SENDER_PARTNER_TYPE)

        header = ET.SubElement(idoc, "E1EDK01", SEGMENT="1")
        _field(header, "CURCY", self.header.currency)
        _field(header, "BELNR", self.header.document_number)
        _field(header, "BSTKD", self.header.document_number)
        _field(header, "KUNNR", self.header.customer_reference)
        _field(header, "AEDAT", self.header.date)

        for segment in self.segments:
            item = ET.SubElement(idoc, "E1EDP01", SEGMENT="1")
            _field(item, "POSEX", segment.position)
            _field(item, "MENGE", str(segment.quantity))
            _field(item, "MENEE", segment.unit_of_measure)
            _field(item, "NETPR", segment.net_price)
            _field(item, "PEINH", PRICE_UNIT)
            _field(item, "MATNR", segment.material_reference)
            _field(item, "ARKTX", segment.description)

        return root

    def to_xml(self) -> bytes:
        return ET.tostring(self.to_element(), encoding="utf-8", xml_declaration=True)


def _field(parent: ET.Element, tag: str, text: str) -> ET.Element:
    elem = ET.SubElement(parent, tag)
    elem.text = text
    return elem


class DocumentBuilder:
    """Order -> ERPDocument. No I/O."""

    def __init__(self, currency: str = "EUR"):
        self.currency = currency

    def build(self, order: Order) -> ERPDocument:
        header = DocumentHeader(
            document_number=pad(order.id, DOCUMENT_REF_WIDTH),
            currency=self.currency,
            customer_reference=pad(order.customer_id, CUSTOMER_REF_WIDTH),
            date=order.order_date.strftime("%Y%m%d"),
        )

        segments = tuple(
            LineSegment(
                position=pad((idx + 1) * POSITION_STEP, POSITION_WIDTH),
                quantity=line.quantity,
                unit_of_measure=UNIT_OF_MEASURE,
                net_price=format_price(line.unit_price),
                material_reference=pad(line.product_id, MATERIAL_REF_WIDTH),
                description=line.product_title or f"Product {line.product_id}",
            )
            for idx, line in enumerate(order.lines)
        )

        return ERPDocument(header=header, segments=segments)
