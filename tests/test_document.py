import xml.etree.ElementTree as ET
from decimal import Decimal

from orderhub.erp.document import DocumentBuilder, format_price
from orderhub.schemas import OrderLine
from tests.conftest import make_order


def test_header_fields(sample_order):
    doc = DocumentBuilder().build(sample_order)

    assert doc.header.document_number == "0000000042"
    assert doc.header.customer_reference == "0000000007"
    assert doc.header.date == "20260314"
    assert doc.header.currency == "EUR"


def test_segments_follow_input_order(sample_order):
    doc = DocumentBuilder().build(sample_order)

    assert [s.position for s in doc.segments] == ["000010", "000020"]
    first, second = doc.segments
    assert first.quantity == 1
    assert first.net_price == "10.00"
    assert first.unit_of_measure == "ST"
    assert first.material_reference == "000000000000000101"
    assert len(first.material_reference) == 18
    assert second.quantity == 2
    assert second.net_price == "5.00"
    assert second.material_reference == "000000000000000202"


def test_three_lines_get_positions_10_20_30():
    lines = [OrderLine(product_id=i, quantity=1, unit_price=Decimal("1")) for i in (1, 2, 3)]
    doc = DocumentBuilder().build(make_order(lines=lines, total=Decimal("3")))
    assert [s.position for s in doc.segments] == ["000010", "000020", "000030"]


def test_rendering_is_deterministic(sample_order):
    builder = DocumentBuilder()
    same_order = make_order()

    assert builder.build(sample_order) == builder.build(same_order)
    assert builder.build(sample_order).to_xml() == builder.build(same_order).to_xml()


def test_xml_layout(sample_order):
    root = ET.fromstring(DocumentBuilder(currency="USD").build(sample_order).to_xml())

    assert root.tag == "ORDERS05"
    idoc = root.find("IDOC")
    assert idoc.get("BEGIN") == "1"
    assert idoc.findtext("EDI_DC40/DOCNUM") == "0000000042"
    assert idoc.findtext("EDI_DC40/IDOCTYP") == "ORDERS05"
    assert idoc.findtext("E1EDK01/CURCY") == "USD"
    assert idoc.findtext("E1EDK01/KUNNR") == "0000000007"
    assert idoc.findtext("E1EDK01/AEDAT") == "20260314"

    items = idoc.findall("E1EDP01")
    assert [i.findtext("POSEX") for i in items] == ["000010", "000020"]
    assert [i.findtext("NETPR") for i in items] == ["10.00", "5.00"]
    assert items[0].findtext("ARKTX") == "Clean Code"


def test_missing_title_gets_a_description():
    line = OrderLine(product_id=9, quantity=1, unit_price=Decimal("1"))
    doc = DocumentBuilder().build(make_order(lines=[line], total=Decimal("1")))
    assert doc.segments[0].description == "Product 9"


def test_format_price_rounds_to_cents():
    assert format_price(Decimal("5")) == "5.00"
    assert format_price(Decimal("2.345")) == "2.35"
    assert format_price(Decimal("19.999")) == "20.00"
