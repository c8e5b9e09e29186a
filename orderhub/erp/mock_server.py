"""
Development ERP endpoint
Accepts ORDERS05 iDocs and answers with a status document, like the real ERP
"""

import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from flask import Flask, Response, request

logger = logging.getLogger(__name__)

app = Flask(__name__)

LAST = {
    "seen_at": None,
    "document_number": None,
    "request_xml": None,
    "response_xml": None,
}


# ---------------------------
# BUSINESS LOGIC
# ---------------------------

class ERPOrderService:

    def __init__(self):
        self.documents = {}

    def receive(self, data):
        document_number = data["document_number"]

        total = sum(
            (item["quantity"] * item["net_price"] for item in data["items"]),
            Decimal("0"),
        )

        self.documents[document_number] = {
            **data,
            "total": total,
            "received_at": datetime.now(timezone.utc).isoformat(),
        }

        return {
            "DOCNUM": document_number,
            "STATUS": 53,
            "STOCK_CODE": f"STOCK_{datetime.now(timezone.utc):%Y%m%d%H%M%S}",
        }


service = ERPOrderService()


# ---------------------------
# IDOC ENDPOINT
# ---------------------------

@app.route("/idoc/orders", methods=["POST"])
def idoc_endpoint():
    raw = request.get_data()
    xml_data = raw.decode("utf-8", errors="ignore")
    LAST.update({
        "seen_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "request_xml": xml_data,
    })

    try:
        root = ET.fromstring(raw)
        data = parse_idoc(root)
    except (ET.ParseError, ValueError, TypeError, InvalidOperation) as e:
        logger.warning(f"Rejected iDoc: {e}")
        resp = build_response({"STATUS": 51, "ERROR": str(e)})
        LAST.update({"document_number": None, "response_xml": resp})
        return Response(resp, mimetype="application/xml", status=400)

    result = service.receive(data)
    resp = build_response(result)
    LAST.update({"document_number": data["document_number"], "response_xml": resp})
    logger.info(f"iDoc {data['document_number']} accepted ({len(data['items'])} items)")
    return Response(resp, mimetype="application/xml")


# ---------------------------
# HELPERS
# ---------------------------

def parse_idoc(root):
    idoc = root.find("IDOC")
    if root.tag != "ORDERS05" or idoc is None:
        raise ValueError("Not an ORDERS05 document")

    header = idoc.find("E1EDK01")
    if header is None:
        raise ValueError("Missing E1EDK01 header")

    document_number = header.findtext("BELNR")
    if not document_number:
        raise ValueError("Missing BELNR")

    items = []
    for item in idoc.findall("E1EDP01"):
        items.append({
            "position": item.findtext("POSEX"),
            "material": item.findtext("MATNR"),
            "quantity": int(item.findtext("MENGE")),
            "net_price": Decimal(item.findtext("NETPR")),
        })

    if not items:
        raise ValueError("Document has no E1EDP01 segments")

    return {
        "document_number": document_number,
        "customer": header.findtext("KUNNR"),
        "date": header.findtext("AEDAT"),
        "items": items,
    }


def build_response(data):
    root = ET.Element("IDOC_RESPONSE")
    for k, v in data.items():
        ET.SubElement(root, k).text = str(v)
    return ET.tostring(root, encoding="unicode")


@app.route("/last")
def last():
    return LAST


@app.route("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(port=9300, debug=True)
