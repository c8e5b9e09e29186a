from orderhub.erp.document import DocumentBuilder, ERPDocument
from orderhub.erp.gateway import ERPGateway, ERPStatus, status_message

__all__ = ["DocumentBuilder", "ERPDocument", "ERPGateway", "ERPStatus", "status_message"]
