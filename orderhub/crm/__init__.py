from orderhub.crm.client import CRMClient

__all__ = ["CRMClient"]
