from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------- Domain ----------------

class OrderLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: int
    product_title: str = ""  # transient, display only
    quantity: int
    unit_price: Decimal


class Order(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    customer_id: int
    customer_name: str = ""  # transient, display only
    order_date: datetime
    total: Decimal
    lines: List[OrderLine] = Field(default_factory=list)

    @property
    def order_number(self) -> str:
        return f"ORD-{self.id:06d}"

    def line_total(self) -> Decimal:
        return sum((line.quantity * line.unit_price for line in self.lines), Decimal("0"))


class Customer(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    email: str = ""


# ---------------- Requests ----------------

class OrderRequest(BaseModel):
    api_key: str = ""
    order: Order
    request_id: Optional[str] = None
    requested_at: Optional[datetime] = None


class CustomerSyncRequest(BaseModel):
    api_key: str = ""
    customer: Customer


# ---------------- Integration results ----------------

class TrackingRecord(BaseModel):
    """Caller-facing correlation for one published message"""

    message_id: str
    queue: str
    timestamp: datetime


class ERPResponse(BaseModel):
    document_number: Optional[str] = None
    status: int
    stock_code: Optional[str] = None
    error_message: Optional[str] = None
    success: bool = False


class FeedbackEvent(BaseModel):
    order_reference: str
    system: str
    status: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


# ---------------- Responses ----------------

class OrderResult(BaseModel):
    success: bool
    crm_success: bool = False
    erp_success: bool = False
    crm_tracking_id: Optional[str] = None
    crm_note: Optional[str] = None
    erp_document_number: Optional[str] = None
    erp_status: Optional[int] = None
    status_message: Optional[str] = None
    stock_code: Optional[str] = None
    error_message: Optional[str] = None
    responded_at: datetime = Field(default_factory=utcnow)


class PublishResult(BaseModel):
    success: bool
    message: str
    tracking_id: Optional[str] = None
    queue: Optional[str] = None
    responded_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_tracking(cls, tracking: TrackingRecord, message: str) -> "PublishResult":
        return cls(
            success=True,
            message=message,
            tracking_id=tracking.message_id,
            queue=tracking.queue,
        )
