from typing import Optional

from fastapi import APIRouter, Depends, Header

from orderhub.broker.messages import EventType
from orderhub.deps import get_orchestrator
from orderhub.errors import ValidationError
from orderhub.orchestrator import OrderOrchestrator
from orderhub.schemas import Customer, CustomerSyncRequest, PublishResult

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("", response_model=PublishResult)
@router.post("/", response_model=PublishResult, include_in_schema=False)
def create_customer(
    body: CustomerSyncRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.sync_customer(body.api_key, body.customer, EventType.CUSTOMER_CREATED)


@router.put("", response_model=PublishResult)
def update_customer_from_body(
    body: CustomerSyncRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.sync_customer(body.api_key, body.customer, EventType.CUSTOMER_UPDATED)


@router.put("/{customer_id}", response_model=PublishResult)
def update_customer(
    customer_id: int,
    body: CustomerSyncRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    if body.customer.id != customer_id:
        raise ValidationError("Customer id in path and body differ")
    return orchestrator.sync_customer(body.api_key, body.customer, EventType.CUSTOMER_UPDATED)


@router.delete("/{customer_id}", response_model=PublishResult)
def delete_customer(
    customer_id: int,
    name: str = "Unknown",
    x_api_key: Optional[str] = Header(None),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    customer = Customer(id=customer_id, name=name)
    return orchestrator.sync_customer(x_api_key, customer, EventType.CUSTOMER_DELETED)
