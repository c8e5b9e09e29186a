from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, Response

from orderhub.deps import get_orchestrator
from orderhub.errors import ValidationError
from orderhub.orchestrator import OrderOrchestrator
from orderhub.schemas import OrderRequest, OrderResult, PublishResult

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/health")
def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.post("", response_model=OrderResult)
@router.post("/", response_model=OrderResult, include_in_schema=False)
def place_order(
    body: OrderRequest,
    response: Response,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    result = orchestrator.place_order(body)
    if not result.crm_success and not result.erp_success:
        # neither system got the order
        response.status_code = 502
    return result


@router.put("/{order_id}", response_model=PublishResult)
def update_order(
    order_id: int,
    body: OrderRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    if body.order.id != order_id:
        raise ValidationError("Order id in path and body differ")
    return orchestrator.update_order(body.api_key, body.order)


@router.delete("/{order_id}", response_model=PublishResult)
def delete_order(
    order_id: int,
    reason: str = "Deleted by user",
    x_api_key: Optional[str] = Header(None),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.delete_order(x_api_key, order_id, reason)
