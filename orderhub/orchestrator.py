"""
Order Orchestrator

Flow for a new order:
1. Shared-secret check (401)
2. Order validation (400)
3. CRM leg (queue publish) and ERP leg (iDoc submit) started together
4. Both legs joined, whatever their outcome
5. Combined result; success only if both legs succeeded

Unexpected failures are logged with full context and surface as a sanitized
UnexpectedError (500).
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from orderhub.broker.messages import EventType
from orderhub.broker.publisher import QueuePublisher
from orderhub.erp.gateway import ERPGateway, ERPStatus, is_terminal, status_message
from orderhub.errors import AuthorizationError, IntegrationError, UnexpectedError, ValidationError
from orderhub.schemas import (
    Customer,
    ERPResponse,
    Order,
    OrderRequest,
    OrderResult,
    PublishResult,
    TrackingRecord,
)
from orderhub.security import CredentialValidator
from orderhub.validation import validate_customer, validate_order

logger = logging.getLogger(__name__)


class OrderOrchestrator:

    def __init__(
        self,
        validator: CredentialValidator,
        publisher: QueuePublisher,
        erp: ERPGateway,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.validator = validator
        self.publisher = publisher
        self.erp = erp
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=8, thread_name_prefix="fanout")

    # ---------------- orders ----------------

    def place_order(self, request: OrderRequest) -> OrderResult:
        logger.info(f"Order received. RequestId: {request.request_id}")
        self._authorize(request.api_key, f"order request {request.request_id}")

        order = request.order
        is_valid, error_msg = validate_order(order)
        if not is_valid:
            logger.warning(f"Invalid order data ({error_msg}). RequestId: {request.request_id}")
            raise ValidationError(f"Invalid order: {error_msg}")

        try:
            result = self._fan_out(order)
        except Exception:
            logger.exception(f"Error processing order {order.id}. RequestId: {request.request_id}")
            raise UnexpectedError("Internal server error while processing order")

        self._audit(order, result)
        return result

    def _fan_out(self, order: Order) -> OrderResult:
        logger.info(f"Distributing order {order.id} to CRM and ERP")

        # both legs must be running before either is awaited
        crm_leg = self.executor.submit(self.publisher.publish_order_created, order)
        erp_leg = self.executor.submit(self.erp.submit, order)

        tracking: Optional[TrackingRecord] = None
        crm_note: Optional[str] = None
        try:
            tracking = crm_leg.result()
        except IntegrationError as e:
            logger.error(f"CRM publish failed for order {order.id}: {e.message}")
            crm_note = f"CRM publish failed: {e.message}"
        except Exception:
            logger.exception(f"CRM publish failed for order {order.id}")
            crm_note = "CRM publish failed"

        try:
            erp = erp_leg.result()
        except Exception as e:
            # ERPGateway converts its own failures; this only guards the executor
            logger.exception(f"ERP leg failed for order {order.id}")
            erp = ERPResponse(status=int(ERPStatus.ERROR), success=False, error_message=str(e))

        crm_ok = tracking is not None
        if erp.success and not is_terminal(erp.status):
            logger.info(f"ERP document {erp.document_number} not final yet (status {erp.status})")

        result = OrderResult(
            success=crm_ok and erp.success,
            crm_success=crm_ok,
            erp_success=erp.success,
            crm_tracking_id=tracking.message_id if tracking else None,
            crm_note=crm_note,
            erp_document_number=erp.document_number,
            erp_status=erp.status,
            status_message=status_message(erp.status),
            stock_code=erp.stock_code,
            error_message=erp.error_message,
        )

        logger.info(
            f"Order {order.id} distributed. "
            f"CRM tracking: {result.crm_tracking_id}, ERP doc: {erp.document_number}, "
            f"ERP status: {erp.status}, success: {result.success}"
        )
        return result

    def update_order(self, api_key: str, order: Order) -> PublishResult:
        self._authorize(api_key, f"update of order {order.id}")
        is_valid, error_msg = validate_order(order)
        if not is_valid:
            raise ValidationError(f"Invalid order: {error_msg}")

        tracking = self._publish_only(
            lambda: self.publisher.publish_order_updated(order),
            f"update of order {order.id}",
        )
        return PublishResult.from_tracking(tracking, f"Order {order.id} updated")

    def delete_order(self, api_key: str, order_id: int, reason: str) -> PublishResult:
        """Publishes a deletion event only; the ERP side is not cancelled."""
        self._authorize(api_key, f"deletion of order {order_id}")
        if order_id <= 0:
            raise ValidationError("order id must be positive")

        tracking = self._publish_only(
            lambda: self.publisher.publish_order_deleted(order_id, reason),
            f"deletion of order {order_id}",
        )
        return PublishResult.from_tracking(tracking, f"Order {order_id} deleted")

    # ---------------- customers ----------------

    def sync_customer(self, api_key: str, customer: Customer, event_type: EventType) -> PublishResult:
        self._authorize(api_key, f"customer sync {customer.id}")
        is_valid, error_msg = validate_customer(
            customer, require_name=event_type != EventType.CUSTOMER_DELETED
        )
        if not is_valid:
            raise ValidationError(f"Invalid customer: {error_msg}")

        tracking = self._publish_only(
            lambda: self.publisher.publish_customer(customer, event_type),
            f"{event_type.value} for customer {customer.id}",
        )
        action = event_type.value.split(".", 1)[1]
        return PublishResult.from_tracking(tracking, f"Customer {customer.id} {action}")

    # ---------------- helpers ----------------

    def _authorize(self, api_key: Optional[str], context: str):
        if not self.validator.validate(api_key):
            logger.warning(f"Unauthorized {context}")
            raise AuthorizationError(self.validator.explain(api_key))

    def _publish_only(self, publish, context: str) -> TrackingRecord:
        try:
            tracking = publish()
        except Exception:
            logger.exception(f"Failed to publish {context}")
            raise UnexpectedError(f"Failed to publish {context}")

        logger.info(f"Published {context}. Tracking ID: {tracking.message_id}")
        return tracking

    def _audit(self, order: Order, result: OrderResult):
        payload = {
            "action": "order.placed",
            "order_id": order.id,
            "customer_id": order.customer_id,
            "success": result.success,
            "crm_tracking_id": result.crm_tracking_id,
            "erp_document_number": result.erp_document_number,
            "erp_status": result.erp_status,
        }
        try:
            future = self.executor.submit(self.publisher.publish_event, EventType.AUDIT, payload)
        except RuntimeError as e:
            logger.warning(f"Audit event not scheduled: {e}")
            return
        future.add_done_callback(_log_audit_failure)

    def close(self):
        if self._owns_executor:
            self.executor.shutdown(wait=True)


def _log_audit_failure(future: Future):
    exc = future.exception()
    if exc is not None:
        logger.warning(f"Audit event not published: {exc}")
