"""Order status changes: commands and handler.

Covers customer cancellation, customer receipt confirmation and the admin
status update. All three re-read the order and re-check the state machine
guards; callers process them while holding the order's lock.

Cancelling an order, or failing a pending one, also cancels its active
payment intent at the gateway so the customer can no longer pay it. A payment the gateway
already captured is recorded on the order before it is cancelled.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order, OrderStatus
from ordering.payment.coordinator import release_active_intent
from ordering.payment.intent import PaymentIntent

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_by = String(required=True, max_length=50)


@ordering.command(part_of="Order")
class ConfirmOrderReceived:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    changed_by = String(default="admin", max_length=50)
    reason = String(max_length=500)


def _ends_payment(order, target):
    if target == OrderStatus.CANCELLED.value:
        return order.can_cancel
    return target == OrderStatus.FAILED.value and order.status == OrderStatus.PENDING.value


def _void_payment_intent(order, reason):
    """Release the order's active intent ahead of a cancellation."""
    intent, captured = release_active_intent(order)
    if intent is None:
        return
    if captured:
        logger.warning(
            "Captured payment recorded before cancellation",
            order_id=str(order.id),
            gateway_intent_id=str(intent.gateway_intent_id),
        )
    else:
        intent.void(reason)
    current_domain.repository_for(PaymentIntent).add(intent)


@ordering.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.can_cancel:
            _void_payment_intent(order, "Order cancelled")
        order.cancel(reason=command.reason, cancelled_by=command.cancelled_by)
        repo.add(order)
        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            cancelled_by=command.cancelled_by,
        )
        return order.status

    @handle(ConfirmOrderReceived)
    def confirm_received(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.confirm_received()
        repo.add(order)
        return order.status

    @handle(UpdateOrderStatus)
    def update_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous = order.status
        if _ends_payment(order, command.status):
            _void_payment_intent(order, f"Order {command.status}")
        order.update_status(command.status, changed_by=command.changed_by, reason=command.reason)
        repo.add(order)
        logger.info(
            "Order status updated",
            order_id=str(order.id),
            previous_status=previous,
            new_status=order.status,
            changed_by=command.changed_by,
        )
        return order.status
