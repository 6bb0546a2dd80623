"""Order refund: command and handler.

Refunds are an explicit admin action on a paid order and are never
triggered by cancellation. Online payments are refunded through the
gateway; cash-on-delivery refunds are settled outside the system and only
recorded here.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import InvalidTransition
from ordering.gateway import get_gateway
from ordering.gateway.retry import RetryPolicy, call_with_retry
from ordering.order.order import Order, PaymentStatus
from ordering.utils.locking import process_under_order_lock
from ordering.utils.settings import get_settings

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class RefundOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500, default="requested_by_customer")


@ordering.command_handler(part_of=Order)
class RefundOrderHandler:
    @handle(RefundOrder)
    def refund_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.payment_status != PaymentStatus.PAID.value:
            raise InvalidTransition(
                {"payment_status": [f"Cannot refund an order whose payment is {order.payment_status}"]}
            )

        refund_id = None
        if order.is_online_payment:
            result = call_with_retry(
                get_gateway().create_refund,
                transaction_id=order.payment_transaction_id,
                amount=order.pricing.total_amount,
                currency=order.pricing.currency,
                reason=command.reason,
                policy=RetryPolicy.from_settings(get_settings()),
            )
            if not result.success:
                raise ValidationError({"refund": [result.failure_reason or "Refund was declined"]})
            refund_id = result.gateway_refund_id

        order.refund(refund_id=refund_id)
        repo.add(order)
        logger.info(
            "Order refunded",
            order_id=str(order.id),
            refund_id=refund_id,
            amount=order.pricing.total_amount,
        )
        return order.payment_status


def refund_order(order_id, reason="requested_by_customer"):
    return process_under_order_lock(order_id, RefundOrder(order_id=order_id, reason=reason))
