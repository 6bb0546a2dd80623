"""Ordering reacts to its own OrderPlaced events to count coupon redemptions.

Event handlers run once the unit of work that raised the event has been
committed, so an order that fails to persist never uses up a coupon.
"""

import structlog
from protean import handle

from ordering.catalog import get_coupon_book
from ordering.domain import ordering
from ordering.order.events import OrderPlaced
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


@ordering.event_handler(part_of=Order)
class CouponRedemptionHandler:
    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        if not event.coupon_code:
            return
        get_coupon_book().record_redemption(event.coupon_code)
        logger.info(
            "Coupon redemption recorded",
            order_id=str(event.order_id),
            coupon_code=event.coupon_code,
        )
