"""Domain events for the Order aggregate.

All events are versioned, immutable facts representing state changes of an
order, its payment and its items' warranties.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A new order was created from a cart snapshot at checkout."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    payment_method = String(required=True)
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    tax_amount = Float()
    shipping_amount = Float()
    discount_amount = Float()
    total_amount = Float(required=True)
    currency = String(default="VND")
    coupon_code = String()
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderStatusChanged:
    """An order moved forward along the fulfillment sequence."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_by = String()
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """An order was cancelled before processing started."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String()
    cancelled_by = String(required=True)
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCompleted:
    """The customer received the goods, or an admin completed the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    completed_by = String()
    completed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderFailed:
    """An order was abandoned after payment could not be collected."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    failed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentSucceeded:
    """An online payment for the order was captured by the gateway."""

    __version__ = 1

    order_id = Identifier(required=True)
    gateway_intent_id = String()
    transaction_id = String(required=True)
    amount = Float(required=True)
    payment_method = String(required=True)
    paid_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentFailed:
    """An online payment attempt for the order was declined."""

    __version__ = 1

    order_id = Identifier(required=True)
    gateway_intent_id = String()
    reason = String()
    attempt = Integer(required=True)


@ordering.event(part_of="Order")
class CashCollected:
    """A cash-on-delivery order was paid when the goods were received."""

    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    collected_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentRefunded:
    """A paid order's money was returned to the customer."""

    __version__ = 1

    order_id = Identifier(required=True)
    refund_id = String()
    amount = Float(required=True)
    refunded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class WarrantyActivated:
    """An order item's warranty window started."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    warranty_package_id = Identifier(required=True)
    warranty_start_at = DateTime(required=True)
    warranty_end_at = DateTime(required=True)


@ordering.event(part_of="Order")
class ImeiRecorded:
    """The serial number (IMEI) of a delivered device was recorded."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    imei = String(required=True)
