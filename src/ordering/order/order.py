"""Order aggregate (CQRS): the durable record of a checkout.

An order is created atomically from a cart snapshot and is never deleted.
Its ``status`` follows the fulfillment state machine, its ``payment_status``
tracks money, and each item carries its own warranty window.

State Machine:
    pending → confirmed → processing → shipping → completed
    pending / confirmed → cancelled
    pending → failed

Forward moves along the main sequence may skip states; backward moves and
re-entering the current state are rejected. completed, cancelled and failed
are terminal.

Payment Status:
    pending → paid → refunded
    pending → failed → paid (a later attempt succeeds)
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from ordering.domain import ordering
from ordering.errors import InvalidTransition, OrderNotPayable
from ordering.order.events import (
    CashCollected,
    ImeiRecorded,
    OrderCancelled,
    OrderCompleted,
    OrderFailed,
    OrderPlaced,
    OrderStatusChanged,
    PaymentFailed,
    PaymentRefunded,
    PaymentSucceeded,
    WarrantyActivated,
)
from ordering.warranty.window import warranty_window


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPING = "shipping"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    COD = "cod"
    STRIPE = "stripe"
    VNPAY = "vnpay"
    MOMO = "momo"
    PAYOS = "payos"


class WarrantyStatus(Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


ONLINE_PAYMENT_METHODS = {
    PaymentMethod.STRIPE,
    PaymentMethod.VNPAY,
    PaymentMethod.MOMO,
    PaymentMethod.PAYOS,
}

# Main fulfillment sequence; position decides what "forward" means
_MAIN_SEQUENCE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPING,
    OrderStatus.COMPLETED,
]

_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}
_PAYABLE_STATES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}
_TERMINAL_STATES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.FAILED}

# Failed online attempts after which a pending order is marked failed
MAX_PAYMENT_ATTEMPTS = 3


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"ORD-{now:%Y%m%d}-{uuid4().hex[:6].upper()}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class Address:
    """A delivery or billing address captured at checkout time.

    Once recorded on an Order, the address is immutable: it represents where
    the order was shipped, regardless of later address book changes.
    """

    full_name = String(required=True, max_length=100)
    phone = String(required=True, max_length=20)
    address_line1 = String(required=True, max_length=255)
    address_line2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)


@ordering.value_object(part_of="Order")
class OrderPricing:
    """Financial summary of an order, locked at checkout.

    Catalogue price changes after checkout never touch an existing order.
    """

    subtotal = Float(default=0.0, min_value=0.0)
    tax_amount = Float(default=0.0, min_value=0.0)
    shipping_amount = Float(default=0.0, min_value=0.0)
    discount_amount = Float(default=0.0, min_value=0.0)
    total_amount = Float(default=0.0)
    currency = String(max_length=3, default="VND")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A line item copied from the cart at checkout.

    Everything except the warranty fields and the IMEI is immutable once the
    order exists.
    """

    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(max_length=255)
    sku = String(max_length=50)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    total_price = Float(required=True, min_value=0.0)
    attribute_selection = Text(default="{}")
    warranty_package_id = Identifier()
    warranty_package_name = String(max_length=255)
    warranty_duration_months = Integer(min_value=0)
    warranty_start_at = DateTime()
    warranty_end_at = DateTime()
    warranty_status = String(choices=WarrantyStatus)
    imei = String(max_length=50)

    @property
    def has_warranty(self) -> bool:
        return bool(self.warranty_package_id) and self.warranty_duration_months is not None

    def effective_warranty_status(self, now=None):
        """``expired`` once the window has closed, otherwise the stored status."""
        if self.warranty_end_at is None:
            return self.warranty_status
        now = now or datetime.now(UTC)
        if now >= self.warranty_end_at:
            return WarrantyStatus.EXPIRED.value
        return self.warranty_status


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=30)
    customer_id = Identifier(required=True)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    payment_status = String(
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    payment_method = String(required=True, choices=PaymentMethod)
    payment_intent_id = String(max_length=255)
    payment_intent_sequence = Integer(default=0)
    payment_transaction_id = String(max_length=255)
    payment_attempts = Integer(default=0)
    payment_failure_reason = String(max_length=500)
    paid_at = DateTime()
    refund_id = String(max_length=255)
    refunded_at = DateTime()
    items = HasMany(OrderItem)
    pricing = ValueObject(OrderPricing)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    notes = Text()
    coupon_code = String(max_length=100)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()
    completed_at = DateTime()

    @invariant.post
    def total_must_balance(self):
        if self.pricing is None:
            return
        p = self.pricing
        expected = p.subtotal + p.tax_amount + p.shipping_amount - p.discount_amount
        if abs(p.total_amount - expected) > 0.01:
            raise ValidationError({"pricing": ["Total must equal subtotal + tax + shipping - discount"]})
        if p.total_amount < 0:
            raise ValidationError({"pricing": ["Total cannot be negative"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_id,
        payment_method,
        items_data,
        pricing,
        shipping_address,
        billing_address=None,
        notes=None,
        coupon_code=None,
    ):
        """Create a new order from a priced cart snapshot.

        Args:
            customer_id: The customer placing the order.
            payment_method: One of the PaymentMethod values.
            items_data: List of dicts with product_id, variant_id, name, sku,
                        unit_price, quantity, attribute_selection and the
                        optional warranty package fields.
            pricing: Dict with subtotal, tax_amount, shipping_amount,
                     discount_amount, total_amount, currency.
            shipping_address: Dict of Address fields.
            billing_address: Dict of Address fields; defaults to shipping.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        items = [
            OrderItem(
                **item,
                total_price=round(item["unit_price"] * item["quantity"], 2),
            )
            for item in items_data
        ]

        order = cls(
            order_number=generate_order_number(now),
            customer_id=customer_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_method=payment_method,
            items=items,
            pricing=OrderPricing(**pricing),
            shipping_address=Address(**shipping_address),
            billing_address=Address(**(billing_address or shipping_address)),
            notes=notes,
            coupon_code=coupon_code,
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=str(customer_id),
                payment_method=payment_method,
                item_count=len(items),
                subtotal=order.pricing.subtotal,
                tax_amount=order.pricing.tax_amount,
                shipping_amount=order.pricing.shipping_amount,
                discount_amount=order.pricing.discount_amount,
                total_amount=order.pricing.total_amount,
                currency=order.pricing.currency,
                coupon_code=coupon_code,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Read-side helpers
    # -------------------------------------------------------------------
    @property
    def is_online_payment(self) -> bool:
        return PaymentMethod(self.payment_method) in ONLINE_PAYMENT_METHODS

    @property
    def can_cancel(self) -> bool:
        return OrderStatus(self.status) in _CANCELLABLE_STATES

    @property
    def can_pay_online(self) -> bool:
        return (
            self.is_online_payment
            and self.payment_status != PaymentStatus.PAID.value
            and OrderStatus(self.status) in _PAYABLE_STATES
        )

    def find_item(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ObjectNotFoundError({"item_id": ["Item not found in order"]})
        return item

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target):
        """Validate that the current state allows moving to ``target``."""
        current = OrderStatus(self.status)

        if current in _TERMINAL_STATES:
            raise InvalidTransition({"status": [f"Cannot change the status of a {current.value} order"]})

        if target == OrderStatus.CANCELLED:
            if current not in _CANCELLABLE_STATES:
                raise InvalidTransition({"status": [f"Cannot cancel an order that is {current.value}"]})
            return

        if target == OrderStatus.FAILED:
            if current != OrderStatus.PENDING:
                raise InvalidTransition({"status": [f"Cannot mark a {current.value} order as failed"]})
            return

        if _MAIN_SEQUENCE.index(target) <= _MAIN_SEQUENCE.index(current):
            raise InvalidTransition({"status": [f"Cannot transition from {current.value} to {target.value}"]})

    def _move_to(self, target, changed_by, now):
        previous = self.status
        self.status = target.value
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=target.value,
                changed_by=changed_by,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def update_status(self, target, changed_by="admin", reason=None):
        """Administrative status change, subject to the same guards as every path."""
        try:
            target = OrderStatus(target)
        except ValueError as exc:
            raise ValidationError({"status": [f"Unknown order status {target}"]}) from exc

        if target == OrderStatus.CANCELLED:
            self.cancel(reason=reason, cancelled_by=changed_by)
        elif target == OrderStatus.FAILED:
            self.mark_failed(reason=reason)
        elif target == OrderStatus.COMPLETED:
            self.complete(completed_by=changed_by)
        else:
            self._assert_can_transition(target)
            self._move_to(target, changed_by, datetime.now(UTC))

    def cancel(self, reason=None, cancelled_by="customer"):
        """Cancel the order. Allowed only while pending or confirmed; never refunds."""
        self._assert_can_transition(OrderStatus.CANCELLED)

        now = datetime.now(UTC)
        previous = self.status
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.updated_at = now

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=previous,
                reason=reason,
                cancelled_by=cancelled_by,
                cancelled_at=now,
            )
        )

    def mark_failed(self, reason=None):
        """Give up on a pending order whose payment could not be collected."""
        self._assert_can_transition(OrderStatus.FAILED)

        now = datetime.now(UTC)
        self.status = OrderStatus.FAILED.value
        self.failure_reason = reason
        self.updated_at = now

        self.raise_(
            OrderFailed(
                order_id=str(self.id),
                reason=reason,
                failed_at=now,
            )
        )

    def complete(self, completed_by="admin"):
        """Complete the order and start the warranties of its items.

        Cash-on-delivery orders are marked paid at this point.
        """
        self._assert_can_transition(OrderStatus.COMPLETED)

        now = datetime.now(UTC)
        self.status = OrderStatus.COMPLETED.value
        self.completed_at = now
        self.updated_at = now

        if not self.is_online_payment and self.payment_status == PaymentStatus.PENDING.value:
            self.payment_status = PaymentStatus.PAID.value
            self.paid_at = now
            self.raise_(
                CashCollected(
                    order_id=str(self.id),
                    amount=self.pricing.total_amount,
                    collected_at=now,
                )
            )

        self.raise_(
            OrderCompleted(
                order_id=str(self.id),
                completed_by=completed_by,
                completed_at=now,
            )
        )
        self._activate_warranties(now)

    def confirm_received(self):
        """The customer confirms delivery of a shipping order."""
        current = OrderStatus(self.status)
        if current != OrderStatus.SHIPPING:
            raise InvalidTransition({"status": [f"Cannot confirm receipt of an order that is {current.value}"]})
        self.complete(completed_by="customer")

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def assert_payable(self):
        """Raise OrderNotPayable unless a gateway payment may start now."""
        current = OrderStatus(self.status)
        if not self.is_online_payment:
            raise OrderNotPayable(
                {"payment_method": [f"Orders paid by {self.payment_method} cannot be paid online"]}
            )
        if self.payment_status == PaymentStatus.PAID.value:
            raise OrderNotPayable({"payment_status": ["Order is already paid"]})
        if self.payment_status == PaymentStatus.REFUNDED.value:
            raise OrderNotPayable({"payment_status": ["Order has been refunded"]})
        if current not in _PAYABLE_STATES:
            raise OrderNotPayable({"status": [f"Cannot pay for an order that is {current.value}"]})

    def attach_payment_intent(self, gateway_intent_id):
        """Point the order at the intent the customer will pay with."""
        self.assert_payable()
        self.payment_intent_id = gateway_intent_id
        self.payment_intent_sequence = (self.payment_intent_sequence or 0) + 1
        if self.payment_status == PaymentStatus.FAILED.value:
            self.payment_status = PaymentStatus.PENDING.value
        self.updated_at = datetime.now(UTC)

    def record_payment_success(self, gateway_intent_id, transaction_id, amount):
        """Record a captured payment and confirm a pending order.

        Returns False without changing anything when this exact transaction
        was already recorded.
        """
        if self.payment_status == PaymentStatus.PAID.value:
            if self.payment_transaction_id == transaction_id:
                return False
            raise InvalidTransition({"payment_status": ["Order is already paid"]})

        current = OrderStatus(self.status)
        if current not in _PAYABLE_STATES:
            raise InvalidTransition({"status": [f"Cannot record a payment for an order that is {current.value}"]})

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.payment_transaction_id = transaction_id
        self.payment_intent_id = gateway_intent_id
        self.payment_failure_reason = None
        self.paid_at = now
        self.updated_at = now

        self.raise_(
            PaymentSucceeded(
                order_id=str(self.id),
                gateway_intent_id=gateway_intent_id,
                transaction_id=transaction_id,
                amount=amount,
                payment_method=self.payment_method,
                paid_at=now,
            )
        )

        if current == OrderStatus.PENDING:
            self._move_to(OrderStatus.CONFIRMED, "payment", now)
        return True

    def record_payment_failure(self, gateway_intent_id, reason):
        """Record a declined attempt. Status is unchanged until attempts run out."""
        if self.payment_status == PaymentStatus.PAID.value:
            raise InvalidTransition({"payment_status": ["Order is already paid"]})

        current = OrderStatus(self.status)
        if current not in _PAYABLE_STATES:
            raise InvalidTransition({"status": [f"Cannot record a payment for an order that is {current.value}"]})

        self.payment_attempts = (self.payment_attempts or 0) + 1
        self.payment_status = PaymentStatus.FAILED.value
        self.payment_failure_reason = reason
        self.updated_at = datetime.now(UTC)

        self.raise_(
            PaymentFailed(
                order_id=str(self.id),
                gateway_intent_id=gateway_intent_id,
                reason=reason,
                attempt=self.payment_attempts,
            )
        )

        if self.payment_attempts >= MAX_PAYMENT_ATTEMPTS and current == OrderStatus.PENDING:
            self.mark_failed(reason=f"Payment failed {self.payment_attempts} times: {reason}")

    def refund(self, refund_id=None):
        """Mark a paid order's money as returned. Independent of cancellation."""
        if self.payment_status != PaymentStatus.PAID.value:
            raise InvalidTransition({"payment_status": [f"Cannot refund an order whose payment is {self.payment_status}"]})

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.REFUNDED.value
        self.refund_id = refund_id
        self.refunded_at = now
        self.updated_at = now

        self.raise_(
            PaymentRefunded(
                order_id=str(self.id),
                refund_id=refund_id,
                amount=self.pricing.total_amount,
                refunded_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Warranty
    # -------------------------------------------------------------------
    def _activate_warranties(self, now):
        activated = 0
        for item in self.items:
            if not item.has_warranty or item.warranty_start_at is not None:
                continue
            start, end = warranty_window(now, item.warranty_duration_months)
            item.warranty_start_at = start
            item.warranty_end_at = end
            item.warranty_status = WarrantyStatus.ACTIVE.value
            activated += 1
            self.raise_(
                WarrantyActivated(
                    order_id=str(self.id),
                    item_id=str(item.id),
                    warranty_package_id=str(item.warranty_package_id),
                    warranty_start_at=start,
                    warranty_end_at=end,
                )
            )
        if activated:
            self.updated_at = now
        return activated

    def activate_warranties(self):
        """Start every pending warranty window. Already active windows are kept."""
        current = OrderStatus(self.status)
        if current != OrderStatus.COMPLETED:
            raise InvalidTransition({"status": [f"Cannot activate warranties of an order that is {current.value}"]})
        return self._activate_warranties(datetime.now(UTC))

    def record_imei(self, item_id, imei):
        current = OrderStatus(self.status)
        if current in (OrderStatus.CANCELLED, OrderStatus.FAILED):
            raise InvalidTransition({"status": [f"Cannot record an IMEI on an order that is {current.value}"]})

        item = self.find_item(item_id)
        item.imei = imei
        self.updated_at = datetime.now(UTC)

        self.raise_(
            ImeiRecorded(
                order_id=str(self.id),
                item_id=str(item.id),
                imei=imei,
            )
        )
