"""Checkout: turns the customer's cart into an Order.

The cart is snapshotted, every line is repriced from the catalog, the
selected coupon is re-validated against the subtotal, and the order is
created and the cart cleared in the same unit of work. The coupon's usage
count goes up once that unit of work commits (see coupon_events). Callers
process PlaceOrder while holding the customer's cart lock.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.cart.cart import ShoppingCart
from ordering.cart.items import price_line
from ordering.catalog import get_catalog, get_coupon_book
from ordering.domain import ordering
from ordering.order.order import Order
from ordering.pricing.resolver import QuoteLine, quote_order
from ordering.utils.settings import get_settings

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    payment_method = String(required=True, max_length=20)
    shipping_address = Text(required=True)  # JSON: address dict
    billing_address = Text()  # JSON: address dict, defaults to shipping
    notes = Text()
    coupon_code = String(max_length=100)  # Overrides the cart's selected coupon


def _load_cart(customer_id) -> ShoppingCart:
    try:
        return current_domain.repository_for(ShoppingCart).get(customer_id)
    except ObjectNotFoundError as exc:
        raise ValidationError({"cart": ["Cart is empty"]}) from exc


def _order_lines(lines):
    """Reprice each snapshot line and copy the warranty terms onto it."""
    catalog = get_catalog()
    items_data = []
    for line in lines:
        _, unit_price = price_line(
            line.product_id,
            variant_id=line.variant_id,
            attribute_selection=line.selection_dict(),
            warranty_package_id=line.warranty_package_id,
        )
        item = {
            "product_id": line.product_id,
            "variant_id": line.variant_id,
            "name": line.name,
            "sku": line.sku,
            "unit_price": unit_price,
            "quantity": line.quantity,
            "attribute_selection": json.dumps(line.selection_dict(), sort_keys=True),
        }
        if line.warranty_package_id:
            package = catalog.get_warranty_package(line.warranty_package_id)
            item.update(
                warranty_package_id=package.package_id,
                warranty_package_name=package.name,
                warranty_duration_months=package.duration_months,
            )
        items_data.append(item)
    return items_data


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        settings = get_settings()
        cart = _load_cart(command.customer_id)
        lines = cart.snapshot()
        if not lines:
            raise ValidationError({"cart": ["Cart is empty"]})

        items_data = _order_lines(lines)

        coupon = None
        coupon_code = command.coupon_code or cart.coupon_code
        if coupon_code:
            coupon = get_coupon_book().find(coupon_code)
            if coupon is None:
                raise ValidationError({"coupon_code": [f"Coupon {coupon_code} does not exist"]})

        quote = quote_order(
            [QuoteLine(unit_price=i["unit_price"], quantity=i["quantity"]) for i in items_data],
            coupon=coupon,
            tax_rate=settings.tax_rate,
            shipping_fee=settings.shipping_fee,
            free_shipping_threshold=settings.free_shipping_threshold,
            currency=settings.currency,
        )

        shipping_address = json.loads(command.shipping_address)
        billing_address = json.loads(command.billing_address) if command.billing_address else None

        order = Order.create(
            customer_id=command.customer_id,
            payment_method=command.payment_method,
            items_data=items_data,
            pricing={
                "subtotal": quote.subtotal,
                "tax_amount": quote.tax_amount,
                "shipping_amount": quote.shipping_amount,
                "discount_amount": quote.discount_amount,
                "total_amount": quote.total_amount,
                "currency": quote.currency,
            },
            shipping_address=shipping_address,
            billing_address=billing_address,
            notes=command.notes,
            coupon_code=quote.coupon_code,
        )
        current_domain.repository_for(Order).add(order)

        cart.clear(reason="checkout", order_id=order.id)
        current_domain.repository_for(ShoppingCart).add(cart)

        logger.info(
            "Order placed from cart",
            order_id=str(order.id),
            order_number=order.order_number,
            customer_id=str(command.customer_id),
            total_amount=quote.total_amount,
            payment_method=command.payment_method,
        )
        return str(order.id)
