"""Cart management: commands and handler.

Every handler prices lines through the catalog and the Pricing Resolver.
Callers process these commands while holding the customer's cart lock.
"""

import json

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.cart.cart import ShoppingCart
from ordering.catalog import get_catalog, get_coupon_book
from ordering.domain import ordering
from ordering.pricing.resolver import evaluate_coupon, resolve_unit_price


@ordering.command(part_of="ShoppingCart")
class AddToCart:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(min_value=1, default=1)
    attribute_selection = Text()  # JSON: {group_id: value_id}
    warranty_package_id = Identifier()


@ordering.command(part_of="ShoppingCart")
class UpdateCartQuantity:
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    new_quantity = Integer(required=True)  # Clamped to 1 by the cart


@ordering.command(part_of="ShoppingCart")
class ReselectCartAttributes:
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    attribute_selection = Text(required=True)


@ordering.command(part_of="ShoppingCart")
class RemoveFromCart:
    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)


@ordering.command(part_of="ShoppingCart")
class SelectCartCoupon:
    """Select (or, with no code, deselect) the coupon used at checkout."""

    customer_id = Identifier(required=True)
    coupon_code = String(max_length=100)


@ordering.command(part_of="ShoppingCart")
class ClearCart:
    customer_id = Identifier(required=True)


def load_or_create_cart(customer_id) -> ShoppingCart:
    repo = current_domain.repository_for(ShoppingCart)
    try:
        return repo.get(customer_id)
    except ObjectNotFoundError:
        return ShoppingCart.create(customer_id=customer_id)


def _selection(raw) -> dict:
    if not raw:
        return {}
    try:
        selection = json.loads(raw) if isinstance(raw, str) else dict(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError({"attribute_selection": ["Attribute selection must be a JSON object"]}) from exc
    if not isinstance(selection, dict):
        raise ValidationError({"attribute_selection": ["Attribute selection must be a JSON object"]})
    return selection


def price_line(product_id, variant_id=None, attribute_selection=None, warranty_package_id=None):
    """Look the product up in the catalog and return ``(product, unit_price)``."""
    catalog = get_catalog()
    product = catalog.get_product(product_id)
    if product is None:
        raise ValidationError({"product_id": [f"Product {product_id} does not exist"]})

    package = None
    if warranty_package_id:
        package = catalog.get_warranty_package(warranty_package_id)
        if package is None:
            raise ValidationError({"warranty_package_id": [f"Warranty package {warranty_package_id} does not exist"]})

    unit_price = resolve_unit_price(
        product,
        variant_id=variant_id,
        attribute_selection=attribute_selection,
        warranty_package=package,
    )
    return product, unit_price


@ordering.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        cart = load_or_create_cart(command.customer_id)
        selection = _selection(command.attribute_selection)
        product, unit_price = price_line(
            command.product_id,
            variant_id=command.variant_id,
            attribute_selection=selection,
            warranty_package_id=command.warranty_package_id,
        )
        variant = product.find_variant(command.variant_id)
        item = cart.add_item(
            product_id=command.product_id,
            variant_id=command.variant_id,
            quantity=command.quantity,
            unit_price=unit_price,
            attribute_selection=selection,
            warranty_package_id=command.warranty_package_id,
            name=product.name,
            sku=(variant.sku if variant and variant.sku else product.sku),
        )
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(item.id)

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.customer_id)
        cart.update_quantity(item_id=command.item_id, new_quantity=command.new_quantity)
        repo.add(cart)

    @handle(ReselectCartAttributes)
    def reselect_attributes(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.customer_id)
        item = next((i for i in cart.items if str(i.id) == str(command.item_id)), None)
        if item is None:
            raise ObjectNotFoundError({"item_id": ["Item not found in cart"]})

        selection = _selection(command.attribute_selection)
        _, unit_price = price_line(
            item.product_id,
            variant_id=item.variant_id,
            attribute_selection=selection,
            warranty_package_id=item.warranty_package_id,
        )
        survivor = cart.reselect_attributes(
            item_id=command.item_id,
            attribute_selection=selection,
            unit_price=unit_price,
        )
        repo.add(cart)
        return str(survivor.id)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.customer_id)
        cart.remove_item(item_id=command.item_id)
        repo.add(cart)

    @handle(SelectCartCoupon)
    def select_coupon(self, command):
        cart = load_or_create_cart(command.customer_id)
        if command.coupon_code:
            evaluation = evaluate_coupon(get_coupon_book().find(command.coupon_code), cart.subtotal)
            if not evaluation.eligible:
                raise ValidationError({"coupon_code": [evaluation.reason]})
        cart.select_coupon(command.coupon_code)
        current_domain.repository_for(ShoppingCart).add(cart)

    @handle(ClearCart)
    def clear_cart(self, command):
        cart = load_or_create_cart(command.customer_id)
        cart.clear()
        current_domain.repository_for(ShoppingCart).add(cart)
