"""Shopping Cart aggregate (CQRS): one cart per customer, snapshotted at checkout.

Line identity is the (product, variant, attribute selection) tuple: adding
an identical tuple increases the existing line's quantity, and reselecting
attributes into a tuple that already exists merges the two lines. Unit
prices are supplied by the Pricing Resolver, never by the client.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from ordering.cart.events import (
    CartCleared,
    CartCouponSelected,
    CartItemAdded,
    CartItemReselected,
    CartItemRemoved,
    CartQuantityUpdated,
)
from ordering.domain import ordering


def canonical_selection(attribute_selection) -> str:
    """Serialize an attribute selection so equal selections compare equal."""
    if isinstance(attribute_selection, str):
        attribute_selection = json.loads(attribute_selection) if attribute_selection else {}
    return json.dumps(
        {str(group): str(value) for group, value in (attribute_selection or {}).items()},
        sort_keys=True,
    )


@dataclass(frozen=True)
class CartLine:
    """Immutable copy of a cart line, the only input to order creation."""

    item_id: str
    product_id: str
    variant_id: str | None
    name: str
    sku: str | None
    quantity: int
    unit_price: float
    attribute_selection: tuple[tuple[str, str], ...]
    warranty_package_id: str | None

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)

    def selection_dict(self) -> dict:
        return dict(self.attribute_selection)


@ordering.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(max_length=255)
    sku = String(max_length=50)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    attribute_selection = Text(default="{}")  # Canonical JSON: {group_id: value_id}
    warranty_package_id = Identifier()
    line_total = Float(default=0.0)
    added_at = DateTime()

    def matches(self, product_id, variant_id, selection: str) -> bool:
        return (
            str(self.product_id) == str(product_id)
            and str(self.variant_id or "") == str(variant_id or "")
            and self.attribute_selection == selection
        )


@ordering.aggregate
class ShoppingCart:
    customer_id = Identifier(identifier=True)
    items = HasMany(CartItem)
    coupon_code = String(max_length=100)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def line_totals_must_match_prices(self):
        for item in self.items or []:
            if abs(item.line_total - round(item.unit_price * item.quantity, 2)) > 0.01:
                raise ValidationError({"items": ["Line total must equal unit price times quantity"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id):
        now = datetime.now(UTC)
        return cls(
            customer_id=customer_id,
            created_at=now,
            updated_at=now,
        )

    def _find_item(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ObjectNotFoundError({"item_id": ["Item not found in cart"]})
        return item

    def _set_line(self, item, quantity, unit_price):
        with atomic_change(self):
            item.quantity = quantity
            item.unit_price = unit_price
            item.line_total = round(unit_price * quantity, 2)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(
        self,
        product_id,
        quantity,
        unit_price,
        variant_id=None,
        attribute_selection=None,
        warranty_package_id=None,
        name=None,
        sku=None,
    ):
        """Add a line, or increase the quantity of the identical line."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        selection = canonical_selection(attribute_selection)
        existing = next((i for i in self.items if i.matches(product_id, variant_id, selection)), None)
        now = datetime.now(UTC)

        if existing:
            if warranty_package_id:
                existing.warranty_package_id = warranty_package_id
                self._set_line(existing, existing.quantity + quantity, unit_price)
            else:
                self._set_line(existing, existing.quantity + quantity, existing.unit_price)
            item = existing
        else:
            item = CartItem(
                product_id=product_id,
                variant_id=variant_id,
                name=name,
                sku=sku,
                quantity=quantity,
                unit_price=unit_price,
                attribute_selection=selection,
                warranty_package_id=warranty_package_id,
                line_total=round(unit_price * quantity, 2),
                added_at=now,
            )
            self.add_items(item)

        self.updated_at = now

        self.raise_(
            CartItemAdded(
                customer_id=str(self.customer_id),
                item_id=str(item.id),
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                attribute_selection=selection,
                quantity=item.quantity,
                unit_price=item.unit_price,
                merged=existing is not None,
            )
        )
        return item

    def update_quantity(self, item_id, new_quantity):
        """Set a line's quantity. Values below 1 are clamped to 1."""
        item = self._find_item(item_id)
        previous_quantity = item.quantity
        quantity = max(1, int(new_quantity))

        self._set_line(item, quantity, item.unit_price)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartQuantityUpdated(
                customer_id=str(self.customer_id),
                item_id=str(item_id),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )
        return item

    def reselect_attributes(self, item_id, attribute_selection, unit_price):
        """Change a line's attribute selection and reprice it.

        If another line already carries the new selection, the two lines are
        merged and the surviving line is returned.
        """
        item = self._find_item(item_id)
        selection = canonical_selection(attribute_selection)

        twin = next(
            (
                i
                for i in self.items
                if str(i.id) != str(item.id) and i.matches(item.product_id, item.variant_id, selection)
            ),
            None,
        )

        if twin is not None:
            self._set_line(twin, twin.quantity + item.quantity, unit_price)
            self.remove_items(item)
            survivor = twin
        else:
            item.attribute_selection = selection
            self._set_line(item, item.quantity, unit_price)
            survivor = item

        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartItemReselected(
                customer_id=str(self.customer_id),
                item_id=str(item_id),
                attribute_selection=selection,
                unit_price=unit_price,
                merged_into=str(twin.id) if twin is not None else None,
            )
        )
        return survivor

    def remove_item(self, item_id):
        """Remove a line from the cart."""
        item = self._find_item(item_id)
        self.remove_items(item)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartItemRemoved(
                customer_id=str(self.customer_id),
                item_id=str(item_id),
            )
        )

    # -------------------------------------------------------------------
    # Coupon selection
    # -------------------------------------------------------------------
    def select_coupon(self, coupon_code):
        """Select the cart's coupon. A new selection replaces the previous one."""
        previous = self.coupon_code
        self.coupon_code = coupon_code.strip().upper() if coupon_code else None
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartCouponSelected(
                customer_id=str(self.customer_id),
                coupon_code=self.coupon_code,
                previous_coupon_code=previous,
            )
        )

    # -------------------------------------------------------------------
    # Cart lifecycle
    # -------------------------------------------------------------------
    def clear(self, reason="customer", order_id=None):
        """Remove every line and the coupon selection."""
        for item in list(self.items):
            self.remove_items(item)
        self.coupon_code = None
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartCleared(
                customer_id=str(self.customer_id),
                reason=reason,
                order_id=str(order_id) if order_id else None,
            )
        )

    def snapshot(self) -> tuple[CartLine, ...]:
        """Immutable copies of the current lines, in insertion order."""
        lines = []
        for item in self.items:
            selection = json.loads(item.attribute_selection) if item.attribute_selection else {}
            lines.append(
                CartLine(
                    item_id=str(item.id),
                    product_id=str(item.product_id),
                    variant_id=str(item.variant_id) if item.variant_id else None,
                    name=item.name or "",
                    sku=item.sku,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    attribute_selection=tuple(sorted(selection.items())),
                    warranty_package_id=str(item.warranty_package_id) if item.warranty_package_id else None,
                )
            )
        return tuple(lines)

    @property
    def subtotal(self) -> float:
        return round(sum(item.line_total for item in self.items or []), 2)
