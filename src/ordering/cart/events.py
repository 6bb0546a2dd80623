"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Boolean, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="ShoppingCart")
class CartItemAdded:
    """A product line was added to the cart, or merged into an identical line."""

    __version__ = 1

    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    attribute_selection = Text()  # JSON: {group_id: value_id}
    quantity = Integer(required=True)
    unit_price = Float(required=True)
    merged = Boolean(default=False)


@ordering.event(part_of="ShoppingCart")
class CartQuantityUpdated:
    """The quantity of a cart line was changed."""

    __version__ = 1

    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@ordering.event(part_of="ShoppingCart")
class CartItemReselected:
    """A cart line's attribute selection changed and the line was repriced."""

    __version__ = 1

    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    attribute_selection = Text(required=True)
    unit_price = Float(required=True)
    merged_into = Identifier()


@ordering.event(part_of="ShoppingCart")
class CartItemRemoved:
    """A line was removed from the cart."""

    __version__ = 1

    customer_id = Identifier(required=True)
    item_id = Identifier(required=True)


@ordering.event(part_of="ShoppingCart")
class CartCouponSelected:
    """A coupon was selected for the cart, replacing any earlier selection."""

    __version__ = 1

    customer_id = Identifier(required=True)
    coupon_code = String()
    previous_coupon_code = String()


@ordering.event(part_of="ShoppingCart")
class CartCleared:
    """All lines were removed, either explicitly or after a successful checkout."""

    __version__ = 1

    customer_id = Identifier(required=True)
    reason = String(max_length=50)
    order_id = Identifier()
