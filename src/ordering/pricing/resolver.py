"""Pricing Resolver: server-side price computation for carts and orders.

Everything here is pure: the same catalog data, selection and coupon always
produce the same numbers. Clients never supply prices.

    unit price  = base (or variant) price + sum(attribute adjustments) + warranty price
    discount    = coupon discount on the order subtotal (one coupon per order)
    tax         = (subtotal - discount) * tax rate
    shipping    = flat fee, waived at or above the free-shipping threshold
    total       = subtotal - discount + tax + shipping, never negative
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from protean.exceptions import ValidationError

from ordering.catalog.port import AttributeGroup, Coupon, ProductInfo, WarrantyPackage


class CouponType:
    PERCENT = "percent"
    FIXED = "fixed"


@dataclass(frozen=True)
class CouponEvaluation:
    eligible: bool
    discount: float = 0.0
    reason: str | None = None


@dataclass(frozen=True)
class PriceResolution:
    unit_price: float
    discount: float
    total: float
    coupon_eligible: bool


@dataclass(frozen=True)
class QuoteLine:
    unit_price: float
    quantity: int

    @property
    def line_total(self) -> float:
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class OrderQuote:
    subtotal: float
    discount_amount: float
    tax_amount: float
    shipping_amount: float
    total_amount: float
    currency: str
    coupon_code: str | None = None


def money(amount: float) -> float:
    return round(float(amount), 2)


# ---------------------------------------------------------------------------
# Attribute adjustments
# ---------------------------------------------------------------------------
def attribute_adjustment(
    attribute_selection: Mapping[str, str] | None,
    attribute_groups: Iterable[AttributeGroup],
) -> float:
    """Sum the price adjustments of the selected attribute values.

    Raises ValidationError when a required group has no selection, or when a
    selection names a group or value the product does not offer.
    """
    selection = {str(k): str(v) for k, v in (attribute_selection or {}).items()}
    groups = {group.group_id: group for group in attribute_groups}

    unknown_groups = sorted(set(selection) - set(groups))
    if unknown_groups:
        raise ValidationError({"attribute_selection": [f"Unknown attribute group {unknown_groups[0]}"]})

    adjustment = 0.0
    for group_id, group in groups.items():
        value_id = selection.get(group_id)
        if value_id is None:
            if group.required:
                raise ValidationError({"attribute_selection": [f"A value for {group.name} is required"]})
            continue
        value = group.find_value(value_id)
        if value is None:
            raise ValidationError({"attribute_selection": [f"Unknown value {value_id} for {group.name}"]})
        adjustment += value.price_adjustment
    return adjustment


def resolve_unit_price(
    product: ProductInfo,
    variant_id: str | None = None,
    attribute_selection: Mapping[str, str] | None = None,
    warranty_package: WarrantyPackage | None = None,
) -> float:
    """Unit price of one product line, including attribute and warranty add-ons."""
    base_price = product.base_price
    if variant_id:
        variant = product.find_variant(variant_id)
        if variant is None:
            raise ValidationError({"variant_id": [f"Unknown variant {variant_id} for product {product.product_id}"]})
        if variant.price is not None:
            base_price = variant.price

    unit_price = base_price + attribute_adjustment(attribute_selection, product.attribute_groups)
    if warranty_package is not None:
        if warranty_package.package_id not in product.warranty_package_ids:
            raise ValidationError(
                {"warranty_package_id": [f"Warranty package {warranty_package.package_id} is not offered"]}
            )
        unit_price += warranty_package.price
    return money(max(unit_price, 0.0))


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------
def evaluate_coupon(coupon: Coupon | None, order_amount: float, now: datetime | None = None) -> CouponEvaluation:
    """Decide whether ``coupon`` applies to ``order_amount`` and how much it takes off."""
    if coupon is None:
        return CouponEvaluation(eligible=False, reason="Coupon not found")

    now = now or datetime.now(UTC)
    if not coupon.is_active:
        return CouponEvaluation(eligible=False, reason="Coupon is not active")
    if coupon.starts_at is not None and now < coupon.starts_at:
        return CouponEvaluation(eligible=False, reason="Coupon is not yet valid")
    if coupon.ends_at is not None and now > coupon.ends_at:
        return CouponEvaluation(eligible=False, reason="Coupon has expired")
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return CouponEvaluation(eligible=False, reason="Coupon usage limit reached")
    if coupon.min_order_amount is not None and order_amount < coupon.min_order_amount:
        return CouponEvaluation(
            eligible=False,
            reason=f"Order amount must be at least {coupon.min_order_amount:g}",
        )

    if coupon.type == CouponType.PERCENT:
        discount = order_amount * coupon.value / 100
        if coupon.max_discount is not None:
            discount = min(discount, coupon.max_discount)
    elif coupon.type == CouponType.FIXED:
        discount = min(coupon.value, order_amount)
    else:
        return CouponEvaluation(eligible=False, reason=f"Unsupported coupon type {coupon.type}")

    return CouponEvaluation(eligible=True, discount=money(max(discount, 0.0)))


def resolve_price(
    base_price: float,
    attribute_selection: Mapping[str, str] | None,
    attribute_groups: Iterable[AttributeGroup],
    coupon: Coupon | None = None,
    quantity: int = 1,
    now: datetime | None = None,
) -> PriceResolution:
    """Price a single selection, optionally with a coupon applied to its total."""
    unit_price = money(base_price + attribute_adjustment(attribute_selection, attribute_groups))
    amount = money(unit_price * quantity)

    evaluation = evaluate_coupon(coupon, amount, now=now) if coupon is not None else CouponEvaluation(False)
    return PriceResolution(
        unit_price=unit_price,
        discount=evaluation.discount,
        total=money(max(amount - evaluation.discount, 0.0)),
        coupon_eligible=evaluation.eligible,
    )


# ---------------------------------------------------------------------------
# Order totals
# ---------------------------------------------------------------------------
def quote_order(
    lines: Iterable[QuoteLine],
    coupon: Coupon | None = None,
    tax_rate: float = 0.0,
    shipping_fee: float = 0.0,
    free_shipping_threshold: float | None = None,
    currency: str = "VND",
    now: datetime | None = None,
) -> OrderQuote:
    """Compute the totals of an order from its lines and an optional coupon.

    An ineligible coupon raises ValidationError rather than silently pricing
    the order without it.
    """
    subtotal = money(sum(line.line_total for line in lines))

    discount = 0.0
    coupon_code = None
    if coupon is not None:
        evaluation = evaluate_coupon(coupon, subtotal, now=now)
        if not evaluation.eligible:
            raise ValidationError({"coupon_code": [evaluation.reason]})
        discount = min(evaluation.discount, subtotal)
        coupon_code = coupon.code

    taxable = max(subtotal - discount, 0.0)
    tax = money(taxable * tax_rate)

    shipping = shipping_fee
    if free_shipping_threshold is not None and subtotal >= free_shipping_threshold:
        shipping = 0.0
    shipping = money(shipping)

    total = money(max(subtotal + tax + shipping - discount, 0.0))
    return OrderQuote(
        subtotal=subtotal,
        discount_amount=money(discount),
        tax_amount=tax,
        shipping_amount=shipping,
        total_amount=total,
        currency=currency,
        coupon_code=coupon_code,
    )
