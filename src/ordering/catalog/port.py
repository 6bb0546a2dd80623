"""Catalog and coupon ports (abstract interfaces).

The storefront does not own product, attribute, warranty package or coupon
data. It reads them through these ports so the in-memory adapter used in
development and tests can be swapped for a real catalog service client.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class AttributeValue:
    """One selectable option inside an attribute group (e.g. "256GB")."""

    value_id: str
    label: str
    price_adjustment: float = 0.0


@dataclass(frozen=True)
class AttributeGroup:
    """A group of mutually exclusive options (e.g. "Storage")."""

    group_id: str
    name: str
    values: tuple[AttributeValue, ...] = ()
    required: bool = False

    def find_value(self, value_id: str) -> AttributeValue | None:
        return next((v for v in self.values if v.value_id == str(value_id)), None)


@dataclass(frozen=True)
class ProductVariant:
    variant_id: str
    sku: str | None = None
    price: float | None = None  # Overrides the product base price when set


@dataclass(frozen=True)
class ProductInfo:
    product_id: str
    name: str
    base_price: float
    sku: str | None = None
    attribute_groups: tuple[AttributeGroup, ...] = ()
    variants: tuple[ProductVariant, ...] = ()
    warranty_package_ids: tuple[str, ...] = ()

    def find_variant(self, variant_id: str | None) -> ProductVariant | None:
        if not variant_id:
            return None
        return next((v for v in self.variants if v.variant_id == str(variant_id)), None)


@dataclass(frozen=True)
class WarrantyPackage:
    package_id: str
    name: str
    duration_months: int
    price: float = 0.0


@dataclass(frozen=True)
class Coupon:
    """Read-only coupon definition. ``type`` is "percent" or "fixed"."""

    code: str
    type: str
    value: float
    min_order_amount: float | None = None
    max_discount: float | None = None
    is_active: bool = True
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    usage_limit: int | None = None
    used_count: int = 0
    description: str = field(default="", compare=False)


class Catalog(ABC):
    """Product and warranty package lookup."""

    @abstractmethod
    def get_product(self, product_id: str) -> ProductInfo | None:
        """Return the product, or None when it does not exist."""
        ...

    @abstractmethod
    def get_warranty_package(self, package_id: str) -> WarrantyPackage | None:
        """Return the warranty package, or None when it does not exist."""
        ...


class CouponBook(ABC):
    """Coupon lookup and redemption bookkeeping."""

    @abstractmethod
    def find(self, code: str) -> Coupon | None:
        """Return the coupon with ``code`` (case-insensitive), or None."""
        ...

    @abstractmethod
    def record_redemption(self, code: str) -> None:
        """Count one use of the coupon against its usage limit."""
        ...
