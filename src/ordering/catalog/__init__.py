"""Catalog and coupon factories.

Provides get/set/reset pairs to swap implementations:
- InMemoryCatalog / InMemoryCouponBook for development and testing
- a catalog service client in production
"""

from ordering.catalog.memory_adapter import InMemoryCatalog, InMemoryCouponBook
from ordering.catalog.port import Catalog, CouponBook

_current_catalog: Catalog | None = None
_current_coupon_book: CouponBook | None = None


def get_catalog() -> Catalog:
    """Return the current catalog. Defaults to an empty InMemoryCatalog."""
    global _current_catalog
    if _current_catalog is None:
        _current_catalog = InMemoryCatalog()
    return _current_catalog


def set_catalog(catalog: Catalog) -> None:
    """Override the active catalog (useful for tests)."""
    global _current_catalog
    _current_catalog = catalog


def reset_catalog() -> None:
    global _current_catalog
    _current_catalog = None


def get_coupon_book() -> CouponBook:
    """Return the current coupon book. Defaults to an empty InMemoryCouponBook."""
    global _current_coupon_book
    if _current_coupon_book is None:
        _current_coupon_book = InMemoryCouponBook()
    return _current_coupon_book


def set_coupon_book(coupon_book: CouponBook) -> None:
    global _current_coupon_book
    _current_coupon_book = coupon_book


def reset_coupon_book() -> None:
    global _current_coupon_book
    _current_coupon_book = None
