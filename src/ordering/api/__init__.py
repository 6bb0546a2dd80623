"""Ordering domain API package."""

from ordering.api.errors import register_ordering_exception_handlers
from ordering.api.routes import admin_router, cart_router, coupon_router, order_router, payment_router

__all__ = [
    "cart_router",
    "coupon_router",
    "order_router",
    "admin_router",
    "payment_router",
    "register_ordering_exception_handlers",
]
