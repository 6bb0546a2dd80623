"""Ordering bounded context: carts, orders, payments and warranties.

Handles the shopping cart (CQRS), order lifecycle with its status state
machine, gateway-backed payment intents, and warranty activation on
order completion.
"""

import structlog
from protean.domain import Domain

from ordering.utils.logging import configure_logging

configure_logging()

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
