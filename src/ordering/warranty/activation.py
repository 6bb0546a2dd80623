"""Warranty activation and IMEI capture: commands and handler.

Warranties start automatically when an order completes. ActivateWarranty
is the explicit, idempotent entry point for orders that are already
completed: items whose window has started are left untouched.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order
from ordering.utils.locking import process_under_order_lock

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class ActivateWarranty:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class RecordImei:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    imei = String(required=True, min_length=8, max_length=50)


@ordering.command_handler(part_of=Order)
class WarrantyHandler:
    @handle(ActivateWarranty)
    def activate_warranty(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        activated = order.activate_warranties()
        if activated:
            repo.add(order)
            logger.info("Warranties activated", order_id=str(order.id), items=activated)
        return activated

    @handle(RecordImei)
    def record_imei(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_imei(item_id=command.item_id, imei=command.imei)
        repo.add(order)


def activate(order_id):
    """Activate the warranties of a completed order. Returns the number started."""
    return process_under_order_lock(order_id, ActivateWarranty(order_id=order_id))
