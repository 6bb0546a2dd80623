"""BDD tests for the order lifecycle."""

from ordering.order.status import CancelOrder, ConfirmOrderReceived, UpdateOrderStatus
from ordering.utils.locking import process_under_order_lock
from protean.exceptions import ValidationError
from pytest_bdd import parsers, scenarios, when

scenarios("features/order_lifecycle.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the admin moves the order to "{status}"'))
def _(order_id, status, error):
    try:
        process_under_order_lock(order_id, UpdateOrderStatus(order_id=order_id, status=status))
    except ValidationError as exc:
        error["exc"] = exc


@when("the customer cancels the order")
def _(order_id, error):
    try:
        process_under_order_lock(
            order_id,
            CancelOrder(order_id=order_id, reason="Changed my mind", cancelled_by="customer"),
        )
    except ValidationError as exc:
        error["exc"] = exc


@when("the customer confirms receipt")
def _(order_id):
    process_under_order_lock(order_id, ConfirmOrderReceived(order_id=order_id))
