"""Shared BDD fixtures and step definitions for the Ordering domain."""

import pytest
from ordering.errors import InvalidTransition
from ordering.gateway.port import GatewayUnavailable
from ordering.order.order import Order
from ordering.order.status import UpdateOrderStatus
from ordering.payment.coordinator import PaymentCoordinator
from ordering.utils.locking import process_under_order_lock
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def customer_id():
    return "cust-001"


@pytest.fixture()
def error():
    """Container for the error a When step was rejected with."""
    return {"exc": None}


@pytest.fixture()
def payment():
    """The last payment intent handed to the customer."""
    return {"gateway_intent_id": None}


def _load(order_id):
    return current_domain.repository_for(Order).get(order_id)


# ---------------------------------------------------------------------------
# Given steps: orders placed through checkout
# ---------------------------------------------------------------------------
@given("a pending stripe order", target_fixture="order_id")
def _(place_order, customer_id):
    return place_order(customer_id=customer_id)


@given("a pending cash on delivery order", target_fixture="order_id")
def _(place_order, customer_id):
    return place_order(customer_id=customer_id, payment_method="cod")


@given(parsers.cfparse('a stripe order that is "{status}"'), target_fixture="order_id")
def _(place_order, customer_id, status):
    order_id = place_order(customer_id=customer_id)
    process_under_order_lock(order_id, UpdateOrderStatus(order_id=order_id, status=status))
    return order_id


# ---------------------------------------------------------------------------
# When steps: paying
# ---------------------------------------------------------------------------
@when("the customer pays for the order")
def _(order_id, payment, error):
    coordinator = PaymentCoordinator()
    try:
        payment["gateway_intent_id"] = coordinator.create_intent(order_id)["gateway_intent_id"]
        coordinator.confirm_payment(payment["gateway_intent_id"])
    except (ValidationError, GatewayUnavailable) as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps: order state
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(order_id, status):
    assert _load(order_id).status == status


@then(parsers.cfparse('the payment status is "{status}"'))
def _(order_id, status):
    assert _load(order_id).payment_status == status


@then("the order action is rejected as an invalid transition")
def _(error):
    assert isinstance(error["exc"], InvalidTransition)


@then("the cart action fails with a validation error")
def _(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)
