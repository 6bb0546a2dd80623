"""Payment Coordinator: gateway intents and their confirmation.

Two commands drive online payment:

- CreatePaymentIntent hands out the order's active intent while it is
  unexpired and still matches the order total, and otherwise issues a new
  intent and supersedes the old one in the same unit of work.
- ConfirmPayment asks the gateway for the intent's outcome and records it
  on the order. It is safe to repeat: a settled intent answers from the
  local record without calling the gateway again.

An active intent is cancelled at the gateway before it is superseded or
voided. When the gateway reports that the customer already paid it, the
payment is recorded on the order instead and no new intent is issued.

Gateway calls are retried with exponential backoff. When the gateway stays
unavailable, GatewayUnavailable propagates and nothing is committed.

PaymentCoordinator is the entry point for callers: it takes the order's lock
before processing each command, so concurrent requests for one order are
serialized and each handler re-reads the order inside the lock.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import OrderNotPayable, StaleIntent
from ordering.gateway import get_gateway
from ordering.gateway.port import IntentStatus
from ordering.gateway.retry import RetryPolicy, call_with_retry
from ordering.order.order import Order, PaymentStatus
from ordering.payment.intent import IntentState, PaymentIntent, amounts_match
from ordering.utils.locking import process_under_order_lock
from ordering.utils.settings import get_settings

logger = structlog.get_logger(__name__)


@ordering.command(part_of="PaymentIntent")
class CreatePaymentIntent:
    order_id = Identifier(required=True)


@ordering.command(part_of="PaymentIntent")
class ConfirmPayment:
    gateway_intent_id = Identifier(required=True)


def _intent_response(intent, reused, payment_status=PaymentStatus.PENDING.value):
    return {
        "gateway_intent_id": str(intent.gateway_intent_id),
        "client_secret": intent.client_secret,
        "amount": intent.amount,
        "currency": intent.currency,
        "expires_at": intent.expires_at,
        "reused": reused,
        "payment_status": payment_status,
    }


def _record_capture(intent, order, result):
    """Settle ``intent`` as paid and record the payment on ``order``."""
    if not amounts_match(result.amount, intent.amount):
        raise StaleIntent({"gateway_intent_id": ["Gateway amount does not match the payment intent"]})
    transaction_id = result.transaction_id or str(intent.gateway_intent_id)
    intent.mark_succeeded(transaction_id)
    order.record_payment_success(
        gateway_intent_id=str(intent.gateway_intent_id),
        transaction_id=transaction_id,
        amount=intent.amount,
    )
    logger.info(
        "Payment confirmed",
        order_id=str(order.id),
        gateway_intent_id=str(intent.gateway_intent_id),
        transaction_id=transaction_id,
    )
    return transaction_id


def release_active_intent(order, policy=None):
    """Cancel the order's active intent at the gateway.

    Returns ``(intent, captured)``. ``intent`` is None when the order has no
    active intent. An intent the customer already paid cannot be cancelled;
    it is settled and the payment recorded on ``order``, and ``captured`` is
    True. A payment still processing at the gateway raises OrderNotPayable.
    The caller persists both aggregates.
    """
    if not order.payment_intent_id:
        return None, False
    try:
        intent = current_domain.repository_for(PaymentIntent).get(order.payment_intent_id)
    except ObjectNotFoundError:
        return None, False
    if not intent.is_active:
        return None, False

    policy = policy or RetryPolicy.from_settings(get_settings())
    result = call_with_retry(get_gateway().cancel_intent, str(intent.gateway_intent_id), policy=policy)

    if result.status == IntentStatus.SUCCEEDED:
        _record_capture(intent, order, result)
        return intent, True
    if result.status == IntentStatus.PROCESSING:
        raise OrderNotPayable({"payment_status": ["A payment for this order is still processing"]})
    return intent, False


@ordering.command_handler(part_of=PaymentIntent)
class PaymentIntentHandler:
    @handle(CreatePaymentIntent)
    def create_intent(self, command):
        settings = get_settings()
        policy = RetryPolicy.from_settings(settings)
        gateway = get_gateway()
        order_repo = current_domain.repository_for(Order)
        intent_repo = current_domain.repository_for(PaymentIntent)

        order = order_repo.get(command.order_id)
        order.assert_payable()
        total = order.pricing.total_amount

        current = None
        if order.payment_intent_id:
            try:
                current = intent_repo.get(order.payment_intent_id)
            except ObjectNotFoundError:
                current = None

        if current is not None and current.is_reusable_for(total):
            return _intent_response(current, reused=True)

        released, captured = release_active_intent(order, policy=policy)
        if captured:
            intent_repo.add(released)
            order_repo.add(order)
            return _intent_response(released, reused=True, payment_status=PaymentStatus.PAID.value)

        # A stable key per issuance lets the gateway dedupe our own retries
        idempotency_key = f"{order.id}:intent:{(order.payment_intent_sequence or 0) + 1}"
        result = call_with_retry(
            gateway.create_intent,
            order_id=str(order.id),
            amount=total,
            currency=order.pricing.currency,
            payment_method=order.payment_method,
            idempotency_key=idempotency_key,
            policy=policy,
        )

        if released is not None:
            released.supersede(result.gateway_intent_id)
            intent_repo.add(released)

        intent = PaymentIntent.create(
            gateway_intent_id=result.gateway_intent_id,
            order_id=str(order.id),
            amount=total,
            currency=order.pricing.currency,
            payment_method=order.payment_method,
            client_secret=result.client_secret,
            ttl_minutes=settings.payment_intent_ttl_minutes,
        )
        intent_repo.add(intent)

        order.attach_payment_intent(result.gateway_intent_id)
        order_repo.add(order)

        logger.info(
            "Payment intent issued",
            order_id=str(order.id),
            gateway_intent_id=result.gateway_intent_id,
            amount=total,
            superseded=str(released.gateway_intent_id) if released is not None else None,
        )
        return _intent_response(intent, reused=False)

    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        policy = RetryPolicy.from_settings(get_settings())
        order_repo = current_domain.repository_for(Order)
        intent_repo = current_domain.repository_for(PaymentIntent)

        intent = intent_repo.get(command.gateway_intent_id)
        order = order_repo.get(intent.order_id)

        # Already settled: answer from the local record
        if intent.status == IntentState.SUCCEEDED.value:
            return order.payment_status
        if intent.status == IntentState.FAILED.value:
            return PaymentStatus.FAILED.value

        intent.assert_confirmable(order.pricing.total_amount)
        if order.payment_status == PaymentStatus.PAID.value:
            raise StaleIntent({"gateway_intent_id": ["Order was already paid with another payment intent"]})
        order.assert_payable()

        result = call_with_retry(get_gateway().retrieve_intent, str(intent.gateway_intent_id), policy=policy)

        if result.status == IntentStatus.SUCCEEDED:
            _record_capture(intent, order, result)
            intent_repo.add(intent)
            order_repo.add(order)
            return PaymentStatus.PAID.value

        if result.status in (IntentStatus.FAILED, IntentStatus.CANCELED):
            reason = result.failure_reason or f"Payment intent {result.status}"
            intent.mark_failed(reason)
            order.record_payment_failure(gateway_intent_id=str(intent.gateway_intent_id), reason=reason)
            intent_repo.add(intent)
            order_repo.add(order)
            logger.warning(
                "Payment failed",
                order_id=str(order.id),
                gateway_intent_id=str(intent.gateway_intent_id),
                reason=reason,
                attempts=order.payment_attempts,
            )
            return PaymentStatus.FAILED.value

        # Still processing at the gateway; the client confirms again later
        return PaymentStatus.PENDING.value


class PaymentCoordinator:
    """Serializes payment commands per order."""

    def create_intent(self, order_id):
        return process_under_order_lock(order_id, CreatePaymentIntent(order_id=order_id))

    def confirm_payment(self, gateway_intent_id):
        intent = current_domain.repository_for(PaymentIntent).get(gateway_intent_id)
        return process_under_order_lock(intent.order_id, ConfirmPayment(gateway_intent_id=gateway_intent_id))
