"""Stripe payment gateway adapter.

Uses the stripe-python SDK to create, retrieve and cancel PaymentIntents
and to issue refunds. Every call carries the configured API key and goes
through an HTTP client with a bounded timeout. Network failures, rate
limiting and Stripe-side 5xx errors surface as GatewayUnavailable so the
coordinator can retry them; any other Stripe error is a client error.
"""

import stripe
from protean.exceptions import ValidationError

from ordering.gateway.port import (
    GatewayUnavailable,
    IntentResult,
    IntentStatus,
    PaymentGateway,
    RefundResult,
)

# Currencies Stripe expects in whole units rather than cents
ZERO_DECIMAL_CURRENCIES = {
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
}  # fmt: skip

_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


def to_minor_units(amount: float, currency: str) -> int:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return int(round(amount))
    return int(round(amount * 100))


def from_minor_units(amount: int, currency: str) -> float:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return float(amount)
    return amount / 100


def _status(intent) -> str:
    status = intent.status
    if status == "succeeded":
        return IntentStatus.SUCCEEDED
    if status == "canceled":
        return IntentStatus.CANCELED
    if status in ("processing", "requires_capture"):
        return IntentStatus.PROCESSING
    if status == "requires_payment_method" and getattr(intent, "last_payment_error", None):
        return IntentStatus.FAILED
    return IntentStatus.REQUIRES_PAYMENT


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(self, api_key: str, timeout: float = 10.0) -> None:
        if not api_key:
            raise ValueError("StripeGateway requires an API key")
        self.api_key = api_key
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        # Retries are owned by the payment coordinator
        stripe.max_network_retries = 0

    def _call(self, operation, *args, **kwargs):
        try:
            return operation(*args, api_key=self.api_key, **kwargs)
        except _TRANSIENT_ERRORS as exc:
            raise GatewayUnavailable(str(exc)) from exc
        except stripe.StripeError as exc:
            raise ValidationError({"payment": [exc.user_message or str(exc)]}) from exc

    def _result(self, intent) -> IntentResult:
        currency = intent.currency
        failure = getattr(intent, "last_payment_error", None)
        return IntentResult(
            gateway_intent_id=intent.id,
            status=_status(intent),
            amount=from_minor_units(intent.amount, currency),
            currency=currency.upper(),
            client_secret=intent.client_secret,
            transaction_id=getattr(intent, "latest_charge", None),
            failure_reason=getattr(failure, "message", None) if failure else None,
        )

    def create_intent(
        self,
        order_id: str,
        amount: float,
        currency: str,
        payment_method: str,
        idempotency_key: str,
    ) -> IntentResult:
        intent = self._call(
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount, currency),
            currency=currency.lower(),
            automatic_payment_methods={"enabled": True},
            metadata={"order_id": order_id, "payment_method": payment_method},
            idempotency_key=idempotency_key,
        )
        return self._result(intent)

    def retrieve_intent(self, gateway_intent_id: str) -> IntentResult:
        return self._result(self._call(stripe.PaymentIntent.retrieve, gateway_intent_id))

    def cancel_intent(self, gateway_intent_id: str) -> IntentResult:
        intent = self._call(stripe.PaymentIntent.retrieve, gateway_intent_id)
        if intent.status in ("canceled", "succeeded", "processing"):
            return self._result(intent)
        return self._result(self._call(stripe.PaymentIntent.cancel, gateway_intent_id))

    def create_refund(
        self,
        transaction_id: str,
        amount: float,
        currency: str,
        reason: str,
    ) -> RefundResult:
        try:
            refund = stripe.Refund.create(
                charge=transaction_id,
                amount=to_minor_units(amount, currency),
                metadata={"reason": reason},
                api_key=self.api_key,
            )
        except _TRANSIENT_ERRORS as exc:
            raise GatewayUnavailable(str(exc)) from exc
        except stripe.StripeError as exc:
            return RefundResult(success=False, gateway_status="failed", failure_reason=str(exc))

        return RefundResult(
            success=refund.status in ("succeeded", "pending"),
            gateway_refund_id=refund.id,
            gateway_status=refund.status,
            failure_reason=getattr(refund, "failure_reason", None),
        )
