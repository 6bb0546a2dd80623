"""PaymentIntent aggregate (CQRS): the local record of a gateway intent.

Keyed by the gateway's intent id. At most one intent per order is active;
issuing a new one supersedes the previous one in the same unit of work.

    active → succeeded | failed | superseded | voided

An intent is voided when its order is cancelled before it was paid.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.fields import DateTime, Float, Identifier, String, Text

from ordering.domain import ordering
from ordering.errors import StaleIntent
from ordering.payment.events import (
    PaymentIntentCreated,
    PaymentIntentSettled,
    PaymentIntentSuperseded,
)


class IntentState(Enum):
    ACTIVE = "active"
    SUPERSEDED = "superseded"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    VOIDED = "voided"


# Amount comparisons tolerate float rounding below one hundredth
_AMOUNT_TOLERANCE = 0.005


def amounts_match(left: float, right: float) -> bool:
    return abs(left - right) < _AMOUNT_TOLERANCE


@ordering.aggregate
class PaymentIntent:
    gateway_intent_id = Identifier(identifier=True)
    order_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    currency = String(required=True, max_length=3)
    payment_method = String(required=True, max_length=20)
    client_secret = Text()
    status = String(choices=IntentState, default=IntentState.ACTIVE.value)
    transaction_id = String(max_length=255)
    failure_reason = String(max_length=500)
    superseded_by = Identifier()
    expires_at = DateTime(required=True)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(
        cls,
        gateway_intent_id,
        order_id,
        amount,
        currency,
        payment_method,
        client_secret,
        ttl_minutes,
    ):
        now = datetime.now(UTC)
        intent = cls(
            gateway_intent_id=gateway_intent_id,
            order_id=order_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            client_secret=client_secret,
            status=IntentState.ACTIVE.value,
            expires_at=now + timedelta(minutes=ttl_minutes),
            created_at=now,
            updated_at=now,
        )
        intent.raise_(
            PaymentIntentCreated(
                gateway_intent_id=gateway_intent_id,
                order_id=str(order_id),
                amount=amount,
                currency=currency,
                payment_method=payment_method,
                expires_at=intent.expires_at,
            )
        )
        return intent

    @property
    def is_active(self) -> bool:
        return self.status == IntentState.ACTIVE.value

    def is_expired(self, now=None) -> bool:
        now = now or datetime.now(UTC)
        return now >= self.expires_at

    def is_reusable_for(self, order_total, now=None) -> bool:
        """An active, unexpired intent for the current total is handed out again."""
        return self.is_active and not self.is_expired(now) and amounts_match(self.amount, order_total)

    def supersede(self, superseded_by):
        if not self.is_active:
            return
        self.status = IntentState.SUPERSEDED.value
        self.superseded_by = superseded_by
        self.updated_at = datetime.now(UTC)
        self.raise_(
            PaymentIntentSuperseded(
                gateway_intent_id=str(self.gateway_intent_id),
                order_id=str(self.order_id),
                superseded_by=str(superseded_by),
            )
        )

    def assert_confirmable(self, order_total):
        """Raise StaleIntent when this intent must not settle the order."""
        if self.status == IntentState.SUPERSEDED.value:
            raise StaleIntent({"gateway_intent_id": [f"Payment intent was superseded by {self.superseded_by}"]})
        if not amounts_match(self.amount, order_total):
            raise StaleIntent(
                {"gateway_intent_id": [f"Payment intent amount {self.amount:g} does not match order total {order_total:g}"]}
            )

    def _settle(self, state, transaction_id=None, failure_reason=None):
        self.status = state.value
        self.transaction_id = transaction_id
        self.failure_reason = failure_reason
        self.updated_at = datetime.now(UTC)
        self.raise_(
            PaymentIntentSettled(
                gateway_intent_id=str(self.gateway_intent_id),
                order_id=str(self.order_id),
                status=state.value,
                transaction_id=transaction_id,
                failure_reason=failure_reason,
            )
        )

    def mark_succeeded(self, transaction_id):
        self._settle(IntentState.SUCCEEDED, transaction_id=transaction_id)

    def mark_failed(self, reason):
        self._settle(IntentState.FAILED, failure_reason=reason)

    def void(self, reason):
        if self.is_active:
            self._settle(IntentState.VOIDED, failure_reason=reason)
