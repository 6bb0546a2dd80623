"""Domain events for the PaymentIntent aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from ordering.domain import ordering


@ordering.event(part_of="PaymentIntent")
class PaymentIntentCreated:
    """A gateway payment intent was issued for an order."""

    __version__ = 1

    gateway_intent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    payment_method = String(required=True)
    expires_at = DateTime(required=True)


@ordering.event(part_of="PaymentIntent")
class PaymentIntentSuperseded:
    """An intent was replaced by a newer one and can no longer be confirmed."""

    __version__ = 1

    gateway_intent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    superseded_by = Identifier(required=True)


@ordering.event(part_of="PaymentIntent")
class PaymentIntentSettled:
    """The gateway reported a final outcome for an intent."""

    __version__ = 1

    gateway_intent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    status = String(required=True)
    transaction_id = String()
    failure_reason = String()
