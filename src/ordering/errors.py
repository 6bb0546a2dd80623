"""Error taxonomy for the ordering lifecycle.

Guard failures subclass Protean's ``ValidationError`` so they carry the same
``messages`` payload, and the API maps each of them to 409 Conflict.
``GatewayUnavailable`` lives with the gateway port.
"""

from protean.exceptions import ValidationError


class InvalidTransition(ValidationError):
    """A status or payment-status change is not allowed from the current state."""


class OrderNotPayable(ValidationError):
    """A payment intent was requested for an order that cannot be paid online."""


class StaleIntent(ValidationError):
    """A payment intent was superseded or no longer matches the order total."""
