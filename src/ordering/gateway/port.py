"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement:
intent creation, intent retrieval, intent cancellation and refunds. This
enables swapping between FakeGateway (dev/test) and StripeGateway
(production) without changing any domain or application code.

Amounts cross this port in major currency units (45_990_000.0 VND,
19.99 USD); adapters convert to whatever the provider expects.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class GatewayUnavailable(Exception):
    """The gateway could not be reached, timed out, or is temporarily failing."""


class IntentStatus:
    REQUIRES_PAYMENT = "requires_payment"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(frozen=True)
class IntentResult:
    """The gateway's view of a payment intent."""

    gateway_intent_id: str
    status: str
    amount: float
    currency: str
    client_secret: str | None = None
    transaction_id: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_intent(
        self,
        order_id: str,
        amount: float,
        currency: str,
        payment_method: str,
        idempotency_key: str,
    ) -> IntentResult:
        """Create a payment intent for a fixed amount."""
        ...

    @abstractmethod
    def retrieve_intent(self, gateway_intent_id: str) -> IntentResult:
        """Fetch the current state of an intent."""
        ...

    @abstractmethod
    def cancel_intent(self, gateway_intent_id: str) -> IntentResult:
        """Cancel an intent so it can no longer be paid.

        Returns the intent as the gateway left it. An intent the customer
        already paid, or one still processing, cannot be cancelled and is
        returned in that state.
        """
        ...

    @abstractmethod
    def create_refund(
        self,
        transaction_id: str,
        amount: float,
        currency: str,
        reason: str,
    ) -> RefundResult:
        """Refund a previously captured payment."""
        ...
