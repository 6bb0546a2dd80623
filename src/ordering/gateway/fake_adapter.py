"""Configurable fake payment gateway for development and testing.

This adapter simulates a real payment gateway without any external calls.
Intents are kept in memory. When an intent is retrieved for the first time
after creation, the configured outcome decides whether the customer's
payment succeeded, was declined, or is still processing. It can also
simulate outages, making it useful for:
- Manual API testing via /payments/gateway/configure
- Automated tests with predictable outcomes
- Development without real gateway credentials
"""

import threading
from dataclasses import replace
from uuid import uuid4

from ordering.gateway.port import (
    GatewayUnavailable,
    IntentResult,
    IntentStatus,
    PaymentGateway,
    RefundResult,
)


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.processing: bool = False
        self.intents: dict[str, IntentResult] = {}
        self.calls: list[dict] = []
        self._outages_remaining = 0
        self._idempotency: dict[str, str] = {}
        self._lock = threading.Lock()

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Card declined",
        processing: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.processing = processing

    def fail_next(self, times: int = 1) -> None:
        """Make the next ``times`` calls raise GatewayUnavailable."""
        self._outages_remaining = times

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def complete_client_side(self, gateway_intent_id: str, status: str = IntentStatus.SUCCEEDED) -> None:
        """Settle an intent as if the customer finished paying it in the browser."""
        intent = self.intents[gateway_intent_id]
        transaction_id = f"fake_txn_{uuid4().hex[:12]}" if status == IntentStatus.SUCCEEDED else None
        self.intents[gateway_intent_id] = replace(intent, status=status, transaction_id=transaction_id)

    def _record(self, **call) -> None:
        with self._lock:
            self.calls.append(call)
            if self._outages_remaining > 0:
                self._outages_remaining -= 1
                raise GatewayUnavailable("Simulated gateway outage")

    def create_intent(
        self,
        order_id: str,
        amount: float,
        currency: str,
        payment_method: str,
        idempotency_key: str,
    ) -> IntentResult:
        self._record(
            method="create_intent",
            order_id=order_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            idempotency_key=idempotency_key,
        )

        existing_id = self._idempotency.get(idempotency_key)
        if existing_id is not None:
            return self.intents[existing_id]

        intent_id = f"pi_fake_{uuid4().hex[:16]}"
        intent = IntentResult(
            gateway_intent_id=intent_id,
            status=IntentStatus.REQUIRES_PAYMENT,
            amount=amount,
            currency=currency,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:12]}",
        )
        self.intents[intent_id] = intent
        self._idempotency[idempotency_key] = intent_id
        return intent

    def retrieve_intent(self, gateway_intent_id: str) -> IntentResult:
        self._record(method="retrieve_intent", gateway_intent_id=gateway_intent_id)

        intent = self.intents.get(gateway_intent_id)
        if intent is None:
            return IntentResult(
                gateway_intent_id=gateway_intent_id,
                status=IntentStatus.FAILED,
                amount=0.0,
                currency="",
                failure_reason="No such payment intent",
            )

        if intent.status in (IntentStatus.REQUIRES_PAYMENT, IntentStatus.PROCESSING):
            if self.processing:
                intent = replace(intent, status=IntentStatus.PROCESSING)
            elif self.should_succeed:
                intent = replace(
                    intent,
                    status=IntentStatus.SUCCEEDED,
                    transaction_id=f"fake_txn_{uuid4().hex[:12]}",
                )
            else:
                intent = replace(
                    intent,
                    status=IntentStatus.FAILED,
                    failure_reason=self.failure_reason,
                )
            self.intents[gateway_intent_id] = intent
        return intent

    def cancel_intent(self, gateway_intent_id: str) -> IntentResult:
        self._record(method="cancel_intent", gateway_intent_id=gateway_intent_id)

        intent = self.intents.get(gateway_intent_id)
        if intent is None:
            return IntentResult(
                gateway_intent_id=gateway_intent_id,
                status=IntentStatus.CANCELED,
                amount=0.0,
                currency="",
            )
        if intent.status in (IntentStatus.SUCCEEDED, IntentStatus.PROCESSING):
            return intent
        intent = replace(intent, status=IntentStatus.CANCELED)
        self.intents[gateway_intent_id] = intent
        return intent

    def create_refund(
        self,
        transaction_id: str,
        amount: float,
        currency: str,
        reason: str,
    ) -> RefundResult:
        self._record(
            method="create_refund",
            transaction_id=transaction_id,
            amount=amount,
            currency=currency,
            reason=reason,
        )

        if self.should_succeed:
            return RefundResult(
                success=True,
                gateway_refund_id=f"fake_ref_{uuid4().hex[:12]}",
                gateway_status="succeeded",
            )
        return RefundResult(
            success=False,
            gateway_status="failed",
            failure_reason=self.failure_reason,
        )
