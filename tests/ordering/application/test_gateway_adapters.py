"""Tests for the payment gateway port, its adapters and the factory."""

from types import SimpleNamespace

import pytest
import stripe
from ordering.gateway import get_gateway, reset_gateway, set_gateway
from ordering.gateway.fake_adapter import FakeGateway
from ordering.gateway.port import GatewayUnavailable, IntentResult, IntentStatus, RefundResult
from ordering.gateway.stripe_adapter import StripeGateway, from_minor_units, to_minor_units
from ordering.utils.settings import get_settings
from protean.exceptions import ValidationError


def _create(gateway, key="ord-1:intent:1", amount=45_990_000.0):
    return gateway.create_intent(
        order_id="ord-1",
        amount=amount,
        currency="VND",
        payment_method="stripe",
        idempotency_key=key,
    )


class TestFakeGateway:
    def test_create_intent(self):
        gateway = FakeGateway()
        intent = _create(gateway)

        assert isinstance(intent, IntentResult)
        assert intent.gateway_intent_id.startswith("pi_fake_")
        assert intent.status == IntentStatus.REQUIRES_PAYMENT
        assert intent.client_secret is not None
        assert intent.amount == 45_990_000.0

    def test_idempotency_key_returns_same_intent(self):
        gateway = FakeGateway()
        first = _create(gateway)
        second = _create(gateway)
        assert first.gateway_intent_id == second.gateway_intent_id
        assert len(gateway.intents) == 1

    def test_retrieve_succeeds_by_default(self):
        gateway = FakeGateway()
        intent = _create(gateway)
        result = gateway.retrieve_intent(intent.gateway_intent_id)

        assert result.status == IntentStatus.SUCCEEDED
        assert result.transaction_id.startswith("fake_txn_")

    def test_outcome_is_settled_once(self):
        gateway = FakeGateway()
        intent = _create(gateway)
        first = gateway.retrieve_intent(intent.gateway_intent_id)
        gateway.configure(should_succeed=False)
        second = gateway.retrieve_intent(intent.gateway_intent_id)

        assert second.status == IntentStatus.SUCCEEDED
        assert second.transaction_id == first.transaction_id

    def test_configured_decline(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_reason="Insufficient funds")
        intent = _create(gateway)
        result = gateway.retrieve_intent(intent.gateway_intent_id)

        assert result.status == IntentStatus.FAILED
        assert result.failure_reason == "Insufficient funds"

    def test_processing_then_settles(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=True, processing=True)
        intent = _create(gateway)
        assert gateway.retrieve_intent(intent.gateway_intent_id).status == IntentStatus.PROCESSING

        gateway.configure(should_succeed=True)
        assert gateway.retrieve_intent(intent.gateway_intent_id).status == IntentStatus.SUCCEEDED

    def test_cancel_intent(self):
        gateway = FakeGateway()
        intent = _create(gateway)
        assert gateway.cancel_intent(intent.gateway_intent_id).status == IntentStatus.CANCELED
        assert gateway.retrieve_intent(intent.gateway_intent_id).status == IntentStatus.CANCELED

    def test_cancel_reports_intent_paid_client_side(self):
        gateway = FakeGateway()
        intent = _create(gateway)
        gateway.complete_client_side(intent.gateway_intent_id)

        result = gateway.cancel_intent(intent.gateway_intent_id)
        assert result.status == IntentStatus.SUCCEEDED
        assert result.transaction_id.startswith("fake_txn_")

    def test_unknown_intent_is_failed(self):
        assert FakeGateway().retrieve_intent("pi_missing").status == IntentStatus.FAILED

    def test_simulated_outage(self):
        gateway = FakeGateway()
        gateway.fail_next(2)

        with pytest.raises(GatewayUnavailable):
            _create(gateway)
        with pytest.raises(GatewayUnavailable):
            _create(gateway)
        assert _create(gateway).status == IntentStatus.REQUIRES_PAYMENT
        assert len(gateway.calls_to("create_intent")) == 3

    def test_refund(self):
        gateway = FakeGateway()
        result = gateway.create_refund(transaction_id="txn-1", amount=100.0, currency="VND", reason="Defective")
        assert isinstance(result, RefundResult)
        assert result.success is True
        assert result.gateway_refund_id.startswith("fake_ref_")

    def test_refund_declined(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_reason="Refund limit exceeded")
        result = gateway.create_refund(transaction_id="txn-1", amount=100.0, currency="VND", reason="Defective")
        assert result.success is False
        assert result.failure_reason == "Refund limit exceeded"


class TestMinorUnits:
    def test_zero_decimal_currency_is_unscaled(self):
        assert to_minor_units(45_990_000.0, "VND") == 45_990_000
        assert from_minor_units(45_990_000, "vnd") == 45_990_000.0

    def test_two_decimal_currency(self):
        assert to_minor_units(19.99, "USD") == 1999
        assert from_minor_units(1999, "usd") == 19.99


def _stripe_intent(status="requires_payment_method", **extra):
    fields = {
        "id": "pi_123",
        "status": status,
        "amount": 45_990_000,
        "currency": "vnd",
        "client_secret": "pi_123_secret",
    }
    fields.update(extra)
    return SimpleNamespace(**fields)


@pytest.fixture()
def stripe_gateway(monkeypatch):
    monkeypatch.setattr(stripe, "default_http_client", None)
    monkeypatch.setattr(stripe, "max_network_retries", 0)
    return StripeGateway(api_key="sk_test_123", timeout=5.0)


class TestStripeGateway:
    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            StripeGateway(api_key="")

    def test_create_intent_sends_unscaled_vnd(self, stripe_gateway, monkeypatch):
        captured = {}

        def create(**kwargs):
            captured.update(kwargs)
            return _stripe_intent()

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        result = _create(stripe_gateway)

        assert captured["amount"] == 45_990_000
        assert captured["currency"] == "vnd"
        assert captured["idempotency_key"] == "ord-1:intent:1"
        assert captured["api_key"] == "sk_test_123"
        assert result.gateway_intent_id == "pi_123"
        assert result.status == IntentStatus.REQUIRES_PAYMENT
        assert result.amount == 45_990_000.0
        assert result.currency == "VND"

    def test_retrieve_succeeded_intent(self, stripe_gateway, monkeypatch):
        monkeypatch.setattr(
            stripe.PaymentIntent,
            "retrieve",
            lambda intent_id, **kwargs: _stripe_intent("succeeded", latest_charge="ch_1"),
        )
        result = stripe_gateway.retrieve_intent("pi_123")
        assert result.status == IntentStatus.SUCCEEDED
        assert result.transaction_id == "ch_1"

    def test_declined_intent_is_failed(self, stripe_gateway, monkeypatch):
        error = SimpleNamespace(message="Your card was declined.")
        monkeypatch.setattr(
            stripe.PaymentIntent,
            "retrieve",
            lambda intent_id, **kwargs: _stripe_intent(last_payment_error=error),
        )
        result = stripe_gateway.retrieve_intent("pi_123")
        assert result.status == IntentStatus.FAILED
        assert result.failure_reason == "Your card was declined."

    def test_connection_error_is_unavailable(self, stripe_gateway, monkeypatch):
        def retrieve(intent_id, **kwargs):
            raise stripe.APIConnectionError("Network down")

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)
        with pytest.raises(GatewayUnavailable):
            stripe_gateway.retrieve_intent("pi_123")

    def test_invalid_request_is_validation_error(self, stripe_gateway, monkeypatch):
        def retrieve(intent_id, **kwargs):
            raise stripe.InvalidRequestError("No such payment_intent", param="intent")

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)
        with pytest.raises(ValidationError):
            stripe_gateway.retrieve_intent("pi_123")

    def test_cancel_skips_settled_intent(self, stripe_gateway, monkeypatch):
        cancelled = []
        monkeypatch.setattr(
            stripe.PaymentIntent,
            "retrieve",
            lambda intent_id, **kwargs: _stripe_intent("succeeded", latest_charge="ch_1"),
        )
        monkeypatch.setattr(stripe.PaymentIntent, "cancel", lambda intent_id, **kwargs: cancelled.append(intent_id))

        result = stripe_gateway.cancel_intent("pi_123")
        assert cancelled == []
        assert result.status == IntentStatus.SUCCEEDED
        assert result.transaction_id == "ch_1"

    def test_cancel_skips_processing_intent(self, stripe_gateway, monkeypatch):
        cancelled = []
        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", lambda intent_id, **kwargs: _stripe_intent("processing"))
        monkeypatch.setattr(stripe.PaymentIntent, "cancel", lambda intent_id, **kwargs: cancelled.append(intent_id))

        assert stripe_gateway.cancel_intent("pi_123").status == IntentStatus.PROCESSING
        assert cancelled == []

    def test_cancel_open_intent(self, stripe_gateway, monkeypatch):
        cancelled = []

        def cancel(intent_id, **kwargs):
            cancelled.append(intent_id)
            return _stripe_intent("canceled")

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", lambda intent_id, **kwargs: _stripe_intent())
        monkeypatch.setattr(stripe.PaymentIntent, "cancel", cancel)

        assert stripe_gateway.cancel_intent("pi_123").status == IntentStatus.CANCELED
        assert cancelled == ["pi_123"]

    def test_refund(self, stripe_gateway, monkeypatch):
        captured = {}

        def create(**kwargs):
            captured.update(kwargs)
            return SimpleNamespace(id="re_1", status="succeeded")

        monkeypatch.setattr(stripe.Refund, "create", create)
        result = stripe_gateway.create_refund(transaction_id="ch_1", amount=19.99, currency="USD", reason="Defective")

        assert result.success is True
        assert result.gateway_refund_id == "re_1"
        assert captured["charge"] == "ch_1"
        assert captured["amount"] == 1999


class TestGatewayFactory:
    def test_default_is_fake(self):
        reset_gateway()
        assert isinstance(get_gateway(), FakeGateway)

    def test_stripe_selected_by_settings(self, monkeypatch):
        monkeypatch.setenv("PAYMENT_GATEWAY", "stripe")
        monkeypatch.setenv("STRIPE_API_KEY", "sk_test_123")
        monkeypatch.setattr(stripe, "default_http_client", None)
        get_settings.cache_clear()
        reset_gateway()

        assert isinstance(get_gateway(), StripeGateway)

    def test_set_gateway_overrides(self):
        custom = FakeGateway()
        set_gateway(custom)
        assert get_gateway() is custom
