"""Tests for the PaymentIntent aggregate."""

from datetime import timedelta

import pytest
from ordering.errors import StaleIntent
from ordering.payment.events import PaymentIntentCreated, PaymentIntentSettled, PaymentIntentSuperseded
from ordering.payment.intent import IntentState, PaymentIntent, amounts_match


def _make_intent(amount=45_990_000.0, ttl_minutes=30):
    return PaymentIntent.create(
        gateway_intent_id="pi_001",
        order_id="ord-001",
        amount=amount,
        currency="VND",
        payment_method="stripe",
        client_secret="pi_001_secret",
        ttl_minutes=ttl_minutes,
    )


class TestCreation:
    def test_new_intent_is_active(self):
        intent = _make_intent()
        assert intent.status == IntentState.ACTIVE.value
        assert intent.is_active is True
        assert intent.expires_at - intent.created_at == timedelta(minutes=30)
        assert any(isinstance(e, PaymentIntentCreated) for e in intent._events)


class TestReuse:
    def test_reusable_for_same_total(self):
        assert _make_intent().is_reusable_for(45_990_000.0) is True

    def test_not_reusable_after_total_changes(self):
        assert _make_intent().is_reusable_for(45_000_000.0) is False

    def test_not_reusable_once_expired(self):
        intent = _make_intent()
        assert intent.is_reusable_for(45_990_000.0, now=intent.expires_at) is False

    def test_not_reusable_once_superseded(self):
        intent = _make_intent()
        intent.supersede("pi_002")
        assert intent.is_reusable_for(45_990_000.0) is False


class TestSupersede:
    def test_supersede_active_intent(self):
        intent = _make_intent()
        intent.supersede("pi_002")

        assert intent.status == IntentState.SUPERSEDED.value
        assert intent.superseded_by == "pi_002"
        assert any(isinstance(e, PaymentIntentSuperseded) for e in intent._events)

    def test_settled_intent_is_not_superseded(self):
        intent = _make_intent()
        intent.mark_succeeded("txn_1")
        intent.supersede("pi_002")
        assert intent.status == IntentState.SUCCEEDED.value


class TestConfirmable:
    def test_active_intent_with_matching_total(self):
        _make_intent().assert_confirmable(45_990_000.0)

    def test_superseded_intent_is_stale(self):
        intent = _make_intent()
        intent.supersede("pi_002")
        with pytest.raises(StaleIntent) as exc:
            intent.assert_confirmable(45_990_000.0)
        assert "gateway_intent_id" in exc.value.messages

    def test_amount_mismatch_is_stale(self):
        with pytest.raises(StaleIntent):
            _make_intent().assert_confirmable(46_000_000.0)


class TestSettlement:
    def test_mark_succeeded(self):
        intent = _make_intent()
        intent.mark_succeeded("txn_1")

        assert intent.status == IntentState.SUCCEEDED.value
        assert intent.transaction_id == "txn_1"
        settled = [e for e in intent._events if isinstance(e, PaymentIntentSettled)][-1]
        assert settled.status == "succeeded"

    def test_mark_failed(self):
        intent = _make_intent()
        intent.mark_failed("Card declined")

        assert intent.status == IntentState.FAILED.value
        assert intent.failure_reason == "Card declined"
        assert intent.is_active is False


class TestAmountsMatch:
    def test_float_noise_matches(self):
        assert amounts_match(0.1 + 0.2, 0.3) is True

    def test_one_cent_differs(self):
        assert amounts_match(100.0, 100.01) is False
