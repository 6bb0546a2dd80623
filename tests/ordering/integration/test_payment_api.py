"""Integration tests for Payment API endpoints via TestClient."""

import inspect

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api.errors import register_ordering_exception_handlers
from ordering.api.routes import cart_router, order_router, payment_router
from ordering.gateway import set_gateway
from ordering.gateway.port import IntentStatus
from ordering.order.order import Order, OrderStatus, PaymentStatus
from ordering.utils.settings import get_settings
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers

HEADERS = {"X-Customer-Id": "cust-001"}


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(payment_router)
    register_exception_handlers(app)
    register_ordering_exception_handlers(app)
    return TestClient(app)


@pytest.fixture()
def order_id(client, address):
    client.post(
        "/cart/items",
        json={"product_id": "phone-x", "attribute_selection": {"storage": "512gb"}},
        headers=HEADERS,
    )
    response = client.post(
        "/orders",
        json={"payment_method": "stripe", "shipping_address": address},
        headers=HEADERS,
    )
    assert response.status_code == 201
    return response.json()["order_id"]


def _create_intent(client, order_id, headers=HEADERS):
    return client.post("/payments/intents", json={"order_id": order_id}, headers=headers)


def _confirm(client, gateway_intent_id, headers=HEADERS):
    return client.post("/payments/confirm", json={"gateway_intent_id": gateway_intent_id}, headers=headers)


class TestPaymentFlow:
    def test_pay_order_end_to_end(self, client, order_id):
        response = _create_intent(client, order_id)
        assert response.status_code == 201
        intent = response.json()
        assert intent["amount"] == 45_990_000.0
        assert intent["currency"] == "VND"
        assert intent["client_secret"]
        assert intent["expires_at"] is not None

        response = _confirm(client, intent["gateway_intent_id"])
        assert response.status_code == 200
        assert response.json()["payment_status"] == "paid"

        order = client.get(f"/orders/{order_id}", headers=HEADERS).json()
        assert order["payment_status"] == "paid"
        assert order["status"] == "confirmed"
        assert order["can_pay_online"] is False

    def test_repeat_confirm_is_idempotent(self, client, order_id, gateway):
        gateway_intent_id = _create_intent(client, order_id).json()["gateway_intent_id"]
        _confirm(client, gateway_intent_id)
        response = _confirm(client, gateway_intent_id)

        assert response.status_code == 200
        assert response.json()["payment_status"] == "paid"
        assert len(gateway.calls_to("retrieve_intent")) == 1

    def test_intent_is_reused(self, client, order_id):
        first = _create_intent(client, order_id).json()
        second = _create_intent(client, order_id).json()
        assert second["gateway_intent_id"] == first["gateway_intent_id"]
        assert second["reused"] is True

    def test_paid_order_conflicts(self, client, order_id):
        gateway_intent_id = _create_intent(client, order_id).json()["gateway_intent_id"]
        _confirm(client, gateway_intent_id)
        assert _create_intent(client, order_id).status_code == 409

    def test_declined_payment(self, client, order_id):
        client.post("/payments/gateway/configure", json={"should_succeed": False, "failure_reason": "Insufficient funds"})
        gateway_intent_id = _create_intent(client, order_id).json()["gateway_intent_id"]

        response = _confirm(client, gateway_intent_id)
        assert response.json()["payment_status"] == "failed"
        order = current_domain.repository_for(Order).get(order_id)
        assert order.payment_failure_reason == "Insufficient funds"
        assert order.status == OrderStatus.PENDING.value

    def test_stale_intent_conflicts(self, client, order_id, monkeypatch):
        monkeypatch.setenv("PAYMENT_INTENT_TTL_MINUTES", "0")
        get_settings.cache_clear()

        old = _create_intent(client, order_id).json()["gateway_intent_id"]
        _create_intent(client, order_id)
        assert _confirm(client, old).status_code == 409

    def test_gateway_outage_is_service_unavailable(self, client, order_id, gateway):
        gateway.fail_next(3)
        response = _create_intent(client, order_id)

        assert response.status_code == 503
        assert "gateway" in response.json()["error"]
        assert current_domain.repository_for(Order).get(order_id).payment_intent_id is None

    def test_cancelled_order_intent_is_voided(self, client, order_id, gateway):
        gateway_intent_id = _create_intent(client, order_id).json()["gateway_intent_id"]
        assert client.post(f"/orders/{order_id}/cancel", json={}, headers=HEADERS).status_code == 200

        assert gateway.intents[gateway_intent_id].status == IntentStatus.CANCELED
        assert _confirm(client, gateway_intent_id).status_code == 409

    def test_expired_intent_paid_client_side_is_recorded(self, client, order_id, gateway, monkeypatch):
        monkeypatch.setenv("PAYMENT_INTENT_TTL_MINUTES", "0")
        get_settings.cache_clear()

        first = _create_intent(client, order_id).json()["gateway_intent_id"]
        gateway.complete_client_side(first)

        response = _create_intent(client, order_id)
        assert response.json()["gateway_intent_id"] == first
        assert response.json()["payment_status"] == "paid"
        assert client.get(f"/orders/{order_id}", headers=HEADERS).json()["payment_status"] == "paid"

    def test_cod_order_conflicts(self, client, address):
        client.post("/cart/items", json={"product_id": "case"}, headers=HEADERS)
        cod_order = client.post(
            "/orders",
            json={"payment_method": "cod", "shipping_address": address},
            headers=HEADERS,
        ).json()["order_id"]
        assert _create_intent(client, cod_order).status_code == 409

    def test_other_customers_order_is_not_found(self, client, order_id):
        assert _create_intent(client, order_id, headers={"X-Customer-Id": "cust-002"}).status_code == 404

    def test_other_customers_intent_is_not_found(self, client, order_id):
        gateway_intent_id = _create_intent(client, order_id).json()["gateway_intent_id"]
        response = _confirm(client, gateway_intent_id, headers={"X-Customer-Id": "cust-002"})
        assert response.status_code == 404
        assert current_domain.repository_for(Order).get(order_id).payment_status == PaymentStatus.PENDING.value

    def test_unknown_intent(self, client):
        assert _confirm(client, "pi_missing").status_code == 404


class TestRefundEndpoint:
    def test_refund_paid_order(self, client, order_id):
        _confirm(client, _create_intent(client, order_id).json()["gateway_intent_id"])

        response = client.post(f"/orders/{order_id}/refund", json={"reason": "Defective"})
        assert response.status_code == 200
        assert response.json()["payment_status"] == "refunded"

    def test_refund_unpaid_order_conflicts(self, client, order_id):
        assert client.post(f"/orders/{order_id}/refund", json={}).status_code == 409


class TestConfigureGateway:
    def test_configure_fake_gateway(self, client, gateway):
        response = client.post(
            "/payments/gateway/configure",
            json={"should_succeed": True, "processing": True},
        )
        assert response.status_code == 200
        assert response.json()["gateway"] == "FakeGateway"
        assert gateway.processing is True

    def test_forbidden_in_production(self, client, monkeypatch):
        monkeypatch.setenv("PROTEAN_ENV", "production")
        get_settings.cache_clear()

        response = client.post("/payments/gateway/configure", json={"should_succeed": False})
        assert response.status_code == 403

    def test_only_fake_gateway_is_configurable(self, client):
        class _RealGateway:
            pass

        set_gateway(_RealGateway())
        response = client.post("/payments/gateway/configure", json={"should_succeed": False})
        assert response.status_code == 400


class TestBlockingRoutesRunInThreadpool:
    @pytest.mark.parametrize(
        "path",
        ["/payments/intents", "/payments/confirm", "/orders/{order_id}/refund", "/orders/{order_id}/cancel"],
    )
    def test_gateway_routes_are_plain_functions(self, path):
        routes = [route for router in (order_router, payment_router) for route in router.routes]
        endpoint = next(route.endpoint for route in routes if route.path == path)
        assert not inspect.iscoroutinefunction(endpoint)
