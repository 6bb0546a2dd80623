"""FastAPI routes for the Ordering domain: carts, coupons, orders and payments.

The caller is identified by the ``X-Customer-Id`` header. Orders belonging
to another customer are reported as not found. Admin routes act on any
order.

Routes that take an order or cart lock, or call the payment gateway, are
plain functions; FastAPI runs them in its threadpool.
"""

import json

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    AddressSchema,
    AddToCartRequest,
    ApplyCouponRequest,
    ApplyCouponResponse,
    CancelOrderRequest,
    CartItemIdResponse,
    CartItemResponse,
    CartResponse,
    CheckoutRequest,
    ConfigureGatewayRequest,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    CreateIntentRequest,
    GatewayConfigResponse,
    IntentResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusResponse,
    PaymentStatusResponse,
    PricingResponse,
    RecordImeiRequest,
    RefundRequest,
    ReselectAttributesRequest,
    SelectCouponRequest,
    StatusResponse,
    UpdateCartQuantityRequest,
    UpdateStatusRequest,
    WarrantyActivationResponse,
)
from ordering.cart.cart import ShoppingCart
from ordering.cart.items import (
    AddToCart,
    ClearCart,
    RemoveFromCart,
    ReselectCartAttributes,
    SelectCartCoupon,
    UpdateCartQuantity,
)
from ordering.catalog import get_coupon_book
from ordering.gateway import get_gateway
from ordering.gateway.fake_adapter import FakeGateway
from ordering.order.checkout import PlaceOrder
from ordering.order.order import Order
from ordering.order.status import CancelOrder, ConfirmOrderReceived, UpdateOrderStatus
from ordering.payment.coordinator import PaymentCoordinator
from ordering.payment.intent import PaymentIntent
from ordering.payment.refund import refund_order
from ordering.pricing.resolver import evaluate_coupon, money
from ordering.utils.locking import process_under_cart_lock, process_under_order_lock
from ordering.utils.settings import get_settings
from ordering.warranty.activation import RecordImei, activate


def _customer_id(x_customer_id: str = Header(default="")) -> str:
    if not x_customer_id:
        raise HTTPException(status_code=401, detail="X-Customer-Id header is required")
    return x_customer_id


def _text(value):
    return str(value) if value else None


def _owned_order(order_id: str, customer_id: str) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    if str(order.customer_id) != customer_id:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order


# ---------------------------------------------------------------------------
# Response mapping
# ---------------------------------------------------------------------------
def _cart_response(customer_id: str) -> CartResponse:
    try:
        cart = current_domain.repository_for(ShoppingCart).get(customer_id)
    except ObjectNotFoundError:
        return CartResponse(customer_id=customer_id, items=[], subtotal=0.0)

    return CartResponse(
        customer_id=customer_id,
        items=[
            CartItemResponse(
                item_id=str(item.id),
                product_id=str(item.product_id),
                variant_id=_text(item.variant_id),
                name=item.name,
                sku=item.sku,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
                attribute_selection=json.loads(item.attribute_selection or "{}"),
                warranty_package_id=_text(item.warranty_package_id),
            )
            for item in cart.items
        ],
        coupon_code=cart.coupon_code,
        subtotal=cart.subtotal,
    )


def _address(address) -> AddressSchema | None:
    if address is None:
        return None
    return AddressSchema(**address.to_dict())


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        customer_id=str(order.customer_id),
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        payment_intent_id=order.payment_intent_id,
        payment_attempts=order.payment_attempts or 0,
        items=[
            OrderItemResponse(
                item_id=str(item.id),
                product_id=str(item.product_id),
                variant_id=_text(item.variant_id),
                name=item.name,
                sku=item.sku,
                unit_price=item.unit_price,
                quantity=item.quantity,
                total_price=item.total_price,
                attribute_selection=json.loads(item.attribute_selection or "{}"),
                warranty_package_id=_text(item.warranty_package_id),
                warranty_package_name=item.warranty_package_name,
                warranty_duration_months=item.warranty_duration_months,
                warranty_start_at=_text(item.warranty_start_at),
                warranty_end_at=_text(item.warranty_end_at),
                warranty_status=item.effective_warranty_status(),
                imei=item.imei,
            )
            for item in order.items
        ],
        pricing=PricingResponse(**order.pricing.to_dict()),
        shipping_address=_address(order.shipping_address),
        billing_address=_address(order.billing_address),
        notes=order.notes,
        coupon_code=order.coupon_code,
        cancellation_reason=order.cancellation_reason,
        can_cancel=order.can_cancel,
        can_pay_online=order.can_pay_online,
        created_at=_text(order.created_at),
        updated_at=_text(order.updated_at),
        paid_at=_text(order.paid_at),
        completed_at=_text(order.completed_at),
    )


def _order_list(result) -> OrderListResponse:
    return OrderListResponse(
        orders=[_order_response(order) for order in result.orders],
        total=result.total,
        page=result.page,
        pages=result.pages,
        limit=result.limit,
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
async def get_cart(customer_id: str = Depends(_customer_id)) -> CartResponse:
    """The caller's cart with server-computed prices."""
    return _cart_response(customer_id)


@cart_router.post("/items", status_code=201, response_model=CartItemIdResponse)
def add_cart_item(body: AddToCartRequest, customer_id: str = Depends(_customer_id)) -> CartItemIdResponse:
    command = AddToCart(
        customer_id=customer_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
        attribute_selection=json.dumps(body.attribute_selection),
        warranty_package_id=body.warranty_package_id,
    )
    item_id = process_under_cart_lock(customer_id, command)
    return CartItemIdResponse(item_id=item_id)


@cart_router.put("/items/{item_id}", response_model=CartResponse)
def update_cart_item_quantity(
    item_id: str,
    body: UpdateCartQuantityRequest,
    customer_id: str = Depends(_customer_id),
) -> CartResponse:
    command = UpdateCartQuantity(
        customer_id=customer_id,
        item_id=item_id,
        new_quantity=body.new_quantity,
    )
    process_under_cart_lock(customer_id, command)
    return _cart_response(customer_id)


@cart_router.put("/items/{item_id}/attributes", response_model=CartItemIdResponse)
def reselect_cart_item_attributes(
    item_id: str,
    body: ReselectAttributesRequest,
    customer_id: str = Depends(_customer_id),
) -> CartItemIdResponse:
    """Change a line's attributes. Returns the surviving line when lines merge."""
    command = ReselectCartAttributes(
        customer_id=customer_id,
        item_id=item_id,
        attribute_selection=json.dumps(body.attribute_selection),
    )
    survivor_id = process_under_cart_lock(customer_id, command)
    return CartItemIdResponse(item_id=survivor_id)


@cart_router.delete("/items/{item_id}", response_model=CartResponse)
def remove_cart_item(item_id: str, customer_id: str = Depends(_customer_id)) -> CartResponse:
    process_under_cart_lock(customer_id, RemoveFromCart(customer_id=customer_id, item_id=item_id))
    return _cart_response(customer_id)


@cart_router.put("/coupon", response_model=CartResponse)
def select_cart_coupon(body: SelectCouponRequest, customer_id: str = Depends(_customer_id)) -> CartResponse:
    command = SelectCartCoupon(customer_id=customer_id, coupon_code=body.coupon_code)
    process_under_cart_lock(customer_id, command)
    return _cart_response(customer_id)


@cart_router.delete("", response_model=StatusResponse)
def clear_cart(customer_id: str = Depends(_customer_id)) -> StatusResponse:
    process_under_cart_lock(customer_id, ClearCart(customer_id=customer_id))
    return StatusResponse()


# ---------------------------------------------------------------------------
# Coupon Router
# ---------------------------------------------------------------------------
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


@coupon_router.post("/apply", response_model=ApplyCouponResponse)
async def apply_coupon(body: ApplyCouponRequest) -> ApplyCouponResponse:
    """Preview a coupon against an amount. Nothing is redeemed."""
    evaluation = evaluate_coupon(get_coupon_book().find(body.code), body.order_amount)
    return ApplyCouponResponse(
        code=body.code.strip().upper(),
        eligible=evaluation.eligible,
        discount_amount=evaluation.discount,
        final_amount=money(max(body.order_amount - evaluation.discount, 0.0)),
        reason=evaluation.reason,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
def place_order(body: CheckoutRequest, customer_id: str = Depends(_customer_id)) -> OrderResponse:
    """Check out the caller's cart."""
    command = PlaceOrder(
        customer_id=customer_id,
        payment_method=body.payment_method,
        shipping_address=json.dumps(body.shipping_address.model_dump()),
        billing_address=json.dumps(body.billing_address.model_dump()) if body.billing_address else None,
        notes=body.notes,
        coupon_code=body.coupon_code,
    )
    order_id = process_under_cart_lock(customer_id, command)
    return _order_response(current_domain.repository_for(Order).get(order_id))


@order_router.get("", response_model=OrderListResponse)
async def list_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    customer_id: str = Depends(_customer_id),
) -> OrderListResponse:
    """The caller's orders, newest first."""
    return _order_list(current_domain.repository_for(Order).for_customer(customer_id, page=page, limit=limit))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, customer_id: str = Depends(_customer_id)) -> OrderResponse:
    return _order_response(_owned_order(order_id, customer_id))


@order_router.post("/{order_id}/cancel", response_model=OrderStatusResponse)
def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    customer_id: str = Depends(_customer_id),
) -> OrderStatusResponse:
    _owned_order(order_id, customer_id)
    command = CancelOrder(order_id=order_id, reason=body.reason, cancelled_by="customer")
    status = process_under_order_lock(order_id, command)
    return OrderStatusResponse(order_id=order_id, status=status)


@order_router.put("/{order_id}/received", response_model=OrderStatusResponse)
def confirm_received(order_id: str, customer_id: str = Depends(_customer_id)) -> OrderStatusResponse:
    """The customer confirms delivery; warranties start here."""
    _owned_order(order_id, customer_id)
    status = process_under_order_lock(order_id, ConfirmOrderReceived(order_id=order_id))
    return OrderStatusResponse(order_id=order_id, status=status)


@order_router.patch("/{order_id}/status", response_model=OrderStatusResponse)
def update_order_status(order_id: str, body: UpdateStatusRequest) -> OrderStatusResponse:
    """Admin status change, under the same guards as the customer paths."""
    command = UpdateOrderStatus(order_id=order_id, status=body.status, changed_by="admin", reason=body.reason)
    status = process_under_order_lock(order_id, command)
    return OrderStatusResponse(order_id=order_id, status=status)


@order_router.post("/{order_id}/refund", response_model=PaymentStatusResponse)
def refund(order_id: str, body: RefundRequest) -> PaymentStatusResponse:
    payment_status = refund_order(order_id, reason=body.reason)
    return PaymentStatusResponse(order_id=order_id, payment_status=payment_status)


@order_router.patch("/{order_id}/items/{item_id}/imei", response_model=StatusResponse)
def record_imei(order_id: str, item_id: str, body: RecordImeiRequest) -> StatusResponse:
    command = RecordImei(order_id=order_id, item_id=item_id, imei=body.imei)
    process_under_order_lock(order_id, command)
    return StatusResponse()


@order_router.post("/{order_id}/warranty/activate", response_model=WarrantyActivationResponse)
def activate_warranty(order_id: str) -> WarrantyActivationResponse:
    return WarrantyActivationResponse(order_id=order_id, activated=activate(order_id))


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin/orders", tags=["admin"])


@admin_router.get("", response_model=OrderListResponse)
async def list_all_orders(
    status: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> OrderListResponse:
    return _order_list(current_domain.repository_for(Order).for_admin(status=status, page=page, limit=limit))


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/intents", status_code=201, response_model=IntentResponse)
def create_payment_intent(
    body: CreateIntentRequest,
    customer_id: str = Depends(_customer_id),
) -> IntentResponse:
    """Issue (or hand out again) the order's active payment intent."""
    _owned_order(body.order_id, customer_id)
    result = PaymentCoordinator().create_intent(body.order_id)
    return IntentResponse(
        gateway_intent_id=result["gateway_intent_id"],
        client_secret=result["client_secret"],
        amount=result["amount"],
        currency=result["currency"],
        expires_at=_text(result["expires_at"]),
        reused=result["reused"],
        payment_status=result["payment_status"],
    )


@payment_router.post("/confirm", response_model=ConfirmPaymentResponse)
def confirm_payment(
    body: ConfirmPaymentRequest,
    customer_id: str = Depends(_customer_id),
) -> ConfirmPaymentResponse:
    """Record the gateway outcome of an intent. Safe to call repeatedly."""
    intent = current_domain.repository_for(PaymentIntent).get(body.gateway_intent_id)
    _owned_order(str(intent.order_id), customer_id)
    payment_status = PaymentCoordinator().confirm_payment(body.gateway_intent_id)
    return ConfirmPaymentResponse(gateway_intent_id=body.gateway_intent_id, payment_status=payment_status)


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the fake gateway's behavior (non-production only)."""
    if get_settings().is_production:
        raise HTTPException(status_code=403, detail="Gateway configuration is not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Only the fake gateway can be configured")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        processing=body.processing,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        processing=gateway.processing,
    )
