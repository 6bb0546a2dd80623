"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands. Prices never travel inbound: every amount in a
request body is ignored by the server or absent altogether.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    full_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=1, max_length=20)
    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: str | None = None
    city: str = Field(min_length=1, max_length=100)
    state: str | None = None
    postal_code: str | None = None
    country: str = Field(min_length=1, max_length=100)


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Cart Schemas
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(ge=1, default=1)
    attribute_selection: dict[str, str] = Field(default_factory=dict)
    warranty_package_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "phone-x",
                    "quantity": 1,
                    "attribute_selection": {"storage": "256gb", "color": "black"},
                    "warranty_package_id": "care-12",
                }
            ]
        }
    }


class UpdateCartQuantityRequest(BaseModel):
    # Values below 1 are clamped by the cart, not rejected
    new_quantity: int


class ReselectAttributesRequest(BaseModel):
    attribute_selection: dict[str, str]


class SelectCouponRequest(BaseModel):
    coupon_code: str | None = None


class CartItemIdResponse(BaseModel):
    item_id: str


class CartItemResponse(BaseModel):
    item_id: str
    product_id: str
    variant_id: str | None = None
    name: str | None = None
    sku: str | None = None
    quantity: int
    unit_price: float
    line_total: float
    attribute_selection: dict[str, str]
    warranty_package_id: str | None = None


class CartResponse(BaseModel):
    customer_id: str
    items: list[CartItemResponse]
    coupon_code: str | None = None
    subtotal: float


# ---------------------------------------------------------------------------
# Coupon Schemas
# ---------------------------------------------------------------------------
class ApplyCouponRequest(BaseModel):
    code: str = Field(min_length=1)
    order_amount: float = Field(ge=0)


class ApplyCouponResponse(BaseModel):
    code: str
    eligible: bool
    discount_amount: float
    final_amount: float
    reason: str | None = None


# ---------------------------------------------------------------------------
# Order Schemas
# ---------------------------------------------------------------------------
class CheckoutRequest(BaseModel):
    payment_method: str
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    notes: str | None = None
    coupon_code: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "payment_method": "stripe",
                    "shipping_address": {
                        "full_name": "Nguyen Van A",
                        "phone": "0901234567",
                        "address_line1": "12 Le Loi",
                        "city": "Ho Chi Minh City",
                        "country": "VN",
                    },
                    "coupon_code": "SAVE10",
                }
            ]
        }
    }


class OrderItemResponse(BaseModel):
    item_id: str
    product_id: str
    variant_id: str | None = None
    name: str | None = None
    sku: str | None = None
    unit_price: float
    quantity: int
    total_price: float
    attribute_selection: dict[str, str]
    warranty_package_id: str | None = None
    warranty_package_name: str | None = None
    warranty_duration_months: int | None = None
    warranty_start_at: str | None = None
    warranty_end_at: str | None = None
    warranty_status: str | None = None
    imei: str | None = None


class PricingResponse(BaseModel):
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total_amount: float
    currency: str


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    status: str
    payment_status: str
    payment_method: str
    payment_intent_id: str | None = None
    payment_attempts: int = 0
    items: list[OrderItemResponse]
    pricing: PricingResponse
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    notes: str | None = None
    coupon_code: str | None = None
    cancellation_reason: str | None = None
    can_cancel: bool
    can_pay_online: bool
    created_at: str | None = None
    updated_at: str | None = None
    paid_at: str | None = None
    completed_at: str | None = None


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total: int
    page: int
    pages: int
    limit: int


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class UpdateStatusRequest(BaseModel):
    status: str
    reason: str | None = None


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str


class RefundRequest(BaseModel):
    reason: str = "requested_by_customer"


class PaymentStatusResponse(BaseModel):
    order_id: str
    payment_status: str


class RecordImeiRequest(BaseModel):
    imei: str = Field(min_length=8, max_length=50)


class WarrantyActivationResponse(BaseModel):
    order_id: str
    activated: int


# ---------------------------------------------------------------------------
# Payment Schemas
# ---------------------------------------------------------------------------
class CreateIntentRequest(BaseModel):
    order_id: str


class IntentResponse(BaseModel):
    gateway_intent_id: str
    client_secret: str | None = None
    amount: float
    currency: str
    expires_at: str | None = None
    reused: bool = False
    payment_status: str = "pending"


class ConfirmPaymentRequest(BaseModel):
    gateway_intent_id: str


class ConfirmPaymentResponse(BaseModel):
    gateway_intent_id: str
    payment_status: str


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Card declined"
    processing: bool = False


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    processing: bool
